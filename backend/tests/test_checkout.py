import itertools
import threading
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from database import Base
from models.offer import Offer, OfferUsage
from models.order import Order
from models.product import Product, ProductVariant, SkuOption
from models.users import User
from services import catalog, checkout
from services.checkout import CheckoutLine, place_order
from services.errors import (
    InsufficientStockError, InvalidInputError, OfferExhaustedError, ProductNotFoundError, SkuNotFoundError,
    TransactionFailure, TransactionTimeoutError,
)

ADDRESS = {"firstName": "Asha", "pincode": "560001", "city": "Bengaluru"}


def stock_of(db, sku):
    return db.query(SkuOption.stock).filter(SkuOption.sku == sku).scalar()


def test_checkout_reserves_stock_and_snapshots_tax(db, user, product):
    order = place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 3)], ADDRESS, "Online")

    assert stock_of(db, "ABC-M") == 2
    assert order.order_id.startswith("ORD-")
    assert order.status == "Pending"
    assert order.payment_status == "Pending"

    [item] = order.items
    assert item.quantity == 3
    assert item.price == 500
    assert item.taxable_value == pytest.approx(1339.29)
    assert item.gst_amount == pytest.approx(160.71)
    assert item.cgst == pytest.approx(80.355)
    assert item.sgst == pytest.approx(80.355)
    assert item.name == "Classic Tee"
    assert item.color == "Black"
    assert item.image == "https://img.example/tee.jpg"


def test_order_totals_are_consistent(db, user, product, offer_factory):
    offer_factory(code="FLAT50", type="FLAT", value=50, max_discount=None)
    order = place_order(
        db, user.id,
        [CheckoutLine(product.id, "ABC-M", 2), CheckoutLine(product.id, "ABC-L", 1)],
        ADDRESS, "COD", shipping_fee=49, coupon_code="flat50",
    )
    assert order.grand_total == pytest.approx(
        round(order.sub_total + order.tax_total + order.shipping_fee - order.discount_total, 2), abs=0.01
    )
    assert order.tax_total == pytest.approx(order.cgst_total + order.sgst_total, abs=0.01)
    assert order.discount_total == 50
    assert order.grand_total == pytest.approx(1500 + 49 - 50)
    assert order.applied_coupon_code == "FLAT50"


def test_failed_line_rolls_back_every_decrement(db, user, product):
    lines = [CheckoutLine(product.id, "ABC-M", 3), CheckoutLine(product.id, "ABC-L", 2)]
    with pytest.raises(InsufficientStockError) as exc:
        place_order(db, user.id, lines, ADDRESS, "Online")

    assert "available 1" in exc.value.message
    assert stock_of(db, "ABC-M") == 5
    assert stock_of(db, "ABC-L") == 1
    assert db.query(Order).count() == 0


def test_stale_reads_cannot_oversell(session_factory, user, product):
    first, second = session_factory(), session_factory()
    try:
        # Both sessions saw 5 in stock before either checked out
        assert first.query(SkuOption).filter_by(sku="ABC-M").one().stock == 5
        assert second.query(SkuOption).filter_by(sku="ABC-M").one().stock == 5

        place_order(first, user.id, [CheckoutLine(product.id, "ABC-M", 3)], ADDRESS, "Online")
        with pytest.raises(InsufficientStockError):
            place_order(second, user.id, [CheckoutLine(product.id, "ABC-M", 3)], ADDRESS, "Online")
        place_order(second, user.id, [CheckoutLine(product.id, "ABC-M", 2)], ADDRESS, "Online")

        assert stock_of(second, "ABC-M") == 0
        with pytest.raises(InsufficientStockError):
            place_order(first, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "Online")
        assert stock_of(first, "ABC-M") == 0
    finally:
        first.close()
        second.close()


def test_coupon_use_is_consumed_with_the_order(db, user, product, offer_factory):
    offer = offer_factory(code="ONCE", usage_limit=1)
    order = place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "Online", coupon_code="ONCE")

    assert db.query(Offer.usage_count).filter(Offer.id == offer.id).scalar() == 1
    assert db.query(OfferUsage).filter(OfferUsage.order_id == order.id).count() == 1
    # 10% of 500 is 50, under the 80 cap
    assert order.discount_total == 50

    with pytest.raises(OfferExhaustedError):
        place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "Online", coupon_code="ONCE")
    # The losing order's stock decrement was rolled back with it
    assert stock_of(db, "ABC-M") == 4


def test_flat_coupon_never_goes_below_zero(db, user, product, offer_factory):
    offer_factory(code="HUGE", type="FLAT", value=5000, max_discount=None)
    order = place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "COD", shipping_fee=40, coupon_code="HUGE")
    assert order.discount_total == 500
    assert order.grand_total == 40


@pytest.mark.parametrize("line,error", [
    (CheckoutLine(999, "ABC-M", 1), ProductNotFoundError),
    (CheckoutLine(None, "NOPE", 1), ProductNotFoundError),
    (CheckoutLine(1, "NOPE", 1), SkuNotFoundError),
    (CheckoutLine(1, "ABC-M", 0), InvalidInputError),
])
def test_bad_lines_are_rejected(db, user, product, line, error):
    assert product.id == 1
    with pytest.raises(error):
        place_order(db, user.id, [line], ADDRESS, "COD")
    assert stock_of(db, "ABC-M") == 5


def test_empty_checkout_and_payment_method(db, user, product):
    with pytest.raises(InvalidInputError):
        place_order(db, user.id, [], ADDRESS, "COD")
    with pytest.raises(InvalidInputError):
        place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "Cheque")


def test_slow_checkout_times_out_and_rolls_back(db, user, product, monkeypatch):
    ticks = itertools.count(0, 30)
    monkeypatch.setattr(checkout, "time", SimpleNamespace(monotonic=lambda: next(ticks)))

    with pytest.raises(TransactionTimeoutError):
        place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 2)], ADDRESS, "COD", timeout_seconds=10)

    assert stock_of(db, "ABC-M") == 5
    assert db.query(Order).count() == 0


def test_locked_database_maps_to_timeout(db, user, product, monkeypatch):
    def locked():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", locked)
    with pytest.raises(TransactionTimeoutError):
        place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 2)], ADDRESS, "COD")

    assert stock_of(db, "ABC-M") == 5
    assert db.query(Order).count() == 0


def test_database_error_maps_to_transaction_failure(db, user, product, monkeypatch):
    def broken(db, sku_option_id, quantity):
        raise OperationalError("UPDATE sku_options", {}, Exception("disk I/O error"))

    monkeypatch.setattr(catalog, "conditional_decrement_stock", broken)
    with pytest.raises(TransactionFailure) as exc:
        place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 2)], ADDRESS, "COD")

    assert type(exc.value) is TransactionFailure
    assert stock_of(db, "ABC-M") == 5
    assert db.query(Order).count() == 0


def test_concurrent_checkouts_never_oversell(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'checkout.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with Session() as setup:
        buyer = User(email="buyer@example.com", role="customer")
        p = Product(name="Classic Tee", slug="classic-tee", gst_percentage=12)
        variant = ProductVariant(color="Black", is_default=True)
        variant.options.append(SkuOption(sku="ABC-M", size="M", price=500, mrp=800, stock=5, position=0))
        p.variants.append(variant)
        setup.add_all([buyer, p])
        setup.commit()
        user_id, product_id = buyer.id, p.id

    workers, quantity = 8, 2
    barrier = threading.Barrier(workers)

    def buy():
        with Session() as session:
            barrier.wait()
            try:
                place_order(session, user_id, [CheckoutLine(product_id, "ABC-M", quantity)], ADDRESS, "COD",
                            timeout_seconds=60)
                return None
            except InsufficientStockError as e:
                return e

    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(lambda _: buy(), range(workers)))

    assert outcomes.count(None) == 5 // quantity
    assert all(isinstance(o, InsufficientStockError) for o in outcomes if o is not None)
    with Session() as check:
        assert check.query(SkuOption.stock).filter(SkuOption.sku == "ABC-M").scalar() == 5 % quantity
        assert check.query(Order).count() == 5 // quantity
    engine.dispose()
