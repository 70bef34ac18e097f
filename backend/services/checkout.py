# backend/services/checkout.py
"""Order placement: the one place where stock is consumed.

Every line's stock decrement, the coupon use and the order insert commit
together or not at all.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models.cart import Cart
from models.order import Order, OrderItem, OrderStatus, PaymentStatus, PaymentMethod
from models.product import SkuOption
from services import catalog
from services.coupons import validate_coupon, record_usage
from services.errors import (
    DomainError, InvalidInputError, ProductNotFoundError, SkuNotFoundError,
    InsufficientStockError, TransactionFailure, TransactionTimeoutError,
)
from services.tax import GstBreakdown, Number, decompose_gst, summarize
from utils.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutLine:
    product_id: int
    sku: str
    quantity: int


def generate_reference(prefix: str, now: datetime) -> str:
    # Human readable and unique without a round trip: ORD-20260101-1A2B3C4D
    return f"{prefix}-{now:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def lines_from_cart(cart: Optional[Cart]) -> List[CheckoutLine]:
    if not cart:
        return []
    return [CheckoutLine(product_id=it.product_id, sku=it.sku, quantity=it.quantity) for it in cart.items]


def _set_statement_timeout(db: Session, timeout_seconds: float) -> None:
    # PostgreSQL aborts any statement of this transaction that runs past the bound
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))


def _check_deadline(started: float, timeout_seconds: float) -> None:
    if time.monotonic() - started > timeout_seconds:
        raise TransactionTimeoutError("Checkout transaction timed out, please retry")


def _reserve_line(db: Session, line: CheckoutLine) -> Tuple[OrderItem, GstBreakdown]:
    if line.quantity is None or line.quantity < 1:
        raise InvalidInputError(f"Quantity for {line.sku} must be at least 1")

    product = catalog.find_product_by_id(db, line.product_id)
    if not product:
        raise ProductNotFoundError(f"Product {line.product_id} not found")

    option = catalog.find_sku_in_product(db, product, line.sku)
    if not option:
        raise SkuNotFoundError(f"SKU {line.sku} not found")

    if not catalog.conditional_decrement_stock(db, option.id, line.quantity):
        available = db.query(SkuOption.stock).filter(SkuOption.id == option.id).scalar()
        raise InsufficientStockError(
            f"Insufficient stock for {product.name} ({line.sku}): requested {line.quantity}, available {available}"
        )

    breakdown = decompose_gst(option.price, line.quantity, product.gst_percentage or 0)
    variant = option.variant
    image = variant.images[0] if variant and variant.images else None

    item = OrderItem(
        product_id=product.id,
        sku=option.sku,
        name=product.name,
        size=option.size,
        color=variant.color if variant else None,
        image=image,
        quantity=line.quantity,
        price=float(breakdown.unit_price),
        gst_percentage=float(breakdown.gst_percentage),
        gst_amount=float(breakdown.gst_amount),
        taxable_value=float(breakdown.taxable_value),
        cgst=float(breakdown.cgst),
        sgst=float(breakdown.sgst),
        total_price=float(breakdown.line_gross),
    )
    return item, breakdown


def place_order(
    db: Session,
    user_id: int,
    lines: Sequence[CheckoutLine],
    shipping_address: Optional[Dict[str, Any]],
    payment_method: str,
    shipping_fee: Number = 0,
    coupon_code: Optional[str] = None,
    now: Optional[datetime] = None,
    timeout_seconds: Optional[float] = None,
) -> Order:
    """Reserve stock for every line and persist an immutable order snapshot.

    Raises the specific DomainError of the first failing step after rolling
    the whole transaction back; nothing it touched survives a failure.
    """
    if not lines:
        raise InvalidInputError("Cart is empty")
    if payment_method not in {m.value for m in PaymentMethod}:
        raise InvalidInputError(f"Unsupported payment method: {payment_method}")

    now = now or utcnow()
    if timeout_seconds is None:
        timeout_seconds = settings.CHECKOUT_TRANSACTION_TIMEOUT_SECONDS
    started = time.monotonic()

    try:
        _set_statement_timeout(db, timeout_seconds)

        items: List[OrderItem] = []
        breakdowns: List[GstBreakdown] = []
        for line in lines:
            item, breakdown = _reserve_line(db, line)
            items.append(item)
            breakdowns.append(breakdown)
            _check_deadline(started, timeout_seconds)

        totals = summarize(breakdowns, shipping_fee)
        quote = None
        if coupon_code:
            quote = validate_coupon(db, coupon_code, totals.gross_total, now)
            # A flat coupon larger than the goods only zeroes them out
            totals = summarize(breakdowns, shipping_fee, min(quote.discount, totals.gross_total))

        order = Order(
            order_id=generate_reference("ORD", now),
            user_id=user_id,
            items=items,
            sub_total=float(totals.sub_total),
            tax_total=float(totals.tax_total),
            cgst_total=float(totals.cgst_total),
            sgst_total=float(totals.sgst_total),
            shipping_fee=float(totals.shipping_fee),
            discount_total=float(totals.discount_total),
            grand_total=float(totals.grand_total),
            applied_coupon_code=quote.code if quote else None,
            applied_coupon_discount=float(totals.discount_total) if quote else None,
            shipping_address=shipping_address,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.PENDING.value,
            placed_at=now,
            last_status_update=now,
        )
        db.add(order)
        db.flush()

        if quote:
            record_usage(db, quote.code, user_id, order.id, now)

        _check_deadline(started, timeout_seconds)
        db.commit()
    except DomainError:
        db.rollback()
        raise
    except OperationalError as e:
        db.rollback()
        reason = str(e.orig).lower() if e.orig is not None else str(e).lower()
        if "timeout" in reason or "locked" in reason or "canceling statement" in reason:
            raise TransactionTimeoutError("Checkout transaction timed out, please retry") from e
        logger.exception("Checkout transaction aborted for user %s", user_id)
        raise TransactionFailure("Checkout could not be completed, please retry") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Checkout transaction aborted for user %s", user_id)
        raise TransactionFailure("Checkout could not be completed, please retry") from e

    db.refresh(order)
    logger.info(
        "Order %s placed by user %s: %d lines, grand total %.2f",
        order.order_id, user_id, len(order.items), order.grand_total,
    )
    return order
