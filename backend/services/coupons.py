# backend/services/coupons.py
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import update, or_
from sqlalchemy.orm import Session

from models.offer import Offer, OfferUsage, DiscountType
from services.errors import (
    InvalidInputError, OfferNotFoundError, OfferNotStartedError, OfferExpiredError,
    OfferExhaustedError, MinOrderNotMetError,
)
from services.tax import Number, q2, to_decimal
from utils.timeutils import utcnow, to_naive_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponQuote:
    code: str
    discount: Decimal


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def find_active_offer(db: Session, code: str) -> Optional[Offer]:
    return db.query(Offer).filter(
        Offer.code == normalize_code(code),
        Offer.is_active == True,  # noqa: E712
        Offer.deleted_at == None,  # noqa: E711
    ).first()


def compute_discount(offer: Offer, cart_value: Number) -> Decimal:
    value = to_decimal(cart_value)
    if offer.type == DiscountType.FLAT.value:
        discount = to_decimal(offer.value)
    else:
        discount = value * to_decimal(offer.value) / 100
        if offer.max_discount is not None and discount > to_decimal(offer.max_discount):
            discount = to_decimal(offer.max_discount)
    return q2(discount)


def validate_coupon(db: Session, code: str, cart_value: Number, now: Optional[datetime] = None) -> CouponQuote:
    """Check a code against the cart value and quote its discount.

    Read-only: usage counters and the active flag are never touched here,
    so repeated calls with the same inputs always give the same answer.
    """
    if to_decimal(cart_value) < 0:
        raise InvalidInputError("Cart value cannot be negative")

    now = to_naive_utc(now) or utcnow()
    offer = find_active_offer(db, code)
    if not offer:
        raise OfferNotFoundError("Invalid coupon")

    if now < to_naive_utc(offer.start_date):
        raise OfferNotStartedError("Offer has not started yet")
    if now > to_naive_utc(offer.end_date):
        raise OfferExpiredError("Coupon expired")
    if offer.usage_limit is not None and offer.usage_count >= offer.usage_limit:
        raise OfferExhaustedError("Coupon usage limit reached")
    if to_decimal(cart_value) < to_decimal(offer.min_order_value or 0):
        raise MinOrderNotMetError(f"Min order value is {offer.min_order_value}")

    return CouponQuote(code=offer.code, discount=compute_discount(offer, cart_value))


def record_usage(db: Session, code: str, user_id: int, order_pk: int, now: Optional[datetime] = None) -> None:
    """Consume one use of an offer. Must run inside the checkout transaction.

    The limit check and the increment are one conditional UPDATE, so two
    orders racing for the last use cannot both get it.
    """
    now = now or utcnow()
    normalized = normalize_code(code)
    result = db.execute(
        update(Offer)
        .where(
            Offer.code == normalized,
            or_(Offer.usage_limit == None, Offer.usage_count < Offer.usage_limit),  # noqa: E711
        )
        .values(usage_count=Offer.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise OfferExhaustedError("Coupon usage limit reached")

    offer_id = db.query(Offer.id).filter(Offer.code == normalized).scalar()
    db.add(OfferUsage(offer_id=offer_id, user_id=user_id, order_id=order_pk, used_at=now))
    logger.info("Offer %s used by user %s on order %s", normalized, user_id, order_pk)
