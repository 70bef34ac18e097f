# backend/services/order_status.py
"""Order fulfilment state machine and the independent payment axis.

    Pending -> Confirmed -> Processing -> Shipped -> Delivered
         \\________________\\_____________\\_______-> Cancelled

Fulfilment only ever moves forward (skipping steps is fine, a carrier can
report Shipped for a Confirmed order). Delivered and Cancelled are terminal.
Entering a state triggers its side effects: Shipped stamps shipped_at once,
Delivered stamps delivered_at and opens the return window.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from config import settings
from models.order import Order, OrderStatus, PaymentStatus
from services.errors import InvalidInputError, InvalidTransitionError, PaymentPolicyError
from utils.timeutils import utcnow

logger = logging.getLogger(__name__)

FULFILMENT_SEQUENCE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]
TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# Lossy many-to-one translation of carrier status text
CARRIER_STATUS_MAP = {
    "pickup scheduled": OrderStatus.SHIPPED,
    "picked up": OrderStatus.SHIPPED,
    "shipped": OrderStatus.SHIPPED,
    "in transit": OrderStatus.SHIPPED,
    "out for delivery": OrderStatus.SHIPPED,
    "delivered": OrderStatus.DELIVERED,
    "rto": OrderStatus.CANCELLED,
    "rto initiated": OrderStatus.CANCELLED,
    "cancelled": OrderStatus.CANCELLED,
    "canceled": OrderStatus.CANCELLED,
}


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidInputError(f"Unknown order status: {value}")


def map_carrier_status(current_status: Optional[str]) -> Optional[OrderStatus]:
    return CARRIER_STATUS_MAP.get((current_status or "").strip().lower())


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    return FULFILMENT_SEQUENCE.index(target) > FULFILMENT_SEQUENCE.index(current)


def _apply_side_effects(order: Order, target: OrderStatus, now: datetime, return_window_days: int) -> None:
    if target == OrderStatus.CONFIRMED and not order.confirmed_at:
        order.confirmed_at = now
    elif target == OrderStatus.SHIPPED and not order.shipped_at:
        order.shipped_at = now
    elif target == OrderStatus.DELIVERED:
        if not order.shipped_at:
            order.shipped_at = now
        order.delivered_at = now
        # The single authoritative gate for return eligibility
        order.return_window_expires_at = now + timedelta(days=return_window_days)
    elif target == OrderStatus.CANCELLED:
        order.cancelled_at = now


def transition(
    order: Order,
    new_status,
    now: Optional[datetime] = None,
    return_window_days: Optional[int] = None,
) -> bool:
    """Move the order to new_status, raising on anything but a forward move.

    Returns False when the order is already in new_status.
    """
    target = parse_status(new_status)
    current = OrderStatus(order.status)
    if target == current:
        return False
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot change order status from {current.value} to {target.value}")
    if (
        target == OrderStatus.DELIVERED
        and settings.BLOCK_DELIVERY_ON_FAILED_PAYMENT
        and order.payment_status == PaymentStatus.FAILED.value
    ):
        raise PaymentPolicyError(f"Order {order.order_id} cannot be delivered: payment failed")

    now = now or utcnow()
    if return_window_days is None:
        return_window_days = settings.RETURN_WINDOW_DAYS

    _apply_side_effects(order, target, now, return_window_days)
    order.status = target.value
    order.last_status_update = now
    logger.info("Order %s: %s -> %s", order.order_id, current.value, target.value)
    return True


def advance(
    order: Order,
    new_status,
    now: Optional[datetime] = None,
    return_window_days: Optional[int] = None,
) -> bool:
    """Monotonic variant for external feeds: stale or backward updates are ignored.

    A payment-policy violation is still raised, the feed is asking for
    something that must not happen.
    """
    target = parse_status(new_status)
    current = OrderStatus(order.status)
    if target == current or not can_transition(current, target):
        if target != current:
            logger.info("Ignoring stale update for order %s: %s -> %s", order.order_id, current.value, target.value)
        return False
    return transition(order, target, now, return_window_days)


# Payment axis
def apply_payment_status(order: Order, new_status, now: Optional[datetime] = None) -> bool:
    """Record a gateway outcome. Replaying the same outcome changes nothing.

    Refunded is final; a late Failed never overrides Paid. Paid also confirms
    a Pending order.
    """
    try:
        target = PaymentStatus(new_status)
    except ValueError:
        raise InvalidInputError(f"Unknown payment status: {new_status}")

    current = PaymentStatus(order.payment_status)
    if target == current:
        return False
    if current == PaymentStatus.REFUNDED:
        return False
    if current == PaymentStatus.PAID and target in (PaymentStatus.FAILED, PaymentStatus.PENDING):
        logger.info("Ignoring %s for already paid order %s", target.value, order.order_id)
        return False
    if target == PaymentStatus.REFUNDED and current != PaymentStatus.PAID:
        raise InvalidTransitionError(f"Order {order.order_id} was never paid, nothing to refund")

    now = now or utcnow()
    order.payment_status = target.value
    if target == PaymentStatus.PAID and order.status == OrderStatus.PENDING.value:
        transition(order, OrderStatus.CONFIRMED, now)
    logger.info("Order %s payment: %s -> %s", order.order_id, current.value, target.value)
    return True


def cancel_order(order: Order, reason: Optional[str], now: Optional[datetime] = None) -> None:
    """Customer cancellation. Paid orders are flagged for an admin refund."""
    if order.status in (OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value):
        raise InvalidTransitionError("Order cannot be cancelled at this stage")
    now = now or utcnow()
    transition(order, OrderStatus.CANCELLED, now)
    order.cancellation_reason = reason
    if order.payment_status == PaymentStatus.PAID.value:
        # Refund itself is issued by an admin through the gateway
        order.refund_status = "Initiated"
        order.refund_amount = order.grand_total
