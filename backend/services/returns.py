# backend/services/returns.py
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from config import settings
from models.order import Order, OrderItem, ItemReturnStatus, PaymentStatus
from models.return_request import ReturnRequest, ReturnRequestItem, ReturnStatus, ReturnType, ItemCondition
from services.checkout import generate_reference
from services.errors import (
    InvalidInputError, InvalidTransitionError, OrderNotFoundError, ReturnNotFoundError,
    ReturnNotAllowedError, ReturnWindowExpiredError, DuplicateReturnClaimError,
)
from services.tax import ZERO, q2, to_decimal
from utils.timeutils import utcnow, to_naive_utc

logger = logging.getLogger(__name__)

# Forward order used when strict transitions are switched on
RETURN_FLOW = [
    ReturnStatus.PENDING,
    ReturnStatus.APPROVED,
    ReturnStatus.PICKUP_SCHEDULED,
    ReturnStatus.RECEIVED,
    ReturnStatus.QC_PASS,
    ReturnStatus.REFUNDED,
]
RETURN_NEXT = {
    ReturnStatus.PENDING: {ReturnStatus.APPROVED, ReturnStatus.REJECTED},
    ReturnStatus.APPROVED: {ReturnStatus.PICKUP_SCHEDULED, ReturnStatus.REJECTED},
    ReturnStatus.PICKUP_SCHEDULED: {ReturnStatus.RECEIVED, ReturnStatus.REJECTED},
    ReturnStatus.RECEIVED: {ReturnStatus.QC_PASS, ReturnStatus.QC_FAIL, ReturnStatus.REJECTED},
    ReturnStatus.QC_PASS: {ReturnStatus.REFUNDED, ReturnStatus.REJECTED},
    ReturnStatus.QC_FAIL: {ReturnStatus.REJECTED},
    ReturnStatus.REFUNDED: set(),
    ReturnStatus.REJECTED: set(),
}

# How a request status shows up on the claimed order lines
ITEM_STATUS_FOR = {
    ReturnStatus.PENDING: ItemReturnStatus.REQUESTED,
    ReturnStatus.APPROVED: ItemReturnStatus.APPROVED,
    ReturnStatus.PICKUP_SCHEDULED: ItemReturnStatus.APPROVED,
    ReturnStatus.RECEIVED: ItemReturnStatus.APPROVED,
    ReturnStatus.QC_PASS: ItemReturnStatus.APPROVED,
    ReturnStatus.QC_FAIL: ItemReturnStatus.REJECTED,
    ReturnStatus.REFUNDED: ItemReturnStatus.COMPLETED,
    ReturnStatus.REJECTED: ItemReturnStatus.REJECTED,
}

OPEN_CLAIM_STATUSES = {ItemReturnStatus.REQUESTED.value, ItemReturnStatus.APPROVED.value}


@dataclass(frozen=True)
class ReturnLine:
    order_item_id: int
    quantity: int
    reason: Optional[str] = None
    condition: str = ItemCondition.OPENED.value


def _parse(enum_cls, value, label):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidInputError(f"Unknown {label}: {value}")


def _find_user_order(db: Session, order_ref, user_id: int) -> Optional[Order]:
    query = db.query(Order).filter(Order.user_id == user_id)
    if isinstance(order_ref, int) or str(order_ref).isdigit():
        return query.filter(Order.id == int(order_ref)).first()
    return query.filter(Order.order_id == str(order_ref)).first()


def request_return(
    db: Session,
    order_ref,
    user_id: int,
    items: Sequence[ReturnLine],
    reason: str,
    type: str = ReturnType.RETURN.value,
    now: Optional[datetime] = None,
    exchange_size: Optional[str] = None,
) -> ReturnRequest:
    """Open a return/exchange claim on some lines of a delivered order."""
    now = to_naive_utc(now) or utcnow()
    return_type = _parse(ReturnType, type, "return type")

    order = _find_user_order(db, order_ref, user_id)
    if not order:
        raise OrderNotFoundError("Order not found")
    if not order.delivered_at or not order.return_window_expires_at:
        raise ReturnNotAllowedError("Only delivered orders can be returned")
    if now > to_naive_utc(order.return_window_expires_at):
        raise ReturnWindowExpiredError("Return window has expired")
    if not items:
        raise InvalidInputError("Select at least one item to return")
    if return_type == ReturnType.EXCHANGE and not exchange_size:
        raise InvalidInputError("Exchange requests need the new size")

    lines_by_id = {it.id: it for it in order.items}
    request = ReturnRequest(
        request_id=generate_reference("RET", now),
        order_id=order.id,
        user_id=user_id,
        type=return_type.value,
        exchange_size=exchange_size,
        reason=reason,
        status=ReturnStatus.PENDING.value,
    )

    # Validate every claim before touching any order line
    claimed = []
    for claim in items:
        line: Optional[OrderItem] = lines_by_id.get(claim.order_item_id)
        if not line:
            raise InvalidInputError(f"Item {claim.order_item_id} is not part of order {order.order_id}")
        if any(line is seen_line for seen_line, _ in claimed):
            raise InvalidInputError(f"Item {claim.order_item_id} listed twice")
        if line.return_status in OPEN_CLAIM_STATUSES:
            raise DuplicateReturnClaimError(f"Item {line.id} already has an open return request")
        remaining = line.quantity - (line.returned_quantity or 0)
        if remaining <= 0:
            raise DuplicateReturnClaimError(f"Item {line.id} was already returned")
        if claim.quantity < 1 or claim.quantity > remaining:
            raise InvalidInputError(f"Quantity for item {line.id} must be between 1 and {remaining}")
        _parse(ItemCondition, claim.condition, "item condition")
        claimed.append((line, claim))

    refund = ZERO
    gst_reversal = ZERO
    for line, claim in claimed:
        request.items.append(ReturnRequestItem(
            order_item_id=line.id,
            sku=line.sku,
            quantity=claim.quantity,
            reason=claim.reason or reason,
            condition=claim.condition,
        ))
        line.return_status = ItemReturnStatus.REQUESTED.value

        refund += to_decimal(line.price) * claim.quantity
        # Pro-rata share of the line's GST
        gst_reversal += to_decimal(line.gst_amount) * claim.quantity / line.quantity

    request.refund_amount = float(q2(refund))
    request.gst_reversal_amount = float(q2(gst_reversal))
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info("Return %s opened on order %s (%d items)", request.request_id, order.order_id, len(request.items))
    return request


def process_return(
    db: Session,
    return_id: int,
    status: str,
    comments: Optional[str] = None,
    strict: Optional[bool] = None,
) -> ReturnRequest:
    """Admin move of a return request; line markers follow the request."""
    if strict is None:
        strict = settings.RETURN_STRICT_TRANSITIONS
    target = _parse(ReturnStatus, status, "return status")

    request = db.query(ReturnRequest).filter(ReturnRequest.id == return_id).first()
    if not request:
        raise ReturnNotFoundError("Return request not found")

    current = ReturnStatus(request.status)
    if strict and target != current and target not in RETURN_NEXT[current]:
        raise InvalidTransitionError(f"Cannot move return from {current.value} to {target.value}")

    _set_return_status(request, target)
    if comments is not None:
        request.admin_comments = comments
    db.commit()
    db.refresh(request)
    logger.info("Return %s: %s -> %s", request.request_id, current.value, target.value)
    return request


def advance_return(request: ReturnRequest, target: ReturnStatus) -> bool:
    """Carrier-driven move along the pickup leg; never goes backwards."""
    current = ReturnStatus(request.status)
    if current not in RETURN_FLOW or target not in RETURN_FLOW:
        return False
    if RETURN_FLOW.index(target) <= RETURN_FLOW.index(current):
        return False
    _set_return_status(request, target)
    return True


def _line_marker(line: OrderItem, target: ReturnStatus) -> ItemReturnStatus:
    returned = line.returned_quantity or 0
    if returned >= line.quantity:
        return ItemReturnStatus.COMPLETED
    marker = ITEM_STATUS_FOR[target]
    # A closed claim on a line with earlier refunds leaves the rest claimable
    if returned and marker in (ItemReturnStatus.COMPLETED, ItemReturnStatus.REJECTED):
        return ItemReturnStatus.PARTIALLY_RETURNED
    return marker


def _set_return_status(request: ReturnRequest, target: ReturnStatus) -> None:
    previous = request.status
    refunded = ReturnStatus.REFUNDED.value
    request.status = target.value
    for claim in request.items:
        line = claim.order_item
        if line is None:
            continue
        # Returned units are counted once, when the request enters Refunded
        if target.value == refunded and previous != refunded:
            line.returned_quantity = (line.returned_quantity or 0) + claim.quantity
        elif previous == refunded and target.value != refunded:
            line.returned_quantity = max(0, (line.returned_quantity or 0) - claim.quantity)
        line.return_status = _line_marker(line, target).value

    order = request.order
    if target == ReturnStatus.REFUNDED and order is not None:
        if all((it.returned_quantity or 0) >= it.quantity for it in order.items):
            if order.payment_status == PaymentStatus.PAID.value:
                order.payment_status = PaymentStatus.REFUNDED.value


def schedule_pickup(request: ReturnRequest, carrier_response: dict, now: Optional[datetime] = None) -> None:
    if request.status != ReturnStatus.APPROVED.value:
        raise InvalidTransitionError("Only approved returns can be scheduled for pickup")
    request.pickup_shiprocket_order_id = str(
        carrier_response.get("order_id") or carrier_response.get("return_order_id") or ""
    ) or None
    request.pickup_shipment_id = str(carrier_response.get("shipment_id") or "") or None
    request.pickup_date = now or utcnow()
    _set_return_status(request, ReturnStatus.PICKUP_SCHEDULED)
