# backend/services/webhooks.py
import hashlib
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.order import Order, PaymentStatus
from models.return_request import ReturnRequest, ReturnStatus
from models.webhook_event import WebhookEvent
from services import order_status
from services.errors import OrderNotFoundError
from services.returns import advance_return
from utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# Gateway payment outcome -> payment axis
PAYMENT_STATUS_MAP = {
    "SUCCESS": PaymentStatus.PAID,
    "PAID": PaymentStatus.PAID,
    "FAILED": PaymentStatus.FAILED,
    "USER_DROPPED": PaymentStatus.FAILED,
    "CANCELLED": PaymentStatus.FAILED,
    "VOID": PaymentStatus.FAILED,
}

# Carrier status text on a reverse-pickup order -> return request
RETURN_PICKUP_MAP = {
    "pickup scheduled": ReturnStatus.PICKUP_SCHEDULED,
    "picked up": ReturnStatus.PICKUP_SCHEDULED,
    "shipped": ReturnStatus.PICKUP_SCHEDULED,
    "in transit": ReturnStatus.PICKUP_SCHEDULED,
    "delivered": ReturnStatus.RECEIVED,
}


def body_digest(raw_body: bytes) -> str:
    return hashlib.sha256(raw_body).hexdigest()


def claim_delivery(db: Session, source: str, raw_body: bytes, reference: Optional[str]) -> bool:
    """Remember a webhook body. False means the exact body was seen before.

    The row is flushed inside the caller's transaction, so a delivery whose
    processing fails is not remembered and a retry is processed again.
    """
    digest = body_digest(raw_body)
    exists = db.query(WebhookEvent.id).filter(
        WebhookEvent.source == source, WebhookEvent.digest == digest
    ).first()
    if exists:
        return False
    db.add(WebhookEvent(source=source, digest=digest, reference=reference))
    try:
        db.flush()
    except IntegrityError:
        # A concurrent delivery of the same body won the insert
        db.rollback()
        return False
    return True


def map_payment_event(event_type: Optional[str], status: Optional[str]) -> Optional[PaymentStatus]:
    event_type = (event_type or "").upper()
    status = (status or "").upper()
    if "REFUND" in event_type:
        return PaymentStatus.REFUNDED if status == "SUCCESS" else None
    return PAYMENT_STATUS_MAP.get(status)


def apply_payment_webhook(
    db: Session,
    raw_body: bytes,
    event_type: Optional[str],
    order_ref: str,
    status: Optional[str],
    details: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Map a gateway callback onto the order's payment status.

    Replays are dropped by body fingerprint, and apply_payment_status is a
    no-op for an outcome already recorded, so duplicates never double-apply.
    """
    now = now or utcnow()
    order = db.query(Order).filter(Order.order_id == order_ref).first()
    if not order:
        raise OrderNotFoundError(f"Order {order_ref} not found")

    if not claim_delivery(db, "cashfree", raw_body, order_ref):
        logger.info("Duplicate payment webhook for order %s ignored", order_ref)
        db.rollback()
        return {"order_id": order.order_id, "payment_status": order.payment_status, "duplicate": True, "changed": False}

    target = map_payment_event(event_type, status)
    changed = False
    if target is None:
        logger.info("Payment webhook %s/%s for order %s needs no action", event_type, status, order_ref)
    else:
        changed = order_status.apply_payment_status(order, target, now)
        if changed and details:
            order.payment_gateway_details = details
            order.transaction_id = str(details.get("cf_payment_id") or order.transaction_id or "") or None
    db.commit()
    db.refresh(order)
    return {"order_id": order.order_id, "payment_status": order.payment_status, "duplicate": False, "changed": changed}


def append_scans(order: Order, scans: List[Dict[str, Any]]) -> None:
    if not scans:
        return
    history = list(order.tracking_history or [])
    known = {(s.get("date"), s.get("status"), s.get("location")) for s in history}
    for scan in scans:
        entry = {
            "date": scan.get("date"),
            "status": scan.get("sr-status-label") or scan.get("status") or scan.get("activity"),
            "location": scan.get("location"),
            "activity": scan.get("activity"),
        }
        key = (entry["date"], entry["status"], entry["location"])
        if key not in known:
            known.add(key)
            history.append(entry)
    # Reassign so the JSON column is marked dirty
    order.tracking_history = history


def apply_shipping_webhook(
    db: Session,
    raw_body: bytes,
    carrier_order_id: str,
    current_status: Optional[str],
    awb: Optional[str] = None,
    scans: Optional[List[Dict[str, Any]]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Feed a carrier status update into the order (or reverse pickup) state machine.

    Updates are monotonic: a late "shipped" after "delivered" is ignored.
    """
    now = now or utcnow()
    carrier_order_id = str(carrier_order_id)

    pickup = db.query(ReturnRequest).filter(ReturnRequest.pickup_shiprocket_order_id == carrier_order_id).first()
    if pickup:
        target = RETURN_PICKUP_MAP.get((current_status or "").strip().lower())
        changed = advance_return(pickup, target) if target else False
        db.commit()
        return {"return_id": pickup.request_id, "status": pickup.status, "changed": changed}

    order = db.query(Order).filter(Order.shiprocket_order_id == carrier_order_id).first()
    if not order:
        raise OrderNotFoundError(f"Order not found for carrier order {carrier_order_id}")

    duplicate = not claim_delivery(db, "shiprocket", raw_body, carrier_order_id)
    if duplicate:
        logger.info("Duplicate shipping webhook for carrier order %s ignored", carrier_order_id)
        db.rollback()
        return {"order_id": order.order_id, "status": order.status, "duplicate": True, "changed": False}

    target = order_status.map_carrier_status(current_status)
    changed = order_status.advance(order, target, now) if target else False

    order.shiprocket_status = current_status
    order.last_status_update = now
    if awb and not order.awb_number:
        order.awb_number = awb
    append_scans(order, scans or [])

    db.commit()
    db.refresh(order)
    return {"order_id": order.order_id, "status": order.status, "duplicate": False, "changed": changed}
