# backend/routes/payments.py
import base64
import hashlib
import hmac
import json
import logging
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from database import get_db
from config import settings
from models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from models.users import User
from routes.cart import empty_cart
from routes.orders import find_order
from routes.shipping import create_shipment
from schemas.order import OrderResponse
from schemas.payment import (
    PaymentOrderRequest, PaymentSessionResponse, PaymentWebhook, RefundRequest, WebhookAck,
)
from services import order_status
from services.errors import DomainError, InvalidInputError, InvalidTransitionError
from services.webhooks import apply_payment_webhook
from utils.audit import write_log
from utils.cashfree_client import cashfree_client
from utils.timeutils import utcnow
from utils.tokenJWT import get_current_user, role_required

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = logging.getLogger(__name__)

def verify_cashfree_signature(signature: str, timestamp: str, request_body: bytes) -> bool:
    """Verifies the signature of a notification from Cashfree."""
    message = timestamp.encode("utf-8") + request_body
    digest = hmac.new(settings.CASHFREE_SECRET_KEY.encode("utf-8"), message, hashlib.sha256).digest()
    expected_signature = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected_signature, signature)

async def _ship_after_commit(db: Session, order: Order) -> None:
    # The order is already committed; a carrier failure is retried from /shipping/orders/{id}
    try:
        await create_shipment(db, order)
    except DomainError:
        db.rollback()
        logger.exception("Automatic carrier push failed for order %s", order.order_id)

# Open a gateway payment session for an online order
@router.post("/create-order", response_model=PaymentSessionResponse)
async def create_payment_order(
    payload: PaymentOrderRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = find_order(db, payload.order_id, current_user)
    if order.payment_method != PaymentMethod.ONLINE.value:
        raise InvalidInputError("Order is not an online payment order")
    retryable = (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value)
    if order.payment_status not in retryable or order.status == OrderStatus.CANCELLED.value:
        raise InvalidTransitionError(f"Order {order.order_id} is not awaiting payment")
    # A failed attempt is retried on the same order
    if order.payment_status == PaymentStatus.FAILED.value:
        order_status.apply_payment_status(order, PaymentStatus.PENDING)

    address = order.shipping_address or {}
    customer = {
        "customer_id": str(current_user.id),
        "customer_email": current_user.email,
        "customer_phone": address.get("phone") or current_user.phone or "9999999999",
        "customer_name": " ".join(p for p in (address.get("firstName"), address.get("lastName")) if p),
    }
    if order.payment_session_id:
        response = await cashfree_client.get_order(order.order_id)
    else:
        response = await cashfree_client.create_order(order.order_id, order.grand_total, customer)

    order.payment_session_id = response.get("payment_session_id")
    order.payment_gateway_details = {"cf_order_id": response.get("cf_order_id")}
    db.commit()

    write_log(db, user_id=current_user.id, action="PAYMENT_SESSION", resource="payments", request=request,
              meta={"order_id": order.order_id, "amount": order.grand_total})
    return PaymentSessionResponse(order_id=order.order_id, payment_session_id=order.payment_session_id)

# Client-side return from the gateway: ask the gateway what actually happened
@router.post("/verify", response_model=OrderResponse)
async def verify_payment(
    payload: PaymentOrderRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = find_order(db, payload.order_id, current_user)
    transactions = await cashfree_client.fetch_payments(order.order_id)

    success = next((t for t in transactions if t.get("payment_status") == "SUCCESS"), None)
    if success:
        order_status.apply_payment_status(order, PaymentStatus.PAID)
        order.transaction_id = str(success.get("cf_payment_id") or "") or None
        order.payment_gateway_details = success
        empty_cart(db, current_user.id)
    elif transactions and all(t.get("payment_status") in ("FAILED", "USER_DROPPED", "CANCELLED") for t in transactions):
        order_status.apply_payment_status(order, PaymentStatus.FAILED)
    db.commit()
    db.refresh(order)

    write_log(db, user_id=current_user.id, action="PAYMENT_VERIFY", resource="payments", request=request,
              status="SUCCESS" if success else "FAILED",
              meta={"order_id": order.order_id, "payment_status": order.payment_status})

    if order.payment_status == PaymentStatus.PAID.value:
        await _ship_after_commit(db, order)
    return order

# Cash on delivery: confirm without a gateway round trip
@router.post("/cod", response_model=OrderResponse)
async def confirm_cod(
    payload: PaymentOrderRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = find_order(db, payload.order_id, current_user)
    if order.payment_method != PaymentMethod.COD.value:
        raise InvalidInputError("Order is not a cash on delivery order")

    order_status.transition(order, OrderStatus.CONFIRMED)
    empty_cart(db, current_user.id)
    db.commit()
    db.refresh(order)

    write_log(db, user_id=current_user.id, action="PAYMENT_COD", resource="payments", request=request,
              meta={"order_id": order.order_id})
    await _ship_after_commit(db, order)
    return order

# Gateway server-to-server notification
@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    x_webhook_signature: str = Header(None, alias="x-webhook-signature"),
    x_webhook_timestamp: str = Header(None, alias="x-webhook-timestamp"),
):
    if x_webhook_signature is None or x_webhook_timestamp is None:
        raise HTTPException(status_code=400, detail="Missing webhook signature headers")

    body = await request.body()
    if not verify_cashfree_signature(x_webhook_signature, x_webhook_timestamp, body):
        logger.warning("Payment webhook signature verification failed")
        raise HTTPException(status_code=403, detail="Signature verification failed")

    try:
        event = PaymentWebhook.model_validate(json.loads(body))
    except ValueError:  # bad JSON or schema mismatch
        logger.warning("Payment webhook rejected: malformed body %s", body[:500])
        raise HTTPException(status_code=400, detail="Malformed webhook body")

    order_ref, status, details = event.resolved()
    if not order_ref:
        raise InvalidInputError("Webhook carries no order reference")

    result = apply_payment_webhook(db, body, event.type, order_ref, status, details=details)
    write_log(db, user_id=None, action="PAYMENT_WEBHOOK", resource="payments", request=request,
              meta={"type": event.type, "status": status, **result})
    return WebhookAck(result=result)

# Issue a refund through the gateway; the Refunded status arrives by webhook
@router.post("/refund", response_model=OrderResponse)
async def refund_payment(
    payload: RefundRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    order = find_order(db, payload.order_id)
    if order.payment_status != PaymentStatus.PAID.value:
        raise InvalidTransitionError(f"Order {order.order_id} is not paid, nothing to refund")

    amount = payload.amount or order.refund_amount or order.grand_total
    if amount > order.grand_total:
        raise InvalidInputError(f"Refund cannot exceed the order total {order.grand_total}")

    now = utcnow()
    refund_id = f"RF-{order.order_id}-{now:%Y%m%d%H%M%S}"
    response = await cashfree_client.create_refund(
        order.order_id, amount, refund_id, payload.note or f"Refund for order {order.order_id}",
    )

    order.refund_id = response.get("refund_id") or refund_id
    order.refund_amount = amount
    order.refund_status = response.get("refund_status") or "Pending"
    order.refund_date = now
    db.commit()
    db.refresh(order)

    write_log(db, user_id=current_user.id, action="PAYMENT_REFUND", resource="payments", request=request,
              meta={"order_id": order.order_id, "refund_id": order.refund_id, "amount": amount})
    return order
