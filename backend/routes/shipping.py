# backend/routes/shipping.py
import asyncio
import hmac
import json
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy import or_
from sqlalchemy.orm import Session

from database import get_db
from config import settings
from models.order import Order, OrderStatus
from models.users import User
from routes.orders import find_order
from schemas.order import OrderResponse
from schemas.payment import ShippingWebhook, WebhookAck
from schemas.shipping import ShippingLabelOut, TrackingSyncResult
from services import order_status
from services.errors import DomainError, IntegrationError, InvalidInputError, InvalidTransitionError
from services.shipping import build_order_payload
from services.tracking import TRACKED_STATUSES, apply_tracking, unwrap_tracking
from services.webhooks import apply_shipping_webhook
from utils.audit import write_log
from utils.shiprocket_client import shiprocket_client
from utils.tokenJWT import get_current_user, role_required

router = APIRouter(prefix="/shipping", tags=["Shipping"])
logger = logging.getLogger(__name__)

async def create_shipment(db: Session, order: Order) -> Order:
    """Register the order with the carrier and store the carrier references.

    Runs after the order's own transaction has committed; a carrier failure
    leaves the order untouched and the push can be repeated.
    """
    if order.shiprocket_order_id:
        return order
    if order.status in (OrderStatus.CANCELLED.value, OrderStatus.DELIVERED.value):
        raise InvalidTransitionError(f"Order {order.order_id} is {order.status}, nothing to ship")

    payload = build_order_payload(
        db, order,
        email=order.user.email if order.user else "",
        pickup_location=settings.SHIPROCKET_PICKUP_LOCATION,
        phone_fallback=order.user.phone if order.user else None,
    )
    response = await shiprocket_client.create_order(payload)

    order.shiprocket_order_id = str(response.get("order_id")) if response.get("order_id") else None
    order.shipment_id = str(response.get("shipment_id")) if response.get("shipment_id") else None
    if response.get("awb_code") and not order.awb_number:
        order.awb_number = response["awb_code"]
    if response.get("courier_name"):
        order.courier_name = response["courier_name"]
    order_status.advance(order, OrderStatus.PROCESSING)
    db.commit()
    db.refresh(order)
    logger.info("Order %s pushed to carrier as %s", order.order_id, order.shiprocket_order_id)
    return order

# Push an order to the carrier by hand (retry after a failed automatic push)
@router.post("/orders/{order_id}", response_model=OrderResponse)
async def push_order(
    order_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    order = find_order(db, order_id)
    order = await create_shipment(db, order)
    write_log(
        db, user_id=current_user.id, action="SHIPMENT_CREATE", resource="shipping", request=request,
        meta={"order_id": order.order_id, "carrier_order_id": order.shiprocket_order_id},
    )
    return order

async def sync_order_tracking(db: Session, order: Order) -> dict:
    """Poll the carrier for one order and fold the snapshot in; commits on success."""
    if order.shipment_id:
        response = await shiprocket_client.get_tracking(order.shipment_id)
    elif order.awb_number:
        response = await shiprocket_client.get_tracking_by_awb(order.awb_number)
    else:
        raise InvalidInputError(f"Order {order.order_id} has no tracking information yet")

    tracking_data = unwrap_tracking(response, order.shipment_id)
    if not tracking_data:
        return {"order_id": order.order_id, "status": order.status, "changed": False, "latest_status": None}
    result = apply_tracking(order, tracking_data)
    db.commit()
    return result

# Live tracking for one order; the stored history is served when the carrier is down
@router.get("/orders/{order_id}/tracking", response_model=OrderResponse)
async def order_tracking(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = find_order(db, order_id, current_user)
    try:
        await sync_order_tracking(db, order)
    except IntegrationError:
        db.rollback()
        logger.exception("Tracking refresh failed for order %s, serving stored history", order.order_id)
    db.refresh(order)
    return order

# Poll the carrier for every order still on its way
@router.post("/sync", response_model=TrackingSyncResult)
async def sync_tracking(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    orders = (
        db.query(Order)
        .filter(Order.status.in_(TRACKED_STATUSES))
        .filter(or_(Order.shipment_id.isnot(None), Order.awb_number.isnot(None)))
        .order_by(Order.id)
        .all()
    )
    results, synced, errors = [], 0, 0
    for index, order in enumerate(orders):
        if index and settings.SHIPROCKET_SYNC_DELAY_SECONDS:
            # Carrier API is rate limited
            await asyncio.sleep(settings.SHIPROCKET_SYNC_DELAY_SECONDS)
        order_ref = order.order_id
        try:
            results.append(await sync_order_tracking(db, order))
            synced += 1
        except DomainError as e:
            db.rollback()
            logger.exception("Tracking sync failed for order %s", order_ref)
            results.append({"order_id": order_ref, "error": e.message})
            errors += 1

    write_log(
        db, user_id=current_user.id, action="TRACKING_SYNC", resource="shipping", request=request,
        status="SUCCESS" if not errors else "PARTIAL",
        meta={"synced": synced, "errors": errors, "total": len(orders)},
    )
    return TrackingSyncResult(synced=synced, errors=errors, total=len(orders), results=results)

# Printable label for an order already registered with the carrier
@router.post("/orders/{order_id}/label", response_model=ShippingLabelOut)
async def generate_label(
    order_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    order = find_order(db, order_id)
    if not order.shipment_id:
        raise InvalidInputError(f"Order {order.order_id} has no carrier shipment yet")

    response = await shiprocket_client.generate_label([order.shipment_id])
    label_url = response.get("label_url")
    if not label_url:
        raise IntegrationError(response.get("message") or "Carrier did not return a shipping label")

    order.shipping_label_url = label_url
    db.commit()
    write_log(
        db, user_id=current_user.id, action="SHIPPING_LABEL", resource="shipping", request=request,
        meta={"order_id": order.order_id, "label_url": label_url},
    )
    return ShippingLabelOut(order_id=order.order_id, label_url=label_url)

# Assign a courier (AWB) and book the pickup
@router.post("/orders/{order_id}/pickup", response_model=OrderResponse)
async def request_pickup(
    order_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    order = find_order(db, order_id)
    if not order.shipment_id:
        raise InvalidInputError(f"Order {order.order_id} has no carrier shipment yet")

    response = await shiprocket_client.request_pickup(order.shipment_id)
    if response.get("awb_assign_status") != 1:
        raise IntegrationError(response.get("message") or "Carrier could not assign a courier")

    data = (response.get("response") or {}).get("data") or {}
    if data.get("awb_code"):
        order.awb_number = data["awb_code"]
    if data.get("courier_name"):
        order.courier_name = data["courier_name"]
    order_status.advance(order, OrderStatus.PROCESSING)
    db.commit()
    db.refresh(order)
    write_log(
        db, user_id=current_user.id, action="SHIPPING_PICKUP", resource="shipping", request=request,
        meta={"order_id": order.order_id, "awb": order.awb_number, "courier": order.courier_name},
    )
    return order

# Carrier status callback
@router.post("/webhook", response_model=WebhookAck)
async def shipping_webhook(
    request: Request,
    db: Session = Depends(get_db),
    x_api_key: Optional[str] = Header(None, alias="x-api-key"),
):
    token = settings.SHIPROCKET_WEBHOOK_TOKEN
    if not token and settings.ENVIRONMENT != "development":
        logger.error("Shipping webhook rejected: SHIPROCKET_WEBHOOK_TOKEN is not configured")
        raise HTTPException(status_code=403, detail="Webhook token not configured")
    if token and not hmac.compare_digest(x_api_key or "", token):
        logger.warning("Shipping webhook rejected: bad token")
        raise HTTPException(status_code=403, detail="Invalid webhook token")

    body = await request.body()
    try:
        event = ShippingWebhook.model_validate(json.loads(body))
    except ValueError:  # bad JSON or schema mismatch
        logger.warning("Shipping webhook rejected: malformed body %s", body[:500])
        raise HTTPException(status_code=400, detail="Malformed webhook body")

    result = apply_shipping_webhook(
        db, body, event.order_id, event.current_status, awb=event.awb, scans=event.scans,
    )
    write_log(
        db, user_id=None, action="SHIPPING_WEBHOOK", resource="shipping", request=request,
        meta={"carrier_order_id": event.order_id, "current_status": event.current_status, **result},
    )
    return WebhookAck(result=result)
