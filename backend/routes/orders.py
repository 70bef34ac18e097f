# backend/routes/orders.py
from typing import Optional
from fastapi import APIRouter, Depends, Request, Query, status
from sqlalchemy.orm import Session, selectinload
import logging

from database import get_db
from config import settings
from utils.tokenJWT import get_current_user, is_admin, role_required
from utils.audit import write_log
from utils.shiprocket_client import shiprocket_client
from models.users import User
from models.cart import Cart
from models.order import Order
from schemas.order import (
    OrderResponse, OrdersPage, OrderStatusPatch, OrderCreatePayload, OrderCancelPayload,
)
from services import order_status
from services.checkout import CheckoutLine, lines_from_cart, place_order
from services.errors import IntegrationError, InvalidInputError, OrderNotFoundError

router = APIRouter(prefix="/orders", tags=["Orders"])
logger = logging.getLogger(__name__)

# Accepts either the ORD-... reference or the numeric primary key
def find_order(db: Session, order_ref: str, user: Optional[User] = None) -> Order:
    q = db.query(Order).options(selectinload(Order.items))
    if order_ref.isdigit():
        q = q.filter(Order.id == int(order_ref))
    else:
        q = q.filter(Order.order_id == order_ref)
    order = q.first()
    # Other customers' orders are reported as missing
    if not order or (user is not None and order.user_id != user.id and not is_admin(user)):
        raise OrderNotFoundError("Order not found")
    return order

def _page(q, page: int, page_size: int) -> dict:
    total = q.count()
    rows = q.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": rows, "total": total, "page": page, "page_size": page_size}

# Place an order from explicit lines or, without lines, from the user's cart
@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreatePayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if payload.items:
        lines = [CheckoutLine(product_id=it.product_id, sku=it.sku, quantity=it.quantity) for it in payload.items]
    else:
        cart = db.query(Cart).filter(Cart.user_id == current_user.id).first()
        lines = lines_from_cart(cart)
    if not lines:
        raise InvalidInputError("Cart is empty")

    order = place_order(
        db,
        user_id=current_user.id,
        lines=lines,
        shipping_address=payload.shipping_address.model_dump(by_alias=True, exclude_none=True),
        payment_method=payload.payment_method,
        shipping_fee=payload.shipping_fee,
        coupon_code=payload.coupon_code,
    )

    write_log(
        db, user_id=current_user.id, action="ORDER_CREATE", resource="orders", request=request,
        meta={"order_id": order.order_id, "grand_total": order.grand_total, "coupon": order.applied_coupon_code},
    )
    return order

# List the current user's orders
@router.get("", response_model=OrdersPage)
def list_my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    q = db.query(Order).options(selectinload(Order.items)).filter(
        Order.user_id == current_user.id
    ).order_by(Order.placed_at.desc(), Order.id.desc())
    return _page(q, page, page_size)

# List all orders, optionally by status (Admin only)
@router.get("/admin/all", response_model=OrdersPage)
def list_all_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    q = db.query(Order).options(selectinload(Order.items))
    if status_filter:
        q = q.filter(Order.status == order_status.parse_status(status_filter).value)
    q = q.order_by(Order.placed_at.desc(), Order.id.desc())
    return _page(q, page, page_size)

# Get details of a specific order
@router.get("/{order_id}", response_model=OrderResponse)
def get_order_detail(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return find_order(db, order_id, current_user)

# Customer cancellation; the carrier shipment is withdrawn best effort
@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    request: Request,
    payload: Optional[OrderCancelPayload] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = find_order(db, order_id, current_user)
    reason = (payload.reason if payload else None) or "Cancelled by user"
    order_status.cancel_order(order, reason)
    db.commit()
    db.refresh(order)

    if order.shiprocket_order_id:
        try:
            await shiprocket_client.cancel_orders([order.shiprocket_order_id])
        except IntegrationError:
            # The order stays cancelled locally; the shipment can be withdrawn by hand
            logger.exception("Failed to cancel carrier order %s for %s", order.shiprocket_order_id, order.order_id)

    write_log(
        db, user_id=current_user.id, action="ORDER_CANCEL", resource="orders", request=request,
        meta={"order_id": order.order_id, "reason": reason, "refund_status": order.refund_status},
    )
    return order

# Manually update order and/or payment status (Admin only)
@router.patch("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: str,
    payload: OrderStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    if not payload.status and not payload.payment_status:
        raise InvalidInputError("Nothing to update: provide status or paymentStatus")

    order = find_order(db, order_id)
    old_status, old_payment = order.status, order.payment_status

    # Payment first so a Paid + Delivered patch passes the delivery policy
    if payload.payment_status:
        order_status.apply_payment_status(order, payload.payment_status)
    if payload.status:
        order_status.transition(order, payload.status, return_window_days=settings.RETURN_WINDOW_DAYS)
    db.commit()
    db.refresh(order)

    write_log(
        db, user_id=current_user.id, action="ORDER_STATUS_CHANGE", resource="orders", request=request,
        meta={
            "order_id": order.order_id,
            "old": old_status, "new": order.status,
            "old_payment": old_payment, "new_payment": order.payment_status,
        },
    )
    return order
