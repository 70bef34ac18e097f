# backend/services/shipping.py
"""Carrier payloads built from the order snapshot."""
import re
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from models.order import Order, PaymentMethod
from models.product import Product
from models.return_request import ReturnRequest
from services.errors import InvalidInputError

DEFAULT_WEIGHT_KG = 0.5
DEFAULT_DIMENSIONS_CM = (25, 20, 5)
MIN_DIMENSIONS_CM = (10, 10, 2)
HSN_CODE = 441122


def _address_line1(addr: Dict[str, Any]) -> str:
    parts = [addr.get("addressLine1"), addr.get("buildingName"), addr.get("landmark"), addr.get("locality")]
    parts = [p for p in parts if p]
    return ", ".join(parts) if parts else "Address Details Not Provided"


def _phone(addr: Dict[str, Any], fallback: Optional[str]) -> str:
    return addr.get("phone") or addr.get("mobileNo") or fallback or ""


def validate_address(addr: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    addr = addr or {}
    if not addr.get("firstName") or not addr.get("pincode"):
        raise InvalidInputError("Incomplete shipping address information. Required: firstName, pincode")
    if not re.fullmatch(r"\d{6}", str(addr["pincode"])):
        raise InvalidInputError("Invalid pincode format. Must be 6 digits.")
    return addr


def package_dimensions(db: Session, order: Order) -> Dict[str, float]:
    """Weight adds up per unit, length/width take the largest item, heights stack."""
    weight = 0.0
    length = width = height = 0.0
    product_ids = {it.product_id for it in order.items}
    products = {p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()}

    for item in order.items:
        product = products.get(item.product_id)
        if not product:
            continue
        if product.package_weight:
            weight += product.package_weight * item.quantity
        length = max(length, product.package_length or 0)
        width = max(width, product.package_width or 0)
        height += (product.package_height or 0) * item.quantity

    if weight == 0:
        weight = DEFAULT_WEIGHT_KG
    if not (length and width and height):
        length = length or DEFAULT_DIMENSIONS_CM[0]
        width = width or DEFAULT_DIMENSIONS_CM[1]
        height = height or DEFAULT_DIMENSIONS_CM[2]

    return {
        "length": round(max(length, MIN_DIMENSIONS_CM[0])),
        "breadth": round(max(width, MIN_DIMENSIONS_CM[1])),
        "height": round(max(height, MIN_DIMENSIONS_CM[2])),
        "weight": round(weight, 3),
    }


def _order_items(items: Iterable) -> list:
    return [{
        "name": it.name,
        "sku": it.sku,
        "units": it.quantity,
        "selling_price": it.price,
        "discount": "",
        "tax": it.gst_percentage,
        "hsn": HSN_CODE,
    } for it in items]


def build_order_payload(db: Session, order: Order, email: str, pickup_location: str,
                        phone_fallback: Optional[str] = None) -> Dict[str, Any]:
    addr = validate_address(order.shipping_address)
    payload = {
        "order_id": order.order_id,
        "order_date": order.placed_at.strftime("%Y-%m-%d"),
        "pickup_location": pickup_location,
        "billing_customer_name": addr["firstName"],
        "billing_last_name": addr.get("lastName") or addr["firstName"],
        "billing_address": _address_line1(addr),
        "billing_address_2": addr.get("addressLine2") or "",
        "billing_city": addr.get("city"),
        "billing_pincode": addr["pincode"],
        "billing_state": addr.get("state"),
        "billing_country": "India",
        "billing_email": email,
        "billing_phone": _phone(addr, phone_fallback),
        "shipping_is_billing": True,
        "order_items": _order_items(order.items),
        "payment_method": "COD" if order.payment_method == PaymentMethod.COD.value else "Prepaid",
        "shipping_charges": order.shipping_fee or 0,
        "giftwrap_charges": 0,
        "transaction_charges": 0,
        "total_discount": order.discount_total or 0,
        "sub_total": round(order.sub_total + order.tax_total, 2),
    }
    payload.update(package_dimensions(db, order))
    return payload


def build_return_payload(db: Session, request: ReturnRequest, order: Order, email: str,
                         pickup_location: str) -> Dict[str, Any]:
    addr = validate_address(order.shipping_address)
    lines = [claim.order_item for claim in request.items]
    units = {claim.order_item_id: claim.quantity for claim in request.items}
    order_items = _order_items(lines)
    for entry, line in zip(order_items, lines):
        entry["units"] = units[line.id]

    payload = {
        "order_id": request.request_id,
        "order_date": order.placed_at.strftime("%Y-%m-%d"),
        "pickup_customer_name": addr["firstName"],
        "pickup_last_name": addr.get("lastName") or "",
        "pickup_address": _address_line1(addr),
        "pickup_address_2": addr.get("addressLine2") or "",
        "pickup_city": addr.get("city"),
        "pickup_state": addr.get("state"),
        "pickup_country": "India",
        "pickup_pincode": addr["pincode"],
        "pickup_email": email,
        "pickup_phone": _phone(addr, None),
        "shipping_customer_name": pickup_location,
        "order_items": order_items,
        "payment_method": "PREPAID",
        "sub_total": request.refund_amount,
    }
    payload.update(package_dimensions(db, order))
    return payload
