from pydantic import Field
from typing import List, Literal, Optional
from datetime import datetime

from schemas.base import APIModel


class ShippingAddress(APIModel):
    first_name: str
    last_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    building_name: Optional[str] = None
    landmark: Optional[str] = None
    locality: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: str = Field(pattern=r"^\d{6}$")
    phone: Optional[str] = None


# One checkout line: which SKU of which product, and how many
class OrderLineIn(APIModel):
    product_id: int
    sku: str
    quantity: int = Field(ge=1)


# Input schema for placing an order. Without items the user's cart is checked out.
class OrderCreatePayload(APIModel):
    items: Optional[List[OrderLineIn]] = None
    shipping_address: ShippingAddress
    payment_method: Literal["COD", "Online"]
    shipping_fee: float = Field(default=0, ge=0)
    coupon_code: Optional[str] = None


# Output schema for an individual order line snapshot
class OrderItemOut(APIModel):
    id: int
    product_id: int
    sku: str
    name: str
    size: str
    color: Optional[str] = None
    image: Optional[str] = None
    quantity: int
    price: float
    gst_percentage: float
    gst_amount: float
    taxable_value: float
    cgst: float
    sgst: float
    total_price: float
    return_status: str
    returned_quantity: int = 0


# Output schema representing the full order details
class OrderResponse(APIModel):
    id: int
    order_id: str
    user_id: int
    items: List[OrderItemOut]
    sub_total: float
    tax_total: float
    cgst_total: float
    sgst_total: float
    shipping_fee: float
    discount_total: float
    grand_total: float
    applied_coupon_code: Optional[str] = None
    applied_coupon_discount: Optional[float] = None
    payment_method: str
    payment_status: str
    status: str
    shipping_address: Optional[dict] = None
    cancellation_reason: Optional[str] = None
    shiprocket_order_id: Optional[str] = None
    shipment_id: Optional[str] = None
    awb_number: Optional[str] = None
    shiprocket_status: Optional[str] = None
    courier_name: Optional[str] = None
    tracking_history: Optional[list] = None
    tracking_url: Optional[str] = None
    current_location: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    last_tracking_sync: Optional[datetime] = None
    shipping_label_url: Optional[str] = None
    refund_status: Optional[str] = None
    refund_amount: Optional[float] = None
    placed_at: datetime
    confirmed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    return_window_expires_at: Optional[datetime] = None


# Schema for paginated order lists
class OrdersPage(APIModel):
    items: List[OrderResponse]
    total: int
    page: int
    page_size: int


# Schema for the admin status update
class OrderStatusPatch(APIModel):
    status: Optional[str] = None
    payment_status: Optional[str] = None


class OrderCancelPayload(APIModel):
    reason: Optional[str] = None
