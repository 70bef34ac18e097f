# backend/models/order.py
import enum
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, JSON, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base


# Fulfilment axis
class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


# Payment axis, updated by gateway callbacks independently of fulfilment
class PaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class PaymentMethod(str, enum.Enum):
    COD = "COD"
    ONLINE = "Online"


# Per-line return marker; with returned_quantity, the only fields of an order line that change after checkout
class ItemReturnStatus(str, enum.Enum):
    NONE = "None"
    REQUESTED = "Requested"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PARTIALLY_RETURNED = "Partially_Returned"
    COMPLETED = "Completed"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String, unique=True, nullable=False, index=True)  # e.g. ORD-20260101-1A2B3C4D
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)

    # Financials, all rounded to 2 decimals
    sub_total = Column(Float, nullable=False)  # pre-tax
    tax_total = Column(Float, nullable=False)
    cgst_total = Column(Float, nullable=False, default=0)
    sgst_total = Column(Float, nullable=False, default=0)
    shipping_fee = Column(Float, CheckConstraint("shipping_fee >= 0"), nullable=False, default=0)
    discount_total = Column(Float, nullable=False, default=0)
    grand_total = Column(Float, nullable=False)  # payable

    # Coupon snapshot, frozen at checkout
    applied_coupon_code = Column(String, nullable=True)
    applied_coupon_discount = Column(Float, nullable=True)

    # Payment
    payment_method = Column(String, nullable=False, default=PaymentMethod.ONLINE.value)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value, index=True)
    payment_session_id = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True)
    payment_gateway_details = Column(JSON, nullable=True)

    # Fulfilment
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value, index=True)
    shipping_address = Column(JSON, nullable=True)
    cancellation_reason = Column(String, nullable=True)

    # Carrier tracking
    shiprocket_order_id = Column(String, nullable=True, index=True)
    shipment_id = Column(String, nullable=True)
    awb_number = Column(String, nullable=True)
    courier_name = Column(String, nullable=True)
    shiprocket_status = Column(String, nullable=True)
    tracking_history = Column(JSON, nullable=True)
    tracking_url = Column(String, nullable=True)
    current_location = Column(String, nullable=True)
    estimated_delivery_date = Column(DateTime(timezone=True), nullable=True)
    last_tracking_sync = Column(DateTime(timezone=True), nullable=True)
    shipping_label_url = Column(String, nullable=True)

    # Refunds
    refund_status = Column(String, nullable=False, default="None")
    refund_id = Column(String, nullable=True)
    refund_amount = Column(Float, nullable=True)
    refund_date = Column(DateTime(timezone=True), nullable=True)

    # Lifecycle timestamps
    placed_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    return_window_expires_at = Column(DateTime(timezone=True), nullable=True)  # set on delivery
    last_status_update = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id", cascade="all, delete-orphan")
    user = relationship("User")


# Snapshot of one checkout line. Name, price and tax are copied, not referenced,
# so later catalog edits never alter historical orders.
class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    sku = Column(String, nullable=False)
    name = Column(String, nullable=False)
    size = Column(String, nullable=False)
    color = Column(String, nullable=True)
    image = Column(String, nullable=True)
    quantity = Column(Integer, CheckConstraint("quantity >= 1"), nullable=False)
    price = Column(Float, nullable=False)  # unit price at purchase, GST inclusive
    gst_percentage = Column(Float, nullable=False)
    # gst_amount and taxable_value are rounded per line; only the cgst/sgst halves keep full precision
    gst_amount = Column(Float, nullable=False)
    taxable_value = Column(Float, nullable=False)
    cgst = Column(Float, nullable=False)
    sgst = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)  # price * quantity
    return_status = Column(String, nullable=False, default=ItemReturnStatus.NONE.value)
    returned_quantity = Column(Integer, CheckConstraint("returned_quantity >= 0"), nullable=False, default=0)  # units refunded so far

    order = relationship("Order", back_populates="items")
