# backend/models/return_request.py
import enum
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base


class ReturnStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    PICKUP_SCHEDULED = "Pickup_Scheduled"
    RECEIVED = "Received"
    QC_PASS = "QC_Pass"
    QC_FAIL = "QC_Fail"
    REFUNDED = "Refunded"
    REJECTED = "Rejected"


class ReturnType(str, enum.Enum):
    RETURN = "Return"
    EXCHANGE = "Exchange"


class ItemCondition(str, enum.Enum):
    UNOPENED = "Unopened"
    OPENED = "Opened"
    DAMAGED = "Damaged"


# A customer's claim against some lines of a delivered order
class ReturnRequest(Base):
    __tablename__ = "return_requests"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(String, unique=True, nullable=False, index=True)  # e.g. RET-20260101-1A2B3C4D
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)

    type = Column(String, nullable=False, default=ReturnType.RETURN.value)
    exchange_size = Column(String, nullable=True)
    reason = Column(String, nullable=False)
    status = Column(String, nullable=False, default=ReturnStatus.PENDING.value, index=True)

    # Financials
    refund_amount = Column(Float, nullable=False, default=0)
    gst_reversal_amount = Column(Float, nullable=False, default=0)  # for GST reports
    refund_transaction_id = Column(String, nullable=True)

    admin_comments = Column(String, nullable=True)

    # Reverse pickup with the carrier
    pickup_shiprocket_order_id = Column(String, nullable=True, index=True)
    pickup_shipment_id = Column(String, nullable=True)
    pickup_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship("ReturnRequestItem", back_populates="request", cascade="all, delete-orphan")
    order = relationship("Order")


class ReturnRequestItem(Base):
    __tablename__ = "return_request_items"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("return_requests.id"), index=True, nullable=False)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), index=True, nullable=False)
    sku = Column(String, nullable=True)
    quantity = Column(Integer, CheckConstraint("quantity >= 1"), nullable=False)
    reason = Column(String, nullable=False)
    condition = Column(String, nullable=False, default=ItemCondition.OPENED.value)

    request = relationship("ReturnRequest", back_populates="items")
    order_item = relationship("OrderItem")
