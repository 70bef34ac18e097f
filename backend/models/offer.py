# backend/models/offer.py
import enum
from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base


class DiscountType(str, enum.Enum):
    FLAT = "FLAT"
    PERCENTAGE = "PERCENTAGE"


# A coupon code with its discount rule and validity window
class Offer(Base):
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False, index=True)  # stored uppercase
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)

    # Discount rule
    type = Column(String, nullable=False)  # DiscountType value
    value = Column(Float, CheckConstraint("value >= 0"), nullable=False)
    max_discount = Column(Float, nullable=True)  # cap for PERCENTAGE offers
    min_order_value = Column(Float, nullable=False, default=0)

    # Scheduling
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)
    is_active = Column(Boolean, default=True, index=True)

    # Usage accounting, incremented only when an order is placed
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)

    deleted_at = Column(DateTime(timezone=True), nullable=True)  # soft delete
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    usages = relationship("OfferUsage", back_populates="offer", cascade="all, delete-orphan")


# One consumed use of an offer
class OfferUsage(Base):
    __tablename__ = "offer_usages"

    id = Column(Integer, primary_key=True, index=True)
    offer_id = Column(Integer, ForeignKey("offers.id"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=False)

    offer = relationship("Offer", back_populates="usages")
