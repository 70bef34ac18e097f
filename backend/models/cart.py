# backend/models/cart.py
from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Float, UniqueConstraint, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base

# Represents the user's shopping cart (at most one per user)
class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    items = relationship(
        "CartItem", back_populates="cart",
        order_by="CartItem.id", cascade="all, delete-orphan",
    )

    # Derived on every read; checkout re-prices from the catalog instead.
    @property
    def total_price(self) -> float:
        return round(sum(it.price * it.quantity for it in self.items), 2)


# A single SKU (product + size + colour) and quantity within a cart
class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    sku = Column(String, nullable=False)
    size = Column(String, nullable=False)
    color = Column(String, nullable=False)
    quantity = Column(Integer, CheckConstraint("quantity >= 1"), nullable=False, default=1)
    price = Column(Float, nullable=False) # Unit price at the moment of addition

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        # One line per SKU in the same cart
        UniqueConstraint("cart_id", "sku", name="uq_cartitem_cart_sku"),
    )
