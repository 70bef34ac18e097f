# backend/models/product.py
from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, JSON, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base

# Model Product
# A catalog entry. Sellable units live two levels down:
# Product -> ProductVariant (one per colour) -> SkuOption (one per size).
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    slug = Column(String, unique=True, nullable=False, index=True)
    brand = Column(String, index=True)
    gender = Column(String, index=True)
    short_description = Column(String, nullable=True)

    # GST rate applied to every SKU of the product (prices are tax inclusive).
    gst_percentage = Column(Float, CheckConstraint("gst_percentage >= 0"), nullable=False, default=0)

    # Package info used to build the carrier payload.
    package_weight = Column(Float, nullable=True)  # kg per unit
    package_length = Column(Float, nullable=True)  # cm
    package_width = Column(Float, nullable=True)
    package_height = Column(Float, nullable=True)

    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    variants = relationship(
        "ProductVariant", back_populates="product",
        order_by="ProductVariant.position", cascade="all, delete-orphan",
    )


# Colour family of a product, with its own gallery.
class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    color = Column(String, nullable=False)
    color_family = Column(String, index=True)
    color_code = Column(String, nullable=True)
    images = Column(JSON, default=list)  # first image is the thumbnail
    is_default = Column(Boolean, default=False)
    position = Column(Integer, default=0)

    product = relationship("Product", back_populates="variants")
    options = relationship(
        "SkuOption", back_populates="variant",
        order_by="SkuOption.position", cascade="all, delete-orphan",
    )


# A single purchasable size of a colour variant.
class SkuOption(Base):
    __tablename__ = "sku_options"

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), index=True, nullable=False)
    sku = Column(String, unique=True, nullable=False, index=True)
    size = Column(String, nullable=False)

    price = Column(Float, CheckConstraint("price >= 0"), nullable=False)  # selling price, GST inclusive
    mrp = Column(Float, CheckConstraint("mrp >= 0"), nullable=False)

    # Only ever changed through services.catalog.conditional_decrement_stock
    stock = Column(Integer, CheckConstraint("stock >= 0"), nullable=False, default=0)

    weight = Column(String, nullable=True)
    position = Column(Integer, default=0)

    variant = relationship("ProductVariant", back_populates="options")
