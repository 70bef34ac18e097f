# backend/services/catalog.py
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from models.product import Product, ProductVariant, SkuOption


def find_product_by_id(db: Session, product_id: int) -> Optional[Product]:
    return db.query(Product).filter(Product.id == product_id, Product.is_active == True).first()  # noqa: E712


def find_sku_in_product(db: Session, product: Product, sku: str) -> Optional[SkuOption]:
    # Only SKUs that hang off this product's own variants count
    return (
        db.query(SkuOption)
        .join(ProductVariant, SkuOption.variant_id == ProductVariant.id)
        .filter(ProductVariant.product_id == product.id, SkuOption.sku == sku)
        .first()
    )


def find_sku(db: Session, sku: str) -> Optional[SkuOption]:
    return db.query(SkuOption).filter(SkuOption.sku == sku).first()


def conditional_decrement_stock(db: Session, option_id: int, quantity: int) -> bool:
    """Take `quantity` units off one SKU if, and only if, that many are left.

    The availability check lives in the WHERE clause of the UPDATE, so the
    database serialises competing checkouts on the row and stock can never
    go below zero, whichever process or server instance issued them.
    """
    result = db.execute(
        update(SkuOption)
        .where(SkuOption.id == option_id, SkuOption.stock >= quantity)
        .values(stock=SkuOption.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
