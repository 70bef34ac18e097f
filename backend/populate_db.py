import os
import random
import sys
from datetime import timedelta

# Add 'backend' folder to Python path
sys.path.append(os.path.abspath(os.path.dirname(__file__)))

# Database models and setup
from database import SessionLocal, init_db
from models.offer import Offer, DiscountType
from models.product import Product, ProductVariant, SkuOption
from models.users import User
from utils.timeutils import utcnow

# Configuration
ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@example.com")
OFFER_DAYS = 30  # Validity of seeded offers

# (name, brand, gender, gst %, colour, sku prefix, price, mrp, sizes)
CATALOG = [
    ("Black Oversized T-shirt for Men", "Urban Thread", "Men", 5, "Black", "BLK", 499, 899, ["S", "M", "L", "XL"]),
    ("Banarasi Silk Saree", "Kashi Looms", "Women", 12, "Red", "SAR-RED", 3999, 7999, ["Free Size"]),
    ("Floral Maxi Dress", "Bloom", "Women", 12, "Green", "DRS-GRN", 1499, 2999, ["S", "M", "L"]),
    ("Classic Checkered Shirt", "Urban Thread", "Men", 12, "Navy Blue", "SHIRT-NVY", 899, 1499, ["M", "L"]),
    ("Urban Grey Hoodie", "Urban Thread", "Men", 12, "Grey", "HOOD-GRY", 1299, 2499, ["M", "L", "XL"]),
]

OFFERS = [
    ("FIRST50", "Get Flat ₹50 Off on your first order", DiscountType.FLAT, 50, None, 500, 1000),
    ("SAVE100", "Get Flat ₹100 Off", DiscountType.FLAT, 100, None, 1000, 500),
    ("WELCOME20", "20% Off for New Customers", DiscountType.PERCENTAGE, 20, 200, 0, None),
]
# End Configuration


def _slug(name: str) -> str:
    return "-".join(name.lower().split())


def seed_catalog(session):
    """Inserts the demo catalog; existing slugs are left alone."""
    created = 0
    for name, brand, gender, gst, color, prefix, price, mrp, sizes in CATALOG:
        if session.query(Product).filter(Product.slug == _slug(name)).first():
            continue
        product = Product(
            name=name, slug=_slug(name), brand=brand, gender=gender,
            gst_percentage=gst, package_weight=0.4, package_length=30, package_width=25, package_height=3,
        )
        variant = ProductVariant(
            color=color, color_family=color.split()[-1],
            images=[f"https://picsum.photos/seed/{prefix.lower()}/600/800"], is_default=True,
        )
        for position, size in enumerate(sizes):
            sku = f"{prefix}-{size.split()[0].upper()}"
            variant.options.append(SkuOption(
                sku=sku, size=size, price=price, mrp=mrp, stock=random.randint(20, 100), position=position,
            ))
        product.variants.append(variant)
        session.add(product)
        created += 1
    return created


def seed_offers(session):
    now = utcnow()
    created = 0
    for code, title, discount_type, value, max_discount, min_order, limit in OFFERS:
        if session.query(Offer).filter(Offer.code == code).first():
            continue
        session.add(Offer(
            code=code, title=title, type=discount_type.value, value=value, max_discount=max_discount,
            min_order_value=min_order, start_date=now, end_date=now + timedelta(days=OFFER_DAYS),
            is_active=True, usage_limit=limit, usage_count=0,
        ))
        created += 1
    return created


def load_all_data():
    init_db()
    session = SessionLocal()
    try:
        if not session.query(User).filter(User.email == ADMIN_EMAIL).first():
            session.add(User(email=ADMIN_EMAIL, role="admin", first_name="Store", last_name="Admin"))
        products = seed_catalog(session)
        offers = seed_offers(session)
        session.commit()
        print(f"Seeded {products} products and {offers} offers.")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    load_all_data()
