import os

# Keep the app's own engine off the filesystem; tests bind their own below
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, get_db
from main import app
from models.offer import Offer
from models.product import Product, ProductVariant, SkuOption
from models.users import User
from utils.shiprocket_client import shiprocket_client
from utils.cashfree_client import cashfree_client
from utils.timeutils import utcnow
from utils.tokenJWT import create_access_token


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    u = User(email="customer@example.com", role="customer", first_name="Asha", last_name="Rao", phone="9876543210")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def admin(db):
    u = User(email="admin@example.com", role="admin", first_name="Store", last_name="Admin")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def auth_headers(u):
    return {"Authorization": f"Bearer {create_access_token({'sub': u.email})}"}


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def product(db):
    p = Product(
        name="Classic Tee", slug="classic-tee", brand="Urban Thread", gender="Men",
        gst_percentage=12, package_weight=0.3, package_length=30, package_width=25, package_height=2,
    )
    variant = ProductVariant(color="Black", color_family="Black", images=["https://img.example/tee.jpg"], is_default=True)
    variant.options.append(SkuOption(sku="ABC-M", size="M", price=500, mrp=800, stock=5, position=0))
    variant.options.append(SkuOption(sku="ABC-L", size="L", price=500, mrp=800, stock=1, position=1))
    p.variants.append(variant)
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@pytest.fixture
def offer_factory(db):
    def make(code="SAVE10", type="PERCENTAGE", value=10, max_discount=80, min_order_value=0,
             usage_limit=None, usage_count=0, start=None, end=None, is_active=True):
        now = utcnow()
        o = Offer(
            code=code, title=f"{code} offer", type=type, value=value, max_discount=max_discount,
            min_order_value=min_order_value, start_date=start or now - timedelta(days=1),
            end_date=end or now + timedelta(days=30), is_active=is_active,
            usage_limit=usage_limit, usage_count=usage_count,
        )
        db.add(o)
        db.commit()
        db.refresh(o)
        return o
    return make


@pytest.fixture
def address():
    return {
        "firstName": "Asha", "lastName": "Rao", "addressLine1": "12 MG Road",
        "city": "Bengaluru", "state": "Karnataka", "pincode": "560001", "phone": "9876543210",
    }


@pytest.fixture(autouse=True)
def carrier(monkeypatch):
    """Records carrier calls instead of reaching Shiprocket."""
    calls = {
        "orders": [], "returns": [], "cancels": [],
        # Canned responses; tests replace these to steer the carrier
        "tracking": {}, "label": {"label_created": 1, "label_url": "https://labels.example/1.pdf"},
        "pickup": {"awb_assign_status": 1, "response": {"data": {"awb_code": "AWB123", "courier_name": "Delhivery"}}},
        "tracked": [], "labels": [], "pickups": [],
    }

    async def create_order(payload):
        calls["orders"].append(payload)
        return {"order_id": 9000 + len(calls["orders"]), "shipment_id": 8000 + len(calls["orders"])}

    async def create_return_order(payload):
        calls["returns"].append(payload)
        return {"order_id": 7000 + len(calls["returns"]), "shipment_id": 6000 + len(calls["returns"])}

    async def cancel_orders(ids):
        calls["cancels"].append(ids)
        return {"message": "cancelled"}

    monkeypatch.setattr(shiprocket_client, "create_order", create_order)
    monkeypatch.setattr(shiprocket_client, "create_return_order", create_return_order)
    async def get_tracking(shipment_id):
        calls["tracked"].append(str(shipment_id))
        tracking = calls["tracking"].get(str(shipment_id))
        if isinstance(tracking, Exception):
            raise tracking
        return {str(shipment_id): {"tracking_data": tracking or {}}}

    async def get_tracking_by_awb(awb):
        calls["tracked"].append(awb)
        return {"tracking_data": calls["tracking"].get(awb) or {}}

    async def generate_label(shipment_ids):
        calls["labels"].append(shipment_ids)
        return calls["label"]

    async def request_pickup(shipment_id):
        calls["pickups"].append(shipment_id)
        return calls["pickup"]

    monkeypatch.setattr(settings, "SHIPROCKET_SYNC_DELAY_SECONDS", 0)
    monkeypatch.setattr(shiprocket_client, "get_tracking", get_tracking)
    monkeypatch.setattr(shiprocket_client, "get_tracking_by_awb", get_tracking_by_awb)
    monkeypatch.setattr(shiprocket_client, "generate_label", generate_label)
    monkeypatch.setattr(shiprocket_client, "request_pickup", request_pickup)
    monkeypatch.setattr(shiprocket_client, "cancel_orders", cancel_orders)
    return calls


@pytest.fixture(autouse=True)
def gateway(monkeypatch):
    """Stands in for Cashfree; tests set `payments` to what the gateway reports."""
    state = {"payments": [], "orders": [], "refunds": [], "fetches": []}

    async def create_order(order_id, amount, customer):
        state["orders"].append({"order_id": order_id, "amount": amount, "customer": customer})
        return {"cf_order_id": 555, "payment_session_id": f"session_{order_id}"}

    async def get_order(order_id):
        state["fetches"].append(order_id)
        return {"cf_order_id": 555, "payment_session_id": f"session_{order_id}_{len(state['fetches'])}"}

    async def fetch_payments(order_id):
        return state["payments"]

    async def create_refund(order_id, amount, refund_id, note):
        state["refunds"].append({"order_id": order_id, "amount": amount, "refund_id": refund_id})
        return {"refund_id": refund_id, "refund_status": "PENDING"}

    monkeypatch.setattr(cashfree_client, "create_order", create_order)
    monkeypatch.setattr(cashfree_client, "get_order", get_order)
    monkeypatch.setattr(cashfree_client, "fetch_payments", fetch_payments)
    monkeypatch.setattr(cashfree_client, "create_refund", create_refund)
    return state
