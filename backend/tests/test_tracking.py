from datetime import datetime, timedelta

import pytest

from models.order import Order
from services.checkout import CheckoutLine, place_order
from services.errors import IntegrationError
from services.tracking import apply_tracking, unwrap_tracking

ADDRESS = {"firstName": "Asha", "pincode": "560001", "city": "Bengaluru"}


def snapshot(label, date="2026-03-04 15:20:00", delivered_date=None, location="Bengaluru"):
    return {
        "track_status": 1,
        "shipment_track": [{
            "awb_code": "AWB555", "courier_name": "Delhivery", "current_status": label,
            "delivered_date": delivered_date, "destination": "Bengaluru",
        }],
        "shipment_track_activities": [
            {"date": "2026-03-02 09:00:00", "activity": "Shipment picked up", "location": "Mumbai", "sr-status-label": "PICKED UP"},
            {"date": date, "activity": label, "location": location, "sr-status-label": label.upper()},
        ],
        "track_url": "https://track.example/AWB555",
        "etd": "2026-03-05 18:00:00",
    }


@pytest.fixture
def shipped_order(db, user, product):
    order = place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "COD")
    order.status = "Processing"
    order.shiprocket_order_id = "9001"
    order.shipment_id = "8001"
    db.commit()
    return order


def fresh(db, order_ref):
    db.expire_all()
    return db.query(Order).filter(Order.order_id == order_ref).one()


def test_unwrap_tracking_shapes():
    data = {"track_status": 1}
    assert unwrap_tracking({"tracking_data": data}) == data
    assert unwrap_tracking({"8001": {"tracking_data": data}}, "8001") == data
    assert unwrap_tracking({"8001": {"tracking_data": data}}) == {}
    assert unwrap_tracking(None) == {}


def test_delivered_snapshot_uses_carrier_delivery_time(db, shipped_order):
    now = datetime(2026, 3, 6, 12, 0, 0)
    result = apply_tracking(shipped_order, snapshot("Delivered", delivered_date="2026-03-04 15:20:00"), now)
    db.commit()

    assert result["changed"] is True
    order = fresh(db, shipped_order.order_id)
    assert order.status == "Delivered"
    assert order.delivered_at == datetime(2026, 3, 4, 15, 20, 0)
    assert order.return_window_expires_at == datetime(2026, 3, 4, 15, 20, 0) + timedelta(days=7)
    assert order.awb_number == "AWB555"
    assert order.courier_name == "Delhivery"
    assert order.tracking_url == "https://track.example/AWB555"
    assert order.current_location == "Bengaluru"
    assert order.estimated_delivery_date == datetime(2026, 3, 5, 18, 0, 0)
    assert order.last_tracking_sync == now
    # Oldest scan first
    assert [s["status"] for s in order.tracking_history] == ["PICKED UP", "DELIVERED"]


def test_lagging_snapshot_never_moves_order_back(db, shipped_order):
    apply_tracking(shipped_order, snapshot("Delivered"))
    db.commit()

    result = apply_tracking(shipped_order, snapshot("In Transit", date="2026-03-03 08:00:00", location="Pune"))
    db.commit()

    assert result["changed"] is False
    order = fresh(db, shipped_order.order_id)
    assert order.status == "Delivered"
    assert order.shiprocket_status == "IN TRANSIT"
    # Scans already recorded are not duplicated
    assert len(order.tracking_history) == 3


def test_unknown_carrier_label_only_records_scans(db, shipped_order):
    result = apply_tracking(shipped_order, snapshot("Manifested"))
    db.commit()

    assert result["changed"] is False
    order = fresh(db, shipped_order.order_id)
    assert order.status == "Processing"
    assert order.shiprocket_status == "MANIFESTED"
    assert len(order.tracking_history) == 2


def test_admin_sync_polls_orders_in_flight(client, db, admin_headers, shipped_order, user, product, carrier):
    by_awb = place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "COD")
    by_awb.status = "Shipped"
    by_awb.awb_number = "AWB777"
    db.commit()
    place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "COD")  # never shipped

    carrier["tracking"]["8001"] = snapshot("Delivered", delivered_date="2026-03-04 15:20:00")
    carrier["tracking"]["AWB777"] = snapshot("Out For Delivery")

    resp = client.post("/shipping/sync", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["synced"] == 2
    assert body["errors"] == 0
    assert body["total"] == 2
    assert sorted(carrier["tracked"]) == ["8001", "AWB777"]

    assert fresh(db, shipped_order.order_id).status == "Delivered"
    assert fresh(db, by_awb.order_id).status == "Shipped"


def test_sync_keeps_going_after_carrier_error(client, db, admin_headers, shipped_order, carrier):
    carrier["tracking"]["8001"] = IntegrationError("Shiprocket unavailable")

    resp = client.post("/shipping/sync", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["errors"] == 1
    assert body["results"][0]["error"] == "Shiprocket unavailable"
    assert fresh(db, shipped_order.order_id).status == "Processing"


def test_sync_is_admin_only(client, user_headers):
    assert client.post("/shipping/sync", headers=user_headers).status_code == 403


def test_customer_tracking_falls_back_to_stored_history(client, db, user_headers, shipped_order, carrier):
    carrier["tracking"]["8001"] = snapshot("In Transit", date="2026-03-03 08:00:00", location="Pune")
    resp = client.get(f"/shipping/orders/{shipped_order.order_id}/tracking", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "Shipped"
    assert resp.json()["currentLocation"] == "Pune"

    carrier["tracking"]["8001"] = IntegrationError("Shiprocket unavailable")
    resp = client.get(f"/shipping/orders/{shipped_order.order_id}/tracking", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "Shipped"
    assert resp.json()["currentLocation"] == "Pune"


def test_label_failure_leaves_order_untouched(client, db, admin_headers, shipped_order, carrier):
    carrier["label"] = {"label_created": 0, "message": "Shipment is not manifested"}

    resp = client.post(f"/shipping/orders/{shipped_order.order_id}/label", headers=admin_headers)
    assert resp.status_code == 502
    assert resp.json()["error"] == "integration_error"
    assert resp.json()["message"] == "Shipment is not manifested"

    order = fresh(db, shipped_order.order_id)
    assert order.shipping_label_url is None
    assert order.status == "Processing"


def test_label_is_stored(client, db, admin_headers, shipped_order, carrier):
    resp = client.post(f"/shipping/orders/{shipped_order.order_id}/label", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["labelUrl"] == "https://labels.example/1.pdf"
    assert carrier["labels"] == [["8001"]]
    assert fresh(db, shipped_order.order_id).shipping_label_url == "https://labels.example/1.pdf"


def test_pickup_assigns_courier(client, db, admin_headers, shipped_order, carrier):
    shipped = fresh(db, shipped_order.order_id)
    shipped.status = "Confirmed"
    db.commit()

    resp = client.post(f"/shipping/orders/{shipped_order.order_id}/pickup", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "Processing"
    assert resp.json()["awbNumber"] == "AWB123"
    assert resp.json()["courierName"] == "Delhivery"
    assert carrier["pickups"] == ["8001"]


def test_pickup_failure_leaves_order_untouched(client, db, admin_headers, shipped_order, carrier):
    carrier["pickup"] = {"awb_assign_status": 0, "message": "No courier serviceable"}

    resp = client.post(f"/shipping/orders/{shipped_order.order_id}/pickup", headers=admin_headers)
    assert resp.status_code == 502
    assert resp.json()["error"] == "integration_error"
    order = fresh(db, shipped_order.order_id)
    assert order.awb_number is None
    assert order.status == "Processing"


def test_label_needs_a_carrier_shipment(client, db, admin_headers, user, product):
    order = place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "COD")
    resp = client.post(f"/shipping/orders/{order.order_id}/label", headers=admin_headers)
    assert resp.status_code == 422
    assert resp.json()["error"] == "invalid_input"
