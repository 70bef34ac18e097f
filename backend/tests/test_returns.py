from datetime import timedelta

import pytest

from models.order import Order
from services import order_status
from services.checkout import CheckoutLine, place_order
from services.errors import (
    DuplicateReturnClaimError, InvalidInputError, InvalidTransitionError, OrderNotFoundError,
    ReturnNotAllowedError, ReturnWindowExpiredError,
)
from services.returns import ReturnLine, process_return, request_return
from utils.timeutils import utcnow

ADDRESS = {"firstName": "Asha", "lastName": "Rao", "pincode": "560001", "city": "Bengaluru", "state": "Karnataka"}


@pytest.fixture
def delivered(db, user, product):
    """Order for 3 x ABC-M delivered at T = now - 1 day."""
    order = place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 3)], ADDRESS, "Online")
    t = utcnow() - timedelta(days=1)
    order_status.apply_payment_status(order, "Paid", t)
    order_status.transition(order, "Delivered", t, return_window_days=7)
    db.commit()
    db.refresh(order)
    return order


def test_return_window(db, user, delivered):
    t = delivered.delivered_at
    line = delivered.items[0]
    with pytest.raises(ReturnWindowExpiredError):
        request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 1)], "Too small", now=t + timedelta(days=8))

    created = request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 1)], "Too small", now=t + timedelta(days=6))
    assert created.status == "Pending"
    assert created.request_id.startswith("RET-")
    assert created.refund_amount == 500
    # One third of the line's 160.71 GST
    assert created.gst_reversal_amount == pytest.approx(53.57)


def test_double_claim_is_rejected(db, user, delivered):
    line = delivered.items[0]
    request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 1)], "Too small")
    with pytest.raises(DuplicateReturnClaimError):
        request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 2)], "Wrong colour")


def test_undelivered_order_cannot_be_returned(db, user, product):
    order = place_order(db, user.id, [CheckoutLine(product.id, "ABC-M", 1)], ADDRESS, "COD")
    with pytest.raises(ReturnNotAllowedError):
        request_return(db, order.order_id, user.id, [ReturnLine(order.items[0].id, 1)], "Changed mind")


def test_claim_validation(db, user, admin, delivered):
    line = delivered.items[0]
    with pytest.raises(OrderNotFoundError):
        request_return(db, delivered.order_id, admin.id, [ReturnLine(line.id, 1)], "Not mine")
    with pytest.raises(InvalidInputError):
        request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 4)], "Too many")
    with pytest.raises(InvalidInputError):
        request_return(db, delivered.order_id, user.id, [ReturnLine(999, 1)], "Unknown line")
    with pytest.raises(InvalidInputError):
        request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 1)], "Swap", type="Exchange")
    db.expire_all()
    # Failed claims leave the line untouched
    assert db.get(Order, delivered.id).items[0].return_status == "None"


def test_refund_completes_return_and_payment(db, user, delivered):
    line = delivered.items[0]
    created = request_return(db, delivered.id, user.id, [ReturnLine(line.id, 3)], "Defective", now=utcnow())

    process_return(db, created.id, "Approved", "Looks fine")
    assert db.get(Order, delivered.id).items[0].return_status == "Approved"

    done = process_return(db, created.id, "Refunded")
    assert done.status == "Refunded"
    assert done.admin_comments == "Looks fine"
    order = db.get(Order, delivered.id)
    assert order.items[0].return_status == "Completed"
    assert order.payment_status == "Refunded"


def test_strict_transitions(db, user, delivered):
    line = delivered.items[0]
    created = request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 1)], "Defective")
    with pytest.raises(InvalidTransitionError):
        process_return(db, created.id, "Refunded", strict=True)
    # Free mode lets an admin jump straight to a decision
    assert process_return(db, created.id, "Rejected", strict=False).status == "Rejected"


def test_return_api_flow(client, db, user_headers, admin_headers, delivered, carrier):
    line = delivered.items[0]
    resp = client.post("/returns", headers=user_headers, json={
        "orderId": delivered.order_id,
        "items": [{"orderItemId": line.id, "quantity": 1, "condition": "Unopened"}],
        "reason": "Too small",
    })
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "Pending"
    assert body["refundAmount"] == 500

    mine = client.get("/returns/mine", headers=user_headers).json()
    assert [r["requestId"] for r in mine] == [body["requestId"]]

    # Pickup needs an approved request
    assert client.post(f"/returns/{body['id']}/pickup", headers=admin_headers).status_code == 409
    approved = client.patch(f"/returns/{body['id']}", headers=admin_headers, json={"status": "Approved"})
    assert approved.status_code == 200

    pickup = client.post(f"/returns/{body['id']}/pickup", headers=admin_headers)
    assert pickup.status_code == 200, pickup.text
    assert pickup.json()["status"] == "Pickup_Scheduled"
    assert pickup.json()["pickupShiprocketOrderId"] == "7001"
    assert carrier["returns"][0]["order_id"] == body["requestId"]

    # The carrier reports the parcel back at the warehouse
    resp = client.post("/shipping/webhook", json={"order_id": "7001", "current_status": "Delivered"})
    assert resp.status_code == 200
    assert resp.json()["result"]["status"] == "Received"

    assert client.get("/returns", headers=user_headers).status_code == 403


def test_partial_refund_keeps_rest_of_line_claimable(db, user, delivered):
    line = delivered.items[0]
    first = request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 1)], "Too small")
    process_return(db, first.id, "Refunded")

    order = db.get(Order, delivered.id)
    assert order.items[0].returned_quantity == 1
    assert order.items[0].return_status == "Partially_Returned"
    assert order.payment_status == "Paid"

    # Only the two unreturned units can be claimed
    with pytest.raises(InvalidInputError):
        request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 3)], "Rest")
    second = request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 2)], "Rest")
    assert second.refund_amount == 1000

    # Re-saving the same status does not count the units twice
    process_return(db, second.id, "Refunded")
    process_return(db, second.id, "Refunded")
    order = db.get(Order, delivered.id)
    assert order.items[0].returned_quantity == 3
    assert order.items[0].return_status == "Completed"
    assert order.payment_status == "Refunded"

    with pytest.raises(DuplicateReturnClaimError):
        request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 1)], "Again")


def test_rejected_claim_after_partial_refund(db, user, delivered):
    line = delivered.items[0]
    first = request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 1)], "Too small")
    process_return(db, first.id, "Refunded")
    second = request_return(db, delivered.order_id, user.id, [ReturnLine(line.id, 1)], "Stain")
    process_return(db, second.id, "Rejected", "Worn")

    item = db.get(Order, delivered.id).items[0]
    assert item.returned_quantity == 1
    assert item.return_status == "Partially_Returned"
