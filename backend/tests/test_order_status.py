from datetime import datetime, timedelta

import pytest

from config import settings
from models.order import Order
from services import order_status
from services.errors import InvalidInputError, InvalidTransitionError, PaymentPolicyError

T0 = datetime(2026, 3, 1, 10, 0, 0)


def make_order(status="Pending", payment_status="Pending", grand_total=1500.0):
    return Order(
        order_id="ORD-20260301-TEST0001", user_id=1, status=status, payment_status=payment_status,
        payment_method="Online", sub_total=1339.29, tax_total=160.71, grand_total=grand_total,
        placed_at=T0, refund_status="None",
    )


def test_forward_moves_and_side_effects():
    order = make_order()
    assert order_status.transition(order, "Confirmed", T0)
    assert order.confirmed_at == T0

    shipped_at = T0 + timedelta(days=1)
    order_status.transition(order, "Shipped", shipped_at)
    assert order.shipped_at == shipped_at

    delivered_at = T0 + timedelta(days=3)
    order_status.transition(order, "Delivered", delivered_at, return_window_days=7)
    assert order.status == "Delivered"
    assert order.delivered_at == delivered_at
    assert order.shipped_at == shipped_at
    assert order.return_window_expires_at == delivered_at + timedelta(days=7)
    assert order.last_status_update == delivered_at


def test_delivery_without_shipping_stamps_shipped_at():
    order = make_order(status="Confirmed")
    order_status.transition(order, "Delivered", T0)
    assert order.shipped_at == T0
    assert order.return_window_expires_at == T0 + timedelta(days=settings.RETURN_WINDOW_DAYS)


@pytest.mark.parametrize("current,target", [
    ("Shipped", "Confirmed"),
    ("Delivered", "Shipped"),
    ("Delivered", "Cancelled"),
    ("Cancelled", "Pending"),
])
def test_backward_and_terminal_moves_are_rejected(current, target):
    order = make_order(status=current)
    with pytest.raises(InvalidTransitionError):
        order_status.transition(order, target, T0)
    assert order.status == current


def test_unknown_status_is_invalid_input():
    with pytest.raises(InvalidInputError):
        order_status.transition(make_order(), "Lost", T0)


def test_advance_ignores_stale_updates():
    order = make_order(status="Shipped")
    order_status.advance(order, "Delivered", T0)
    assert not order_status.advance(order, "Shipped", T0 + timedelta(hours=1))
    assert order.status == "Delivered"
    assert order.delivered_at == T0


def test_same_status_is_a_no_op():
    order = make_order(status="Confirmed")
    assert not order_status.transition(order, "Confirmed", T0)
    assert order.confirmed_at is None


def test_failed_payment_blocks_delivery():
    order = make_order(status="Shipped", payment_status="Failed")
    with pytest.raises(PaymentPolicyError):
        order_status.transition(order, "Delivered", T0)
    with pytest.raises(PaymentPolicyError):
        order_status.advance(order, "Delivered", T0)
    assert order.status == "Shipped"


def test_delivery_policy_can_be_switched_off(monkeypatch):
    monkeypatch.setattr(settings, "BLOCK_DELIVERY_ON_FAILED_PAYMENT", False)
    order = make_order(status="Shipped", payment_status="Failed")
    order_status.transition(order, "Delivered", T0)
    assert order.status == "Delivered"


def test_payment_axis_rules():
    order = make_order()
    assert order_status.apply_payment_status(order, "Paid", T0)
    # Paid confirms a pending order
    assert order.status == "Confirmed"
    assert order.confirmed_at == T0

    assert not order_status.apply_payment_status(order, "Paid", T0)
    assert not order_status.apply_payment_status(order, "Failed", T0)
    assert order.payment_status == "Paid"

    assert order_status.apply_payment_status(order, "Refunded", T0)
    assert not order_status.apply_payment_status(order, "Paid", T0)
    assert order.payment_status == "Refunded"


def test_refund_requires_payment():
    with pytest.raises(InvalidTransitionError):
        order_status.apply_payment_status(make_order(), "Refunded", T0)


def test_cancel_paid_order_flags_refund():
    order = make_order(status="Confirmed", payment_status="Paid")
    order_status.cancel_order(order, "Changed my mind", T0)
    assert order.status == "Cancelled"
    assert order.cancelled_at == T0
    assert order.cancellation_reason == "Changed my mind"
    assert order.refund_status == "Initiated"
    assert order.refund_amount == 1500.0


def test_cannot_cancel_delivered_order():
    order = make_order(status="Delivered")
    with pytest.raises(InvalidTransitionError):
        order_status.cancel_order(order, None, T0)


def test_carrier_status_mapping():
    assert order_status.map_carrier_status("In Transit").value == "Shipped"
    assert order_status.map_carrier_status(" DELIVERED ").value == "Delivered"
    assert order_status.map_carrier_status("RTO Initiated").value == "Cancelled"
    assert order_status.map_carrier_status("Manifest Generated") is None
