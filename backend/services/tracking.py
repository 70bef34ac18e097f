# backend/services/tracking.py
"""Polled carrier tracking, the second status feed next to the webhook.

Tracking snapshots go through the same monotonic `advance` as webhook
updates, so a poll that lags behind a webhook never moves an order back.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.order import Order, OrderStatus
from services import order_status
from services.webhooks import append_scans
from utils.timeutils import utcnow, to_naive_utc

logger = logging.getLogger(__name__)

# Orders the bulk sync polls
TRACKED_STATUSES = (OrderStatus.PROCESSING.value, OrderStatus.SHIPPED.value)


def _parse_carrier_date(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return to_naive_utc(datetime.fromisoformat(str(value).strip()))
    except ValueError:
        logger.warning("Unreadable carrier date %r", value)
        return None


def unwrap_tracking(response: Any, shipment_id: Optional[str] = None) -> Dict[str, Any]:
    """Return the `tracking_data` block of a carrier tracking response.

    Tracking by AWB answers `{"tracking_data": {...}}`; tracking by shipment
    wraps the same block under the shipment id.
    """
    if not isinstance(response, dict):
        return {}
    if isinstance(response.get("tracking_data"), dict):
        return response["tracking_data"]
    if shipment_id is not None:
        nested = response.get(str(shipment_id))
        if isinstance(nested, dict) and isinstance(nested.get("tracking_data"), dict):
            return nested["tracking_data"]
    return {}


def _activity_label(activity: Dict[str, Any]) -> Optional[str]:
    return activity.get("sr-status-label") or activity.get("status")


def apply_tracking(order: Order, tracking_data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Fold one tracking snapshot into the order. The caller commits."""
    now = now or utcnow()
    activities: List[Dict[str, Any]] = list(tracking_data.get("shipment_track_activities") or [])
    shipment = (tracking_data.get("shipment_track") or [{}])[0] or {}

    # Carrier dates are "YYYY-MM-DD HH:MM:SS", so text order is time order
    activities.sort(key=lambda a: str(a.get("date") or ""), reverse=True)
    latest = activities[0] if activities else {}
    label = _activity_label(latest) or shipment.get("current_status")

    target = order_status.map_carrier_status(label) or order_status.map_carrier_status(shipment.get("current_status"))
    stamp = now
    if target == OrderStatus.DELIVERED:
        stamp = _parse_carrier_date(shipment.get("delivered_date")) or _parse_carrier_date(latest.get("date")) or now
    changed = order_status.advance(order, target, stamp) if target else False

    append_scans(order, list(reversed(activities)))
    if label:
        order.shiprocket_status = label
    order.current_location = latest.get("location") or shipment.get("destination") or order.current_location
    order.tracking_url = tracking_data.get("track_url") or order.tracking_url
    order.estimated_delivery_date = _parse_carrier_date(tracking_data.get("etd")) or order.estimated_delivery_date
    if shipment.get("courier_name"):
        order.courier_name = shipment["courier_name"]
    if shipment.get("awb_code") and not order.awb_number:
        order.awb_number = shipment["awb_code"]
    order.last_tracking_sync = now
    if changed:
        order.last_status_update = now

    return {
        "order_id": order.order_id,
        "status": order.status,
        "changed": changed,
        "latest_status": label,
        "location": order.current_location,
    }
