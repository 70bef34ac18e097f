from pydantic import Field
from typing import Any, Dict, List, Optional

from schemas.base import APIModel


# order_id is the human readable ORD-... reference shared with the gateway
class PaymentOrderRequest(APIModel):
    order_id: str


class PaymentSessionResponse(APIModel):
    success: bool = True
    order_id: str
    payment_session_id: Optional[str] = None


class RefundRequest(APIModel):
    order_id: str
    amount: Optional[float] = Field(default=None, gt=0)
    note: Optional[str] = None


# Gateway callback. The flat {type, orderRef, status} form is canonical; the
# gateway's nested data.order / data.payment form is accepted as well.
class PaymentWebhook(APIModel):
    type: Optional[str] = None
    order_ref: Optional[str] = None
    status: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def resolved(self):
        data = self.data or {}
        order = data.get("order") or {}
        payment = data.get("payment") or data.get("refund") or {}
        order_ref = self.order_ref or order.get("order_id")
        status = self.status or payment.get("payment_status") or payment.get("refund_status")
        return order_ref, status, payment or None


# Carrier status push; field names are the carrier's own
class ShippingWebhook(APIModel):
    order_id: str
    current_status: Optional[str] = None
    awb: Optional[str] = None
    scans: List[Dict[str, Any]] = []

    model_config = {**APIModel.model_config, "alias_generator": None, "coerce_numbers_to_str": True}


class WebhookAck(APIModel):
    success: bool = True
    message: str = "Webhook processed successfully"
    result: Optional[Dict[str, Any]] = None
