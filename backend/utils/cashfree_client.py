# backend/utils/cashfree_client.py
import httpx
import logging
from typing import Any, Dict, List, Optional
from config import settings
from services.errors import IntegrationError

logger = logging.getLogger(__name__)

class CashfreeClient:
    def __init__(self):
        # Initialize configuration and callback URLs
        self.api_url = settings.CASHFREE_API_URL.rstrip("/")
        self.app_id = settings.CASHFREE_APP_ID
        self.secret_key = settings.CASHFREE_SECRET_KEY
        self.api_version = settings.CASHFREE_API_VERSION
        self.return_url = f"{settings.FRONTEND_URL.rstrip('/')}/checkout/payment?order_id={{order_id}}"
        self.notify_url = f"{settings.BACKEND_URL.rstrip('/')}/payments/webhook"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-client-id": self.app_id,
            "x-client-secret": self.secret_key,
            "x-api-version": self.api_version,
        }

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> Any:
        url = f"{self.api_url}{path}"
        async with httpx.AsyncClient(timeout=20.0) as client:
            try:
                response = await client.request(method, url, json=json, headers=self._headers())
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                # Gateway puts a readable reason in the JSON body
                try:
                    message = e.response.json().get("message") or e.response.text
                except ValueError:
                    message = e.response.text
                logger.error(f"Cashfree {method} {path} failed: {e.response.status_code} {message}")
                raise IntegrationError(f"Payment gateway error: {message}") from e
            except httpx.RequestError as e:
                logger.error(f"Cashfree {method} {path} unreachable: {e}")
                raise IntegrationError("Payment gateway unreachable") from e

    async def create_order(self, order_id: str, amount: float, customer: Dict[str, str]) -> Dict[str, Any]:
        # Register the order with the gateway and obtain a payment session
        payload = {
            "order_id": order_id,
            "order_amount": round(float(amount), 2),
            "order_currency": "INR",
            "customer_details": customer,
            "order_meta": {
                "return_url": self.return_url,
                "notify_url": self.notify_url,
            },
        }
        return await self._request("POST", "/orders", json=payload)

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        # An order already known to the gateway hands out a fresh session on every fetch
        return await self._request("GET", f"/orders/{order_id}")

    async def fetch_payments(self, order_id: str) -> List[Dict[str, Any]]:
        # All payment attempts made against the order
        data = await self._request("GET", f"/orders/{order_id}/payments")
        return data or []

    async def create_refund(self, order_id: str, amount: float, refund_id: str, note: str) -> Dict[str, Any]:
        payload = {
            "refund_amount": round(float(amount), 2),
            "refund_id": refund_id,
            "refund_note": note,
        }
        return await self._request("POST", f"/orders/{order_id}/refunds", json=payload)

cashfree_client = CashfreeClient()
