# backend/utils/shiprocket_client.py
import httpx
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from config import settings
from services.errors import IntegrationError

logger = logging.getLogger(__name__)

# Carrier tokens live 10 days; refresh one day early
TOKEN_TTL = timedelta(days=9)

class ShiprocketClient:
    def __init__(self):
        self.base_url = settings.SHIPROCKET_BASE_URL.rstrip("/")
        self.email = settings.SHIPROCKET_EMAIL
        self.password = settings.SHIPROCKET_PASSWORD
        self.token: Optional[str] = None
        self.token_expiry: Optional[datetime] = None

    async def get_auth_token(self) -> str:
        # Reuse the cached token while it is still valid
        if self.token and self.token_expiry and datetime.now() < self.token_expiry:
            return self.token
        async with httpx.AsyncClient(timeout=20.0) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/auth/login",
                    json={"email": self.email, "password": self.password},
                )
                response.raise_for_status()
                self.token = response.json()["token"]
                self.token_expiry = datetime.now() + TOKEN_TTL
                return self.token
            except (httpx.RequestError, httpx.HTTPStatusError, KeyError) as e:
                logger.error(f"Shiprocket auth error: {e}")
                raise IntegrationError("Failed to authenticate with Shiprocket") from e

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        token = await self.get_auth_token()
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}
        async with httpx.AsyncClient(timeout=30.0) as client:
            try:
                response = await client.request(method, f"{self.base_url}{path}", json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                logger.error(f"Shiprocket {method} {path} failed: {e.response.status_code} {e.response.text}")
                raise IntegrationError(f"Shiprocket request failed ({e.response.status_code})") from e
            except httpx.RequestError as e:
                logger.error(f"Shiprocket {method} {path} unreachable: {e}")
                raise IntegrationError("Shiprocket unreachable") from e

    async def _post(self, path: str, payload: dict) -> Dict[str, Any]:
        return await self._request("POST", path, payload)

    async def create_order(self, order_data: dict) -> Dict[str, Any]:
        return await self._post("/orders/create/adhoc", order_data)

    async def create_return_order(self, return_data: dict) -> Dict[str, Any]:
        return await self._post("/orders/create/return", return_data)

    async def cancel_orders(self, carrier_order_ids: List[str]) -> Dict[str, Any]:
        return await self._post("/orders/cancel", {"ids": carrier_order_ids})

    async def get_tracking(self, shipment_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/courier/track/shipment/{shipment_id}")

    async def get_tracking_by_awb(self, awb: str) -> Dict[str, Any]:
        return await self._request("GET", f"/courier/track/awb/{awb}")

    async def generate_label(self, shipment_ids: List[str]) -> Dict[str, Any]:
        return await self._post("/courier/generate/label", {"shipment_id": shipment_ids})

    async def request_pickup(self, shipment_id: str) -> Dict[str, Any]:
        # Assigns the AWB and books the courier pickup
        return await self._post("/courier/assign/awb", {"shipment_id": shipment_id})

shiprocket_client = ShiprocketClient()
