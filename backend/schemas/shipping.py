from typing import Any, Dict, List
from schemas.base import APIModel


# Outcome of one bulk tracking poll
class TrackingSyncResult(APIModel):
    success: bool = True
    synced: int
    errors: int
    total: int
    results: List[Dict[str, Any]] = []


class ShippingLabelOut(APIModel):
    success: bool = True
    order_id: str
    label_url: str
