from pydantic import Field
from typing import List, Literal, Optional
from datetime import datetime

from schemas.base import APIModel


class ReturnItemIn(APIModel):
    order_item_id: int
    quantity: int = Field(default=1, ge=1)
    reason: Optional[str] = None
    condition: Literal["Unopened", "Opened", "Damaged"] = "Opened"


# order_id accepts the human readable ORD-... reference or the numeric id
class ReturnCreate(APIModel):
    order_id: str
    items: List[ReturnItemIn] = Field(min_length=1)
    reason: str = Field(min_length=1)
    type: Literal["Return", "Exchange"] = "Return"
    exchange_size: Optional[str] = None


class ReturnProcess(APIModel):
    status: str
    admin_comments: Optional[str] = None


class ReturnItemOut(APIModel):
    id: int
    order_item_id: int
    sku: Optional[str] = None
    quantity: int
    reason: str
    condition: str


class ReturnOut(APIModel):
    id: int
    request_id: str
    order_id: int
    user_id: int
    type: str
    exchange_size: Optional[str] = None
    reason: str
    status: str
    refund_amount: float
    gst_reversal_amount: float
    admin_comments: Optional[str] = None
    pickup_shiprocket_order_id: Optional[str] = None
    pickup_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[ReturnItemOut]
