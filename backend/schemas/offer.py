from pydantic import Field
from typing import Literal, Optional
from datetime import datetime

from schemas.base import APIModel


class CouponValidateRequest(APIModel):
    code: str = Field(min_length=1)
    cart_value: float = Field(ge=0)


class CouponValidateResponse(APIModel):
    success: bool = True
    discount: float
    offer_code: str


# Input schema for a new offer
class OfferCreate(APIModel):
    code: str = Field(min_length=1)
    title: str
    description: Optional[str] = None
    type: Literal["FLAT", "PERCENTAGE"]
    value: float = Field(ge=0)
    max_discount: Optional[float] = Field(default=None, ge=0)
    min_order_value: float = Field(default=0, ge=0)
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    usage_limit: Optional[int] = Field(default=None, ge=1)


# Partial update, all fields optional
class OfferUpdate(APIModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[Literal["FLAT", "PERCENTAGE"]] = None
    value: Optional[float] = Field(default=None, ge=0)
    max_discount: Optional[float] = Field(default=None, ge=0)
    min_order_value: Optional[float] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    usage_limit: Optional[int] = Field(default=None, ge=1)


class OfferOut(APIModel):
    id: int
    code: str
    title: str
    description: Optional[str] = None
    type: str
    value: float
    max_discount: Optional[float] = None
    min_order_value: float
    start_date: datetime
    end_date: datetime
    is_active: bool
    usage_limit: Optional[int] = None
    usage_count: int
