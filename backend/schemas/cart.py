from pydantic import Field, model_validator
from typing import List, Optional

from schemas.base import APIModel

# Request schema for adding an item to the cart.
# The SKU is given directly or selected by size + colour.
class CartAddItem(APIModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)
    sku: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None

    @model_validator(mode="after")
    def _sku_or_attributes(self):
        if not self.sku and not (self.size and self.color):
            raise ValueError("Provide either sku or both size and color")
        return self

# Request schema for updating cart item quantity
class CartUpdateItem(APIModel):
    quantity: int = Field(ge=1)

# Response schema for a single cart line item
class CartItemOut(APIModel):
    id: int
    product_id: int
    name: str
    sku: str
    size: str
    color: str
    quantity: int
    price: float
    line_total: float

# Response schema for the entire cart summary
class CartOut(APIModel):
    items: List[CartItemOut]
    total_price: float
