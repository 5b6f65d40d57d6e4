from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional

# Request schema for adding a plant to the cart
class CartAddItem(BaseModel):
    plant_id: int
    quantity: int = 1

# Request schema for replacing a line quantity; values below 1 are rejected by the store
class CartUpdateItem(BaseModel):
    quantity: int

# Response schema for a stored cart line
class CartLineOut(BaseModel):
    plant_id: int
    quantity: int
    added_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Response schema for a line of the cart listing, with a fresh catalog read
class CartItemOut(BaseModel):
    plant_id: int
    name: Optional[str] = None
    quantity: int
    unit_price: Optional[Decimal] = None
    available: bool
    vendor_id: Optional[int] = None
    line_total: Decimal
    added_at: Optional[datetime] = None

# Response schema for the entire cart summary
class CartOut(BaseModel):
    items: List[CartItemOut]
    total: Decimal
    available: bool

class CartRemoveOut(BaseModel):
    removed: bool = Field(description="False when the line did not exist")

class CartClearOut(BaseModel):
    removed: int
