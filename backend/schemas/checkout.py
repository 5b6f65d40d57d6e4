from decimal import Decimal
from pydantic import BaseModel
from typing import List, Optional

from schemas.order import OrderResponse

# One line of the price snapshot frozen at intent creation
class CheckoutLineOut(BaseModel):
    plant_id: int
    vendor_id: int
    quantity: int
    unit_price: Decimal
    line_total: Decimal

# Response schema for checkout intent creation
class CheckoutIntentOut(BaseModel):
    intent_id: str
    client_secret: Optional[str] = None
    amount: int  # minor units
    total_amount: Decimal
    currency: str
    items: List[CheckoutLineOut]

# Client-side confirmation request
class CheckoutConfirmIn(BaseModel):
    intent_id: str

# Result of a confirmation: materialized, pending or noop
class CheckoutConfirmOut(BaseModel):
    status: str
    orders: List[OrderResponse] = []

# Webhook acknowledgement, always returned to the gateway
class WebhookAck(BaseModel):
    status: str = "ok"
    result: Optional[str] = None
