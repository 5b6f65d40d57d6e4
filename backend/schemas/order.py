from decimal import Decimal
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from models.order import OrderStatus
from models.payment import PaymentMethod


# Output schema for an individual order line item
class OrderItemOut(BaseModel):
    plant_id: int
    quantity: int
    price_per_unit: Decimal
    line_total: Decimal


# Output schema for the payment recorded with an order
class PaymentOut(BaseModel):
    id: int
    payment_method: PaymentMethod
    amount: Decimal
    payment_status: str
    transaction_id: str
    payment_date: Optional[datetime] = None

    class Config:
        from_attributes = True


# Output schema representing the full order details
class OrderResponse(BaseModel):
    id: int
    user_id: int
    vendor_id: int
    status: OrderStatus
    total_amount: Decimal
    order_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    items: List[OrderItemOut]
    payment: Optional[PaymentOut] = None


# Schema for paginated order lists
class OrdersPage(BaseModel):
    items: List[OrderResponse]
    total: int
    page: int
    page_size: int


# Schema for updating order status (vendor only)
class OrderStatusPatch(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
