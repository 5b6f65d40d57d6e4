# backend/models/pending_intent.py
import enum

from sqlalchemy import Column, Integer, String, Numeric, DateTime, JSON, Enum, func
from database import Base

# States of a pending checkout awaiting gateway confirmation
class PendingIntentStatus(str, enum.Enum):
    PENDING = "pending"
    FAILED = "failed"
    EXPIRED = "expired"

# Links a gateway payment intent to the cart snapshot it will turn into orders.
# The row is deleted in the same transaction that materializes the orders.
class PendingIntent(Base):
    __tablename__ = "pending_intents"

    intent_id = Column(String, primary_key=True)
    user_id = Column(Integer, index=True, nullable=False)

    amount_minor = Column(Integer, nullable=False) # Amount charged, minor units
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    # [{"item_id", "vendor_id", "quantity", "price_per_unit"}] as read at intent creation
    lines = Column(JSON, nullable=False)

    status = Column(Enum(PendingIntentStatus), nullable=False, default=PendingIntentStatus.PENDING, index=True)
    failure_reason = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
