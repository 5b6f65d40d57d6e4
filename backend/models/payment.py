import enum

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum, UniqueConstraint, func
from sqlalchemy.orm import relationship
from database import Base

class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    UPI = "upi"
    NET_BANKING = "net_banking"
    CASH_ON_DELIVERY = "cash_on_delivery"

# Payment record, one per order, written in the order's creation transaction
class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    vendor_id = Column(Integer, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False) # Equals the order total
    payment_status = Column(String, nullable=False)
    transaction_id = Column(String, index=True, nullable=False) # Gateway intent id
    payment_date = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="payment")

    __table_args__ = (
        # One payment per intent and vendor; a replayed confirmation cannot add another
        UniqueConstraint("transaction_id", "vendor_id", name="uq_payment_transaction_vendor"),
    )
