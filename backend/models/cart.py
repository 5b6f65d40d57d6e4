# backend/models/cart.py
from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base

# Represents a single (buyer, plant, quantity) line of a buyer's cart
class CartItem(Base):
    __tablename__ = "cart_items" # Table name

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, index=True, nullable=False) # Buyer owning the line
    plant_id = Column(Integer, ForeignKey("plants.id"), index=True, nullable=False) # Foreign key to catalog item
    quantity = Column(Integer, nullable=False, default=1) # Always >= 1
    added_at = Column(DateTime(timezone=True), server_default=func.now()) # Creation timestamp

    plant = relationship("Plant") # Relationship to catalog item

    __table_args__ = (
        # At most one line per (buyer, plant)
        UniqueConstraint("user_id", "plant_id", name="uq_cartitem_user_plant"),
        CheckConstraint("quantity >= 1", name="ck_cartitem_quantity_positive"),
    )
