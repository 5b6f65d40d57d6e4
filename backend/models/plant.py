# backend/models/plant.py
from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, CheckConstraint, func
from database import Base

# Model Plant
# Catalog entry offered by a single vendor. The catalog is maintained elsewhere;
# the cart and checkout only read price, availability and vendor from it.
class Plant(Base):
    __tablename__ = "plants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    scientific_name = Column(String, nullable=True)
    description = Column(String, nullable=True)

    # Unit price in the store currency, two fractional digits.
    price = Column(Numeric(10, 2), CheckConstraint("price >= 0"), nullable=False)
    in_stock = Column(Boolean, nullable=False, default=True)

    vendor_id = Column(Integer, nullable=False, index=True)

    image_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
