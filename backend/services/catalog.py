# backend/services/catalog.py
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable

from sqlalchemy.orm import Session

from models.plant import Plant
from services.errors import ItemNotFound
from utils.money import CENT


@dataclass(frozen=True)
class PriceSnapshot:
    """Price and availability of one plant as read at ``read_at``."""

    item_id: int
    name: str
    price: Decimal
    available: bool
    vendor_id: int
    read_at: datetime

def _snapshot(plant: Plant, read_at: datetime) -> PriceSnapshot:
    return PriceSnapshot(
        item_id=plant.id,
        name=plant.name,
        price=Decimal(plant.price).quantize(CENT),
        available=bool(plant.in_stock),
        vendor_id=plant.vendor_id,
        read_at=read_at,
    )

class CatalogReader:
    """Read-only access to the plant catalog. Never writes."""

    def __init__(self, db: Session):
        self.db = db

    def get_item(self, item_id: int) -> PriceSnapshot:
        plant = self.db.query(Plant).filter(Plant.id == item_id).first()
        if not plant:
            raise ItemNotFound(item_id)
        return _snapshot(plant, datetime.now(timezone.utc))

    def get_items(self, item_ids: Iterable[int]) -> Dict[int, PriceSnapshot]:
        # Missing ids are simply absent from the result
        ids = set(item_ids)
        if not ids:
            return {}
        read_at = datetime.now(timezone.utc)
        plants = self.db.query(Plant).filter(Plant.id.in_(ids)).all()
        return {p.id: _snapshot(p, read_at) for p in plants}
