# backend/services/cart_store.py
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.cart import CartItem
from services.catalog import CatalogReader
from services.errors import InvalidQuantity, ItemUnavailable, LineNotFound

logger = logging.getLogger(__name__)


@dataclass
class CartLineView:
    item_id: int
    name: Optional[str]
    quantity: int
    price: Optional[Decimal]
    available: bool
    vendor_id: Optional[int]
    subtotal: Decimal
    added_at: Optional[datetime] = None


@dataclass
class CartView:
    lines: List[CartLineView] = field(default_factory=list)
    total: Decimal = Decimal("0.00")

    @property
    def available(self) -> bool:
        return all(line.available for line in self.lines)


class CartStore:
    """
    Buyer carts: at most one line per (buyer, plant), quantity always >= 1.

    Every mutation runs in its own transaction and locks the touched line
    (SELECT ... FOR UPDATE) so concurrent requests for the same line apply
    one after the other instead of overwriting each other.
    """

    def __init__(self, db: Session, catalog: Optional[CatalogReader] = None):
        self.db = db
        self.catalog = catalog or CatalogReader(db)

    def _locked_line(self, buyer_id: int, item_id: int) -> Optional[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.user_id == buyer_id, CartItem.plant_id == item_id)
            .with_for_update()
            .first()
        )

    def add_item(self, buyer_id: int, item_id: int, quantity: int) -> CartItem:
        if quantity < 1:
            raise InvalidQuantity()

        snapshot = self.catalog.get_item(item_id)
        if not snapshot.available:
            raise ItemUnavailable(item_id)

        try:
            line = self._locked_line(buyer_id, item_id)
            if line:
                logger.info(
                    "Plant %s already in cart of buyer %s, quantity %s -> %s",
                    item_id, buyer_id, line.quantity, line.quantity + quantity,
                )
                line.quantity += quantity
            else:
                line = CartItem(user_id=buyer_id, plant_id=item_id, quantity=quantity)
                self.db.add(line)
            self.db.commit()
        except IntegrityError:
            # A concurrent request inserted the line first; apply ours as an increment
            self.db.rollback()
            line = self._locked_line(buyer_id, item_id)
            if line is None:
                raise
            line.quantity += quantity
            self.db.commit()

        self.db.refresh(line)
        return line

    def set_quantity(self, buyer_id: int, item_id: int, quantity: int) -> CartItem:
        if quantity < 1:
            raise InvalidQuantity()

        line = self._locked_line(buyer_id, item_id)
        if not line:
            self.db.rollback()
            raise LineNotFound(item_id)

        line.quantity = quantity
        self.db.commit()
        self.db.refresh(line)
        return line

    def remove_item(self, buyer_id: int, item_id: int) -> bool:
        line = self._locked_line(buyer_id, item_id)
        if not line:
            self.db.rollback()
            return False

        self.db.delete(line)
        self.db.commit()
        return True

    def clear(self, buyer_id: int) -> int:
        removed = (
            self.db.query(CartItem)
            .filter(CartItem.user_id == buyer_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return removed

    def lines(self, buyer_id: int) -> List[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.user_id == buyer_id)
            .order_by(CartItem.added_at, CartItem.id)
            .all()
        )

    def list(self, buyer_id: int) -> CartView:
        # Prices are read fresh on every listing, never cached on the line
        lines = self.lines(buyer_id)
        snapshots = self.catalog.get_items(line.plant_id for line in lines)

        view = CartView()
        for line in lines:
            snap = snapshots.get(line.plant_id)
            if snap is None:
                view.lines.append(CartLineView(
                    item_id=line.plant_id, name=None, quantity=line.quantity,
                    price=None, available=False, vendor_id=None,
                    subtotal=Decimal("0.00"), added_at=line.added_at,
                ))
                continue

            subtotal = snap.price * line.quantity
            view.total += subtotal
            view.lines.append(CartLineView(
                item_id=line.plant_id,
                name=snap.name,
                quantity=line.quantity,
                price=snap.price,
                available=snap.available,
                vendor_id=snap.vendor_id,
                subtotal=subtotal,
                added_at=line.added_at,
            ))
        return view
