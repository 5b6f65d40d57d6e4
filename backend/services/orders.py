# backend/services/orders.py
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from models.order import ORDER_TRANSITIONS, Order, OrderStatus
from schemas.user import Buyer, CurrentUser, Vendor
from services.errors import Forbidden, InvalidStatusTransition, OrderNotFound

logger = logging.getLogger(__name__)


class OrderReader:
    """Read-only projections over committed orders."""

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Order).options(selectinload(Order.items), selectinload(Order.payment))

    def orders_by_buyer(self, buyer_id: int, page: int = 1, page_size: int = 10) -> Tuple[List[Order], int]:
        q = self._query().filter(Order.user_id == buyer_id).order_by(Order.order_date.desc(), Order.id.desc())
        return q.offset((page - 1) * page_size).limit(page_size).all(), q.count()

    def orders_by_vendor(self, vendor_id: int, page: int = 1, page_size: int = 10) -> Tuple[List[Order], int]:
        q = self._query().filter(Order.vendor_id == vendor_id).order_by(Order.order_date.desc(), Order.id.desc())
        return q.offset((page - 1) * page_size).limit(page_size).all(), q.count()

    def orders_for(self, user: CurrentUser, page: int = 1, page_size: int = 10) -> Tuple[List[Order], int]:
        if isinstance(user, Buyer):
            return self.orders_by_buyer(user.id, page, page_size)
        if isinstance(user, Vendor):
            return self.orders_by_vendor(user.id, page, page_size)
        raise Forbidden()

    def order_with_items(self, user: CurrentUser, order_id: int) -> Order:
        order = self._query().filter(Order.id == order_id).first()
        if not order:
            raise OrderNotFound(order_id)
        if not can_access(user, order):
            raise Forbidden("You don't have permission to view this order")
        return order


def can_access(user: CurrentUser, order: Order) -> bool:
    if isinstance(user, Buyer):
        return order.user_id == user.id
    if isinstance(user, Vendor):
        return order.vendor_id == user.id
    return False


def update_order_status(
    db: Session,
    vendor: Vendor,
    order_id: int,
    status: OrderStatus,
    tracking_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> Order:
    """Vendor-initiated status change; totals and items are never touched."""
    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if not order:
        db.rollback()
        raise OrderNotFound(order_id)
    if order.vendor_id != vendor.id:
        db.rollback()
        raise Forbidden("You don't have permission to update this order")

    current = order.status
    if status not in ORDER_TRANSITIONS[current]:
        db.rollback()
        raise InvalidStatusTransition(current.value, status.value)

    order.status = status
    if tracking_number is not None:
        order.tracking_number = tracking_number
    if notes is not None:
        order.notes = notes
    if status == OrderStatus.DELIVERED:
        order.delivery_date = datetime.now(timezone.utc)
    db.commit()

    logger.info("Order %s status %s -> %s by vendor %s", order.id, current.value, status.value, vendor.id)
    return OrderReader(db).order_with_items(vendor, order.id)
