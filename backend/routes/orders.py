# backend/routes/orders.py
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlalchemy.orm import Session

from database import get_db
from utils.tokenJWT import get_current_user, require_vendor
from utils.audit import client_ip, write_log
from models.order import Order
from schemas.user import CurrentUser, Vendor
from schemas.order import OrderResponse, OrdersPage, OrderStatusPatch, OrderItemOut, PaymentOut
from services.errors import MarketplaceError
from services.orders import OrderReader, update_order_status

router = APIRouter(prefix="/orders", tags=["Orders"])
logger = logging.getLogger(__name__)

# Map Order model to OrderResponse schema
def _order_to_out(order: Order) -> OrderResponse:
    items: List[OrderItemOut] = []
    for it in order.items:
        items.append(OrderItemOut(
            plant_id=it.plant_id,
            quantity=it.quantity,
            price_per_unit=it.price_per_unit,
            line_total=it.price_per_unit * it.quantity,
        ))
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        vendor_id=order.vendor_id,
        status=order.status,
        total_amount=order.total_amount,
        order_date=order.order_date,
        delivery_date=order.delivery_date,
        tracking_number=order.tracking_number,
        notes=order.notes,
        items=items,
        payment=PaymentOut.model_validate(order.payment) if order.payment else None,
    )


# List orders placed by a buyer or received by a vendor
@router.get("", response_model=OrdersPage)
def list_my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    try:
        rows, total = OrderReader(db).orders_for(current_user, page, page_size)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    items = [_order_to_out(o) for o in rows]
    return {"items": items, "total": total, "page": page, "page_size": page_size}


# Get details of a specific order with its items and payment
@router.get("/{order_id}", response_model=OrderResponse)
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    try:
        order = OrderReader(db).order_with_items(current_user, order_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return _order_to_out(order)


# Advance order status (vendor owning the order only)
@router.patch("/{order_id}/status", response_model=OrderResponse)
def change_order_status(
    order_id: int,
    payload: OrderStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Vendor = Depends(require_vendor)
):
    try:
        order = update_order_status(
            db, current_user, order_id, payload.status,
            tracking_number=payload.tracking_number, notes=payload.notes,
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    out = _order_to_out(order)
    write_log(db, user_id=current_user.id, action="ORDER_STATUS_CHANGE", resource="orders", status="SUCCESS",
        ip=client_ip(request), meta={"order_id": order_id, "new": payload.status.value})
    return out
