# backend/routes/cart.py
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from database import get_db
from utils.tokenJWT import require_buyer
from utils.audit import client_ip, write_log
from schemas.user import Buyer
from schemas.cart import CartAddItem, CartUpdateItem, CartOut, CartItemOut, CartLineOut, CartRemoveOut, CartClearOut
from services.cart_store import CartStore, CartView
from services.errors import MarketplaceError

router = APIRouter(prefix="/cart", tags=["Cart"])

def _cart_to_out(view: CartView) -> CartOut:
    items_out = [
        CartItemOut(
            plant_id=line.item_id,
            name=line.name,
            quantity=line.quantity,
            unit_price=line.price,
            available=line.available,
            vendor_id=line.vendor_id,
            line_total=line.subtotal,
            added_at=line.added_at,
        )
        for line in view.lines
    ]
    return CartOut(items=items_out, total=view.total, available=view.available)

@router.get("", response_model=CartOut)
def get_cart(
    db: Session = Depends(get_db),
    current_user: Buyer = Depends(require_buyer)
):
    return _cart_to_out(CartStore(db).list(current_user.id))

@router.post("", response_model=CartLineOut, status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: CartAddItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Buyer = Depends(require_buyer)
):
    try:
        line = CartStore(db).add_item(current_user.id, payload.plant_id, payload.quantity)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    out = CartLineOut.model_validate(line)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_ADD",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"plant_id": payload.plant_id, "qty": payload.quantity, "line_qty": out.quantity},
    )
    return out

@router.put("/{plant_id}", response_model=CartLineOut)
def update_cart_item(
    plant_id: int,
    payload: CartUpdateItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Buyer = Depends(require_buyer)
):
    try:
        line = CartStore(db).set_quantity(current_user.id, plant_id, payload.quantity)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    out = CartLineOut.model_validate(line)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_UPDATE",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"plant_id": plant_id, "qty": payload.quantity},
    )
    return out

@router.delete("/{plant_id}", response_model=CartRemoveOut)
def delete_cart_item(
    plant_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Buyer = Depends(require_buyer)
):
    # Removing a missing line is not an error
    removed = CartStore(db).remove_item(current_user.id, plant_id)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_REMOVE",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"plant_id": plant_id, "removed": removed},
    )
    return CartRemoveOut(removed=removed)

@router.delete("", response_model=CartClearOut)
def clear_cart(
    request: Request,
    db: Session = Depends(get_db),
    current_user: Buyer = Depends(require_buyer)
):
    removed = CartStore(db).clear(current_user.id)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_CLEAR",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"removed": removed},
    )
    return CartClearOut(removed=removed)
