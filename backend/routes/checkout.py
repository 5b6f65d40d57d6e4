# backend/routes/checkout.py
import logging
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from database import get_db
from utils.tokenJWT import require_buyer
from utils.audit import client_ip, write_log
from utils.stripe_client import StripeClient, get_payment_gateway
from schemas.user import Buyer
from schemas.checkout import (
    CheckoutConfirmIn, CheckoutConfirmOut, CheckoutIntentOut, CheckoutLineOut, WebhookAck
)
from services.checkout import CheckoutOrchestrator
from services.errors import CheckoutFailed, MarketplaceError
from routes.orders import _order_to_out

router = APIRouter(prefix="/checkout", tags=["Checkout"])
logger = logging.getLogger(__name__)

# Validate the cart against the catalog and open a payment intent
@router.post("/intent", response_model=CheckoutIntentOut)
async def create_checkout_intent(
    request: Request,
    db: Session = Depends(get_db),
    gateway: StripeClient = Depends(get_payment_gateway),
    current_user: Buyer = Depends(require_buyer)
):
    orchestrator = CheckoutOrchestrator(db, gateway)
    try:
        result = await orchestrator.create_intent(current_user.id)
    except MarketplaceError as e:
        db.rollback()
        write_log(
            db, user_id=current_user.id, action="CHECKOUT_INTENT", resource="checkout", status="FAIL",
            ip=client_ip(request), meta={"code": e.code},
        )
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    write_log(
        db, user_id=current_user.id, action="CHECKOUT_INTENT", resource="checkout", status="SUCCESS",
        ip=client_ip(request),
        meta={"intent_id": result.intent_id, "amount": result.amount_minor, "lines": len(result.lines)},
    )
    return CheckoutIntentOut(
        intent_id=result.intent_id,
        client_secret=result.client_secret,
        amount=result.amount_minor,
        total_amount=result.total,
        currency=result.currency,
        items=[
            CheckoutLineOut(
                plant_id=l.item_id, vendor_id=l.vendor_id, quantity=l.quantity,
                unit_price=l.price_per_unit, line_total=l.subtotal,
            )
            for l in result.lines
        ],
    )

# Client-side confirmation after the payment form completes
@router.post("/confirm", response_model=CheckoutConfirmOut)
async def confirm_checkout(
    payload: CheckoutConfirmIn,
    request: Request,
    db: Session = Depends(get_db),
    gateway: StripeClient = Depends(get_payment_gateway),
    current_user: Buyer = Depends(require_buyer)
):
    orchestrator = CheckoutOrchestrator(db, gateway)
    try:
        result = await orchestrator.confirm(current_user.id, payload.intent_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    write_log(
        db, user_id=current_user.id, action="PAYMENT_CONFIRM", resource="checkout", status="SUCCESS",
        ip=client_ip(request),
        meta={"intent_id": payload.intent_id, "result": result.status, "created": result.created},
    )
    if result.created:
        write_log(
            db, user_id=current_user.id, action="ORDER_MATERIALIZED", resource="orders", status="SUCCESS",
            ip=client_ip(request),
            meta={"intent_id": payload.intent_id, "order_ids": [o.id for o in result.orders]},
        )
    return CheckoutConfirmOut(status=result.status, orders=[_order_to_out(o) for o in result.orders])

# Asynchronous payment notification from the gateway
@router.post("/webhook", response_model=WebhookAck)
async def checkout_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: StripeClient = Depends(get_payment_gateway),
    stripe_signature: str = Header(None, alias="Stripe-Signature")
):
    body = await request.body()

    if not gateway.webhooks_configured:
        # Unsigned notifications are never applied; the provider redelivers later
        logger.error("Webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=503, detail="Webhook verification is not configured")

    if not gateway.verify_webhook_signature(body, stripe_signature):
        logger.warning("Webhook signature verification failed. header=%s", stripe_signature)
        raise HTTPException(status_code=403, detail="Signature verification failed")

    try:
        event = gateway.parse_event(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    if event is None:
        return WebhookAck(result="ignored")

    logger.info("Webhook %s for intent %s", event.event_type, event.intent_id)
    orchestrator = CheckoutOrchestrator(db, gateway)
    try:
        result = orchestrator.apply_event(event)
    except CheckoutFailed as e:
        # Non-2xx makes the gateway deliver again; pending record and cart are intact
        logger.error("Webhook for intent %s could not be applied: %s", event.intent_id, e)
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    if result is None:
        outcome = event.outcome
    else:
        outcome = "materialized" if result.created else "noop"

    user_id = result.orders[0].user_id if result and result.orders else None
    write_log(
        db, user_id=user_id, action="PAYMENT_WEBHOOK", resource="checkout", status="SUCCESS",
        ip=client_ip(request), meta={"intent_id": event.intent_id, "event": event.event_type, "result": outcome},
    )
    if result is not None and result.created:
        write_log(
            db, user_id=user_id, action="ORDER_MATERIALIZED", resource="orders", status="SUCCESS",
            ip=client_ip(request),
            meta={"intent_id": event.intent_id, "order_ids": [o.id for o in result.orders]},
        )
    return WebhookAck(result=outcome)
