# backend/services/checkout.py
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from config import settings
from models.cart import CartItem
from models.order import Order, OrderItem, OrderStatus
from models.payment import Payment, PaymentMethod
from models.pending_intent import PendingIntent, PendingIntentStatus
from services.cart_store import CartStore
from services.catalog import CatalogReader
from services.errors import (
    CheckoutFailed,
    EmptyCart,
    Forbidden,
    ItemBecameUnavailable,
    PaymentFailed,
)
from utils.money import from_minor_units, quantize, to_minor_units
from utils.stripe_client import FAILED, SUCCEEDED, StripeClient, WebhookEvent

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def materialization_retry():
    # One automatic retry for transient store contention
    return retry(
        reraise=True,
        stop=stop_after_attempt(2),
        wait=wait_fixed(0.1),
        retry=retry_if_exception_type(OperationalError),
    )


@dataclass(frozen=True)
class SnapshotLine:
    item_id: int
    vendor_id: int
    quantity: int
    price_per_unit: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price_per_unit * self.quantity

    def to_json(self) -> dict:
        return {
            "item_id": self.item_id,
            "vendor_id": self.vendor_id,
            "quantity": self.quantity,
            "price_per_unit": str(self.price_per_unit),
        }

    @classmethod
    def from_json(cls, data: dict) -> "SnapshotLine":
        return cls(
            item_id=int(data["item_id"]),
            vendor_id=int(data["vendor_id"]),
            quantity=int(data["quantity"]),
            price_per_unit=Decimal(data["price_per_unit"]),
        )


@dataclass
class CheckoutSnapshot:
    buyer_id: int
    lines: List[SnapshotLine]
    total: Decimal
    amount_minor: int
    orders_placed: int = 0

    def idempotency_key(self) -> str:
        # Same buyer, lines and amount -> same provider intent, until an order
        # is placed; buying the same cart again then opens a new intent
        body = json.dumps(
            {
                "buyer": self.buyer_id,
                "amount": self.amount_minor,
                "lines": [l.to_json() for l in self.lines],
                "orders_placed": self.orders_placed,
            },
            sort_keys=True,
        )
        return "checkout-" + hashlib.sha256(body.encode("utf-8")).hexdigest()


@dataclass
class IntentResult:
    intent_id: str
    client_secret: Optional[str]
    amount_minor: int
    total: Decimal
    currency: str
    lines: List[SnapshotLine]


@dataclass
class MaterializationResult:
    intent_id: str
    orders: List[Order] = field(default_factory=list)
    created: bool = False


@dataclass
class ConfirmationResult:
    status: str  # materialized | pending | noop
    orders: List[Order] = field(default_factory=list)
    created: bool = False


def group_by_vendor(lines: List[SnapshotLine]) -> Dict[int, List[SnapshotLine]]:
    groups: Dict[int, List[SnapshotLine]] = {}
    for line in lines:
        groups.setdefault(line.vendor_id, []).append(line)
    return groups


class CheckoutOrchestrator:
    """
    Cart -> payment intent -> order state machine.

    CartReview -> IntentCreated: re-validate the cart against the catalog,
    create a provider intent and store a pending record holding the price
    snapshot. IntentCreated -> OrderMaterialized: on confirmed payment, turn the
    pending record into orders, items and payments, empty the cart and delete
    the record, all in one transaction. The pending record is the idempotency
    anchor: once it is gone, further confirmations are no-ops.
    """

    def __init__(self, db: Session, gateway: StripeClient, catalog: Optional[CatalogReader] = None):
        self.db = db
        self.gateway = gateway
        self.catalog = catalog or CatalogReader(db)
        self.cart = CartStore(db, self.catalog)

    # CartReview
    def review(self, buyer_id: int) -> CheckoutSnapshot:
        lines = self.cart.lines(buyer_id)
        if not lines:
            raise EmptyCart()

        snapshots = self.catalog.get_items(line.plant_id for line in lines)
        snapshot_lines = []
        for line in lines:
            snap = snapshots.get(line.plant_id)
            if snap is None or not snap.available:
                raise ItemBecameUnavailable(line.plant_id)
            snapshot_lines.append(SnapshotLine(
                item_id=line.plant_id,
                vendor_id=snap.vendor_id,
                quantity=line.quantity,
                price_per_unit=snap.price,
            ))

        total = quantize(sum((l.subtotal for l in snapshot_lines), Decimal("0.00")))
        amount_minor = to_minor_units(total)
        orders_placed = self.db.query(func.count(Order.id)).filter(Order.user_id == buyer_id).scalar()
        return CheckoutSnapshot(
            buyer_id=buyer_id,
            lines=snapshot_lines,
            total=from_minor_units(amount_minor),
            amount_minor=amount_minor,
            orders_placed=orders_placed or 0,
        )

    # CartReview -> IntentCreated
    async def create_intent(self, buyer_id: int) -> IntentResult:
        snapshot = self.review(buyer_id)
        # No transaction stays open across the provider call
        self.db.rollback()

        currency = settings.PAYMENT_CURRENCY
        intent = await self.gateway.create_intent(
            snapshot.amount_minor,
            currency,
            metadata={"user_id": buyer_id},
            idempotency_key=snapshot.idempotency_key(),
        )

        try:
            self._store_pending(intent.intent_id, snapshot, currency)
        except IntegrityError:
            # A concurrent checkout of the same cart stored the record first
            self.db.rollback()
            logger.info("Pending record for intent %s created concurrently, refreshing it", intent.intent_id)
            self._store_pending(intent.intent_id, snapshot, currency)

        logger.info(
            "Checkout intent %s created for buyer %s: %s lines, total %s",
            intent.intent_id, buyer_id, len(snapshot.lines), snapshot.total,
        )
        return IntentResult(
            intent_id=intent.intent_id,
            client_secret=intent.client_secret,
            amount_minor=snapshot.amount_minor,
            total=snapshot.total,
            currency=currency,
            lines=snapshot.lines,
        )

    def _store_pending(self, intent_id: str, snapshot: CheckoutSnapshot, currency: str) -> PendingIntent:
        pending = self.db.get(PendingIntent, intent_id)
        if pending:
            # Retried checkout of an unchanged cart reuses the provider intent
            logger.info("Refreshing pending record for intent %s", intent_id)
            pending.status = PendingIntentStatus.PENDING
            pending.failure_reason = None
            pending.created_at = _utcnow()
        else:
            pending = PendingIntent(intent_id=intent_id, created_at=_utcnow())
            self.db.add(pending)
        pending.user_id = snapshot.buyer_id
        pending.amount_minor = snapshot.amount_minor
        pending.total_amount = snapshot.total
        pending.currency = currency
        pending.lines = [l.to_json() for l in snapshot.lines]
        self.db.commit()
        return pending

    def orders_for_transaction(self, intent_id: str) -> List[Order]:
        return (
            self.db.query(Order)
            .join(Payment, Payment.order_id == Order.id)
            .options(selectinload(Order.items), selectinload(Order.payment))
            .filter(Payment.transaction_id == intent_id)
            .order_by(Order.id)
            .all()
        )

    # IntentCreated -> PaymentConfirmed -> OrderMaterialized
    def materialize(self, intent_id: str, payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD) -> MaterializationResult:
        try:
            return self._materialize_once(intent_id, payment_method)
        except CheckoutFailed:
            raise
        except SQLAlchemyError as e:
            logger.exception("Materialization of intent %s failed, pending record kept for retry", intent_id)
            raise CheckoutFailed() from e

    @materialization_retry()
    def _materialize_once(self, intent_id: str, payment_method: PaymentMethod) -> MaterializationResult:
        try:
            pending = (
                self.db.query(PendingIntent)
                .filter(PendingIntent.intent_id == intent_id)
                .with_for_update()
                .first()
            )
            if pending is None:
                self.db.rollback()
                logger.info("Intent %s already materialized or unknown, nothing to do", intent_id)
                return MaterializationResult(intent_id, self.orders_for_transaction(intent_id), created=False)

            if pending.status != PendingIntentStatus.PENDING:
                # Paid after a decline or after expiry: the buyer was charged, honour it
                logger.warning("Intent %s confirmed while %s, materializing anyway", intent_id, pending.status.value)

            now = _utcnow()
            lines = [SnapshotLine.from_json(l) for l in pending.lines]
            orders = []
            for vendor_id, vendor_lines in group_by_vendor(lines).items():
                total = quantize(sum((l.subtotal for l in vendor_lines), Decimal("0.00")))
                order = Order(
                    user_id=pending.user_id,
                    vendor_id=vendor_id,
                    status=OrderStatus.PENDING,
                    total_amount=total,
                    order_date=now,
                )
                order.items = [
                    OrderItem(plant_id=l.item_id, quantity=l.quantity, price_per_unit=l.price_per_unit)
                    for l in vendor_lines
                ]
                order.payment = Payment(
                    vendor_id=vendor_id,
                    payment_method=payment_method,
                    amount=total,
                    payment_status="completed",
                    transaction_id=intent_id,
                    payment_date=now,
                )
                self.db.add(order)
                orders.append(order)

            charged = sum((o.total_amount for o in orders), Decimal("0.00"))
            if charged != quantize(pending.total_amount):
                logger.error("Intent %s: order totals %s differ from charged %s", intent_id, charged, pending.total_amount)
                raise CheckoutFailed()

            self.db.query(CartItem).filter(CartItem.user_id == pending.user_id).delete(synchronize_session=False)
            self.db.delete(pending)
            self.db.commit()
        except IntegrityError:
            # A concurrent confirmation committed the same payment first
            self.db.rollback()
            existing = self.orders_for_transaction(intent_id)
            if existing:
                logger.info("Intent %s was materialized concurrently, nothing to do", intent_id)
                return MaterializationResult(intent_id, existing, created=False)
            raise
        except Exception:
            self.db.rollback()
            raise

        for order in orders:
            self.db.refresh(order)
        logger.info("Intent %s materialized into orders %s", intent_id, [o.id for o in orders])
        return MaterializationResult(intent_id, orders, created=True)

    # IntentCreated -> PaymentFailed
    def record_failure(self, intent_id: str, reason: Optional[str] = None) -> bool:
        pending = (
            self.db.query(PendingIntent)
            .filter(PendingIntent.intent_id == intent_id)
            .with_for_update()
            .first()
        )
        if pending is None:
            self.db.rollback()
            return False

        pending.status = PendingIntentStatus.FAILED
        pending.failure_reason = reason or "declined"
        self.db.commit()
        logger.info("Intent %s marked failed: %s", intent_id, pending.failure_reason)
        return True

    def apply_event(self, event: WebhookEvent) -> Optional[MaterializationResult]:
        if event.outcome == SUCCEEDED:
            return self.materialize(event.intent_id)
        if event.outcome == FAILED:
            self.record_failure(event.intent_id, event.failure_message)
        return None

    async def confirm(self, buyer_id: int, intent_id: str) -> ConfirmationResult:
        """Client-side confirmation; the provider is asked for the real outcome."""
        pending = self.db.get(PendingIntent, intent_id)
        if pending is None:
            orders = self.orders_for_transaction(intent_id)
            if any(o.user_id != buyer_id for o in orders):
                raise Forbidden()
            return ConfirmationResult(status="materialized" if orders else "noop", orders=orders)

        if pending.user_id != buyer_id:
            raise Forbidden()
        self.db.rollback()

        intent = await self.gateway.retrieve_intent(intent_id)
        if intent.outcome == SUCCEEDED:
            result = self.materialize(intent_id)
            return ConfirmationResult(status="materialized", orders=result.orders, created=result.created)
        if intent.outcome == FAILED:
            self.record_failure(intent_id, intent.failure_message)
            raise PaymentFailed(intent.failure_message or None)
        return ConfirmationResult(status="pending")


def expire_pending_intents(db: Session, now: Optional[datetime] = None, ttl_minutes: Optional[int] = None) -> List[str]:
    """Moves unconfirmed pending records older than the TTL to ``expired``."""
    now = now or _utcnow()
    ttl = ttl_minutes if ttl_minutes is not None else settings.PENDING_INTENT_TTL_MINUTES
    cutoff = now - timedelta(minutes=ttl)

    stale = (
        db.query(PendingIntent)
        .filter(
            PendingIntent.status == PendingIntentStatus.PENDING,
            PendingIntent.created_at < cutoff,
        )
        .with_for_update()
        .all()
    )
    for pending in stale:
        pending.status = PendingIntentStatus.EXPIRED
        pending.failure_reason = "expired without confirmation"
    db.commit()

    expired = [p.intent_id for p in stale]
    if expired:
        logger.info("Expired %d pending intents: %s", len(expired), expired)
    return expired
