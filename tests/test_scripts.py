from datetime import datetime, timedelta, timezone
from decimal import Decimal

from expire_intents import run_sweep
from models.log import Log
from models.pending_intent import PendingIntent, PendingIntentStatus
from models.plant import Plant
from populate_db import DEMO_PLANTS, seed_catalog


def _pending(intent_id, age_minutes, status=PendingIntentStatus.PENDING):
    return PendingIntent(
        intent_id=intent_id,
        user_id=1,
        amount_minor=1000,
        total_amount=Decimal("10.00"),
        currency="usd",
        lines=[{"item_id": 1, "vendor_id": 7, "quantity": 1, "price_per_unit": "10.00"}],
        status=status,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=age_minutes),
    )


def test_sweep_expires_stale_records_and_logs(db):
    db.add_all([
        _pending("pi_old", 120),
        _pending("pi_fresh", 5),
        _pending("pi_declined", 120, PendingIntentStatus.FAILED),
    ])
    db.commit()

    assert run_sweep(db, ttl_minutes=60) == ["pi_old"]

    db.expire_all()
    assert db.get(PendingIntent, "pi_old").status == PendingIntentStatus.EXPIRED
    assert db.get(PendingIntent, "pi_fresh").status == PendingIntentStatus.PENDING
    assert db.get(PendingIntent, "pi_declined").status == PendingIntentStatus.FAILED

    logs = db.query(Log).filter_by(action="PENDING_INTENT_EXPIRED").all()
    assert [l.meta["intent_id"] for l in logs] == ["pi_old"]


def test_seed_catalog_only_fills_empty_catalog(db):
    assert seed_catalog(db) == len(DEMO_PLANTS)
    assert seed_catalog(db) == 0
    assert db.query(Plant).count() == len(DEMO_PLANTS)
    assert all(p.in_stock for p in db.query(Plant))
