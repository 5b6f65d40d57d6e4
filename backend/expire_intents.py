# backend/expire_intents.py
"""
Expires pending checkout intents that never received a payment confirmation.

Run periodically from a scheduler (cron, container job):

    python expire_intents.py
"""
import logging
import os
import sys

# Add 'backend' folder to Python path
sys.path.append(os.path.abspath(os.path.dirname(__file__)))

from database import SessionLocal, init_db
from services.checkout import expire_pending_intents
from utils.audit import write_log

logger = logging.getLogger(__name__)


def run_sweep(db, now=None, ttl_minutes=None):
    expired = expire_pending_intents(db, now=now, ttl_minutes=ttl_minutes)
    for intent_id in expired:
        write_log(
            db, user_id=None, action="PENDING_INTENT_EXPIRED", resource="checkout",
            status="SUCCESS", meta={"intent_id": intent_id},
        )
    return expired


def main():
    init_db()
    session = SessionLocal()
    try:
        expired = run_sweep(session)
        print(f"Expired {len(expired)} pending intents")
    finally:
        session.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
