import hashlib
import hmac
import itertools
import json
import os
import time
from decimal import Decimal

# Settings are read at import time; point them at an in-memory database first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_marketplace"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_marketplace"
os.environ["SECRET_KEY"] = "test-secret"

import httpx
import pytest
from fastapi.testclient import TestClient

from database import Base, SessionLocal, engine, get_db, init_db
from main import app
from models.plant import Plant
from utils.stripe_client import StripeClient, get_payment_gateway
from utils.tokenJWT import create_access_token

WEBHOOK_SECRET = "whsec_test_marketplace"


class FakeStripe:
    """In-memory stand-in for the provider's payment intent API."""

    def __init__(self):
        self.intents = {}
        self.by_idempotency_key = {}
        self.requests = []
        self.failures = []  # exceptions or status codes returned before serving
        self._ids = itertools.count(1)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return httpx.Response(failure, json={"error": {"message": "provider trouble"}})

        if request.method == "POST" and request.url.path == "/v1/payment_intents":
            key = request.headers.get("Idempotency-Key")
            if key and key in self.by_idempotency_key:
                return httpx.Response(200, json=self.intents[self.by_idempotency_key[key]])
            form = dict(httpx.QueryParams(request.content.decode()))
            intent_id = f"pi_test_{next(self._ids)}"
            self.intents[intent_id] = {
                "id": intent_id,
                "object": "payment_intent",
                "amount": int(form["amount"]),
                "currency": form["currency"],
                "status": "requires_payment_method",
                "client_secret": f"{intent_id}_secret_abc",
                "metadata": {k[9:-1]: v for k, v in form.items() if k.startswith("metadata[")},
                "last_payment_error": None,
            }
            if key:
                self.by_idempotency_key[key] = intent_id
            return httpx.Response(200, json=self.intents[intent_id])

        if request.method == "GET" and request.url.path.startswith("/v1/payment_intents/"):
            intent_id = request.url.path.rsplit("/", 1)[-1]
            if intent_id not in self.intents:
                return httpx.Response(404, json={"error": {"message": "No such payment_intent"}})
            return httpx.Response(200, json=self.intents[intent_id])

        return httpx.Response(404, json={"error": {"message": "unknown endpoint"}})

    def succeed(self, intent_id):
        self.intents[intent_id]["status"] = "succeeded"

    def decline(self, intent_id, message="Your card was declined."):
        self.intents[intent_id]["status"] = "requires_payment_method"
        self.intents[intent_id]["last_payment_error"] = {"message": message}

    def intent_amounts(self):
        return [i["amount"] for i in self.intents.values()]


def sign_webhook(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = str(timestamp).encode() + b"." + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def webhook_body(intent_id: str, event_type: str = "payment_intent.succeeded", **obj) -> bytes:
    data = {"id": intent_id, "object": "payment_intent"}
    data.update(obj)
    return json.dumps({"id": "evt_test", "type": event_type, "data": {"object": data}}).encode()


def auth(user_id: int, role: str = "corporate") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture(autouse=True)
def _schema():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_stripe():
    return FakeStripe()


@pytest.fixture()
def gateway(fake_stripe):
    return StripeClient(
        api_url="https://stripe.test",
        secret_key="sk_test_marketplace",
        webhook_secret=WEBHOOK_SECRET,
        timeout=2,
        transport=httpx.MockTransport(fake_stripe.handler),
    )


def override_get_db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(gateway):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def plants(db):
    """Catalog: two plants of vendor 7, one of vendor 8, one out of stock."""
    rows = {
        "A": Plant(name="Snake Plant", price=Decimal("10.00"), in_stock=True, vendor_id=7),
        "B": Plant(name="Pothos", price=Decimal("5.00"), in_stock=True, vendor_id=7),
        "C": Plant(name="Monstera", price=Decimal("48.00"), in_stock=True, vendor_id=8),
        "X": Plant(name="Ghost Orchid", price=Decimal("99.99"), in_stock=False, vendor_id=8),
    }
    db.add_all(rows.values())
    db.commit()
    return {key: plant.id for key, plant in rows.items()}
