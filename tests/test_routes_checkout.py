import httpx

from main import app
from models.log import Log
from models.order import Order
from models.payment import Payment
from models.pending_intent import PendingIntent, PendingIntentStatus
from utils.stripe_client import StripeClient, get_payment_gateway

from conftest import auth, sign_webhook, webhook_body

BUYER = auth(1)


def open_intent(client, plants):
    client.post("/cart", json={"plant_id": plants["A"], "quantity": 2}, headers=BUYER)
    client.post("/cart", json={"plant_id": plants["B"], "quantity": 1}, headers=BUYER)
    res = client.post("/checkout/intent", headers=BUYER)
    assert res.status_code == 200
    return res.json()


def post_webhook(client, body, signature=None):
    headers = {"Stripe-Signature": signature or sign_webhook(body), "Content-Type": "application/json"}
    return client.post("/checkout/webhook", content=body, headers=headers)


def test_intent_returns_snapshot(client, plants):
    body = open_intent(client, plants)

    assert body["amount"] == 2500
    assert float(body["total_amount"]) == 25.0
    assert body["currency"] == "usd"
    assert body["client_secret"]
    assert len(body["items"]) == 2


def test_empty_cart_intent(client, plants, db):
    res = client.post("/checkout/intent", headers=BUYER)
    assert res.status_code == 400
    assert res.json()["detail"]["code"] == "EmptyCart"
    assert db.query(Log).filter_by(action="CHECKOUT_INTENT", status="FAIL").count() == 1


def test_gateway_down_rejects_checkout(client, plants, fake_stripe, db):
    client.post("/cart", json={"plant_id": plants["A"]}, headers=BUYER)
    fake_stripe.failures = [httpx.ConnectError("down")] * 3

    res = client.post("/checkout/intent", headers=BUYER)
    assert res.status_code == 502
    assert res.json()["detail"]["code"] == "GatewayUnavailable"
    assert db.query(PendingIntent).count() == 0


def test_confirm_then_webhook_creates_one_order(client, plants, fake_stripe, db):
    intent = open_intent(client, plants)
    fake_stripe.succeed(intent["intent_id"])

    res = client.post("/checkout/confirm", json={"intent_id": intent["intent_id"]}, headers=BUYER)
    assert res.status_code == 200
    assert res.json()["status"] == "materialized"
    assert float(res.json()["orders"][0]["total_amount"]) == 25.0

    res = post_webhook(client, webhook_body(intent["intent_id"]))
    assert res.status_code == 200
    assert res.json()["result"] == "noop"

    # A second client confirmation reports the existing order
    res = client.post("/checkout/confirm", json={"intent_id": intent["intent_id"]}, headers=BUYER)
    assert res.json()["status"] == "materialized"
    assert len(res.json()["orders"]) == 1

    assert db.query(Order).count() == 1
    assert db.query(Payment).count() == 1
    assert client.get("/cart", headers=BUYER).json()["items"] == []


def test_duplicate_webhook_delivery(client, plants, db):
    intent = open_intent(client, plants)
    body = webhook_body(intent["intent_id"])

    assert post_webhook(client, body).json()["result"] == "materialized"
    assert post_webhook(client, body).json()["result"] == "noop"
    assert db.query(Order).count() == 1
    assert db.query(Log).filter_by(action="ORDER_MATERIALIZED").count() == 1


def test_webhook_failure_event(client, plants, db):
    intent = open_intent(client, plants)
    body = webhook_body(
        intent["intent_id"], "payment_intent.payment_failed",
        last_payment_error={"message": "Card declined"},
    )

    res = post_webhook(client, body)
    assert res.status_code == 200
    assert res.json()["result"] == "failed"

    db.expire_all()
    assert db.get(PendingIntent, intent["intent_id"]).status == PendingIntentStatus.FAILED
    assert db.query(Order).count() == 0


def test_webhook_with_bad_signature(client, plants, db):
    intent = open_intent(client, plants)
    body = webhook_body(intent["intent_id"])

    res = post_webhook(client, body, signature=sign_webhook(body, secret="whsec_wrong"))
    assert res.status_code == 403
    assert db.query(Order).count() == 0


def test_unsigned_webhook_without_secret_creates_no_order(client, plants, fake_stripe, db):
    intent = open_intent(client, plants)
    unsigned = StripeClient(
        api_url="https://stripe.test",
        secret_key="sk_test_marketplace",
        webhook_secret="",
        transport=httpx.MockTransport(fake_stripe.handler),
    )
    app.dependency_overrides[get_payment_gateway] = lambda: unsigned

    body = webhook_body(intent["intent_id"])
    res = client.post("/checkout/webhook", content=body, headers={"Content-Type": "application/json"})

    assert res.status_code == 503
    assert db.query(Order).count() == 0
    assert db.get(PendingIntent, intent["intent_id"]) is not None
    assert len(client.get("/cart", headers=BUYER).json()["items"]) == 2


def test_webhook_ignores_other_events(client, plants):
    body = b'{"type": "customer.created", "data": {"object": {"id": "cus_1"}}}'
    res = post_webhook(client, body)
    assert res.status_code == 200
    assert res.json()["result"] == "ignored"


def test_webhook_malformed_payload(client, plants):
    res = post_webhook(client, b"{not json")
    assert res.status_code == 400


def test_declined_confirmation(client, plants, fake_stripe):
    intent = open_intent(client, plants)
    fake_stripe.decline(intent["intent_id"])

    res = client.post("/checkout/confirm", json={"intent_id": intent["intent_id"]}, headers=BUYER)
    assert res.status_code == 402
    assert res.json()["detail"]["code"] == "PaymentFailed"
    assert len(client.get("/cart", headers=BUYER).json()["items"]) == 2


def test_confirm_other_buyers_intent(client, plants):
    intent = open_intent(client, plants)
    res = client.post("/checkout/confirm", json={"intent_id": intent["intent_id"]}, headers=auth(2))
    assert res.status_code == 403
