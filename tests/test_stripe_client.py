import asyncio
import json
import time

import httpx
import pytest

from services.errors import GatewayUnavailable
from utils.stripe_client import FAILED, PENDING, SUCCEEDED, PaymentIntent, StripeClient

from conftest import sign_webhook, webhook_body


def run(coro):
    return asyncio.run(coro)


def test_create_intent_posts_form_with_idempotency_key(gateway, fake_stripe):
    intent = run(gateway.create_intent(2500, "usd", metadata={"user_id": 1}, idempotency_key="checkout-abc"))

    assert intent.amount == 2500
    assert intent.client_secret
    request = fake_stripe.requests[0]
    assert request.headers["Authorization"] == "Bearer sk_test_marketplace"
    assert request.headers["Idempotency-Key"] == "checkout-abc"
    form = dict(httpx.QueryParams(request.content.decode()))
    assert form["amount"] == "2500"
    assert form["metadata[user_id]"] == "1"


def test_same_idempotency_key_returns_same_intent(gateway, fake_stripe):
    first = run(gateway.create_intent(1000, "usd", idempotency_key="k1"))
    second = run(gateway.create_intent(1000, "usd", idempotency_key="k1"))
    assert first.intent_id == second.intent_id


@pytest.mark.parametrize("amount", [0, -5, 10.5])
def test_create_intent_requires_positive_integer_amount(gateway, fake_stripe, amount):
    with pytest.raises(ValueError):
        run(gateway.create_intent(amount, "usd"))
    assert fake_stripe.requests == []


def test_transient_errors_are_retried(gateway, fake_stripe):
    fake_stripe.failures = [503, httpx.ConnectError("connection refused")]
    intent = run(gateway.create_intent(1500, "usd"))

    assert intent.amount == 1500
    assert len(fake_stripe.requests) == 3


def test_client_errors_are_not_retried(gateway, fake_stripe):
    fake_stripe.failures = [400]
    with pytest.raises(GatewayUnavailable):
        run(gateway.create_intent(1500, "usd"))
    assert len(fake_stripe.requests) == 1


def test_retrieve_unknown_intent(gateway):
    with pytest.raises(GatewayUnavailable):
        run(gateway.retrieve_intent("pi_missing"))


def test_unconfigured_client_never_calls_provider(fake_stripe):
    client = StripeClient(secret_key="", transport=httpx.MockTransport(fake_stripe.handler))
    assert client.configured is False
    with pytest.raises(GatewayUnavailable):
        run(client.create_intent(100, "usd"))
    assert fake_stripe.requests == []


@pytest.mark.parametrize("status, error, outcome", [
    ("succeeded", None, SUCCEEDED),
    ("canceled", None, FAILED),
    ("requires_payment_method", "Card declined", FAILED),
    ("requires_payment_method", None, PENDING),
    ("processing", None, PENDING),
])
def test_intent_outcome(status, error, outcome):
    intent = PaymentIntent("pi_1", None, 100, "usd", status, failure_message=error)
    assert intent.outcome == outcome


def test_valid_webhook_signature(gateway):
    body = webhook_body("pi_1")
    assert gateway.verify_webhook_signature(body, sign_webhook(body)) is True


def test_webhook_signature_rejections(gateway):
    body = webhook_body("pi_1")

    assert gateway.verify_webhook_signature(body, None) is False
    assert gateway.verify_webhook_signature(body, "garbage") is False
    assert gateway.verify_webhook_signature(body, sign_webhook(body, secret="whsec_other")) is False
    assert gateway.verify_webhook_signature(body + b" ", sign_webhook(body)) is False
    stale = int(time.time()) - 3600
    assert gateway.verify_webhook_signature(body, sign_webhook(body, timestamp=stale)) is False


def test_webhook_rejected_when_no_secret_configured():
    client = StripeClient(secret_key="sk_test", webhook_secret="")
    body = webhook_body("pi_1")
    assert client.webhooks_configured is False
    assert client.verify_webhook_signature(body, None) is False
    assert client.verify_webhook_signature(body, sign_webhook(body, secret="")) is False


def test_parse_success_event(gateway):
    event = gateway.parse_event(webhook_body("pi_42"))
    assert event.intent_id == "pi_42"
    assert event.outcome == SUCCEEDED


def test_parse_failure_event_carries_message(gateway):
    body = webhook_body(
        "pi_42", "payment_intent.payment_failed",
        last_payment_error={"message": "Insufficient funds"},
    )
    event = gateway.parse_event(body)
    assert event.outcome == FAILED
    assert event.failure_message == "Insufficient funds"


def test_parse_irrelevant_event(gateway):
    body = json.dumps({"type": "charge.refunded", "data": {"object": {"id": "ch_1"}}}).encode()
    assert gateway.parse_event(body) is None


def test_parse_malformed_payload(gateway):
    with pytest.raises(ValueError):
        gateway.parse_event(b"not json")
