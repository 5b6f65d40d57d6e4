# backend/utils/stripe_client.py
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from config import settings
from services.errors import GatewayUnavailable

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
FAILED = "failed"
PENDING = "pending"

# Webhook events that carry a payment outcome
_EVENT_OUTCOMES = {
    "payment_intent.succeeded": SUCCEEDED,
    "payment_intent.payment_failed": FAILED,
    "payment_intent.canceled": FAILED,
}


@dataclass
class PaymentIntent:
    intent_id: str
    client_secret: Optional[str]
    amount: int
    currency: str
    status: str
    failure_message: Optional[str] = None

    @property
    def outcome(self) -> str:
        if self.status == "succeeded":
            return SUCCEEDED
        if self.status == "canceled":
            return FAILED
        # A declined attempt sends the intent back to requires_payment_method
        if self.status == "requires_payment_method" and self.failure_message:
            return FAILED
        return PENDING


@dataclass
class WebhookEvent:
    event_type: str
    intent_id: str
    outcome: str
    failure_message: Optional[str] = None


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


def gateway_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(settings.GATEWAY_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception(_is_transient),
    )


def _to_intent(data: dict) -> PaymentIntent:
    if not data.get("id"):
        logger.error("Payment gateway response without intent id: %s", data)
        raise GatewayUnavailable()
    last_error = data.get("last_payment_error") or {}
    return PaymentIntent(
        intent_id=data["id"],
        client_secret=data.get("client_secret"),
        amount=int(data.get("amount") or 0),
        currency=data.get("currency") or settings.PAYMENT_CURRENCY,
        status=data.get("status") or "",
        failure_message=last_error.get("message"),
    )


class StripeClient:
    """
    Payment intent gateway over the provider's REST API.

    Provider failures never escape this class: callers only ever see
    ``GatewayUnavailable``.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        # Initialize configuration
        self.api_url = api_url or settings.STRIPE_API_URL
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    @property
    def webhooks_configured(self) -> bool:
        return bool(self.webhook_secret)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.secret_key}"},
        )

    @gateway_retry()
    async def _send(self, method: str, path: str, data: Optional[dict] = None, headers: Optional[dict] = None) -> dict:
        async with self._client() as client:
            response = await client.request(method, path, data=data, headers=headers)
            response.raise_for_status()
            return response.json()

    async def _call(self, method: str, path: str, data: Optional[dict] = None, headers: Optional[dict] = None) -> dict:
        if not self.configured:
            logger.error("Payment gateway is not configured (STRIPE_SECRET_KEY missing)")
            raise GatewayUnavailable("Payment service is not configured")
        try:
            return await self._send(method, path, data=data, headers=headers)
        except httpx.HTTPStatusError as e:
            logger.error("Payment gateway %s %s failed: %s %s", method, path, e.response.status_code, e.response.text)
            raise GatewayUnavailable() from e
        except httpx.HTTPError as e:
            logger.error("Payment gateway %s %s unreachable: %s", method, path, e)
            raise GatewayUnavailable() from e
        except ValueError as e:
            logger.error("Payment gateway %s %s returned an unreadable body: %s", method, path, e)
            raise GatewayUnavailable() from e

    async def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        if not isinstance(amount, int) or amount <= 0:
            raise ValueError("Intent amount must be a positive integer in minor units")

        form = {
            "amount": str(amount),
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = str(value)

        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        data = await self._call("POST", "/v1/payment_intents", data=form, headers=headers)
        intent = _to_intent(data)
        logger.info("Payment intent %s created for %s %s", intent.intent_id, intent.amount, currency)
        return intent

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        data = await self._call("GET", f"/v1/payment_intents/{intent_id}")
        return _to_intent(data)

    def verify_webhook_signature(self, payload: bytes, header: Optional[str], tolerance: int = 300) -> bool:
        """Verifies the ``t=...,v1=...`` signature header of a webhook delivery."""
        if not self.webhooks_configured:
            logger.error("STRIPE_WEBHOOK_SECRET not set, webhook deliveries cannot be verified")
            return False
        if not header:
            return False

        timestamp, signatures = None, []
        for part in header.split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                signatures.append(value)

        if not timestamp or not signatures:
            return False
        try:
            if abs(time.time() - int(timestamp)) > tolerance:
                return False
        except ValueError:
            return False

        signed = timestamp.encode("utf-8") + b"." + payload
        expected = hmac.new(self.webhook_secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return any(hmac.compare_digest(expected, sig) for sig in signatures)

    def parse_event(self, payload: bytes) -> Optional[WebhookEvent]:
        """Returns the payment outcome carried by a webhook, or None for other events."""
        event = json.loads(payload)
        event_type = event.get("type", "")
        outcome = _EVENT_OUTCOMES.get(event_type)
        if outcome is None:
            return None

        obj = (event.get("data") or {}).get("object") or {}
        intent_id = obj.get("id")
        if not intent_id:
            return None
        last_error = obj.get("last_payment_error") or {}
        return WebhookEvent(
            event_type=event_type,
            intent_id=intent_id,
            outcome=outcome,
            failure_message=last_error.get("message"),
        )


stripe_client = StripeClient()


def get_payment_gateway() -> StripeClient:
    return stripe_client
