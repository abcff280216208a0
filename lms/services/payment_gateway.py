"""Payment gateway adapter: checkout sessions and signed webhooks.

Two backends behind the PaymentGateway Protocol (same pattern as the
repos):

  StripeGateway           the official ``stripe`` SDK, used when
                          STRIPE_SECRET_KEY is configured
  InMemoryPaymentGateway  records sessions locally; dev and tests

WEBHOOK SIGNATURES
-------------------
Every delivery carries ``Stripe-Signature: t=<unix ts>,v1=<hex hmac>``
computed over ``"<t>.<raw body>"``.  Both backends hand the raw bytes to
``stripe.Webhook.construct_event`` before any JSON parsing, so a stale
timestamp, a bad header or a forged body fail the same way in dev and in
prod.  ``sign_payload`` produces deliveries for the in-memory gateway and
for tests.

Neither backend knows about HTTP status codes; they raise
PaymentGatewayError / WebhookVerificationError and the purchase service
maps those onto UpstreamError / SignatureError.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

import stripe

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


class PaymentGatewayError(Exception):
    """The gateway call failed or returned something unusable."""


class WebhookVerificationError(Exception):
    """Signature header missing, malformed, stale, or not matching."""


@dataclass(frozen=True, slots=True)
class CheckoutRequest:
    amount: Decimal
    currency: str
    product_name: str
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    id: str
    url: str | None


@dataclass(frozen=True, slots=True)
class WebhookEvent:
    """A verified gateway event.  ``object`` is the event's data.object."""

    id: str
    type: str
    object: dict[str, Any]

    @property
    def session_id(self) -> str | None:
        value = self.object.get("id")
        return str(value) if value else None

    @property
    def metadata(self) -> dict[str, str]:
        raw = self.object.get("metadata") or {}
        return {str(k): str(v) for k, v in raw.items()}

    @property
    def amount_total(self) -> Decimal | None:
        """Captured amount in currency units (the gateway reports minor units)."""
        raw = self.object.get("amount_total")
        if raw is None:
            return None
        return (Decimal(int(raw)) / 100).quantize(Decimal("0.01"))


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Signing / verification
# ---------------------------------------------------------------------------


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a signature header value for ``payload``.

    Used by the in-memory gateway and by tests to produce deliveries that
    verify exactly like real ones.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v1={compute_signature(payload, secret, ts)}"


def parse_event(payload: bytes) -> WebhookEvent:
    try:
        body = json.loads(payload)
        return WebhookEvent(
            id=str(body.get("id", "")),
            type=str(body["type"]),
            object=dict(body["data"]["object"]),
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise WebhookVerificationError(f"malformed event payload: {e}") from None


def verify_event(
    payload: bytes,
    sig_header: str | None,
    secret: str,
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> WebhookEvent:
    """Check ``sig_header`` against the raw ``payload``, then parse it.

    Raises WebhookVerificationError for a missing, malformed, stale or
    non-matching header and for a body that is not a gateway event.
    """
    if not sig_header:
        raise WebhookVerificationError("missing signature header")
    try:
        stripe.Webhook.construct_event(payload, sig_header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        raise WebhookVerificationError(str(e)) from None
    except ValueError as e:
        raise WebhookVerificationError(f"malformed event payload: {e}") from None
    return parse_event(payload)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


@runtime_checkable
class PaymentGateway(Protocol):
    async def create_checkout_session(
        self, request: CheckoutRequest
    ) -> CheckoutSession: ...

    def construct_event(self, payload: bytes, sig_header: str | None) -> WebhookEvent:
        """Verify the signature, then parse.  Never parses unverified bytes."""
        ...


class StripeGateway:
    """Stripe Checkout through ``stripe.StripeClient``.

    ``client`` is injectable for tests; by default one is built from the
    secret key with a couple of network retries.
    """

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        *,
        client: stripe.StripeClient | None = None,
        max_network_retries: int = 2,
    ) -> None:
        self._webhook_secret = webhook_secret
        self._client = client or stripe.StripeClient(
            secret_key, max_network_retries=max_network_retries
        )

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": request.currency,
                        "unit_amount": to_minor_units(request.amount),
                        "product_data": {"name": request.product_name},
                    },
                }
            ],
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": dict(request.metadata),
        }
        try:
            session = await self._client.v1.checkout.sessions.create_async(params=params)
        except stripe.StripeError as e:
            logger.error(
                "Checkout session request failed status=%s: %s",
                e.http_status,
                e.user_message or e,
            )
            raise PaymentGatewayError(f"gateway call failed: {e}") from e

        if not session.id:
            raise PaymentGatewayError("gateway response has no session id")
        return CheckoutSession(id=str(session.id), url=session.url)

    def construct_event(self, payload: bytes, sig_header: str | None) -> WebhookEvent:
        return verify_event(payload, sig_header, self._webhook_secret)


class InMemoryPaymentGateway:
    """Local stand-in for dev/test.

    Sessions get ``cs_test_<hex>`` ids and a fake hosted-checkout URL.
    Set ``fail_next`` to make the next create_checkout_session() raise,
    or ``omit_url`` to return a session without a URL.
    """

    def __init__(self, webhook_secret: str = "whsec_dev") -> None:
        self.webhook_secret = webhook_secret
        self.sessions: dict[str, CheckoutRequest] = {}
        self.fail_next = False
        self.omit_url = False

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        if self.fail_next:
            self.fail_next = False
            raise PaymentGatewayError("simulated gateway failure")
        session_id = f"cs_test_{uuid4().hex}"
        self.sessions[session_id] = request
        url = None if self.omit_url else f"https://checkout.example.test/pay/{session_id}"
        return CheckoutSession(id=session_id, url=url)

    def construct_event(self, payload: bytes, sig_header: str | None) -> WebhookEvent:
        return verify_event(payload, sig_header, self.webhook_secret)

    def build_event(
        self,
        session_id: str,
        *,
        event_type: str = "checkout.session.completed",
        amount_total: int | None = None,
    ) -> bytes:
        """Serialize a delivery for a session created by this gateway."""
        request = self.sessions.get(session_id)
        obj: dict[str, Any] = {
            "id": session_id,
            "object": "checkout.session",
            "metadata": dict(request.metadata) if request else {},
        }
        if amount_total is not None:
            obj["amount_total"] = amount_total
        elif request is not None:
            obj["amount_total"] = to_minor_units(request.amount)
        event = {"id": f"evt_{uuid4().hex}", "type": event_type, "data": {"object": obj}}
        return json.dumps(event).encode()

    def reset(self) -> None:
        self.sessions.clear()
        self.fail_next = False
        self.omit_url = False
