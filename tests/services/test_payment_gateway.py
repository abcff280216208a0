"""Webhook signature verification and the Stripe SDK adapter."""

from __future__ import annotations

import asyncio
import json
import time
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest
import stripe

from lms.services.payment_gateway import (
    CheckoutRequest,
    InMemoryPaymentGateway,
    PaymentGatewayError,
    StripeGateway,
    WebhookVerificationError,
    compute_signature,
    parse_event,
    sign_payload,
    to_minor_units,
    verify_event,
)

SECRET = "whsec_test"
PAYLOAD = b'{"id":"evt_1","type":"checkout.session.completed","data":{"object":{"id":"cs_1"}}}'


# ---- signatures ----


def test_valid_signature_passes() -> None:
    event = verify_event(PAYLOAD, sign_payload(PAYLOAD, SECRET), SECRET)
    assert event.session_id == "cs_1"


def test_any_matching_v1_candidate_is_accepted() -> None:
    ts = int(time.time())
    header = f"t={ts},v1=deadbeef,v1={compute_signature(PAYLOAD, SECRET, ts)}"
    assert verify_event(PAYLOAD, header, SECRET).type == "checkout.session.completed"


@pytest.mark.parametrize(
    "header",
    [None, "", "garbage", "t=abc,v1=00", f"t={int(time.time())}", "v1=abcdef"],
)
def test_malformed_headers_rejected(header: str | None) -> None:
    with pytest.raises(WebhookVerificationError):
        verify_event(PAYLOAD, header, SECRET)


def test_wrong_secret_rejected() -> None:
    with pytest.raises(WebhookVerificationError):
        verify_event(PAYLOAD, sign_payload(PAYLOAD, "whsec_other"), SECRET)


def test_tampered_body_rejected() -> None:
    header = sign_payload(PAYLOAD, SECRET)
    with pytest.raises(WebhookVerificationError):
        verify_event(PAYLOAD.replace(b"cs_1", b"cs_2"), header, SECRET)


def test_stale_timestamp_rejected() -> None:
    header = sign_payload(PAYLOAD, SECRET, timestamp=int(time.time()) - 301)
    with pytest.raises(WebhookVerificationError, match="tolerance"):
        verify_event(PAYLOAD, header, SECRET)


def test_signed_non_json_body_rejected() -> None:
    body = b"not json"
    with pytest.raises(WebhookVerificationError, match="malformed event payload"):
        verify_event(body, sign_payload(body, SECRET), SECRET)


def test_parse_event_exposes_session_fields() -> None:
    payload = json.dumps(
        {
            "id": "evt_9",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_9",
                    "amount_total": 49900,
                    "metadata": {"courseId": "c", "userId": "u"},
                }
            },
        }
    ).encode()
    event = parse_event(payload)
    assert event.session_id == "cs_9"
    assert event.amount_total == Decimal("499.00")
    assert event.metadata == {"courseId": "c", "userId": "u"}


def test_parse_event_rejects_non_event_json() -> None:
    with pytest.raises(WebhookVerificationError):
        parse_event(b'{"hello": "world"}')


def test_minor_units_round_half_up() -> None:
    assert to_minor_units(Decimal("499")) == 49900
    assert to_minor_units(Decimal("19.995")) == 2000


def test_in_memory_gateway_verifies_with_its_secret() -> None:
    gateway = InMemoryPaymentGateway(webhook_secret=SECRET)
    assert gateway.construct_event(PAYLOAD, sign_payload(PAYLOAD, SECRET)).id == "evt_1"
    with pytest.raises(WebhookVerificationError):
        gateway.construct_event(PAYLOAD, sign_payload(PAYLOAD, "whsec_dev"))


# ---- StripeGateway over a stand-in SDK client ----


def _request() -> CheckoutRequest:
    return CheckoutRequest(
        amount=Decimal("499"),
        currency="inr",
        product_name="Intro",
        success_url="http://app/course-progress/1",
        cancel_url="http://app/course-detail/1",
        metadata={"courseId": "1", "userId": "u1", "purchaseId": "p1"},
    )


def _client(create_async: Any) -> Any:
    sessions = SimpleNamespace(create_async=create_async)
    return SimpleNamespace(v1=SimpleNamespace(checkout=SimpleNamespace(sessions=sessions)))


def test_stripe_gateway_sends_line_item_and_returns_session() -> None:
    seen: dict[str, Any] = {}

    async def create_async(*, params: dict[str, Any]) -> SimpleNamespace:
        seen.update(params)
        return SimpleNamespace(id="cs_live_1", url="https://pay.example/cs_live_1")

    gateway = StripeGateway("sk_test_1", SECRET, client=_client(create_async))
    session = asyncio.run(gateway.create_checkout_session(_request()))

    assert session.id == "cs_live_1"
    assert session.url == "https://pay.example/cs_live_1"
    assert seen["mode"] == "payment"
    assert seen["metadata"] == {"courseId": "1", "userId": "u1", "purchaseId": "p1"}
    price = seen["line_items"][0]["price_data"]
    assert price["unit_amount"] == 49900
    assert price["currency"] == "inr"
    assert price["product_data"] == {"name": "Intro"}


def test_stripe_gateway_sdk_error_raises() -> None:
    async def create_async(*, params: dict[str, Any]) -> SimpleNamespace:
        raise stripe.APIConnectionError("connection refused")

    gateway = StripeGateway("sk_test_1", SECRET, client=_client(create_async))
    with pytest.raises(PaymentGatewayError, match="connection refused"):
        asyncio.run(gateway.create_checkout_session(_request()))


def test_stripe_gateway_invalid_request_raises() -> None:
    async def create_async(*, params: dict[str, Any]) -> SimpleNamespace:
        raise stripe.InvalidRequestError("No such price", param="line_items", http_status=400)

    gateway = StripeGateway("sk_test_1", SECRET, client=_client(create_async))
    with pytest.raises(PaymentGatewayError):
        asyncio.run(gateway.create_checkout_session(_request()))


def test_stripe_gateway_session_without_id_raises() -> None:
    async def create_async(*, params: dict[str, Any]) -> SimpleNamespace:
        return SimpleNamespace(id=None, url=None)

    gateway = StripeGateway("sk_test_1", SECRET, client=_client(create_async))
    with pytest.raises(PaymentGatewayError, match="no session id"):
        asyncio.run(gateway.create_checkout_session(_request()))


def test_stripe_gateway_constructs_verified_events() -> None:
    gateway = StripeGateway("sk_test_1", SECRET, client=_client(None))
    event = gateway.construct_event(PAYLOAD, sign_payload(PAYLOAD, SECRET))
    assert event.type == "checkout.session.completed"
    with pytest.raises(WebhookVerificationError):
        gateway.construct_event(PAYLOAD, sign_payload(PAYLOAD, "nope"))
