import time

import pytest

from application.dtos.payments import CreateIntent
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from infrastructure.external.payments.fake_client import SIGNATURE_HEADER, FakePaymentClient


@pytest.mark.asyncio
async def test_create_intent_is_idempotent_per_key():
    gw = FakePaymentClient(webhook_secret="whsec_x")
    req = CreateIntent(amount=1500, currency="usd", metadata={"order_id": "o-1"}, idempotency_key="o-1")

    first = await gw.create_intent(req)
    second = await gw.create_intent(req)

    assert first.intent_id == second.intent_id
    assert first.currency == "USD"
    assert first.status == "requires_payment_method"
    assert len(gw.intents) == 1


@pytest.mark.asyncio
async def test_status_changes_are_visible_on_retrieve():
    gw = FakePaymentClient(webhook_secret="whsec_x")
    intent = await gw.create_intent(CreateIntent(amount=100, currency="EUR"))

    gw.set_status(intent.intent_id, "Succeeded")
    fetched = await gw.retrieve_intent(intent.intent_id)

    assert fetched.status == "succeeded"
    with pytest.raises(PaymentProviderError):
        await gw.retrieve_intent("pi_missing")


@pytest.mark.asyncio
async def test_configured_failure():
    gw = FakePaymentClient(webhook_secret="whsec_x")
    gw.configure(False, "card network down")

    with pytest.raises(PaymentProviderError) as exc_info:
        await gw.create_intent(CreateIntent(amount=100, currency="USD"))
    assert "card network down" in str(exc_info.value)


def test_signed_webhook_round_trip():
    gw = FakePaymentClient(webhook_secret="whsec_x", tolerance_seconds=300)
    headers, body = gw.build_webhook("pi_abc", "succeeded")

    event = gw.parse_webhook({k.lower(): v for k, v in headers.items()}, body)

    assert event.provider == "fake"
    assert event.type == "payment_intent.succeeded"
    assert event.intent_id == "pi_abc"
    assert event.reported_status == "succeeded"


@pytest.mark.parametrize(
    "mutate",
    [
        lambda h, b: ({}, b),
        lambda h, b: ({SIGNATURE_HEADER: "garbage"}, b),
        lambda h, b: (h, b.replace(b"succeeded", b"canceled")),
    ],
    ids=["missing", "malformed", "tampered"],
)
def test_invalid_signatures_are_rejected(mutate):
    gw = FakePaymentClient(webhook_secret="whsec_x")
    headers, body = mutate(*gw.build_webhook("pi_abc", "succeeded"))

    with pytest.raises(PaymentSignatureError):
        gw.parse_webhook(headers, body)


def test_signature_from_other_secret_is_rejected():
    signer = FakePaymentClient(webhook_secret="whsec_other")
    verifier = FakePaymentClient(webhook_secret="whsec_x")
    headers, body = signer.build_webhook("pi_abc", "succeeded")

    with pytest.raises(PaymentSignatureError):
        verifier.parse_webhook(headers, body)


def test_stale_timestamp_is_rejected():
    gw = FakePaymentClient(webhook_secret="whsec_x", tolerance_seconds=60)
    headers, body = gw.build_webhook("pi_abc", "succeeded", created=int(time.time()) - 3600)

    with pytest.raises(PaymentSignatureError):
        gw.parse_webhook(headers, body)


def test_status_mapping_normalises_case():
    gw = FakePaymentClient(webhook_secret="whsec_x")
    assert gw._map_status(" Requires_Action ") == "requires_action"
    assert gw._map_status(None) == ""


@pytest.mark.asyncio
async def test_provider_errors_carry_operation_and_retry_hint():
    gw = FakePaymentClient(webhook_secret="whsec_x")

    with pytest.raises(PaymentProviderError) as exc_info:
        await gw.retrieve_intent("pi_missing")

    err = exc_info.value
    assert err.operation == "retrieve_intent"
    assert err.provider_code == "resource_missing"
    assert err.retryable is False
    assert err.details == {
        "provider": "fake",
        "retryable": False,
        "operation": "retrieve_intent",
        "provider_code": "resource_missing",
    }


def test_signature_errors_are_not_retryable():
    gw = FakePaymentClient(webhook_secret="whsec_x")

    with pytest.raises(PaymentSignatureError) as exc_info:
        gw.parse_webhook({}, b"{}")

    assert exc_info.value.retryable is False
    assert exc_info.value.error_type == "PaymentSignatureError"
    assert exc_info.value.details["operation"] == "parse_webhook"
