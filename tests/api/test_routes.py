"""HTTP surface tests: the app runs against in-memory adapters."""
import httpx
import pytest
import pytest_asyncio

from infrastructure.container import Container
from main import app

ADMIN = {"X-Admin-Token": "test-admin-token"}

CHECKOUT_BODY = {
    "amount": "105.00",
    "currency": "usd",
    "shipping_cost": "5.00",
    "customer_info": {"name": "Ada Lovelace", "email": "ada@example.com"},
    "items": [
        {"product_id": "sku-1", "product_name": "Notebook", "product_price": "25.00", "quantity": 2},
        {"product_id": "sku-2", "product_name": "Pen set", "product_price": "50.00", "quantity": 1},
    ],
}


@pytest_asyncio.fixture
async def client(uow_factory, gateway, notifier):
    container = Container(uow_factory=uow_factory, gateway=gateway, notifier=notifier)
    app.state.container = container
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    await container.dispatcher.drain()


async def _checkout(client) -> dict:
    resp = await client.post("/api/v1/payments/intents", json=CHECKOUT_BODY)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_checkout_then_webhook_then_track(client, gateway):
    data = await _checkout(client)
    assert data["status"] == "pending"
    assert data["currency"] == "USD"

    gateway.set_status(data["payment_intent_id"], "succeeded")
    headers, body = gateway.build_webhook(data["payment_intent_id"])
    resp = await client.post("/api/v1/payments/webhooks/fake", content=body, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["resolved"] is True
    assert resp.json()["data"]["outcome"] == "applied"

    resp = await client.post(
        "/api/v1/orders/track",
        json={"order_number": data["order_number"], "email": "ADA@example.com"},
    )
    assert resp.status_code == 200
    tracking = resp.json()["data"]
    assert tracking["status"] == "processing"
    assert [e["event_type"] for e in tracking["timeline"]] == ["order_created", "processing_started"]


@pytest.mark.asyncio
async def test_confirm_uses_gateway_status(client, gateway):
    data = await _checkout(client)
    gateway.set_status(data["payment_intent_id"], "succeeded")

    resp = await client.post(
        "/api/v1/payments/confirm",
        json={"payment_intent_id": data["payment_intent_id"], "order_id": data["order_id"]},
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["current_status"] == "processing"
    assert resp.json()["data"]["source"] == "client_confirm"


@pytest.mark.asyncio
async def test_confirm_with_foreign_intent_is_unprocessable(client):
    first = await _checkout(client)
    second = await _checkout(client)

    resp = await client.post(
        "/api/v1/payments/confirm",
        json={"payment_intent_id": second["payment_intent_id"], "order_id": first["order_id"]},
    )

    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "PaymentIntentMismatch"


@pytest.mark.asyncio
async def test_webhook_with_bad_signature_is_rejected(client, gateway, store):
    data = await _checkout(client)
    headers, body = gateway.build_webhook(data["payment_intent_id"], "succeeded")
    headers["Fake-Signature"] = "t=1,v1=00"
    before = store.touched

    resp = await client.post("/api/v1/payments/webhooks/fake", content=body, headers=headers)

    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "PaymentSignatureError"
    assert store.touched == before


@pytest.mark.asyncio
async def test_webhook_for_unknown_intent_is_acknowledged(client, gateway):
    headers, body = gateway.build_webhook("pi_never_created", "succeeded")

    resp = await client.post("/api/v1/payments/webhooks/fake", content=body, headers=headers)

    assert resp.status_code == 200
    assert resp.json()["data"] == {"resolved": False}


@pytest.mark.asyncio
async def test_webhook_for_other_provider_is_not_found(client, gateway):
    headers, body = gateway.build_webhook("pi_x", "succeeded")
    resp = await client.post("/api/v1/payments/webhooks/stripe", content=body, headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_admin_routes_require_token(client):
    data = await _checkout(client)

    missing = await client.get(f"/api/v1/orders/{data['order_id']}")
    wrong = await client.get(f"/api/v1/orders/{data['order_id']}", headers={"X-Admin-Token": "nope"})
    ok = await client.get(f"/api/v1/orders/{data['order_id']}", headers=ADMIN)

    assert missing.status_code == wrong.status_code == 401
    assert missing.headers["WWW-Authenticate"] == "X-Admin-Token"
    assert ok.status_code == 200
    assert ok.json()["data"]["order_number"] == data["order_number"]


@pytest.mark.asyncio
async def test_admin_status_flow_and_illegal_transition(client, gateway):
    data = await _checkout(client)
    gateway.set_status(data["payment_intent_id"], "succeeded")
    headers, body = gateway.build_webhook(data["payment_intent_id"])
    await client.post("/api/v1/payments/webhooks/fake", content=body, headers=headers)

    url = f"/api/v1/orders/{data['order_id']}/status"
    shipped = await client.post(url, json={"status": "shipped", "tracking_number": "1Z999"}, headers=ADMIN)
    back = await client.post(url, json={"status": "pending"}, headers=ADMIN)

    assert shipped.status_code == 200
    assert shipped.json()["data"]["current_status"] == "shipped"
    assert back.status_code == 409
    assert back.json()["error"]["type"] == "InvalidStatusTransition"


@pytest.mark.asyncio
async def test_admin_tracking_entry(client):
    data = await _checkout(client)

    resp = await client.post(
        f"/api/v1/orders/{data['order_id']}/tracking",
        json={"event_type": "note_added", "description": "Gift wrap requested"},
        headers=ADMIN,
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["kind"] == "informational"
    assert resp.json()["data"]["status"] is None


@pytest.mark.asyncio
async def test_track_with_wrong_email_is_not_found(client):
    data = await _checkout(client)

    resp = await client.post(
        "/api/v1/orders/track",
        json={"order_number": data["order_number"], "email": "mallory@example.com"},
    )

    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_validation_errors_use_the_error_envelope(client):
    resp = await client.post("/api/v1/payments/intents", json={"amount": "-1", "items": []})

    assert resp.status_code == 422
    body = resp.json()
    assert body["data"] is None
    assert body["error"]["type"] == "ValidationError"
    assert body["error"]["request_id"]


@pytest.mark.asyncio
async def test_amount_mismatch_is_rejected(client, store):
    resp = await client.post("/api/v1/payments/intents", json={**CHECKOUT_BODY, "amount": "99.00"})

    assert resp.status_code == 422
    assert store.orders == {}
