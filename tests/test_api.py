import json
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from api.dependencies import get_current_staff, get_order_status_service, get_payment_service
from main import app
from shared.codes import BusinessCode

from tests.conftest import CUSTOMER_ID


@pytest_asyncio.fixture
async def acting():
    holder = {"staff": None}
    yield holder


@pytest_asyncio.fixture
async def client(order_status, payments, acting):
    app.dependency_overrides[get_order_status_service] = lambda: order_status
    app.dependency_overrides[get_payment_service] = lambda: payments
    app.dependency_overrides[get_current_staff] = lambda: acting["staff"]
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://laundry.test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_transition_returns_envelope(client, seed, acting, admin):
    acting["staff"] = admin
    order = await seed.order()

    resp = await client.post(f"/api/v1/orders/{order.id}/transitions", json={"status": "CONFIRMED"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == BusinessCode.SUCCESS
    assert body["data"]["old_status"] == "ORDER_PLACED"
    assert body["data"]["new_status"] == "CONFIRMED"
    assert resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_invalid_transition_is_a_conflict(client, seed, acting, admin):
    acting["staff"] = admin
    order = await seed.order()

    resp = await client.post(f"/api/v1/orders/{order.id}/transitions", json={"status": "DELIVERED"})

    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == BusinessCode.INVALID_TRANSITION
    assert "ORDER_PLACED" in body["message"]
    assert body["error"]["request_id"]


@pytest.mark.asyncio
async def test_missing_staff_is_forbidden(client, seed):
    order = await seed.order()

    resp = await client.post(f"/api/v1/orders/{order.id}/transitions", json={"status": "CONFIRMED"})

    assert resp.status_code == 403
    assert (await seed.get_order(order.id)).status.value == "ORDER_PLACED"


@pytest.mark.asyncio
async def test_unknown_order_is_not_found(client):
    resp = await client.get("/api/v1/orders/424242/transitions")

    assert resp.status_code == 404
    assert resp.json()["code"] == BusinessCode.ORDER_NOT_FOUND


@pytest.mark.asyncio
async def test_wallet_payment_then_refund(client, seed, acting, admin):
    order = await seed.order()
    await seed.wallet(balance=Decimal("10.000"))

    paid = await client.post(
        "/api/v1/payments/wallet",
        json={"order_id": order.id, "customer_id": CUSTOMER_ID, "amount": "10.000"},
    )
    assert paid.status_code == 200
    payment_id = paid.json()["data"]["payment_id"]

    acting["staff"] = admin
    refunded = await client.post(
        "/api/v1/payments/refunds",
        json={
            "payment_id": payment_id,
            "order_id": order.id,
            "customer_id": CUSTOMER_ID,
            "refund_amount": "4.000",
            "reason": "Button missing",
        },
    )
    assert refunded.status_code == 200
    assert Decimal(str(refunded.json()["data"]["total_refunded"])) == Decimal("4.000")

    too_much = await client.post(
        "/api/v1/payments/refunds",
        json={
            "payment_id": payment_id,
            "order_id": order.id,
            "customer_id": CUSTOMER_ID,
            "refund_amount": "7.000",
            "reason": "Button missing",
        },
    )
    assert too_much.status_code == 409
    assert too_much.json()["code"] == BusinessCode.REFUND_EXCEEDS_AVAILABLE


@pytest.mark.asyncio
async def test_webhook_requires_json(client):
    resp = await client.post(
        "/api/v1/payments/webhooks/tap",
        content=b"id=chg_1",
        headers={"content-type": "application/x-www-form-urlencoded"},
    )
    assert resp.status_code == 415


@pytest.mark.asyncio
async def test_webhook_for_unknown_provider(client):
    resp = await client.post("/api/v1/payments/webhooks/paypal", json={"id": "x"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_webhook_acknowledged(client):
    body = json.dumps({"id": "chg_unmatched", "status": "CAPTURED"})

    resp = await client.post(
        "/api/v1/payments/webhooks/tap",
        content=body,
        headers={"content-type": "application/json"},
    )

    assert resp.status_code == 200
    assert resp.json()["data"] == {"id": "chg_unmatched", "provider": "tap", "status": "PAID"}
