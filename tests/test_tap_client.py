import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import ChargeRequest, CustomerDetails, GatewayRefundRequest
from core.settings import payment_settings
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
    PaymentTimeoutError,
)
from infrastructure.external.payments.tap_client import TapClient


BASE_URL = "https://api.tap.test/v2"


def _client(handler, **kwargs) -> TapClient:
    return TapClient(
        secret_key="sk_test_tap",
        webhook_secret="whsec_tap",
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _charge_request(currency="BHD") -> ChargeRequest:
    return ChargeRequest(
        payment_id=7,
        order_id=3,
        customer_id=501,
        amount=Decimal("10.500"),
        currency=currency,
        token_id="tok_visa",
        customer=CustomerDetails(first_name="Layla", email="layla@example.com", phone="+97333000000"),
    )


def _sign(body: bytes, secret: str = "whsec_tap") -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def test_minor_units_follow_currency_exponent():
    assert TapClient._to_minor(Decimal("10.500"), "BHD") == 10500
    assert TapClient._to_minor(Decimal("1.234"), "KWD") == 1234
    assert TapClient._to_minor(Decimal("10.50"), "USD") == 1050


def test_missing_secret_is_a_configuration_error(monkeypatch):
    monkeypatch.setattr(payment_settings.tap, "secret_key", None)
    with pytest.raises(RuntimeError):
        TapClient()


def test_factory(monkeypatch):
    monkeypatch.setattr(payment_settings.tap, "secret_key", "sk_test_tap")
    assert isinstance(get_payment_gateway("tap"), TapClient)
    with pytest.raises(ValueError):
        get_payment_gateway("stripe")


@pytest.mark.asyncio
async def test_charge_request_and_captured_mapping():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "chg_TS01", "status": "CAPTURED", "response": {"message": "Captured"}})

    client = _client(handler)
    result = await client.charge(_charge_request())
    await client.aclose()

    (request,) = seen
    assert request.method == "POST"
    assert request.url.path == "/v2/charges"
    assert request.headers["authorization"] == "Bearer sk_test_tap"
    body = json.loads(request.content)
    assert body["amount"] == 10500
    assert body["source"] == {"id": "tok_visa"}
    assert body["metadata"]["paymentRecordId"] == "7"
    assert body["reference"] == {"transaction": "ORDER_3"}
    assert body["customer"]["phone"] == {"number": "+97333000000"}

    assert result.charge_id == "chg_TS01"
    assert result.status == "PAID"
    assert result.message == "Captured"


@pytest.mark.asyncio
async def test_initiated_charge_carries_redirect():
    def handler(request):
        return httpx.Response(200, json={"id": "chg_3ds", "status": "INITIATED", "transaction": {"url": "https://acs.tap/3ds"}})

    client = _client(handler)
    result = await client.charge(_charge_request())

    assert result.status == "PENDING"
    assert result.redirect_url == "https://acs.tap/3ds"


@pytest.mark.asyncio
async def test_declined_maps_to_failed():
    def handler(request):
        return httpx.Response(200, json={"id": "chg_d", "status": "DECLINED", "response": {"message": "Insufficient funds"}})

    result = await _client(handler).charge(_charge_request())

    assert result.status == "FAILED"
    assert result.message == "Insufficient funds"


@pytest.mark.asyncio
async def test_error_responses():
    def bad_request(request):
        return httpx.Response(400, json={"errors": [{"code": "1108", "description": "Invalid token"}]})

    with pytest.raises(PaymentProviderError) as exc_info:
        await _client(bad_request).charge(_charge_request())
    assert "Invalid token" in exc_info.value.message
    assert exc_info.value.details["provider_code"] == "400"

    def unavailable(request):
        return httpx.Response(503, json={"message": "maintenance"})

    with pytest.raises(PaymentRecoverableError):
        await _client(unavailable).charge(_charge_request())


@pytest.mark.asyncio
async def test_charge_is_sent_once_on_timeout():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(PaymentTimeoutError):
        await _client(handler).charge(_charge_request())
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_retrieve_charge_is_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, json={"id": "chg_r", "status": "CAPTURED"})

    result = await _client(handler).retrieve_charge("chg_r")

    assert len(calls) == 2
    assert calls[-1].url.path == "/v2/charges/chg_r"
    assert result.status == "PAID"


@pytest.mark.asyncio
async def test_create_refund():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "re_TS01", "status": "PENDING"})

    result = await _client(handler).create_refund(
        GatewayRefundRequest(charge_id="chg_TS01", amount=Decimal("3.250"), currency="BHD", reason="Damaged item")
    )

    assert seen == [{"charge_id": "chg_TS01", "amount": 3250, "currency": "BHD", "reason": "Damaged item"}]
    assert result.refund_id == "re_TS01"
    assert result.charge_id == "chg_TS01"


def test_webhook_signature():
    client = _client(lambda request: httpx.Response(200))
    body = json.dumps({"id": "chg_w", "status": "CAPTURED", "amount": 10.5, "metadata": {"paymentRecordId": "7"}}).encode()

    event = client.parse_webhook({"X-Tap-Signature": _sign(body)}, body)
    assert event.provider == "tap"
    assert event.payment_id == 7
    assert event.status == "PAID"
    assert event.amount == Decimal("10.5")

    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({"X-Tap-Signature": _sign(body, "wrong")}, body)
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({}, body)
