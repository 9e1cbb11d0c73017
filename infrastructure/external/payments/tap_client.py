"""
Tap Payments adapter over the Charges and Refunds REST API.

Notes on API usage:
- Amounts are sent in the smallest unit of the currency (BHD has 3 decimals).
- ``transaction.url`` (or ``redirect.url``) is returned when the cardholder
  must complete 3-D Secure; the charge stays INITIATED until the webhook.
- Webhooks are signed with HMAC-SHA256 over the raw body in ``x-tap-signature``.
"""
from __future__ import annotations

import hashlib
import hmac
import json
from decimal import Decimal
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    ChargeRequest,
    ChargeResult,
    GatewayRefundRequest,
    GatewayRefundResult,
    WebhookEvent,
)
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError


logger = get_logger(__name__)

SIGNATURE_HEADER = "x-tap-signature"


class TapClient(BasePaymentClient):
    provider = "tap"

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        tap = payment_settings.tap
        secret_key = secret_key or tap.secret_key
        if not secret_key:
            raise RuntimeError("TAP__SECRET_KEY not configured")
        super().__init__(
            base_url=base_url or tap.base_url,
            headers={"Authorization": f"Bearer {secret_key}", "Accept": "application/json"},
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self._webhook_secret = webhook_secret or tap.webhook_secret or secret_key

    @staticmethod
    def _to_minor(amount: Decimal, currency: str) -> int:
        exponent = 3 if currency.upper() in {"BHD", "KWD", "OMR", "JOD"} else 2
        return int((Decimal(amount) * (Decimal(10) ** exponent)).to_integral_value())

    @staticmethod
    def _redirect_url(payload: dict) -> Optional[str]:
        transaction = payload.get("transaction") or {}
        redirect = payload.get("redirect") or {}
        return transaction.get("url") or redirect.get("url")

    async def charge(self, req: ChargeRequest) -> ChargeResult:  # type: ignore[override]
        body: dict[str, Any] = {
            "amount": self._to_minor(req.amount, req.currency),
            "currency": req.currency,
            "customer": {
                "first_name": req.customer.first_name,
                "last_name": req.customer.last_name,
                "email": req.customer.email,
            },
            "source": {"id": req.token_id},
            "reference": {"transaction": f"ORDER_{req.order_id}"},
            "description": req.description or f"Payment for order {req.order_id}",
            "metadata": {
                "paymentRecordId": str(req.payment_id),
                "orderId": str(req.order_id),
                "customerId": str(req.customer_id),
            },
        }
        if req.customer.phone:
            body["customer"]["phone"] = {"number": req.customer.phone}
        if payment_settings.tap.redirect_url:
            body["redirect"] = {"url": payment_settings.tap.redirect_url}
        if payment_settings.tap.post_url:
            body["post"] = {"url": payment_settings.tap.post_url}

        # Money-moving call: sent once, never retried
        payload = await self._request("POST", "/charges", json=body)
        charge_id = payload.get("id")
        if not charge_id:
            raise PaymentProviderError("Tap response carried no charge id", provider=self.provider)
        gateway_status = str(payload.get("status") or "UNKNOWN").upper()
        self._log("charge_created", charge_id=charge_id, gateway_status=gateway_status, payment_id=req.payment_id)
        response = payload.get("response") or {}
        return ChargeResult(
            charge_id=str(charge_id),
            gateway_status=gateway_status,
            status=self._map_status(gateway_status),
            redirect_url=self._redirect_url(payload),
            message=response.get("message"),
        )

    async def retrieve_charge(self, charge_id: str) -> ChargeResult:  # type: ignore[override]
        payload = await self._request("GET", f"/charges/{charge_id}", idempotent=True)
        gateway_status = str(payload.get("status") or "UNKNOWN").upper()
        response = payload.get("response") or {}
        return ChargeResult(
            charge_id=str(payload.get("id") or charge_id),
            gateway_status=gateway_status,
            status=self._map_status(gateway_status),
            redirect_url=self._redirect_url(payload),
            message=response.get("message"),
        )

    async def create_refund(self, req: GatewayRefundRequest) -> GatewayRefundResult:  # type: ignore[override]
        body = {
            "charge_id": req.charge_id,
            "amount": self._to_minor(req.amount, req.currency),
            "currency": req.currency,
            "reason": req.reason or "requested_by_customer",
        }
        payload = await self._request("POST", "/refunds", json=body)
        refund_id = payload.get("id")
        if not refund_id:
            raise PaymentProviderError("Tap response carried no refund id", provider=self.provider)
        status = str(payload.get("status") or "PENDING").upper()
        self._log("refund_created", refund_id=refund_id, charge_id=req.charge_id, gateway_status=status)
        return GatewayRefundResult(refund_id=str(refund_id), status=status, charge_id=req.charge_id)

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not signature:
            return False
        expected = hmac.new(self._webhook_secret.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature.strip())

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        lowered = {str(k).lower(): v for k, v in headers.items()}
        if not self.verify_signature(body, lowered.get(SIGNATURE_HEADER)):
            raise PaymentSignatureError("Invalid Tap webhook signature", provider=self.provider)
        try:
            payload = json.loads(body.decode("utf-8"))
        except ValueError as exc:
            raise PaymentSignatureError("Malformed Tap webhook body", provider=self.provider) from exc

        metadata = payload.get("metadata") or {}
        raw_payment_id = metadata.get("paymentRecordId")
        try:
            payment_id = int(raw_payment_id) if raw_payment_id is not None else None
        except (TypeError, ValueError):
            payment_id = None
        gateway_status = str(payload.get("status") or "UNKNOWN").upper()
        amount = payload.get("amount")
        return WebhookEvent(
            id=str(payload.get("id") or ""),
            provider=self.provider,
            gateway_status=gateway_status,
            status=self._map_status(gateway_status),
            payment_id=payment_id,
            amount=Decimal(str(amount)) if amount is not None else None,
            data=payload,
            raw_headers={k: v for k, v in lowered.items() if k != "authorization"},
        )
