"""
Card payment gateway port.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import (
    ChargeRequest,
    ChargeResult,
    GatewayRefundRequest,
    GatewayRefundResult,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """The gateway is authoritative for whether money moved externally.

    ``charge`` and ``create_refund`` move money and are never retried by callers.
    """

    provider: str

    async def charge(self, req: ChargeRequest) -> ChargeResult: ...

    async def create_refund(self, req: GatewayRefundRequest) -> GatewayRefundResult: ...

    async def retrieve_charge(self, charge_id: str) -> ChargeResult: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...
