"""
Base gateway client implementing shared concerns: http, retry, logging, mapping.

Concrete providers subclass and implement provider-specific calls. Only
idempotent reads go through ``_retry``; charges and refunds are sent once.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.dtos.payments import (
    ChargeRequest,
    ChargeResult,
    GatewayRefundRequest,
    GatewayRefundResult,
    WebhookEvent,
)
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentTimeoutError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._timeouts_cfg = timeouts or {"connect": 2.0, "read": 10.0, "write": 10.0, "total": 15.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self.timeouts,
                transport=self._transport,
            )
        # Kept open for reuse; aclose() releases it
        yield self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request(self, method: str, path: str, *, json: Optional[dict] = None, idempotent: bool = False) -> dict:
        """Send one request and translate transport and HTTP errors."""

        async def _send() -> httpx.Response:
            async with self.client() as http:
                return await http.request(method, path, json=json)

        try:
            response = await (self._retry(_send) if idempotent else _send())
        except httpx.TimeoutException as exc:
            self._log("gateway_timeout", method=method, path=path)
            raise PaymentTimeoutError(
                f"{self.provider} did not respond in time", provider=self.provider, details={"path": path}
            ) from exc
        except httpx.TransportError as exc:
            self._log("gateway_unreachable", method=method, path=path, error=str(exc))
            raise PaymentRecoverableError(
                f"{self.provider} unreachable: {exc}", provider=self.provider, details={"path": path}
            ) from exc

        if response.status_code >= 400:
            payload = self._safe_json(response)
            message = self._error_message(payload) or response.reason_phrase or "gateway error"
            self._log("gateway_error", method=method, path=path, status_code=response.status_code, message=message)
            error_cls = PaymentRecoverableError if response.status_code >= 500 or response.status_code == 429 else PaymentProviderError
            raise error_cls(
                f"{self.provider} rejected the request: {message}",
                provider=self.provider,
                provider_code=str(response.status_code),
                details={"path": path, "response": payload},
            )
        return self._safe_json(response)

    @staticmethod
    def _safe_json(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"data": data}

    @staticmethod
    def _error_message(payload: dict) -> Optional[str]:
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict):
                return first.get("description") or first.get("message")
        return payload.get("message")

    # Default implementations raise to force override where needed
    async def charge(self, req: ChargeRequest) -> ChargeResult:  # type: ignore[override]
        raise NotImplementedError

    async def create_refund(self, req: GatewayRefundRequest) -> GatewayRefundResult:  # type: ignore[override]
        raise NotImplementedError

    async def retrieve_charge(self, charge_id: str) -> ChargeResult:  # type: ignore[override]
        raise NotImplementedError

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        raise NotImplementedError

    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get((provider_status or "").upper(), "PENDING")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.provider, **kwargs)


__all__ = ["BasePaymentClient", "PaymentProviderError"]
