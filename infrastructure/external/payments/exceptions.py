"""
Gateway client exceptions, all GatewayException variants so the application
layer can handle them without knowing the provider.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import GatewayException
from shared.codes.payment_codes import PaymentCode


def _details(provider: str, provider_code: str | None, details: Optional[dict]) -> dict:
    full_details = {"provider": provider, "provider_code": provider_code}
    if details:
        full_details.update(details)
    return full_details


class PaymentProviderError(GatewayException):
    """The gateway answered with an error payload."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(message, code=PaymentCode.PROVIDER_ERROR, details=_details(provider, provider_code, details))


class PaymentTimeoutError(GatewayException):
    """No answer in time. Treated as a failure; the local record stays PENDING."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(message, code=PaymentCode.TIMEOUT, details=_details(provider, None, details))


class PaymentRecoverableError(GatewayException):
    """Transport-level failure (connection reset, 5xx, rate limit)."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(message, code=PaymentCode.PROVIDER_RECOVERABLE, details=_details(provider, provider_code, details))


class PaymentSignatureError(GatewayException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(message, code=PaymentCode.SIGNATURE_ERROR, details=_details(provider, None, details))
