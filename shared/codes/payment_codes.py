"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# Gateway charge/refund status -> internal payment status
PROVIDER_STATUS_TO_INTERNAL = {
    "tap": {
        "CAPTURED": "PAID",
        "AUTHORIZED": "PENDING",
        "INITIATED": "PENDING",
        "IN_PROGRESS": "PENDING",
        "PENDING": "PENDING",
        "REFUNDED": "REFUNDED",
        "SUCCEEDED": "PAID",
        "FAILED": "FAILED",
        "DECLINED": "FAILED",
        "RESTRICTED": "FAILED",
        "VOID": "FAILED",
        "TIMEDOUT": "FAILED",
        "ABANDONED": "FAILED",
        "CANCELLED": "FAILED",
        "UNKNOWN": "PENDING",
    },
}
