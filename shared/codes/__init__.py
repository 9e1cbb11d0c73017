"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # Generic resource not found
    PRECONDITION_FAILED = 20007
    CONFLICT = 20008

    # Order lifecycle (21xxx)
    ORDER_NOT_FOUND = 21000
    INVALID_TRANSITION = 21001
    UNAUDITED_STATUS_WRITE = 21002

    # Dispatch (22xxx)
    ASSIGNMENT_NOT_FOUND = 22000
    DRIVER_UNAVAILABLE = 22001
    DUPLICATE_ASSIGNMENT = 22002
    SEQUENCE_VIOLATION = 22003
    TIME_WINDOW_EXPIRED = 22004
    INVALID_ASSIGNMENT_TRANSITION = 22005
    ASSIGNMENT_NOT_CANCELLABLE = 22006
    ACTIVE_ASSIGNMENT_EXISTS = 22007

    # Settlement (23xxx)
    PAYMENT_NOT_FOUND = 23000
    PAYMENT_MISMATCH = 23001
    PAYMENT_NOT_REFUNDABLE = 23002
    REFUND_EXCEEDS_AVAILABLE = 23003
    INSUFFICIENT_FUNDS = 23004
    WALLET_NOT_FOUND = 23005
    SPLIT_AMOUNT_MISMATCH = 23006
    AMOUNT_MISMATCH = 23007
    ORDER_ALREADY_PAID = 23008
    CONCURRENT_UPDATE = 23009

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
