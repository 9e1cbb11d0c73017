"""Domain business exceptions shared by domain, application and infrastructure.

The core layer only maps these onto HTTP responses; the domain layer never
imports from core.

Taxonomy:
    DomainValidationException  malformed or missing input, never reaches a transaction
    PreconditionException      role, ownership, sequence or time-window violations
    ConflictException          an invariant would break given the freshest state
    ExternalServiceException   the payment gateway failed or returned an error
    NotFoundException          the addressed resource does not exist
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base class for every business error."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class PreconditionException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.PRECONDITION_FAILED,
        error_type: str = "PreconditionError",
        details: dict | None = None,
        field: str | None = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details, field=field)


class ConflictException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.CONFLICT,
        error_type: str = "ConflictError",
        details: dict | None = None,
        field: str | None = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details, field=field)


class NotFoundException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.NOT_FOUND,
        error_type: str = "NotFoundError",
        details: dict | None = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class ExternalServiceException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int,
        error_type: str = "ExternalError",
        details: dict | None = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
class PermissionDeniedException(PreconditionException):
    def __init__(self, role: Optional[str], required: Sequence[str]):
        super().__init__(
            f"Role {role or 'anonymous'} is not allowed to perform this action "
            f"(requires one of: {', '.join(required)})",
            code=BusinessCode.FORBIDDEN,
            error_type="PermissionDenied",
            details={"role": role, "required": list(required)},
        )


# ---------------------------------------------------------------------------
# Order lifecycle
# ---------------------------------------------------------------------------
class OrderNotFoundException(NotFoundException):
    def __init__(self, order_id: int):
        super().__init__(
            f"Order {order_id} not found",
            code=BusinessCode.ORDER_NOT_FOUND,
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class InvalidTransitionException(ConflictException):
    def __init__(self, order_id: int, current: str, requested: str, allowed: Sequence[str] = ()):
        super().__init__(
            f"Cannot transition order {order_id} from {current} to {requested}",
            code=BusinessCode.INVALID_TRANSITION,
            error_type="InvalidTransition",
            details={
                "order_id": order_id,
                "current_status": current,
                "requested_status": requested,
                "allowed": list(allowed),
            },
            field="status",
        )


class UnauditedStatusWriteException(ConflictException):
    """Raised when something tries to persist Order.status outside the status machine."""

    def __init__(self, order_id: int):
        super().__init__(
            f"Order {order_id} status may only change through a recorded transition",
            code=BusinessCode.UNAUDITED_STATUS_WRITE,
            error_type="UnauditedStatusWrite",
            details={"order_id": order_id},
            field="status",
        )


class RoleTransitionForbiddenException(PreconditionException):
    def __init__(self, role: str, requested: str):
        super().__init__(
            f"Your role ({role}) does not have permission to set status to {requested}",
            code=BusinessCode.FORBIDDEN,
            error_type="RoleTransitionForbidden",
            details={"role": role, "requested_status": requested},
        )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------
class AssignmentNotFoundException(NotFoundException):
    def __init__(self, assignment_id: int):
        super().__init__(
            f"Driver assignment {assignment_id} not found",
            code=BusinessCode.ASSIGNMENT_NOT_FOUND,
            error_type="AssignmentNotFound",
            details={"assignment_id": assignment_id},
        )


class DriverUnavailableException(PreconditionException):
    def __init__(self, driver_id: int):
        super().__init__(
            f"Driver {driver_id} not found, inactive or not a driver",
            code=BusinessCode.DRIVER_UNAVAILABLE,
            error_type="DriverUnavailable",
            details={"driver_id": driver_id},
            field="driver_id",
        )


class DuplicateAssignmentException(ConflictException):
    def __init__(self, order_id: int, assignment_type: str):
        super().__init__(
            f"A {assignment_type} assignment already exists for order {order_id}",
            code=BusinessCode.DUPLICATE_ASSIGNMENT,
            error_type="DuplicateAssignment",
            details={"order_id": order_id, "assignment_type": assignment_type},
        )


class SequenceViolationException(PreconditionException):
    def __init__(self, order_id: int):
        super().__init__(
            "Cannot create delivery assignment. Pickup must be completed first.",
            code=BusinessCode.SEQUENCE_VIOLATION,
            error_type="SequenceViolation",
            details={"order_id": order_id},
        )


class AccessDeniedException(PreconditionException):
    def __init__(self, assignment_id: int, actor_id: Optional[int]):
        super().__init__(
            f"Assignment {assignment_id} belongs to another driver",
            code=BusinessCode.FORBIDDEN,
            error_type="AccessDenied",
            details={"assignment_id": assignment_id, "actor_id": actor_id},
        )


class TimeWindowExpiredException(PreconditionException):
    def __init__(self, assignment_id: int, earliest: str, latest: str, now: str):
        super().__init__(
            f"Assignment {assignment_id} can only be started between {earliest} and {latest}. "
            "Please contact support to reschedule.",
            code=BusinessCode.TIME_WINDOW_EXPIRED,
            error_type="TimeWindowExpired",
            details={"assignment_id": assignment_id, "earliest": earliest, "latest": latest, "now": now},
        )


class InvalidStatusTransitionException(ConflictException):
    def __init__(self, assignment_id: int, current: str, requested: str):
        super().__init__(
            f"Cannot change assignment {assignment_id} from {current} to {requested}",
            code=BusinessCode.INVALID_ASSIGNMENT_TRANSITION,
            error_type="InvalidStatusTransition",
            details={"assignment_id": assignment_id, "current_status": current, "requested_status": requested},
            field="status",
        )


class AssignmentNotCancellableException(ConflictException):
    def __init__(self, assignment_id: int, reason: str):
        super().__init__(
            f"Cannot cancel assignment {assignment_id}: {reason}",
            code=BusinessCode.ASSIGNMENT_NOT_CANCELLABLE,
            error_type="AssignmentNotCancellable",
            details={"assignment_id": assignment_id},
        )


class ActiveAssignmentExistsException(ConflictException):
    def __init__(self, order_id: int, assignment_type: str, active_id: int):
        super().__init__(
            f"Order {order_id} already has an active {assignment_type} assignment ({active_id})",
            code=BusinessCode.ACTIVE_ASSIGNMENT_EXISTS,
            error_type="ActiveAssignmentExists",
            details={"order_id": order_id, "assignment_type": assignment_type, "active_assignment_id": active_id},
        )


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------
class PaymentNotFoundException(NotFoundException):
    def __init__(self, payment_id: int):
        super().__init__(
            f"Payment record {payment_id} not found",
            code=BusinessCode.PAYMENT_NOT_FOUND,
            error_type="PaymentNotFound",
            details={"payment_id": payment_id},
        )


class PaymentMismatchException(PreconditionException):
    def __init__(self, payment_id: int, order_id: int, customer_id: int):
        super().__init__(
            "Payment record does not match the specified order and customer",
            code=BusinessCode.PAYMENT_MISMATCH,
            error_type="PaymentMismatch",
            details={"payment_id": payment_id, "order_id": order_id, "customer_id": customer_id},
        )


class PaymentNotRefundableException(PreconditionException):
    def __init__(self, payment_id: int, reason: str):
        super().__init__(
            f"Payment {payment_id} is not eligible for refund: {reason}",
            code=BusinessCode.PAYMENT_NOT_REFUNDABLE,
            error_type="PaymentNotRefundable",
            details={"payment_id": payment_id},
        )


class RefundExceedsAvailableException(ConflictException):
    def __init__(self, payment_id: int, requested: Decimal, available: Decimal):
        super().__init__(
            f"Refund amount {requested} exceeds maximum refundable amount of {available}",
            code=BusinessCode.REFUND_EXCEEDS_AVAILABLE,
            error_type="RefundExceedsAvailable",
            details={"payment_id": payment_id, "requested": str(requested), "available": str(available)},
            field="refund_amount",
        )


class InsufficientFundsException(ConflictException):
    def __init__(self, customer_id: int, balance: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient wallet balance ({balance}) for payment of {requested}",
            code=BusinessCode.INSUFFICIENT_FUNDS,
            error_type="InsufficientFunds",
            details={"customer_id": customer_id, "balance": str(balance), "requested": str(requested)},
        )


class WalletNotFoundException(ConflictException):
    def __init__(self, customer_id: int):
        super().__init__(
            f"Customer {customer_id} has no wallet",
            code=BusinessCode.WALLET_NOT_FOUND,
            error_type="WalletNotFound",
            details={"customer_id": customer_id},
        )


class SplitAmountMismatchException(DomainValidationException):
    def __init__(self, wallet_amount: Decimal, card_amount: Decimal, total: Decimal):
        super().__init__(
            f"Split amounts ({wallet_amount + card_amount}) must equal total amount ({total})",
            field="amount",
            details={"wallet_amount": str(wallet_amount), "card_amount": str(card_amount), "total": str(total)},
        )


class AmountMismatchException(PreconditionException):
    def __init__(self, amount: Decimal, invoice_total: Optional[Decimal]):
        super().__init__(
            f"Payment amount ({amount}) must match order total ({invoice_total})",
            code=BusinessCode.AMOUNT_MISMATCH,
            error_type="AmountMismatch",
            details={"amount": str(amount), "invoice_total": str(invoice_total) if invoice_total is not None else None},
            field="amount",
        )


class OrderAlreadyPaidException(PreconditionException):
    def __init__(self, order_id: int):
        super().__init__(
            f"Order {order_id} is already paid",
            code=BusinessCode.ORDER_ALREADY_PAID,
            error_type="OrderAlreadyPaid",
            details={"order_id": order_id},
        )


class ConcurrentUpdateException(ConflictException):
    """A serializable transaction lost a race; the caller should refresh and resubmit."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            "The record was modified concurrently, please refresh and try again",
            code=BusinessCode.CONCURRENT_UPDATE,
            error_type="ConcurrentUpdate",
            details={"db_error": detail} if detail else None,
        )


class GatewayException(ExternalServiceException):
    """The card gateway rejected the call or could not be reached."""

    def __init__(self, message: str, *, code: int = BusinessCode.SERVICE_UNAVAILABLE, details: dict | None = None):
        super().__init__(message, code=code, error_type="GatewayError", details=details)
