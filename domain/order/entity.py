"""
Order aggregate and its append-only history.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.metadata import Metadata


class OrderStatus(str, Enum):
    ORDER_PLACED = "ORDER_PLACED"
    CONFIRMED = "CONFIRMED"
    PICKUP_ASSIGNED = "PICKUP_ASSIGNED"
    PICKUP_IN_PROGRESS = "PICKUP_IN_PROGRESS"
    PICKUP_COMPLETED = "PICKUP_COMPLETED"
    PICKUP_FAILED = "PICKUP_FAILED"
    DROPPED_OFF = "DROPPED_OFF"
    RECEIVED_AT_FACILITY = "RECEIVED_AT_FACILITY"
    PROCESSING_STARTED = "PROCESSING_STARTED"
    PROCESSING_COMPLETED = "PROCESSING_COMPLETED"
    QUALITY_CHECK = "QUALITY_CHECK"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
    DELIVERY_ASSIGNED = "DELIVERY_ASSIGNED"
    DELIVERY_IN_PROGRESS = "DELIVERY_IN_PROGRESS"
    DELIVERED = "DELIVERED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class OrderPaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIAL_REFUND = "PARTIAL_REFUND"


class HistoryAction(str, Enum):
    STATUS_CHANGE = "STATUS_CHANGE"
    PAYMENT_UPDATE = "PAYMENT_UPDATE"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    REFUND_PROCESSED = "REFUND_PROCESSED"
    ASSIGNMENT_CREATED = "ASSIGNMENT_CREATED"
    ASSIGNMENT_UPDATED = "ASSIGNMENT_UPDATED"
    ASSIGNMENT_CANCELLED = "ASSIGNMENT_CANCELLED"
    ASSIGNMENT_REASSIGNED = "ASSIGNMENT_REASSIGNED"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Order:
    """
    Order aggregate.

    ``status`` is only ever changed by the order status machine; repositories
    refuse to persist a status that differs from the stored one unless the
    write comes with a history entry.
    """

    id: Optional[int]
    order_number: str
    customer_id: int
    status: OrderStatus = OrderStatus.ORDER_PLACED
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    invoice_total: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.order_number:
            raise DomainValidationException("Order number is required", field="order_number")
        if self.invoice_total is not None and self.invoice_total < 0:
            raise DomainValidationException(
                f"Invoice total cannot be negative: {self.invoice_total}",
                field="invoice_total",
            )
        self.status = OrderStatus(self.status)
        self.payment_status = OrderPaymentStatus(self.payment_status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == OrderPaymentStatus.PAID


@dataclass
class OrderHistory:
    """Immutable audit row. One per accepted transition or settlement event."""

    id: Optional[int]
    order_id: int
    action: HistoryAction
    description: str
    staff_id: Optional[int] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    metadata: Optional[Metadata] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.action = HistoryAction(self.action)
        self.created_at = _ensure_utc(self.created_at)
