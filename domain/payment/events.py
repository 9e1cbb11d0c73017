"""
Settlement domain events.

Published after commit for notification and downstream projections; the
domain stays free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class SettlementEvent:
    order_id: int
    payment_id: int
    customer_id: int
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentRecorded(SettlementEvent):
    amount: str = ""
    payment_method: str = ""
    payment_status: str = ""


@dataclass
class RefundProcessed(SettlementEvent):
    refund_amount: str = ""
    total_refunded: str = ""
    method: str = ""
    actor_id: Optional[int] = None
    refund_payment_id: Optional[int] = None
    gateway_refund_id: Optional[str] = None
