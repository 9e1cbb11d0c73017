"""
Order domain events.

Collected while a transaction runs and published only after it commits.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class OrderEvent:
    order_id: int
    actor_id: Optional[int] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderStatusChanged(OrderEvent):
    old_status: str = ""
    new_status: str = ""
    customer_id: Optional[int] = None
    order_number: Optional[str] = None
    notes: Optional[str] = None
    should_send_email: bool = True


@dataclass
class PaymentStatusChanged(OrderEvent):
    old_status: str = ""
    new_status: str = ""
    customer_id: Optional[int] = None
