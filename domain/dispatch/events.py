from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class AssignmentChanged:
    assignment_id: int
    order_id: int
    driver_id: int
    assignment_type: str
    action: str
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    actor_id: Optional[int] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
