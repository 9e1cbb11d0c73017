"""
Driver assignment - one pickup or delivery leg of an order.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class AssignmentType(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class AssignmentStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DROPPED_OFF = "DROPPED_OFF"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    RESCHEDULED = "RESCHEDULED"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class DriverAssignment:
    id: Optional[int]
    order_id: int
    driver_id: int
    assignment_type: AssignmentType
    status: AssignmentStatus = AssignmentStatus.ASSIGNED
    estimated_time: Optional[datetime] = None
    actual_time: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        try:
            self.assignment_type = AssignmentType(self.assignment_type)
        except ValueError as exc:
            raise DomainValidationException(
                f"Unknown assignment type: {self.assignment_type}",
                field="assignment_type",
            ) from exc
        self.status = AssignmentStatus(self.status)
        self.estimated_time = _ensure_utc(self.estimated_time)
        self.actual_time = _ensure_utc(self.actual_time)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def is_cancelled(self) -> bool:
        return self.status == AssignmentStatus.CANCELLED

    @property
    def is_active(self) -> bool:
        """Still holding the leg: not cancelled, failed or finished."""
        return self.status in (
            AssignmentStatus.ASSIGNED,
            AssignmentStatus.IN_PROGRESS,
            AssignmentStatus.RESCHEDULED,
        )

    @property
    def is_completed(self) -> bool:
        return self.status in (AssignmentStatus.COMPLETED, AssignmentStatus.DROPPED_OFF)

    def advance(self, new_status: AssignmentStatus, now: datetime, notes: Optional[str] = None) -> None:
        """Apply an already validated status change."""
        self.status = AssignmentStatus(new_status)
        if self.status in (
            AssignmentStatus.IN_PROGRESS,
            AssignmentStatus.COMPLETED,
            AssignmentStatus.FAILED,
        ):
            self.actual_time = now
        if notes:
            self.notes = notes
        self.updated_at = now

    def cancel(self, now: datetime) -> None:
        self.status = AssignmentStatus.CANCELLED
        self.updated_at = now

    def reassign(
        self,
        driver_id: int,
        now: datetime,
        estimated_time: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> None:
        self.driver_id = driver_id
        self.status = AssignmentStatus.ASSIGNED
        self.actual_time = None
        if estimated_time is not None:
            self.estimated_time = _ensure_utc(estimated_time)
        if notes is not None:
            self.notes = notes
        self.updated_at = now
