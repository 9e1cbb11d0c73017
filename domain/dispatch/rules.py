"""
Dispatch rules shared by create, advance, cancel and reassign.

``ORDER_STATUS_FOR_ASSIGNMENT`` is the single place that says which order
status an assignment status implies.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import FrozenSet, Mapping, Optional, Tuple

from domain.dispatch.entity import AssignmentStatus, AssignmentType
from domain.order.entity import OrderStatus


A = AssignmentStatus
O = OrderStatus

ASSIGNMENT_TRANSITIONS: Mapping[AssignmentStatus, FrozenSet[AssignmentStatus]] = {
    A.ASSIGNED: frozenset({A.IN_PROGRESS, A.FAILED, A.RESCHEDULED}),
    A.IN_PROGRESS: frozenset({A.COMPLETED, A.FAILED}),
    # Drop-off is confirmed separately after completion
    A.COMPLETED: frozenset({A.DROPPED_OFF}),
    A.RESCHEDULED: frozenset({A.IN_PROGRESS, A.FAILED}),
    A.DROPPED_OFF: frozenset(),
    A.FAILED: frozenset(),
    A.CANCELLED: frozenset(),
}

ORDER_STATUS_FOR_ASSIGNMENT: Mapping[Tuple[AssignmentType, AssignmentStatus], OrderStatus] = {
    (AssignmentType.PICKUP, A.ASSIGNED): O.PICKUP_ASSIGNED,
    (AssignmentType.PICKUP, A.IN_PROGRESS): O.PICKUP_IN_PROGRESS,
    (AssignmentType.PICKUP, A.COMPLETED): O.PICKUP_COMPLETED,
    (AssignmentType.PICKUP, A.DROPPED_OFF): O.DROPPED_OFF,
    (AssignmentType.PICKUP, A.FAILED): O.PICKUP_FAILED,
    (AssignmentType.DELIVERY, A.ASSIGNED): O.DELIVERY_ASSIGNED,
    (AssignmentType.DELIVERY, A.IN_PROGRESS): O.DELIVERY_IN_PROGRESS,
    (AssignmentType.DELIVERY, A.COMPLETED): O.DELIVERED,
    (AssignmentType.DELIVERY, A.FAILED): O.DELIVERY_FAILED,
}

# Order statuses past which cancelling the leg no longer makes sense
NON_CANCELLABLE_ORDER_STATUSES: Mapping[AssignmentType, FrozenSet[OrderStatus]] = {
    AssignmentType.PICKUP: frozenset({
        O.PICKUP_COMPLETED,
        O.DROPPED_OFF,
        O.RECEIVED_AT_FACILITY,
        O.PROCESSING_STARTED,
        O.PROCESSING_COMPLETED,
        O.QUALITY_CHECK,
        O.READY_FOR_DELIVERY,
        O.DELIVERY_ASSIGNED,
        O.DELIVERY_IN_PROGRESS,
        O.DELIVERED,
        O.DELIVERY_FAILED,
        O.REFUNDED,
    }),
    AssignmentType.DELIVERY: frozenset({O.DELIVERY_IN_PROGRESS, O.DELIVERED}),
}

REVERT_ON_CANCEL: Mapping[OrderStatus, OrderStatus] = {
    O.PICKUP_ASSIGNED: O.CONFIRMED,
    O.DELIVERY_ASSIGNED: O.READY_FOR_DELIVERY,
}


def creation_order_status(assignment_type: AssignmentType) -> OrderStatus:
    return ORDER_STATUS_FOR_ASSIGNMENT[(AssignmentType(assignment_type), A.ASSIGNED)]


def order_status_for(assignment_type: AssignmentType, status: AssignmentStatus) -> Optional[OrderStatus]:
    """None when the pair does not move the order (e.g. RESCHEDULED)."""
    return ORDER_STATUS_FOR_ASSIGNMENT.get((AssignmentType(assignment_type), AssignmentStatus(status)))


def can_advance(current: AssignmentStatus, requested: AssignmentStatus) -> bool:
    return AssignmentStatus(requested) in ASSIGNMENT_TRANSITIONS.get(AssignmentStatus(current), frozenset())


@dataclass(frozen=True)
class StartWindow:
    earliest: datetime
    latest: datetime

    def contains(self, moment: datetime) -> bool:
        return self.earliest <= moment <= self.latest


def start_window(estimated_time: datetime, early_minutes: int, late_minutes: int) -> StartWindow:
    return StartWindow(
        earliest=estimated_time - timedelta(minutes=early_minutes),
        latest=estimated_time + timedelta(minutes=late_minutes),
    )
