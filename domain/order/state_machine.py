"""
Order status adjacency table and role permissions.

The table is explicit; nothing is inferred from the ordering of the enum.
"""
from __future__ import annotations

from typing import FrozenSet, Mapping

from domain.order.entity import OrderStatus
from domain.staff.entity import StaffRole


S = OrderStatus

ORDER_TRANSITIONS: Mapping[OrderStatus, FrozenSet[OrderStatus]] = {
    S.ORDER_PLACED: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.PICKUP_ASSIGNED, S.CANCELLED}),
    # CONFIRMED is the revert target when a pickup assignment is cancelled
    S.PICKUP_ASSIGNED: frozenset({S.PICKUP_IN_PROGRESS, S.PICKUP_FAILED, S.CONFIRMED, S.CANCELLED}),
    S.PICKUP_IN_PROGRESS: frozenset({S.PICKUP_COMPLETED, S.PICKUP_FAILED}),
    S.PICKUP_COMPLETED: frozenset({S.DROPPED_OFF, S.RECEIVED_AT_FACILITY}),
    S.PICKUP_FAILED: frozenset({S.PICKUP_ASSIGNED, S.CANCELLED}),
    S.DROPPED_OFF: frozenset({S.RECEIVED_AT_FACILITY}),
    S.RECEIVED_AT_FACILITY: frozenset({S.PROCESSING_STARTED}),
    S.PROCESSING_STARTED: frozenset({S.PROCESSING_COMPLETED, S.QUALITY_CHECK}),
    S.PROCESSING_COMPLETED: frozenset({S.QUALITY_CHECK, S.READY_FOR_DELIVERY}),
    S.QUALITY_CHECK: frozenset({S.READY_FOR_DELIVERY, S.PROCESSING_STARTED}),
    S.READY_FOR_DELIVERY: frozenset({S.DELIVERY_ASSIGNED}),
    S.DELIVERY_ASSIGNED: frozenset({S.DELIVERY_IN_PROGRESS, S.DELIVERY_FAILED, S.READY_FOR_DELIVERY}),
    S.DELIVERY_IN_PROGRESS: frozenset({S.DELIVERED, S.DELIVERY_FAILED}),
    S.DELIVERED: frozenset({S.REFUNDED}),
    S.DELIVERY_FAILED: frozenset({S.DELIVERY_ASSIGNED, S.CANCELLED}),
    S.CANCELLED: frozenset({S.REFUNDED}),
    S.REFUNDED: frozenset(),
}


# Statuses each role may set when transitioning an order by hand
_DRIVER_STATUSES = frozenset({
    S.PICKUP_IN_PROGRESS,
    S.PICKUP_COMPLETED,
    S.PICKUP_FAILED,
    S.DELIVERY_IN_PROGRESS,
    S.DELIVERED,
    S.DELIVERY_FAILED,
})
_FACILITY_STATUSES = frozenset({
    S.PROCESSING_STARTED,
    S.PROCESSING_COMPLETED,
    S.QUALITY_CHECK,
    S.READY_FOR_DELIVERY,
})

ROLE_ALLOWED_STATUSES: Mapping[StaffRole, FrozenSet[OrderStatus]] = {
    StaffRole.SUPER_ADMIN: frozenset(S),
    StaffRole.OPERATION_MANAGER: frozenset(s for s in S if s != S.ORDER_PLACED),
    StaffRole.DRIVER: _DRIVER_STATUSES,
    StaffRole.FACILITY_TEAM: _FACILITY_STATUSES,
}

# Statuses that warrant a customer email when the caller asks for one
EMAIL_WORTHY_STATUSES: FrozenSet[OrderStatus] = frozenset({
    S.ORDER_PLACED,
    S.CONFIRMED,
    S.PICKUP_IN_PROGRESS,
    S.PICKUP_COMPLETED,
    S.PICKUP_FAILED,
    S.PROCESSING_STARTED,
    S.PROCESSING_COMPLETED,
    S.READY_FOR_DELIVERY,
    S.DELIVERY_IN_PROGRESS,
    S.DELIVERED,
    S.DELIVERY_FAILED,
    S.CANCELLED,
    S.REFUNDED,
})


def allowed_next(current: OrderStatus) -> FrozenSet[OrderStatus]:
    return ORDER_TRANSITIONS.get(OrderStatus(current), frozenset())


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return OrderStatus(requested) in allowed_next(current)


def role_may_set(role: StaffRole, requested: OrderStatus) -> bool:
    return OrderStatus(requested) in ROLE_ALLOWED_STATUSES.get(StaffRole(role), frozenset())
