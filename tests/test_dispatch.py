from datetime import timedelta

import pytest

from application.dtos.dispatch import AdvanceAssignmentCommand, CreateAssignmentCommand, ReassignCommand
from core.config import settings
from domain.common.exceptions import (
    AccessDeniedException,
    AssignmentNotCancellableException,
    DriverUnavailableException,
    DuplicateAssignmentException,
    InvalidStatusTransitionException,
    PermissionDeniedException,
    SequenceViolationException,
    TimeWindowExpiredException,
)
from domain.dispatch.entity import AssignmentStatus
from domain.dispatch.events import AssignmentChanged
from domain.dispatch.rules import ORDER_STATUS_FOR_ASSIGNMENT, order_status_for
from domain.order.entity import HistoryAction, OrderStatus
from domain.staff.entity import StaffRole

from tests.conftest import NOW


def _create(order_id, driver_id, kind="pickup", eta=NOW + timedelta(minutes=10)):
    return CreateAssignmentCommand(order_id=order_id, driver_id=driver_id, assignment_type=kind, estimated_time=eta)


def _advance(assignment_id, status, notes=None):
    return AdvanceAssignmentCommand(assignment_id=assignment_id, new_status=status, notes=notes)


async def _assigned_pickup(seed, dispatch, admin, driver, **kwargs):
    order = await seed.order(status=OrderStatus.CONFIRMED)
    assignment = await dispatch.create(_create(order.id, driver.id, **kwargs), admin)
    return order, assignment


def test_lookup_table_maps_legs_onto_order_statuses():
    assert order_status_for("pickup", AssignmentStatus.IN_PROGRESS) == OrderStatus.PICKUP_IN_PROGRESS
    assert order_status_for("delivery", AssignmentStatus.COMPLETED) == OrderStatus.DELIVERED
    assert order_status_for("pickup", AssignmentStatus.RESCHEDULED) is None
    assert order_status_for("delivery", AssignmentStatus.DROPPED_OFF) is None
    assert len(ORDER_STATUS_FOR_ASSIGNMENT) == 9


@pytest.mark.asyncio
async def test_create_moves_order_and_records_history(seed, dispatch, admin, driver, sink, event_bus):
    order, assignment = await _assigned_pickup(seed, dispatch, admin, driver)
    await event_bus.drain()

    assert assignment.status == "ASSIGNED"
    assert assignment.order_status == "PICKUP_ASSIGNED"
    assert (await seed.get_order(order.id)).status == OrderStatus.PICKUP_ASSIGNED

    actions = [h.action for h in await seed.history(order.id)]
    assert actions.count(HistoryAction.ASSIGNMENT_CREATED) == 1
    assert actions.count(HistoryAction.STATUS_CHANGE) == 2  # seed CONFIRMED + PICKUP_ASSIGNED
    assert [e.action for e in sink.of_type(AssignmentChanged)] == ["ASSIGNMENT_CREATED"]


@pytest.mark.asyncio
async def test_create_requires_admin_role(seed, dispatch, driver):
    order = await seed.order(status=OrderStatus.CONFIRMED)
    with pytest.raises(PermissionDeniedException):
        await dispatch.create(_create(order.id, driver.id), driver)
    with pytest.raises(PermissionDeniedException):
        await dispatch.create(_create(order.id, driver.id), None)


@pytest.mark.asyncio
async def test_create_rejects_unavailable_driver(seed, dispatch, admin):
    order = await seed.order(status=OrderStatus.CONFIRMED)
    inactive = await seed.staff(StaffRole.DRIVER, is_active=False)
    facility = await seed.staff(StaffRole.FACILITY_TEAM)

    for staff in (inactive, facility):
        with pytest.raises(DriverUnavailableException):
            await dispatch.create(_create(order.id, staff.id), admin)
    assert await seed.assignments(order.id) == []


@pytest.mark.asyncio
async def test_one_live_assignment_per_leg(seed, dispatch, admin, driver, manager):
    order, first = await _assigned_pickup(seed, dispatch, admin, driver)

    with pytest.raises(DuplicateAssignmentException):
        await dispatch.create(_create(order.id, driver.id), admin)

    await dispatch.cancel(first.id, manager)
    second = await dispatch.create(_create(order.id, driver.id), admin)

    live = [a for a in await seed.assignments(order.id) if not a.is_cancelled]
    assert [a.id for a in live] == [second.id]


@pytest.mark.asyncio
async def test_delivery_needs_completed_pickup(seed, dispatch, admin, driver):
    order, pickup = await _assigned_pickup(seed, dispatch, admin, driver)

    with pytest.raises(SequenceViolationException):
        await dispatch.create(_create(order.id, driver.id, kind="delivery"), admin)
    assert [a.id for a in await seed.assignments(order.id)] == [pickup.id]


@pytest.mark.asyncio
async def test_full_pickup_then_delivery(seed, dispatch, admin, driver, clock):
    order, pickup = await _assigned_pickup(seed, dispatch, admin, driver)

    started = await dispatch.advance(_advance(pickup.id, "IN_PROGRESS"), driver.id)
    assert started.order_status == "PICKUP_IN_PROGRESS"
    assert started.actual_time == NOW

    done = await dispatch.advance(_advance(pickup.id, "COMPLETED"), driver.id)
    assert done.order_status == "PICKUP_COMPLETED"

    dropped = await dispatch.advance(_advance(pickup.id, "DROPPED_OFF", notes="Photo uploaded"), driver.id)
    assert dropped.status == "DROPPED_OFF"
    assert dropped.order_status == "DROPPED_OFF"

    await seed.walk(
        order.id,
        OrderStatus.RECEIVED_AT_FACILITY,
        OrderStatus.PROCESSING_STARTED,
        OrderStatus.PROCESSING_COMPLETED,
        OrderStatus.READY_FOR_DELIVERY,
    )
    clock.advance(hours=6)
    delivery = await dispatch.create(
        _create(order.id, driver.id, kind="delivery", eta=clock.now + timedelta(minutes=15)), admin
    )
    assert delivery.order_status == "DELIVERY_ASSIGNED"

    await dispatch.advance(_advance(delivery.id, "IN_PROGRESS"), driver.id)
    delivered = await dispatch.advance(_advance(delivery.id, "COMPLETED"), driver.id)
    assert delivered.order_status == "DELIVERED"
    assert (await seed.get_order(order.id)).status == OrderStatus.DELIVERED


@pytest.mark.asyncio
async def test_drop_off_only_after_completion(seed, dispatch, admin, driver):
    order, pickup = await _assigned_pickup(seed, dispatch, admin, driver)

    with pytest.raises(InvalidStatusTransitionException):
        await dispatch.advance(_advance(pickup.id, "DROPPED_OFF"), driver.id)

    (stored,) = await seed.assignments(order.id)
    assert stored.status == AssignmentStatus.ASSIGNED
    assert (await seed.get_order(order.id)).status == OrderStatus.PICKUP_ASSIGNED


@pytest.mark.asyncio
async def test_only_the_assigned_driver_may_advance(seed, dispatch, admin, driver):
    other = await seed.staff(StaffRole.DRIVER)
    _, pickup = await _assigned_pickup(seed, dispatch, admin, driver)

    with pytest.raises(AccessDeniedException):
        await dispatch.advance(_advance(pickup.id, "IN_PROGRESS"), other.id)
    with pytest.raises(AccessDeniedException):
        await dispatch.advance(_advance(pickup.id, "IN_PROGRESS"), None)


@pytest.mark.asyncio
async def test_start_too_early_is_rejected(seed, dispatch, admin, driver):
    order, pickup = await _assigned_pickup(seed, dispatch, admin, driver, eta=NOW + timedelta(hours=5))

    with pytest.raises(TimeWindowExpiredException) as exc_info:
        await dispatch.advance(_advance(pickup.id, "IN_PROGRESS"), driver.id)

    assert "contact support" in exc_info.value.message
    (stored,) = await seed.assignments(order.id)
    assert stored.status == AssignmentStatus.ASSIGNED
    assert stored.actual_time is None


@pytest.mark.asyncio
async def test_late_start_depends_on_window_mode(seed, dispatch, admin, driver, monkeypatch):
    _, pickup = await _assigned_pickup(seed, dispatch, admin, driver, eta=NOW - timedelta(hours=3))

    monkeypatch.setattr(settings.dispatch, "relaxed_windows", False)
    with pytest.raises(TimeWindowExpiredException):
        await dispatch.advance(_advance(pickup.id, "IN_PROGRESS"), driver.id)

    monkeypatch.setattr(settings.dispatch, "relaxed_windows", True)
    started = await dispatch.advance(_advance(pickup.id, "IN_PROGRESS"), driver.id)
    assert started.status == "IN_PROGRESS"


@pytest.mark.asyncio
async def test_cancel_reverts_order_when_still_assigned(seed, dispatch, admin, driver, manager):
    order, pickup = await _assigned_pickup(seed, dispatch, admin, driver)

    cancelled = await dispatch.cancel(pickup.id, manager)

    assert cancelled.status == "CANCELLED"
    assert cancelled.order_status == "CONFIRMED"
    history = await seed.history(order.id)
    assert history[-1].action == HistoryAction.STATUS_CHANGE
    assert history[-1].old_value == "PICKUP_ASSIGNED"
    assert history[-1].new_value == "CONFIRMED"


@pytest.mark.asyncio
async def test_cancel_after_order_moved_on_does_not_revert(seed, dispatch, admin, driver, manager):
    order, pickup = await _assigned_pickup(seed, dispatch, admin, driver)
    await dispatch.advance(_advance(pickup.id, "IN_PROGRESS"), driver.id)

    cancelled = await dispatch.cancel(pickup.id, manager)

    assert cancelled.order_status == "PICKUP_IN_PROGRESS"
    assert (await seed.get_order(order.id)).status == OrderStatus.PICKUP_IN_PROGRESS


@pytest.mark.asyncio
async def test_cancel_rejected_when_completed_or_order_too_far(seed, dispatch, admin, driver, manager):
    _, done = await _assigned_pickup(seed, dispatch, admin, driver)
    await dispatch.advance(_advance(done.id, "IN_PROGRESS"), driver.id)
    await dispatch.advance(_advance(done.id, "COMPLETED"), driver.id)
    with pytest.raises(AssignmentNotCancellableException):
        await dispatch.cancel(done.id, manager)

    order, stale = await _assigned_pickup(seed, dispatch, admin, driver)
    await seed.walk(
        order.id,
        OrderStatus.PICKUP_IN_PROGRESS,
        OrderStatus.PICKUP_COMPLETED,
        OrderStatus.RECEIVED_AT_FACILITY,
    )
    with pytest.raises(AssignmentNotCancellableException):
        await dispatch.cancel(stale.id, manager)

    _, twice = await _assigned_pickup(seed, dispatch, admin, driver)
    await dispatch.cancel(twice.id, manager)
    with pytest.raises(AssignmentNotCancellableException):
        await dispatch.cancel(twice.id, manager)


@pytest.mark.asyncio
async def test_reassign_failed_pickup(seed, dispatch, admin, driver):
    replacement = await seed.staff(StaffRole.DRIVER)
    order, pickup = await _assigned_pickup(seed, dispatch, admin, driver)
    await dispatch.advance(_advance(pickup.id, "IN_PROGRESS"), driver.id)
    failed = await dispatch.advance(_advance(pickup.id, "FAILED", notes="Nobody home"), driver.id)
    assert failed.order_status == "PICKUP_FAILED"

    result = await dispatch.reassign(
        ReassignCommand(assignment_id=pickup.id, new_driver_id=replacement.id), admin
    )

    assert result.status == "ASSIGNED"
    assert result.driver_id == replacement.id
    assert result.actual_time is None
    assert result.order_status == "PICKUP_ASSIGNED"
    history = await seed.history(order.id)
    reassigned = [h for h in history if h.action == HistoryAction.ASSIGNMENT_REASSIGNED]
    assert reassigned[0].metadata.previous_driver_id == driver.id


@pytest.mark.asyncio
async def test_reassign_only_from_failed(seed, dispatch, admin, driver):
    replacement = await seed.staff(StaffRole.DRIVER)
    _, pickup = await _assigned_pickup(seed, dispatch, admin, driver)

    with pytest.raises(InvalidStatusTransitionException):
        await dispatch.reassign(ReassignCommand(assignment_id=pickup.id, new_driver_id=replacement.id), admin)


@pytest.mark.asyncio
async def test_list_for_order(seed, dispatch, admin, driver):
    order, pickup = await _assigned_pickup(seed, dispatch, admin, driver)

    listed = await dispatch.list_for_order(order.id)

    assert [a.id for a in listed] == [pickup.id]
    assert listed[0].order_status == "PICKUP_ASSIGNED"
