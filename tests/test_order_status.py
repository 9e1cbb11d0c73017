import asyncio

import pytest

from domain.common.exceptions import (
    DomainValidationException,
    InvalidTransitionException,
    OrderNotFoundException,
    RoleTransitionForbiddenException,
    UnauditedStatusWriteException,
)
from domain.order.entity import HistoryAction, OrderHistory, OrderStatus
from domain.order.events import OrderStatusChanged
from domain.order.state_machine import ORDER_TRANSITIONS, can_transition, role_may_set
from domain.staff.entity import StaffRole


def test_every_status_has_an_explicit_row():
    assert set(ORDER_TRANSITIONS) == set(OrderStatus)
    assert ORDER_TRANSITIONS[OrderStatus.REFUNDED] == frozenset()


def test_table_is_not_inferred_from_enum_order():
    assert can_transition(OrderStatus.ORDER_PLACED, OrderStatus.CONFIRMED)
    assert not can_transition(OrderStatus.ORDER_PLACED, OrderStatus.PICKUP_ASSIGNED)
    assert can_transition(OrderStatus.PICKUP_COMPLETED, OrderStatus.DROPPED_OFF)
    assert not can_transition(OrderStatus.DELIVERED, OrderStatus.ORDER_PLACED)


def test_role_limits():
    assert role_may_set(StaffRole.DRIVER, OrderStatus.PICKUP_IN_PROGRESS)
    assert not role_may_set(StaffRole.DRIVER, OrderStatus.CONFIRMED)
    assert role_may_set(StaffRole.FACILITY_TEAM, OrderStatus.QUALITY_CHECK)
    assert not role_may_set(StaffRole.OPERATION_MANAGER, OrderStatus.ORDER_PLACED)


@pytest.mark.asyncio
async def test_transition_writes_status_and_one_history_row(order_status, seed, admin, sink, event_bus):
    order = await seed.order()

    result = await order_status.transition(order.id, "CONFIRMED", notes="Customer called", actor=admin)
    await event_bus.drain()

    assert result.old_status == "ORDER_PLACED"
    assert result.new_status == "CONFIRMED"
    assert (await seed.get_order(order.id)).status == OrderStatus.CONFIRMED

    rows = [h for h in await seed.history(order.id) if h.action == HistoryAction.STATUS_CHANGE]
    assert len(rows) == 1
    assert rows[0].id == result.history_id
    assert rows[0].staff_id == admin.id
    assert rows[0].description == "Status changed from ORDER_PLACED to CONFIRMED: Customer called"
    assert rows[0].metadata.kind == "status_change"

    events = sink.of_type(OrderStatusChanged)
    assert [(e.old_status, e.new_status) for e in events] == [("ORDER_PLACED", "CONFIRMED")]
    assert events[0].should_send_email is True


@pytest.mark.asyncio
async def test_concurrent_transitions_serialize(order_status, seed, admin, uow_factory):
    order = await seed.order()

    outcomes = await asyncio.gather(
        order_status.transition(order.id, "CONFIRMED", actor=admin),
        order_status.transition(order.id, "CONFIRMED", actor=admin),
        return_exceptions=True,
    )

    accepted = [o for o in outcomes if not isinstance(o, BaseException)]
    rejected = [o for o in outcomes if isinstance(o, BaseException)]
    assert len(accepted) == 1
    assert len(rejected) == 1
    assert isinstance(rejected[0], InvalidTransitionException)
    assert (await seed.get_order(order.id)).status == OrderStatus.CONFIRMED
    async with uow_factory(readonly=True) as uow:
        assert await uow.order_history.count_for_order(order.id, HistoryAction.STATUS_CHANGE.value) == 1
        assert await uow.order_history.count_for_order(order.id) == 1


@pytest.mark.asyncio
async def test_transition_outside_table_leaves_order_untouched(order_status, seed, admin, sink, event_bus):
    order = await seed.order()

    with pytest.raises(InvalidTransitionException) as exc_info:
        await order_status.transition(order.id, "DELIVERED", actor=admin)
    await event_bus.drain()

    assert exc_info.value.details["allowed"] == ["CANCELLED", "CONFIRMED"]
    assert (await seed.get_order(order.id)).status == OrderStatus.ORDER_PLACED
    assert await seed.history(order.id) == []
    assert sink.events == []


@pytest.mark.asyncio
async def test_every_pair_outside_table_is_rejected(order_status, seed):
    order = await seed.order(status=OrderStatus.PROCESSING_STARTED)
    for requested in OrderStatus:
        if requested in ORDER_TRANSITIONS[OrderStatus.PROCESSING_STARTED]:
            continue
        with pytest.raises(InvalidTransitionException):
            await order_status.transition(order.id, requested.value)
    assert (await seed.get_order(order.id)).status == OrderStatus.PROCESSING_STARTED


@pytest.mark.asyncio
async def test_unknown_order_and_status(order_status, seed):
    with pytest.raises(OrderNotFoundException):
        await order_status.transition(9999, "CONFIRMED")

    order = await seed.order()
    with pytest.raises(DomainValidationException):
        await order_status.transition(order.id, "WASHED")


@pytest.mark.asyncio
async def test_role_may_not_set_status(order_status, seed):
    facility = await seed.staff(StaffRole.FACILITY_TEAM)
    order = await seed.order()

    with pytest.raises(RoleTransitionForbiddenException):
        await order_status.transition(order.id, "CONFIRMED", actor=facility)
    assert (await seed.get_order(order.id)).status == OrderStatus.ORDER_PLACED


@pytest.mark.asyncio
async def test_status_write_that_skips_the_machine_is_rejected(uow_factory, seed):
    order = await seed.order()

    with pytest.raises(UnauditedStatusWriteException):
        async with uow_factory() as uow:
            loaded = await uow.orders.get_for_update(order.id)
            loaded.status = OrderStatus.CONFIRMED
            await uow.orders.update(loaded)

    with pytest.raises(UnauditedStatusWriteException):
        async with uow_factory() as uow:
            await uow.order_history.add(
                OrderHistory(
                    id=None,
                    order_id=order.id,
                    action=HistoryAction.STATUS_CHANGE,
                    description="forged",
                    old_value="ORDER_PLACED",
                    new_value="CONFIRMED",
                )
            )

    assert (await seed.get_order(order.id)).status == OrderStatus.ORDER_PLACED
    assert await seed.history(order.id) == []


@pytest.mark.asyncio
async def test_no_email_hint_is_forwarded(order_status, seed, sink, event_bus):
    order = await seed.order()

    await order_status.transition(order.id, "CONFIRMED", should_send_email=False)
    await event_bus.drain()

    (event,) = sink.of_type(OrderStatusChanged)
    assert event.should_send_email is False


@pytest.mark.asyncio
async def test_allowed_transitions_and_history(order_status, seed):
    order = await seed.order(status=OrderStatus.CONFIRMED)

    allowed = await order_status.allowed_transitions(order.id)
    assert allowed.current_status == "CONFIRMED"
    assert allowed.allowed == ["CANCELLED", "PICKUP_ASSIGNED"]

    history = await order_status.history(order.id)
    assert [h.new_value for h in history] == ["CONFIRMED"]
    assert history[0].metadata["source"] == "seed"
