"""
Driver assignment lifecycle: create, advance, cancel and reassign pickup and
delivery legs.

Every accepted change writes an ASSIGNMENT_* history row and, where the lookup
table says so, moves the order through the status machine in the same
transaction.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from application.dtos.dispatch import (
    AdvanceAssignmentCommand,
    AssignmentDTO,
    CreateAssignmentCommand,
    ReassignCommand,
)
from application.ports.events import EventBus
from application.services.order_status_service import OrderStatusService
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    AccessDeniedException,
    ActiveAssignmentExistsException,
    AssignmentNotCancellableException,
    AssignmentNotFoundException,
    DomainValidationException,
    DriverUnavailableException,
    DuplicateAssignmentException,
    InvalidStatusTransitionException,
    OrderNotFoundException,
    SequenceViolationException,
    TimeWindowExpiredException,
)
from domain.common.metadata import AssignmentMetadata
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.dispatch.entity import AssignmentStatus, AssignmentType, DriverAssignment
from domain.dispatch.events import AssignmentChanged
from domain.dispatch.rules import (
    NON_CANCELLABLE_ORDER_STATUSES,
    REVERT_ON_CANCEL,
    can_advance,
    creation_order_status,
    order_status_for,
    start_window,
)
from domain.order.entity import HistoryAction, OrderHistory
from domain.staff.entity import Staff
from domain.staff.policy import ADMIN_ROLES, require_role


logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_type(value: Any) -> AssignmentType:
    try:
        return AssignmentType(value)
    except ValueError as exc:
        raise DomainValidationException(f"Unknown assignment type: {value}", field="assignment_type") from exc


def _parse_status(value: Any) -> AssignmentStatus:
    try:
        return AssignmentStatus(value)
    except ValueError as exc:
        raise DomainValidationException(f"Unknown assignment status: {value}", field="status") from exc


class DispatchService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        order_status: OrderStatusService,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._order_status = order_status
        self._event_bus = event_bus
        self._now = clock

    async def _publish(self, events: List[Any]) -> None:
        if self._event_bus is not None and events:
            await self._event_bus.publish(events)

    async def _require_driver(self, uow: AbstractUnitOfWork, driver_id: int) -> Staff:
        driver = await uow.staff.get_by_id(driver_id)
        if driver is None or not driver.is_available_driver:
            raise DriverUnavailableException(driver_id)
        return driver

    async def _record(
        self,
        uow: AbstractUnitOfWork,
        assignment: DriverAssignment,
        action: HistoryAction,
        description: str,
        *,
        actor_id: Optional[int],
        previous_status: Optional[AssignmentStatus] = None,
        previous_driver_id: Optional[int] = None,
    ) -> None:
        await uow.order_history.add(
            OrderHistory(
                id=None,
                order_id=assignment.order_id,
                action=action,
                description=description,
                staff_id=actor_id,
                old_value=previous_status.value if previous_status else None,
                new_value=assignment.status.value,
                metadata=AssignmentMetadata(
                    assignment_id=assignment.id,
                    assignment_type=assignment.assignment_type.value,
                    assignment_status=assignment.status.value,
                    driver_id=assignment.driver_id,
                    previous_driver_id=previous_driver_id,
                    previous_status=previous_status.value if previous_status else None,
                    estimated_time=assignment.estimated_time,
                    notes=assignment.notes,
                ),
                created_at=self._now(),
            )
        )
        uow.collect(
            AssignmentChanged(
                assignment_id=assignment.id,
                order_id=assignment.order_id,
                driver_id=assignment.driver_id,
                assignment_type=assignment.assignment_type.value,
                action=action.value,
                old_status=previous_status.value if previous_status else None,
                new_status=assignment.status.value,
                actor_id=actor_id,
            )
        )

    async def create(self, cmd: CreateAssignmentCommand, actor: Optional[Staff]) -> AssignmentDTO:
        require_role(actor, ADMIN_ROLES)
        assignment_type = _parse_type(cmd.assignment_type)

        async with self._uow_factory() as uow:
            await self._require_driver(uow, cmd.driver_id)
            order = await uow.orders.get_for_update(cmd.order_id)
            if not order:
                raise OrderNotFoundException(cmd.order_id)

            existing = await uow.assignments.list_for_order(cmd.order_id)
            if any(a.assignment_type == assignment_type and not a.is_cancelled for a in existing):
                raise DuplicateAssignmentException(cmd.order_id, assignment_type.value)
            if assignment_type == AssignmentType.DELIVERY and not any(
                a.assignment_type == AssignmentType.PICKUP and a.is_completed for a in existing
            ):
                raise SequenceViolationException(cmd.order_id)

            now = self._now()
            assignment = await uow.assignments.create(
                DriverAssignment(
                    id=None,
                    order_id=cmd.order_id,
                    driver_id=cmd.driver_id,
                    assignment_type=assignment_type,
                    status=AssignmentStatus.ASSIGNED,
                    estimated_time=cmd.estimated_time,
                    notes=cmd.notes,
                    created_at=now,
                    updated_at=now,
                )
            )
            await self._record(
                uow,
                assignment,
                HistoryAction.ASSIGNMENT_CREATED,
                f"{assignment_type.value.capitalize()} assigned to driver {cmd.driver_id}",
                actor_id=actor.id,
            )
            entry = await self._order_status.apply_transition(
                uow,
                cmd.order_id,
                creation_order_status(assignment_type),
                actor_id=actor.id,
                source="dispatch",
                assignment_id=assignment.id,
            )
        await self._publish(uow.committed_events())
        logger.info(
            "assignment_create_committed",
            assignment_id=assignment.id,
            order_id=cmd.order_id,
            driver_id=cmd.driver_id,
            assignment_type=assignment_type.value,
        )
        return self._to_dto(assignment, entry.new_value)

    def _check_start_window(self, assignment: DriverAssignment, now: datetime) -> None:
        if assignment.estimated_time is None:
            return
        dispatch = settings.dispatch
        late = dispatch.relaxed_late_minutes if settings.relaxed_time_windows else dispatch.start_late_minutes
        window = start_window(assignment.estimated_time, dispatch.start_early_minutes, late)
        if not window.contains(now):
            logger.info(
                "assignment_start_outside_window",
                assignment_id=assignment.id,
                earliest=window.earliest.isoformat(),
                latest=window.latest.isoformat(),
            )
            raise TimeWindowExpiredException(
                assignment.id,
                window.earliest.isoformat(),
                window.latest.isoformat(),
                now.isoformat(),
            )

    async def advance(self, cmd: AdvanceAssignmentCommand, actor_driver_id: Optional[int]) -> AssignmentDTO:
        new_status = _parse_status(cmd.new_status)

        async with self._uow_factory() as uow:
            assignment = await uow.assignments.get_for_update(cmd.assignment_id)
            if not assignment:
                raise AssignmentNotFoundException(cmd.assignment_id)
            if actor_driver_id is None or actor_driver_id != assignment.driver_id:
                raise AccessDeniedException(cmd.assignment_id, actor_driver_id)

            previous = assignment.status
            if not can_advance(previous, new_status):
                raise InvalidStatusTransitionException(cmd.assignment_id, previous.value, new_status.value)

            now = self._now()
            if new_status == AssignmentStatus.IN_PROGRESS:
                self._check_start_window(assignment, now)

            assignment.advance(new_status, now, cmd.notes)
            assignment = await uow.assignments.update(assignment)
            await self._record(
                uow,
                assignment,
                HistoryAction.ASSIGNMENT_UPDATED,
                f"{assignment.assignment_type.value.capitalize()} status changed from "
                f"{previous.value} to {new_status.value}",
                actor_id=actor_driver_id,
                previous_status=previous,
            )

            order_status: Optional[str] = None
            target = order_status_for(assignment.assignment_type, new_status)
            if target is not None:
                entry = await self._order_status.apply_transition(
                    uow,
                    assignment.order_id,
                    target,
                    notes=cmd.notes,
                    actor_id=actor_driver_id,
                    source="driver",
                    assignment_id=assignment.id,
                )
                order_status = entry.new_value
        await self._publish(uow.committed_events())
        logger.info(
            "assignment_advanced",
            assignment_id=assignment.id,
            old_status=previous.value,
            new_status=new_status.value,
            order_status=order_status,
        )
        return self._to_dto(assignment, order_status)

    async def cancel(self, assignment_id: int, actor: Optional[Staff]) -> AssignmentDTO:
        require_role(actor, ADMIN_ROLES)

        async with self._uow_factory() as uow:
            assignment = await uow.assignments.get_for_update(assignment_id)
            if not assignment:
                raise AssignmentNotFoundException(assignment_id)
            if assignment.is_cancelled:
                raise AssignmentNotCancellableException(assignment_id, "assignment is already cancelled")
            if assignment.is_completed:
                raise AssignmentNotCancellableException(assignment_id, "assignment is already completed")

            order = await uow.orders.get_for_update(assignment.order_id)
            if not order:
                raise OrderNotFoundException(assignment.order_id)
            if order.status in NON_CANCELLABLE_ORDER_STATUSES[assignment.assignment_type]:
                raise AssignmentNotCancellableException(
                    assignment_id, f"order is already {order.status.value}"
                )

            previous = assignment.status
            assignment.cancel(self._now())
            assignment = await uow.assignments.update(assignment)
            await self._record(
                uow,
                assignment,
                HistoryAction.ASSIGNMENT_CANCELLED,
                f"{assignment.assignment_type.value.capitalize()} assignment cancelled",
                actor_id=actor.id,
                previous_status=previous,
            )

            order_status = order.status.value
            # Revert only while the order still shows what this leg set at creation
            if order.status == creation_order_status(assignment.assignment_type):
                entry = await self._order_status.apply_transition(
                    uow,
                    order.id,
                    REVERT_ON_CANCEL[order.status],
                    notes="Driver assignment cancelled",
                    actor_id=actor.id,
                    source="dispatch",
                    assignment_id=assignment.id,
                )
                order_status = entry.new_value
        await self._publish(uow.committed_events())
        logger.info("assignment_cancelled", assignment_id=assignment_id, order_status=order_status)
        return self._to_dto(assignment, order_status)

    async def reassign(self, cmd: ReassignCommand, actor: Optional[Staff]) -> AssignmentDTO:
        require_role(actor, ADMIN_ROLES)

        async with self._uow_factory() as uow:
            assignment = await uow.assignments.get_for_update(cmd.assignment_id)
            if not assignment:
                raise AssignmentNotFoundException(cmd.assignment_id)
            if assignment.status != AssignmentStatus.FAILED:
                raise InvalidStatusTransitionException(
                    cmd.assignment_id, assignment.status.value, AssignmentStatus.ASSIGNED.value
                )

            siblings = await uow.assignments.list_for_order(assignment.order_id, assignment.assignment_type)
            for other in siblings:
                if other.id != assignment.id and other.is_active:
                    raise ActiveAssignmentExistsException(
                        assignment.order_id, assignment.assignment_type.value, other.id
                    )
            await self._require_driver(uow, cmd.new_driver_id)

            previous_status = assignment.status
            previous_driver = assignment.driver_id
            assignment.reassign(cmd.new_driver_id, self._now(), cmd.estimated_time, cmd.notes)
            assignment = await uow.assignments.update(assignment)
            await self._record(
                uow,
                assignment,
                HistoryAction.ASSIGNMENT_REASSIGNED,
                f"{assignment.assignment_type.value.capitalize()} reassigned from driver "
                f"{previous_driver} to driver {cmd.new_driver_id}",
                actor_id=actor.id,
                previous_status=previous_status,
                previous_driver_id=previous_driver,
            )
            entry = await self._order_status.apply_transition(
                uow,
                assignment.order_id,
                creation_order_status(assignment.assignment_type),
                notes=cmd.notes,
                actor_id=actor.id,
                source="dispatch",
                assignment_id=assignment.id,
            )
        await self._publish(uow.committed_events())
        logger.info(
            "assignment_reassigned",
            assignment_id=assignment.id,
            previous_driver_id=previous_driver,
            driver_id=cmd.new_driver_id,
        )
        return self._to_dto(assignment, entry.new_value)

    async def list_for_order(self, order_id: int) -> List[AssignmentDTO]:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundException(order_id)
            assignments = await uow.assignments.list_for_order(order_id)
            return [self._to_dto(a, order.status.value) for a in assignments]

    @staticmethod
    def _to_dto(assignment: DriverAssignment, order_status: Optional[str]) -> AssignmentDTO:
        return AssignmentDTO(
            id=assignment.id,
            order_id=assignment.order_id,
            driver_id=assignment.driver_id,
            assignment_type=assignment.assignment_type.value,
            status=assignment.status.value,
            estimated_time=assignment.estimated_time,
            actual_time=assignment.actual_time,
            notes=assignment.notes,
            order_status=order_status,
        )
