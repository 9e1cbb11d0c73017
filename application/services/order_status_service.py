"""
Order status machine application service.

``apply_transition`` is the only code path that assigns ``Order.status``.
Dispatch and settlement call it with their own unit of work so the status
change and their side-effect rows commit together.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from application.dtos.orders import AllowedTransitions, OrderHistoryDTO, TransitionResult
from application.ports.events import EventBus
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    InvalidTransitionException,
    OrderNotFoundException,
    RoleTransitionForbiddenException,
)
from domain.common.metadata import StatusChangeMetadata, dump_metadata, validate_metadata
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import HistoryAction, Order, OrderHistory, OrderPaymentStatus, OrderStatus
from domain.order.events import OrderStatusChanged, PaymentStatusChanged
from domain.order.state_machine import allowed_next, can_transition, role_may_set
from domain.staff.entity import Staff


logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_order_status(value: Any) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError as exc:
        raise DomainValidationException(f"Unknown order status: {value}", field="status") from exc


class OrderStatusService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._event_bus = event_bus
        self._now = clock

    async def _publish(self, events: List[Any]) -> None:
        if self._event_bus is not None and events:
            await self._event_bus.publish(events)

    async def transition(
        self,
        order_id: int,
        requested_status: str,
        *,
        notes: Optional[str] = None,
        should_send_email: bool = True,
        actor: Optional[Staff] = None,
        metadata: Any = None,
    ) -> TransitionResult:
        """Direct status change issued by staff from the admin panel."""
        requested = parse_order_status(requested_status)
        if actor is not None and not role_may_set(actor.role, requested):
            raise RoleTransitionForbiddenException(actor.role.value, requested.value)

        async with self._uow_factory() as uow:
            entry = await self.apply_transition(
                uow,
                order_id,
                requested,
                notes=notes,
                actor_id=actor.id if actor else None,
                metadata=metadata,
                should_send_email=should_send_email,
            )
        await self._publish(uow.committed_events())
        return TransitionResult(
            order_id=order_id,
            old_status=entry.old_value or "",
            new_status=entry.new_value or "",
            history_id=entry.id,
        )

    async def apply_transition(
        self,
        uow: AbstractUnitOfWork,
        order_id: int,
        requested_status: OrderStatus | str,
        *,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
        metadata: Any = None,
        should_send_email: bool = True,
        source: str = "admin",
        assignment_id: Optional[int] = None,
    ) -> OrderHistory:
        """
        Move the order to ``requested_status`` inside the caller's transaction.

        The order row is locked, the pair is checked against the adjacency
        table, and the status is written together with its STATUS_CHANGE row.
        The OrderStatusChanged event is handed to ``uow`` and only escapes
        once the caller's transaction commits.
        """
        requested = parse_order_status(requested_status)
        order = await uow.orders.get_for_update(order_id)
        if not order:
            raise OrderNotFoundException(order_id)

        current = order.status
        if not can_transition(current, requested):
            logger.info(
                "order_transition_rejected",
                order_id=order_id,
                current_status=current.value,
                requested_status=requested.value,
            )
            raise InvalidTransitionException(
                order_id,
                current.value,
                requested.value,
                sorted(s.value for s in allowed_next(current)),
            )

        if metadata is None:
            metadata = StatusChangeMetadata(
                source=source,
                should_send_email=should_send_email,
                assignment_id=assignment_id,
                notes=notes,
            )
        description = f"Status changed from {current.value} to {requested.value}"
        if notes:
            description = f"{description}: {notes}"

        order.status = requested
        entry = await uow.orders.record_transition(
            order,
            OrderHistory(
                id=None,
                order_id=order_id,
                action=HistoryAction.STATUS_CHANGE,
                description=description,
                staff_id=actor_id,
                old_value=current.value,
                new_value=requested.value,
                metadata=validate_metadata(metadata),
                created_at=self._now(),
            ),
        )
        uow.collect(
            OrderStatusChanged(
                order_id=order_id,
                actor_id=actor_id,
                old_status=current.value,
                new_status=requested.value,
                customer_id=order.customer_id,
                order_number=order.order_number,
                notes=notes,
                should_send_email=should_send_email,
            )
        )
        logger.info(
            "order_transition_applied",
            order_id=order_id,
            old_status=current.value,
            new_status=requested.value,
            source=source,
            actor_id=actor_id,
        )
        return entry

    async def set_payment_status(
        self,
        uow: AbstractUnitOfWork,
        order: Order,
        new_status: OrderPaymentStatus,
        *,
        actor_id: Optional[int] = None,
        description: Optional[str] = None,
        metadata: Any = None,
    ) -> Order:
        """Write the order's payment status with a PAYMENT_UPDATE row; no-op when unchanged."""
        new_status = OrderPaymentStatus(new_status)
        old_status = order.payment_status
        if old_status == new_status:
            return order

        order.payment_status = new_status
        order = await uow.orders.update(order)
        await uow.order_history.add(
            OrderHistory(
                id=None,
                order_id=order.id,
                action=HistoryAction.PAYMENT_UPDATE,
                description=description or f"Payment status changed from {old_status.value} to {new_status.value}",
                staff_id=actor_id,
                old_value=old_status.value,
                new_value=new_status.value,
                metadata=validate_metadata(metadata),
                created_at=self._now(),
            )
        )
        uow.collect(
            PaymentStatusChanged(
                order_id=order.id,
                actor_id=actor_id,
                old_status=old_status.value,
                new_status=new_status.value,
                customer_id=order.customer_id,
            )
        )
        logger.info(
            "order_payment_status_changed",
            order_id=order.id,
            old_status=old_status.value,
            new_status=new_status.value,
        )
        return order

    async def allowed_transitions(self, order_id: int) -> AllowedTransitions:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundException(order_id)
            return AllowedTransitions(
                order_id=order_id,
                current_status=order.status.value,
                allowed=sorted(s.value for s in allowed_next(order.status)),
            )

    async def history(self, order_id: int) -> List[OrderHistoryDTO]:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundException(order_id)
            entries = await uow.order_history.list_for_order(order_id)
            return [
                OrderHistoryDTO(
                    id=e.id,
                    order_id=e.order_id,
                    action=e.action.value,
                    description=e.description,
                    staff_id=e.staff_id,
                    old_value=e.old_value,
                    new_value=e.new_value,
                    metadata=dump_metadata(e.metadata),
                    created_at=e.created_at,
                )
                for e in entries
            ]
