"""
API dependencies: service wiring and the acting staff member.
"""
from typing import AsyncIterator, Optional

from fastapi import Depends, Header, Request

from application.ports.events import EventBus
from application.ports.payment_gateway import PaymentGateway
from application.services.dispatch_service import DispatchService
from application.services.order_status_service import OrderStatusService
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.staff.entity import Staff
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)


def get_event_bus(request: Request) -> Optional[EventBus]:
    return getattr(request.app.state, "event_bus", None)


async def get_gateway() -> AsyncIterator[Optional[PaymentGateway]]:
    # Wallet-only deployments run without gateway credentials
    if not payment_settings.tap.secret_key:
        yield None
        return
    gateway = get_payment_gateway()
    try:
        yield gateway
    finally:
        close = getattr(gateway, "aclose", None)
        if callable(close):
            await close()


async def get_order_status_service(
    event_bus: Optional[EventBus] = Depends(get_event_bus),
) -> OrderStatusService:
    return OrderStatusService(uow_factory=SQLAlchemyUnitOfWork, event_bus=event_bus)


async def get_dispatch_service(
    order_status: OrderStatusService = Depends(get_order_status_service),
    event_bus: Optional[EventBus] = Depends(get_event_bus),
) -> DispatchService:
    return DispatchService(uow_factory=SQLAlchemyUnitOfWork, order_status=order_status, event_bus=event_bus)


async def get_payment_service(
    gateway: Optional[PaymentGateway] = Depends(get_gateway),
    order_status: OrderStatusService = Depends(get_order_status_service),
    event_bus: Optional[EventBus] = Depends(get_event_bus),
) -> PaymentService:
    return PaymentService(
        uow_factory=SQLAlchemyUnitOfWork,
        gateway=gateway,
        order_status=order_status,
        event_bus=event_bus,
    )


async def get_current_staff(
    x_staff_id: Optional[int] = Header(default=None, alias="X-Staff-Id"),
) -> Optional[Staff]:
    """
    Resolve the acting staff member.

    Authentication happens upstream; an unknown or missing id yields None and
    role checks in the services reject the command.
    """
    if x_staff_id is None:
        return None
    async with SQLAlchemyUnitOfWork(readonly=True) as uow:
        staff = await uow.staff.get_by_id(x_staff_id)
    if staff is None:
        logger.info("staff_header_unknown", staff_id=x_staff_id)
    return staff
