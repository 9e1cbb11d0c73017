"""
Order and order history repositories (SQLAlchemy).

Order.status can only be written together with an OrderHistory row; the
plain ``update`` path rejects any status change.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException, UnauditedStatusWriteException
from domain.common.metadata import dump_metadata, load_metadata
from domain.order.entity import (
    HistoryAction,
    Order,
    OrderHistory,
    OrderPaymentStatus,
    OrderStatus,
)
from domain.order.repository import OrderHistoryRepository, OrderRepository
from infrastructure.models.order import OrderHistoryModel, OrderModel


logger = get_logger(__name__)


def _history_to_entity(model: OrderHistoryModel) -> OrderHistory:
    return OrderHistory(
        id=model.id,
        order_id=model.order_id,
        action=HistoryAction(model.action),
        description=model.description,
        staff_id=model.staff_id,
        old_value=model.old_value,
        new_value=model.new_value,
        metadata=load_metadata(model.extra_metadata),
        created_at=model.created_at,
    )


def _history_to_model(entry: OrderHistory) -> OrderHistoryModel:
    return OrderHistoryModel(
        order_id=entry.order_id,
        staff_id=entry.staff_id,
        action=entry.action.value,
        old_value=entry.old_value,
        new_value=entry.new_value,
        description=entry.description,
        extra_metadata=dump_metadata(entry.metadata),
        created_at=entry.created_at or datetime.now(timezone.utc),
    )


class SQLAlchemyOrderRepository(OrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            order_number=model.order_number,
            customer_id=model.customer_id,
            status=OrderStatus(model.status),
            payment_status=OrderPaymentStatus(model.payment_status),
            invoice_total=Decimal(str(model.invoice_total)) if model.invoice_total is not None else None,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _load(self, order_id: int, *, for_update: bool = False) -> Optional[OrderModel]:
        stmt = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, order: Order) -> Order:
        db_order = OrderModel(
            order_number=order.order_number,
            customer_id=order.customer_id,
            status=order.status.value,
            payment_status=order.payment_status.value,
            invoice_total=order.invoice_total,
        )
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info("order_created", order_id=db_order.id, order_number=db_order.order_number)
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        db_order = await self._load(order_id)
        return self._to_entity(db_order) if db_order else None

    async def get_for_update(self, order_id: int) -> Optional[Order]:
        db_order = await self._load(order_id, for_update=True)
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order) -> Order:
        db_order = await self._load(order.id)
        if not db_order:
            raise OrderNotFoundException(order.id)
        if db_order.status != order.status.value:
            logger.error(
                "unaudited_status_write_blocked",
                order_id=order.id,
                stored_status=db_order.status,
                attempted_status=order.status.value,
            )
            raise UnauditedStatusWriteException(order.id)

        db_order.payment_status = order.payment_status.value
        db_order.invoice_total = order.invoice_total
        db_order.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        await self.session.refresh(db_order)
        return self._to_entity(db_order)

    async def record_transition(self, order: Order, entry: OrderHistory) -> OrderHistory:
        db_order = await self._load(order.id)
        if not db_order:
            raise OrderNotFoundException(order.id)

        db_order.status = order.status.value
        db_order.updated_at = datetime.now(timezone.utc)
        db_entry = _history_to_model(entry)
        self.session.add(db_entry)
        await self.session.flush()
        await self.session.refresh(db_entry)

        logger.info(
            "order_status_written",
            order_id=order.id,
            old_status=entry.old_value,
            new_status=entry.new_value,
            history_id=db_entry.id,
        )
        return _history_to_entity(db_entry)


class SQLAlchemyOrderHistoryRepository(OrderHistoryRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, entry: OrderHistory) -> OrderHistory:
        if entry.action == HistoryAction.STATUS_CHANGE:
            # Status rows are only written alongside the status itself
            raise UnauditedStatusWriteException(entry.order_id)
        db_entry = _history_to_model(entry)
        self.session.add(db_entry)
        await self.session.flush()
        await self.session.refresh(db_entry)
        return _history_to_entity(db_entry)

    async def list_for_order(self, order_id: int) -> List[OrderHistory]:
        result = await self.session.execute(
            select(OrderHistoryModel)
            .where(OrderHistoryModel.order_id == order_id)
            .order_by(OrderHistoryModel.created_at.asc(), OrderHistoryModel.id.asc())
        )
        return [_history_to_entity(m) for m in result.scalars().all()]

    async def count_for_order(self, order_id: int, action: Optional[str] = None) -> int:
        stmt = select(func.count(OrderHistoryModel.id)).where(OrderHistoryModel.order_id == order_id)
        if action:
            stmt = stmt.where(OrderHistoryModel.action == action)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
