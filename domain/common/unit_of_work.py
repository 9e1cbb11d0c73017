"""Unit of Work abstraction."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from domain.dispatch.repository import DriverAssignmentRepository
from domain.order.repository import OrderHistoryRepository, OrderRepository
from domain.payment.repository import (
    PaymentRecordRepository,
    WalletRepository,
    WalletTransactionRepository,
)
from domain.staff.repository import StaffRepository


class AbstractUnitOfWork(ABC):
    """
    Transaction boundary for application services.

    Events collected with ``collect`` are only handed out by
    ``committed_events`` once the transaction has committed.
    """

    orders: OrderRepository
    order_history: OrderHistoryRepository
    staff: StaffRepository
    assignments: DriverAssignmentRepository
    payments: PaymentRecordRepository
    wallets: WalletRepository
    wallet_transactions: WalletTransactionRepository

    def __init__(self, *, readonly: bool = False, isolation: Optional[str] = None) -> None:
        self._committed = False
        self._readonly = readonly
        self._isolation = isolation
        self._events: List[Any] = []

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            if not self._readonly and not self._committed:
                await self.commit()

    def collect(self, event: Any) -> None:
        self._events.append(event)

    def committed_events(self) -> List[Any]:
        if not self._committed or self._readonly:
            return []
        events, self._events = self._events, []
        return events

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
