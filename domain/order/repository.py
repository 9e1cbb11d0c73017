"""
Order repository ports.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Order, OrderHistory


class OrderRepository(ABC):

    @abstractmethod
    async def create(self, order: Order) -> Order:
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_for_update(self, order_id: int) -> Optional[Order]:
        """Load the order with a row lock held until the transaction ends."""
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """
        Persist non-status fields.

        Raises UnauditedStatusWriteException if ``order.status`` differs from
        the stored status; status changes go through ``record_transition``.
        """
        pass

    @abstractmethod
    async def record_transition(self, order: Order, entry: OrderHistory) -> OrderHistory:
        """Write the new status and its history row in the current transaction."""
        pass


class OrderHistoryRepository(ABC):
    """Append-only: no update or delete."""

    @abstractmethod
    async def add(self, entry: OrderHistory) -> OrderHistory:
        pass

    @abstractmethod
    async def list_for_order(self, order_id: int) -> List[OrderHistory]:
        pass

    @abstractmethod
    async def count_for_order(self, order_id: int, action: Optional[str] = None) -> int:
        pass
