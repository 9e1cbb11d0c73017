"""SQLAlchemy Unit of Work."""
from __future__ import annotations

import inspect
from typing import Callable, Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConcurrentUpdateException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.dispatch_repository import SQLAlchemyDriverAssignmentRepository
from infrastructure.repositories.order_repository import (
    SQLAlchemyOrderHistoryRepository,
    SQLAlchemyOrderRepository,
)
from infrastructure.repositories.payment_repository import (
    SQLAlchemyPaymentRecordRepository,
    SQLAlchemyWalletRepository,
    SQLAlchemyWalletTransactionRepository,
)
from infrastructure.repositories.staff_repository import SQLAlchemyStaffRepository


logger = get_logger(__name__)

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_serialization_failure(exc: BaseException) -> bool:
    """True when the database aborted the transaction because it lost a race."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in _RETRYABLE_SQLSTATES:
        return True
    # sqlite reports write contention only through the message
    return "database is locked" in str(orig).lower()


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    SQLAlchemy-backed Unit of Work.

    ``isolation`` (e.g. ``"SERIALIZABLE"``) is pinned on the connection before
    the first statement of the transaction runs. Serialization failures are
    re-raised as ConcurrentUpdateException after rollback.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
        isolation: Optional[str] = None,
    ) -> None:
        super().__init__(readonly=readonly, isolation=isolation)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    def _bind_repositories(self, session: Optional[AsyncSession]) -> None:
        if session is None:
            self.orders = self.order_history = self.staff = None  # type: ignore[assignment]
            self.assignments = self.payments = None  # type: ignore[assignment]
            self.wallets = self.wallet_transactions = None  # type: ignore[assignment]
            return
        self.orders = SQLAlchemyOrderRepository(session)
        self.order_history = SQLAlchemyOrderHistoryRepository(session)
        self.staff = SQLAlchemyStaffRepository(session)
        self.assignments = SQLAlchemyDriverAssignmentRepository(session)
        self.payments = SQLAlchemyPaymentRecordRepository(session)
        self.wallets = SQLAlchemyWalletRepository(session)
        self.wallet_transactions = SQLAlchemyWalletTransactionRepository(session)

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self._bind_repositories(self.session)
        if not self._readonly:
            self._transaction = await self.session.begin()
            if self._isolation:
                await self.session.connection(
                    execution_options={"isolation_level": self._isolation}
                )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            try:
                await super().__aexit__(exc_type, exc, tb)
            except DBAPIError as commit_exc:
                await self.rollback()
                if is_serialization_failure(commit_exc):
                    logger.warning("transaction_serialization_failure", phase="commit", error=str(commit_exc.orig))
                    raise ConcurrentUpdateException(str(commit_exc.orig)) from commit_exc
                raise
            if exc is not None and is_serialization_failure(exc):
                logger.warning("transaction_serialization_failure", phase="statement", error=str(exc.orig))
                raise ConcurrentUpdateException(str(exc.orig)) from exc
        finally:
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self._bind_repositories(None)

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
