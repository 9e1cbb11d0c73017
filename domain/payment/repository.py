"""
Settlement repository ports.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import PaymentRecord, Wallet, WalletTransaction


class PaymentRecordRepository(ABC):

    @abstractmethod
    async def create(self, record: PaymentRecord) -> PaymentRecord:
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: int) -> Optional[PaymentRecord]:
        pass

    @abstractmethod
    async def get_for_update(self, payment_id: int) -> Optional[PaymentRecord]:
        """Re-read inside the current transaction with a row lock."""
        pass

    @abstractmethod
    async def get_by_gateway_charge_id(self, charge_id: str) -> Optional[PaymentRecord]:
        pass

    @abstractmethod
    async def list_for_order(self, order_id: int) -> List[PaymentRecord]:
        pass

    @abstractmethod
    async def update(self, record: PaymentRecord) -> PaymentRecord:
        pass


class WalletRepository(ABC):

    @abstractmethod
    async def create(self, wallet: Wallet) -> Wallet:
        pass

    @abstractmethod
    async def get_by_customer(self, customer_id: int) -> Optional[Wallet]:
        pass

    @abstractmethod
    async def get_by_customer_for_update(self, customer_id: int) -> Optional[Wallet]:
        pass

    @abstractmethod
    async def update(self, wallet: Wallet) -> Wallet:
        pass


class WalletTransactionRepository(ABC):
    """Ledger entries are immutable: add and read only."""

    @abstractmethod
    async def add(self, transaction: WalletTransaction) -> WalletTransaction:
        pass

    @abstractmethod
    async def list_for_wallet(self, wallet_id: int) -> List[WalletTransaction]:
        pass
