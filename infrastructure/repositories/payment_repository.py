"""
Settlement repositories (SQLAlchemy): payment records, wallets, wallet ledger.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import PaymentNotFoundException, WalletNotFoundException
from domain.common.metadata import dump_metadata, load_metadata
from domain.payment.entity import (
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    Wallet,
    WalletTransaction,
    WalletTransactionType,
)
from domain.payment.repository import (
    PaymentRecordRepository,
    WalletRepository,
    WalletTransactionRepository,
)
from infrastructure.models.payment import (
    PaymentRecordModel,
    WalletModel,
    WalletTransactionModel,
)


logger = get_logger(__name__)


def _dec(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


class SQLAlchemyPaymentRecordRepository(PaymentRecordRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentRecordModel) -> PaymentRecord:
        return PaymentRecord(
            id=model.id,
            order_id=model.order_id,
            customer_id=model.customer_id,
            amount=_dec(model.amount),
            payment_method=PaymentMethod(model.payment_method),
            payment_status=PaymentStatus(model.payment_status),
            currency=model.currency,
            refund_amount=_dec(model.refund_amount),
            refund_reason=model.refund_reason,
            gateway_charge_id=model.gateway_charge_id,
            gateway_refund_id=model.gateway_refund_id,
            wallet_transaction_id=model.wallet_transaction_id,
            description=model.description,
            metadata=load_metadata(model.extra_metadata),
            processed_at=model.processed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: PaymentRecord) -> PaymentRecordModel:
        return PaymentRecordModel(
            order_id=entity.order_id,
            customer_id=entity.customer_id,
            amount=entity.amount,
            currency=entity.currency,
            payment_method=entity.payment_method.value,
            payment_status=entity.payment_status.value,
            refund_amount=entity.refund_amount,
            refund_reason=entity.refund_reason,
            gateway_charge_id=entity.gateway_charge_id,
            gateway_refund_id=entity.gateway_refund_id,
            wallet_transaction_id=entity.wallet_transaction_id,
            description=entity.description,
            extra_metadata=dump_metadata(entity.metadata),
            processed_at=entity.processed_at,
        )

    async def _load(self, payment_id: int, *, for_update: bool = False) -> Optional[PaymentRecordModel]:
        stmt = select(PaymentRecordModel).where(PaymentRecordModel.id == payment_id)
        if for_update:
            # populate_existing: a re-read must never be served from the identity map
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, record: PaymentRecord) -> PaymentRecord:
        db_record = self._to_model(record)
        self.session.add(db_record)
        await self.session.flush()
        await self.session.refresh(db_record)
        logger.info(
            "payment_record_created",
            payment_id=db_record.id,
            order_id=db_record.order_id,
            method=db_record.payment_method,
            status=db_record.payment_status,
            amount=str(db_record.amount),
        )
        return self._to_entity(db_record)

    async def get_by_id(self, payment_id: int) -> Optional[PaymentRecord]:
        db_record = await self._load(payment_id)
        return self._to_entity(db_record) if db_record else None

    async def get_for_update(self, payment_id: int) -> Optional[PaymentRecord]:
        db_record = await self._load(payment_id, for_update=True)
        return self._to_entity(db_record) if db_record else None

    async def get_by_gateway_charge_id(self, charge_id: str) -> Optional[PaymentRecord]:
        result = await self.session.execute(
            select(PaymentRecordModel)
            .where(PaymentRecordModel.gateway_charge_id == charge_id)
            .order_by(PaymentRecordModel.id.desc())
            .limit(1)
        )
        db_record = result.scalar_one_or_none()
        return self._to_entity(db_record) if db_record else None

    async def list_for_order(self, order_id: int) -> List[PaymentRecord]:
        result = await self.session.execute(
            select(PaymentRecordModel)
            .where(PaymentRecordModel.order_id == order_id)
            .order_by(PaymentRecordModel.created_at.asc(), PaymentRecordModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, record: PaymentRecord) -> PaymentRecord:
        db_record = await self._load(record.id)
        if not db_record:
            raise PaymentNotFoundException(record.id)

        # amount is immutable and deliberately not copied back
        db_record.payment_status = record.payment_status.value
        db_record.refund_amount = record.refund_amount
        db_record.refund_reason = record.refund_reason
        db_record.gateway_charge_id = record.gateway_charge_id
        db_record.gateway_refund_id = record.gateway_refund_id
        db_record.wallet_transaction_id = record.wallet_transaction_id
        db_record.extra_metadata = dump_metadata(record.metadata)
        db_record.processed_at = record.processed_at
        db_record.updated_at = record.updated_at or datetime.now(timezone.utc)

        await self.session.flush()
        await self.session.refresh(db_record)
        logger.info(
            "payment_record_updated",
            payment_id=db_record.id,
            status=db_record.payment_status,
            refund_amount=str(db_record.refund_amount),
        )
        return self._to_entity(db_record)


class SQLAlchemyWalletRepository(WalletRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WalletModel) -> Wallet:
        return Wallet(
            id=model.id,
            customer_id=model.customer_id,
            balance=_dec(model.balance),
            currency=model.currency,
            is_active=model.is_active,
            last_transaction_at=model.last_transaction_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _load(self, customer_id: int, *, for_update: bool = False) -> Optional[WalletModel]:
        stmt = select(WalletModel).where(WalletModel.customer_id == customer_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, wallet: Wallet) -> Wallet:
        db_wallet = WalletModel(
            customer_id=wallet.customer_id,
            balance=wallet.balance,
            currency=wallet.currency,
            is_active=wallet.is_active,
        )
        self.session.add(db_wallet)
        await self.session.flush()
        await self.session.refresh(db_wallet)
        return self._to_entity(db_wallet)

    async def get_by_customer(self, customer_id: int) -> Optional[Wallet]:
        db_wallet = await self._load(customer_id)
        return self._to_entity(db_wallet) if db_wallet else None

    async def get_by_customer_for_update(self, customer_id: int) -> Optional[Wallet]:
        db_wallet = await self._load(customer_id, for_update=True)
        return self._to_entity(db_wallet) if db_wallet else None

    async def update(self, wallet: Wallet) -> Wallet:
        db_wallet = await self._load(wallet.customer_id)
        if not db_wallet:
            raise WalletNotFoundException(wallet.customer_id)
        db_wallet.balance = wallet.balance
        db_wallet.last_transaction_at = wallet.last_transaction_at
        db_wallet.updated_at = wallet.updated_at or datetime.now(timezone.utc)
        await self.session.flush()
        await self.session.refresh(db_wallet)
        logger.info("wallet_balance_updated", wallet_id=db_wallet.id, balance=str(db_wallet.balance))
        return self._to_entity(db_wallet)


class SQLAlchemyWalletTransactionRepository(WalletTransactionRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WalletTransactionModel) -> WalletTransaction:
        return WalletTransaction(
            id=model.id,
            wallet_id=model.wallet_id,
            transaction_type=WalletTransactionType(model.transaction_type),
            amount=_dec(model.amount),
            balance_before=_dec(model.balance_before),
            balance_after=_dec(model.balance_after),
            description=model.description,
            reference=model.reference,
            metadata=load_metadata(model.extra_metadata),
            status=model.status,
            created_at=model.created_at,
        )

    async def add(self, transaction: WalletTransaction) -> WalletTransaction:
        db_tx = WalletTransactionModel(
            wallet_id=transaction.wallet_id,
            transaction_type=transaction.transaction_type.value,
            amount=transaction.amount,
            balance_before=transaction.balance_before,
            balance_after=transaction.balance_after,
            description=transaction.description,
            reference=transaction.reference,
            extra_metadata=dump_metadata(transaction.metadata),
            status=transaction.status,
        )
        self.session.add(db_tx)
        await self.session.flush()
        await self.session.refresh(db_tx)
        logger.info(
            "wallet_transaction_recorded",
            wallet_transaction_id=db_tx.id,
            wallet_id=db_tx.wallet_id,
            type=db_tx.transaction_type,
            amount=str(db_tx.amount),
        )
        return self._to_entity(db_tx)

    async def list_for_wallet(self, wallet_id: int) -> List[WalletTransaction]:
        result = await self.session.execute(
            select(WalletTransactionModel)
            .where(WalletTransactionModel.wallet_id == wallet_id)
            .order_by(WalletTransactionModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]
