"""
Settlement tables - payment records, wallets and the wallet ledger.

Money columns are Numeric(12, 3): BHD has three decimal places.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text,
)

from .base import Base


class PaymentRecordModel(Base):
    __tablename__ = "payment_records"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    customer_id = Column(Integer, nullable=False, index=True)

    amount = Column(Numeric(precision=12, scale=3), nullable=False, comment="Immutable once created")
    currency = Column(String(3), nullable=False, default="BHD")
    payment_method = Column(String(20), nullable=False, comment="WALLET/CARD/TAP_PAY/BENEFIT_PAY/...")
    payment_status = Column(String(20), nullable=False, default="PENDING", index=True)

    refund_amount = Column(
        Numeric(precision=12, scale=3),
        nullable=False,
        default=0,
        comment="Cumulative refunded amount",
    )
    refund_reason = Column(Text, nullable=True)

    gateway_charge_id = Column(String(200), nullable=True, index=True)
    gateway_refund_id = Column(String(200), nullable=True)
    wallet_transaction_id = Column(Integer, ForeignKey("wallet_transactions.id"), nullable=True)

    description = Column(Text, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)

    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_payment_records_order_status", "order_id", "payment_status"),
    )

    def __repr__(self):
        return (
            f"<PaymentRecordModel(id={self.id}, order_id={self.order_id}, "
            f"amount={self.amount}, status='{self.payment_status}')>"
        )


class WalletModel(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, unique=True, nullable=False, index=True)
    balance = Column(Numeric(precision=12, scale=3), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="BHD")
    is_active = Column(Boolean, nullable=False, default=True)
    last_transaction_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class WalletTransactionModel(Base):
    """Immutable ledger entries."""

    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)
    transaction_type = Column(String(20), nullable=False, comment="PAYMENT/REFUND/TOPUP")
    amount = Column(Numeric(precision=12, scale=3), nullable=False)
    balance_before = Column(Numeric(precision=12, scale=3), nullable=False)
    balance_after = Column(Numeric(precision=12, scale=3), nullable=False)
    description = Column(Text, nullable=True)
    reference = Column(String(100), nullable=True, index=True)
    extra_metadata = Column("metadata", JSON, nullable=True)
    status = Column(String(20), nullable=False, default="COMPLETED")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
