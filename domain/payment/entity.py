"""
Settlement entities - payment records, wallets and the wallet ledger.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    InsufficientFundsException,
    RefundExceedsAvailableException,
)
from domain.common.metadata import Metadata, is_refundable


MONEY_QUANTUM = Decimal("0.001")


def quantize(amount: Decimal) -> Decimal:
    """Money is held to three decimals (BHD fils)."""
    return Decimal(amount).quantize(MONEY_QUANTUM)


class PaymentMethod(str, Enum):
    WALLET = "WALLET"
    CARD = "CARD"
    TAP_PAY = "TAP_PAY"
    BENEFIT_PAY = "BENEFIT_PAY"
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"

    @property
    def is_gateway(self) -> bool:
        return self in (PaymentMethod.CARD, PaymentMethod.TAP_PAY, PaymentMethod.BENEFIT_PAY)


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIAL_REFUND = "PARTIAL_REFUND"


class WalletTransactionType(str, Enum):
    PAYMENT = "PAYMENT"
    REFUND = "REFUND"
    TOPUP = "TOPUP"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class PaymentRecord:
    """
    One money movement attempt against an order.

    Business rules:
    1. ``amount`` is positive and never changes once created
    2. ``refund_amount`` is cumulative and never exceeds ``amount``
    3. Only PAID records can be refunded
    4. A record stays PAID through partial refunds and becomes REFUNDED once fully refunded
    """

    id: Optional[int]
    order_id: int
    customer_id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    currency: str = "BHD"
    refund_amount: Decimal = Decimal("0")
    refund_reason: Optional[str] = None
    gateway_charge_id: Optional[str] = None
    gateway_refund_id: Optional[str] = None
    wallet_transaction_id: Optional[int] = None
    description: Optional[str] = None
    metadata: Optional[Metadata] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.amount = quantize(self.amount)
        self.refund_amount = quantize(self.refund_amount or Decimal("0"))
        if self.amount <= 0:
            raise DomainValidationException(
                f"Payment amount must be greater than 0: {self.amount}",
                field="amount",
            )
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.payment_method = PaymentMethod(self.payment_method)
        self.payment_status = PaymentStatus(self.payment_status)
        self.processed_at = _ensure_utc(self.processed_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def max_refundable(self) -> Decimal:
        return self.amount - self.refund_amount

    @property
    def is_refund_credit(self) -> bool:
        """True for the credit-back record created by a wallet refund."""
        return self.metadata is not None and self.metadata.kind == "wallet_refund"

    @property
    def refundable_flag(self) -> bool:
        return is_refundable(self.metadata)

    def mark_paid(self, now: datetime, gateway_charge_id: Optional[str] = None) -> None:
        self.payment_status = PaymentStatus.PAID
        if gateway_charge_id:
            self.gateway_charge_id = gateway_charge_id
        self.processed_at = now
        self.updated_at = now

    def mark_failed(self, now: datetime) -> None:
        self.payment_status = PaymentStatus.FAILED
        self.updated_at = now

    def apply_refund(self, refund_amount: Decimal, reason: str, now: datetime) -> None:
        """
        Add ``refund_amount`` to the cumulative refund.

        Must be called on a row read inside the refund transaction; the check
        here is the authoritative one.
        """
        refund_amount = quantize(refund_amount)
        if refund_amount > self.max_refundable:
            raise RefundExceedsAvailableException(self.id, refund_amount, self.max_refundable)
        self.refund_amount = self.refund_amount + refund_amount
        self.refund_reason = reason
        if self.refund_amount == self.amount:
            self.payment_status = PaymentStatus.REFUNDED
        self.updated_at = now


@dataclass
class Wallet:
    id: Optional[int]
    customer_id: int
    balance: Decimal = Decimal("0")
    currency: str = "BHD"
    is_active: bool = True
    last_transaction_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.balance = quantize(self.balance)
        self.last_transaction_at = _ensure_utc(self.last_transaction_at)

    def debit(self, amount: Decimal, now: datetime) -> "WalletTransaction":
        """Take ``amount`` out of the wallet and return the unsaved ledger entry."""
        amount = quantize(amount)
        if self.balance < amount:
            raise InsufficientFundsException(self.customer_id, self.balance, amount)
        return self._move(WalletTransactionType.PAYMENT, -amount, now)

    def credit(self, amount: Decimal, now: datetime, transaction_type: WalletTransactionType = WalletTransactionType.REFUND) -> "WalletTransaction":
        return self._move(transaction_type, quantize(amount), now)

    def _move(self, transaction_type: WalletTransactionType, signed_amount: Decimal, now: datetime) -> "WalletTransaction":
        before = self.balance
        after = before + signed_amount
        self.balance = after
        self.last_transaction_at = now
        self.updated_at = now
        return WalletTransaction(
            id=None,
            wallet_id=self.id,
            transaction_type=transaction_type,
            amount=abs(signed_amount),
            balance_before=before,
            balance_after=after,
            created_at=now,
        )


@dataclass
class WalletTransaction:
    """Immutable ledger entry: balance_after = balance_before +/- amount."""

    id: Optional[int]
    wallet_id: int
    transaction_type: WalletTransactionType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: Optional[str] = None
    reference: Optional[str] = None
    metadata: Optional[Metadata] = None
    status: str = "COMPLETED"
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.transaction_type = WalletTransactionType(self.transaction_type)
        self.amount = quantize(self.amount)
        self.balance_before = quantize(self.balance_before)
        self.balance_after = quantize(self.balance_after)
        if self.amount <= 0:
            raise DomainValidationException(
                f"Wallet transaction amount must be greater than 0: {self.amount}",
                field="amount",
            )

    @property
    def signed_amount(self) -> Decimal:
        if self.transaction_type == WalletTransactionType.PAYMENT:
            return -self.amount
        return self.amount
