"""
Settlement DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal


Money = condecimal(max_digits=12, decimal_places=3)


class CustomerDetails(BaseModel):
    first_name: str
    last_name: str = ""
    email: str
    phone: Optional[str] = None


# ---------------------------------------------------------------------------
# Gateway contracts
# ---------------------------------------------------------------------------
class ChargeRequest(BaseModel):
    payment_id: int
    order_id: int
    customer_id: int
    amount: Money  # type: ignore[valid-type]
    currency: str = Field(default="BHD")
    token_id: str
    customer: CustomerDetails
    description: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        return u


class ChargeResult(BaseModel):
    charge_id: str
    gateway_status: str
    # Internal status: PAID / PENDING / FAILED
    status: str
    redirect_url: Optional[str] = None
    message: Optional[str] = None


class GatewayRefundRequest(BaseModel):
    charge_id: str
    amount: Money  # type: ignore[valid-type]
    currency: str = "BHD"
    reason: Optional[str] = None


class GatewayRefundResult(BaseModel):
    refund_id: str
    status: str
    charge_id: Optional[str] = None


class WebhookEvent(BaseModel):
    id: str
    provider: str
    gateway_status: str
    status: str
    payment_id: Optional[int] = None
    amount: Optional[Decimal] = None
    data: dict[str, Any] = Field(default_factory=dict)
    raw_headers: Optional[dict[str, Any]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


# ---------------------------------------------------------------------------
# Service commands and results
# ---------------------------------------------------------------------------
class WalletPaymentCommand(BaseModel):
    order_id: int
    customer_id: int
    amount: Money  # type: ignore[valid-type]


class CardPaymentCommand(BaseModel):
    order_id: int
    customer_id: int
    amount: Money  # type: ignore[valid-type]
    token_id: str
    customer: CustomerDetails
    payment_method: str = "TAP_PAY"


class SplitPaymentCommand(BaseModel):
    order_id: int
    customer_id: int
    total_amount: Money  # type: ignore[valid-type]
    wallet_amount: Money  # type: ignore[valid-type]
    card_amount: Money  # type: ignore[valid-type]
    token_id: Optional[str] = None
    customer: Optional[CustomerDetails] = None


class RefundCommand(BaseModel):
    payment_id: int
    order_id: int
    customer_id: int
    refund_amount: Money  # type: ignore[valid-type]
    reason: str = Field(min_length=1)


class PaymentResult(BaseModel):
    payment_id: int
    order_id: int
    amount: Decimal
    payment_method: str
    payment_status: str
    order_payment_status: str
    wallet_balance: Optional[Decimal] = None
    wallet_transaction_id: Optional[int] = None
    gateway_charge_id: Optional[str] = None
    redirect_url: Optional[str] = None


class SplitPaymentResult(BaseModel):
    wallet: Optional[PaymentResult] = None
    card: Optional[PaymentResult] = None
    order_payment_status: str


class RefundResult(BaseModel):
    original_payment_id: int
    refund_amount: Decimal
    total_refunded: Decimal
    remaining_refundable: Decimal
    payment_status: str
    order_payment_status: str
    method: str
    refund_payment_id: Optional[int] = None
    new_wallet_balance: Optional[Decimal] = None
    gateway_refund_id: Optional[str] = None


class PaymentRecordDTO(BaseModel):
    id: int
    order_id: int
    customer_id: int
    amount: Decimal
    currency: str
    payment_method: str
    payment_status: str
    refund_amount: Decimal
    refund_reason: Optional[str] = None
    gateway_charge_id: Optional[str] = None
    gateway_refund_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)
