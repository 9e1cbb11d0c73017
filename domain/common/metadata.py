"""
Typed metadata carried by OrderHistory, PaymentRecord and WalletTransaction rows.

Each blob is tagged with ``kind`` and validated on write. Untagged dicts met
on read (legacy rows, gateway payloads) are wrapped in ``OpaqueMetadata``.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from domain.common.exceptions import DomainValidationException


class _MetadataBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # Explicit false blocks refunds against the record carrying it
    refundable: Optional[bool] = None


class StatusChangeMetadata(_MetadataBase):
    kind: Literal["status_change"] = "status_change"
    source: str = "admin"
    should_send_email: bool = True
    assignment_id: Optional[int] = None
    notes: Optional[str] = None


class AssignmentMetadata(_MetadataBase):
    kind: Literal["assignment"] = "assignment"
    assignment_id: int
    assignment_type: str
    assignment_status: str
    driver_id: int
    previous_driver_id: Optional[int] = None
    previous_status: Optional[str] = None
    estimated_time: Optional[datetime] = None
    notes: Optional[str] = None


class RefundMetadata(_MetadataBase):
    kind: Literal["refund"] = "refund"
    original_payment_id: int
    refund_amount: Decimal
    total_refunded: Decimal
    remaining_refundable: Decimal
    method: Literal["gateway", "wallet"]
    reason: str
    processed_by: Optional[int] = None
    gateway_refund_id: Optional[str] = None
    refund_payment_id: Optional[int] = None
    wallet_transaction_id: Optional[int] = None


class WalletRefundMetadata(_MetadataBase):
    kind: Literal["wallet_refund"] = "wallet_refund"
    original_payment_id: int
    reason: str
    processed_by: Optional[int] = None
    # A credit-back is never itself refundable
    refundable: Optional[bool] = False


class SplitPaymentMetadata(_MetadataBase):
    kind: Literal["split_payment"] = "split_payment"
    portion: Literal["wallet", "card"]
    wallet_amount: Decimal
    card_amount: Decimal
    total_amount: Decimal


class CardChargeMetadata(_MetadataBase):
    kind: Literal["card_charge"] = "card_charge"
    provider: str = "tap"
    charge_status: Optional[str] = None
    redirect_url: Optional[str] = None
    failure_reason: Optional[str] = None


class GatewayEventMetadata(_MetadataBase):
    kind: Literal["gateway_event"] = "gateway_event"
    provider: str = "tap"
    source: Literal["charge", "webhook", "sync"] = "webhook"
    gateway_status: str
    charge_id: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None


class OpaqueMetadata(_MetadataBase):
    kind: Literal["opaque"] = "opaque"
    data: dict[str, Any] = Field(default_factory=dict)


Metadata = Annotated[
    Union[
        StatusChangeMetadata,
        AssignmentMetadata,
        RefundMetadata,
        WalletRefundMetadata,
        SplitPaymentMetadata,
        CardChargeMetadata,
        GatewayEventMetadata,
        OpaqueMetadata,
    ],
    Field(discriminator="kind"),
]

_adapter: TypeAdapter = TypeAdapter(Metadata)


def validate_metadata(value: Any) -> Optional[Metadata]:
    """Strict write-side validation. Raises DomainValidationException on a malformed blob."""
    if value is None:
        return None
    if isinstance(value, _MetadataBase):
        return value
    try:
        return _adapter.validate_python(value)
    except ValidationError as exc:
        raise DomainValidationException(
            f"Invalid metadata: {exc.errors()[0].get('msg', 'unknown')}",
            field="metadata",
        ) from exc


def load_metadata(raw: Any) -> Optional[Metadata]:
    """Lenient read-side parsing: anything that does not validate becomes OpaqueMetadata."""
    if raw is None:
        return None
    if isinstance(raw, dict) and "kind" in raw:
        try:
            return _adapter.validate_python(raw)
        except ValidationError:
            pass
    if isinstance(raw, dict):
        return OpaqueMetadata(
            data=raw,
            refundable=raw.get("refundable") if isinstance(raw.get("refundable"), bool) else None,
        )
    return OpaqueMetadata(data={"value": raw})


def dump_metadata(metadata: Optional[Metadata]) -> Optional[dict]:
    if metadata is None:
        return None
    return metadata.model_dump(mode="json", exclude_none=True)


def is_refundable(metadata: Optional[Metadata]) -> bool:
    """Only an explicit ``refundable=False`` blocks a refund."""
    if metadata is None:
        return True
    return metadata.refundable is not False
