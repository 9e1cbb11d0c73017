"""
Settlement domain service - order payment status derived from its payment records.
"""
from decimal import Decimal
from typing import Iterable, Optional

from domain.order.entity import OrderPaymentStatus
from .entity import PaymentRecord, PaymentStatus


def net_paid(records: Iterable[PaymentRecord]) -> Decimal:
    """Sum of paid originals minus what has been refunded against them."""
    total = Decimal("0")
    for record in records:
        if record.is_refund_credit:
            continue
        if record.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.PARTIAL_REFUND):
            total += record.amount - record.refund_amount
    return total


def derive_order_payment_status(
    records: Iterable[PaymentRecord],
    invoice_total: Optional[Decimal],
    current: OrderPaymentStatus,
) -> OrderPaymentStatus:
    """
    Business rules:
    1. Any refund against a paid original makes the order PARTIAL_REFUND,
       or REFUNDED once nothing paid remains
    2. Otherwise the order is PAID once paid originals cover the invoice total
    3. Failed attempts only surface as FAILED when nothing was ever paid
    """
    originals = [r for r in records if not r.is_refund_credit]
    paid = [
        r for r in originals
        if r.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.PARTIAL_REFUND)
    ]
    refunded = sum((r.refund_amount for r in paid), Decimal("0"))
    gross = sum((r.amount for r in paid), Decimal("0"))

    if refunded > 0:
        return OrderPaymentStatus.REFUNDED if gross - refunded <= 0 else OrderPaymentStatus.PARTIAL_REFUND
    if paid:
        target = invoice_total if invoice_total is not None else gross
        if gross >= target:
            return OrderPaymentStatus.PAID
        return OrderPaymentStatus.PENDING
    if originals and all(r.payment_status == PaymentStatus.FAILED for r in originals):
        return OrderPaymentStatus.FAILED
    return current
