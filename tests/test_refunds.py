import asyncio
from decimal import Decimal

import pytest

from application.dtos.payments import CardPaymentCommand, RefundCommand, WalletPaymentCommand
from domain.common.exceptions import (
    DomainValidationException,
    GatewayException,
    PaymentMismatchException,
    PaymentNotFoundException,
    PaymentNotRefundableException,
    PermissionDeniedException,
    RefundExceedsAvailableException,
)
from domain.common.metadata import OpaqueMetadata
from domain.order.entity import HistoryAction, OrderPaymentStatus
from domain.payment.entity import PaymentMethod, PaymentRecord, PaymentStatus, WalletTransactionType
from domain.payment.events import RefundProcessed

from tests.conftest import CUSTOMER_ID


D = Decimal


def _refund(payment, amount, reason="Stain not removed"):
    return RefundCommand(
        payment_id=payment.payment_id,
        order_id=payment.order_id,
        customer_id=CUSTOMER_ID,
        refund_amount=D(amount),
        reason=reason,
    )


async def _wallet_paid(payments, seed):
    order = await seed.order()
    await seed.wallet(balance=D("10.000"))
    paid = await payments.pay_with_wallet(
        WalletPaymentCommand(order_id=order.id, customer_id=CUSTOMER_ID, amount=D("10.000"))
    )
    return order, paid


async def _card_paid(payments, seed, customer):
    order = await seed.order()
    paid = await payments.pay_with_card(
        CardPaymentCommand(
            order_id=order.id,
            customer_id=CUSTOMER_ID,
            amount=D("10.000"),
            token_id="tok_visa",
            customer=customer,
        )
    )
    return order, paid


@pytest.mark.asyncio
async def test_partial_wallet_refund(payments, seed, admin, sink, event_bus):
    order, paid = await _wallet_paid(payments, seed)

    result = await payments.refund(_refund(paid, "4.000"), admin)
    await event_bus.drain()

    assert result.method == "wallet"
    assert result.total_refunded == D("4.000")
    assert result.remaining_refundable == D("6.000")
    assert result.payment_status == "PAID"
    assert result.order_payment_status == "PARTIAL_REFUND"
    assert result.new_wallet_balance == D("4.000")

    original = await seed.payment(paid.payment_id)
    assert original.refund_amount == D("4.000")
    assert original.refund_reason == "Stain not removed"

    credit = await seed.payment(result.refund_payment_id)
    assert credit.amount == D("4.000")
    assert credit.payment_status == PaymentStatus.PAID
    assert credit.payment_method == PaymentMethod.WALLET
    assert credit.is_refund_credit

    wallet = await seed.get_wallet()
    txs = await seed.wallet_transactions(wallet.id)
    assert [t.transaction_type for t in txs] == [WalletTransactionType.PAYMENT, WalletTransactionType.REFUND]
    assert txs[-1].reference == f"REFUND_{paid.payment_id}"
    assert wallet.balance == txs[-1].balance_after

    refund_rows = [h for h in await seed.history(order.id) if h.action == HistoryAction.REFUND_PROCESSED]
    assert refund_rows[0].description == "Refund of 4.000 BD processed. Reason: Stain not removed"
    assert refund_rows[0].staff_id == admin.id
    assert refund_rows[0].metadata.remaining_refundable == D("6.000")

    (event,) = sink.of_type(RefundProcessed)
    assert event.refund_amount == "4.000"


@pytest.mark.asyncio
async def test_over_refund_after_partial_leaves_state_unchanged(payments, seed, admin):
    _, paid = await _wallet_paid(payments, seed)
    await payments.refund(_refund(paid, "4.000"), admin)

    with pytest.raises(RefundExceedsAvailableException):
        await payments.refund(_refund(paid, "7.000"), admin)

    assert (await seed.payment(paid.payment_id)).refund_amount == D("4.000")
    assert (await seed.get_wallet()).balance == D("4.000")


@pytest.mark.asyncio
async def test_full_refund_marks_everything_refunded(payments, seed, admin):
    order, paid = await _wallet_paid(payments, seed)
    await payments.refund(_refund(paid, "4.000"), admin)

    result = await payments.refund(_refund(paid, "6.000"), admin)

    assert result.payment_status == "REFUNDED"
    assert result.order_payment_status == "REFUNDED"
    assert result.remaining_refundable == D("0.000")
    assert (await seed.get_order(order.id)).payment_status == OrderPaymentStatus.REFUNDED

    with pytest.raises(PaymentNotRefundableException):
        await payments.refund(_refund(paid, "1.000"), admin)


@pytest.mark.asyncio
async def test_concurrent_refunds_never_exceed_amount(payments, seed, admin):
    _, paid = await _wallet_paid(payments, seed)

    outcomes = await asyncio.gather(
        payments.refund(_refund(paid, "6.000"), admin),
        payments.refund(_refund(paid, "6.000"), admin),
        return_exceptions=True,
    )

    succeeded = [o for o in outcomes if not isinstance(o, BaseException)]
    rejected = [o for o in outcomes if isinstance(o, BaseException)]
    assert len(succeeded) == 1
    assert len(rejected) == 1
    assert isinstance(rejected[0], (RefundExceedsAvailableException, PaymentNotRefundableException))

    original = await seed.payment(paid.payment_id)
    assert original.refund_amount == D("6.000")
    assert original.refund_amount <= original.amount
    assert (await seed.get_wallet()).balance == D("6.000")


@pytest.mark.asyncio
async def test_many_small_concurrent_refunds(payments, seed, admin):
    _, paid = await _wallet_paid(payments, seed)

    outcomes = await asyncio.gather(
        *(payments.refund(_refund(paid, "3.000"), admin) for _ in range(5)),
        return_exceptions=True,
    )

    succeeded = [o for o in outcomes if not isinstance(o, BaseException)]
    assert len(succeeded) == 3
    assert all(isinstance(o, RefundExceedsAvailableException) for o in outcomes if isinstance(o, BaseException))
    assert (await seed.payment(paid.payment_id)).refund_amount == D("9.000")


@pytest.mark.asyncio
async def test_gateway_refund_updates_same_record(payments, seed, gateway, admin, customer):
    order, paid = await _card_paid(payments, seed, customer)

    result = await payments.refund(_refund(paid, "3.000"), admin)

    assert result.method == "gateway"
    assert result.gateway_refund_id == "re_1"
    assert result.refund_payment_id is None
    (request,) = gateway.refunds
    assert request.charge_id == f"chg_{paid.payment_id}"
    assert request.amount == D("3.000")

    records = await seed.payments(order.id)
    assert len(records) == 1
    assert records[0].refund_amount == D("3.000")
    assert records[0].gateway_refund_id == "re_1"
    assert (await seed.get_order(order.id)).payment_status == OrderPaymentStatus.PARTIAL_REFUND


@pytest.mark.asyncio
async def test_gateway_refund_failure_changes_nothing(payments, seed, gateway, admin, customer):
    order, paid = await _card_paid(payments, seed, customer)
    gateway.refund_error = GatewayException("refund rejected")

    with pytest.raises(GatewayException):
        await payments.refund(_refund(paid, "3.000"), admin)

    record = await seed.payment(paid.payment_id)
    assert record.refund_amount == D("0.000")
    assert all(h.action != HistoryAction.REFUND_PROCESSED for h in await seed.history(order.id))


@pytest.mark.asyncio
async def test_refund_requires_super_admin(payments, seed, manager):
    _, paid = await _wallet_paid(payments, seed)

    with pytest.raises(PermissionDeniedException):
        await payments.refund(_refund(paid, "1.000"), manager)
    with pytest.raises(PermissionDeniedException):
        await payments.refund(_refund(paid, "1.000"), None)
    assert (await seed.payment(paid.payment_id)).refund_amount == D("0.000")


@pytest.mark.asyncio
async def test_refund_input_checks(payments, seed, admin):
    _, paid = await _wallet_paid(payments, seed)

    with pytest.raises(DomainValidationException):
        await payments.refund(_refund(paid, "0"), admin)
    with pytest.raises(DomainValidationException):
        await payments.refund(_refund(paid, "1.000", reason="   "), admin)
    with pytest.raises(PaymentNotFoundException):
        await payments.refund(
            RefundCommand(payment_id=9999, order_id=paid.order_id, customer_id=CUSTOMER_ID, refund_amount=D("1"), reason="x"),
            admin,
        )
    with pytest.raises(PaymentMismatchException):
        await payments.refund(
            RefundCommand(
                payment_id=paid.payment_id,
                order_id=paid.order_id,
                customer_id=CUSTOMER_ID + 1,
                refund_amount=D("1"),
                reason="x",
            ),
            admin,
        )


@pytest.mark.asyncio
async def test_unpaid_and_flagged_records_are_not_refundable(payments, seed, gateway, admin, customer, uow_factory):
    gateway.charge_status = "INITIATED"
    _, pending = await _card_paid(payments, seed, customer)
    with pytest.raises(PaymentNotRefundableException):
        await payments.refund(_refund(pending, "1.000"), admin)

    order = await seed.order()
    async with uow_factory() as uow:
        promo = await uow.payments.create(
            PaymentRecord(
                id=None,
                order_id=order.id,
                customer_id=CUSTOMER_ID,
                amount=D("2.000"),
                payment_method=PaymentMethod.CASH,
                payment_status=PaymentStatus.PAID,
                metadata=OpaqueMetadata(data={"campaign": "spring"}, refundable=False),
            )
        )
    with pytest.raises(PaymentNotRefundableException):
        await payments.refund(
            RefundCommand(payment_id=promo.id, order_id=order.id, customer_id=CUSTOMER_ID, refund_amount=D("1"), reason="x"),
            admin,
        )


@pytest.mark.asyncio
async def test_credit_back_record_cannot_be_refunded(payments, seed, admin):
    order, paid = await _wallet_paid(payments, seed)
    result = await payments.refund(_refund(paid, "4.000"), admin)

    with pytest.raises(PaymentNotRefundableException):
        await payments.refund(
            RefundCommand(
                payment_id=result.refund_payment_id,
                order_id=order.id,
                customer_id=CUSTOMER_ID,
                refund_amount=D("1.000"),
                reason="double dip",
            ),
            admin,
        )
