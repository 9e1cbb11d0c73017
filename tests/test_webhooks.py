import json
from decimal import Decimal

import pytest

from application.dtos.payments import CardPaymentCommand
from domain.common.exceptions import PermissionDeniedException
from domain.order.entity import HistoryAction, OrderPaymentStatus
from domain.payment.entity import PaymentStatus

from tests.conftest import CUSTOMER_ID


def _body(charge_id, status, payment_id=None):
    payload = {"id": charge_id, "object": "charge", "status": status, "amount": 10.0, "currency": "BHD"}
    if payment_id is not None:
        payload["metadata"] = {"paymentRecordId": str(payment_id)}
    return json.dumps(payload).encode()


async def _pending_card(payments, seed, gateway, customer):
    gateway.charge_status = "INITIATED"
    order = await seed.order()
    result = await payments.pay_with_card(
        CardPaymentCommand(
            order_id=order.id,
            customer_id=CUSTOMER_ID,
            amount=Decimal("10.000"),
            token_id="tok_visa",
            customer=customer,
        )
    )
    return order, result


@pytest.mark.asyncio
async def test_captured_webhook_settles_pending_record(payments, seed, gateway, customer):
    order, pending = await _pending_card(payments, seed, gateway, customer)

    event = await payments.handle_webhook({}, _body(pending.gateway_charge_id, "CAPTURED", pending.payment_id))

    assert event.status == "PAID"
    record = await seed.payment(pending.payment_id)
    assert record.payment_status == PaymentStatus.PAID
    assert record.processed_at is not None
    assert (await seed.get_order(order.id)).payment_status == OrderPaymentStatus.PAID

    received = [h for h in await seed.history(order.id) if h.action == HistoryAction.PAYMENT_RECEIVED]
    assert len(received) == 1
    assert received[0].metadata.source == "webhook"
    assert received[0].metadata.gateway_status == "CAPTURED"


@pytest.mark.asyncio
async def test_repeated_webhook_is_a_no_op(payments, seed, gateway, customer):
    order, pending = await _pending_card(payments, seed, gateway, customer)
    body = _body(pending.gateway_charge_id, "CAPTURED", pending.payment_id)

    await payments.handle_webhook({}, body)
    rows_after_first = len(await seed.history(order.id))
    await payments.handle_webhook({}, body)
    await payments.handle_webhook({}, _body(pending.gateway_charge_id, "FAILED", pending.payment_id))

    assert len(await seed.history(order.id)) == rows_after_first
    assert (await seed.payment(pending.payment_id)).payment_status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_webhook_matched_by_charge_id(payments, seed, gateway, customer):
    _, pending = await _pending_card(payments, seed, gateway, customer)

    await payments.handle_webhook({}, _body(pending.gateway_charge_id, "DECLINED"))

    assert (await seed.payment(pending.payment_id)).payment_status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_unmatched_webhook_is_acknowledged(payments, seed):
    order = await seed.order()

    event = await payments.handle_webhook({}, _body("chg_unknown", "CAPTURED"))

    assert event.id == "chg_unknown"
    assert await seed.payments(order.id) == []


@pytest.mark.asyncio
async def test_manual_sync(payments, seed, gateway, customer, manager):
    order, pending = await _pending_card(payments, seed, gateway, customer)
    gateway.retrieve_status = "CAPTURED"

    record = await payments.sync_payment_status(pending.payment_id, manager)

    assert record.payment_status == "PAID"
    assert record.metadata["charge_status"] == "CAPTURED"
    sync_rows = [h for h in await seed.history(order.id) if h.action == HistoryAction.PAYMENT_RECEIVED]
    assert sync_rows[0].metadata.source == "sync"

    # Settled records are returned as they are
    again = await payments.sync_payment_status(pending.payment_id, manager)
    assert again.payment_status == "PAID"


@pytest.mark.asyncio
async def test_sync_requires_back_office_role(payments, seed, gateway, customer, driver):
    _, pending = await _pending_card(payments, seed, gateway, customer)
    with pytest.raises(PermissionDeniedException):
        await payments.sync_payment_status(pending.payment_id, driver)
