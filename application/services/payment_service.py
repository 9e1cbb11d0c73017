"""
Application service orchestrating payment and refund use-cases.

This class depends only on the application PaymentGateway port and the unit
of work. Gateway calls always happen outside a database transaction; their
outcome is recorded afterwards in a fresh one.

Refund concurrency:
- cheap prechecks run first against a plain read and reject early
- the authoritative ``refund_amount <= amount - refunded`` check runs inside a
  SERIALIZABLE transaction on a row re-read FOR UPDATE
- a serialization failure surfaces as ConcurrentUpdateException and is never
  retried here
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, List, Optional

from application.dtos.payments import (
    CardPaymentCommand,
    ChargeRequest,
    CustomerDetails,
    GatewayRefundRequest,
    PaymentRecordDTO,
    PaymentResult,
    RefundCommand,
    RefundResult,
    SplitPaymentCommand,
    SplitPaymentResult,
    WalletPaymentCommand,
    WebhookEvent,
)
from application.ports.events import EventBus
from application.ports.payment_gateway import PaymentGateway
from application.services.order_status_service import OrderStatusService
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    AmountMismatchException,
    DomainValidationException,
    GatewayException,
    OrderAlreadyPaidException,
    OrderNotFoundException,
    PaymentMismatchException,
    PaymentNotFoundException,
    PaymentNotRefundableException,
    RefundExceedsAvailableException,
    SplitAmountMismatchException,
    WalletNotFoundException,
)
from domain.common.metadata import (
    CardChargeMetadata,
    GatewayEventMetadata,
    Metadata,
    RefundMetadata,
    SplitPaymentMetadata,
    WalletRefundMetadata,
    dump_metadata,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import HistoryAction, Order, OrderHistory, OrderPaymentStatus
from domain.payment.entity import (
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    Wallet,
    WalletTransactionType,
    quantize,
)
from domain.payment.events import PaymentRecorded, RefundProcessed
from domain.payment.service import derive_order_payment_status
from domain.staff.entity import Staff
from domain.staff.policy import ADMIN_ROLES, require_role


logger = get_logger(__name__)

SERIALIZABLE = "SERIALIZABLE"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _positive(amount: Decimal, field: str) -> Decimal:
    amount = quantize(amount)
    if amount <= 0:
        raise DomainValidationException(f"{field} must be greater than 0", field=field)
    return amount


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: Optional[PaymentGateway],
        order_status: OrderStatusService,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self._order_status = order_status
        self._event_bus = event_bus
        self._now = clock

    async def _publish(self, events: List[Any]) -> None:
        if self._event_bus is not None and events:
            await self._event_bus.publish(events)

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise GatewayException("Card payments are not configured")
        return self.gateway

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------
    async def _load_payable_order(
        self,
        uow: AbstractUnitOfWork,
        order_id: int,
        customer_id: int,
        expected_total: Decimal,
        *,
        check_paid: bool = True,
    ) -> Order:
        order = await uow.orders.get_for_update(order_id)
        if not order or order.customer_id != customer_id:
            raise OrderNotFoundException(order_id)
        if check_paid and order.is_paid:
            raise OrderAlreadyPaidException(order_id)
        if order.invoice_total is not None and quantize(order.invoice_total) != quantize(expected_total):
            raise AmountMismatchException(quantize(expected_total), order.invoice_total)
        return order

    async def _refresh_order_payment_status(
        self,
        uow: AbstractUnitOfWork,
        order: Order,
        *,
        actor_id: Optional[int] = None,
        metadata: Optional[Metadata] = None,
    ) -> Order:
        records = await uow.payments.list_for_order(order.id)
        new_status = derive_order_payment_status(records, order.invoice_total, order.payment_status)
        return await self._order_status.set_payment_status(
            uow, order, new_status, actor_id=actor_id, metadata=metadata
        )

    async def _add_history(
        self,
        uow: AbstractUnitOfWork,
        order_id: int,
        action: HistoryAction,
        description: str,
        *,
        actor_id: Optional[int] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        metadata: Optional[Metadata] = None,
    ) -> OrderHistory:
        return await uow.order_history.add(
            OrderHistory(
                id=None,
                order_id=order_id,
                action=action,
                description=description,
                staff_id=actor_id,
                old_value=old_value,
                new_value=new_value,
                metadata=metadata,
                created_at=self._now(),
            )
        )

    @staticmethod
    def _recorded_event(record: PaymentRecord) -> PaymentRecorded:
        return PaymentRecorded(
            order_id=record.order_id,
            payment_id=record.id,
            customer_id=record.customer_id,
            amount=str(record.amount),
            payment_method=record.payment_method.value,
            payment_status=record.payment_status.value,
        )

    @staticmethod
    def _to_result(
        record: PaymentRecord,
        order: Order,
        *,
        wallet: Optional[Wallet] = None,
        redirect_url: Optional[str] = None,
    ) -> PaymentResult:
        return PaymentResult(
            payment_id=record.id,
            order_id=record.order_id,
            amount=record.amount,
            payment_method=record.payment_method.value,
            payment_status=record.payment_status.value,
            order_payment_status=order.payment_status.value,
            wallet_balance=wallet.balance if wallet else None,
            wallet_transaction_id=record.wallet_transaction_id,
            gateway_charge_id=record.gateway_charge_id,
            redirect_url=redirect_url,
        )

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------
    async def _debit_wallet(
        self,
        uow: AbstractUnitOfWork,
        order: Order,
        customer_id: int,
        amount: Decimal,
        metadata: Optional[Metadata] = None,
    ) -> tuple[PaymentRecord, Wallet]:
        wallet = await uow.wallets.get_by_customer_for_update(customer_id)
        if wallet is None or not wallet.is_active:
            raise WalletNotFoundException(customer_id)

        now = self._now()
        tx = wallet.debit(amount, now)
        tx.description = f"Payment for order {order.order_number}"
        tx.reference = f"ORDER_{order.id}"
        tx.metadata = metadata
        tx = await uow.wallet_transactions.add(tx)
        wallet = await uow.wallets.update(wallet)

        record = await uow.payments.create(
            PaymentRecord(
                id=None,
                order_id=order.id,
                customer_id=customer_id,
                amount=amount,
                payment_method=PaymentMethod.WALLET,
                payment_status=PaymentStatus.PAID,
                currency=wallet.currency,
                wallet_transaction_id=tx.id,
                description=tx.description,
                metadata=metadata,
                processed_at=now,
            )
        )
        await self._add_history(
            uow,
            order.id,
            HistoryAction.PAYMENT_RECEIVED,
            f"Wallet payment of {amount} BD received",
            new_value=str(amount),
            metadata=metadata,
        )
        uow.collect(self._recorded_event(record))
        return record, wallet

    async def pay_with_wallet(self, cmd: WalletPaymentCommand) -> PaymentResult:
        amount = _positive(cmd.amount, "amount")
        async with self._uow_factory(isolation=SERIALIZABLE) as uow:
            order = await self._load_payable_order(uow, cmd.order_id, cmd.customer_id, amount)
            record, wallet = await self._debit_wallet(uow, order, cmd.customer_id, amount)
            order = await self._refresh_order_payment_status(uow, order)
        await self._publish(uow.committed_events())
        logger.info(
            "wallet_payment_committed",
            payment_id=record.id,
            order_id=cmd.order_id,
            amount=str(amount),
            balance=str(wallet.balance),
        )
        return self._to_result(record, order, wallet=wallet)

    # ------------------------------------------------------------------
    # Card
    # ------------------------------------------------------------------
    async def _create_pending_card_record(
        self,
        order_id: int,
        customer_id: int,
        amount: Decimal,
        expected_total: Decimal,
        method: PaymentMethod,
        metadata: Metadata,
        *,
        check_paid: bool = True,
    ) -> tuple[PaymentRecord, Order]:
        async with self._uow_factory() as uow:
            order = await self._load_payable_order(
                uow, order_id, customer_id, expected_total, check_paid=check_paid
            )
            record = await uow.payments.create(
                PaymentRecord(
                    id=None,
                    order_id=order_id,
                    customer_id=customer_id,
                    amount=amount,
                    payment_method=method,
                    payment_status=PaymentStatus.PENDING,
                    currency=settings.settlement.currency,
                    description=f"Card payment for order {order.order_number}",
                    metadata=metadata,
                )
            )
        return record, order

    async def _charge(
        self,
        record: PaymentRecord,
        token_id: str,
        customer: CustomerDetails,
        description: Optional[str],
    ) -> PaymentResult:
        """Call the gateway once and record whatever it answered."""
        gateway = self._require_gateway()
        try:
            charge = await gateway.charge(
                ChargeRequest(
                    payment_id=record.id,
                    order_id=record.order_id,
                    customer_id=record.customer_id,
                    amount=record.amount,
                    currency=record.currency,
                    token_id=token_id,
                    customer=customer,
                    description=description,
                )
            )
        except GatewayException as exc:
            # Outcome unknown: the record stays PENDING for webhook or manual sync
            logger.warning(
                "card_charge_failed",
                payment_id=record.id,
                order_id=record.order_id,
                error=exc.message,
                code=int(exc.code),
            )
            raise

        record, order = await self._settle_charge(
            record.id,
            charge.status,
            charge.gateway_status,
            charge_id=charge.charge_id,
            source="charge",
            redirect_url=charge.redirect_url,
            message=charge.message,
        )
        return self._to_result(record, order, redirect_url=charge.redirect_url)

    async def pay_with_card(self, cmd: CardPaymentCommand) -> PaymentResult:
        amount = _positive(cmd.amount, "amount")
        try:
            method = PaymentMethod(cmd.payment_method)
        except ValueError as exc:
            raise DomainValidationException(
                f"Unknown payment method: {cmd.payment_method}", field="payment_method"
            ) from exc
        if not method.is_gateway:
            raise DomainValidationException(
                f"{method.value} is not a card payment method", field="payment_method"
            )

        record, order = await self._create_pending_card_record(
            cmd.order_id,
            cmd.customer_id,
            amount,
            amount,
            method,
            CardChargeMetadata(provider=getattr(self.gateway, "provider", "tap")),
        )
        return await self._charge(
            record, cmd.token_id, cmd.customer, f"Payment for order {order.order_number}"
        )

    # ------------------------------------------------------------------
    # Split
    # ------------------------------------------------------------------
    async def pay_split(self, cmd: SplitPaymentCommand) -> SplitPaymentResult:
        total = quantize(cmd.total_amount)
        wallet_amount = quantize(cmd.wallet_amount)
        card_amount = quantize(cmd.card_amount)
        # Rejected before any money moves
        if (
            total <= 0
            or wallet_amount < 0
            or card_amount < 0
            or abs(wallet_amount + card_amount - total) > settings.settlement.split_epsilon
        ):
            raise SplitAmountMismatchException(wallet_amount, card_amount, total)
        if card_amount > 0 and (not cmd.token_id or cmd.customer is None):
            raise DomainValidationException("Card token and customer details are required", field="token_id")

        def split_meta(portion: str) -> SplitPaymentMetadata:
            return SplitPaymentMetadata(
                portion=portion,
                wallet_amount=wallet_amount,
                card_amount=card_amount,
                total_amount=total,
            )

        wallet_result: Optional[PaymentResult] = None
        if wallet_amount > 0:
            async with self._uow_factory(isolation=SERIALIZABLE) as uow:
                order = await self._load_payable_order(uow, cmd.order_id, cmd.customer_id, total)
                record, wallet = await self._debit_wallet(
                    uow, order, cmd.customer_id, wallet_amount, split_meta("wallet")
                )
                order = await self._refresh_order_payment_status(uow, order)
            await self._publish(uow.committed_events())
            wallet_result = self._to_result(record, order, wallet=wallet)
            logger.info(
                "split_wallet_portion_committed",
                payment_id=record.id,
                order_id=cmd.order_id,
                amount=str(wallet_amount),
            )

        card_result: Optional[PaymentResult] = None
        if card_amount > 0:
            record, order = await self._create_pending_card_record(
                cmd.order_id,
                cmd.customer_id,
                card_amount,
                total,
                PaymentMethod.TAP_PAY,
                split_meta("card"),
                # The wallet portion alone may already read as PAID when there is no invoice total
                check_paid=wallet_result is None,
            )
            card_result = await self._charge(
                record, cmd.token_id, cmd.customer, f"Split payment for order {order.order_number}"
            )

        final = card_result or wallet_result
        return SplitPaymentResult(
            wallet=wallet_result,
            card=card_result,
            order_payment_status=final.order_payment_status if final else OrderPaymentStatus.PENDING.value,
        )

    # ------------------------------------------------------------------
    # Gateway outcomes: charge answer, webhook, manual sync
    # ------------------------------------------------------------------
    async def _settle_charge(
        self,
        payment_id: Optional[int],
        status: str,
        gateway_status: str,
        *,
        charge_id: Optional[str],
        source: str,
        redirect_url: Optional[str] = None,
        message: Optional[str] = None,
    ) -> tuple[Optional[PaymentRecord], Optional[Order]]:
        async with self._uow_factory(isolation=SERIALIZABLE) as uow:
            record = None
            if payment_id is not None:
                record = await uow.payments.get_for_update(payment_id)
            elif charge_id:
                match = await uow.payments.get_by_gateway_charge_id(charge_id)
                record = await uow.payments.get_for_update(match.id) if match else None
            if record is None:
                logger.warning("gateway_outcome_unmatched", payment_id=payment_id, charge_id=charge_id, source=source)
                return None, None

            order = await uow.orders.get_for_update(record.order_id)
            if not order:
                raise OrderNotFoundException(record.order_id)

            if record.payment_status != PaymentStatus.PENDING:
                # Already settled by an earlier callback; repeated deliveries are no-ops
                logger.info(
                    "gateway_outcome_ignored",
                    payment_id=record.id,
                    payment_status=record.payment_status.value,
                    gateway_status=gateway_status,
                    source=source,
                )
                return record, order

            previous = record.payment_status
            now = self._now()
            if charge_id and not record.gateway_charge_id:
                record.gateway_charge_id = charge_id
            if status == PaymentStatus.PAID.value:
                record.mark_paid(now, charge_id)
            elif status == PaymentStatus.FAILED.value:
                record.mark_failed(now)
            else:
                record.updated_at = now
            if record.metadata is None or record.metadata.kind == "card_charge":
                record.metadata = CardChargeMetadata(
                    provider=getattr(self.gateway, "provider", "tap"),
                    charge_status=gateway_status,
                    redirect_url=redirect_url,
                    failure_reason=message if status == PaymentStatus.FAILED.value else None,
                )
            record = await uow.payments.update(record)

            if record.payment_status != previous:
                event_meta = GatewayEventMetadata(
                    provider=getattr(self.gateway, "provider", "tap"),
                    source=source,
                    gateway_status=gateway_status,
                    charge_id=record.gateway_charge_id,
                    previous_status=previous.value,
                    new_status=record.payment_status.value,
                )
                if record.payment_status == PaymentStatus.PAID:
                    await self._add_history(
                        uow,
                        order.id,
                        HistoryAction.PAYMENT_RECEIVED,
                        f"Card payment of {record.amount} BD received",
                        old_value=previous.value,
                        new_value=record.payment_status.value,
                        metadata=event_meta,
                    )
                else:
                    await self._add_history(
                        uow,
                        order.id,
                        HistoryAction.PAYMENT_UPDATE,
                        f"Card payment of {record.amount} BD failed ({gateway_status})",
                        old_value=previous.value,
                        new_value=record.payment_status.value,
                        metadata=event_meta,
                    )
                order = await self._refresh_order_payment_status(uow, order)
                uow.collect(self._recorded_event(record))
        await self._publish(uow.committed_events())
        logger.info(
            "card_charge_recorded",
            payment_id=record.id,
            order_id=record.order_id,
            gateway_status=gateway_status,
            payment_status=record.payment_status.value,
            source=source,
        )
        return record, order

    async def handle_webhook(self, headers: dict, body: bytes) -> WebhookEvent:
        gateway = self._require_gateway()
        event = gateway.parse_webhook(headers, body)
        logger.info(
            "payment_webhook_parsed",
            provider=event.provider,
            event_id=event.id,
            gateway_status=event.gateway_status,
            payment_id=event.payment_id,
        )
        await self._settle_charge(
            event.payment_id,
            event.status,
            event.gateway_status,
            charge_id=event.id or None,
            source="webhook",
        )
        return event

    async def sync_payment_status(self, payment_id: int, actor: Optional[Staff]) -> PaymentRecordDTO:
        """Operator-triggered reconciliation of a PENDING card record against the gateway."""
        require_role(actor, ADMIN_ROLES)
        async with self._uow_factory(readonly=True) as uow:
            record = await uow.payments.get_by_id(payment_id)
        if not record:
            raise PaymentNotFoundException(payment_id)
        if record.payment_status != PaymentStatus.PENDING or not record.gateway_charge_id:
            return self._to_record_dto(record)

        charge = await self._require_gateway().retrieve_charge(record.gateway_charge_id)
        settled, _ = await self._settle_charge(
            record.id,
            charge.status,
            charge.gateway_status,
            charge_id=charge.charge_id,
            source="sync",
            redirect_url=charge.redirect_url,
            message=charge.message,
        )
        return self._to_record_dto(settled or record)

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------
    @staticmethod
    def _precheck_refund(record: Optional[PaymentRecord], cmd: RefundCommand, amount: Decimal) -> PaymentRecord:
        if record is None:
            raise PaymentNotFoundException(cmd.payment_id)
        if record.order_id != cmd.order_id or record.customer_id != cmd.customer_id:
            raise PaymentMismatchException(cmd.payment_id, cmd.order_id, cmd.customer_id)
        if record.payment_status != PaymentStatus.PAID:
            raise PaymentNotRefundableException(
                cmd.payment_id, f"payment status is {record.payment_status.value}, must be PAID"
            )
        if record.is_refund_credit or not record.refundable_flag:
            raise PaymentNotRefundableException(cmd.payment_id, "payment is marked as non-refundable")
        if amount > record.max_refundable:
            raise RefundExceedsAvailableException(cmd.payment_id, amount, record.max_refundable)
        return record

    def _apply_refund_locked(
        self,
        record: Optional[PaymentRecord],
        cmd: RefundCommand,
        amount: Decimal,
        *,
        method: str,
        gateway_refund_id: Optional[str] = None,
    ) -> PaymentRecord:
        """The authoritative check, run on the row re-read FOR UPDATE."""
        if record is None:
            raise PaymentNotFoundException(cmd.payment_id)
        # A fully refunded row falls through to apply_refund, which rejects on the amount
        if record.payment_status not in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            raise PaymentNotRefundableException(
                cmd.payment_id, f"payment status is {record.payment_status.value}, must be PAID"
            )
        try:
            record.apply_refund(amount, cmd.reason, self._now())
        except RefundExceedsAvailableException:
            logger.critical(
                "refund_exceeds_available",
                anomaly=True,
                payment_id=cmd.payment_id,
                requested=str(amount),
                available=str(record.max_refundable),
                refunded=str(record.refund_amount),
                method=method,
                gateway_refund_id=gateway_refund_id,
            )
            raise
        return record

    async def refund(self, cmd: RefundCommand, actor: Optional[Staff]) -> RefundResult:
        require_role(actor, settings.settlement.refund_roles)
        amount = _positive(cmd.refund_amount, "refund_amount")
        if not (cmd.reason or "").strip():
            raise DomainValidationException("Refund reason is required", field="reason")

        async with self._uow_factory(readonly=True) as uow:
            record = await uow.payments.get_by_id(cmd.payment_id)
        record = self._precheck_refund(record, cmd, amount)

        logger.info(
            "refund_requested",
            payment_id=record.id,
            order_id=record.order_id,
            amount=str(amount),
            method=record.payment_method.value,
            actor_id=actor.id,
        )
        if record.payment_method.is_gateway and record.gateway_charge_id:
            return await self._refund_via_gateway(record, cmd, amount, actor)
        return await self._refund_to_wallet(cmd, amount, actor)

    async def _refund_via_gateway(
        self,
        record: PaymentRecord,
        cmd: RefundCommand,
        amount: Decimal,
        actor: Staff,
    ) -> RefundResult:
        gateway = self._require_gateway()
        # Money moves at the gateway first; a failure here leaves local state untouched
        gateway_refund = await gateway.create_refund(
            GatewayRefundRequest(
                charge_id=record.gateway_charge_id,
                amount=amount,
                currency=record.currency,
                reason=cmd.reason,
            )
        )

        async with self._uow_factory(isolation=SERIALIZABLE) as uow:
            fresh = await uow.payments.get_for_update(cmd.payment_id)
            fresh = self._apply_refund_locked(
                fresh, cmd, amount, method="gateway", gateway_refund_id=gateway_refund.refund_id
            )
            fresh.gateway_refund_id = gateway_refund.refund_id
            fresh = await uow.payments.update(fresh)

            refund_meta = RefundMetadata(
                original_payment_id=fresh.id,
                refund_amount=amount,
                total_refunded=fresh.refund_amount,
                remaining_refundable=fresh.max_refundable,
                method="gateway",
                reason=cmd.reason,
                processed_by=actor.id,
                gateway_refund_id=gateway_refund.refund_id,
            )
            await self._add_history(
                uow,
                fresh.order_id,
                HistoryAction.REFUND_PROCESSED,
                f"Refund of {amount} BD processed. Reason: {cmd.reason}",
                actor_id=actor.id,
                old_value=str(fresh.refund_amount - amount),
                new_value=str(fresh.refund_amount),
                metadata=refund_meta,
            )
            order = await uow.orders.get_for_update(fresh.order_id)
            if not order:
                raise OrderNotFoundException(fresh.order_id)
            order = await self._refresh_order_payment_status(uow, order, actor_id=actor.id, metadata=refund_meta)
            uow.collect(
                RefundProcessed(
                    order_id=fresh.order_id,
                    payment_id=fresh.id,
                    customer_id=fresh.customer_id,
                    refund_amount=str(amount),
                    total_refunded=str(fresh.refund_amount),
                    method="gateway",
                    actor_id=actor.id,
                    gateway_refund_id=gateway_refund.refund_id,
                )
            )
        await self._publish(uow.committed_events())
        logger.info(
            "refund_committed",
            payment_id=fresh.id,
            method="gateway",
            amount=str(amount),
            total_refunded=str(fresh.refund_amount),
            gateway_refund_id=gateway_refund.refund_id,
        )
        return RefundResult(
            original_payment_id=fresh.id,
            refund_amount=amount,
            total_refunded=fresh.refund_amount,
            remaining_refundable=fresh.max_refundable,
            payment_status=fresh.payment_status.value,
            order_payment_status=order.payment_status.value,
            method="gateway",
            gateway_refund_id=gateway_refund.refund_id,
        )

    async def _refund_to_wallet(self, cmd: RefundCommand, amount: Decimal, actor: Staff) -> RefundResult:
        async with self._uow_factory(isolation=SERIALIZABLE) as uow:
            fresh = await uow.payments.get_for_update(cmd.payment_id)
            fresh = self._apply_refund_locked(fresh, cmd, amount, method="wallet")

            wallet = await uow.wallets.get_by_customer_for_update(fresh.customer_id)
            if wallet is None or not wallet.is_active:
                raise WalletNotFoundException(fresh.customer_id)

            now = self._now()
            credit_meta = WalletRefundMetadata(
                original_payment_id=fresh.id,
                reason=cmd.reason,
                processed_by=actor.id,
            )
            tx = wallet.credit(amount, now, WalletTransactionType.REFUND)
            tx.description = f"Refund for payment {fresh.id}: {cmd.reason}"
            tx.reference = f"REFUND_{fresh.id}"
            tx.metadata = credit_meta
            tx = await uow.wallet_transactions.add(tx)
            wallet = await uow.wallets.update(wallet)

            credit = await uow.payments.create(
                PaymentRecord(
                    id=None,
                    order_id=fresh.order_id,
                    customer_id=fresh.customer_id,
                    amount=amount,
                    payment_method=PaymentMethod.WALLET,
                    payment_status=PaymentStatus.PAID,
                    currency=fresh.currency,
                    wallet_transaction_id=tx.id,
                    description=tx.description,
                    metadata=credit_meta,
                    processed_at=now,
                )
            )
            fresh = await uow.payments.update(fresh)

            refund_meta = RefundMetadata(
                original_payment_id=fresh.id,
                refund_amount=amount,
                total_refunded=fresh.refund_amount,
                remaining_refundable=fresh.max_refundable,
                method="wallet",
                reason=cmd.reason,
                processed_by=actor.id,
                refund_payment_id=credit.id,
                wallet_transaction_id=tx.id,
            )
            await self._add_history(
                uow,
                fresh.order_id,
                HistoryAction.REFUND_PROCESSED,
                f"Refund of {amount} BD processed. Reason: {cmd.reason}",
                actor_id=actor.id,
                old_value=str(fresh.refund_amount - amount),
                new_value=str(fresh.refund_amount),
                metadata=refund_meta,
            )
            order = await uow.orders.get_for_update(fresh.order_id)
            if not order:
                raise OrderNotFoundException(fresh.order_id)
            order = await self._refresh_order_payment_status(uow, order, actor_id=actor.id, metadata=refund_meta)
            uow.collect(
                RefundProcessed(
                    order_id=fresh.order_id,
                    payment_id=fresh.id,
                    customer_id=fresh.customer_id,
                    refund_amount=str(amount),
                    total_refunded=str(fresh.refund_amount),
                    method="wallet",
                    actor_id=actor.id,
                    refund_payment_id=credit.id,
                )
            )
        await self._publish(uow.committed_events())
        logger.info(
            "refund_committed",
            payment_id=fresh.id,
            method="wallet",
            amount=str(amount),
            total_refunded=str(fresh.refund_amount),
            refund_payment_id=credit.id,
            balance=str(wallet.balance),
        )
        return RefundResult(
            original_payment_id=fresh.id,
            refund_amount=amount,
            total_refunded=fresh.refund_amount,
            remaining_refundable=fresh.max_refundable,
            payment_status=fresh.payment_status.value,
            order_payment_status=order.payment_status.value,
            method="wallet",
            refund_payment_id=credit.id,
            new_wallet_balance=wallet.balance,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @staticmethod
    def _to_record_dto(record: PaymentRecord) -> PaymentRecordDTO:
        return PaymentRecordDTO(
            id=record.id,
            order_id=record.order_id,
            customer_id=record.customer_id,
            amount=record.amount,
            currency=record.currency,
            payment_method=record.payment_method.value,
            payment_status=record.payment_status.value,
            refund_amount=record.refund_amount,
            refund_reason=record.refund_reason,
            gateway_charge_id=record.gateway_charge_id,
            gateway_refund_id=record.gateway_refund_id,
            metadata=dump_metadata(record.metadata),
        )

    async def list_for_order(self, order_id: int) -> List[PaymentRecordDTO]:
        async with self._uow_factory(readonly=True) as uow:
            records = await uow.payments.list_for_order(order_id)
        return [self._to_record_dto(r) for r in records]

    async def aclose(self) -> None:
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()
