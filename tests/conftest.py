"""Pytest bootstrap configuration.

Environment is pinned before any module that reads application settings is
imported. Every test gets its own SQLite file so row locking (BEGIN
IMMEDIATE) behaves the way it does against a real database.
"""
import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///./.pytest-laundry.db")

import itertools
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from application.dtos.payments import (
    ChargeRequest,
    ChargeResult,
    CustomerDetails,
    GatewayRefundRequest,
    GatewayRefundResult,
    WebhookEvent,
)
from application.services.dispatch_service import DispatchService
from application.services.order_status_service import OrderStatusService
from application.services.payment_service import PaymentService
from domain.order.entity import Order, OrderStatus
from domain.payment.entity import Wallet
from domain.staff.entity import Staff, StaffRole
from infrastructure.database import build_engine, create_tables
from infrastructure.events import InMemoryEventBus
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


CUSTOMER_ID = 501
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

# Shortest admin path from ORDER_PLACED to each status, used to seed orders
ORDER_PATH = [
    OrderStatus.CONFIRMED,
    OrderStatus.PICKUP_ASSIGNED,
    OrderStatus.PICKUP_IN_PROGRESS,
    OrderStatus.PICKUP_COMPLETED,
    OrderStatus.RECEIVED_AT_FACILITY,
    OrderStatus.PROCESSING_STARTED,
    OrderStatus.PROCESSING_COMPLETED,
    OrderStatus.READY_FOR_DELIVERY,
    OrderStatus.DELIVERY_ASSIGNED,
    OrderStatus.DELIVERY_IN_PROGRESS,
    OrderStatus.DELIVERED,
]


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class StubGateway:
    """In-memory stand-in for the card gateway."""

    provider = "tap"

    def __init__(self):
        self.charge_status = "CAPTURED"
        self.retrieve_status = "CAPTURED"
        self.charge_error: Optional[Exception] = None
        self.refund_error: Optional[Exception] = None
        self.charges: List[ChargeRequest] = []
        self.refunds: List[GatewayRefundRequest] = []
        self._refund_ids = itertools.count(1)

    @staticmethod
    def _internal(gateway_status: str) -> str:
        return PROVIDER_STATUS_TO_INTERNAL["tap"].get(gateway_status, "PENDING")

    async def charge(self, req: ChargeRequest) -> ChargeResult:
        self.charges.append(req)
        if self.charge_error is not None:
            raise self.charge_error
        status = self.charge_status
        return ChargeResult(
            charge_id=f"chg_{req.payment_id}",
            gateway_status=status,
            status=self._internal(status),
            redirect_url="https://acs.example/3ds" if status == "INITIATED" else None,
            message="Declined by issuer" if self._internal(status) == "FAILED" else None,
        )

    async def create_refund(self, req: GatewayRefundRequest) -> GatewayRefundResult:
        self.refunds.append(req)
        if self.refund_error is not None:
            raise self.refund_error
        return GatewayRefundResult(refund_id=f"re_{next(self._refund_ids)}", status="PENDING", charge_id=req.charge_id)

    async def retrieve_charge(self, charge_id: str) -> ChargeResult:
        status = self.retrieve_status
        return ChargeResult(charge_id=charge_id, gateway_status=status, status=self._internal(status))

    def parse_webhook(self, headers: dict, body: bytes) -> WebhookEvent:
        payload = json.loads(body)
        status = str(payload["status"]).upper()
        payment_id = (payload.get("metadata") or {}).get("paymentRecordId")
        return WebhookEvent(
            id=payload["id"],
            provider=self.provider,
            gateway_status=status,
            status=self._internal(status),
            payment_id=int(payment_id) if payment_id else None,
            data=payload,
        )


class RecordingSink:
    def __init__(self):
        self.events: List[Any] = []

    async def notify(self, event: Any) -> None:
        self.events.append(event)

    def of_type(self, cls) -> List[Any]:
        return [e for e in self.events if isinstance(e, cls)]


class Seeder:
    """Writes fixtures through the same repositories the services use."""

    def __init__(self, uow_factory, order_status: OrderStatusService):
        self._uow_factory = uow_factory
        self._order_status = order_status
        self._seq = itertools.count(1)

    async def staff(self, role: StaffRole, *, is_active: bool = True) -> Staff:
        n = next(self._seq)
        async with self._uow_factory() as uow:
            return await uow.staff.create(
                Staff(id=None, name=f"{role.value.title()} {n}", email=f"staff{n}@laundry.test", role=role, is_active=is_active)
            )

    async def order(
        self,
        *,
        customer_id: int = CUSTOMER_ID,
        invoice_total: Optional[Decimal] = Decimal("10.000"),
        status: OrderStatus = OrderStatus.ORDER_PLACED,
    ) -> Order:
        n = next(self._seq)
        async with self._uow_factory() as uow:
            order = await uow.orders.create(
                Order(id=None, order_number=f"ORD-{n:05d}", customer_id=customer_id, invoice_total=invoice_total)
            )
        if status != OrderStatus.ORDER_PLACED:
            await self.walk(order.id, *ORDER_PATH[: ORDER_PATH.index(status) + 1])
        return await self.get_order(order.id)

    async def walk(self, order_id: int, *statuses: OrderStatus) -> None:
        for status in statuses:
            async with self._uow_factory() as uow:
                await self._order_status.apply_transition(uow, order_id, status, source="seed")

    async def wallet(self, *, customer_id: int = CUSTOMER_ID, balance: Decimal = Decimal("50.000")) -> Wallet:
        async with self._uow_factory() as uow:
            return await uow.wallets.create(Wallet(id=None, customer_id=customer_id, balance=balance))

    async def get_order(self, order_id: int) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.orders.get_by_id(order_id)

    async def get_wallet(self, customer_id: int = CUSTOMER_ID) -> Wallet:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.wallets.get_by_customer(customer_id)

    async def wallet_transactions(self, wallet_id: int):
        async with self._uow_factory(readonly=True) as uow:
            return await uow.wallet_transactions.list_for_wallet(wallet_id)

    async def payment(self, payment_id: int):
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payments.get_by_id(payment_id)

    async def payments(self, order_id: int):
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payments.list_for_order(order_id)

    async def history(self, order_id: int):
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_history.list_for_order(order_id)

    async def assignments(self, order_id: int):
        async with self._uow_factory(readonly=True) as uow:
            return await uow.assignments.list_for_order(order_id)


@pytest_asyncio.fixture
async def engine(tmp_path):
    db_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'laundry.db'}")
    await create_tables(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def uow_factory(engine):
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    def factory(**kwargs) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, **kwargs)

    return factory


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest_asyncio.fixture
async def event_bus(sink):
    bus = InMemoryEventBus()
    bus.subscribe(sink.notify)
    yield bus
    await bus.aclose()


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def order_status(uow_factory, event_bus, clock):
    return OrderStatusService(uow_factory, event_bus=event_bus, clock=clock)


@pytest.fixture
def dispatch(uow_factory, order_status, event_bus, clock):
    return DispatchService(uow_factory, order_status, event_bus=event_bus, clock=clock)


@pytest.fixture
def payments(uow_factory, gateway, order_status, event_bus, clock):
    return PaymentService(uow_factory, gateway, order_status, event_bus=event_bus, clock=clock)


@pytest.fixture
def seed(uow_factory, order_status):
    return Seeder(uow_factory, order_status)


@pytest.fixture
def customer():
    return CustomerDetails(first_name="Layla", last_name="Hassan", email="layla@example.com", phone="+97333000000")


@pytest_asyncio.fixture
async def admin(seed):
    return await seed.staff(StaffRole.SUPER_ADMIN)


@pytest_asyncio.fixture
async def manager(seed):
    return await seed.staff(StaffRole.OPERATION_MANAGER)


@pytest_asyncio.fixture
async def driver(seed):
    return await seed.staff(StaffRole.DRIVER)
