"""Pytest bootstrap configuration.

Mandatory environment variables are set before any application module is
imported, then in-memory stores, a fake gateway and a recording notifier are
exposed as fixtures so services can be exercised without a database.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")
os.environ.setdefault("PAYMENT__DEFAULT_PROVIDER", "fake")
os.environ.setdefault("STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE__WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("FAKE__WEBHOOK_SECRET", "whsec_fake_test")

import asyncio  # noqa: E402
import dataclasses  # noqa: E402
from datetime import datetime  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any, Optional  # noqa: E402

import pytest  # noqa: E402

from application.dtos.orders import CreateOrderPaymentDTO  # noqa: E402
from application.services.checkout_service import CheckoutService  # noqa: E402
from application.services.notification_dispatcher import NotificationDispatcher  # noqa: E402
from application.services.order_service import OrderApplicationService  # noqa: E402
from application.services.reconciliation import ReconciliationEngine  # noqa: E402
from domain.common.unit_of_work import AbstractUnitOfWork  # noqa: E402
from domain.order.entity import Order, OrderStatus  # noqa: E402
from domain.order.repository import OrderRepository, TrackingRepository  # noqa: E402
from domain.order.tracking import TrackingEvent  # noqa: E402
from infrastructure.external.payments.fake_client import FakePaymentClient  # noqa: E402
from shared.codes.payment_codes import observation_supersedes  # noqa: E402


class InMemoryStore:
    """Shared state behind the in-memory repositories.

    Every check-and-set below runs without awaiting in between, so it is
    atomic with respect to other coroutines on the loop.
    """

    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.events: list[TrackingEvent] = []
        self.reads = 0
        self.status_writes = 0
        self.commits = 0
        self._next_event_id = 1

    @property
    def touched(self) -> int:
        return self.reads + self.status_writes + len(self.events)

    def events_for(self, order_id: str) -> list[TrackingEvent]:
        return [e for e in self.events if e.order_id == order_id]


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def _read(self, order: Optional[Order]) -> Optional[Order]:
        self.store.reads += 1
        # yield so concurrent reconciliations interleave between read and write
        await asyncio.sleep(0)
        return dataclasses.replace(order) if order is not None else None

    async def create(self, order: Order) -> Order:
        if any(o.order_number == order.order_number for o in self.store.orders.values()):
            raise ValueError(f"duplicate order_number {order.order_number}")
        self.store.orders[order.id] = dataclasses.replace(order)
        return dataclasses.replace(order)

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        return await self._read(self.store.orders.get(order_id))

    async def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        found = next(
            (o for o in self.store.orders.values() if o.payment_intent_id == payment_intent_id), None
        )
        return await self._read(found)

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        found = next((o for o in self.store.orders.values() if o.order_number == order_number), None)
        return await self._read(found)

    async def exists_by_order_number(self, order_number: str) -> bool:
        self.store.reads += 1
        return any(o.order_number == order_number for o in self.store.orders.values())

    async def update_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        expected_status: Optional[OrderStatus] = None,
    ) -> bool:
        order = self.store.orders.get(order_id)
        if order is None:
            return False
        if expected_status is not None and order.status != expected_status:
            return False
        order.status = OrderStatus(new_status)
        self.store.status_writes += 1
        return True

    async def attach_payment_intent(self, order_id: str, payment_intent_id: str) -> bool:
        order = self.store.orders.get(order_id)
        if order is None or order.payment_intent_id not in (None, payment_intent_id):
            return False
        order.payment_intent_id = payment_intent_id
        return True

    async def record_payment_observation(
        self, order_id: str, payment_status: str, observed_at: datetime
    ) -> bool:
        order = self.store.orders.get(order_id)
        if order is None:
            return False
        if not observation_supersedes(
            order.payment_status, order.payment_status_observed_at, payment_status, observed_at
        ):
            return False
        order.payment_status = payment_status
        order.payment_status_observed_at = observed_at
        return True

    async def list_stale_pending(
        self,
        older_than: datetime,
        limit: int = 50,
        newer_than: Optional[datetime] = None,
    ) -> list[Order]:
        self.store.reads += 1
        stale = [
            dataclasses.replace(o)
            for o in self.store.orders.values()
            if o.status == OrderStatus.PENDING
            and o.payment_intent_id
            and o.created_at is not None
            and o.created_at < older_than
            and (newer_than is None or o.created_at > newer_than)
        ]
        # 从未补查的在前，其余按上次补查时间轮转
        stale.sort(
            key=lambda o: (
                o.last_polled_at is not None,
                o.last_polled_at or o.created_at,
                o.created_at,
            )
        )
        return stale[:limit]

    async def mark_polled(self, order_ids: list[str], polled_at: datetime) -> int:
        touched = 0
        for order_id in order_ids:
            order = self.store.orders.get(order_id)
            if order is not None:
                order.last_polled_at = polled_at
                touched += 1
        return touched


class InMemoryTrackingRepository(TrackingRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def append(self, event: TrackingEvent) -> TrackingEvent:
        stored = dataclasses.replace(event, id=self.store._next_event_id)
        self.store._next_event_id += 1
        self.store.events.append(stored)
        return stored

    async def list_by_order(self, order_id: str) -> list[TrackingEvent]:
        self.store.reads += 1
        return sorted(self.store.events_for(order_id), key=lambda e: (e.created_at, e.id))


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self.order_repository = InMemoryOrderRepository(self.store)
        self.tracking_repository = InMemoryTrackingRepository(self.store)
        return self

    async def commit(self) -> None:
        self._committed = True
        if not self._readonly:
            self.store.commits += 1

    async def rollback(self) -> None:
        self._committed = False


class RecordingNotifier:
    """Notifier double: records calls and can fail, return False or hang."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.mode = "ok"

    async def notify(self, customer_email, customer_name, order_snapshot, event_kind) -> bool:
        self.calls.append(
            {
                "email": customer_email,
                "name": customer_name,
                "order_id": order_snapshot["order_id"],
                "status": order_snapshot["status"],
                "event_kind": event_kind,
            }
        )
        if self.mode == "raise":
            raise ConnectionError("smtp relay unreachable")
        if self.mode == "hang":
            await asyncio.sleep(60)
        return self.mode != "false"


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    def factory(*, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(store, readonly=readonly)

    return factory


@pytest.fixture
def gateway() -> FakePaymentClient:
    return FakePaymentClient(webhook_secret="whsec_fake_test", tolerance_seconds=300)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier) -> NotificationDispatcher:
    return NotificationDispatcher(notifier, timeout_seconds=0.05)


@pytest.fixture
def engine(uow_factory, gateway, dispatcher) -> ReconciliationEngine:
    return ReconciliationEngine(uow_factory, gateway, dispatcher, max_attempts=3)


@pytest.fixture
def checkout(uow_factory, gateway) -> CheckoutService:
    return CheckoutService(uow_factory, gateway, number_max_attempts=10)


@pytest.fixture
def order_service(uow_factory, dispatcher) -> OrderApplicationService:
    return OrderApplicationService(uow_factory, dispatcher)


def checkout_payload(**overrides) -> CreateOrderPaymentDTO:
    data: dict[str, Any] = {
        "amount": Decimal("105.00"),
        "currency": "USD",
        "shipping_cost": Decimal("5.00"),
        "customer_info": {"name": "Ada Lovelace", "email": "Ada@Example.com"},
        "items": [
            {"product_id": "sku-1", "product_name": "Notebook", "product_price": "25.00", "quantity": 2},
            {"product_id": "sku-2", "product_name": "Pen set", "product_price": "50.00", "quantity": 1},
        ],
    }
    data.update(overrides)
    return CreateOrderPaymentDTO(**data)


@pytest.fixture
def place_order(checkout):
    """Async helper: run checkout and return the CheckoutResultDTO."""

    async def _place(**overrides):
        return await checkout.create_order_payment(checkout_payload(**overrides))

    return _place
