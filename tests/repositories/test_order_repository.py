"""SQLAlchemy repositories against a throwaway SQLite database."""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from domain.order.entity import CustomerSnapshot, Order, OrderItem, OrderStatus
from domain.order.tracking import EventActor, TrackingEvent, TrackingEventType
from infrastructure.database import build_engine, build_session_factory, create_tables
from infrastructure.unit_of_work import make_uow_factory


@pytest_asyncio.fixture
async def sql_uow_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", echo=False)
    await create_tables(engine)
    try:
        yield make_uow_factory(build_session_factory(engine))
    finally:
        await engine.dispose()


def _order(order_id="o-1", number="ABCD1234", *, created_at=None, intent=None) -> Order:
    return Order(
        id=order_id,
        order_number=number,
        status=OrderStatus.PENDING,
        currency="USD",
        subtotal=2000,
        shipping_cost=500,
        total=2500,
        customer=CustomerSnapshot(name="Ada", email="Ada@Example.com", city="London"),
        items=[OrderItem("sku-1", "Notebook", 1000, 2)],
        payment_intent_id=intent,
        created_at=created_at,
    )


@pytest.mark.asyncio
async def test_create_and_load_round_trip(sql_uow_factory):
    async with sql_uow_factory() as uow:
        await uow.order_repository.create(_order(intent="pi_1"))

    async with sql_uow_factory(readonly=True) as uow:
        by_id = await uow.order_repository.get_by_id("o-1")
        by_intent = await uow.order_repository.get_by_payment_intent("pi_1")
        by_number = await uow.order_repository.get_by_order_number("ABCD1234")
        taken = await uow.order_repository.exists_by_order_number("ABCD1234")
        free = await uow.order_repository.exists_by_order_number("ZZZZ9999")

    assert by_id.id == by_intent.id == by_number.id == "o-1"
    assert by_id.total == 2500
    assert by_id.items[0].subtotal == 2000
    assert by_id.customer.city == "London"
    assert by_id.created_at.tzinfo is not None
    assert taken is True and free is False


@pytest.mark.asyncio
async def test_conditional_status_update(sql_uow_factory):
    async with sql_uow_factory() as uow:
        await uow.order_repository.create(_order())

    async with sql_uow_factory() as uow:
        won = await uow.order_repository.update_status("o-1", OrderStatus.PROCESSING, OrderStatus.PENDING)
        lost = await uow.order_repository.update_status("o-1", OrderStatus.CANCELLED, OrderStatus.PENDING)
        missing = await uow.order_repository.update_status("nope", OrderStatus.PROCESSING)

    async with sql_uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id("o-1")

    assert (won, lost, missing) == (True, False, False)
    assert order.status == OrderStatus.PROCESSING


@pytest.mark.asyncio
async def test_failed_unit_of_work_rolls_back(sql_uow_factory):
    async with sql_uow_factory() as uow:
        await uow.order_repository.create(_order())

    with pytest.raises(RuntimeError):
        async with sql_uow_factory() as uow:
            await uow.order_repository.update_status("o-1", OrderStatus.PROCESSING, OrderStatus.PENDING)
            await uow.tracking_repository.append(
                TrackingEvent.status_change("o-1", OrderStatus.PROCESSING, actor=EventActor.GATEWAY)
            )
            raise RuntimeError("boom")

    async with sql_uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id("o-1")
        events = await uow.tracking_repository.list_by_order("o-1")

    assert order.status == OrderStatus.PENDING
    assert events == []


@pytest.mark.asyncio
async def test_attach_payment_intent_only_once(sql_uow_factory):
    async with sql_uow_factory() as uow:
        await uow.order_repository.create(_order())
        first = await uow.order_repository.attach_payment_intent("o-1", "pi_1")
        again = await uow.order_repository.attach_payment_intent("o-1", "pi_1")
        other = await uow.order_repository.attach_payment_intent("o-1", "pi_2")

    assert (first, again, other) == (True, True, False)


@pytest.mark.asyncio
async def test_payment_observation_ignores_older_data(sql_uow_factory):
    now = datetime.now(timezone.utc).replace(microsecond=0)
    async with sql_uow_factory() as uow:
        await uow.order_repository.create(_order(intent="pi_1"))

    async with sql_uow_factory() as uow:
        repo = uow.order_repository
        assert await repo.record_payment_observation("o-1", "processing", now) is True
        assert await repo.record_payment_observation("o-1", "succeeded", now) is True
        assert await repo.record_payment_observation("o-1", "requires_payment_method", now - timedelta(seconds=5)) is False

    async with sql_uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id("o-1")

    assert order.payment_status == "succeeded"
    assert order.payment_status_observed_at == now


@pytest.mark.asyncio
async def test_list_stale_pending(sql_uow_factory):
    old = datetime.now(timezone.utc) - timedelta(hours=2)
    async with sql_uow_factory() as uow:
        repo = uow.order_repository
        await repo.create(_order("o-old", "OLD00001", created_at=old, intent="pi_old"))
        await repo.create(_order("o-older", "OLD00002", created_at=old - timedelta(hours=1), intent="pi_older"))
        await repo.create(_order("o-new", "NEW00001", intent="pi_new"))
        await repo.create(_order("o-nointent", "OLD00003", created_at=old))
        await repo.create(_order("o-paid", "OLD00004", created_at=old, intent="pi_paid"))
        await repo.update_status("o-paid", OrderStatus.PROCESSING, OrderStatus.PENDING)

    cutoff = datetime.now(timezone.utc) - timedelta(minutes=30)
    async with sql_uow_factory(readonly=True) as uow:
        stale = await uow.order_repository.list_stale_pending(cutoff)
        limited = await uow.order_repository.list_stale_pending(cutoff, limit=1)

    assert [o.id for o in stale] == ["o-older", "o-old"]
    assert [o.id for o in limited] == ["o-older"]



@pytest.mark.asyncio
async def test_payment_observation_prefers_later_lifecycle_stage(sql_uow_factory):
    now = datetime.now(timezone.utc).replace(microsecond=0)
    async with sql_uow_factory() as uow:
        await uow.order_repository.create(_order(intent="pi_1"))

    async with sql_uow_factory() as uow:
        repo = uow.order_repository
        assert await repo.record_payment_observation("o-1", "processing", now) is True
        assert await repo.record_payment_observation("o-1", "succeeded", now - timedelta(seconds=5)) is True
        assert await repo.record_payment_observation("o-1", "requires_action", now + timedelta(seconds=5)) is False
        assert await repo.record_payment_observation("o-1", "canceled", now - timedelta(seconds=1)) is False

    async with sql_uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id("o-1")

    assert order.payment_status == "succeeded"
    assert order.payment_status_observed_at == now - timedelta(seconds=5)


@pytest.mark.asyncio
async def test_stale_pending_rotates_by_last_poll(sql_uow_factory):
    now = datetime.now(timezone.utc)
    async with sql_uow_factory() as uow:
        repo = uow.order_repository
        await repo.create(_order("o-a", "OLD00001", created_at=now - timedelta(hours=3), intent="pi_a"))
        await repo.create(_order("o-b", "OLD00002", created_at=now - timedelta(hours=2), intent="pi_b"))
        await repo.create(_order("o-c", "OLD00003", created_at=now - timedelta(hours=1), intent="pi_c"))
        await repo.create(_order("o-gone", "OLD00004", created_at=now - timedelta(days=5), intent="pi_gone"))

    cutoff = now - timedelta(minutes=30)
    max_age = now - timedelta(days=3)
    async with sql_uow_factory() as uow:
        first = await uow.order_repository.list_stale_pending(cutoff, limit=2, newer_than=max_age)
        marked = await uow.order_repository.mark_polled([o.id for o in first], now)

    async with sql_uow_factory(readonly=True) as uow:
        second = await uow.order_repository.list_stale_pending(cutoff, limit=2, newer_than=max_age)
        reloaded = await uow.order_repository.get_by_id("o-a")

    assert [o.id for o in first] == ["o-a", "o-b"]
    assert marked == 2
    assert [o.id for o in second] == ["o-c", "o-a"]
    assert reloaded.last_polled_at is not None

@pytest.mark.asyncio
async def test_tracking_ledger_is_ordered(sql_uow_factory):
    base = datetime.now(timezone.utc) - timedelta(minutes=1)
    async with sql_uow_factory() as uow:
        await uow.order_repository.create(_order())
        tracking = uow.tracking_repository
        await tracking.append(
            TrackingEvent.status_change("o-1", OrderStatus.PROCESSING, actor=EventActor.GATEWAY,
                                        created_at=base + timedelta(seconds=2))
        )
        await tracking.append(
            TrackingEvent.status_change("o-1", OrderStatus.PENDING, actor=EventActor.SYSTEM, created_at=base)
        )
        note = await tracking.append(
            TrackingEvent.informational("o-1", TrackingEventType.NOTE_ADDED, actor=EventActor.ADMIN,
                                        description="Gift wrapped")
        )

    async with sql_uow_factory(readonly=True) as uow:
        events = await uow.tracking_repository.list_by_order("o-1")

    assert note.id is not None
    assert [e.event_type for e in events] == [
        TrackingEventType.ORDER_CREATED,
        TrackingEventType.PROCESSING_STARTED,
        TrackingEventType.NOTE_ADDED,
    ]
    assert events[-1].status is None
    assert events[-1].created_by == EventActor.ADMIN
