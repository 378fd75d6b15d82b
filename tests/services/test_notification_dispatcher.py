import asyncio

import pytest

from application.services.notification_dispatcher import NotificationDispatcher
from domain.order.entity import CustomerSnapshot, Order, OrderItem, OrderStatus
from domain.order.tracking import EventActor, TrackingEvent, TrackingEventType


def _order() -> Order:
    return Order(
        id="o-1",
        order_number="1234ABCD",
        status=OrderStatus.PROCESSING,
        currency="USD",
        subtotal=1000,
        shipping_cost=0,
        total=1000,
        customer=CustomerSnapshot(name="Ada", email="ada@example.com"),
        items=[OrderItem("sku", "Thing", 1000, 1)],
    )


def _event(status=OrderStatus.PROCESSING) -> TrackingEvent:
    return TrackingEvent.status_change("o-1", status, actor=EventActor.GATEWAY)


@pytest.mark.asyncio
async def test_dispatch_delivers_in_background(notifier):
    dispatcher = NotificationDispatcher(notifier, timeout_seconds=1)

    task = dispatcher.dispatch(_order(), _event())
    assert task is not None
    assert await task is True
    assert notifier.calls[0]["email"] == "ada@example.com"
    assert notifier.calls[0]["event_kind"] == "processing_started"


@pytest.mark.asyncio
async def test_non_notifiable_events_are_skipped(notifier):
    dispatcher = NotificationDispatcher(notifier)
    placed = _event(OrderStatus.PENDING)
    note = TrackingEvent.informational(
        "o-1", TrackingEventType.NOTE_ADDED, actor=EventActor.ADMIN, description="hi"
    )

    assert dispatcher.dispatch(_order(), placed) is None
    assert dispatcher.dispatch(_order(), note) is None
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_disabled_dispatcher_sends_nothing(notifier):
    dispatcher = NotificationDispatcher(notifier, enabled=False)
    assert dispatcher.dispatch(_order(), _event()) is None
    assert notifier.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["raise", "false", "hang"])
async def test_delivery_problems_are_swallowed(notifier, mode):
    notifier.mode = mode
    dispatcher = NotificationDispatcher(notifier, timeout_seconds=0.05)

    task = dispatcher.dispatch(_order(), _event())
    assert await asyncio.wait_for(task, timeout=1) is False
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_dispatch_does_not_block_caller(notifier):
    notifier.mode = "hang"
    dispatcher = NotificationDispatcher(notifier, timeout_seconds=0.2)

    loop = asyncio.get_running_loop()
    started = loop.time()
    dispatcher.dispatch(_order(), _event())
    assert loop.time() - started < 0.05
    assert dispatcher.pending == 1

    await dispatcher.drain()
    assert dispatcher.pending == 0
