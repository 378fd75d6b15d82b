from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.order.entity import CustomerSnapshot, Order, OrderItem, OrderStatus
from domain.order.money import from_minor_units, to_minor_units
from domain.order.tracking import (
    EventActor,
    TrackingEvent,
    TrackingEventKind,
    TrackingEventType,
)


def _order(**overrides) -> Order:
    data = dict(
        id="o-1",
        order_number="1234ABCD",
        status=OrderStatus.PENDING,
        currency="usd",
        subtotal=10000,
        shipping_cost=500,
        total=10500,
        customer=CustomerSnapshot(name="Ada", email="ada@example.com"),
        items=[OrderItem("sku-1", "Notebook", 5000, 2)],
    )
    data.update(overrides)
    return Order(**data)


def test_total_equals_subtotal_plus_shipping():
    order = _order()
    assert order.total == order.subtotal + order.shipping_cost
    assert order.currency == "USD"


def test_total_without_shipping_is_rejected():
    with pytest.raises(DomainValidationException) as exc:
        _order(total=10000)
    assert exc.value.field == "amount"


def test_subtotal_must_match_items():
    with pytest.raises(DomainValidationException) as exc:
        _order(subtotal=9000, total=9500)
    assert exc.value.field == "subtotal"


def test_order_needs_items():
    with pytest.raises(DomainValidationException):
        _order(items=[], subtotal=0, total=500)


@pytest.mark.parametrize("quantity,price", [(0, 100), (-1, 100), (1, -5)])
def test_invalid_line_items(quantity, price):
    with pytest.raises(DomainValidationException):
        OrderItem("sku", "Thing", price, quantity)


def test_payment_intent_cannot_be_rebound():
    order = _order()
    order.attach_payment_intent("pi_1")
    order.attach_payment_intent("pi_1")
    with pytest.raises(DomainValidationException):
        order.attach_payment_intent("pi_2")


def test_terminal_orders():
    assert _order(status=OrderStatus.DELIVERED).is_terminal()
    assert _order(status=OrderStatus.CANCELLED).is_terminal()
    assert not _order(status=OrderStatus.SHIPPED).is_terminal()


def test_money_conversion():
    assert to_minor_units(Decimal("105.00"), "USD") == 10500
    assert to_minor_units("0.1", "EUR") == 10
    assert to_minor_units(500, "JPY") == 500
    assert from_minor_units(10500, "USD") == Decimal("105.00")
    assert from_minor_units(500, "JPY") == Decimal("500")


@pytest.mark.parametrize("amount,currency", [("1.005", "USD"), ("1.5", "JPY"), ("-1", "USD"), ("abc", "USD")])
def test_money_conversion_rejects_bad_amounts(amount, currency):
    with pytest.raises(DomainValidationException):
        to_minor_units(amount, currency)


def test_status_change_event_uses_status_template():
    event = TrackingEvent.status_change("o-1", OrderStatus.PROCESSING, actor=EventActor.GATEWAY)
    assert event.kind == TrackingEventKind.STATUS_CHANGE
    assert event.event_type == TrackingEventType.PROCESSING_STARTED
    assert event.title == "Payment processing"
    assert event.status == OrderStatus.PROCESSING
    assert event.notifiable


def test_order_placed_event_is_not_notifiable():
    event = TrackingEvent.order_placed(_order())
    assert event.event_type == TrackingEventType.ORDER_CREATED
    assert event.status == OrderStatus.PENDING
    assert not event.notifiable


def test_informational_events_carry_no_status():
    note = TrackingEvent.informational(
        "o-1", TrackingEventType.NOTE_ADDED, actor=EventActor.ADMIN, description="Gift wrapped"
    )
    assert note.status is None
    assert note.title == "Order update"
    assert not note.notifiable

    out = TrackingEvent.informational(
        "o-1", TrackingEventType.OUT_FOR_DELIVERY, actor=EventActor.ADMIN, description="On the truck"
    )
    assert out.notifiable

    with pytest.raises(DomainValidationException):
        TrackingEvent.informational(
            "o-1", TrackingEventType.SHIPPED, actor=EventActor.ADMIN, description="nope"
        )
