"""
Plain-text / HTML bodies for order update emails.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from html import escape
from typing import Any

from domain.order.money import from_minor_units
from domain.order.order_number import format_order_number


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


# event kind -> (subject prefix, headline)
_HEADLINES: dict[str, tuple[str, str]] = {
    "order_created": ("Order received", "We received your order."),
    "payment_confirmed": ("Payment confirmed", "Your payment was confirmed."),
    "processing_started": ("Payment processing", "Payment confirmed. We are preparing your order."),
    "shipped": ("Order shipped", "Your order has been shipped and is on its way."),
    "out_for_delivery": ("Out for delivery", "Your order is out for delivery today."),
    "delivered": ("Order delivered", "Your order was delivered. We hope you enjoy it!"),
    "cancelled": ("Order cancelled", "Your order was cancelled. Contact us if you have any questions."),
}


def _money(minor: Any, currency: str) -> str:
    amount: Decimal = from_minor_units(int(minor or 0), currency)
    return f"{amount} {currency}"


def render_order_email(
    customer_name: str,
    order_snapshot: dict[str, Any],
    event_kind: str,
    *,
    brand: str,
) -> RenderedEmail:
    prefix, headline = _HEADLINES.get(event_kind, ("Order update", "There is an update on your order."))
    number = format_order_number(order_snapshot.get("order_number") or "")
    currency = order_snapshot.get("currency") or "USD"
    subject = f"{prefix} {number} - {brand}"

    lines = [f"Hi {customer_name},", "", headline, "", f"Order: {number}"]
    for item in order_snapshot.get("items") or []:
        lines.append(f"  {item.get('quantity')} x {item.get('product_name')}  {_money(item.get('subtotal'), currency)}")
    lines.append(f"Total: {_money(order_snapshot.get('total'), currency)}")
    lines += ["", f"Track your order with {number} and your email address.", "", brand]
    text = "\n".join(lines)

    rows = "".join(
        f"<tr><td>{escape(str(item.get('quantity')))} x {escape(str(item.get('product_name')))}</td>"
        f"<td>{escape(_money(item.get('subtotal'), currency))}</td></tr>"
        for item in order_snapshot.get("items") or []
    )
    html = (
        f"<p>Hi {escape(customer_name)},</p>"
        f"<p>{escape(headline)}</p>"
        f"<h3>Order {escape(number)}</h3>"
        f"<table>{rows}</table>"
        f"<p><strong>Total: {escape(_money(order_snapshot.get('total'), currency))}</strong></p>"
        f"<p>{escape(brand)}</p>"
    )
    return RenderedEmail(subject=subject, text=text, html=html)
