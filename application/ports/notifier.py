"""
Customer notification port.

Implementations report delivery problems through the boolean return value;
the dispatcher still guards against implementations that raise.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    async def notify(
        self,
        customer_email: str,
        customer_name: str,
        order_snapshot: dict[str, Any],
        event_kind: str,
    ) -> bool: ...
