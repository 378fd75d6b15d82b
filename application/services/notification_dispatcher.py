"""
Best-effort customer notifications for recorded tracking events.

Dispatch is fire-and-forget: the caller never awaits delivery, every attempt
is bounded by its own timeout, and failures are logged and swallowed.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from application.ports.notifier import Notifier
from core.logging_config import get_logger
from domain.order.entity import Order
from domain.order.tracking import TrackingEvent


logger = get_logger(__name__)


class NotificationDispatcher:
    def __init__(self, notifier: Notifier, *, timeout_seconds: float = 5.0, enabled: bool = True) -> None:
        self._notifier = notifier
        self._timeout = float(timeout_seconds)
        self._enabled = enabled
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, order: Order, event: TrackingEvent) -> Optional[asyncio.Task]:
        """Schedule delivery for a notifiable event; returns the task or None."""
        if not self._enabled or not event.notifiable:
            return None
        task = asyncio.get_running_loop().create_task(
            self._deliver(order.customer.email, order.customer.name, order.snapshot(), event)
        )
        # Keep a strong reference until done so the task is not collected mid-flight
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, email: str, name: str, snapshot: dict, event: TrackingEvent) -> bool:
        kind = event.event_type.value
        try:
            delivered = await asyncio.wait_for(
                self._notifier.notify(email, name, snapshot, kind),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "notification_timeout",
                order_id=snapshot.get("order_id"),
                event_kind=kind,
                timeout_seconds=self._timeout,
            )
            return False
        except Exception as exc:
            logger.error(
                "notification_failed",
                order_id=snapshot.get("order_id"),
                event_kind=kind,
                error=str(exc),
                exc_info=True,
            )
            return False
        if not delivered:
            logger.warning("notification_not_delivered", order_id=snapshot.get("order_id"), event_kind=kind)
            return False
        logger.info("notification_sent", order_id=snapshot.get("order_id"), event_kind=kind)
        return True

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
