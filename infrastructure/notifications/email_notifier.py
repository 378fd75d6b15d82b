"""
Notifier adapters.

``CeleryEmailNotifier`` hands the message to the Celery email task so SMTP
latency never touches the request path. Enqueueing itself is a blocking
broker call, so it runs in a worker thread.
"""
from __future__ import annotations

import asyncio
from typing import Any

from application.ports.notifier import Notifier
from core.logging_config import get_logger
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryEmailNotifier(Notifier):
    def __init__(self, dispatcher: TaskDispatcher | None = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    async def notify(
        self,
        customer_email: str,
        customer_name: str,
        order_snapshot: dict[str, Any],
        event_kind: str,
    ) -> bool:
        try:
            await asyncio.to_thread(
                self._dispatcher.send_order_update_email,
                customer_email,
                customer_name,
                order_snapshot,
                event_kind,
            )
        except Exception as exc:
            logger.error(
                "order_email_enqueue_failed",
                order_id=order_snapshot.get("order_id"),
                event_kind=event_kind,
                error=str(exc),
            )
            return False
        return True


class LoggingNotifier(Notifier):
    """Used when notifications are disabled or no broker is configured."""

    async def notify(
        self,
        customer_email: str,
        customer_name: str,
        order_snapshot: dict[str, Any],
        event_kind: str,
    ) -> bool:
        logger.info(
            "order_notification_skipped",
            order_id=order_snapshot.get("order_id"),
            event_kind=event_kind,
            reason="no_delivery_channel",
        )
        return True
