"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any


class TaskDispatcher:
    """Internal facade used by infrastructure adapters to schedule tasks."""

    def send_order_update_email(
        self,
        customer_email: str,
        customer_name: str,
        order_snapshot: dict[str, Any],
        event_kind: str,
    ) -> None:
        """Fire-and-forget order update email."""
        # apply_async honours task_always_eager in development, send_task does not
        from ..tasks.email import send_order_update_email

        send_order_update_email.apply_async(
            kwargs={
                "customer_email": customer_email,
                "customer_name": customer_name,
                "order_snapshot": order_snapshot,
                "event_kind": event_kind,
            },
        )

