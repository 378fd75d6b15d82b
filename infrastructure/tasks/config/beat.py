"""Celery beat schedule (run with `celery -A infrastructure.tasks beat`)."""
from __future__ import annotations

CELERY_BEAT_SCHEDULE = {
    # Catch orders whose payment webhook never arrived
    "reconcile-stale-pending-orders": {
        "task": "infrastructure.tasks.tasks.orders.reconcile_stale_orders",
        "schedule": 300,  # every 5 minutes
    },
}
