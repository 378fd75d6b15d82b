"""Order reconciliation Celery tasks"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from celery import shared_task

from ..utils.base_task import BaseTask
from application.services.reconciliation import GatewayPollSignal, ReconcileOutcome
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException

logger = get_logger(__name__)


async def reconcile_stale_pending(
    container,
    *,
    older_than_minutes: int,
    limit: int,
    max_age_minutes: Optional[int] = None,
) -> dict[str, int]:
    """Re-check pending orders whose webhook may have been lost.

    每批订单先打上 last_polled_at 再逐个补查，下一批从最久未补查的订单开始；
    超过 ``max_age_minutes`` 的订单视为已放弃，不再补查。
    """
    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=older_than_minutes)
    newer_than = now - timedelta(minutes=max_age_minutes) if max_age_minutes else None
    async with container.uow_factory() as uow:
        orders = await uow.order_repository.list_stale_pending(
            cutoff, limit=limit, newer_than=newer_than
        )
        if orders:
            await uow.order_repository.mark_polled([o.id for o in orders], now)
            await uow.commit()

    summary = {"checked": 0, "applied": 0, "failed": 0}
    for order in orders:
        summary["checked"] += 1
        try:
            result = await container.reconciliation.handle(
                GatewayPollSignal(intent_id=order.payment_intent_id, order_id=order.id)
            )
        except BusinessException as exc:
            # One bad order must not stop the batch
            summary["failed"] += 1
            logger.error(
                "stale_order_reconcile_failed",
                order_id=order.id,
                error_type=exc.error_type,
                error=exc.message,
            )
            continue
        if result.outcome == ReconcileOutcome.APPLIED:
            summary["applied"] += 1
    return summary


@shared_task(bind=True, base=BaseTask, max_retries=0)
def reconcile_stale_orders(self) -> dict[str, int]:
    """Periodic sweep driven by Celery beat."""
    from infrastructure.container import build_container

    async def _run() -> dict[str, int]:
        container = build_container()
        try:
            return await reconcile_stale_pending(
                container,
                older_than_minutes=settings.orders.stale_pending_minutes,
                limit=settings.orders.poll_batch_size,
                max_age_minutes=settings.orders.stale_pending_max_age_hours * 60,
            )
        finally:
            await container.aclose()

    # one event loop per run
    summary = asyncio.run(_run())
    logger.info("stale_orders_reconciled", **summary)
    return summary
