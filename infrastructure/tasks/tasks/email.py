"""Email related Celery tasks"""
from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any

from celery import shared_task

from ..utils.base_task import BaseTask
from core.config import settings
from core.logging_config import get_logger
from infrastructure.notifications.templates import render_order_email

logger = get_logger(__name__)


def _build_message(to_email: str, subject: str, text: str, html: str) -> EmailMessage:
    cfg = settings.notifications
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = formataddr((cfg.from_name, cfg.from_email))
    msg["To"] = to_email
    msg["Message-ID"] = make_msgid()
    msg.set_content(text)
    msg.add_alternative(html, subtype="html")
    return msg


def deliver_email(msg: EmailMessage) -> None:
    """Send one message over SMTP using the configured relay."""
    cfg = settings.notifications
    with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=cfg.smtp_timeout_seconds) as client:
        if cfg.smtp_use_tls:
            client.starttls()
        if cfg.smtp_user:
            client.login(cfg.smtp_user, cfg.smtp_password or "")
        client.send_message(msg)


@shared_task(
    bind=True,
    base=BaseTask,
    autoretry_for=(smtplib.SMTPException, ConnectionError, TimeoutError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_order_update_email(
    self,
    customer_email: str,
    customer_name: str,
    order_snapshot: dict[str, Any],
    event_kind: str,
) -> bool:
    """Render and send the customer email for one order tracking event."""
    if not settings.notifications.smtp_host:
        logger.warning(
            "order_email_skipped",
            order_id=order_snapshot.get("order_id"),
            event_kind=event_kind,
            reason="smtp_not_configured",
        )
        return False

    rendered = render_order_email(customer_name, order_snapshot, event_kind, brand=settings.PROJECT_NAME)
    deliver_email(_build_message(customer_email, rendered.subject, rendered.text, rendered.html))
    logger.info(
        "order_email_sent",
        order_id=order_snapshot.get("order_id"),
        event_kind=event_kind,
    )
    return True
