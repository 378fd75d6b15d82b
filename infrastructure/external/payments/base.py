"""
Base payment client implementing shared concerns: retry, timeouts, logging.

Concrete providers should subclass and implement provider-specific logic.
Provider SDKs that block are driven through ``_call_blocking`` so the event
loop is never held by network IO.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception

from core.logging_config import get_logger
from application.dtos.payments import CreateIntent, PaymentIntent, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from infrastructure.external.payments.exceptions import PaymentRecoverableError, is_retryable


logger = get_logger(__name__)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}

    @property
    def total_timeout(self) -> float:
        return float(self._timeouts_cfg["total"])

    async def aclose(self) -> None:
        """Release provider resources; SDK based clients hold none."""
        return None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception(is_retryable),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _call_blocking(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking SDK call in a worker thread under the total timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs),
                timeout=self.total_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise PaymentRecoverableError(
                "Payment provider timed out",
                provider=self.provider,
                operation=getattr(fn, "__name__", None),
                details={"timeout_seconds": self.total_timeout},
            ) from exc

    # Default implementations raise to force override where needed
    async def create_intent(self, req: CreateIntent) -> PaymentIntent:  # type: ignore[override]
        raise NotImplementedError

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:  # type: ignore[override]
        raise NotImplementedError

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    @staticmethod
    def _header(headers: dict[str, Any], name: str) -> Optional[str]:
        """Case-insensitive header lookup (ASGI lowercases, SDK docs do not)."""
        target = name.lower()
        for key, value in headers.items():
            if str(key).lower() == target:
                return value
        return None

    def _map_status(self, provider_status: Optional[str]) -> str:
        return (provider_status or "").strip().lower()

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
