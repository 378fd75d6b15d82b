"""
Human-facing order numbers: 8 uppercase alphanumeric characters (e.g. 6F0EBBD4).
"""
from __future__ import annotations

import re
import secrets
import string
import time
from typing import Awaitable, Callable, Optional

from core.logging_config import get_logger


logger = get_logger(__name__)

ORDER_NUMBER_LENGTH = 8
_ALPHABET = string.ascii_uppercase + string.digits
_PATTERN = re.compile(r"^[A-Z0-9]{8}$")


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """Last 4 digits of the millisecond clock followed by 4 random characters."""
    stamp = str(now_ms if now_ms is not None else _now_ms())[-4:].zfill(4)
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(ORDER_NUMBER_LENGTH - len(stamp)))
    return stamp + random_part


def fallback_order_number(now_ms: Optional[int] = None) -> str:
    return str(now_ms if now_ms is not None else _now_ms())[-ORDER_NUMBER_LENGTH:].zfill(ORDER_NUMBER_LENGTH)


def format_order_number(order_number: str) -> str:
    return f"#{order_number}"


def parse_order_number(display: str) -> str:
    return (display or "").replace("#", "").strip().upper()


def is_valid_order_number(order_number: str) -> bool:
    return bool(_PATTERN.match(parse_order_number(order_number)))


class OrderNumberGenerator:
    """Draw candidates until one is free, then degrade to a clock-derived value.

    Exhausting attempts never fails order creation; the fallback value is
    accepted with its residual collision risk.
    """

    def __init__(
        self,
        exists: Callable[[str], Awaitable[bool]],
        *,
        max_attempts: int = 10,
        candidate: Callable[[], str] = generate_order_number,
        fallback: Callable[[], str] = fallback_order_number,
    ) -> None:
        self._exists = exists
        self._max_attempts = max(1, int(max_attempts))
        self._candidate = candidate
        self._fallback = fallback

    async def generate(self) -> str:
        for attempt in range(1, self._max_attempts + 1):
            number = self._candidate()
            if not await self._exists(number):
                return number
            logger.info("order_number_collision", order_number=number, attempt=attempt)
        number = self._fallback()
        logger.warning("order_number_fallback", order_number=number, attempts=self._max_attempts)
        return number
