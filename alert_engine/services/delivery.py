"""Bounded retry with exponential backoff for outbound deliveries."""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from alert_engine.core.config import Settings, get_settings

logger = structlog.get_logger()


@dataclass
class DeliveryResult:
    delivered: bool
    attempts: int
    last_error: Optional[str] = None


def calculate_retry_delay(retry_count: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff capped at ``max_delay`` with +/-10% jitter."""
    delay = min(base_delay * (2 ** retry_count), max_delay)
    jitter = delay * 0.1
    return max(0.0, delay + random.uniform(-jitter, jitter))


async def send_with_retry(
    send: Callable[[], Awaitable[None]],
    settings: Optional[Settings] = None,
    **log_context,
) -> DeliveryResult:
    """Call ``send`` until it succeeds or ``NOTIFICATION_MAX_ATTEMPTS`` is reached.

    Never raises; the outcome and last error are returned for bookkeeping.
    """
    settings = settings or get_settings()
    max_attempts = max(1, settings.NOTIFICATION_MAX_ATTEMPTS)
    last_error: Optional[str] = None

    for attempt in range(max_attempts):
        try:
            await send()
            return DeliveryResult(delivered=True, attempts=attempt + 1)
        except Exception as e:
            last_error = str(e) or type(e).__name__
            logger.warning(
                "Delivery attempt failed",
                attempt=attempt + 1,
                max_attempts=max_attempts,
                error=last_error,
                **log_context,
            )
            if attempt < max_attempts - 1:
                await asyncio.sleep(
                    calculate_retry_delay(
                        attempt,
                        settings.NOTIFICATION_RETRY_BASE_SECONDS,
                        settings.NOTIFICATION_RETRY_MAX_SECONDS,
                    )
                )

    logger.error("Delivery failed after retries", attempts=max_attempts, error=last_error, **log_context)
    return DeliveryResult(delivered=False, attempts=max_attempts, last_error=last_error)
