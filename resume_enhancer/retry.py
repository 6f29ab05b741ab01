"""Retry logic with exponential backoff for provider calls."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import ProviderConnectionError, ProviderHttpError, ProviderTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.2  # +/-20% random variation

    def delay_for(self, attempt: int) -> float:
        base_delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        jitter = base_delay * self.jitter_factor * (2 * random.random() - 1)
        return max(0.0, base_delay + jitter)


def is_transient_error(error: BaseException) -> bool:
    """Return True when ``error`` is worth another attempt."""
    if isinstance(error, ProviderHttpError):
        if error.error_type == "quota_exceeded":
            return False
        return error.status in TRANSIENT_STATUS_CODES
    return isinstance(error, (ProviderConnectionError, ProviderTimeoutError, ConnectionError, TimeoutError))


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    on_attempt: Optional[Callable[[int], Any]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Await ``func()`` until it succeeds or a non-transient error occurs.

    ``on_attempt`` is called with the 1-based attempt number before each try.
    Cancellation is never retried; the last transient error is re-raised
    once ``max_attempts`` is exhausted.
    """
    attempts = max(1, config.max_attempts)
    for attempt in range(attempts):
        if on_attempt is not None:
            on_attempt(attempt + 1)
        try:
            result = await func()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            if not is_transient_error(error):
                raise
            if attempt == attempts - 1:
                logger.error("retry_exhausted attempts=%s error=%s", attempts, error.__class__.__name__)
                raise

            delay = config.delay_for(attempt)
            logger.warning(
                "retry_scheduled attempt=%s max_attempts=%s delay_s=%.2f error=%s",
                attempt + 1,
                attempts,
                delay,
                error.__class__.__name__,
            )
            await sleep(delay)
            continue

        if attempt > 0:
            logger.info("retry_succeeded attempt=%s", attempt + 1)
        return result

    raise RuntimeError("retry loop exited without a result")
