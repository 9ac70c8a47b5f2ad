"""Attempt-with-backoff helper driven by a retry policy."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _always(_error: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them.

    The wait before attempt ``n + 1`` is ``base_delay_ms * n``: linear, so
    the defaults give 2s and then 4s.
    """

    max_attempts: int = 3
    base_delay_ms: int = 2000
    is_retryable: Callable[[BaseException], bool] = _always

    def delay_seconds(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay_ms * attempt / 1000


async def attempt_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Attempts are strictly sequential. The last error is re-raised once the
    attempt budget is spent or the policy says the error is not retryable.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            logger.warning(f"{label}: attempt {attempt}/{policy.max_attempts} failed: {e}")
            if attempt == policy.max_attempts or not policy.is_retryable(e):
                raise
            wait = policy.delay_seconds(attempt)
            logger.info(f"{label}: retrying in {wait * 1000:.0f}ms")
            await sleep(wait)

    raise ValueError("RetryPolicy.max_attempts must be at least 1")
