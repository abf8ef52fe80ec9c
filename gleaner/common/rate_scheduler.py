"""Request pacing and retry backoff.

RateScheduler owns the "time of the last request" for a run and enforces a
minimum spacing between page loads. It also implements retry with
exponential backoff, honoring server-supplied Retry-After hints.

A pyrate_limiter Limiter can be layered on top to cap the page rate over a
longer window, the same way the navigation path of a Playwright driver
acquires a token before each navigation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from gleaner.data_types import RetryContext

if TYPE_CHECKING:
    from pyrate_limiter import Limiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for retry_with_backoff.

    Attributes:
        max_retries: Number of retries after the first attempt.
        base_delay_ms: Backoff before the first retry.
        max_delay_ms: Upper bound for any single backoff.
    """

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 8000

    def backoff_ms(self, step: int) -> int:
        return min(self.base_delay_ms * 2**step, self.max_delay_ms)


def retry_after_hint(error: BaseException) -> int | None:
    """Return the server-supplied wait hint carried by an error, if any."""
    hint = getattr(error, "retry_after_seconds", None)
    if isinstance(hint, int) and hint >= 0:
        return hint
    return None


class RateScheduler:
    """Paces requests and retries failed operations.

    Args:
        sleep: Async sleep function taking seconds (default: asyncio.sleep).
        clock: Monotonic clock returning seconds (default: time.monotonic).
        limiter: Optional pyrate_limiter Limiter acquired on every delay().

    Example:
        scheduler = RateScheduler()
        await scheduler.delay(2000)
        page = await scheduler.retry_with_backoff(load_page, RetryPolicy())
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        limiter: Limiter | None = None,
    ) -> None:
        self._sleep = sleep
        self._clock = clock
        self.limiter = limiter
        self._last_request_at: float | None = None

    async def delay(self, min_ms: int) -> None:
        """Wait until at least ``min_ms`` have passed since the previous call.

        Returns immediately when the spacing is already satisfied. The time
        of this call becomes the new reference point.
        """
        if self._last_request_at is not None:
            elapsed_ms = (self._clock() - self._last_request_at) * 1000.0
            remaining_ms = min_ms - elapsed_ms
            if remaining_ms > 0:
                logger.debug(f"Rate delay: sleeping {remaining_ms:.0f}ms")
                await self._sleep(remaining_ms / 1000.0)

        if self.limiter is not None:
            acquired = await self.limiter.try_acquire_async(
                name="navigation", weight=1
            )
            if not acquired:
                logger.warning("Rate limiter refused a navigation token")

        self._last_request_at = self._clock()

    async def retry_with_backoff(
        self,
        op: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        should_retry: Callable[[BaseException], bool] | None = None,
    ) -> T:
        """Invoke ``op``, retrying failures with exponential backoff.

        A failure carrying a Retry-After hint sleeps exactly that long and
        does not advance the exponential step. Any other failure sleeps
        ``min(base * 2**step, max)``. Every failure consumes one retry.

        Args:
            op: Zero-argument coroutine function to invoke.
            policy: Retry configuration (default: RetryPolicy()).
            should_retry: Optional predicate; errors it rejects are re-raised
                immediately without sleeping.

        Returns:
            The result of the first successful invocation.

        Raises:
            The last failure, unmodified, once retries are exhausted.
        """
        policy = policy or RetryPolicy()
        ctx = RetryContext()
        backoff_step = 0

        while True:
            try:
                return await op()
            except Exception as e:
                ctx.last_error = e
                ctx.retry_after_seconds = retry_after_hint(e)

                if ctx.attempt >= policy.max_retries:
                    logger.warning(
                        f"Giving up after {ctx.attempt + 1} attempts: {e}"
                    )
                    raise
                if should_retry is not None and not should_retry(e):
                    raise

                if ctx.retry_after_seconds is not None:
                    wait_ms = ctx.retry_after_seconds * 1000
                    logger.info(
                        f"Rate limited, honoring Retry-After: waiting {wait_ms}ms"
                    )
                else:
                    wait_ms = policy.backoff_ms(backoff_step)
                    backoff_step += 1
                    logger.info(
                        f"Attempt {ctx.attempt + 1} failed ({e}); "
                        f"retrying in {wait_ms}ms"
                    )

                ctx.attempt += 1
                await self._sleep(wait_ms / 1000.0)
