"""Retry policy for remote index calls.

The policy is plain data so callers and tests can shrink delays or swap the
sleep coroutine without patching ``asyncio.sleep``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from faq_curator.core.exceptions import OperationCancelledError, VectorIndexError

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Delay before attempt ``n + 1`` is ``base_delay_seconds * exponential_base ** (n - 1)``,
    so three attempts wait 1s then 2s with the defaults.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    exponential_base: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given 1-based failed attempt."""
        return self.base_delay_seconds * (self.exponential_base ** (attempt - 1))

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_seconds=settings.retry_base_delay_seconds,
            exponential_base=settings.retry_exponential_base,
        )


async def _sleep_or_cancel(delay: float, sleep: SleepFn, cancel: asyncio.Event | None) -> None:
    if cancel is None:
        await sleep(delay)
        return

    sleeper = asyncio.ensure_future(sleep(delay))
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, waiter):
            if not task.done():
                task.cancel()
    if cancel.is_set():
        raise OperationCancelledError("Operation cancelled during backoff")


async def with_retry[T](
    operation: str,
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: SleepFn = asyncio.sleep,
    cancel: asyncio.Event | None = None,
) -> T:
    """Run ``fn`` until it succeeds or the policy is exhausted.

    Args:
        operation: Name used in logs and in the raised error.
        fn: Zero-argument coroutine factory; called once per attempt.
        policy: Attempt count and backoff shape.
        sleep: Coroutine used for backoff.
        cancel: Optional token checked before each attempt and during backoff.

    Returns:
        Whatever ``fn`` returned on the first successful attempt.

    Raises:
        VectorIndexError: All attempts failed; the last error is chained.
        OperationCancelledError: The cancel token was set.
    """
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(f"{operation} cancelled before attempt {attempt}")

        try:
            return await fn()
        except OperationCancelledError:
            raise
        except Exception as e:
            last_error = e
            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    f"{operation} failed (attempt {attempt}/{policy.max_attempts}), "
                    f"retrying in {delay}s: {e}"
                )
                await _sleep_or_cancel(delay, sleep, cancel)

    logger.error(f"{operation} failed after {policy.max_attempts} attempts: {last_error}")
    raise VectorIndexError(operation, policy.max_attempts) from last_error
