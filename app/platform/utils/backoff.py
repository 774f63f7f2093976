"""
Exponential backoff for rate-limited collaborators.

Only rate-limit failures (HTTP 429 or a RESOURCE_EXHAUSTED marker) are retried;
everything else propagates on the first occurrence. Delay growth is not capped:
with a large max_retries the last sleep can be long.
"""
import asyncio
from typing import Awaitable, Callable, TypeVar

from app.platform.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS = 429
RATE_LIMIT_MARKER = "RESOURCE_EXHAUSTED"


def is_rate_limit_error(exc: BaseException) -> bool:
    """True when the failure signals an exceeded upstream quota."""
    for attr in ("status_code", "status", "code"):
        if getattr(exc, attr, None) == RATE_LIMIT_STATUS:
            return True
    return RATE_LIMIT_MARKER in str(exc)


async def retry_with_backoff(
    work: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    is_retryable: Callable[[BaseException], bool] = is_rate_limit_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await work(), retrying rate-limited failures.

    Args:
        work: zero-argument coroutine factory; called once per attempt
        max_retries: retries allowed after the first attempt (0 = single attempt)
        initial_delay: seconds before the first retry; doubles on each retry
        is_retryable: predicate deciding whether a failure is a rate-limit signal
        sleep: awaitable sleep, injectable for tests

    Returns:
        Whatever work() returns on its first successful attempt.

    Raises:
        The last failure, unchanged, once it is not retryable or retries run out.
    """
    attempt = 0
    while True:
        try:
            return await work()
        except Exception as exc:
            attempt += 1
            if not is_retryable(exc) or attempt > max_retries:
                raise

            delay = initial_delay * (2 ** (attempt - 1))
            logger.warning(
                f"Rate limit detected. Retry {attempt}/{max_retries} in {delay:.2f}s"
            )
            await sleep(delay)
