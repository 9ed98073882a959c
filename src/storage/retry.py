"""
Bounded retry with exponential backoff for store calls.

Reads of ticket/event facts and writes of alerts go through
``retry_store_call``. Transient failures (lost connections, pool
exhaustion, serialization conflicts, timeouts) are retried; once the
budget is spent the failure is re-raised as ``StoreUnavailable`` so the
batch job can skip the affected partition and carry on.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import asyncpg

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.TooManyConnectionsError,
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.InterfaceError,
    asyncio.TimeoutError,
    OSError,
)


class StoreUnavailable(Exception):
    """Raised when a store call keeps failing after all retries."""

    def __init__(self, operation: str, attempts: int, cause: BaseException) -> None:
        self.operation = operation
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): {cause}"
        )


def backoff_delay(
    retry: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.25,
) -> float:
    """Delay before retry number ``retry`` (0-based): doubled per retry, capped, jittered."""
    delay = min(base_delay * 2 ** retry, max_delay)
    return max(0.0, delay + delay * random.uniform(-jitter, jitter))


def is_transient(exc: BaseException) -> bool:
    """Return True if ``exc`` is worth retrying."""
    return isinstance(exc, TRANSIENT_ERRORS)


async def retry_store_call(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    operation: str = "store_call",
    max_retries: int | None = None,
    jitter: float = 0.25,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_retry: Callable[[str], None] | None = None,
    **kwargs: Any,
) -> T:
    """
    Call ``fn(*args, **kwargs)`` retrying transient store errors.

    Non-transient exceptions propagate immediately.

    Args:
        fn: Coroutine function to call.
        operation: Name used in logs, metrics and the raised error.
        max_retries: Retries after the first attempt (default from settings).
        jitter: Relative jitter applied to each delay.
        sleep: Awaitable sleep, injectable for tests.
        on_retry: Optional callback invoked with ``operation`` before each retry.

    Returns:
        Whatever ``fn`` returns.

    Raises:
        StoreUnavailable: If every attempt failed with a transient error.
    """
    settings = get_settings()
    if max_retries is None:
        max_retries = settings.store_max_retries

    attempts = 0
    while True:
        attempts += 1
        try:
            return await fn(*args, **kwargs)
        except TRANSIENT_ERRORS as e:
            if attempts > max_retries:
                logger.error(
                    "%s: giving up after %d attempt(s): %s", operation, attempts, e,
                )
                raise StoreUnavailable(operation, attempts, e) from e

            delay = backoff_delay(
                attempts - 1, settings.store_base_delay, settings.store_max_delay, jitter,
            )
            logger.warning(
                "%s: transient store error (attempt %d/%d), retrying in %.2fs: %s",
                operation,
                attempts,
                max_retries + 1,
                delay,
                e,
            )
            if on_retry is not None:
                on_retry(operation)
            await sleep(delay)
