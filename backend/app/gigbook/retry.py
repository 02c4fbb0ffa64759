"""
Retry with exponential backoff for flaky storage calls.
"""
import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delays(max_attempts: int, delay: float, backoff: bool = True) -> list[float]:
    """Wait before each retry: delay, 2*delay, 4*delay... (or a flat delay)."""
    return [delay * (2 ** i) if backoff else delay for i in range(max(max_attempts - 1, 0))]


def with_retry(
    operation: Callable[[], T],
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: bool = True,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run `operation`, retrying on any exception; the last failure is re-raised."""
    waits = backoff_delays(max_attempts, delay, backoff)
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except Exception as e:
            if attempt == max_attempts:
                raise
            if on_retry:
                on_retry(attempt, e)
            sleep(waits[attempt - 1])
    raise ValueError("max_attempts must be at least 1")


def retry_storage(operation: Callable[[], T], operation_name: str,
                  sleep: Callable[[float], None] = time.sleep) -> T:
    def log_retry(attempt: int, e: Exception) -> None:
        logger.warning("Storage %s failed (attempt %d): %s", operation_name, attempt, e)

    return with_retry(operation, max_attempts=3, delay=0.5, backoff=True, on_retry=log_retry, sleep=sleep)
