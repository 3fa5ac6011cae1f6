"""
Retry logic with exponential backoff.

The store itself never retries: take reports an empty queue at once. This
module is for callers that want to keep polling until work shows up, such
as `jerbs take --wait`.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


def exponential_backoff(
    max_retries: Optional[int] = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
    timeout: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 = no retries,
            None = no limit)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential calculation (delay *= base)
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)
        timeout: Give up once this many seconds have passed since the
            first attempt (None = no limit)
        sleep: Function used to wait between attempts
        clock: Monotonic clock used for the timeout

    Example:
        @exponential_backoff(max_retries=None, base_delay=1.0,
                             exceptions=(NoJobsAvailable,))
        def take():
            return store.take_next("worker-1")
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay
            started = clock()
            attempt = 0

            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if max_retries is not None and attempt >= max_retries:
                        raise RetryError(
                            f"Failed after {attempt + 1} attempts: {str(e)}"
                        ) from e

                    current_delay = min(delay, max_delay)
                    if timeout is not None:
                        remaining = timeout - (clock() - started)
                        if remaining <= 0:
                            raise RetryError(
                                f"Gave up after {timeout}s ({attempt + 1} attempts): {str(e)}"
                            ) from e
                        current_delay = min(current_delay, remaining)

                    attempt += 1
                    if on_retry:
                        on_retry(attempt, e, current_delay)

                    sleep(current_delay)
                    delay *= exponential_base

        return wrapper
    return decorator
