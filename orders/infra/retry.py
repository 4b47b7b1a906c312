"""
Retry utilities with exponential backoff and jitter.
"""
import logging
import random
import time
from functools import wraps
from typing import Any, Callable, TypeVar

T = TypeVar('T')

logger = logging.getLogger(__name__)


def backoff_delays(
    max_retries: int,
    initial_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: bool = True,
):
    """Yield the wait before each retry attempt."""
    delay = initial_delay
    for _ in range(max_retries):
        actual_delay = delay
        if jitter:
            # Add random jitter (0 to 25% of delay)
            actual_delay += delay * 0.25 * random.random()
        yield min(actual_delay, max_delay)
        delay *= exponential_base


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: tuple = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for retrying functions with exponential backoff and jitter.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        jitter: Whether to add random jitter to delay
        exceptions: Tuple of exceptions to catch and retry
        sleep: Function used to wait between attempts
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            delays = backoff_delays(max_retries, initial_delay, max_delay, exponential_base, jitter)
            attempt = 0
            while True:
                attempt += 1
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    delay = next(delays, None)
                    if delay is None:
                        # Retry budget spent, surface the last error
                        raise
                    logger.warning(
                        "retry_scheduled",
                        extra={
                            "operation": func.__name__,
                            "attempt": attempt,
                            "error": f"{type(e).__name__}: {e}",
                        },
                    )
                    sleep(delay)

        return wrapper
    return decorator
