from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Coroutine, ParamSpec, TypeVar, cast

from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .exceptions import TransientError

P = ParamSpec("P")
T = TypeVar("T")


def retry_transient(
    max_attempts: int = 4,
    base_wait: float = 0.5,
    max_wait: float = 15.0,
    jitter: float = 0.25,
) -> Callable[
    [Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]
]:
    """
    Decorator for retrying transient errors with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts, including the first one.
        base_wait: Initial wait in seconds; doubles after every failed attempt.
        max_wait: Upper bound for a single wait in seconds.
        jitter: Maximum random seconds added to each wait.

    Returns:
        A decorator that wraps async functions with retry logic. Only
        ``TransientError`` subclasses are retried; the last error is re-raised
        once attempts are exhausted.
    """
    logger = logging.getLogger(__name__)

    def decorator(
        func: Callable[P, Coroutine[Any, Any, T]],
    ) -> Callable[P, Coroutine[Any, Any, T]]:
        @wraps(func)
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=base_wait, max=max_wait)
            + wait_random(0, jitter),
            retry=retry_if_exception_type(TransientError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            after=after_log(logger, logging.DEBUG),
            reraise=True,
        )
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return cast(T, await func(*args, **kwargs))

        return wrapper

    return decorator
