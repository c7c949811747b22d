"""Retry decorator with exponential backoff.

Used around panel calls that are safe to repeat (login, roster reads)::

    @retry(max_retries=3, initial_delay=0.5, exceptions=(requests.ConnectionError,))
    def login(self) -> None:
        ...
"""

from __future__ import annotations

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from .logger import get_logger

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)


def retry(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
):
    """Retry the wrapped call when it raises one of ``exceptions``.

    Args:
        max_retries: Attempts in addition to the first try
        initial_delay: Delay before the first retry in seconds
        max_delay: Cap for a single delay
        backoff: Multiplier applied per attempt
        exceptions: Exception types that trigger a retry
        sleep: Sleep function (tests pass a no-op)
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    if attempt >= max_retries:
                        raise
                    delay = min(initial_delay * (backoff**attempt), max_delay)
                    logger.debug(
                        "Retrying %s after error",
                        func.__qualname__,
                        event="share_guard.retry",
                        attempt=attempt + 1,
                        delay=delay,
                        error=str(exc),
                    )
                    sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
