"""Bounded retry with exponential backoff and simple rate limiting.

Exchange adapters decorate their blocking network calls with :func:`retry`.
Those calls run in worker threads (``asyncio.to_thread``), so the backoff
sleeps with :func:`time.sleep` without stalling the event loop.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

from cryptopilot.core.exceptions import RETRYABLE_ERRORS, is_retryable

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


# ---------------------------------------------------------------------------
# Bounded retry decorator
# ---------------------------------------------------------------------------


def retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    exceptions: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
) -> Callable[[F], F]:
    """Decorator that retries a function on failure with exponential backoff.

    Parameters
    ----------
    max_retries:
        Maximum number of retry attempts (0 = no retries, just the initial call).
    base_delay:
        Initial delay in seconds before the first retry.
    max_delay:
        Upper bound on the delay between retries.
    backoff_factor:
        Multiplier applied to the delay after each failure.
    exceptions:
        Exception types that may trigger a retry.  Within those,
        :func:`~cryptopilot.core.exceptions.is_retryable` has the final
        word, so e.g. insufficient funds is raised immediately.
    """

    def should_retry(exc: BaseException, attempt: int) -> bool:
        if attempt > max_retries:
            return False
        # Only consult the classifier for our own hierarchy; callers that
        # pass e.g. ``(ValueError,)`` get what they asked for.
        if isinstance(exc, RETRYABLE_ERRORS):
            return is_retryable(exc)
        return True

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = base_delay
            for attempt in range(1, max_retries + 2):
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    if not should_retry(exc, attempt):
                        _log_give_up(func, attempt, exc)
                        raise
                    _log_attempt(func, attempt, max_retries, exc, delay)
                    time.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)
            raise AssertionError("unreachable")  # pragma: no cover

        return wrapper  # type: ignore[return-value]

    return decorator


def _log_attempt(
    func: Callable[..., Any], attempt: int, max_retries: int, exc: BaseException, delay: float
) -> None:
    logger.warning(
        "%s attempt %d/%d failed: %s (retrying in %.1fs)",
        func.__qualname__,
        attempt,
        max_retries + 1,
        exc,
        delay,
    )


def _log_give_up(func: Callable[..., Any], attempt: int, exc: BaseException) -> None:
    logger.error("%s failed after %d attempt(s): %s", func.__qualname__, attempt, exc)


# ---------------------------------------------------------------------------
# Simple token-bucket rate limiter
# ---------------------------------------------------------------------------


class RateLimiter:
    """Thread-safe minimum-interval rate limiter.

    Ensures at most *calls_per_second* calls are made.  Exchange adapters
    are called from worker threads (``asyncio.to_thread``), so callers that
    exceed the rate are blocked with ``time.sleep`` until a slot is free.

    Parameters
    ----------
    calls_per_second:
        Maximum sustained call rate.  For example ``2.0`` means at most
        2 calls per second (500 ms minimum gap).
    """

    def __init__(self, calls_per_second: float = 2.0) -> None:
        if calls_per_second <= 0:
            raise ValueError("calls_per_second must be positive")
        self._min_interval = 1.0 / calls_per_second
        self._last_call = 0.0
        self._lock = threading.Lock()

    @property
    def min_interval(self) -> float:
        """Minimum gap between two calls, in seconds."""
        return self._min_interval

    def acquire(self) -> None:
        """Block until a call is allowed."""
        with self._lock:
            now = time.monotonic()
            wait = self._min_interval - (now - self._last_call)
            if wait > 0:
                time.sleep(wait)
            self._last_call = time.monotonic()
