"""Category-aware retry policy with exponential backoff and jitter.

``BackoffPolicy`` answers two questions for the retry loop: should this
failure be retried, and how long to wait first. ``retry_with_backoff``
drives an async operation through that policy.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from ollama_relay.core.errors.connection import (
    ClientClosedError,
    ErrorCategory,
    InferenceError,
    RequestCancelledError,
    RetriesExhaustedError,
)
from ollama_relay.core.observability import audit_log
from ollama_relay.core.resilience.models import SleepFunc

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_DELAY = 15.0
DEFAULT_JITTER = 0.2


class BackoffPolicy:
    """Retry eligibility and delay computation.

    Delays are ``base(category) * 2^(attempt-1)`` seconds, capped at
    ``max_delay``, plus up to ``jitter`` (a fraction of the capped delay)
    of random extra wait. Jitter is only ever added.

    Args:
        max_delay: Ceiling in seconds applied before jitter (default 15.0).
        jitter: Maximum extra wait as a fraction of the delay (default 0.2).
        rng: Injectable Random instance for deterministic testing.
    """

    def __init__(
        self,
        *,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: float = DEFAULT_JITTER,
        rng: Optional[random.Random] = None,
    ):
        self.max_delay = max_delay
        self.jitter = min(max(jitter, 0.0), 1.0)
        self._rng = rng or random.Random()

    @staticmethod
    def should_retry(category: ErrorCategory, attempt: int, max_attempts: int) -> bool:
        """Decide whether another attempt is allowed after ``attempt`` failed.

        Attempts are 1-based; ``max_attempts`` counts the initial attempt.
        """
        if attempt >= max_attempts:
            return False
        return category.retryable

    def base_delay(self, attempt: int, category: ErrorCategory) -> float:
        """Capped exponential delay without jitter."""
        return min(category.base_delay * (2.0 ** (max(attempt, 1) - 1)), self.max_delay)

    def delay(self, attempt: int, category: ErrorCategory) -> float:
        """Delay in seconds before retrying after ``attempt`` failed."""
        capped = self.base_delay(attempt, category)
        return capped + self._rng.random() * self.jitter * capped

    @property
    def max_total_delay(self) -> float:
        """Upper bound for any single delay, jitter included."""
        return self.max_delay * (1.0 + self.jitter)


async def retry_with_backoff(
    func: Callable[[int], Awaitable[T]],
    *,
    max_attempts: int,
    classify: Callable[[BaseException], InferenceError],
    policy: Optional[BackoffPolicy] = None,
    sleep_func: Optional[SleepFunc] = None,
    on_failure: Optional[Callable[[InferenceError, int], None]] = None,
    request_id: Optional[str] = None,
    exhausted_message: Optional[str] = None,
) -> T:
    """Run ``func`` until it succeeds or the policy gives up.

    Each failure is classified; non-retryable categories surface
    immediately and unchanged. When a retryable failure is the last
    allowed attempt, it is wrapped in ``RetriesExhaustedError`` that keeps
    the original category. Explicit cancellation and a closed client end
    the loop at once.

    Args:
        func: Async callable receiving the 1-based attempt number.
        max_attempts: Total attempts including the first (must be >= 1).
        classify: Maps a raised exception to an ``InferenceError``.
        policy: Backoff policy (default ``BackoffPolicy()``).
        sleep_func: Injectable sleep function for time control in tests.
        on_failure: Called with every classified failure and its attempt.
        request_id: Identifier included in audit events.
        exhausted_message: User-facing text for ``RetriesExhaustedError``;
            the attempt count is appended.

    Returns:
        Result from ``func`` on success.

    Raises:
        InferenceError: Non-retryable failure, as classified.
        RetriesExhaustedError: Every allowed attempt failed retryably.

    Testing example:
        >>> sleeps = []
        >>> async def fake_sleep(s): sleeps.append(s)
        >>> await retry_with_backoff(
        ...     op, max_attempts=4, classify=classifier.classify,
        ...     policy=BackoffPolicy(rng=random.Random(42)), sleep_func=fake_sleep,
        ... )
    """
    _policy = policy or BackoffPolicy()
    _sleep = sleep_func or asyncio.sleep
    max_attempts = max(1, max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(attempt)
        except (asyncio.CancelledError, RequestCancelledError, ClientClosedError):
            raise
        except Exception as exc:
            error = classify(exc)
            if on_failure is not None:
                on_failure(error, attempt)

            if not _policy.should_retry(error.category, attempt, max_attempts):
                if error.retryable:
                    audit_log(
                        "retries_exhausted",
                        request_id=request_id,
                        attempts=attempt,
                        error_type=error.category.value,
                    )
                    message = None
                    if exhausted_message:
                        message = f"{exhausted_message} (tried {attempt} times)"
                    raise RetriesExhaustedError(error, attempt, message) from exc
                if error is exc:
                    raise
                raise error from exc

            delay = _policy.delay(attempt, error.category)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.0fms: %s",
                attempt,
                max_attempts,
                error.category.value,
                delay * 1000,
                error.message,
            )
            audit_log(
                "retry_attempt",
                request_id=request_id,
                attempt=attempt,
                max_attempts=max_attempts,
                error_type=error.category.value,
                delay_ms=int(delay * 1000),
            )
            await _sleep(delay)

    raise RuntimeError("retry_with_backoff: unexpected state")
