"""Deadline-bound request execution.

Runs one attempt of an operation as an asyncio task against a hard
deadline. A timeout warning fires once shortly before the deadline,
progress events are emitted on a fixed cadence, and every timer belonging
to a request is cleared on completion, whatever the outcome.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ollama_relay.core.errors.connection import (
    ErrorCategory,
    InferenceError,
    RequestCancelledError,
)
from ollama_relay.core.observability import audit_log
from ollama_relay.core.resilience.models import ProgressEvent, TimeoutWarning
from ollama_relay.core.resilience.quality import ConnectionQualityTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_PROGRESS_PERCENT = 95.0

ProgressCallback = Callable[[ProgressEvent], None]
TimeoutWarningCallback = Callable[[TimeoutWarning], None]


@dataclass
class _ActiveRequest:
    """Bookkeeping for one in-flight request."""

    task: "asyncio.Future"
    started_at: float
    warning_handle: Optional[asyncio.TimerHandle] = None
    progress_task: Optional["asyncio.Task[None]"] = None
    warning_active: bool = False
    aborted: bool = False
    callbacks_enabled: bool = True


class RequestExecutor:
    """Execute operations with a deadline, progress and cancellation.

    Args:
        tracker: Quality tracker receiving measured latencies.
        timeout_grace_period: Seconds before the deadline at which the
            timeout warning fires (<= 0 disables the warning).
        progress_interval: Seconds between progress events.
        classify: Builds the ``TIMEOUT`` error raised at the deadline so
            its message matches the target's locality.
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        tracker: Optional[ConnectionQualityTracker] = None,
        *,
        timeout_grace_period: float = 2.0,
        progress_interval: float = 0.5,
        classify: Optional[Callable[[BaseException], InferenceError]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.tracker = tracker
        self.timeout_grace_period = timeout_grace_period
        self.progress_interval = progress_interval
        self._classify = classify
        self._clock = clock
        self._active: dict[str, _ActiveRequest] = {}

    @property
    def active_request_ids(self) -> set[str]:
        return set(self._active)

    @property
    def warning_request_ids(self) -> set[str]:
        """Requests whose timeout warning has fired and that are still running."""
        return {rid for rid, state in self._active.items() if state.warning_active}

    def has_pending_timers(self, request_id: str) -> bool:
        state = self._active.get(request_id)
        if state is None:
            return False
        return state.warning_handle is not None or state.progress_task is not None

    async def execute(
        self,
        request_id: str,
        operation: Callable[[], Awaitable[T]],
        *,
        timeout: float,
        on_timeout_warning: Optional[TimeoutWarningCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> T:
        """Run ``operation`` with a hard deadline of ``timeout`` seconds.

        Args:
            request_id: Unique id; timers are tracked per id.
            operation: Zero-argument coroutine factory.
            timeout: Hard deadline in seconds.
            on_timeout_warning: Called once, ``timeout_grace_period`` before
                the deadline. The request keeps running.
            on_progress: Called every ``progress_interval`` with percent
                capped at 95 and once with 100 on success.

        Returns:
            The operation's result.

        Raises:
            InferenceError: ``TIMEOUT`` when the deadline passes first.
            RequestCancelledError: The request was cancelled through
                ``cancel`` or ``cancel_all``.
            Exception: Whatever the operation raised, unchanged.
        """
        if request_id in self._active:
            raise ValueError(f"Request {request_id} is already executing")

        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(operation())
        state = _ActiveRequest(task=task, started_at=self._clock())
        self._active[request_id] = state

        warn_after = timeout - self.timeout_grace_period
        if self.timeout_grace_period > 0 and warn_after > 0:
            state.warning_handle = loop.call_later(
                warn_after, self._fire_warning, request_id, timeout, on_timeout_warning
            )

        if on_progress is not None and self.progress_interval > 0:
            state.progress_task = asyncio.ensure_future(
                self._report_progress(request_id, timeout, on_progress)
            )

        try:
            try:
                done, _ = await asyncio.wait({task}, timeout=timeout)
            except asyncio.CancelledError:
                state.aborted = True
                task.cancel()
                raise

            if not done:
                state.aborted = True
                self._stop_timers(state)
                await self._abort(task)
                raise self._deadline_error(request_id, timeout)

            if task.cancelled():
                state.aborted = True
                raise RequestCancelledError(request_id)

            error = task.exception()
            self._record_latency(state)
            if error is not None:
                raise error

            self._stop_timers(state)
            if on_progress is not None:
                on_progress(
                    ProgressEvent(
                        request_id=request_id,
                        percent=100.0,
                        elapsed_ms=self._elapsed_ms(state),
                        warning_active=state.warning_active,
                    )
                )
            return task.result()
        finally:
            self._clear(request_id)

    def cancel(self, request_id: str) -> bool:
        """Cancel an in-flight request. Returns False if it is not running."""
        state = self._active.get(request_id)
        if state is None:
            return False
        state.aborted = True
        self._stop_timers(state)
        state.task.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every in-flight request, returning how many were cancelled."""
        return sum(1 for request_id in list(self._active) if self.cancel(request_id))

    def _fire_warning(
        self,
        request_id: str,
        timeout: float,
        callback: Optional[TimeoutWarningCallback],
    ) -> None:
        state = self._active.get(request_id)
        if state is None or not state.callbacks_enabled:
            return
        state.warning_handle = None
        state.warning_active = True
        logger.warning(
            "Request %s approaching timeout (%.1fs remaining)",
            request_id,
            self.timeout_grace_period,
        )
        audit_log("timeout_warning", request_id=request_id, timeout=timeout)
        if callback is not None:
            callback(TimeoutWarning(request_id=request_id, timeout=timeout))

    async def _report_progress(
        self,
        request_id: str,
        timeout: float,
        callback: ProgressCallback,
    ) -> None:
        while True:
            await asyncio.sleep(self.progress_interval)
            state = self._active.get(request_id)
            if state is None or not state.callbacks_enabled:
                return
            elapsed_ms = self._elapsed_ms(state)
            percent = min(elapsed_ms / (timeout * 1000.0) * 100.0, MAX_PROGRESS_PERCENT)
            callback(
                ProgressEvent(
                    request_id=request_id,
                    percent=round(percent, 1),
                    elapsed_ms=elapsed_ms,
                    warning_active=state.warning_active,
                )
            )

    async def _abort(self, task: "asyncio.Future") -> None:
        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Operation raised while being aborted: %s", task.exception())

    def _deadline_error(self, request_id: str, timeout: float) -> InferenceError:
        logger.warning("Request %s timed out after %.1fs", request_id, timeout)
        audit_log("request_timeout", request_id=request_id, timeout=timeout)
        cause = asyncio.TimeoutError(f"Request {request_id} timed out after {timeout}s")
        if self._classify is not None:
            error = self._classify(cause)
            if error.category is ErrorCategory.TIMEOUT:
                return error
        return InferenceError(
            ErrorCategory.TIMEOUT,
            f"Request timed out after {timeout:g}s",
            cause=cause,
        )

    def _record_latency(self, state: _ActiveRequest) -> None:
        if self.tracker is not None and not state.aborted:
            self.tracker.record(self._elapsed_ms(state))

    def _elapsed_ms(self, state: _ActiveRequest) -> float:
        return (self._clock() - state.started_at) * 1000.0

    @staticmethod
    def _stop_timers(state: _ActiveRequest) -> None:
        state.callbacks_enabled = False
        if state.warning_handle is not None:
            state.warning_handle.cancel()
            state.warning_handle = None
        if state.progress_task is not None:
            state.progress_task.cancel()
            state.progress_task = None

    def _clear(self, request_id: str) -> None:
        state = self._active.pop(request_id, None)
        if state is not None:
            self._stop_timers(state)
