"""Unit tests for deadline-bound request execution.

Tests cover:
- Hard deadline and TIMEOUT classification
- Timeout warning and progress events
- Timer cleanup on every outcome
- Cancellation of single and all requests
"""

import asyncio
import time

import pytest

from ollama_relay.core.errors.connection import (
    ErrorCategory,
    InferenceError,
    RequestCancelledError,
)
from ollama_relay.core.resilience.classifier import ErrorClassifier
from ollama_relay.core.resilience.executor import RequestExecutor
from ollama_relay.core.resilience.models import ProgressEvent, TimeoutWarning
from ollama_relay.core.resilience.quality import ConnectionQualityTracker


@pytest.fixture
def tracker():
    return ConnectionQualityTracker()


@pytest.fixture
def executor(tracker):
    return RequestExecutor(tracker, timeout_grace_period=0.0, progress_interval=0.0)


def _never():
    async def operation():
        await asyncio.Event().wait()

    return operation


class TestDeadline:
    """Tests for the hard deadline."""

    @pytest.mark.asyncio
    async def test_never_settling_operation_times_out(self, executor):
        """A 100ms deadline fires promptly and leaves no timers behind."""
        started = time.monotonic()

        with pytest.raises(InferenceError) as exc_info:
            await executor.execute("r1", _never(), timeout=0.1)

        assert time.monotonic() - started < 0.3
        assert exc_info.value.category is ErrorCategory.TIMEOUT
        assert executor.active_request_ids == set()
        assert executor.has_pending_timers("r1") is False

    @pytest.mark.asyncio
    async def test_timeout_skips_latency(self, tracker):
        executor = RequestExecutor(
            tracker,
            timeout_grace_period=0.0,
            classify=ErrorClassifier(local=False).classify,
        )

        with pytest.raises(InferenceError) as exc_info:
            await executor.execute("r1", _never(), timeout=0.05)

        assert tracker.samples == []
        assert "remote" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_operation_error_propagates_unchanged(self, executor, tracker):
        async def operation():
            raise ValueError("bad payload")

        with pytest.raises(ValueError, match="bad payload"):
            await executor.execute("r1", operation, timeout=1.0)

        assert len(tracker.samples) == 1
        assert executor.active_request_ids == set()

    @pytest.mark.asyncio
    async def test_success_records_latency(self, executor, tracker):
        async def operation():
            return "done"

        assert await executor.execute("r1", operation, timeout=1.0) == "done"
        assert len(tracker.samples) == 1

    @pytest.mark.asyncio
    async def test_duplicate_request_id(self, executor):
        task = asyncio.ensure_future(executor.execute("r1", _never(), timeout=1.0))
        await asyncio.sleep(0)

        with pytest.raises(ValueError, match="already executing"):
            await executor.execute("r1", _never(), timeout=1.0)

        executor.cancel("r1")
        with pytest.raises(RequestCancelledError):
            await task


class TestWarningAndProgress:
    """Tests for timeout warnings and progress events."""

    @pytest.mark.asyncio
    async def test_warning_fires_once_before_deadline(self, tracker):
        executor = RequestExecutor(tracker, timeout_grace_period=0.2, progress_interval=0.0)
        warnings = []

        async def operation():
            await asyncio.sleep(0.2)
            return "late"

        result = await executor.execute(
            "r1", operation, timeout=0.3, on_timeout_warning=warnings.append
        )

        assert result == "late"
        assert warnings == [TimeoutWarning(request_id="r1", timeout=0.3)]
        assert executor.warning_request_ids == set()

    @pytest.mark.asyncio
    async def test_no_warning_for_fast_request(self, tracker):
        executor = RequestExecutor(tracker, timeout_grace_period=0.2)
        warnings = []

        async def operation():
            return "fast"

        await executor.execute("r1", operation, timeout=0.3, on_timeout_warning=warnings.append)
        await asyncio.sleep(0.15)

        assert warnings == []

    @pytest.mark.asyncio
    async def test_progress_capped_then_complete(self, tracker):
        executor = RequestExecutor(tracker, timeout_grace_period=0.0, progress_interval=0.02)
        events: list[ProgressEvent] = []

        async def operation():
            await asyncio.sleep(0.1)
            return "ok"

        await executor.execute("r1", operation, timeout=0.12, on_progress=events.append)

        assert len(events) >= 2
        assert all(e.percent <= 95 for e in events[:-1])
        assert events[-1].percent == 100.0
        assert all(e.request_id == "r1" for e in events)


class TestCancellation:
    """Tests for cancel and cancel_all."""

    @pytest.mark.asyncio
    async def test_cancel_is_final(self, executor, tracker):
        """An explicit cancel is reported as cancellation, not a timeout."""
        task = asyncio.ensure_future(executor.execute("r1", _never(), timeout=5.0))
        await asyncio.sleep(0.01)

        assert executor.cancel("r1") is True

        with pytest.raises(RequestCancelledError, match="r1 was cancelled") as exc_info:
            await task
        assert exc_info.value.request_id == "r1"
        assert not isinstance(exc_info.value, InferenceError)
        assert tracker.samples == []
        assert executor.cancel("r1") is False

    @pytest.mark.asyncio
    async def test_cancel_all(self, executor):
        tasks = [
            asyncio.ensure_future(executor.execute(f"r{i}", _never(), timeout=5.0))
            for i in range(3)
        ]
        await asyncio.sleep(0.01)

        assert executor.cancel_all() == 3

        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, RequestCancelledError) for r in results)
        assert executor.active_request_ids == set()
