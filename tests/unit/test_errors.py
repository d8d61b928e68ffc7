"""Unit tests for the error hierarchy."""

import pytest

from ollama_relay.core.errors import (
    ErrorCategory,
    FallbackExhaustedError,
    InferenceError,
    QueueEvictedError,
    QueueFullError,
    QueueCapacityError,
    RetriesExhaustedError,
    StrategyFailure,
)


class TestErrorCategory:
    """Tests for category properties."""

    @pytest.mark.parametrize(
        "category",
        [ErrorCategory.MODEL, ErrorCategory.CORS, ErrorCategory.AUTH],
    )
    def test_non_retryable_categories(self, category):
        """Model, CORS and auth failures are never retried."""
        assert category.retryable is False

    @pytest.mark.parametrize(
        "category",
        [
            ErrorCategory.TIMEOUT,
            ErrorCategory.NETWORK,
            ErrorCategory.SERVER,
            ErrorCategory.CONNECTION,
            ErrorCategory.UNKNOWN,
        ],
    )
    def test_retryable_categories(self, category):
        """Everything else is retryable."""
        assert category.retryable is True

    def test_base_delays(self):
        """Base delays are category specific, in seconds."""
        assert ErrorCategory.TIMEOUT.base_delay == 2.0
        assert ErrorCategory.NETWORK.base_delay == 1.5
        assert ErrorCategory.SERVER.base_delay == 3.0
        assert ErrorCategory.CONNECTION.base_delay == 1.0

    def test_connection_class(self):
        """Only connection, network and timeout mean the service is unreachable."""
        connection_class = {c for c in ErrorCategory if c.connection_class}
        assert connection_class == {
            ErrorCategory.CONNECTION,
            ErrorCategory.NETWORK,
            ErrorCategory.TIMEOUT,
        }


class TestInferenceError:
    """Tests for InferenceError."""

    def test_to_dict(self):
        """Serialized form carries category, message and retryability."""
        error = InferenceError(ErrorCategory.MODEL, "Model missing")
        assert error.to_dict() == {
            "category": "model",
            "message": "Model missing",
            "retryable": False,
        }
        assert str(error) == "Model missing"

    def test_retries_exhausted_keeps_category(self):
        """Exhaustion wraps the last error without changing its category."""
        last = InferenceError(ErrorCategory.NETWORK, "Network down", local=False)
        error = RetriesExhaustedError(last, 4)

        assert isinstance(error, InferenceError)
        assert error.category is ErrorCategory.NETWORK
        assert error.attempts == 4
        assert error.last_error is last
        assert error.local is False
        assert error.message == "Retries exhausted: tried 4 times. Network down"
        assert error.to_dict()["attempts"] == 4


class TestQueueErrors:
    """Tests for queue error classes."""

    def test_capacity_errors_share_base(self):
        """Full and evicted are both capacity errors."""
        assert issubclass(QueueFullError, QueueCapacityError)
        assert issubclass(QueueEvictedError, QueueCapacityError)

    def test_capacity_error_attributes(self):
        error = QueueFullError("full", request_id="r1", capacity=3)
        assert error.request_id == "r1"
        assert error.capacity == 3


class TestFallbackExhaustedError:
    """Tests for the aggregate strategy failure."""

    def test_message_enumerates_failures(self):
        """Every strategy failure appears in order."""
        error = FallbackExhaustedError(
            [
                StrategyFailure("direct", "Direct request failed", kind="cors"),
                StrategyFailure("custom", "Custom proxy request failed with status 502", status=502),
            ]
        )
        message = str(error)
        assert message.startswith("All 2 connection strategies failed")
        assert message.index("direct:") < message.index("custom:")
        assert error.last_failure.status == 502

    def test_empty_failures(self):
        assert FallbackExhaustedError([]).last_failure is None
