"""Request resilience primitives.

Leaf-first building blocks used by the client facade:
- Error classification onto the closed ``ErrorCategory`` taxonomy
- Category-aware backoff policy and retry loop
- Sliding-window connection quality tracking
- Deadline-bound request execution with progress and timeout warnings
- Bounded priority queue drained by a single scheduler loop
"""

from ollama_relay.core.errors.connection import (
    InferenceError,
    RetriesExhaustedError,
)
from ollama_relay.core.resilience.backoff import (
    BackoffPolicy,
    retry_with_backoff,
)
from ollama_relay.core.resilience.classifier import (
    ErrorClassifier,
    is_local_host,
    is_local_url,
)
from ollama_relay.core.resilience.executor import RequestExecutor
from ollama_relay.core.resilience.messages import MessageCatalog
from ollama_relay.core.resilience.models import (
    QUALITY_DESCRIPTIONS,
    ConnectionState,
    ConnectionStatus,
    ErrorCategory,
    Priority,
    ProgressEvent,
    QualityLabel,
    ResponseTimeSample,
    SleepFunc,
    Statistics,
    StreamChunk,
    StreamEvent,
    TimeoutWarning,
)
from ollama_relay.core.resilience.quality import ConnectionQualityTracker
from ollama_relay.core.resilience.queue import QueueAction, QueuedRequest, RequestQueue

__all__ = [
    # Models & enums
    "ErrorCategory",
    "Priority",
    "QualityLabel",
    "QUALITY_DESCRIPTIONS",
    "ConnectionStatus",
    "ConnectionState",
    "ResponseTimeSample",
    "Statistics",
    "ProgressEvent",
    "TimeoutWarning",
    "StreamChunk",
    "StreamEvent",
    "SleepFunc",
    # Classification
    "ErrorClassifier",
    "MessageCatalog",
    "is_local_host",
    "is_local_url",
    # Retry
    "BackoffPolicy",
    "retry_with_backoff",
    # Quality
    "ConnectionQualityTracker",
    # Execution
    "RequestExecutor",
    # Queue
    "RequestQueue",
    "QueuedRequest",
    "QueueAction",
    # Error re-exports
    "InferenceError",
    "RetriesExhaustedError",
]
