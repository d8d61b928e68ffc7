"""ollama-relay: a resilient client for Ollama inference services."""

from ollama_relay.client import ClientStatus, ResilientClient, ResponseStream
from ollama_relay.config import ClientConfig
from ollama_relay.core.errors import (
    ClientClosedError,
    ConfigurationError,
    ErrorCategory,
    FallbackExhaustedError,
    InferenceError,
    QueueCapacityError,
    QueueClearedError,
    RequestCancelledError,
    RetriesExhaustedError,
)
from ollama_relay.core.resilience.models import (
    ConnectionStatus,
    Priority,
    ProgressEvent,
    QualityLabel,
    StreamChunk,
    TimeoutWarning,
)

__version__ = "0.1.0"

__all__ = [
    "ResilientClient",
    "ResponseStream",
    "ClientStatus",
    "ClientConfig",
    "Priority",
    "ConnectionStatus",
    "QualityLabel",
    "StreamChunk",
    "ProgressEvent",
    "TimeoutWarning",
    "ErrorCategory",
    "InferenceError",
    "RetriesExhaustedError",
    "QueueCapacityError",
    "QueueClearedError",
    "FallbackExhaustedError",
    "ConfigurationError",
    "ClientClosedError",
    "RequestCancelledError",
]
