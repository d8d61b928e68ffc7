"""Unified error hierarchy for ollama-relay.

All custom exception classes are defined in domain-specific modules within
this package. This __init__.py re-exports everything for convenient access.

Usage:
    from ollama_relay.core.errors import InferenceError, ErrorCategory

    try:
        await client.send("hello")
    except InferenceError as exc:
        render(exc.to_dict())
"""

from ollama_relay.core.errors.config import ConfigurationError
from ollama_relay.core.errors.connection import (
    ClientClosedError,
    ErrorCategory,
    InferenceError,
    RequestCancelledError,
    RetriesExhaustedError,
)
from ollama_relay.core.errors.queue import (
    QueueCapacityError,
    QueueClearedError,
    QueueEvictedError,
    QueueFullError,
    QueueStateError,
)
from ollama_relay.core.errors.transport import (
    FallbackExhaustedError,
    StrategyError,
    StrategyFailure,
)

__all__ = [
    # Connection
    "ErrorCategory",
    "InferenceError",
    "RetriesExhaustedError",
    "ClientClosedError",
    "RequestCancelledError",
    # Queue
    "QueueCapacityError",
    "QueueFullError",
    "QueueEvictedError",
    "QueueClearedError",
    "QueueStateError",
    # Transport
    "StrategyError",
    "StrategyFailure",
    "FallbackExhaustedError",
    # Config
    "ConfigurationError",
]
