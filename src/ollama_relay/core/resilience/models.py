"""Resilience data models, enums, and protocols.

Defines the core types used across the resilience sub-package:
- ErrorCategory enum (re-exported from the errors package)
- Priority and QualityLabel enums for queueing decisions
- ConnectionStatus / ConnectionState for the shared connection state
- ResponseTimeSample and Statistics for quality tracking
- ProgressEvent, TimeoutWarning and StreamChunk stream events
- SleepFunc protocol for injectable async sleep
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, Union

from ollama_relay.core.errors.connection import ErrorCategory

__all__ = [
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
]


class Priority(str, Enum):
    """Request priority used by the request queue."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class QualityLabel(str, Enum):
    """Coarse classification of recent round-trip times."""

    UNKNOWN = "unknown"
    EXCELLENT = "excellent"
    GOOD = "good"
    SLOW = "slow"
    POOR = "poor"


QUALITY_DESCRIPTIONS: dict[QualityLabel, str] = {
    QualityLabel.EXCELLENT: "Connection is excellent (< 1s response)",
    QualityLabel.GOOD: "Connection is good (< 2s response)",
    QualityLabel.SLOW: "Connection is slow (< 5s response)",
    QualityLabel.POOR: "Connection is poor (> 5s response)",
    QualityLabel.UNKNOWN: "Connection quality unknown",
}


class ConnectionStatus(str, Enum):
    """Lifecycle states of the connection to the inference service."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class ConnectionState:
    """Shared, advisory view of the inference service connection.

    Owned by the client facade and mutated only by the health monitor and
    by request completions.
    """

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    active_model: str = ""
    last_checked_at: Optional[datetime] = None
    available_models: set[str] = field(default_factory=set)
    last_error: Optional[str] = None
    last_response_time_ms: Optional[float] = None

    def snapshot(self) -> "ConnectionState":
        """Return an independent copy safe to hand to callers."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "active_model": self.active_model,
            "last_checked_at": (
                self.last_checked_at.isoformat() if self.last_checked_at else None
            ),
            "available_models": sorted(self.available_models),
            "last_error": self.last_error,
            "last_response_time_ms": self.last_response_time_ms,
        }


@dataclass(frozen=True)
class ResponseTimeSample:
    """A single observed round-trip time."""

    time_ms: float
    observed_at: float


@dataclass
class Statistics:
    """Running request counters owned by the client facade."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    timed_out: int = 0
    queued: int = 0

    @property
    def success_rate(self) -> float:
        """Percentage of requests that succeeded, rounded to two decimals."""
        if self.total == 0:
            return 0.0
        return round(self.succeeded / self.total * 100, 2)

    def reset(self) -> None:
        self.total = 0
        self.succeeded = 0
        self.failed = 0
        self.timed_out = 0
        self.queued = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "timed_out": self.timed_out,
            "queued": self.queued,
            "success_rate": self.success_rate,
        }


@dataclass(frozen=True)
class ProgressEvent:
    """Periodic progress report for an in-flight request."""

    request_id: str
    percent: float
    elapsed_ms: float
    warning_active: bool


@dataclass(frozen=True)
class TimeoutWarning:
    """Emitted once when a request nears its hard deadline."""

    request_id: str
    timeout: float


@dataclass(frozen=True)
class StreamChunk:
    """A fragment of streamed text plus everything received so far."""

    text: str
    cumulative: str


StreamEvent = Union[StreamChunk, ProgressEvent, TimeoutWarning]


class SleepFunc(Protocol):
    """Protocol for injectable sleep function."""

    async def __call__(self, seconds: float) -> None: ...
