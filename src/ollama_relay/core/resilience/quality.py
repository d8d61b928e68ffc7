"""Connection quality tracking.

Keeps a sliding window of recent round-trip times and derives a coarse
quality label from its average and maximum.
"""

import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ollama_relay.core.observability import audit_log
from ollama_relay.core.resilience.models import (
    QUALITY_DESCRIPTIONS,
    QualityLabel,
    ResponseTimeSample,
)

logger = logging.getLogger(__name__)

EXCELLENT_AVERAGE_MS = 1000.0
EXCELLENT_MAX_MS = 2000.0
GOOD_AVERAGE_MS = 2000.0


class ConnectionQualityTracker:
    """Sliding-window latency tracker.

    Labels, with ``avg`` and ``max`` taken over the window:

    - ``EXCELLENT``: avg < 1000ms and max < 2000ms
    - ``GOOD``: avg < 2000ms and max < slow threshold
    - ``SLOW``: avg < slow threshold and max < very slow threshold
    - ``POOR``: anything else
    - ``UNKNOWN``: empty window

    Args:
        window: Number of samples retained (newest evicts oldest).
        slow_threshold_ms: Slow threshold in milliseconds.
        very_slow_threshold_ms: Very slow threshold in milliseconds.
        clock: Monotonic clock used to timestamp samples.
        on_change: Called with ``(old, new)`` whenever the label changes.
    """

    def __init__(
        self,
        window: int = 5,
        slow_threshold_ms: float = 5000.0,
        very_slow_threshold_ms: float = 10000.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_change: Optional[Callable[[QualityLabel, QualityLabel], None]] = None,
    ):
        if window < 1:
            raise ValueError("window must be >= 1")
        self.window = window
        self.slow_threshold_ms = slow_threshold_ms
        self.very_slow_threshold_ms = very_slow_threshold_ms
        self._clock = clock
        self._on_change = on_change
        self._samples: deque[ResponseTimeSample] = deque(maxlen=window)
        self._label = QualityLabel.UNKNOWN
        self._last_update: Optional[datetime] = None

    @property
    def label(self) -> QualityLabel:
        return self._label

    @property
    def samples(self) -> list[ResponseTimeSample]:
        return list(self._samples)

    @property
    def average_ms(self) -> float:
        if not self._samples:
            return 0.0
        return sum(s.time_ms for s in self._samples) / len(self._samples)

    @property
    def max_ms(self) -> float:
        if not self._samples:
            return 0.0
        return max(s.time_ms for s in self._samples)

    def record(self, time_ms: float) -> QualityLabel:
        """Append a sample and return the recomputed label."""
        self._samples.append(ResponseTimeSample(time_ms=float(time_ms), observed_at=self._clock()))
        self._last_update = datetime.now(timezone.utc)
        self._set_label(self._compute_label())
        return self._label

    def _compute_label(self) -> QualityLabel:
        if not self._samples:
            return QualityLabel.UNKNOWN

        average = self.average_ms
        peak = self.max_ms

        if average < EXCELLENT_AVERAGE_MS and peak < EXCELLENT_MAX_MS:
            return QualityLabel.EXCELLENT
        if average < GOOD_AVERAGE_MS and peak < self.slow_threshold_ms:
            return QualityLabel.GOOD
        if average < self.slow_threshold_ms and peak < self.very_slow_threshold_ms:
            return QualityLabel.SLOW
        return QualityLabel.POOR

    def _set_label(self, label: QualityLabel) -> None:
        old = self._label
        self._label = label
        if old is label:
            return
        logger.info("Connection quality changed: %s -> %s", old.value, label.value)
        audit_log(
            "quality_change",
            old_quality=old.value,
            new_quality=label.value,
            average_ms=round(self.average_ms),
        )
        if self._on_change is not None:
            self._on_change(old, label)

    def should_queue(self, queue_length: int = 0) -> bool:
        """Whether new non-urgent work should be deferred to the queue.

        True when quality is poor, or when the queue already holds work so
        that ordering is preserved once degraded.
        """
        return self._label is QualityLabel.POOR or queue_length > 0

    def allows_drain(self) -> bool:
        """Whether queued work may be dispatched at the current quality."""
        return self._label not in (QualityLabel.POOR, QualityLabel.UNKNOWN)

    def reset(self) -> None:
        """Clear the window back to ``UNKNOWN``."""
        self._samples.clear()
        self._last_update = None
        self._set_label(QualityLabel.UNKNOWN)

    def report(self) -> dict[str, Any]:
        """Snapshot for status displays."""
        return {
            "label": self._label.value,
            "average_ms": round(self.average_ms),
            "recent_ms": [round(s.time_ms) for s in self._samples],
            "description": QUALITY_DESCRIPTIONS[self._label],
            "last_update": self._last_update.isoformat() if self._last_update else None,
        }
