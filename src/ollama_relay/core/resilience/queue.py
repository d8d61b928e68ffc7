"""Priority request queue for degraded connections.

Requests are deferred here while connection quality is poor. A single
scheduler task drains the queue: every tick it makes exactly one
decision (stop, idle or dispatch) so quality changes mid-tick can
neither double-drain nor miss a wake-up.
"""

import asyncio
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ollama_relay.core.errors.queue import (
    QueueClearedError,
    QueueEvictedError,
    QueueFullError,
    QueueStateError,
)
from ollama_relay.core.observability import audit_log
from ollama_relay.core.resilience.models import Priority, SleepFunc

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class QueueAction(str, Enum):
    """Scheduler decision for one tick."""

    STOP = "stop"
    IDLE = "idle"
    DISPATCH = "dispatch"


@dataclass
class QueuedRequest:
    """A deferred request waiting for the connection to recover."""

    id: str
    priority: Priority
    run: Callable[[], Awaitable[Any]]
    future: "asyncio.Future[Any]"
    enqueued_at: float
    timeout: Optional[float] = None

    def wait_ms(self, now: float) -> float:
        return (now - self.enqueued_at) * 1000.0


class RequestQueue:
    """Bounded priority-then-FIFO queue with a single drain loop.

    ``HIGH`` entries go to the front, ``NORMAL`` and ``LOW`` append in
    arrival order. When full, the oldest ``LOW`` entry is evicted to make
    room; with no ``LOW`` entry present, admission is refused.

    Args:
        capacity: Maximum number of pending entries.
        interval: Seconds between scheduler ticks.
        can_drain: Returns True when quality allows dispatching work.
        sleep_func: Injectable sleep function for time control in tests.
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        capacity: int = 10,
        *,
        interval: float = 1.0,
        can_drain: Callable[[], bool] = lambda: True,
        sleep_func: Optional[SleepFunc] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.interval = interval
        self._can_drain = can_drain
        self._sleep = sleep_func or asyncio.sleep
        self._clock = clock
        self._entries: deque[QueuedRequest] = deque()
        self._drain_task: Optional["asyncio.Task[None]"] = None
        self._closed = False

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def entries(self) -> list[QueuedRequest]:
        return list(self._entries)

    def enqueue(
        self,
        run: Callable[[], Awaitable[Any]],
        *,
        priority: Priority = Priority.NORMAL,
        request_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> QueuedRequest:
        """Admit a request without starting the drain loop.

        Raises:
            QueueFullError: Queue is full and holds no ``LOW`` entry.
            QueueStateError: The queue has been closed.
        """
        if self._closed:
            raise QueueStateError("Request queue is closed")

        request_id = request_id or f"queued_{next(_ids)}"
        if len(self._entries) >= self.capacity:
            self._evict_for(request_id)

        entry = QueuedRequest(
            id=request_id,
            priority=priority,
            run=run,
            future=asyncio.get_running_loop().create_future(),
            enqueued_at=self._clock(),
            timeout=timeout,
        )
        if priority is Priority.HIGH:
            self._entries.appendleft(entry)
        else:
            self._entries.append(entry)
        entry.future.add_done_callback(lambda _f, e=entry: self._discard_if_cancelled(e))

        logger.info(
            "Request %s queued (priority=%s, length=%d)",
            request_id,
            priority.value,
            len(self._entries),
        )
        audit_log(
            "request_queued",
            request_id=request_id,
            priority=priority.value,
            queue_length=len(self._entries),
        )
        return entry

    async def submit(
        self,
        run: Callable[[], Awaitable[Any]],
        *,
        priority: Priority = Priority.NORMAL,
        request_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Admit a request, ensure draining, and wait for its result."""
        entry = self.enqueue(run, priority=priority, request_id=request_id, timeout=timeout)
        self.start()
        return await entry.future

    def _evict_for(self, incoming_id: str) -> None:
        victim = next((e for e in self._entries if e.priority is Priority.LOW), None)
        if victim is None:
            raise QueueFullError(
                "Request queue is full and no low-priority requests to remove",
                request_id=incoming_id,
                capacity=self.capacity,
            )
        self._entries.remove(victim)
        logger.warning("Evicting queued request %s to admit %s", victim.id, incoming_id)
        audit_log(
            "queue_eviction",
            request_id=victim.id,
            admitted=incoming_id,
            capacity=self.capacity,
        )
        if not victim.future.done():
            victim.future.set_exception(
                QueueEvictedError(
                    "Request removed from queue due to capacity limit",
                    request_id=victim.id,
                    capacity=self.capacity,
                )
            )

    def _discard_if_cancelled(self, entry: QueuedRequest) -> None:
        if entry.future.cancelled() and entry in self._entries:
            self._entries.remove(entry)

    def start(self) -> None:
        """Start the drain loop. Starting while already draining is a no-op.

        Raises:
            QueueStateError: The queue is empty or closed.
        """
        if self._closed:
            raise QueueStateError("Request queue is closed")
        if self.draining:
            return
        if not self._entries:
            raise QueueStateError("Cannot start draining an empty request queue")
        self._drain_task = asyncio.ensure_future(self._scheduler())

    def stop(self) -> None:
        """Halt the drain loop, leaving pending entries in place."""
        task, self._drain_task = self._drain_task, None
        if task is not None and not task.done():
            task.cancel()

    def next_action(self) -> QueueAction:
        """The single authoritative decision for the current tick."""
        if not self._entries:
            return QueueAction.STOP
        if not self._can_drain():
            return QueueAction.IDLE
        return QueueAction.DISPATCH

    async def _scheduler(self) -> None:
        while True:
            await self._sleep(self.interval)
            action = self.next_action()
            if action is QueueAction.STOP:
                logger.debug("Request queue empty; draining stopped")
                break
            if action is QueueAction.IDLE:
                continue
            await self._dispatch(self._entries.popleft())
        if self._drain_task is asyncio.current_task():
            self._drain_task = None

    async def _dispatch(self, entry: QueuedRequest) -> None:
        if entry.future.done():
            return
        logger.debug(
            "Dispatching queued request %s after %.0fms",
            entry.id,
            entry.wait_ms(self._clock()),
        )
        try:
            result = await entry.run()
        except asyncio.CancelledError:
            if not entry.future.done():
                entry.future.set_exception(
                    QueueClearedError("Request queue stopped", request_id=entry.id)
                )
            raise
        except Exception as exc:
            if not entry.future.done():
                entry.future.set_exception(exc)
        else:
            if not entry.future.done():
                entry.future.set_result(result)

    def clear(self, reason: str = "Queue cleared") -> int:
        """Reject every pending entry with ``reason`` and halt draining.

        Returns:
            Number of entries rejected.
        """
        self.stop()
        pending = list(self._entries)
        self._entries.clear()
        for entry in pending:
            if not entry.future.done():
                entry.future.set_exception(QueueClearedError(reason, request_id=entry.id))
        if pending:
            logger.info("Cleared %d queued requests: %s", len(pending), reason)
            audit_log("queue_cleared", reason=reason, count=len(pending))
        return len(pending)

    def close(self, reason: str = "Client shutting down") -> int:
        """Clear the queue and refuse further admissions."""
        rejected = self.clear(reason)
        self._closed = True
        return rejected

    def status(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "length": len(self._entries),
            "draining": self.draining,
            "capacity": self.capacity,
            "entries": [
                {
                    "id": e.id,
                    "priority": e.priority.value,
                    "wait_ms": round(e.wait_ms(now)),
                }
                for e in self._entries
            ],
        }
