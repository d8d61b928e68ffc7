"""Connection health monitoring.

Probes the inference service's tags endpoint on demand or on a fixed
interval and keeps the shared ``ConnectionState`` current. After a failed
scheduled probe, automatic reconnect attempts run with progressive delays
until one succeeds or the attempt budget is spent.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from ollama_relay.core.errors.connection import InferenceError
from ollama_relay.core.observability import audit_log
from ollama_relay.core.resilience.models import ConnectionState, ConnectionStatus, SleepFunc
from ollama_relay.core.resilience.quality import ConnectionQualityTracker
from ollama_relay.core.transport.ollama import OllamaTransport

logger = logging.getLogger(__name__)


def model_available(model: str, models: Iterable[str]) -> bool:
    """True when ``model`` is installed, with or without an explicit tag."""
    for name in models:
        if name == model or name.split(":", 1)[0] == model:
            return True
    return False


class ConnectionHealthMonitor:
    """Probe reachability and model availability.

    States move ``DISCONNECTED -> CONNECTING -> {CONNECTED, ERROR}`` and
    return to ``CONNECTING`` only through a probe.

    Args:
        transport: Transport used for the tags probe.
        state: Shared connection state, mutated in place.
        model: Configured active model name.
        interval: Seconds between scheduled probes (<= 0 disables them).
        initial_delay: Seconds before the first scheduled probe.
        probe_timeout: Timeout for a single probe in seconds.
        tracker: Quality tracker fed with probe latencies.
        max_auto_reconnects: Automatic reconnect attempts before a manual
            ``reconnect`` is required.
        reconnect_base_delay: First automatic reconnect delay in seconds.
        reconnect_max_delay: Cap on automatic reconnect delays in seconds.
        sleep_func: Injectable sleep function for time control in tests.
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        transport: OllamaTransport,
        state: ConnectionState,
        *,
        model: str,
        interval: float = 30.0,
        initial_delay: float = 1.0,
        probe_timeout: float = 10.0,
        tracker: Optional[ConnectionQualityTracker] = None,
        max_auto_reconnects: int = 5,
        reconnect_base_delay: float = 2.0,
        reconnect_max_delay: float = 32.0,
        sleep_func: Optional[SleepFunc] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.state = state
        self.model = model
        self.interval = interval
        self.initial_delay = initial_delay
        self.probe_timeout = probe_timeout
        self.tracker = tracker
        self.max_auto_reconnects = max_auto_reconnects
        self.reconnect_base_delay = reconnect_base_delay
        self.reconnect_max_delay = reconnect_max_delay
        self._sleep = sleep_func or asyncio.sleep
        self._clock = clock
        self._probe_task: Optional["asyncio.Task[None]"] = None
        self._reconnect_task: Optional["asyncio.Task[None]"] = None
        self._reconnect_attempts = 0

        self.state.active_model = model

    @property
    def running(self) -> bool:
        return self._probe_task is not None and not self._probe_task.done()

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def reconnect_delay(self, attempt: int) -> float:
        """Delay before automatic reconnect number ``attempt`` (0-based)."""
        return min(self.reconnect_base_delay * (2.0**attempt), self.reconnect_max_delay)

    def start(self) -> bool:
        """Start scheduled probing. Returns False when disabled or running."""
        if self.interval <= 0 or self.running:
            return False
        self._probe_task = asyncio.ensure_future(self._probe_loop())
        return True

    async def stop(self) -> None:
        """Stop scheduled probing and any pending automatic reconnect."""
        tasks = [t for t in (self._probe_task, self._reconnect_task) if t is not None]
        self._probe_task = None
        self._reconnect_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def probe(self) -> list[str]:
        """Probe once, updating state. Returns the available model names.

        Raises:
            InferenceError: The probe failed; state is ``ERROR``.
        """
        self._set_status(ConnectionStatus.CONNECTING)
        started = self._clock()
        try:
            models = await self.transport.list_models(timeout=self.probe_timeout)
        except Exception as exc:
            error = self.transport.classifier.classify(exc)
            elapsed_ms = (self._clock() - started) * 1000.0
            self.state.available_models = set()
            self.state.last_checked_at = datetime.now(timezone.utc)
            self.state.last_error = error.message
            self.state.last_response_time_ms = elapsed_ms
            self._set_status(ConnectionStatus.ERROR, error=error.message)
            logger.warning("Health probe failed (%s): %s", error.category.value, error.message)
            if error is exc:
                raise
            raise error from exc

        elapsed_ms = (self._clock() - started) * 1000.0
        self.state.available_models = set(models)
        self.state.active_model = self.model
        self.state.last_checked_at = datetime.now(timezone.utc)
        self.state.last_error = None
        self.state.last_response_time_ms = elapsed_ms
        self._set_status(ConnectionStatus.CONNECTED)
        if self.tracker is not None:
            self.tracker.record(elapsed_ms)

        if models and not model_available(self.model, models):
            logger.warning("Model '%s' not found. Available models: %s", self.model, models)
            audit_log("model_missing", model=self.model, available=sorted(models))
        return models

    async def check(self) -> bool:
        """Probe once without raising; failures are recorded in state."""
        try:
            await self.probe()
        except InferenceError:
            return False
        self._reconnect_attempts = 0
        return True

    async def reconnect(self) -> bool:
        """Probe immediately and reset the automatic reconnect budget."""
        self._cancel_reconnect()
        self._reconnect_attempts = 0
        connected = await self.check()
        if not connected and self.running:
            self._schedule_reconnect()
        return connected

    def record_success(self, time_ms: Optional[float] = None) -> None:
        """Request completion hook: the service answered."""
        if time_ms is not None:
            self.state.last_response_time_ms = time_ms
        self.state.last_error = None
        self._set_status(ConnectionStatus.CONNECTED)

    def record_failure(self, error: InferenceError) -> None:
        """Request completion hook: connection-class failures mark ``ERROR``."""
        if not error.category.connection_class:
            return
        self.state.last_error = error.message
        self._set_status(ConnectionStatus.ERROR, error=error.message)

    async def _probe_loop(self) -> None:
        await self._sleep(self.initial_delay)
        while True:
            if not await self.check() and not self.reconnecting:
                self._schedule_reconnect()
            await self._sleep(self.interval)

    def _schedule_reconnect(self) -> None:
        if self.max_auto_reconnects <= 0 or self.reconnecting:
            return
        if self._reconnect_attempts >= self.max_auto_reconnects:
            return
        self._reconnect_task = asyncio.ensure_future(self._auto_reconnect())

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _auto_reconnect(self) -> None:
        while self._reconnect_attempts < self.max_auto_reconnects:
            delay = self.reconnect_delay(self._reconnect_attempts)
            self._reconnect_attempts += 1
            logger.info(
                "Automatic reconnect %d/%d in %.0fs",
                self._reconnect_attempts,
                self.max_auto_reconnects,
                delay,
            )
            await self._sleep(delay)
            try:
                await self.probe()
            except InferenceError:
                continue
            self._reconnect_attempts = 0
            return
        logger.warning(
            "Automatic reconnect gave up after %d attempts; manual reconnect required",
            self.max_auto_reconnects,
        )

    def _set_status(self, status: ConnectionStatus, error: Optional[str] = None) -> None:
        old = self.state.status
        self.state.status = status
        if old is status:
            return
        logger.debug("Connection status %s -> %s", old.value, status.value)
        audit_log(
            "connection_state_change",
            old_state=old.value,
            new_state=status.value,
            error=error,
        )
