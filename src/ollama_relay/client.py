"""Resilient inference client.

``ResilientClient`` composes classification, backoff, quality tracking,
deadline execution, queueing, CORS fallback and health monitoring behind
a small async API for a UI collaborator.

Example:
    async with ResilientClient(ClientConfig.from_env()) as client:
        reply = await client.send("Hello")

        stream = client.send_streaming("Tell me more")
        async for event in stream:
            if isinstance(event, StreamChunk):
                render(event.cumulative)
"""

import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

import httpx

from ollama_relay.config import ClientConfig
from ollama_relay.core.errors.connection import (
    ClientClosedError,
    ErrorCategory,
    InferenceError,
    RequestCancelledError,
)
from ollama_relay.core.fallback_replies import FallbackResponder, stream_reply
from ollama_relay.core.health import ConnectionHealthMonitor, model_available
from ollama_relay.core.prompt import HistoryItem, build_prompt
from ollama_relay.core.resilience.backoff import BackoffPolicy, retry_with_backoff
from ollama_relay.core.resilience.classifier import ErrorClassifier
from ollama_relay.core.resilience.executor import (
    ProgressCallback,
    RequestExecutor,
    TimeoutWarningCallback,
)
from ollama_relay.core.resilience.models import (
    ConnectionState,
    ConnectionStatus,
    Priority,
    SleepFunc,
    Statistics,
    StreamChunk,
    StreamEvent,
)
from ollama_relay.core.resilience.quality import ConnectionQualityTracker
from ollama_relay.core.resilience.queue import RequestQueue
from ollama_relay.core.transport.fallback import FallbackChain
from ollama_relay.core.transport.ollama import OllamaTransport, build_generate_payload

logger = logging.getLogger(__name__)

T = TypeVar("T")

_END = object()

_MODE_MESSAGES = {
    "normal": "AI assistant is fully operational",
    "connecting": "Connecting to AI service...",
    "degraded": "AI assistant is in limited mode - basic responses available",
}


class ResponseStream:
    """Cancellable async sequence of stream events.

    Yields ``StreamChunk``, ``ProgressEvent`` and ``TimeoutWarning`` values
    as the producing task emits them. Errors raised by the producer are
    re-raised to the consumer; cancelling ends iteration quietly.
    """

    def __init__(self, run: Callable[[Callable[[StreamEvent], None]], Awaitable[str]]):
        self._events: asyncio.Queue = asyncio.Queue()
        self._finished = False
        self.text = ""
        self._task = asyncio.ensure_future(run(self._emit))
        self._task.add_done_callback(self._on_done)

    def _emit(self, event: StreamEvent) -> None:
        if isinstance(event, StreamChunk):
            self.text = event.cumulative
        self._events.put_nowait(event)

    def _on_done(self, task: "asyncio.Future[str]") -> None:
        if not task.cancelled() and task.exception() is None:
            self.text = task.result()
        self._events.put_nowait(_END)

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """Cancel the underlying request."""
        self._task.cancel()

    def __aiter__(self) -> "ResponseStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._events.get()
        if event is _END:
            self._finished = True
            if not self._task.cancelled() and self._task.exception() is not None:
                raise self._task.exception()
            raise StopAsyncIteration
        return event

    async def collect(self) -> str:
        """Drain the stream and return the final text."""
        async for _ in self:
            pass
        return self.text


@dataclass
class ClientStatus:
    """Point-in-time snapshot for status displays."""

    state: ConnectionState
    quality: dict[str, Any]
    queue: dict[str, Any]
    statistics: dict[str, Any]
    mode: str
    message: str
    can_use_ai: bool
    degraded: bool
    active_warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.to_dict(),
            "quality": self.quality,
            "queue": self.queue,
            "statistics": self.statistics,
            "mode": self.mode,
            "message": self.message,
            "can_use_ai": self.can_use_ai,
            "degraded": self.degraded,
            "active_warnings": list(self.active_warnings),
        }


class ResilientClient:
    """Reliable access to an Ollama inference service.

    Args:
        config: Immutable client configuration (default ``ClientConfig()``).
        http: Async HTTP client to use; one is created and owned otherwise.
        responder: Canned replies for ``send_with_fallback``.
        rng: Injectable Random instance for deterministic backoff jitter.
        sleep_func: Injectable sleep for backoff, queue ticks and probes.
        clock: Monotonic clock in seconds.

    Raises:
        ConfigurationError: ``config`` fails validation.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        http: Optional[httpx.AsyncClient] = None,
        responder: Optional[FallbackResponder] = None,
        rng: Optional[random.Random] = None,
        sleep_func: Optional[SleepFunc] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ClientConfig()
        self.config.raise_for_errors()
        network = self.config.network

        self._owns_http = http is None
        if http is None:
            headers = {"Origin": network.cors_origin} if network.cors_origin else None
            http = httpx.AsyncClient(timeout=self.config.timeout, headers=headers)
        self._http = http
        self._sleep = sleep_func or asyncio.sleep
        self._closed = False

        self.statistics = Statistics()
        self.state = ConnectionState(active_model=self.config.model)
        self.classifier = ErrorClassifier.for_url(
            self.config.base_url,
            messages=self.config.messages,
            proxy_forced=network.use_proxy and bool(network.cors_proxy),
        )
        self.tracker = ConnectionQualityTracker(
            network.quality_window,
            network.slow_threshold_ms,
            network.very_slow_threshold_ms,
            clock=clock,
        )
        self.executor = RequestExecutor(
            self.tracker,
            timeout_grace_period=network.timeout_grace_period,
            progress_interval=network.progress_interval,
            classify=self.classifier.classify,
            clock=clock,
        )
        self.queue = RequestQueue(
            network.max_queue_size,
            interval=network.queue_interval,
            can_drain=self.tracker.allows_drain,
            sleep_func=sleep_func,
            clock=clock,
        )
        self.backoff = BackoffPolicy(rng=rng)
        self.fallback = FallbackChain(
            self._http,
            cors_proxy=network.cors_proxy,
            use_proxy=network.use_proxy,
            production=self.config.production,
            proxy_timeout=network.proxy_timeout,
        )
        self.transport = OllamaTransport(
            self.config.base_url,
            self._http,
            classifier=self.classifier,
            fallback=self.fallback,
            use_proxy=network.use_proxy,
        )
        self.monitor = ConnectionHealthMonitor(
            self.transport,
            self.state,
            model=self.config.model,
            interval=network.health_check_interval,
            initial_delay=network.initial_probe_delay,
            probe_timeout=network.health_check_timeout,
            tracker=self.tracker,
            max_auto_reconnects=network.max_auto_reconnects,
            reconnect_base_delay=network.reconnect_base_delay,
            reconnect_max_delay=network.reconnect_max_delay,
            sleep_func=sleep_func,
            clock=clock,
        )
        self.responder = responder or FallbackResponder(
            default=self.config.messages.fallback_mode
        )

    async def __aenter__(self) -> "ResilientClient":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> bool:
        """Start scheduled health probing if an interval is configured."""
        self._ensure_open()
        return self.monitor.start()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClientClosedError("ResilientClient is closed")

    @staticmethod
    def _new_request_id(prefix: str) -> str:
        return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    def _payload(self, message: str, history: Optional[Iterable[HistoryItem]], *, stream: bool) -> dict:
        prompt = build_prompt(
            message,
            history,
            system_prompt=self.config.chat.system_prompt,
            max_history_length=self.config.chat.max_history_length,
        )
        return build_generate_payload(
            self.state.active_model,
            prompt,
            stream=stream,
            options=self.config.generation.to_options(),
        )

    async def _preflight(self) -> None:
        if self.state.status is not ConnectionStatus.CONNECTED:
            await self.monitor.probe()

    async def _dispatch(
        self,
        request_id: str,
        attempt: Callable[[], Awaitable[T]],
        *,
        priority: Priority,
        timeout: Optional[float],
        on_progress: Optional[ProgressCallback],
        on_timeout_warning: Optional[TimeoutWarningCallback],
    ) -> T:
        deadline = timeout if timeout is not None else self.config.timeout

        async def run_attempt(_number: int) -> T:
            self._ensure_open()
            return await self.executor.execute(
                request_id,
                attempt,
                timeout=deadline,
                on_progress=on_progress,
                on_timeout_warning=on_timeout_warning,
            )

        async def run() -> T:
            return await retry_with_backoff(
                run_attempt,
                max_attempts=self.config.max_attempts,
                classify=self.classifier.classify,
                policy=self.backoff,
                sleep_func=self._sleep,
                request_id=request_id,
                exhausted_message=self.config.messages.retry_exhausted,
            )

        self.statistics.total += 1
        try:
            if priority is not Priority.HIGH and self.tracker.should_queue(len(self.queue)):
                self.statistics.queued += 1
                result = await self.queue.submit(
                    run, priority=priority, request_id=request_id, timeout=deadline
                )
            else:
                result = await run()
        except ClientClosedError:
            raise
        except RequestCancelledError as exc:
            if self._closed:
                raise ClientClosedError(
                    f"ResilientClient closed while request {request_id} was in flight"
                ) from exc
            self.statistics.failed += 1
            raise
        except InferenceError as error:
            self.statistics.failed += 1
            if error.category is ErrorCategory.TIMEOUT:
                self.statistics.timed_out += 1
            self.monitor.record_failure(error)
            raise
        except Exception:
            self.statistics.failed += 1
            raise

        self.statistics.succeeded += 1
        samples = self.tracker.samples
        self.monitor.record_success(samples[-1].time_ms if samples else None)
        return result

    async def send(
        self,
        message: str,
        history: Optional[Iterable[HistoryItem]] = None,
        *,
        priority: Priority = Priority.NORMAL,
        timeout: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_timeout_warning: Optional[TimeoutWarningCallback] = None,
    ) -> str:
        """Send a message and return the complete reply.

        Args:
            message: User text.
            history: Prior turns (``ChatTurn`` or mappings with text/is_bot).
            priority: ``HIGH`` bypasses the queue.
            timeout: Per-attempt deadline in seconds (default from config).
            on_progress: Receives ``ProgressEvent`` values.
            on_timeout_warning: Receives a ``TimeoutWarning`` near the deadline.

        Raises:
            InferenceError: Non-retryable failure, surfaced immediately.
            RetriesExhaustedError: Every attempt failed retryably.
            QueueCapacityError: The request could not be queued or was evicted.
            ClientClosedError: The client is closed.
        """
        self._ensure_open()
        request_id = self._new_request_id("msg")
        payload = self._payload(message, history, stream=False)

        async def attempt() -> str:
            await self._preflight()
            return await self.transport.generate(payload)

        return await self._dispatch(
            request_id,
            attempt,
            priority=priority,
            timeout=timeout,
            on_progress=on_progress,
            on_timeout_warning=on_timeout_warning,
        )

    def send_streaming(
        self,
        message: str,
        history: Optional[Iterable[HistoryItem]] = None,
        *,
        priority: Priority = Priority.NORMAL,
        timeout: Optional[float] = None,
    ) -> ResponseStream:
        """Send a message and stream the reply.

        Must be called with a running event loop. A retried attempt starts
        its cumulative text over.
        """
        self._ensure_open()
        request_id = self._new_request_id("stream")
        payload = self._payload(message, history, stream=True)

        async def run(emit: Callable[[StreamEvent], None]) -> str:
            async def attempt() -> str:
                await self._preflight()
                cumulative = ""
                async for fragment in self.transport.stream_generate(payload):
                    cumulative += fragment
                    emit(StreamChunk(text=fragment, cumulative=cumulative))
                return cumulative

            return await self._dispatch(
                request_id,
                attempt,
                priority=priority,
                timeout=timeout,
                on_progress=emit,
                on_timeout_warning=emit,
            )

        return ResponseStream(run)

    async def send_with_fallback(
        self,
        message: str,
        history: Optional[Iterable[HistoryItem]] = None,
        **kwargs: Any,
    ) -> str:
        """Like ``send``, but answer with a canned reply when unreachable.

        Only connection-class failures (connection, network, timeout) are
        replaced; every other error is re-raised unchanged.
        """
        try:
            return await self.send(message, history, **kwargs)
        except InferenceError as error:
            if not error.category.connection_class:
                raise
            logger.warning("Primary AI service failed, using fallback response: %s", error.message)
            return self.responder.reply_for(message)

    def send_streaming_with_fallback(
        self,
        message: str,
        history: Optional[Iterable[HistoryItem]] = None,
        **kwargs: Any,
    ) -> ResponseStream:
        """Like ``send_streaming``, typing out a canned reply when unreachable."""
        self._ensure_open()

        async def run(emit: Callable[[StreamEvent], None]) -> str:
            stream = self.send_streaming(message, history, **kwargs)
            try:
                async for event in stream:
                    emit(event)
                return stream.text
            except InferenceError as error:
                if not error.category.connection_class:
                    raise
                logger.warning(
                    "Primary AI service failed, using fallback response: %s", error.message
                )
                reply = self.responder.reply_for(message)
                async for chunk in stream_reply(reply, sleep_func=self._sleep):
                    emit(chunk)
                return reply
            finally:
                stream.cancel()

        return ResponseStream(run)

    async def check_connection(self) -> bool:
        """Probe the service now. Failures are recorded in ``state``."""
        self._ensure_open()
        return await self.monitor.check()

    async def reconnect(self) -> bool:
        """Probe immediately and reset the automatic reconnect budget."""
        self._ensure_open()
        return await self.monitor.reconnect()

    async def list_models(self) -> list[str]:
        """Probe the service and return its model names.

        Raises:
            InferenceError: ``CONNECTION`` category when the probe fails.
        """
        self._ensure_open()
        try:
            models = await self.monitor.probe()
        except InferenceError as exc:
            raise InferenceError(
                ErrorCategory.CONNECTION,
                f"Failed to fetch models: {exc.message}",
                cause=exc,
                local=exc.local,
            ) from exc
        return sorted(models)

    async def switch_model(self, name: str) -> None:
        """Make ``name`` the active model.

        Raises:
            InferenceError: ``MODEL`` category when the service lacks it.
        """
        self._ensure_open()
        available = self.state.available_models or set(await self.list_models())
        if not model_available(name, available):
            raise InferenceError(
                ErrorCategory.MODEL,
                f"Model '{name}' is not available. Available models: "
                f"{', '.join(sorted(available)) or 'none'}",
                local=self.classifier.local,
            )
        self.monitor.model = name
        self.state.active_model = name
        logger.info("Switched to model: %s", name)

    def get_status(self) -> ClientStatus:
        status = self.state.status
        if status is ConnectionStatus.CONNECTED:
            mode = "normal"
        elif status is ConnectionStatus.CONNECTING:
            mode = "connecting"
        else:
            mode = "degraded"
        return ClientStatus(
            state=self.state.snapshot(),
            quality=self.tracker.report(),
            queue=self.queue.status(),
            statistics=self.statistics.to_dict(),
            mode=mode,
            message=_MODE_MESSAGES[mode],
            can_use_ai=mode == "normal",
            degraded=status in (ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED),
            active_warnings=sorted(self.executor.warning_request_ids),
        )

    def clear_queue(self, reason: str = "Queue cleared by user") -> int:
        """Reject every queued request with ``reason``."""
        return self.queue.clear(reason)

    def reset_statistics(self) -> None:
        self.statistics.reset()

    async def close(self) -> None:
        """Stop probing, reject queued work and release resources. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self.monitor.stop()
        self.queue.close("Client shutting down")
        cancelled = self.executor.cancel_all()
        if cancelled:
            logger.info("Cancelled %d in-flight requests on shutdown", cancelled)
        self.tracker.reset()
        self.statistics.reset()
        self.state.status = ConnectionStatus.DISCONNECTED
        if self._owns_http:
            await self._http.aclose()
