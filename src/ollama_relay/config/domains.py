"""Domain-specific configuration dataclasses.

Contains small, focused configuration classes for distinct concerns:
generation parameters, network reliability, and chat prompting.
"""

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlsplit

from ollama_relay.core.prompt import DEFAULT_SYSTEM_PROMPT


def _is_http_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


@dataclass(frozen=True)
class GenerationOptions:
    """Sampling parameters sent with every generate request.

    Attributes:
        temperature: Sampling temperature (0.0 to 2.0)
        max_tokens: Maximum tokens to generate (1 to 8192)
        top_p: Nucleus sampling probability (0.0 to 1.0)
    """

    temperature: float = 0.7
    max_tokens: int = 2048
    top_p: float = 0.9

    def to_options(self) -> dict[str, Any]:
        """Request ``options`` object; ``num_predict`` is Ollama's token limit."""
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
            "num_predict": self.max_tokens,
        }

    def validate(self) -> list[str]:
        errors: list[str] = []
        if not 0.0 <= self.temperature <= 2.0:
            errors.append("temperature must be between 0 and 2")
        if not 1 <= self.max_tokens <= 8192:
            errors.append("max_tokens must be between 1 and 8192")
        if not 0.0 <= self.top_p <= 1.0:
            errors.append("top_p must be between 0 and 1")
        return errors


@dataclass(frozen=True)
class NetworkSettings:
    """Connection reliability settings.

    Durations are in seconds; latency thresholds are in milliseconds.

    Attributes:
        health_check_interval: Seconds between scheduled probes (<= 0 disables)
        health_check_timeout: Timeout for a single probe
        initial_probe_delay: Delay before the first scheduled probe
        cors_proxy: Custom CORS intermediary base URL
        use_proxy: Force requests through intermediaries
        proxy_timeout: Per-strategy timeout for intermediaries
        cors_origin: Origin header to present on direct requests
        max_queue_size: Request queue capacity
        queue_interval: Seconds between queue scheduler ticks
        quality_window: Number of latency samples retained
        slow_threshold_ms: Average latency above which quality is slow
        very_slow_threshold_ms: Peak latency above which quality is poor
        timeout_grace_period: Seconds before the deadline the warning fires
        progress_interval: Seconds between progress events
        max_auto_reconnects: Automatic reconnect attempts before giving up
        reconnect_base_delay: First automatic reconnect delay
        reconnect_max_delay: Cap on automatic reconnect delays
    """

    health_check_interval: float = 30.0
    health_check_timeout: float = 10.0
    initial_probe_delay: float = 1.0
    cors_proxy: Optional[str] = None
    use_proxy: bool = False
    proxy_timeout: float = 30.0
    cors_origin: Optional[str] = None
    max_queue_size: int = 10
    queue_interval: float = 1.0
    quality_window: int = 5
    slow_threshold_ms: float = 5000.0
    very_slow_threshold_ms: float = 10000.0
    timeout_grace_period: float = 2.0
    progress_interval: float = 0.5
    max_auto_reconnects: int = 5
    reconnect_base_delay: float = 2.0
    reconnect_max_delay: float = 32.0

    def validate(self) -> list[str]:
        errors: list[str] = []
        if 0 < self.health_check_interval < 5:
            errors.append("health_check_interval must be 0 (disabled) or at least 5 seconds")
        if self.cors_proxy and not _is_http_url(self.cors_proxy):
            errors.append("cors_proxy must be a valid http(s) URL")
        if self.proxy_timeout <= 0:
            errors.append("proxy_timeout must be positive")
        if self.max_queue_size < 1:
            errors.append("max_queue_size must be at least 1")
        if self.queue_interval <= 0:
            errors.append("queue_interval must be positive")
        if self.quality_window < 1:
            errors.append("quality_window must be at least 1")
        if self.slow_threshold_ms >= self.very_slow_threshold_ms:
            errors.append("slow_threshold_ms must be less than very_slow_threshold_ms")
        if self.timeout_grace_period < 0:
            errors.append("timeout_grace_period must not be negative")
        return errors


@dataclass(frozen=True)
class ChatSettings:
    """Prompt assembly settings.

    Attributes:
        system_prompt: Text placed before the conversation
        max_history_length: Prior turns included in the prompt (1 to 50)
    """

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_history_length: int = 10

    def validate(self) -> list[str]:
        errors: list[str] = []
        if not 1 <= self.max_history_length <= 50:
            errors.append("max_history_length must be between 1 and 50")
        return errors
