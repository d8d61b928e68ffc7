"""ClientConfig loading and validation logic.

Provides ``_ClientConfigLoader``, a mixin class whose methods are inherited
by ``ClientConfig`` (defined in ``client.py``). Splitting loading and
validation into its own module keeps ``client.py`` focused on field
definitions and simple accessors.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Mapping, Optional
from urllib.parse import urlsplit

from ollama_relay.config.domains import ChatSettings, GenerationOptions, NetworkSettings
from ollama_relay.config.parsing import _EnvReader
from ollama_relay.core.errors.config import ConfigurationError

if TYPE_CHECKING:
    from ollama_relay.config.client import ClientConfig

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "mistral"
DEFAULT_TIMEOUT = 30.0
DEFAULT_PRODUCTION_TIMEOUT = 45.0
DEFAULT_MAX_RETRIES = 3


class _ClientConfigLoader:
    """Mixin providing loading and validation for ``ClientConfig``.

    At runtime ``self`` is always a ``ClientConfig`` instance.
    """

    if TYPE_CHECKING:
        base_url: str
        model: str
        timeout: float
        max_retries: int
        production: bool
        generation: GenerationOptions
        network: NetworkSettings
        chat: ChatSettings

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        validate: bool = True,
        **overrides: Any,
    ) -> "ClientConfig":
        """
        Create configuration from ``OLLAMA_RELAY_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            validate: Raise ``ConfigurationError`` when problems are found.
            **overrides: Top-level fields taking precedence over the environment.

        Raises:
            ConfigurationError: Unparsable values or failed validation.
        """
        env = _EnvReader(os.environ if environ is None else environ)

        production = (env.get_str("ENV", "") or "").lower() == "production"
        # No localhost default in production; validate() reports the gap
        base_url = env.get_str("URL", "" if production else DEFAULT_BASE_URL)

        default_timeout = DEFAULT_PRODUCTION_TIMEOUT if production else DEFAULT_TIMEOUT
        network_defaults = NetworkSettings()
        chat_defaults = ChatSettings()
        generation_defaults = GenerationOptions()

        fields: dict[str, Any] = {
            "base_url": base_url,
            "model": env.get_str("MODEL", DEFAULT_MODEL),
            "timeout": env.get_float("TIMEOUT", default_timeout),
            "max_retries": env.get_int("RETRY_ATTEMPTS", DEFAULT_MAX_RETRIES),
            "production": production,
            "generation": GenerationOptions(
                temperature=env.get_float("TEMPERATURE", generation_defaults.temperature),
                max_tokens=env.get_int("MAX_TOKENS", generation_defaults.max_tokens),
                top_p=env.get_float("TOP_P", generation_defaults.top_p),
            ),
            "network": NetworkSettings(
                health_check_interval=env.get_float(
                    "HEALTH_CHECK_INTERVAL", network_defaults.health_check_interval
                ),
                cors_proxy=env.get_str("CORS_PROXY"),
                use_proxy=env.get_bool("USE_PROXY", network_defaults.use_proxy),
                proxy_timeout=env.get_float("PROXY_TIMEOUT", network_defaults.proxy_timeout),
                cors_origin=env.get_str("CORS_ORIGIN"),
                max_queue_size=env.get_int("MAX_QUEUE_SIZE", network_defaults.max_queue_size),
                queue_interval=env.get_float("QUEUE_INTERVAL", network_defaults.queue_interval),
                quality_window=env.get_int("QUALITY_WINDOW", network_defaults.quality_window),
                slow_threshold_ms=env.get_float(
                    "SLOW_THRESHOLD_MS", network_defaults.slow_threshold_ms
                ),
                very_slow_threshold_ms=env.get_float(
                    "VERY_SLOW_THRESHOLD_MS", network_defaults.very_slow_threshold_ms
                ),
                timeout_grace_period=env.get_float(
                    "TIMEOUT_GRACE_PERIOD", network_defaults.timeout_grace_period
                ),
            ),
            "chat": ChatSettings(
                system_prompt=env.get_str("SYSTEM_PROMPT", chat_defaults.system_prompt),
                max_history_length=env.get_int("MAX_HISTORY", chat_defaults.max_history_length),
            ),
        }
        fields.update(overrides)
        config = cls(**fields)

        problems = env.errors + [p for p in config.validate() if p not in env.errors]
        if problems:
            for problem in problems:
                logger.warning("Configuration problem: %s", problem)
            if validate:
                raise ConfigurationError(
                    f"Invalid configuration: {'; '.join(problems)}",
                    errors=problems,
                )
        return config

    def validate(self) -> list[str]:
        """Return every validation problem (empty when valid)."""
        errors: list[str] = []

        if not self.base_url:
            if self.production:
                errors.append("base_url is required in production environment")
            else:
                errors.append("base_url is required")
        else:
            parts = urlsplit(self.base_url)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                errors.append(f"base_url must be a valid http(s) URL, got {self.base_url!r}")

        if not self.model or not self.model.strip():
            errors.append("model must not be empty")
        if self.timeout < 1:
            errors.append("timeout must be at least 1 second")
        if not 0 <= self.max_retries <= 10:
            errors.append("max_retries must be between 0 and 10")

        errors.extend(self.generation.validate())
        errors.extend(self.network.validate())
        errors.extend(self.chat.validate())
        return errors

    def raise_for_errors(self) -> None:
        """Raise ``ConfigurationError`` if ``validate`` finds problems."""
        problems = self.validate()
        if problems:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(problems)}",
                errors=problems,
            )
