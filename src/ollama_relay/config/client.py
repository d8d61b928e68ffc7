"""ClientConfig dataclass.

This module defines the immutable ``ClientConfig`` value handed to
``ResilientClient``. Loading and validation logic lives in the
``_ClientConfigLoader`` mixin (``loader.py``) which ``ClientConfig``
inherits from. There is no global configuration instance.
"""

from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlsplit

from ollama_relay.config.domains import ChatSettings, GenerationOptions, NetworkSettings
from ollama_relay.config.loader import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MODEL,
    DEFAULT_PRODUCTION_TIMEOUT,
    DEFAULT_TIMEOUT,
    _ClientConfigLoader,
)
from ollama_relay.core.resilience.classifier import is_local_url
from ollama_relay.core.resilience.messages import MessageCatalog


@dataclass(frozen=True)
class ClientConfig(_ClientConfigLoader):
    """Client configuration with support for env vars.

    ``timeout`` is in seconds and defaults to 30 (45 in production).
    ``max_retries`` counts retries after the initial attempt.
    """

    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    timeout: Optional[float] = None
    max_retries: int = DEFAULT_MAX_RETRIES
    production: bool = False

    generation: GenerationOptions = field(default_factory=GenerationOptions)
    network: NetworkSettings = field(default_factory=NetworkSettings)
    chat: ChatSettings = field(default_factory=ChatSettings)
    messages: MessageCatalog = field(default_factory=MessageCatalog)

    def __post_init__(self) -> None:
        if self.timeout is None:
            default = DEFAULT_PRODUCTION_TIMEOUT if self.production else DEFAULT_TIMEOUT
            object.__setattr__(self, "timeout", default)

    @property
    def max_attempts(self) -> int:
        """Total attempts per request, the initial one included."""
        return self.max_retries + 1

    @property
    def is_remote(self) -> bool:
        """True when the target host is neither loopback nor private-range."""
        return not is_local_url(self.base_url)

    @property
    def host(self) -> Optional[str]:
        return urlsplit(self.base_url).hostname
