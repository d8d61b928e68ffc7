"""Configuration package for ollama-relay.

Re-exports all public symbols. Callers use
``from ollama_relay.config import ClientConfig`` etc.

Sub-modules:
    parsing  – Boolean parsing and the ``OLLAMA_RELAY_*`` environment reader
    domains  – GenerationOptions, NetworkSettings, ChatSettings
    client   – ClientConfig dataclass
    loader   – ClientConfig loading/validation mixin (_ClientConfigLoader)
"""

from ollama_relay.config.client import ClientConfig
from ollama_relay.config.domains import ChatSettings, GenerationOptions, NetworkSettings
from ollama_relay.config.loader import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MODEL,
    DEFAULT_PRODUCTION_TIMEOUT,
    DEFAULT_TIMEOUT,
)
from ollama_relay.config.parsing import ENV_PREFIX, _parse_bool, _try_parse_bool
from ollama_relay.core.resilience.messages import MessageCatalog

__all__ = [
    "ClientConfig",
    "GenerationOptions",
    "NetworkSettings",
    "ChatSettings",
    "MessageCatalog",
    "DEFAULT_BASE_URL",
    "DEFAULT_MODEL",
    "DEFAULT_TIMEOUT",
    "DEFAULT_PRODUCTION_TIMEOUT",
    "DEFAULT_MAX_RETRIES",
    "ENV_PREFIX",
    "_parse_bool",
    "_try_parse_bool",
]
