"""Inference service transport and connection strategies."""

from ollama_relay.core.transport.fallback import (
    CUSTOM,
    DIRECT,
    PUBLIC,
    PUBLIC_PROXIES,
    FallbackChain,
    PublicProxy,
    build_proxy_url,
    build_public_proxy_url,
    determine_strategies,
    filter_proxy_headers,
)
from ollama_relay.core.transport.ollama import (
    GENERATE_PATH,
    TAGS_PATH,
    OllamaTransport,
    build_generate_payload,
    iter_response_fragments,
)

__all__ = [
    # Strategies
    "DIRECT",
    "CUSTOM",
    "PUBLIC",
    "PUBLIC_PROXIES",
    "PublicProxy",
    "FallbackChain",
    "determine_strategies",
    "build_proxy_url",
    "build_public_proxy_url",
    "filter_proxy_headers",
    # Ollama API
    "GENERATE_PATH",
    "TAGS_PATH",
    "OllamaTransport",
    "build_generate_payload",
    "iter_response_fragments",
]
