"""Core building blocks for ollama-relay."""

from ollama_relay.core.fallback_replies import (
    DEFAULT_TOPIC_RULES,
    FallbackResponder,
    TopicRule,
    stream_reply,
)
from ollama_relay.core.health import ConnectionHealthMonitor, model_available
from ollama_relay.core.prompt import (
    DEFAULT_SYSTEM_PROMPT,
    ChatTurn,
    build_prompt,
)

__all__ = [
    "ConnectionHealthMonitor",
    "model_available",
    "FallbackResponder",
    "TopicRule",
    "DEFAULT_TOPIC_RULES",
    "stream_reply",
    "ChatTurn",
    "DEFAULT_SYSTEM_PROMPT",
    "build_prompt",
]
