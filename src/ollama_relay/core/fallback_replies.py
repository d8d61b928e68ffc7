"""Keyword-matched canned replies for when the inference service is unreachable.

Topic rules decide *which* reply applies; the reply text itself is
supplied by the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Mapping, Optional, Sequence

from ollama_relay.core.resilience.models import SleepFunc, StreamChunk

logger = logging.getLogger(__name__)

TYPING_DELAY = 0.05


@dataclass(frozen=True)
class TopicRule:
    """Maps lower-cased keyword containment to a reply topic."""

    topic: str
    keywords: tuple[str, ...]

    def matches(self, lowered: str) -> bool:
        return any(keyword in lowered for keyword in self.keywords)


DEFAULT_TOPIC_RULES: tuple[TopicRule, ...] = (
    TopicRule("pricing", ("price", "cost", "value", "worth")),
    TopicRule("damage", ("damage", "assess", "condition")),
    TopicRule("selling", ("sell", "buy", "purchase")),
    TopicRule("greeting", ("hello", "hi", "help")),
)


class FallbackResponder:
    """Pick a canned reply for a message by topic.

    Rules are checked in order and the first match wins. Topics without a
    supplied reply, and messages matching no rule, get ``default``.

    Args:
        replies: Reply text per topic name.
        default: Reply used when nothing else applies.
        rules: Ordered topic rules.
    """

    def __init__(
        self,
        replies: Optional[Mapping[str, str]] = None,
        *,
        default: str,
        rules: Sequence[TopicRule] = DEFAULT_TOPIC_RULES,
    ):
        self.replies = dict(replies or {})
        self.default = default
        self.rules = tuple(rules)

    def topic_for(self, message: str) -> Optional[str]:
        lowered = message.lower()
        for rule in self.rules:
            if rule.matches(lowered):
                return rule.topic
        return None

    def reply_for(self, message: str) -> str:
        topic = self.topic_for(message)
        if topic is None:
            return self.default
        return self.replies.get(topic, self.default)


async def stream_reply(
    text: str,
    *,
    delay: float = TYPING_DELAY,
    sleep_func: Optional[SleepFunc] = None,
) -> AsyncIterator[StreamChunk]:
    """Yield ``text`` word by word to simulate typing."""
    _sleep = sleep_func or asyncio.sleep
    words = text.split(" ")
    cumulative = ""
    for index, word in enumerate(words):
        last = index == len(words) - 1
        chunk = word if last else f"{word} "
        cumulative += chunk
        yield StreamChunk(text=chunk, cumulative=cumulative)
        if not last:
            await _sleep(delay)
