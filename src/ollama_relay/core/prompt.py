"""Prompt assembly from a system prompt and conversation history."""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer clearly and concisely, and say so "
    "when you do not know something."
)


@dataclass(frozen=True)
class ChatTurn:
    """One prior message in the conversation."""

    text: str
    is_bot: bool = False

    @classmethod
    def coerce(cls, item: Union["ChatTurn", Mapping[str, Any]]) -> "ChatTurn":
        if isinstance(item, ChatTurn):
            return item
        return cls(text=str(item.get("text", "")), is_bot=bool(item.get("is_bot", False)))


HistoryItem = Union[ChatTurn, Mapping[str, Any]]


def build_prompt(
    message: str,
    history: Optional[Iterable[HistoryItem]] = None,
    *,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    max_history_length: int = 10,
) -> str:
    """Build the completion prompt.

    Layout is the system prompt, a blank line, the last
    ``max_history_length`` turns as ``User:``/``Assistant:`` lines, the new
    ``User:`` line, and a trailing ``Assistant: `` cue.
    """
    turns = [ChatTurn.coerce(item) for item in (history or ())]
    if max_history_length > 0:
        turns = turns[-max_history_length:]
    else:
        turns = []

    parts = [f"{system_prompt}\n\n"]
    for turn in turns:
        speaker = "Assistant" if turn.is_bot else "User"
        parts.append(f"{speaker}: {turn.text}\n")
    parts.append(f"User: {message}\n")
    parts.append("Assistant: ")
    return "".join(parts)
