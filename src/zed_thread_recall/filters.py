"""Message filters and index-range clamping for decoded threads."""

from collections.abc import Sequence
from typing import Any, Literal

from pydantic import BaseModel

from .errors import InvalidParameterError
from .models import AgentMessage, Message, Thread, UserMessage
from .search import compile_query


class VoiceFilter(BaseModel):
    """Keep only messages from one side of the conversation."""

    voice: Literal["user", "agent"]

    def matches(self, message: Message) -> bool:
        if self.voice == "user":
            return isinstance(message, UserMessage)
        return isinstance(message, AgentMessage)


class QueryFilter(BaseModel):
    """Keep messages whose searchable text contains the query. Always ignores case."""

    query: str

    def matches(self, message: Message) -> bool:
        text = message.searchable_text
        if not text:
            return False
        return compile_query(self.query, case_insensitive=True).search(text) is not None


class IsToolFilter(BaseModel):
    value: bool = True

    def matches(self, message: Message) -> bool:
        return message.has_tool_use == self.value


class IsThinkingFilter(BaseModel):
    """Accepts every message until a thinking content kind is modeled."""

    value: bool = True

    def matches(self, message: Message) -> bool:
        return True


ThreadFilter = VoiceFilter | QueryFilter | IsToolFilter | IsThinkingFilter


def apply_filters(thread: Thread, filters: Sequence[ThreadFilter]) -> Thread:
    """
    Keep the messages that satisfy every filter.

    Returns a new thread; relative order is preserved and the original thread
    is left untouched. Surviving messages are addressed by their position in
    the filtered list from here on.
    """
    if not filters:
        return thread
    kept = [m for m in thread.messages if all(f.matches(m) for f in filters)]
    return thread.model_copy(update={"messages": kept})


def clamp_messages(thread: Thread, start: int, end: int) -> Thread:
    """Narrow a thread to the half-open message range ``[start, end)``."""
    count = len(thread.messages)
    if start >= count or start > end:
        return thread.model_copy(update={"messages": []})
    lower = max(0, start)
    upper = min(count, end)
    return thread.model_copy(update={"messages": thread.messages[lower:upper]})


def _parse_bool(value: str, filter_type: str) -> bool:
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise InvalidParameterError(
        f"Filter '{filter_type}' expects 'true' or 'false', got {value!r}", field="filters"
    )


def parse_filter(spec: Any) -> ThreadFilter:
    """Build a filter from a ``{"type": ..., "value": ...}`` tool argument."""
    if not isinstance(spec, dict):
        raise InvalidParameterError("Each filter must be an object", field="filters")
    filter_type = spec.get("type")
    value = spec.get("value")
    if not isinstance(filter_type, str) or not isinstance(value, str):
        raise InvalidParameterError(
            "Each filter requires string 'type' and 'value'", field="filters"
        )

    if filter_type == "voice":
        if value not in ("user", "agent"):
            raise InvalidParameterError(
                f"Filter 'voice' expects 'user' or 'agent', got {value!r}", field="filters"
            )
        return VoiceFilter(voice=value)
    if filter_type == "query":
        return QueryFilter(query=value)
    if filter_type == "isTool":
        return IsToolFilter(value=_parse_bool(value, filter_type))
    if filter_type == "isThinking":
        return IsThinkingFilter(value=_parse_bool(value, filter_type))
    raise InvalidParameterError(f"Unknown filter type: {filter_type!r}", field="filters")


def parse_filters(specs: Sequence[Any] | None) -> list[ThreadFilter]:
    """Build filters from tool arguments; None means no filtering."""
    return [parse_filter(spec) for spec in specs or []]
