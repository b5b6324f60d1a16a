"""Zed Thread Recall - Search Zed agent thread history."""

from .decoder import decode_thread, load_thread
from .decompress import decompress, decompress_streaming
from .filters import (
    IsThinkingFilter,
    IsToolFilter,
    QueryFilter,
    VoiceFilter,
    apply_filters,
    clamp_messages,
)
from .models import (
    AgentMessage,
    ArchiveRecord,
    ConsumableThread,
    MentionContent,
    NoopMessage,
    OtherContent,
    SearchMatch,
    TextContent,
    Thread,
    ToolUseContent,
    UserMessage,
)
from .projection import project
from .query import (
    get_message,
    get_thread,
    list_threads,
    search_thread_content,
    search_thread_titles,
)
from .search import search_threads

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "decompress",
    "decompress_streaming",
    "decode_thread",
    "load_thread",
    "apply_filters",
    "clamp_messages",
    "search_threads",
    "project",
    "list_threads",
    "search_thread_titles",
    "get_thread",
    "get_message",
    "search_thread_content",
    "ArchiveRecord",
    "Thread",
    "UserMessage",
    "AgentMessage",
    "NoopMessage",
    "TextContent",
    "ToolUseContent",
    "MentionContent",
    "OtherContent",
    "ConsumableThread",
    "SearchMatch",
    "VoiceFilter",
    "QueryFilter",
    "IsToolFilter",
    "IsThinkingFilter",
]
