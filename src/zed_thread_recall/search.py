"""Literal substring search across decoded threads."""

import functools
import logging
import os
import re
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TypeVar

from .config import CONTEXT_CHARS, DEFAULT_MAX_WORKERS, PAGE_SIZE, WORKERS_ENV
from .models import ArchiveRecord, Message, SearchMatch, Thread

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ThreadEntry:
    """A decoded thread together with the record metadata it came from."""

    record: ArchiveRecord
    thread: Thread


@dataclass(frozen=True)
class TextMatch:
    """Where a query occurs in a piece of text, with its surrounding context."""

    position: int
    context_before: str
    match_text: str
    context_after: str


def get_max_workers() -> int:
    """Get the fan-out width, honoring ZED_THREAD_RECALL_WORKERS."""
    override = os.environ.get(WORKERS_ENV)
    if override:
        try:
            return max(1, int(override))
        except ValueError:
            logger.warning(f"Invalid {WORKERS_ENV} value: {override}, using default")
    return min(DEFAULT_MAX_WORKERS, os.cpu_count() or 1)


@functools.lru_cache(maxsize=128)
def compile_query(query: str, case_insensitive: bool) -> re.Pattern[str]:
    """Compile a literal query; no pattern syntax reaches the regex engine."""
    flags = re.IGNORECASE if case_insensitive else 0
    return re.compile(re.escape(query), flags)


def find_in_text(
    text: str, query: str, case_insensitive: bool, context_chars: int = CONTEXT_CHARS
) -> TextMatch | None:
    """Locate the first occurrence of the query and cut its context window."""
    if not text:
        return None
    found = compile_query(query, case_insensitive).search(text)
    if found is None:
        return None
    start, end = found.span()
    return TextMatch(
        position=start,
        context_before=text[max(0, start - context_chars) : start],
        match_text=text[start:end],
        context_after=text[end : end + context_chars],
    )


def find_next_match(
    thread: Thread, query: str, case_insensitive: bool, start_after: int | None = None
) -> tuple[int, Message] | None:
    """
    Find the first message containing the query.

    Args:
        thread: Thread to scan
        query: Literal text to look for
        case_insensitive: Ignore case when comparing
        start_after: Only consider messages after this index

    Returns:
        ``(index, message)`` of the first match, or None
    """
    pattern = compile_query(query, case_insensitive)
    first = 0 if start_after is None else start_after + 1
    for index in range(first, len(thread.messages)):
        message = thread.messages[index]
        text = message.searchable_text
        if text and pattern.search(text) is not None:
            return index, message
    return None


def find_matching_messages(
    thread: Thread, query: str, case_insensitive: bool
) -> list[tuple[int, Message]]:
    """Find every message containing the query, in index order."""
    matches = []
    start_after = None
    while (found := find_next_match(thread, query, case_insensitive, start_after)) is not None:
        matches.append(found)
        start_after = found[0]
    return matches


def search_thread(
    entry: ThreadEntry,
    query: str,
    case_insensitive: bool = True,
    only_first_match_per_thread: bool = False,
) -> list[SearchMatch]:
    """Search one thread and describe each matching message."""
    if only_first_match_per_thread:
        first = find_next_match(entry.thread, query, case_insensitive)
        candidates = [first] if first is not None else []
    else:
        candidates = find_matching_messages(entry.thread, query, case_insensitive)

    results = []
    for index, message in candidates:
        text_match = find_in_text(message.searchable_text, query, case_insensitive)
        if text_match is None:
            continue
        results.append(
            SearchMatch(
                thread_id=entry.record.id,
                thread_summary=entry.record.summary,
                thread_message_count=len(entry.thread.messages),
                message_index=index,
                match_position=text_match.position,
                context_before=text_match.context_before,
                match_text=text_match.match_text,
                context_after=text_match.context_after,
                message_role=message.role,
            )
        )
    return results


def collect_matches(
    entries: Sequence[ThreadEntry],
    query: str,
    case_insensitive: bool = True,
    only_first_match_per_thread: bool = False,
    max_workers: int | None = None,
) -> list[SearchMatch]:
    """
    Search all threads concurrently and flatten the results in input order.

    Entries are expected most recently updated first; ``Executor.map`` keeps
    that order regardless of which thread finishes first.
    """
    if not entries:
        return []

    def scan(entry: ThreadEntry) -> list[SearchMatch]:
        return search_thread(entry, query, case_insensitive, only_first_match_per_thread)

    with ThreadPoolExecutor(max_workers=max_workers or get_max_workers()) as executor:
        per_thread = list(executor.map(scan, entries))

    return [match for matches in per_thread for match in matches]


def paginate(items: Sequence[T], page: int, page_size: int = PAGE_SIZE) -> list[T]:
    """Get one fixed-size page; negative or past-the-end pages are empty."""
    if page < 0:
        return []
    start = page * page_size
    return list(items[start : start + page_size])


def page_count(total: int, page_size: int = PAGE_SIZE) -> int:
    """Number of pages needed for ``total`` items."""
    return -(-total // page_size)


def search_threads(
    entries: Iterable[ThreadEntry],
    query: str,
    case_insensitive: bool = True,
    only_first_match_per_thread: bool = False,
    page: int = 0,
) -> list[SearchMatch]:
    """Search many threads and return one page of matches."""
    matches = collect_matches(list(entries), query, case_insensitive, only_first_match_per_thread)
    return paginate(matches, page)
