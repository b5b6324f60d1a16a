"""Query layer: validate caller parameters and assemble responses."""

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from .config import DEFAULT_MESSAGE_LIMIT, DEFAULT_PAGE, PAGE_SIZE
from .decoder import decode_thread, load_thread
from .decompress import decode_record_data
from .errors import InvalidParameterError, NotFoundError
from .filters import apply_filters, clamp_messages, parse_filters
from .loader import ThreadStore
from .models import (
    ArchiveRecord,
    ContentSearchResponse,
    MessageContent,
    MessageResponse,
    ThreadDetailResponse,
    ThreadListResponse,
    UserMessage,
)
from .projection import project
from .search import ThreadEntry, collect_matches, get_max_workers, page_count, paginate

logger = logging.getLogger(__name__)


def _require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise InvalidParameterError(f"Missing required argument: '{field}'", field=field)
    return value


def _require_non_negative(value: int | None, field: str) -> None:
    if value is not None and value < 0:
        raise InvalidParameterError(f"{field} must be >= 0", field=field)


def load_threads(records: Sequence[ArchiveRecord]) -> tuple[list[ThreadEntry], int]:
    """
    Decode records concurrently, keeping input order.

    Returns:
        Tuple of (entries for decodable records, number of records skipped)
    """
    if not records:
        return [], 0
    with ThreadPoolExecutor(max_workers=get_max_workers()) as executor:
        threads = list(executor.map(load_thread, records))

    entries = [
        ThreadEntry(record=record, thread=thread)
        for record, thread in zip(records, threads)
        if thread is not None
    ]
    return entries, len(records) - len(entries)


def list_threads(limit: int | None = None, db_path: Path | None = None) -> ThreadListResponse:
    """List threads, most recently updated first, without their content."""
    _require_non_negative(limit, "limit")

    with ThreadStore(db_path) as store:
        records = store.fetch_all(limit=limit)

    return ThreadListResponse(
        input_request="zed-list-threads" + (f" (limit: {limit})" if limit is not None else ""),
        result_count=len(records),
        results=[project(record) for record in records],
    )


def search_thread_titles(
    query: str, limit: int | None = None, db_path: Path | None = None
) -> ThreadListResponse:
    """Find threads whose summary contains the query, ignoring case."""
    query = _require_text(query, "query")
    _require_non_negative(limit, "limit")

    with ThreadStore(db_path) as store:
        records = store.search_summaries(query, limit=limit)

    return ThreadListResponse(
        input_request=f"zed-search-threads: query: {query}"
        + (f" limit: {limit}" if limit is not None else ""),
        summary="Thread Titles Search Results",
        result_count=len(records),
        results=[project(record) for record in records],
    )


def _fetch_record(thread_id: str, db_path: Path | None) -> ArchiveRecord:
    with ThreadStore(db_path) as store:
        record = store.fetch(thread_id)
    if record is None:
        raise NotFoundError(thread_id)
    return record


def get_thread(
    thread_id: str,
    page: int = DEFAULT_PAGE,
    range_start: int | None = None,
    range_end: int | None = None,
    filters: Sequence[Any] | None = None,
    db_path: Path | None = None,
) -> ThreadDetailResponse:
    """
    Get one thread with a window of its messages.

    Filters run first; the window then addresses positions in the filtered
    message list. Without an explicit range the window is page ``page`` of
    10 messages.

    Args:
        thread_id: Thread id
        page: Zero-based page of messages (ignored when a range is given)
        range_start: First message index (inclusive); requires range_end
        range_end: Last message index (exclusive); requires range_start
        filters: ``{"type", "value"}`` filter objects, combined with AND
    """
    thread_id = _require_text(thread_id, "id")
    if (range_start is None) != (range_end is None):
        missing = "range_end" if range_end is None else "range_start"
        raise InvalidParameterError(
            "range_start and range_end must be given together", field=missing
        )
    _require_non_negative(page, "page")
    _require_non_negative(range_start, "range_start")
    _require_non_negative(range_end, "range_end")
    thread_filters = parse_filters(filters)

    if range_start is None:
        start, end = page * PAGE_SIZE, page * PAGE_SIZE + PAGE_SIZE
    else:
        start, end = range_start, range_end

    record = _fetch_record(thread_id, db_path)
    thread = load_thread(record)
    matching = None
    if thread is not None:
        thread = apply_filters(thread, thread_filters)
        matching = len(thread.messages)
        thread = clamp_messages(thread, start, end)

    return ThreadDetailResponse(
        input_request=f"zed-get-thread: id: {thread_id} range: {start}..<{end}",
        range_start=start,
        range_end=end,
        matching_message_count=matching,
        thread=project(record, thread),
    )


def get_message(
    thread_id: str,
    message_index: int,
    offset: int = 0,
    limit: int = DEFAULT_MESSAGE_LIMIT,
    db_path: Path | None = None,
) -> MessageResponse:
    """Get a character window of one message's text."""
    thread_id = _require_text(thread_id, "threadID")
    if message_index is None:
        raise InvalidParameterError("Missing required argument: 'messageIndex'", "messageIndex")
    _require_non_negative(message_index, "messageIndex")
    _require_non_negative(offset, "offset")
    if limit <= 0:
        raise InvalidParameterError("limit must be > 0", field="limit")

    record = _fetch_record(thread_id, db_path)
    thread = decode_thread(decode_record_data(record))
    if message_index >= len(thread.messages):
        raise InvalidParameterError(
            f"messageIndex {message_index} out of range "
            f"(thread has {len(thread.messages)} messages)",
            field="messageIndex",
        )

    message = thread.messages[message_index]
    full_text = message.searchable_text
    total_length = len(full_text)
    start = min(offset, total_length)
    end = min(offset + limit, total_length)
    content = full_text[start:end]
    has_more = end < total_length

    return MessageResponse(
        input_request=(
            f"zed-get-message: threadID: {thread_id}, messageIndex: {message_index}, "
            f"offset: {offset}, limit: {limit}"
        ),
        message=MessageContent(
            thread_id=thread_id,
            thread_summary=record.summary,
            message_index=message_index,
            message_id=message.id if isinstance(message, UserMessage) else None,
            role=message.role,
            content=content,
            total_length=total_length,
            returned_length=len(content),
            offset=offset,
            has_more=has_more,
            next_offset=end if has_more else None,
        ),
    )


def search_thread_content(
    query: str,
    case_insensitive: bool = True,
    only_first_match_per_thread: bool = False,
    page: int = DEFAULT_PAGE,
    db_path: Path | None = None,
) -> ContentSearchResponse:
    """
    Search the decoded messages of every thread.

    Args:
        query: Literal text to find
        case_insensitive: Ignore case when matching
        only_first_match_per_thread: Stop scanning a thread at its first match
        page: Zero-based page of 10 matches; out-of-range pages are empty

    Returns:
        ContentSearchResponse with one page of matches and pagination info
    """
    query = _require_text(query, "query")

    with ThreadStore(db_path) as store:
        records = store.fetch_all(include_data=True)

    entries, skipped = load_threads(records)
    if skipped:
        logger.warning(f"Content search skipped {skipped} threads with unreadable content")

    matches = collect_matches(entries, query, case_insensitive, only_first_match_per_thread)
    results = paginate(matches, page)
    total_pages = page_count(len(matches))
    has_more = 0 <= page < total_pages - 1

    return ContentSearchResponse(
        input_request=(
            f"zed-search-thread-content: query: {query}, page: {page}, "
            f"caseInsensitive: {case_insensitive}, "
            f"onlyFirstMatchPerThread: {only_first_match_per_thread}"
        ),
        query=query,
        page=page,
        page_size=PAGE_SIZE,
        result_count=len(results),
        total_matches=len(matches),
        total_pages=total_pages,
        has_more=has_more,
        skipped_threads=skipped,
        results=results,
        hint=_generate_hint(
            total_matches=len(matches),
            page=page,
            results_count=len(results),
            total_pages=total_pages,
            has_more=has_more,
        ),
    )


def _generate_hint(
    total_matches: int,
    page: int,
    results_count: int,
    total_pages: int,
    has_more: bool,
) -> str:
    """Generate a helpful hint about paging through content matches."""
    if total_matches == 0:
        return "No matches found. Try different search terms or set caseInsensitive."

    if results_count == 0:
        return f"Page {page} is out of range. Matches span pages 0-{total_pages - 1}."

    # 1-indexed range for human readability
    start = page * PAGE_SIZE + 1
    end = page * PAGE_SIZE + results_count

    if has_more:
        return (
            f"Showing {start}-{end} of {total_matches} matches. "
            f"To retrieve more, use page: {page + 1}. "
            f"Or set onlyFirstMatchPerThread to narrow results."
        )
    if total_matches == 1:
        return "Showing the only match."
    if start == 1:
        return f"Showing all {total_matches} matches."
    return f"Showing {start}-{end} of {total_matches} matches (final page)."
