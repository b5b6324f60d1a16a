"""FastMCP server for Zed Thread Recall."""

import json
from datetime import datetime, timezone
from typing import Any

from mcp.server.fastmcp import FastMCP

from . import __version__
from .config import DEFAULT_MESSAGE_LIMIT, DEFAULT_PAGE, SERVER_NAME
from .loader import get_threads_db_path
from .query import (
    get_message,
    get_thread,
    list_threads,
    search_thread_content,
    search_thread_titles,
)

# Create the MCP server
mcp = FastMCP(SERVER_NAME)


def _dump(response) -> dict:
    return response.model_dump(mode="json", by_alias=True)


@mcp.tool(name="zed-list-threads")
def zed_list_threads(limit: int | None = None) -> dict:
    """
    List all Zed chat threads from the threads database.

    Args:
        limit: Limit result count

    Returns:
        Thread ids, summaries and last-update times, most recent first
    """
    return _dump(list_threads(limit=limit))


@mcp.tool(name="zed-get-thread")
def zed_get_thread(
    id: str,
    page: int = DEFAULT_PAGE,
    range_start: int | None = None,
    range_end: int | None = None,
    filters: list[dict[str, Any]] | None = None,
) -> dict:
    """
    Get a specific Zed chat thread by ID.

    Messages are paged 10 at a time. Filters are applied before paging and use
    AND logic, so with filters active the message indices refer to the
    filtered list. `query` filters always ignore case.

    Args:
        id: The thread ID
        page: Page of messages to return (default: 0)
        range_start: Starting message index (inclusive). Required if range_end is given;
            overrides page
        range_end: Ending message index (exclusive). Required if range_start is given
        filters: Objects with `type` and `value`. voice: `user` or `agent`;
            query: any text; isTool: true/false; isThinking: true/false

    Returns:
        The thread metadata with its decoded messages for the requested window
    """
    return _dump(
        get_thread(
            thread_id=id,
            page=page,
            range_start=range_start,
            range_end=range_end,
            filters=filters,
        )
    )


@mcp.tool(name="zed-search-threads")
def zed_search_threads(query: str, limit: int | None = None) -> dict:
    """
    Search Zed chat threads by summary text.

    Args:
        query: Search query to match against thread summaries (case-insensitive)
        limit: Limit result count

    Returns:
        Matching threads, most recent first
    """
    return _dump(search_thread_titles(query=query, limit=limit))


@mcp.tool(name="zed-search-thread-content")
def zed_search_thread_content(
    query: str,
    case_insensitive: bool = True,
    only_first_match_per_thread: bool = False,
    page: int = DEFAULT_PAGE,
) -> dict:
    """
    Search Zed chat threads by decoding their content and searching inside.

    There's no special syntax: matches are exact apart from case sensitivity.

    Args:
        query: Text to find in message content
        case_insensitive: Ignore case when matching (default: true)
        only_first_match_per_thread: Stop at the first matching message of each thread.
            More efficient when exhaustive results aren't needed (default: false)
        page: Results come in pages of 10 matches (default: 0)

    Returns:
        Matches with thread id, message index, character position and up to 100
        characters of context on each side, plus pagination info
    """
    return _dump(
        search_thread_content(
            query=query,
            case_insensitive=case_insensitive,
            only_first_match_per_thread=only_first_match_per_thread,
            page=page,
        )
    )


@mcp.tool(name="zed-get-message")
def zed_get_message(
    thread_id: str,
    message_index: int,
    offset: int = 0,
    limit: int = DEFAULT_MESSAGE_LIMIT,
) -> dict:
    """
    Get a specific message from a Zed chat thread by its index.

    Returns a character window of the message text to reduce token usage. Use
    offset and limit to navigate through large messages.

    Args:
        thread_id: The thread ID
        message_index: Index of the message within the thread (0-based)
        offset: Starting character position within the message (default: 0)
        limit: Maximum number of characters to return (default: 1000)

    Returns:
        The message text window with total length and the next offset, if any
    """
    return _dump(
        get_message(thread_id=thread_id, message_index=message_index, offset=offset, limit=limit)
    )


@mcp.resource("zedchat://status", mime_type="application/json")
def server_status() -> str:
    """Current server status."""
    db_path = get_threads_db_path()
    return json.dumps(
        {
            "status": "healthy" if db_path.exists() else "database-missing",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


@mcp.resource("zedchat://welcome", mime_type="text/plain")
def welcome() -> str:
    """Welcome message and server information."""
    return (
        f"Welcome to Zed Thread Recall {__version__}!\n"
        "\n"
        "Read-only access to the agent threads Zed keeps in its threads database.\n"
        "Tools: zed-list-threads, zed-get-thread, zed-search-threads,\n"
        "zed-search-thread-content, zed-get-message.\n"
        f"Threads database: {get_threads_db_path()}\n"
    )


@mcp.resource("zedchat://config", mime_type="application/json")
def server_config() -> str:
    """Server configuration details."""
    return json.dumps(
        {
            "name": SERVER_NAME,
            "version": __version__,
            "threadsDatabase": str(get_threads_db_path()),
            "transport": "stdio",
        }
    )


def main():
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
