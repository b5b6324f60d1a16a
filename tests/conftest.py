"""Pytest fixtures for Zed Thread Recall tests."""

import json
import sqlite3

import pytest
import zstandard

from zed_thread_recall.models import (
    AgentMessage,
    TextContent,
    Thread,
    ToolUseContent,
    UserMessage,
)


def compress(document: dict | bytes, write_content_size: bool = True) -> bytes:
    """Compress a document the way Zed stores it."""
    raw = document if isinstance(document, bytes) else json.dumps(document).encode()
    return zstandard.ZstdCompressor(write_content_size=write_content_size).compress(raw)


def make_thread(*messages, updated_at: str = "2024-01-01T00:00:00.000Z") -> Thread:
    """Build a thread directly from message models."""
    return Thread(messages=list(messages), updated_at=updated_at)


def user(text: str, message_id: str = "u") -> UserMessage:
    return UserMessage(id=message_id, content=[TextContent(text=text)])


def agent(text: str, tool: bool = False) -> AgentMessage:
    content = [TextContent(text=text)]
    if tool:
        content.append(ToolUseContent(id="tool-1", name="terminal", raw_input=None))
    return AgentMessage(content=content)


@pytest.fixture
def current_document():
    """A 0.3.0 thread document with every content kind."""
    return {
        "title": "Parser errors",
        "messages": [
            {
                "User": {
                    "id": "m1",
                    "content": [{"Text": "The parser throws an error on empty input"}],
                }
            },
            {
                "Agent": {
                    "content": [
                        {"Text": "Let me look at the error handling."},
                        {
                            "ToolUse": {
                                "id": "tu1",
                                "name": "read_file",
                                "raw_input": '{"path":"src/parser.py"}',
                                "input": {"path": "src/parser.py"},
                                "is_input_complete": True,
                            }
                        },
                    ],
                    "tool_results": {},
                }
            },
            {
                "User": {
                    "id": "m2",
                    "content": [
                        {
                            "Mention": {
                                "uri": {"File": {"abs_path": "/repo/src/parser.py"}},
                                "content": "@parser.py",
                            }
                        },
                        {"Text": " please fix it"},
                    ],
                }
            },
            {"Agent": {"content": [{"Text": "Fixed: empty input now returns an empty AST."}]}},
            "Resume",
        ],
        "updated_at": "2024-03-05T10:00:00.000Z",
        "detailed_summary": "Parser fix for empty input",
        "model": {"provider": "anthropic", "model": "claude-sonnet-4"},
        "completion_mode": "normal",
        "profile": "write",
        "version": "0.3.0",
    }


@pytest.fixture
def legacy_document():
    """A 0.2.0 thread document with flat role messages."""
    return {
        "version": "0.2.0",
        "summary": "Legacy error report",
        "updated_at": "2024-03-04T09:00:00.000Z",
        "messages": [
            {
                "id": 0,
                "role": "user",
                "segments": [{"type": "text", "text": None}, {"type": "text", "text": "hello"}],
                "tool_uses": [{"id": "tool-1", "name": "grep", "input": {"pattern": "error"}}],
                "tool_results": [
                    {"tool_use_id": "tool-1", "is_error": False, "content": {"Text": "no matches"}}
                ],
                "context": "",
                "is_hidden": False,
            },
            {
                "id": 1,
                "role": "assistant",
                "segments": [{"type": "text", "text": "An ERROR occurred in the build"}],
                "tool_uses": [],
                "tool_results": [],
            },
        ],
    }


@pytest.fixture
def minimal_document():
    """The smallest useful 0.3.0 document."""
    return {
        "messages": [{"User": {"id": "m1", "content": [{"Text": "hi"}]}}],
        "updated_at": "2024-01-01T00:00:00.000Z",
    }


@pytest.fixture
def build_log_document():
    """A thread with twelve agent messages mentioning an error."""
    return {
        "title": "Initial setup",
        "messages": [
            {"Agent": {"content": [{"Text": f"Build step {i} raised error E{i}"}]}}
            for i in range(12)
        ],
        "updated_at": "2024-01-01T00:00:00.000Z",
    }


def create_threads_db(path, rows):
    """Create a threads database with Zed's schema."""
    conn = sqlite3.connect(path)
    conn.execute(
        """
        CREATE TABLE threads (
            id TEXT PRIMARY KEY,
            summary TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            data_type TEXT NOT NULL,
            data BLOB NOT NULL
        )
        """
    )
    conn.executemany(
        "INSERT INTO threads (id, summary, updated_at, data_type, data) VALUES (?, ?, ?, ?, ?)",
        rows,
    )
    conn.commit()
    conn.close()


@pytest.fixture
def threads_db(tmp_path, current_document, legacy_document, minimal_document, build_log_document):
    """
    A threads database with five records, listed newest first:

    t-newest (current schema), t-legacy (0.2.0), t-json (uncompressed),
    t-broken (not a zstd frame), t-old (frame without content size).
    """
    db_path = tmp_path / "threads.db"
    create_threads_db(
        db_path,
        [
            ("t-old", "Initial setup", "2024-01-01T00:00:00.000Z", "zstd",
             compress(build_log_document, write_content_size=False)),
            ("t-newest", "Fix parser error handling", "2024-03-05T10:00:00.000Z", "zstd",
             compress(current_document)),
            ("t-json", "Plain JSON thread", "2024-02-01T12:00:00.000Z", "json",
             json.dumps(minimal_document).encode()),
            ("t-legacy", "Legacy error report", "2024-03-04T09:00:00.000Z", "zstd",
             compress(legacy_document)),
            ("t-broken", "Broken thread", "2024-01-15T00:00:00.000Z", "zstd",
             b"not a zstd frame"),
        ],
    )
    return db_path
