"""Centralized configuration constants for Zed Thread Recall."""

from pathlib import Path

# Server
SERVER_NAME = "zed-thread-recall"

# Archive location
THREADS_DB_ENV = "ZED_THREADS_DB"
MACOS_THREADS_DB = (
    Path.home() / "Library" / "Application Support" / "Zed" / "threads" / "threads.db"
)
XDG_DATA_HOME_ENV = "XDG_DATA_HOME"
DEFAULT_XDG_DATA_HOME = Path.home() / ".local" / "share"

# Decompression limits
INITIAL_BUFFER_MULTIPLIER = 3
MIN_INITIAL_BUFFER = 4096
LOW_WATER_MARK = 1024
MAX_DECOMPRESS_ITERATIONS = 10_000
MAX_OUTPUT_ENV = "ZED_THREAD_RECALL_MAX_OUTPUT_MB"
DEFAULT_MAX_OUTPUT_BYTES = 512 * 1024 * 1024

# Schema
CURRENT_SCHEMA_VERSION = "0.3.0"

# Concurrency
WORKERS_ENV = "ZED_THREAD_RECALL_WORKERS"
DEFAULT_MAX_WORKERS = 8

# Query defaults
PAGE_SIZE = 10
CONTEXT_CHARS = 100
DEFAULT_MESSAGE_LIMIT = 1000
DEFAULT_PAGE = 0
