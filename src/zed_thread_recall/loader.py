"""Load thread records from Zed's threads database."""

import logging
import os
import platform
import sqlite3
from pathlib import Path

from .config import (
    DEFAULT_XDG_DATA_HOME,
    MACOS_THREADS_DB,
    THREADS_DB_ENV,
    XDG_DATA_HOME_ENV,
)
from .errors import ArchiveUnavailableError
from .models import ArchiveRecord

logger = logging.getLogger(__name__)

_METADATA_COLUMNS = "id, summary, updated_at, data_type"
_ALL_COLUMNS = "id, summary, updated_at, data_type, data"


def get_zed_data_dir() -> Path:
    """Get the directory where Zed keeps its local data."""
    if platform.system() == "Darwin":
        return MACOS_THREADS_DB.parent.parent
    data_home = os.environ.get(XDG_DATA_HOME_ENV)
    return (Path(data_home) if data_home else DEFAULT_XDG_DATA_HOME) / "zed"


def get_threads_db_path() -> Path:
    """
    Get the path of the threads database.

    ZED_THREADS_DB overrides the platform default.
    """
    override = os.environ.get(THREADS_DB_ENV)
    if override:
        return Path(override).expanduser()
    return get_zed_data_dir() / "threads" / "threads.db"


def _row_to_record(row: sqlite3.Row) -> ArchiveRecord:
    data = row["data"] if "data" in row.keys() else b""
    if isinstance(data, str):
        data = data.encode()
    return ArchiveRecord(
        id=row["id"],
        summary=row["summary"],
        updated_at=row["updated_at"],
        data_type=row["data_type"],
        data=data or b"",
    )


class ThreadStore:
    """Read-only access to the ``threads`` table."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_threads_db_path()
        self._conn: sqlite3.Connection | None = None

    def open(self) -> "ThreadStore":
        if not self.db_path.exists():
            raise ArchiveUnavailableError(str(self.db_path))
        try:
            self._conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise ArchiveUnavailableError(str(self.db_path), e) from e
        self._conn.row_factory = sqlite3.Row
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "ThreadStore":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ArchiveUnavailableError(str(self.db_path))
        return self._conn

    def _query(self, sql: str, params: tuple = ()) -> list[ArchiveRecord]:
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise ArchiveUnavailableError(str(self.db_path), e) from e
        return [_row_to_record(row) for row in rows]

    def fetch_all(
        self, limit: int | None = None, include_data: bool = False
    ) -> list[ArchiveRecord]:
        """Fetch records, most recently updated first."""
        columns = _ALL_COLUMNS if include_data else _METADATA_COLUMNS
        sql = f"SELECT {columns} FROM threads ORDER BY updated_at DESC"
        if limit is not None:
            return self._query(sql + " LIMIT ?", (limit,))
        return self._query(sql)

    def fetch(self, thread_id: str) -> ArchiveRecord | None:
        """Fetch one record with its data blob."""
        records = self._query(f"SELECT {_ALL_COLUMNS} FROM threads WHERE id = ?", (thread_id,))
        return records[0] if records else None

    def search_summaries(self, query: str, limit: int | None = None) -> list[ArchiveRecord]:
        """Fetch records whose summary contains the query, ignoring case."""
        needle = query.casefold()
        matches = [r for r in self.fetch_all() if needle in r.summary.casefold()]
        logger.debug(f"Summary search for {query!r} matched {len(matches)} threads")
        return matches if limit is None else matches[:limit]
