"""Assemble caller-facing thread records."""

import re
from datetime import datetime, timezone

from .models import ArchiveRecord, ConsumableThread, Thread

# Internet date-time with mandatory fractional seconds, e.g. 2024-01-01T00:00:00.000Z
_INTERNET_DATE_TIME = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})\.(\d+)(Z|[+-]\d{2}:\d{2})$"
)


def parse_updated_at(value: str) -> datetime | None:
    """Parse a stored timestamp, returning None when it is not in the fixed format."""
    match = _INTERNET_DATE_TIME.match(value.strip())
    if match is None:
        return None
    base, fraction, offset = match.groups()
    # fromisoformat wants three or six fractional digits before Python 3.11
    normalized = f"{base}.{fraction[:6].ljust(6, '0')}{offset}"
    try:
        parsed = datetime.fromisoformat(normalized.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.astimezone(timezone.utc)


def project(
    record: ArchiveRecord, thread: Thread | None = None, now: datetime | None = None
) -> ConsumableThread:
    """
    Build the public view of a record.

    An unparsable ``updated_at`` falls back to ``now`` (the current UTC time
    unless given).
    """
    last_update = parse_updated_at(record.updated_at)
    if last_update is None:
        last_update = now or datetime.now(timezone.utc)
    return ConsumableThread(
        id=record.id,
        summary=record.summary,
        last_update=last_update,
        thread=thread,
    )
