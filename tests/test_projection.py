"""Tests for record projection."""

from datetime import datetime, timezone

from zed_thread_recall.models import ArchiveRecord
from zed_thread_recall.projection import parse_updated_at, project

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def record(updated_at: str) -> ArchiveRecord:
    return ArchiveRecord(id="t1", summary="Hello", updated_at=updated_at)


class TestParseUpdatedAt:
    """Tests for parse_updated_at."""

    def test_utc(self):
        """Z suffix parses as UTC."""
        assert parse_updated_at("2024-01-01T00:00:00.000Z") == datetime(
            2024, 1, 1, tzinfo=timezone.utc
        )

    def test_offset_is_normalized(self):
        """Offsets are converted to UTC."""
        assert parse_updated_at("2024-01-01T05:30:00.000+05:30") == datetime(
            2024, 1, 1, tzinfo=timezone.utc
        )

    def test_long_fraction(self):
        """Nanosecond fractions are cut to microseconds."""
        parsed = parse_updated_at("2024-01-01T00:00:00.123456789Z")
        assert parsed.microsecond == 123456

    def test_short_fraction(self):
        """A single fractional digit is tenths of a second."""
        parsed = parse_updated_at("2024-01-01T00:00:00.5Z")
        assert parsed.microsecond == 500000

    def test_offset_out_of_range(self):
        """Offsets of a day or more are rejected."""
        assert parse_updated_at("2024-01-01T00:00:00.000+24:00") is None

    def test_fraction_required(self):
        """Timestamps without fractional seconds are rejected."""
        assert parse_updated_at("2024-01-01T00:00:00Z") is None

    def test_garbage(self):
        """Free text is rejected."""
        assert parse_updated_at("yesterday") is None

    def test_impossible_date(self):
        """Out-of-range fields are rejected."""
        assert parse_updated_at("2024-13-45T00:00:00.000Z") is None


class TestProject:
    """Tests for project."""

    def test_metadata_only(self):
        """A record projects to id, summary and parsed time."""
        result = project(record("2024-01-01T00:00:00.000Z"))
        assert result.id == "t1"
        assert result.summary == "Hello"
        assert result.last_update == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert result.thread is None

    def test_unparsable_time_falls_back_to_now(self):
        """An invalid timestamp is replaced by the current time."""
        result = project(record("not a time"), now=NOW)
        assert result.last_update == NOW

    def test_serialized_keys(self):
        """The JSON shape uses camelCase keys."""
        data = project(record("2024-01-01T00:00:00.000Z")).model_dump(mode="json", by_alias=True)
        assert data == {
            "id": "t1",
            "summary": "Hello",
            "lastUpdate": "2024-01-01T00:00:00Z",
            "thread": None,
        }
