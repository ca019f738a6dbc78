from datetime import UTC, datetime, timedelta, timezone

from app.utils.time_helpers import ensure_utc, overlaps, parse_iso, to_iso


def test_ensure_utc_treats_naive_as_utc():
    assert ensure_utc(datetime(2026, 3, 2, 8, 0)) == datetime(2026, 3, 2, 8, 0, tzinfo=UTC)


def test_ensure_utc_converts_offsets():
    local = datetime(2026, 3, 2, 10, 0, tzinfo=timezone(timedelta(hours=2)))

    converted = ensure_utc(local)

    assert converted.tzinfo is UTC
    assert converted.hour == 8


def test_parse_iso_accepts_z_suffix_and_datetimes():
    parsed = parse_iso("2026-03-02T08:00:00Z")

    assert parsed == datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
    assert parse_iso(parsed) == parsed
    assert to_iso(parsed) == "2026-03-02T08:00:00Z"


def test_overlaps_is_half_open():
    start = parse_iso("2026-03-02T08:00:00Z")
    end = parse_iso("2026-03-02T09:00:00Z")

    assert overlaps(start, end, end, end + timedelta(hours=1)) is False
    assert overlaps(start, end, end - timedelta(minutes=1), end + timedelta(hours=1)) is True
