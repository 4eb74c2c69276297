"""Tests for clickstream timestamp conventions."""
from __future__ import annotations

from datetime import datetime, timezone

from learnhub.clickstream.timestamps import (
    local_timestamp, local_wall_clock, parse_local_timestamp, readable_timestamp,
    timezone_offset_minutes, utc_timestamp,
)

INSTANT = datetime(2024, 6, 1, 10, 0, 0, 123000, tzinfo=timezone.utc)


def test_local_timestamp_utc_plus_two():
    """UTC+2 reports offset -120; 10:00Z is stored as 12:00 with no Z."""
    assert local_timestamp(INSTANT, -120) == "2024-06-01T12:00:00.123"


def test_local_timestamp_west_of_utc():
    assert local_timestamp(INSTANT, 300) == "2024-06-01T05:00:00.123"


def test_local_timestamp_crosses_midnight():
    late = datetime(2024, 6, 1, 23, 30, tzinfo=timezone.utc)
    assert local_timestamp(late, -120) == "2024-06-02T01:30:00.000"


def test_utc_timestamp_has_marker():
    assert utc_timestamp(INSTANT) == "2024-06-01T10:00:00.123Z"


def test_readable_timestamp():
    assert readable_timestamp(INSTANT, -120) == "06/01/2024, 12:00:00"


def test_offset_from_zone_name():
    # Berlin is UTC+2 in June
    assert timezone_offset_minutes(INSTANT, "Europe/Berlin") == -120
    assert timezone_offset_minutes(INSTANT, "UTC") == 0


def test_offset_unknown_zone_falls_back_to_server():
    assert timezone_offset_minutes(INSTANT, "Not/AZone") == timezone_offset_minutes(INSTANT)


def test_parse_round_trip_is_naive():
    parsed = parse_local_timestamp("2024-06-01T12:00:00.123")
    assert parsed == datetime(2024, 6, 1, 12, 0, 0, 123000)
    assert parsed.tzinfo is None
    assert parse_local_timestamp("2024-06-01T12:00:00.123Z") == parsed


def test_naive_instant_treated_as_utc():
    naive = datetime(2024, 6, 1, 10, 0)
    assert local_wall_clock(naive, -60) == datetime(2024, 6, 1, 11, 0)
