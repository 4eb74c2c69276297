"""Timestamp conventions for clickstream records.

The canonical `time` column holds the client's local wall clock without a
UTC marker, matching the Moodle log export the reports are built on. The
UTC instant and the offset travel alongside in `additional_data`, so the
local value can always be mapped back. Offsets use the browser convention:
minutes to add to local time to get UTC (UTC+2 is -120).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def timezone_offset_minutes(instant: datetime, tz_name: Optional[str] = None) -> int:
    """Offset for `instant` in the named zone, or the server's zone when unknown."""
    zone = None
    if tz_name:
        try:
            zone = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            zone = None
    local = _as_utc(instant).astimezone(zone) if zone else _as_utc(instant).astimezone()
    offset = local.utcoffset() or timedelta(0)
    return -int(offset.total_seconds() // 60)


def local_wall_clock(instant: datetime, offset_minutes: int) -> datetime:
    """Naive local datetime: the UTC instant shifted by the client offset."""
    return _as_utc(instant).replace(tzinfo=None) - timedelta(minutes=offset_minutes)


def local_timestamp(instant: datetime, offset_minutes: int) -> str:
    """`YYYY-MM-DDTHH:MM:SS.mmm` in local time, deliberately without `Z`."""
    return local_wall_clock(instant, offset_minutes).isoformat(timespec="milliseconds")


def utc_timestamp(instant: datetime) -> str:
    return _as_utc(instant).replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


def readable_timestamp(instant: datetime, offset_minutes: int) -> str:
    """en-US style `MM/DD/YYYY, HH:MM:SS`, 24-hour clock."""
    return local_wall_clock(instant, offset_minutes).strftime("%m/%d/%Y, %H:%M:%S")


def parse_local_timestamp(text: str) -> datetime:
    """Inverse of local_timestamp, tolerant of a stray UTC marker."""
    parsed = datetime.fromisoformat(text.rstrip("Z"))
    return parsed.replace(tzinfo=None)
