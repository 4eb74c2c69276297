"""Read side of the clickstream: filtered listings and the dashboard summary.

Stored times are the client's local wall clock, so time windows here are
measured on a naive local clock as well.
"""
from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import IO, Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learnhub.clickstream.tables import ClickstreamRow


TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_TIME_RANGE = "24h"
DEFAULT_LIMIT = 1000

# Column order of the Moodle log report
MOODLE_COLUMNS = (
    "Time", "Event context", "Component", "Event name", "Description", "Origin", "IP address",
)


@dataclass
class AnalyticsFilters:
    user_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    component: Optional[str] = None
    event_name: Optional[str] = None
    course_id: Optional[int] = None
    session_id: Optional[str] = None
    limit: int = DEFAULT_LIMIT


def row_to_dict(row: ClickstreamRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "time": row.time.isoformat(timespec="milliseconds") if row.time else None,
        "event_context": row.event_context,
        "component": row.component,
        "event_name": row.event_name,
        "description": row.description,
        "origin": row.origin,
        "ip_address": row.ip_address,
        "session_id": row.session_id,
        "page_url": row.page_url,
        "user_agent": row.user_agent,
        "additional_data": row.additional_data or {},
        "course_id": row.course_id,
        "lesson_id": row.lesson_id,
    }


async def get_analytics_data(session: AsyncSession, filters: AnalyticsFilters) -> list[ClickstreamRow]:
    """Clickstream rows matching `filters`, newest first."""
    stmt = select(ClickstreamRow)
    if filters.user_id:
        stmt = stmt.where(ClickstreamRow.user_id == filters.user_id)
    if filters.start_date:
        stmt = stmt.where(ClickstreamRow.time >= _naive(filters.start_date))
    if filters.end_date:
        stmt = stmt.where(ClickstreamRow.time <= _naive(filters.end_date))
    if filters.component:
        stmt = stmt.where(ClickstreamRow.component == filters.component)
    if filters.event_name:
        stmt = stmt.where(ClickstreamRow.event_name == filters.event_name)
    if filters.course_id is not None:
        stmt = stmt.where(ClickstreamRow.course_id == filters.course_id)
    if filters.session_id:
        stmt = stmt.where(ClickstreamRow.session_id == filters.session_id)

    stmt = stmt.order_by(ClickstreamRow.time.desc(), ClickstreamRow.id.desc()).limit(
        filters.limit or DEFAULT_LIMIT
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_event_summary(
    session: AsyncSession,
    user_id: str,
    time_range: str = DEFAULT_TIME_RANGE,
    now: Optional[datetime] = None,
) -> list[ClickstreamRow]:
    """A user's events within `time_range` (1h, 24h, 7d, 30d; unknown means 24h)."""
    window = TIME_RANGES.get(time_range, TIME_RANGES[DEFAULT_TIME_RANGE])
    end = _naive(now) if now else datetime.now()
    return await get_analytics_data(session, AnalyticsFilters(
        user_id=user_id,
        start_date=end - window,
        end_date=end,
    ))


def summarize_events(events: Iterable[ClickstreamRow]) -> dict[str, Any]:
    """Totals, per-event counts, hourly activity and recent events for the dashboard.

    `events` must be newest first.
    """
    events = list(events)
    by_type: dict[str, int] = {}
    by_hour = {hour: 0 for hour in range(24)}
    sessions = set()

    for event in events:
        name = event.event_name or "Unknown"
        by_type[name] = by_type.get(name, 0) + 1
        if event.time is not None:
            by_hour[event.time.hour] += 1
        if event.session_id:
            sessions.add(event.session_id)

    return {
        "total_events": len(events),
        "activity_by_type": [
            {"event_type": name, "count": count} for name, count in by_type.items()
        ],
        "activity_by_hour": [
            {"hour": hour, "hour_label": f"{hour:02d}:00", "count": count}
            for hour, count in sorted(by_hour.items())
        ],
        "recent_activity": [
            {
                "event_type": event.event_name,
                "created_at": event.time.isoformat(timespec="milliseconds") if event.time else None,
                "event_data": {
                    "page": event.page_url,
                    "course_id": event.course_id,
                    "component": event.component,
                },
            }
            for event in events[:10]
        ],
        "total_sessions": len(sessions) or 1,
    }


def moodle_log_row(row: ClickstreamRow) -> dict[str, str]:
    return {
        "Time": row.time.strftime("%d/%m/%y, %H:%M:%S") if row.time else "",
        "Event context": row.event_context or "",
        "Component": row.component or "",
        "Event name": row.event_name or "",
        "Description": row.description or "",
        "Origin": row.origin or "",
        "IP address": row.ip_address or "",
    }


def write_moodle_csv(rows: Iterable[ClickstreamRow], out: IO[str]) -> int:
    """Write rows as a Moodle log report CSV. Returns the number of rows written."""
    writer = csv.DictWriter(out, fieldnames=MOODLE_COLUMNS)
    writer.writeheader()
    count = 0
    for row in rows:
        writer.writerow(moodle_log_row(row))
        count += 1
    return count


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None)
