"""Tests for the clickstream read side."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from conftest import LEARNER_ID, get_test_session
from learnhub.clickstream.queries import (
    AnalyticsFilters, get_analytics_data, get_event_summary, row_to_dict, summarize_events,
)
from learnhub.clickstream.tables import ClickstreamRow
from learnhub.db.tables import UserRow

NOW = datetime(2024, 6, 1, 12, 0, 0)


async def _seed():
    async with get_test_session() as session:
        session.add(UserRow(id="user-2", email="other@example.com"))
        rows = [
            ("Page viewed", "System", NOW - timedelta(minutes=10), "s1", 3),
            ("Video played", "Video", NOW - timedelta(minutes=30), "s1", 3),
            ("Quiz completed", "Quiz", NOW - timedelta(hours=3), "s2", 3),
            ("Page viewed", "System", NOW - timedelta(days=2), "s3", None),
            ("Page viewed", "System", NOW - timedelta(days=10), "s4", None),
        ]
        for name, component, when, sid, course_id in rows:
            session.add(ClickstreamRow(
                user_id=LEARNER_ID, time=when, event_name=name, component=component,
                session_id=sid, course_id=course_id, additional_data={}, origin="web",
            ))
        session.add(ClickstreamRow(
            user_id="user-2", time=NOW - timedelta(minutes=5), event_name="Page viewed",
            component="System", session_id="x", origin="web",
        ))
        await session.commit()


@pytest.mark.asyncio
async def test_filters_by_user_newest_first():
    await _seed()
    async with get_test_session() as session:
        rows = await get_analytics_data(session, AnalyticsFilters(user_id=LEARNER_ID))
    assert len(rows) == 5
    assert [r.time for r in rows] == sorted((r.time for r in rows), reverse=True)
    assert {r.user_id for r in rows} == {LEARNER_ID}


@pytest.mark.asyncio
async def test_filters_compose():
    await _seed()
    async with get_test_session() as session:
        rows = await get_analytics_data(session, AnalyticsFilters(
            user_id=LEARNER_ID, component="System", start_date=NOW - timedelta(days=3),
        ))
    assert [r.event_name for r in rows] == ["Page viewed", "Page viewed"]


@pytest.mark.asyncio
async def test_limit():
    await _seed()
    async with get_test_session() as session:
        rows = await get_analytics_data(session, AnalyticsFilters(user_id=LEARNER_ID, limit=2))
    assert len(rows) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("time_range,expected", [("1h", 2), ("24h", 3), ("7d", 4), ("30d", 5), ("bogus", 3)])
async def test_summary_windows(time_range, expected):
    await _seed()
    async with get_test_session() as session:
        rows = await get_event_summary(session, LEARNER_ID, time_range, now=NOW)
    assert len(rows) == expected


@pytest.mark.asyncio
async def test_summarize_events():
    await _seed()
    async with get_test_session() as session:
        rows = await get_event_summary(session, LEARNER_ID, "7d", now=NOW)
    summary = summarize_events(rows)

    assert summary["total_events"] == 4
    by_type = {e["event_type"]: e["count"] for e in summary["activity_by_type"]}
    assert by_type == {"Page viewed": 2, "Video played": 1, "Quiz completed": 1}
    assert len(summary["activity_by_hour"]) == 24
    assert summary["activity_by_hour"][11]["count"] == 2
    assert summary["activity_by_hour"][11]["hour_label"] == "11:00"
    assert summary["recent_activity"][0]["event_type"] == "Page viewed"
    assert summary["total_sessions"] == 3


def test_summarize_empty():
    summary = summarize_events([])
    assert summary["total_events"] == 0
    assert summary["recent_activity"] == []
    assert summary["total_sessions"] == 1


@pytest.mark.asyncio
async def test_row_to_dict_time_has_no_marker():
    await _seed()
    async with get_test_session() as session:
        rows = await get_analytics_data(session, AnalyticsFilters(user_id=LEARNER_ID, limit=1))
    data = row_to_dict(rows[0])
    assert data["time"] == "2024-06-01T11:50:00.000"
    assert data["additional_data"] == {}


@pytest.mark.asyncio
async def test_moodle_csv():
    import csv
    import io

    from learnhub.clickstream.queries import MOODLE_COLUMNS, write_moodle_csv

    await _seed()
    async with get_test_session() as session:
        rows = await get_analytics_data(session, AnalyticsFilters(user_id=LEARNER_ID, limit=2))
    out = io.StringIO()
    assert write_moodle_csv(rows, out) == 2

    parsed = list(csv.DictReader(io.StringIO(out.getvalue())))
    assert tuple(parsed[0].keys()) == MOODLE_COLUMNS
    assert parsed[0]["Time"] == "01/06/24, 11:50:00"
    assert parsed[0]["IP address"] == ""
    assert parsed[1]["Event name"] == "Video played"
