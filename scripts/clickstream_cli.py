#!/usr/bin/env python3
"""LearnHub clickstream CLI: inspect and export a learner's events.

Usage:
  python scripts/clickstream_cli.py report <user_id> [1h|24h|7d|30d]   # Print activity summary
  python scripts/clickstream_cli.py export <user_id> [path]            # Moodle log CSV (stdout if no path)
"""
import asyncio
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from learnhub.logging_config import setup_logging
from learnhub.clickstream.queries import (
    DEFAULT_TIME_RANGE, AnalyticsFilters, get_analytics_data, get_event_summary,
    summarize_events, write_moodle_csv,
)
from learnhub.db.engine import async_session


async def cmd_report(user_id: str, time_range: str = DEFAULT_TIME_RANGE):
    async with async_session() as session:
        rows = await get_event_summary(session, user_id, time_range)
    s = summarize_events(rows)

    print("=" * 60)
    print(f"  Clickstream for {user_id} ({time_range})")
    print("=" * 60)
    print(f"  Events: {s['total_events']:,}    Sessions: {s['total_sessions']:,}")
    print()
    print("  By event")
    for item in sorted(s["activity_by_type"], key=lambda x: -x["count"]):
        print(f"     {item['event_type']:<30} {item['count']:>6,}")
    print()
    print("  By hour")
    peak = max((h["count"] for h in s["activity_by_hour"]), default=0) or 1
    for h in s["activity_by_hour"]:
        if h["count"]:
            print(f"     {h['hour_label']}  {'#' * int(h['count'] / peak * 30)} {h['count']}")
    print()
    print("  Recent")
    for item in s["recent_activity"]:
        print(f"     {item['created_at']}  {item['event_type']}")
    print("=" * 60)


async def cmd_export(user_id: str, path: str = ""):
    async with async_session() as session:
        rows = await get_analytics_data(session, AnalyticsFilters(user_id=user_id))
    if not path:
        write_moodle_csv(rows, sys.stdout)
        return
    with open(path, "w", newline="") as f:
        count = write_moodle_csv(rows, f)
    print(f"Exported {count} events to {path}", file=sys.stderr)


COMMANDS = {
    "report": cmd_report,
    "export": cmd_export,
}


def main():
    if len(sys.argv) < 3 or sys.argv[1] not in COMMANDS:
        print(__doc__)
        sys.exit(1)
    setup_logging(log_level="WARNING")
    asyncio.run(COMMANDS[sys.argv[1]](*sys.argv[2:4]))


if __name__ == "__main__":
    main()
