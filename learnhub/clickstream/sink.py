"""Event sink: writes one clickstream row per call. No retry, no batching."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Coroutine, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import learnhub.db.engine as engine_mod
from learnhub.clickstream.models import ClickstreamEvent, TrackResult
from learnhub.clickstream.tables import ClickstreamRow
from learnhub.clickstream.timestamps import parse_local_timestamp

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Persists normalized events. Failures come back as results, never raised."""

    def __init__(self):
        self._pending: set[asyncio.Task] = set()

    @abstractmethod
    async def insert(self, record: ClickstreamEvent) -> TrackResult:
        ...

    def spawn(self, work: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run `work` detached from the caller. `drain` waits for it."""
        task = asyncio.get_running_loop().create_task(work)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def send_beacon(self, record: ClickstreamEvent) -> TrackResult:
        """Hand the write to a detached task and return immediately.

        Used when the page is going away and nobody will wait for the result.
        """
        self.spawn(self.insert(record))
        return TrackResult.success({"queued": True})

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for outstanding detached writes (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class SQLAlchemyEventSink(EventSink):
    """Single-row insert into the `clickstream` table, own session per call."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        super().__init__()
        self._session_factory = session_factory

    def _factory(self) -> async_sessionmaker[AsyncSession]:
        # Looked up per call so a swapped engine module is honored
        return self._session_factory or engine_mod.async_session

    async def insert(self, record: ClickstreamEvent) -> TrackResult:
        try:
            row = ClickstreamRow(
                user_id=record.user_id,
                time=parse_local_timestamp(record.time),
                event_context=record.event_context[:500],
                component=record.component,
                event_name=record.event_name,
                description=record.description,
                origin=record.origin,
                ip_address=record.ip_address,
                session_id=record.session_id,
                page_url=(record.page_url or "")[:500] or None,
                user_agent=record.user_agent,
                additional_data=record.additional_data,
                course_id=record.course_id,
                lesson_id=record.lesson_id,
            )
            async with self._factory()() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.warning("Failed to track event (non-critical): %s", exc)
            return TrackResult.failure(exc)
        except Exception as exc:
            logger.exception("Unexpected error writing clickstream event %s", record.event_name)
            return TrackResult.failure(exc)

        return TrackResult.success({
            "id": row.id,
            "event_name": record.event_name,
            "session_id": record.session_id,
        })
