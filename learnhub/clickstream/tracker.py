"""Event normalizer: turns descriptors into enriched clickstream records.

`build_tracker` picks the implementation once, at construction: the real
`ClickstreamTracker` when analytics is enabled, otherwise `NullTracker`,
which accepts every call and does nothing. Call sites never branch on the
feature flag themselves.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from config.settings import settings
from learnhub.clickstream.context import ClickstreamContext, ClientEnvironment
from learnhub.clickstream.models import (
    UNKNOWN_IP, ClickstreamEvent, EventDescriptor, TrackResult,
)
from learnhub.clickstream.sink import EventSink
from learnhub.clickstream.timestamps import (
    local_timestamp, readable_timestamp, timezone_offset_minutes, utc_now, utc_timestamp,
)

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    async def current_user_id(self) -> Optional[str]:
        ...


class SessionUser:
    """Identity bound to a tab by whichever request last authenticated it."""

    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id

    def bind(self, user_id: Optional[str]) -> None:
        self.user_id = user_id

    async def current_user_id(self) -> Optional[str]:
        return self.user_id
@dataclass(frozen=True)
class Snapshot:
    """The page, session and clock as they were when the event happened."""
    now: datetime
    environment: ClientEnvironment
    session_id: str


class Tracker(ABC):
    enabled: bool = True

    @abstractmethod
    async def track(self, descriptor: EventDescriptor, *, beacon: bool = False) -> TrackResult:
        """Record one event. Never raises."""

    @abstractmethod
    def emit(self, descriptor: EventDescriptor, user_id: Optional[str]) -> None:
        """Record one event as `user_id` without waiting for the result."""


class NullTracker(Tracker):
    """Analytics disabled: no storage, network or session activity."""
    enabled = False

    async def track(self, descriptor: EventDescriptor, *, beacon: bool = False) -> TrackResult:
        logger.debug("Analytics disabled, skipping event: %s", descriptor.event_name)
        return TrackResult.skipped()

    def emit(self, descriptor: EventDescriptor, user_id: Optional[str]) -> None:
        logger.debug("Analytics disabled, skipping event: %s", descriptor.event_name)


class ClickstreamTracker(Tracker):

    def __init__(
        self,
        context: ClickstreamContext,
        sink: EventSink,
        identity: IdentityProvider,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.context = context
        self.sink = sink
        self.identity = identity
        self._clock = clock

    async def track(self, descriptor: EventDescriptor, *, beacon: bool = False) -> TrackResult:
        try:
            user_id = await self.identity.current_user_id()
            if not user_id:
                logger.warning("No authenticated user for event tracking: %s", descriptor.event_name)
                return TrackResult.failure("No authenticated user")

            record = await self.build_record(descriptor, user_id)
            if beacon:
                return self.sink.send_beacon(record)

            result = await self.sink.insert(record)
        except Exception as exc:
            logger.warning("Clickstream tracking failed (non-critical): %s", exc, exc_info=True)
            return TrackResult.failure(exc)

        self._log_tracked(record, result)
        return result

    def emit(self, descriptor: EventDescriptor, user_id: Optional[str]) -> None:
        """Fire and forget.

        The session, page and clock are captured now, so a logout right after
        still files the event under the session it ended. The IP lookup and
        the insert run in a task owned by the sink.
        """
        if not user_id:
            logger.warning("No authenticated user for event tracking: %s", descriptor.event_name)
            return
        self.sink.spawn(self._deliver(descriptor, user_id, self.snapshot()))

    def snapshot(self) -> Snapshot:
        return Snapshot(
            now=self._clock(),
            environment=self.context.environment,
            session_id=self.context.session_id(),
        )

    async def _deliver(self, descriptor: EventDescriptor, user_id: str, snapshot: Snapshot) -> TrackResult:
        try:
            record = await self.build_record(descriptor, user_id, snapshot)
            result = await self.sink.insert(record)
        except Exception as exc:
            logger.warning("Clickstream tracking failed (non-critical): %s", exc, exc_info=True)
            return TrackResult.failure(exc)

        self._log_tracked(record, result)
        return result

    def _log_tracked(self, record: ClickstreamEvent, result: TrackResult) -> None:
        if result.ok:
            logger.debug(
                "Event tracked: %s", record.event_name,
                extra={"event_name": record.event_name, "session_id": record.session_id},
            )

    async def build_record(
        self, descriptor: EventDescriptor, user_id: str, snapshot: Optional[Snapshot] = None,
    ) -> ClickstreamEvent:
        snapshot = snapshot or self.snapshot()
        env = snapshot.environment
        session_id = snapshot.session_id
        now = snapshot.now

        offset = env.timezone_offset
        if offset is None:
            offset = timezone_offset_minutes(now, env.timezone)
        timestamp = local_timestamp(now, offset)

        client_ip = await self.context.client_ip()

        additional = dict(descriptor.additional_data)
        # Diagnostics go in last so callers cannot shadow them
        additional.update({
            "screen_resolution": env.screen_resolution,
            "viewport_size": env.viewport_size,
            "timezone": env.timezone,
            "language": env.language,
            "referrer": env.referrer or None,
            "utc_timestamp": utc_timestamp(now),
            "local_timestamp": readable_timestamp(now, offset),
            "timezone_offset": offset,
            "timestamp_local": timestamp,
        })

        return ClickstreamEvent(
            user_id=user_id,
            time=timestamp,
            event_context=descriptor.event_context,
            component=descriptor.component,
            event_name=descriptor.event_name,
            description=descriptor.render_description(user_id),
            origin=descriptor.origin,
            ip_address=client_ip if client_ip and client_ip != UNKNOWN_IP else None,
            session_id=session_id,
            page_url=env.page_url,
            user_agent=env.user_agent,
            additional_data=additional,
            course_id=descriptor.course_id,
            lesson_id=descriptor.lesson_id,
        )


def build_tracker(
    context: ClickstreamContext,
    sink: EventSink,
    identity: IdentityProvider,
    enabled: Optional[bool] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Tracker:
    if enabled is None:
        enabled = settings.ENABLE_ANALYTICS
    if not enabled:
        return NullTracker()
    return ClickstreamTracker(context, sink, identity, clock=clock)
