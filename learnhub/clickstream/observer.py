"""Page-lifecycle observer: page views, navigation, unload, uncaught errors.

One observer per browser tab. The page reports its lifecycle (render of a
path, unload, uncaught error, unhandled rejection) and the observer decides
what is worth an event:

- a page view once per path, followed by a navigation event when the path
  changed; re-rendering the same path emits nothing
- one unload event per page lifetime, only after a minimum time on page,
  sent by beacon since nobody waits on a page that is going away
- uncaught errors minus known noise, capped per page lifetime
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from config.settings import settings
from learnhub.clickstream import emitters
from learnhub.clickstream.models import TrackResult
from learnhub.clickstream.tracker import Tracker

logger = logging.getLogger(__name__)

# Browser errors that carry no signal
NOISY_ERRORS = (
    "ResizeObserver loop",
    "Script error.",
)


class ObserverState(str, Enum):
    IDLE = "idle"
    VIEWED = "viewed"
    UNLOADING = "unloading"


class InteractionObserver:

    def __init__(
        self,
        tracker: Tracker,
        clock: Callable[[], float] = time.monotonic,
        min_unload_seconds: Optional[float] = None,
        max_errors: Optional[int] = None,
        ignored_errors: Iterable[str] = NOISY_ERRORS,
    ):
        self.tracker = tracker
        self._clock = clock
        self.min_unload_seconds = (
            settings.CLICKSTREAM_UNLOAD_MIN_SECONDS if min_unload_seconds is None else min_unload_seconds
        )
        self.max_errors = settings.CLICKSTREAM_MAX_ERRORS if max_errors is None else max_errors
        self.ignored_errors = tuple(ignored_errors)

        self.state = ObserverState.IDLE
        self._last_path: Optional[str] = None
        self._path_tracked = False
        self._page_started = clock()
        self._unloaded = False
        self._errors_captured = 0

    @property
    def current_path(self) -> Optional[str]:
        return self._last_path

    @property
    def errors_captured(self) -> int:
        return self._errors_captured

    def time_on_page(self) -> float:
        return self._clock() - self._page_started

    async def on_render(
        self, path: str, title: Optional[str] = None, search: Optional[str] = None,
    ) -> list[TrackResult]:
        """Page rendered at `path`. Emits page view (+ navigation) once per path."""
        if self._path_tracked and path == self._last_path:
            return []

        previous = self._last_path
        changed = previous is not None and previous != path
        # Latch before awaiting so a concurrent re-render sees the path as tracked
        self._last_path = path
        self._path_tracked = True
        if previous != path:
            self._page_started = self._clock()
        if self.state is ObserverState.IDLE:
            self.state = ObserverState.VIEWED

        results = [await self.tracker.track(emitters.page_viewed(
            path, title=title, search=search, previous_page=previous if changed else None,
        ))]
        if changed:
            results.append(await self.tracker.track(emitters.navigation(previous, path)))
        return results

    async def on_unload(self) -> Optional[TrackResult]:
        """Page is going away. Fires at most once per page lifetime."""
        if self._unloaded:
            return None
        self._unloaded = True
        self.state = ObserverState.UNLOADING

        elapsed = self.time_on_page()
        if elapsed <= self.min_unload_seconds:
            logger.debug("Skipping unload event after %.1fs on page", elapsed)
            return None

        path = self._last_path or ""
        return await self.tracker.track(
            emitters.page_unload(path, int(round(elapsed))), beacon=True,
        )

    async def on_error(
        self,
        error_type: str,
        message: str,
        context: Optional[dict[str, Any]] = None,
        stack: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Optional[TrackResult]:
        """Uncaught error on the page. Noise is dropped, volume is capped."""
        if self._is_noise(message):
            return None
        if self._errors_captured >= self.max_errors:
            logger.debug("Error cap reached (%d), dropping: %s", self.max_errors, message)
            return None
        self._errors_captured += 1
        return await self.tracker.track(emitters.error_occurred(
            error_type, message or "Unknown error", context=context, stack=stack, url=url,
        ))

    async def on_rejection(self, reason: Any) -> Optional[TrackResult]:
        text = str(reason) if reason is not None else ""
        return await self.on_error(
            "Promise Rejection",
            text or "Unhandled promise rejection",
            context={"reason": text or None},
        )

    def close(self) -> None:
        """Teardown: forget the tracked path so the next render counts again."""
        self._last_path = None
        self._path_tracked = False

    def _is_noise(self, message: Optional[str]) -> bool:
        if not message:
            return False
        return any(pattern in message for pattern in self.ignored_errors)
