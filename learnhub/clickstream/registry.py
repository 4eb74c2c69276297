"""In-memory registry of browser tabs and their tracking state.

Works for a single API instance. Tabs that go quiet are evicted
least-recently-used once the registry is full; an evicted tab simply starts
a new clickstream session on its next request.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from config.settings import settings
from learnhub.clickstream.context import ClickstreamContext, ClientIPResolver
from learnhub.clickstream.observer import InteractionObserver
from learnhub.clickstream.sink import EventSink, SQLAlchemyEventSink
from learnhub.clickstream.tracker import SessionUser, Tracker, build_tracker

logger = logging.getLogger(__name__)


@dataclass
class TabSession:
    tab_id: str
    context: ClickstreamContext
    identity: SessionUser
    tracker: Tracker
    observer: InteractionObserver

    def reload(self) -> None:
        """The page went away; the tab's next page gets a fresh observer.

        Session storage survives, so the clickstream session continues.
        """
        self.observer.close()
        self.observer = InteractionObserver(self.tracker)

    def end_session(self) -> None:
        """Logout: unbind the user and start a new session on the next event."""
        self.identity.bind(None)
        self.context.reset()


class TabRegistry:

    def __init__(
        self,
        sink: Optional[EventSink] = None,
        resolver: Optional[ClientIPResolver] = None,
        max_tabs: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        self.sink = sink or SQLAlchemyEventSink()
        self.resolver = resolver
        self.max_tabs = settings.CLICKSTREAM_MAX_TABS if max_tabs is None else max_tabs
        self.enabled = enabled
        self._tabs: OrderedDict[str, TabSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._tabs)

    def __contains__(self, tab_id: str) -> bool:
        return tab_id in self._tabs

    def get(self, tab_id: str) -> TabSession:
        tab = self._tabs.get(tab_id)
        if tab is not None:
            self._tabs.move_to_end(tab_id)
            return tab

        tab = self._create(tab_id)
        self._tabs[tab_id] = tab
        while len(self._tabs) > self.max_tabs:
            evicted, _ = self._tabs.popitem(last=False)
            logger.debug("Evicted idle tab %s", evicted)
        return tab

    def drop(self, tab_id: str) -> None:
        self._tabs.pop(tab_id, None)

    def clear(self) -> None:
        self._tabs.clear()

    def _create(self, tab_id: str) -> TabSession:
        # Resolver read at creation time so settings changes apply to new tabs
        context = ClickstreamContext(self.resolver or ClientIPResolver())
        identity = SessionUser()
        tracker = build_tracker(context, self.sink, identity, enabled=self.enabled)
        return TabSession(
            tab_id=tab_id,
            context=context,
            identity=identity,
            tracker=tracker,
            observer=InteractionObserver(tracker),
        )
