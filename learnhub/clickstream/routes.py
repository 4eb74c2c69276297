"""Clickstream API routes: event ingestion, page lifecycle beacons, analytics."""
from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from learnhub.auth import get_current_user, require_user, user_from_token
from learnhub.clickstream import emitters
from learnhub.clickstream.context import ClientEnvironment, request_client_ip
from learnhub.clickstream.models import EventDescriptor, TrackResult
from learnhub.clickstream.queries import (
    DEFAULT_LIMIT, DEFAULT_TIME_RANGE, AnalyticsFilters,
    get_analytics_data, get_event_summary, row_to_dict, summarize_events, write_moodle_csv,
)
from learnhub.clickstream.registry import TabRegistry, TabSession
from learnhub.db.engine import get_session
from learnhub.db.tables import CourseRow, UserRow
from learnhub.middleware.request_context import tab_id_var

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/clickstream", tags=["clickstream"])

# One per process; see TabRegistry for the single-instance caveat
registry = TabRegistry()

ANONYMOUS_TAB = "anonymous"


# --- Request models ---

class ClientInfo(BaseModel):
    """What the page knows about itself, reported alongside events."""
    page_url: Optional[str] = Field(None, max_length=2000)
    path: Optional[str] = Field(None, max_length=500)
    search: Optional[str] = Field(None, max_length=500)
    title: Optional[str] = Field(None, max_length=300)
    referrer: Optional[str] = Field(None, max_length=2000)
    user_agent: Optional[str] = Field(None, max_length=500)
    language: Optional[str] = Field(None, max_length=35)
    timezone: Optional[str] = Field(None, max_length=64)
    timezone_offset: Optional[int] = Field(None, ge=-840, le=840)
    screen_width: Optional[int] = Field(None, ge=0)
    screen_height: Optional[int] = Field(None, ge=0)
    viewport_width: Optional[int] = Field(None, ge=0)
    viewport_height: Optional[int] = Field(None, ge=0)


class TrackEventRequest(EventDescriptor):
    client: Optional[ClientInfo] = None
    beacon: bool = False


class PageViewRequest(BaseModel):
    path: str = Field(..., max_length=500)
    title: Optional[str] = Field(None, max_length=300)
    search: Optional[str] = Field(None, max_length=500)
    client: Optional[ClientInfo] = None


class UnloadRequest(BaseModel):
    tab_id: Optional[str] = Field(None, max_length=64)
    token: Optional[str] = Field(None, max_length=2000)
    client: Optional[ClientInfo] = None


class ErrorReport(BaseModel):
    error_type: str = Field("JavaScript Error", max_length=100)
    message: str = Field("", max_length=2000)
    context: dict[str, Any] = Field(default_factory=dict)
    stack: Optional[str] = None
    url: Optional[str] = Field(None, max_length=2000)
    rejection: bool = False
    client: Optional[ClientInfo] = None


# --- Dependencies / helpers ---

def resolve_tab(request: Request, user: Optional[UserRow], tab_id: Optional[str] = None) -> TabSession:
    """Tracking state for the calling tab, acting as `user` for this request.

    Without a tab id, signed-in callers get one tab per user and everyone
    else shares the anonymous tab, which never has a user bound.
    """
    key = tab_id or tab_id_var.get() or (f"user:{user.id}" if user else ANONYMOUS_TAB)
    tab = registry.get(key)
    tab.identity.bind(user.id if user else None)

    from_headers = ClientEnvironment.from_request(request.headers)
    tab.context.update_environment(tab.context.environment.merged(
        user_agent=from_headers.user_agent,
        referrer=from_headers.referrer,
        language=from_headers.language,
    ))
    tab.context.observe_request_ip(request_client_ip(
        request.headers, request.client.host if request.client else None,
    ))
    return tab


async def current_tab(
    request: Request,
    user: Optional[UserRow] = Depends(get_current_user),
) -> TabSession:
    """Tracking state for the calling tab (X-Tab-Id), bound to the caller."""
    return resolve_tab(request, user)


def apply_client(tab: TabSession, client: Optional[ClientInfo]) -> None:
    if client is None:
        return
    env = tab.context.environment.merged(**client.model_dump(exclude_none=True))
    tab.context.update_environment(env)


def ack(result: Optional[TrackResult]) -> dict:
    """Tracking outcome as a response body. Failures are reported, never raised."""
    if result is None:
        return {"status": "ignored"}
    if not result.ok:
        return {"status": "rejected", "error": str(result.error)}
    if result.data is None:
        return {"status": "skipped"}
    return {"status": "accepted", "event": result.data}


# --- Ingestion ---

@router.post("/events", status_code=202)
async def track_event(payload: TrackEventRequest, tab: TabSession = Depends(current_tab)):
    """Track one event described by the client."""
    apply_client(tab, payload.client)
    descriptor = EventDescriptor.model_validate(payload.model_dump(exclude={"client", "beacon"}))
    return ack(await tab.tracker.track(descriptor, beacon=payload.beacon))


@router.post("/page-view", status_code=202)
async def page_view(payload: PageViewRequest, tab: TabSession = Depends(current_tab)):
    """Page rendered. Repeated renders of the same path are ignored."""
    apply_client(tab, payload.client)
    if payload.client is None or payload.client.path is None:
        tab.context.update_environment(tab.context.environment.merged(
            path=payload.path, search=payload.search, title=payload.title,
        ))
    results = await tab.observer.on_render(payload.path, title=payload.title, search=payload.search)
    return {"events": [ack(r) for r in results]}


async def _unload_payload(request: Request) -> UnloadRequest:
    # sendBeacon posts strings as text/plain, so parse the raw body ourselves
    raw = await request.body()
    if not raw.strip():
        return UnloadRequest()
    try:
        return UnloadRequest.model_validate_json(raw)
    except ValidationError:
        raise HTTPException(status_code=422, detail="Invalid unload payload")


@router.post("/unload", status_code=202)
async def page_unload(
    request: Request,
    tab_id: Optional[str] = Query(None, max_length=64),
    token: Optional[str] = Query(None, max_length=2000),
    user: Optional[UserRow] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Page is going away.

    Browsers send this with navigator.sendBeacon, which cannot set headers,
    so the tab id and access token may also come in the body or query.
    """
    payload = await _unload_payload(request)
    token = payload.token or token
    if user is None and token:
        user = await user_from_token(session, token)
    tab = resolve_tab(request, user, tab_id=payload.tab_id or tab_id)
    apply_client(tab, payload.client)
    result = await tab.observer.on_unload()
    tab.reload()
    return ack(result)


@router.post("/errors", status_code=202)
async def report_error(payload: ErrorReport, tab: TabSession = Depends(current_tab)):
    """Uncaught page error or unhandled promise rejection."""
    apply_client(tab, payload.client)
    if payload.rejection:
        result = await tab.observer.on_rejection(payload.message or None)
    else:
        result = await tab.observer.on_error(
            payload.error_type, payload.message,
            context=payload.context, stack=payload.stack, url=payload.url,
        )
    return ack(result)


# --- Analytics (own events only) ---

@router.get("/analytics")
async def list_events(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    component: Optional[str] = Query(None, max_length=100),
    event_name: Optional[str] = Query(None, max_length=100),
    course_id: Optional[int] = None,
    session_id: Optional[str] = Query(None, max_length=100),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=DEFAULT_LIMIT),
    user: UserRow = Depends(require_user),
    tab: TabSession = Depends(current_tab),
    session: AsyncSession = Depends(get_session),
):
    """The caller's clickstream, newest first. Filtering by course logs a report view."""
    rows = await get_analytics_data(session, AnalyticsFilters(
        user_id=user.id,
        start_date=start_date,
        end_date=end_date,
        component=component,
        event_name=event_name,
        course_id=course_id,
        session_id=session_id,
        limit=limit,
    ))
    if course_id is not None:
        course = await session.get(CourseRow, course_id)
        if course is not None:
            tab.tracker.emit(emitters.log_report_viewed(course.id, course.title), user.id)
    return {"events": [row_to_dict(r) for r in rows], "count": len(rows)}


@router.get("/analytics/summary")
async def analytics_summary(
    time_range: str = Query(DEFAULT_TIME_RANGE, max_length=10),
    user: UserRow = Depends(require_user),
    tab: TabSession = Depends(current_tab),
    session: AsyncSession = Depends(get_session),
):
    """Dashboard numbers for the caller over 1h, 24h, 7d or 30d."""
    rows = await get_event_summary(session, user.id, time_range)
    tab.tracker.emit(emitters.analytics_viewed(), user.id)
    return {"time_range": time_range, **summarize_events(rows)}


@router.get("/analytics/export")
async def export_events(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    course_id: Optional[int] = None,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """The caller's clickstream as a Moodle log report CSV."""
    rows = await get_analytics_data(session, AnalyticsFilters(
        user_id=user.id, start_date=start_date, end_date=end_date, course_id=course_id,
    ))
    out = io.StringIO()
    count = write_moodle_csv(rows, out)
    logger.info("Exported %d clickstream rows", count)
    return Response(
        content=out.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="clickstream.csv"'},
    )
