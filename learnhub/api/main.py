"""LearnHub API: courses, lessons and server-side clickstream tracking."""
from __future__ import annotations

import logging
import time

from learnhub.logging_config import setup_logging
setup_logging()
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from learnhub.auth import (
    SignUpRequest, LoginRequest, create_access_token, hash_password, verify_password, require_user,
)
from learnhub.clickstream import emitters
from learnhub.clickstream.registry import TabSession
from learnhub.clickstream.routes import router as clickstream_router, registry, current_tab, resolve_tab
from learnhub.clickstream.session import session_started_ms
from learnhub.api.courses import router as courses_router
from learnhub.db.engine import engine, get_session
from learnhub.db.tables import Base, UserRow
from learnhub.middleware.request_context import ClientContextMiddleware
from config.settings import settings

VERSION = "0.1.0"

# ── Sentry Error Tracking ────────────────────────
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        send_default_pii=False,
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup; flush pending beacon writes on shutdown."""
    from learnhub.startup_checks import validate_settings
    validate_settings()

    # Import all tables so they're registered with Base.metadata
    import learnhub.clickstream.tables  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready (analytics %s)", "on" if settings.ENABLE_ANALYTICS else "off")

    yield

    logger.info("Shutting down, flushing %d pending clickstream writes...", registry.sink.pending)
    await registry.sink.drain()
    registry.clear()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="LearnHub API",
    version=VERSION,
    description="Learning platform API with per-tab clickstream analytics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Tab-Id"],
)

# Request ID + tab id for logs and the clickstream registry
app.add_middleware(ClientContextMiddleware)

app.include_router(clickstream_router)
app.include_router(courses_router)


# ---- Auth routes ----

def _user_dict(user: UserRow) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
    }


@app.post("/api/v1/auth/signup")
async def signup(
    req: SignUpRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Create a new user account."""
    existing = await session.execute(select(UserRow).where(UserRow.email == req.email))
    if existing.scalar_one_or_none():
        raise HTTPException(409, "Email already registered")
    user = UserRow(
        email=req.email,
        password_hash=hash_password(req.password),
        first_name=req.first_name,
        last_name=req.last_name,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)

    tab = resolve_tab(request, user)
    tab.tracker.emit(emitters.user_registration("email"), user.id)
    return {"user": _user_dict(user), **create_access_token(user.id)}


@app.post("/api/v1/auth/login")
async def login(
    req: LoginRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Log in with email + password, returns a JWT."""
    result = await session.execute(select(UserRow).where(UserRow.email == req.email))
    user = result.scalar_one_or_none()
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(401, "Invalid email or password")

    tab = resolve_tab(request, user)
    tab.tracker.emit(emitters.user_login("email"), user.id)
    return {"user": _user_dict(user), **create_access_token(user.id)}


@app.post("/api/v1/auth/logout")
async def logout(
    user: UserRow = Depends(require_user),
    tab: TabSession = Depends(current_tab),
):
    """Record the logout and end the tab's clickstream session."""
    started = session_started_ms(tab.context.sessions.current)
    duration = int(time.time() - started / 1000) if started else None
    tab.tracker.emit(emitters.user_logout(duration), user.id)
    tab.end_session()
    return {"status": "logged_out"}


@app.get("/api/v1/me")
async def me(user: UserRow = Depends(require_user)):
    return _user_dict(user)


@app.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    """Deep health check: validates DB connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError:
        logger.exception("Health check query failed")
        db_status = "error"
    status = "ok" if db_status == "connected" else "degraded"
    return {
        "status": status,
        "db": db_status,
        "analytics": settings.ENABLE_ANALYTICS,
        "tabs": len(registry),
        "version": VERSION,
    }
