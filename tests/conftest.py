"""Shared test fixtures: single test DB for all test modules."""
from __future__ import annotations

import os
import tempfile
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

# File-backed DB with a connection per session: clickstream writes run in
# detached tasks next to the request's own session
from sqlalchemy.pool import NullPool

from config.settings import settings

# Tracking on, no outbound IP lookups
settings.ENABLE_ANALYTICS = True
settings.CLICKSTREAM_IP_SERVICES = []

from learnhub.db.tables import Base, UserRow, CourseRow, LessonRow  # noqa: E402
from learnhub.db.engine import get_session  # noqa: E402
from learnhub.auth import create_access_token, hash_password  # noqa: E402
from learnhub.clickstream.models import TrackResult  # noqa: E402
from learnhub.clickstream.sink import EventSink  # noqa: E402
from learnhub.clickstream.tables import ClickstreamRow  # noqa: E402

TEST_DB_PATH = os.path.join(tempfile.mkdtemp(prefix="learnhub-tests-"), "test.db")
TEST_DB_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    connect_args={"check_same_thread": False, "timeout": 15},
    poolclass=NullPool,
)
TestSession = async_sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)


async def override_get_session():
    async with TestSession() as session:
        yield session


# Import app and override BEFORE any test module imports app
from learnhub.api.main import app  # noqa: E402
from learnhub.clickstream.routes import registry  # noqa: E402

app.dependency_overrides[get_session] = override_get_session

# The clickstream sink opens its own sessions through the engine module
import learnhub.db.engine as _engine_mod  # noqa: E402
_engine_mod.async_session = TestSession
_engine_mod.engine = test_engine

LEARNER_ID = "user-1"
LEARNER_EMAIL = "learner@example.com"
LEARNER_PASSWORD = "password123"
QUIZ_LESSON_ID = 33
VIDEO_LESSON_ID = 32
TEXT_LESSON_ID = 31


def quiz_questions(count: int = 10) -> list[dict]:
    """Questions whose correct answer is always option 0."""
    return [
        {"id": i, "question": f"Question {i}?", "options": ["right", "wrong", "also wrong"], "correct": 0}
        for i in range(1, count + 1)
    ]


@asynccontextmanager
async def get_test_session():
    """Context manager for seeding data in tests."""
    async with TestSession() as session:
        yield session


async def tracked_events() -> list[ClickstreamRow]:
    """Stored clickstream rows in insert order, once detached writes have landed."""
    await registry.sink.drain()
    async with TestSession() as session:
        result = await session.execute(select(ClickstreamRow).order_by(ClickstreamRow.id))
        return list(result.scalars().all())


class RecordingSink(EventSink):
    """Keeps records in memory instead of writing rows."""

    def __init__(self, fail: bool = False):
        super().__init__()
        self.records = []
        self.fail = fail

    async def insert(self, record):
        if self.fail:
            return TrackResult.failure("insert failed")
        self.records.append(record)
        return TrackResult.success({
            "id": len(self.records),
            "event_name": record.event_name,
            "session_id": record.session_id,
        })


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create tables before each test, drop after. Seeds a learner and course 3."""
    import learnhub.clickstream.tables  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSession() as session:
        session.add(UserRow(
            id=LEARNER_ID,
            email=LEARNER_EMAIL,
            password_hash=hash_password(LEARNER_PASSWORD),
            first_name="Ada",
            last_name="Lovelace",
        ))
        session.add(CourseRow(
            id=3, title="Introduction to Data Science",
            description="Pandas, plots and statistics for beginners",
            instructor="Dr. Grace", category="Data", difficulty_level="beginner",
        ))
        session.add(CourseRow(id=4, title="Advanced Python", description="Async, typing, packaging"))
        session.add(CourseRow(id=5, title="Unreleased Course", is_published=False))
        session.add(LessonRow(
            id=TEXT_LESSON_ID, course_id=3, title="What is Data Science?",
            content_type="text", content={"body": "Data science is..."}, order_index=1,
        ))
        session.add(LessonRow(
            id=VIDEO_LESSON_ID, course_id=3, title="Exploring Data with Pandas",
            content_type="video",
            content={"video_url": "https://videos.example.com/pandas.mp4", "description": "Intro"},
            order_index=2,
        ))
        session.add(LessonRow(
            id=QUIZ_LESSON_ID, course_id=3, title="Data Science Basics Quiz",
            content_type="quiz",
            content={"instructions": "Pick one answer", "questions": quiz_questions()},
            order_index=3,
        ))
        await session.commit()

    yield

    await registry.sink.drain()
    registry.clear()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    token = create_access_token(LEARNER_ID)["access_token"]
    return {"Authorization": f"Bearer {token}", "X-Tab-Id": "tab-1"}


@pytest.fixture
def recording_sink():
    return RecordingSink()
