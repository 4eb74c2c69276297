"""SQLAlchemy ORM models for the LearnHub database."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Text, DateTime, JSON, Boolean,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    """Learner/instructor profile. Identity itself is owned by the auth layer."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(256), nullable=True)  # PBKDF2-SHA256
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    role = Column(String(20), nullable=False, default="learner")
    avatar_url = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class CourseRow(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    instructor = Column(String(200), nullable=True)
    category = Column(String(100), nullable=True)
    difficulty_level = Column(String(20), nullable=True)  # beginner, intermediate, advanced
    duration_hours = Column(Integer, nullable=True)
    thumbnail_url = Column(String(500), nullable=True)
    is_published = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class LessonRow(Base):
    """A lesson is text, video or quiz; the shape of `content` follows content_type."""
    __tablename__ = "lessons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content_type = Column(String(20), nullable=False, default="text")  # text, video, quiz
    # text: {"body": str}; video: {"video_url": str, "description": str}
    # quiz: {"instructions": str, "questions": [{"id", "question", "options", "correct"}]}
    content = Column(JSON, default=dict)
    order_index = Column(Integer, nullable=False, default=0)
    duration_minutes = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_lessons_course_order", "course_id", "order_index"),
    )


class EnrollmentRow(Base):
    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    enrolled_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_user_course"),
    )


class UserProgressRow(Base):
    """Per-lesson progress: one row per (user, lesson)."""
    __tablename__ = "user_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    lesson_id = Column(Integer, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(50), nullable=False, default="not_started")  # not_started, in_progress, completed
    score = Column(Integer, nullable=True)
    time_spent = Column(Integer, nullable=False, default=0)  # seconds
    last_accessed = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", name="uq_user_lesson_progress"),
        Index("ix_progress_user_course", "user_id", "course_id"),
    )
