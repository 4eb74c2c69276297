"""Course/lesson/enrollment/progress CRUD used by the API pages."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from learnhub.db.tables import CourseRow, LessonRow, EnrollmentRow, UserProgressRow


def _escape_like(value: str) -> str:
    """Escape LIKE wildcard characters in user input."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CourseRepository:
    """Async course catalogue + learner progress backed by SQLAlchemy."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ---- Courses ----

    async def list_published(self) -> list[CourseRow]:
        stmt = (
            select(CourseRow)
            .where(CourseRow.is_published.is_(True))
            .order_by(CourseRow.created_at.desc(), CourseRow.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_course(self, course_id: int) -> Optional[CourseRow]:
        return await self.session.get(CourseRow, course_id)

    async def search_courses(self, query: str, limit: int = 20) -> list[CourseRow]:
        q = f"%{_escape_like(query)}%"
        stmt = (
            select(CourseRow)
            .where(
                CourseRow.is_published.is_(True),
                or_(
                    CourseRow.title.ilike(q, escape="\\"),
                    CourseRow.description.ilike(q, escape="\\"),
                ),
            )
            .order_by(CourseRow.title)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ---- Lessons ----

    async def get_lessons(self, course_id: int) -> list[LessonRow]:
        stmt = (
            select(LessonRow)
            .where(LessonRow.course_id == course_id)
            .order_by(LessonRow.order_index.asc(), LessonRow.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_lesson(self, lesson_id: int) -> Optional[LessonRow]:
        return await self.session.get(LessonRow, lesson_id)

    async def lesson_counts(self, course_ids: list[int]) -> dict[int, int]:
        if not course_ids:
            return {}
        stmt = (
            select(LessonRow.course_id, func.count(LessonRow.id))
            .where(LessonRow.course_id.in_(course_ids))
            .group_by(LessonRow.course_id)
        )
        result = await self.session.execute(stmt)
        return {course_id: count for course_id, count in result.all()}

    # ---- Enrollments ----

    async def enroll(self, user_id: str, course_id: int) -> EnrollmentRow:
        """Idempotent: enrolling twice returns the existing enrollment."""
        existing = await self.session.execute(
            select(EnrollmentRow).where(
                EnrollmentRow.user_id == user_id, EnrollmentRow.course_id == course_id,
            )
        )
        row = existing.scalar_one_or_none()
        if row:
            return row
        row = EnrollmentRow(user_id=user_id, course_id=course_id)
        self.session.add(row)
        await self.session.flush()
        return row

    async def user_enrollments(self, user_id: str) -> list[tuple[EnrollmentRow, CourseRow]]:
        stmt = (
            select(EnrollmentRow, CourseRow)
            .join(CourseRow, CourseRow.id == EnrollmentRow.course_id)
            .where(EnrollmentRow.user_id == user_id)
            .order_by(EnrollmentRow.enrolled_at.desc())
        )
        result = await self.session.execute(stmt)
        return [(e, c) for e, c in result.all()]

    # ---- Progress ----

    async def get_progress(self, user_id: str, course_id: Optional[int] = None) -> list[UserProgressRow]:
        stmt = select(UserProgressRow).where(UserProgressRow.user_id == user_id)
        if course_id is not None:
            stmt = stmt.where(UserProgressRow.course_id == course_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update_progress(
        self,
        user_id: str,
        lesson: LessonRow,
        status: str,
        score: Optional[int] = None,
        time_spent: int = 0,
    ) -> UserProgressRow:
        """Upsert keyed on (user, lesson). Completion is sticky."""
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            select(UserProgressRow).where(
                UserProgressRow.user_id == user_id, UserProgressRow.lesson_id == lesson.id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = UserProgressRow(
                user_id=user_id, course_id=lesson.course_id, lesson_id=lesson.id, time_spent=0,
            )
            self.session.add(row)

        if row.status != "completed":
            row.status = status
        if status == "completed" and row.completed_at is None:
            row.completed_at = now
        if score is not None:
            row.score = score
        row.time_spent = (row.time_spent or 0) + max(0, time_spent)
        row.last_accessed = now
        await self.session.flush()
        return row
