"""Course catalogue, lessons, enrollment and learner dashboard.

Every learner-facing action is also reported to the clickstream through the
calling tab's tracker. Tracking runs detached and never changes the response.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from learnhub.auth import get_current_user, require_user
from learnhub.clickstream import emitters
from learnhub.clickstream.registry import TabSession
from learnhub.clickstream.routes import current_tab
from learnhub.db.engine import get_session
from learnhub.db.repository import CourseRepository
from learnhub.db.tables import CourseRow, LessonRow, UserRow
from learnhub.services.quiz import percent, score_quiz

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["courses"])

VIDEO_ACTIONS = ("played", "paused", "ended", "seeked")


def _course_dict(row: CourseRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "title": row.title,
        "description": row.description,
        "instructor": row.instructor,
        "category": row.category,
        "difficulty_level": row.difficulty_level,
        "duration_hours": row.duration_hours,
        "thumbnail_url": row.thumbnail_url,
    }


def _lesson_dict(row: LessonRow, with_content: bool = False) -> dict[str, Any]:
    data = {
        "id": row.id,
        "course_id": row.course_id,
        "title": row.title,
        "content_type": row.content_type,
        "order_index": row.order_index,
        "duration_minutes": row.duration_minutes,
    }
    if with_content:
        content = dict(row.content or {})
        if row.content_type == "quiz":
            # Answer key stays server-side
            content["questions"] = [
                {k: v for k, v in q.items() if k != "correct"}
                for q in content.get("questions", [])
            ]
        data["content"] = content
    return data


async def _load_lesson(repo: CourseRepository, lesson_id: int) -> tuple[LessonRow, CourseRow]:
    lesson = await repo.get_lesson(lesson_id)
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    course = await repo.get_course(lesson.course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return lesson, course


# --- Courses ---

@router.get("/courses")
async def list_courses(session: AsyncSession = Depends(get_session)):
    repo = CourseRepository(session)
    courses = await repo.list_published()
    return {"courses": [_course_dict(c) for c in courses], "total": len(courses)}


@router.get("/courses/{course_id}")
async def get_course(
    course_id: int,
    user: Optional[UserRow] = Depends(get_current_user),
    tab: TabSession = Depends(current_tab),
    session: AsyncSession = Depends(get_session),
):
    """Course detail with its lesson outline."""
    repo = CourseRepository(session)
    course = await repo.get_course(course_id)
    if not course or not course.is_published:
        raise HTTPException(status_code=404, detail="Course not found")
    lessons = await repo.get_lessons(course_id)

    progress = {}
    if user:
        progress = {p.lesson_id: p.status for p in await repo.get_progress(user.id, course_id)}

    tab.tracker.emit(emitters.course_viewed(course.id, course.title), user.id if user else None)
    return {
        **_course_dict(course),
        "lessons": [
            {**_lesson_dict(lesson), "status": progress.get(lesson.id, "not_started")}
            for lesson in lessons
        ],
    }


@router.get("/courses/{course_id}/lessons")
async def list_lessons(course_id: int, session: AsyncSession = Depends(get_session)):
    repo = CourseRepository(session)
    if not await repo.get_course(course_id):
        raise HTTPException(status_code=404, detail="Course not found")
    return {"lessons": [_lesson_dict(lesson) for lesson in await repo.get_lessons(course_id)]}


@router.post("/courses/{course_id}/enroll")
async def enroll(
    course_id: int,
    user: UserRow = Depends(require_user),
    tab: TabSession = Depends(current_tab),
    session: AsyncSession = Depends(get_session),
):
    """Enroll the caller. Idempotent."""
    repo = CourseRepository(session)
    course = await repo.get_course(course_id)
    if not course or not course.is_published:
        raise HTTPException(status_code=404, detail="Course not found")

    tab.tracker.emit(emitters.engagement(
        "button", "clicked", f"enroll-course-{course.id}", {"course_title": course.title},
    ), user.id)
    enrollment = await repo.enroll(user.id, course.id)
    await session.commit()
    return {
        "course_id": course.id,
        "enrolled": True,
        "enrolled_at": enrollment.enrolled_at.isoformat() if enrollment.enrolled_at else None,
    }


# --- Lessons ---

class CompleteRequest(BaseModel):
    duration: Optional[int] = Field(None, ge=0, description="Seconds spent on the lesson")


class VideoActionRequest(BaseModel):
    action: str = Field(..., max_length=20)
    current_time: float = Field(0, ge=0)
    duration: float = Field(0, ge=0)
    playback_rate: float = Field(1, gt=0)


class QuizSubmission(BaseModel):
    answers: dict[str, int] = Field(default_factory=dict)
    time_taken: Optional[int] = Field(None, ge=0)
    attempt_number: int = Field(1, ge=1)


@router.get("/lessons/{lesson_id}")
async def get_lesson(
    lesson_id: int,
    user: UserRow = Depends(require_user),
    tab: TabSession = Depends(current_tab),
    session: AsyncSession = Depends(get_session),
):
    repo = CourseRepository(session)
    lesson, course = await _load_lesson(repo, lesson_id)
    lessons = await repo.get_lessons(course.id)
    ids = [l.id for l in lessons]
    index = ids.index(lesson.id)

    progress = await repo.update_progress(user.id, lesson, "in_progress")
    await session.commit()

    tab.tracker.emit(emitters.lesson_started(lesson.id, course.id, lesson.title, course.title), user.id)
    return {
        **_lesson_dict(lesson, with_content=True),
        "course": {"id": course.id, "title": course.title},
        "previous_lesson_id": ids[index - 1] if index > 0 else None,
        "next_lesson_id": ids[index + 1] if index + 1 < len(ids) else None,
        "progress": {"status": progress.status, "score": progress.score},
    }


@router.post("/lessons/{lesson_id}/complete")
async def complete_lesson(
    lesson_id: int,
    req: Optional[CompleteRequest] = None,
    user: UserRow = Depends(require_user),
    tab: TabSession = Depends(current_tab),
    session: AsyncSession = Depends(get_session),
):
    repo = CourseRepository(session)
    lesson, course = await _load_lesson(repo, lesson_id)
    duration = req.duration if req else None
    progress = await repo.update_progress(user.id, lesson, "completed", time_spent=duration or 0)
    await session.commit()

    tab.tracker.emit(emitters.lesson_completed(
        lesson.id, course.id, lesson.title, course.title, duration=duration,
    ), user.id)
    return {"lesson_id": lesson.id, "status": progress.status}


@router.post("/lessons/{lesson_id}/video", status_code=202)
async def video_action(
    lesson_id: int,
    req: VideoActionRequest,
    user: UserRow = Depends(require_user),
    tab: TabSession = Depends(current_tab),
    session: AsyncSession = Depends(get_session),
):
    """Player state change (played, paused, ended, seeked)."""
    if req.action not in VIDEO_ACTIONS:
        raise HTTPException(status_code=400, detail=f"action must be one of {', '.join(VIDEO_ACTIONS)}")
    repo = CourseRepository(session)
    lesson, course = await _load_lesson(repo, lesson_id)
    if lesson.content_type != "video":
        raise HTTPException(status_code=400, detail="Lesson is not a video")

    content = lesson.content or {}
    tab.tracker.emit(emitters.video_event(req.action, emitters.VideoInfo(
        title=lesson.title,
        url=content.get("video_url"),
        course_id=course.id,
        lesson_id=lesson.id,
        course_title=course.title,
        current_time=req.current_time,
        duration=req.duration,
        playback_rate=req.playback_rate,
    )), user.id)
    return {"status": "accepted"}


@router.post("/lessons/{lesson_id}/quiz")
async def submit_quiz(
    lesson_id: int,
    req: QuizSubmission,
    user: UserRow = Depends(require_user),
    tab: TabSession = Depends(current_tab),
    session: AsyncSession = Depends(get_session),
):
    """Grade a quiz attempt, record progress and report the attempt."""
    repo = CourseRepository(session)
    lesson, course = await _load_lesson(repo, lesson_id)
    if lesson.content_type != "quiz":
        raise HTTPException(status_code=400, detail="Lesson is not a quiz")

    questions = (lesson.content or {}).get("questions", [])
    if not questions:
        raise HTTPException(status_code=400, detail="Quiz has no questions")
    outcome = score_quiz(questions, req.answers)

    await repo.update_progress(
        user.id, lesson,
        "completed" if outcome.passed else "in_progress",
        score=outcome.score,
        time_spent=req.time_taken or 0,
    )
    await session.commit()

    tab.tracker.emit(emitters.quiz_event("completed", emitters.QuizInfo(
        quiz_id=lesson.id,
        title=lesson.title,
        course_id=course.id,
        lesson_id=lesson.id,
        score=outcome.score,
        attempt_number=req.attempt_number,
        time_taken=req.time_taken,
        answers=dict(req.answers),
    )), user.id)
    return {
        "score": outcome.score,
        "correct": outcome.correct,
        "total": outcome.total,
        "passed": outcome.passed,
    }


# --- Dashboard / search ---

@router.get("/dashboard")
async def dashboard(
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """Enrolled courses with completion, plus courses still available."""
    repo = CourseRepository(session)
    enrolled = await repo.user_enrollments(user.id)
    course_ids = [c.id for _, c in enrolled]
    totals = await repo.lesson_counts(course_ids)
    progress = await repo.get_progress(user.id)

    completed_by_course: dict[int, int] = {}
    scores = []
    for p in progress:
        if p.status == "completed":
            completed_by_course[p.course_id] = completed_by_course.get(p.course_id, 0) + 1
        if p.score is not None:
            scores.append(p.score)

    enrollments = []
    for enrollment, course in enrolled:
        total = totals.get(course.id, 0)
        done = completed_by_course.get(course.id, 0)
        enrollments.append({
            **_course_dict(course),
            "enrolled_at": enrollment.enrolled_at.isoformat() if enrollment.enrolled_at else None,
            "completed_lessons": done,
            "total_lessons": total,
            "progress_percent": percent(done, total),
        })

    available = [c for c in await repo.list_published() if c.id not in set(course_ids)]
    return {
        "user": {"id": user.id, "first_name": user.first_name, "last_name": user.last_name},
        "enrollments": enrollments,
        "available_courses": [_course_dict(c) for c in available],
        "stats": {
            "enrolled_courses": len(enrollments),
            "completed_lessons": sum(completed_by_course.values()),
            "average_score": percent(sum(scores), len(scores) * 100) if scores else None,
        },
    }


@router.get("/search")
async def search(
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(20, ge=1, le=100),
    user: Optional[UserRow] = Depends(get_current_user),
    tab: TabSession = Depends(current_tab),
    session: AsyncSession = Depends(get_session),
):
    repo = CourseRepository(session)
    results = await repo.search_courses(q, limit=limit)
    tab.tracker.emit(emitters.search_performed(q, len(results)), user.id if user else None)
    return {"query": q, "courses": [_course_dict(c) for c in results], "count": len(results)}
