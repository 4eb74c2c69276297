"""Descriptor builders for the interactions the app reports.

Each builder only shapes an `EventDescriptor`: component, event name,
context line and the Moodle-style description sentence. `{user_id}` in a
description is filled in by the tracker with the authenticated user.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from config.settings import settings
from learnhub.clickstream.models import ACTOR_PLACEHOLDER, Component, EventDescriptor

_ACTOR = f"The user with id '{ACTOR_PLACEHOLDER}'"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _course_context(course_id: Any, course_name: Optional[str]) -> str:
    return f"Course: {course_name or f'Course ID {course_id}'}"


@dataclass
class VideoInfo:
    title: str
    url: Optional[str] = None
    course_id: Optional[int] = None
    lesson_id: Optional[int] = None
    course_title: Optional[str] = None
    current_time: float = 0
    duration: float = 0
    playback_rate: float = 1


@dataclass
class QuizInfo:
    quiz_id: Any
    title: Optional[str] = None
    course_id: Optional[int] = None
    lesson_id: Optional[int] = None
    score: Optional[int] = None
    attempt_number: int = 1
    time_taken: Optional[int] = None  # seconds
    answers: Optional[dict[str, Any]] = None


# ---- Page lifecycle ----

def page_viewed(
    path: str,
    title: Optional[str] = None,
    search: Optional[str] = None,
    previous_page: Optional[str] = None,
    **extra: Any,
) -> EventDescriptor:
    return EventDescriptor(
        component=Component.SYSTEM,
        event_name="Page viewed",
        event_context=f"Page: {path}",
        description=f"{_ACTOR} viewed the page '{path}'.",
        additional_data={
            "page_title": title,
            "page_path": path,
            "page_search": search or "",
            "previous_page": previous_page,
            **extra,
        },
    )


def navigation(from_page: str, to_page: str) -> EventDescriptor:
    return EventDescriptor(
        component=Component.NAVIGATION,
        event_name="Page navigation",
        event_context="Navigation",
        description=f"{_ACTOR} navigated from {from_page} to {to_page}",
        additional_data={
            "from_page": from_page,
            "to_page": to_page,
            "navigation_type": "internal",
        },
    )


def page_unload(path: str, time_spent_seconds: int) -> EventDescriptor:
    return EventDescriptor(
        component=Component.SYSTEM,
        event_name="Page unload",
        event_context=f"Page: {path}",
        description=f"{_ACTOR} left the page '{path}' after {time_spent_seconds} seconds.",
        additional_data={
            "time_spent_seconds": time_spent_seconds,
            "page_path": path,
        },
    )


def error_occurred(
    error_type: str,
    message: str,
    context: Optional[dict[str, Any]] = None,
    stack: Optional[str] = None,
    url: Optional[str] = None,
) -> EventDescriptor:
    return EventDescriptor(
        component=Component.SYSTEM,
        event_name="Error occurred",
        event_context="System Error",
        description=f"{_ACTOR} encountered {error_type}: {message}",
        additional_data={
            "error_type": error_type,
            "error_message": message,
            "error_context": context or {},
            "stack_trace": stack[:500] if stack else None,
            "url": url,
            "timestamp": _now_iso(),
        },
    )


# ---- Courses and lessons ----

def course_viewed(course_id: int, course_name: str = "") -> EventDescriptor:
    return EventDescriptor(
        component=Component.SYSTEM,
        event_name="Course viewed",
        event_context=_course_context(course_id, course_name),
        description=f"{_ACTOR} viewed the course with id '{course_id}'.",
        course_id=course_id,
        additional_data={"course_name": course_name},
    )


def lesson_started(
    lesson_id: int, course_id: int, lesson_name: str = "", course_name: str = "",
) -> EventDescriptor:
    return EventDescriptor(
        component=Component.SYSTEM,
        event_name="Lesson started",
        event_context=_course_context(course_id, course_name),
        description=f"{_ACTOR} started lesson '{lesson_name or lesson_id}' in course '{course_id}'.",
        lesson_id=lesson_id,
        course_id=course_id,
        additional_data={"lesson_name": lesson_name, "course_name": course_name},
    )


def lesson_completed(
    lesson_id: int,
    course_id: int,
    lesson_name: str = "",
    course_name: str = "",
    duration: Optional[int] = None,
) -> EventDescriptor:
    return EventDescriptor(
        component=Component.SYSTEM,
        event_name="Lesson completed",
        event_context=_course_context(course_id, course_name),
        description=f"{_ACTOR} completed lesson '{lesson_name or lesson_id}' in course '{course_id}'.",
        lesson_id=lesson_id,
        course_id=course_id,
        additional_data={
            "lesson_name": lesson_name,
            "course_name": course_name,
            "completion_duration": duration,
        },
    )


def course_module_viewed(
    module_type: str, module_id: Any, course_id: int, course_name: str = "",
) -> EventDescriptor:
    return EventDescriptor(
        component=Component.SYSTEM,
        event_name="Course module viewed",
        event_context=f"Course: {course_name}",
        description=f"{_ACTOR} viewed the '{module_type}' activity with course module id '{module_id}'.",
        course_id=course_id,
        additional_data={
            "module_type": module_type,
            "module_id": module_id,
            "course_name": course_name,
            "activity_type": module_type,
        },
    )


def log_report_viewed(course_id: int, course_name: str) -> EventDescriptor:
    return EventDescriptor(
        component=Component.LOGS,
        event_name="Log report viewed",
        event_context=f"Course: {course_name}",
        description=f"{_ACTOR} viewed the log report for the course with id '{course_id}'.",
        course_id=course_id,
        additional_data={"course_name": course_name, "report_type": "log_report"},
    )


# ---- Media and assessment ----

def video_event(action: str, video: VideoInfo) -> EventDescriptor:
    return EventDescriptor(
        component=Component.VIDEO,
        event_name=f"Video {action}",
        event_context=_course_context(video.course_id, video.course_title),
        description=f"{_ACTOR} {action} video: {video.title}",
        course_id=video.course_id,
        lesson_id=video.lesson_id,
        additional_data={
            "video_action": action,
            "video_title": video.title,
            "video_url": video.url,
            "current_time": video.current_time or 0,
            "duration": video.duration or 0,
            "playback_rate": video.playback_rate or 1,
        },
    )


def quiz_event(action: str, quiz: QuizInfo, pass_score: Optional[int] = None) -> EventDescriptor:
    if pass_score is None:
        pass_score = settings.QUIZ_PASS_SCORE
    label = quiz.title or quiz.quiz_id
    return EventDescriptor(
        component=Component.QUIZ,
        event_name=f"Quiz {action}",
        event_context=f"Quiz: {label}",
        description=f"{_ACTOR} {action} quiz '{label}' in course '{quiz.course_id}'.",
        course_id=quiz.course_id,
        lesson_id=quiz.lesson_id,
        additional_data={
            "quiz_action": action,
            "quiz_title": quiz.title,
            "quiz_id": quiz.quiz_id,
            "score": quiz.score,
            "attempt_number": quiz.attempt_number,
            "time_taken_seconds": quiz.time_taken,
            "answers": quiz.answers,
            "passed": quiz.score is not None and quiz.score >= pass_score,
        },
    )


def quiz_attempt_reviewed(
    quiz_id: Any, attempt_id: Any, course_id: int, quiz_name: str = "",
) -> EventDescriptor:
    label = quiz_name or quiz_id
    return EventDescriptor(
        component=Component.QUIZ,
        event_name="Quiz attempt reviewed",
        event_context=f"Quiz: {label}",
        description=(
            f"{_ACTOR} has had their attempt with id '{attempt_id}' reviewed for quiz '{label}'."
        ),
        course_id=course_id,
        additional_data={
            "quiz_id": quiz_id,
            "quiz_name": quiz_name,
            "attempt_id": attempt_id,
            "review_type": "attempt_review",
        },
    )


def discussion_viewed(
    discussion_id: Any,
    forum_name: str,
    course_id: int,
    course_name: str = "",
    course_module_id: Optional[str] = None,
) -> EventDescriptor:
    where = f" in the forum with course module id '{course_module_id}'" if course_module_id else ""
    return EventDescriptor(
        component=Component.FORUM,
        event_name="Discussion viewed",
        event_context=f"Forum: {forum_name}",
        description=f"{_ACTOR} has viewed the discussion with id '{discussion_id}'{where}.",
        origin="ws",
        course_id=course_id,
        additional_data={
            "discussion_id": discussion_id,
            "forum_name": forum_name,
            "course_name": course_name,
            "course_module_id": course_module_id,
        },
    )


# ---- Interaction ----

def search_performed(query: str, results_count: int = 0) -> EventDescriptor:
    return EventDescriptor(
        component=Component.SEARCH,
        event_name="Search performed",
        event_context="Search",
        description=f'{_ACTOR} searched for: "{query}"',
        additional_data={
            "search_query": query,
            "results_count": results_count,
            "search_timestamp": _now_iso(),
        },
    )


def engagement(
    element_type: str,
    action: str,
    element_id: str,
    additional_data: Optional[dict[str, Any]] = None,
) -> EventDescriptor:
    return EventDescriptor(
        component=Component.INTERACTION,
        event_name=f"{element_type} {action}",
        event_context="User Interaction",
        description=f"{_ACTOR} {action} {element_type}: {element_id}",
        additional_data={
            "element_type": element_type,
            "element_id": element_id,
            "action": action,
            "interaction_timestamp": _now_iso(),
            **(additional_data or {}),
        },
    )


def click(element_id: str, additional_data: Optional[dict[str, Any]] = None) -> EventDescriptor:
    return engagement("Button", "clicked", element_id, additional_data)


def form_submitted(form_id: str, form_data: Optional[dict[str, Any]] = None) -> EventDescriptor:
    return EventDescriptor(
        component=Component.FORM,
        event_name="Form submitted",
        event_context="Form",
        description=f"{_ACTOR} submitted form: {form_id}",
        additional_data={
            "form_id": form_id,
            "form_data": form_data or {},
            "timestamp": _now_iso(),
        },
    )


def file_downloaded(
    file_name: str,
    file_type: str,
    course_id: Optional[int] = None,
    lesson_id: Optional[int] = None,
) -> EventDescriptor:
    return EventDescriptor(
        component=Component.FILE,
        event_name="File downloaded",
        event_context="File",
        description=f"{_ACTOR} downloaded file: {file_name}",
        course_id=course_id,
        lesson_id=lesson_id,
        additional_data={
            "file_name": file_name,
            "file_type": file_type,
            "download_timestamp": _now_iso(),
        },
    )


# ---- Auth ----

def user_login(method: str = "email") -> EventDescriptor:
    return EventDescriptor(
        component=Component.AUTH,
        event_name="User login",
        event_context="Authentication",
        description=f"{_ACTOR} logged in via {method}",
        additional_data={"login_method": method, "login_timestamp": _now_iso()},
    )


def user_logout(session_duration_seconds: Optional[int] = None) -> EventDescriptor:
    return EventDescriptor(
        component=Component.AUTH,
        event_name="User logout",
        event_context="Authentication",
        description=f"{_ACTOR} logged out",
        additional_data={
            "session_duration_seconds": session_duration_seconds,
            "logout_timestamp": _now_iso(),
        },
    )


def user_registration(method: str = "email") -> EventDescriptor:
    return EventDescriptor(
        component=Component.AUTH,
        event_name="User registration",
        event_context="Authentication",
        description=f"{_ACTOR} registered via {method}",
        additional_data={
            "registration_method": method,
            "registration_timestamp": _now_iso(),
        },
    )


# ---- Reports ----

def analytics_viewed() -> EventDescriptor:
    return EventDescriptor(
        component=Component.ANALYTICS,
        event_name="Page viewed",
        event_context="Analytics Page",
        description=f"{_ACTOR} viewed the analytics page.",
    )
