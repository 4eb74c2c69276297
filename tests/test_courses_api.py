"""Course, lesson, quiz and dashboard endpoints, including what they track."""
from __future__ import annotations

import asyncio
import time

import httpx
import pytest
from sqlalchemy import select

from conftest import (
    LEARNER_ID, QUIZ_LESSON_ID, TEXT_LESSON_ID, VIDEO_LESSON_ID, get_test_session, tracked_events,
)
from learnhub.clickstream.context import ClientIPResolver
from learnhub.clickstream.routes import registry
from learnhub.db.tables import EnrollmentRow, UserProgressRow


async def _progress(lesson_id):
    async with get_test_session() as session:
        result = await session.execute(select(UserProgressRow).where(
            UserProgressRow.user_id == LEARNER_ID, UserProgressRow.lesson_id == lesson_id,
        ))
        return result.scalar_one_or_none()


@pytest.mark.asyncio
async def test_list_courses_hides_unpublished(client):
    resp = await client.get("/api/v1/courses")
    assert resp.status_code == 200
    titles = {c["title"] for c in resp.json()["courses"]}
    assert "Introduction to Data Science" in titles
    assert "Unreleased Course" not in titles


@pytest.mark.asyncio
async def test_course_detail_tracks_view(client, auth_headers):
    resp = await client.get("/api/v1/courses/3", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert [l["id"] for l in body["lessons"]] == [TEXT_LESSON_ID, VIDEO_LESSON_ID, QUIZ_LESSON_ID]
    assert body["lessons"][0]["status"] == "not_started"

    (event,) = await tracked_events()
    assert event.event_name == "Course viewed"
    assert event.course_id == 3
    assert event.event_context == "Course: Introduction to Data Science"


@pytest.mark.asyncio
async def test_anonymous_course_view_is_not_tracked(client):
    resp = await client.get("/api/v1/courses/3")
    assert resp.status_code == 200
    assert await tracked_events() == []


@pytest.mark.asyncio
async def test_missing_course_404(client):
    assert (await client.get("/api/v1/courses/999")).status_code == 404
    assert (await client.get("/api/v1/courses/5")).status_code == 404
    assert (await client.get("/api/v1/courses/999/lessons")).status_code == 404


@pytest.mark.asyncio
async def test_enroll_records_click(client, auth_headers):
    resp = await client.post("/api/v1/courses/3/enroll", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["enrolled"] is True

    (event,) = await tracked_events()
    assert event.component == "Interaction"
    assert "clicked" in event.event_name
    assert event.additional_data["element_id"] == "enroll-course-3"
    assert event.additional_data["course_title"] == "Introduction to Data Science"

    async with get_test_session() as session:
        rows = (await session.execute(select(EnrollmentRow))).scalars().all()
    assert [(r.user_id, r.course_id) for r in rows] == [(LEARNER_ID, 3)]


@pytest.mark.asyncio
async def test_enroll_is_idempotent(client, auth_headers):
    await client.post("/api/v1/courses/3/enroll", headers=auth_headers)
    resp = await client.post("/api/v1/courses/3/enroll", headers=auth_headers)
    assert resp.status_code == 200
    async with get_test_session() as session:
        rows = (await session.execute(select(EnrollmentRow))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_enroll_requires_auth(client):
    assert (await client.post("/api/v1/courses/3/enroll")).status_code == 401


@pytest.mark.asyncio
async def test_lesson_view_starts_lesson(client, auth_headers):
    resp = await client.get(f"/api/v1/lessons/{VIDEO_LESSON_ID}", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["previous_lesson_id"] == TEXT_LESSON_ID
    assert body["next_lesson_id"] == QUIZ_LESSON_ID
    assert body["progress"]["status"] == "in_progress"

    (event,) = await tracked_events()
    assert event.event_name == "Lesson started"
    assert event.lesson_id == VIDEO_LESSON_ID


@pytest.mark.asyncio
async def test_quiz_content_hides_answers(client, auth_headers):
    resp = await client.get(f"/api/v1/lessons/{QUIZ_LESSON_ID}", headers=auth_headers)
    questions = resp.json()["content"]["questions"]
    assert len(questions) == 10
    assert all("correct" not in q for q in questions)


@pytest.mark.asyncio
async def test_complete_lesson(client, auth_headers):
    resp = await client.post(
        f"/api/v1/lessons/{TEXT_LESSON_ID}/complete", headers=auth_headers, json={"duration": 95},
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    progress = await _progress(TEXT_LESSON_ID)
    assert progress.completed_at is not None
    assert progress.time_spent == 95

    (event,) = await tracked_events()
    assert event.event_name == "Lesson completed"
    assert event.additional_data["completion_duration"] == 95


@pytest.mark.asyncio
async def test_video_actions(client, auth_headers):
    resp = await client.post(f"/api/v1/lessons/{VIDEO_LESSON_ID}/video", headers=auth_headers, json={
        "action": "paused", "current_time": 42.5, "duration": 600,
    })
    assert resp.status_code == 202
    (event,) = await tracked_events()
    assert event.component == "Video"
    assert event.event_name == "Video paused"
    assert event.additional_data["current_time"] == 42.5
    assert event.additional_data["video_url"] == "https://videos.example.com/pandas.mp4"


@pytest.mark.asyncio
async def test_video_action_validation(client, auth_headers):
    bad_action = await client.post(f"/api/v1/lessons/{VIDEO_LESSON_ID}/video", headers=auth_headers, json={
        "action": "rewound",
    })
    not_video = await client.post(f"/api/v1/lessons/{TEXT_LESSON_ID}/video", headers=auth_headers, json={
        "action": "played",
    })
    assert bad_action.status_code == 400
    assert not_video.status_code == 400


@pytest.mark.asyncio
async def test_quiz_seven_of_ten_passes(client, auth_headers):
    answers = {str(i): 0 for i in range(1, 8)}
    answers.update({"8": 1, "9": 2, "10": 1})
    resp = await client.post(f"/api/v1/lessons/{QUIZ_LESSON_ID}/quiz", headers=auth_headers, json={
        "answers": answers, "time_taken": 120,
    })
    assert resp.status_code == 200
    assert resp.json() == {"score": 70, "correct": 7, "total": 10, "passed": True}

    (event,) = await tracked_events()
    assert event.component == "Quiz"
    assert event.event_name == "Quiz completed"
    assert event.additional_data["score"] == 70
    assert event.additional_data["passed"] is True

    progress = await _progress(QUIZ_LESSON_ID)
    assert progress.status == "completed"
    assert progress.score == 70


@pytest.mark.asyncio
async def test_quiz_failed_attempt(client, auth_headers):
    resp = await client.post(f"/api/v1/lessons/{QUIZ_LESSON_ID}/quiz", headers=auth_headers, json={
        "answers": {"1": 0, "2": 0},
    })
    assert resp.json()["score"] == 20
    assert resp.json()["passed"] is False
    assert (await _progress(QUIZ_LESSON_ID)).status == "in_progress"


@pytest.mark.asyncio
async def test_quiz_on_text_lesson(client, auth_headers):
    resp = await client.post(f"/api/v1/lessons/{TEXT_LESSON_ID}/quiz", headers=auth_headers, json={"answers": {}})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_dashboard(client, auth_headers):
    await client.post("/api/v1/courses/3/enroll", headers=auth_headers)
    await client.post(f"/api/v1/lessons/{TEXT_LESSON_ID}/complete", headers=auth_headers)

    resp = await client.get("/api/v1/dashboard", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    (course,) = body["enrollments"]
    assert course["id"] == 3
    assert course["completed_lessons"] == 1
    assert course["total_lessons"] == 3
    assert course["progress_percent"] == 33
    assert [c["id"] for c in body["available_courses"]] == [4]
    assert body["stats"]["enrolled_courses"] == 1


@pytest.mark.asyncio
async def test_search_tracks_query(client, auth_headers):
    resp = await client.get("/api/v1/search?q=data", headers=auth_headers)
    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()["courses"]] == [3]

    (event,) = await tracked_events()
    assert event.component == "Search"
    assert event.additional_data["search_query"] == "data"
    assert event.additional_data["results_count"] == 1


@pytest.mark.asyncio
async def test_search_escapes_wildcards(client):
    resp = await client.get("/api/v1/search?q=%25")
    assert resp.json()["count"] == 0


@pytest.mark.asyncio
async def test_slow_ip_lookup_does_not_hold_the_response(client, auth_headers, monkeypatch):
    async def slow_service(request):
        await asyncio.sleep(1.5)
        return httpx.Response(200, json={"ip": "198.51.100.9"})

    monkeypatch.setattr(registry, "resolver", ClientIPResolver(
        services=["https://api.ipify.org?format=json"],
        timeout=5,
        transport=httpx.MockTransport(slow_service),
    ))
    started = time.perf_counter()
    resp = await client.post("/api/v1/courses/3/enroll", headers=auth_headers)
    elapsed = time.perf_counter() - started
    assert resp.status_code == 200
    assert elapsed < 1.0

    (event,) = await tracked_events()
    assert event.additional_data["element_id"] == "enroll-course-3"
    assert event.ip_address == "198.51.100.9"
