#!/usr/bin/env python3
"""Seed the course catalogue with the sample courses and lessons."""
import asyncio
import logging
import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from learnhub.logging_config import setup_logging
from learnhub.db.engine import engine, async_session
from learnhub.db.tables import Base, CourseRow, LessonRow

logger = logging.getLogger("seed_courses")

COURSES = [
    {
        "title": "Introduction to Web Development",
        "description": "Learn the fundamentals of HTML, CSS, and JavaScript to build modern web applications.",
        "thumbnail_url": "https://images.unsplash.com/photo-1517180102446-f3ece451e9d8?w=400&h=300&fit=crop",
        "difficulty_level": "beginner", "duration_hours": 8, "category": "Development",
        "lessons": [
            {
                "title": "HTML Basics", "content_type": "text", "duration_minutes": 30,
                "content": {"body": "HTML (HyperText Markup Language) is the standard markup language for creating web pages."},
            },
            {
                "title": "CSS Styling Fundamentals", "content_type": "video", "duration_minutes": 45,
                "content": {
                    "video_url": "https://www.youtube.com/watch?v=yfoY53QXEnI",
                    "description": "Learn CSS basics including selectors, properties, and the box model",
                },
            },
            {
                "title": "JavaScript Basics Quiz", "content_type": "quiz", "duration_minutes": 20,
                "content": {
                    "instructions": "Test your understanding of JavaScript fundamentals",
                    "questions": [
                        {
                            "id": 1,
                            "question": "What does var stand for in JavaScript?",
                            "options": ["Variable", "Variant", "Various", "Virtual"],
                            "correct": 0,
                        },
                    ],
                },
            },
        ],
    },
    {
        "title": "Data Science Fundamentals",
        "description": "Master Python, statistics, and data visualization to unlock insights from data.",
        "thumbnail_url": "https://images.unsplash.com/photo-1551288049-bebda4e38f71?w=400&h=300&fit=crop",
        "difficulty_level": "intermediate", "duration_hours": 12, "category": "Data",
        "lessons": [],
    },
    {
        "title": "Digital Marketing Strategy",
        "description": "Learn modern marketing techniques including SEO, social media marketing, and analytics.",
        "thumbnail_url": "https://images.unsplash.com/photo-1460925895917-afdab827c52f?w=400&h=300&fit=crop",
        "difficulty_level": "beginner", "duration_hours": 6, "category": "Marketing",
        "lessons": [],
    },
]


async def seed():
    import learnhub.clickstream.tables  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    added = 0
    async with async_session() as session:
        for entry in COURSES:
            existing = await session.execute(select(CourseRow).where(CourseRow.title == entry["title"]))
            if existing.scalar_one_or_none():
                continue
            lessons = entry["lessons"]
            course = CourseRow(**{k: v for k, v in entry.items() if k != "lessons"})
            session.add(course)
            await session.flush()
            for order, lesson in enumerate(lessons, 1):
                session.add(LessonRow(course_id=course.id, order_index=order, **lesson))
            added += 1
        await session.commit()
    logger.info("Seeded %d courses (%d already present)", added, len(COURSES) - added)


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed())
