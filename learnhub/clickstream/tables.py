"""Clickstream table: one row per tracked interaction, Moodle log layout."""
from __future__ import annotations

from sqlalchemy import Column, String, Integer, Text, DateTime, JSON, ForeignKey, Index

from learnhub.db.tables import Base


class ClickstreamRow(Base):
    __tablename__ = "clickstream"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    # Client-local wall clock, stored naive (no UTC marker)
    time = Column(DateTime, nullable=False, index=True)
    event_context = Column(String(500), nullable=True)
    component = Column(String(100), nullable=True)
    event_name = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    origin = Column(String(50), nullable=False, default="web")
    ip_address = Column(String(45), nullable=True)
    session_id = Column(String(255), nullable=True, index=True)
    page_url = Column(String(500), nullable=True)
    user_agent = Column(Text, nullable=True)
    additional_data = Column(JSON, default=dict)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id"), nullable=True)

    __table_args__ = (
        Index("ix_clickstream_user_time", "user_id", "time"),
        Index("ix_clickstream_component_time", "component", "time"),
    )
