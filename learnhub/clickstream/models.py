"""Clickstream data shapes: descriptors in, canonical records out."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, JsonValue, field_validator

# Replaced with the authenticated user's id when the event is recorded
ACTOR_PLACEHOLDER = "{user_id}"

# Sentinel returned by IP resolution when no service answered
UNKNOWN_IP = "unknown"

# Extension point: event-specific keys, JSON-compatible values only
AdditionalData = dict[str, JsonValue]


class Component(str, Enum):
    """Coarse event category. Free strings are accepted as well."""
    SYSTEM = "System"
    VIDEO = "Video"
    QUIZ = "Quiz"
    FORUM = "Forum"
    AUTH = "Auth"
    NAVIGATION = "Navigation"
    SEARCH = "Search"
    INTERACTION = "Interaction"
    FORM = "Form"
    FILE = "File"
    LOGS = "Logs"
    ANALYTICS = "Analytics"


class EventDescriptor(BaseModel):
    """Loosely-typed description of something that happened.

    `context` and `name` are accepted as aliases for `event_context` and
    `event_name`.
    """
    component: str = Component.SYSTEM.value
    event_name: str = Field(
        "Unknown Event", max_length=100,
        validation_alias=AliasChoices("event_name", "name"),
    )
    event_context: str = Field(
        "", max_length=500,
        validation_alias=AliasChoices("event_context", "context"),
    )
    description: str = ""
    origin: str = Field("web", max_length=50)
    additional_data: AdditionalData = Field(default_factory=dict)
    course_id: Optional[int] = None
    lesson_id: Optional[int] = None

    @field_validator("component", mode="before")
    @classmethod
    def _component_label(cls, value: Any) -> Any:
        if isinstance(value, Component):
            return value.value
        return value or Component.SYSTEM.value

    @field_validator("event_name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> Any:
        return value or "Unknown Event"

    @field_validator("origin", mode="before")
    @classmethod
    def _default_origin(cls, value: Any) -> Any:
        return value or "web"

    @field_validator("event_context", "description", mode="before")
    @classmethod
    def _blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("additional_data", mode="before")
    @classmethod
    def _empty_mapping(cls, value: Any) -> Any:
        return {} if value is None else value

    def render_description(self, user_id: str) -> str:
        return self.description.replace(ACTOR_PLACEHOLDER, user_id)


class ClickstreamEvent(BaseModel):
    """A fully enriched record, ready to be written to the clickstream table."""
    user_id: str
    time: str  # local wall clock, ISO-like, no "Z"
    event_context: str = ""
    component: str = Component.SYSTEM.value
    event_name: str
    description: str = ""
    origin: str = "web"
    ip_address: Optional[str] = None
    session_id: str
    page_url: Optional[str] = None
    user_agent: Optional[str] = None
    additional_data: AdditionalData = Field(default_factory=dict)
    course_id: Optional[int] = None
    lesson_id: Optional[int] = None


@dataclass(frozen=True)
class TrackResult:
    """Outcome of a tracking call. Never raised, always returned.

    UI-facing callers are expected to drop failures on purpose; only
    diagnostic logging reflects them.
    """
    data: Optional[dict[str, Any]] = None
    error: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Optional[dict[str, Any]] = None) -> "TrackResult":
        return cls(data=data, error=None)

    @classmethod
    def failure(cls, error: Any) -> "TrackResult":
        return cls(data=None, error=error)

    @classmethod
    def skipped(cls) -> "TrackResult":
        """Tracking disabled: empty success."""
        return cls()
