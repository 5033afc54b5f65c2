from __future__ import annotations

import datetime as _dt
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]
StatusFilter = Literal["all", "pending", "completed"]

ROLES: frozenset[str] = frozenset({"user", "assistant"})
STATUS_FILTERS: frozenset[str] = frozenset({"all", "pending", "completed"})

TITLE_MAX_CHARS = 200
DESCRIPTION_MAX_CHARS = 1000


def utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.UTC)


def as_utc(value: _dt.datetime) -> _dt.datetime:
    """Treat naive values as UTC; SQLite drops the offset on read."""
    if value.tzinfo is None:
        return value.replace(tzinfo=_dt.UTC)
    return value.astimezone(_dt.UTC)


UtcDatetime = Annotated[_dt.datetime, AfterValidator(as_utc)]


class Task(BaseModel):
    """A todo item owned by exactly one user."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    title: str
    description: str | None = None
    completed: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class Conversation(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class Message(BaseModel):
    """One turn of a conversation. Append-only.

    `user_id` is copied from the owning conversation so ownership checks do not
    need a join.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: int
    user_id: str
    role: Role
    content: str
    created_at: UtcDatetime = Field(default_factory=utcnow)


__all__ = [
    "Role",
    "StatusFilter",
    "ROLES",
    "STATUS_FILTERS",
    "TITLE_MAX_CHARS",
    "DESCRIPTION_MAX_CHARS",
    "utcnow",
    "as_utc",
    "UtcDatetime",
    "Task",
    "Conversation",
    "Message",
]
