from __future__ import annotations

from taskchat.errors import ValidationError
from taskchat.models.records import (
    DESCRIPTION_MAX_CHARS,
    ROLES,
    STATUS_FILTERS,
    TITLE_MAX_CHARS,
    Conversation,
    Message,
    Task,
)

DEFAULT_MAX_MESSAGE_CHARS = 4000


class Store:
    """Pluggable persistence for tasks, conversations and messages.

    Every lookup is scoped by owner. A row owned by someone else is reported
    with `NotFoundError`, the same as a missing row. Backend failures propagate
    as the backend library's own exceptions.
    """

    max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS

    # conversations / messages
    def get_or_create_conversation(
        self, owner: str, existing_id: int | None = None
    ) -> Conversation:  # pragma: no cover - interface only
        raise NotImplementedError

    def get_conversation(
        self, owner: str, conversation_id: int
    ) -> Conversation:  # pragma: no cover - interface only
        raise NotImplementedError

    def list_conversations(self, owner: str) -> list[Conversation]:  # pragma: no cover
        raise NotImplementedError

    def delete_conversation(
        self, owner: str, conversation_id: int
    ) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def append_message(
        self, conversation_id: int, owner: str, role: str, content: str
    ) -> Message:  # pragma: no cover - interface only
        raise NotImplementedError

    def load_history(
        self, conversation_id: int, owner: str | None = None
    ) -> list[Message]:  # pragma: no cover - interface only
        raise NotImplementedError

    # tasks
    def create_task(
        self, owner: str, title: str, description: str | None = None
    ) -> Task:  # pragma: no cover - interface only
        raise NotImplementedError

    def get_task(self, owner: str, task_id: int) -> Task:  # pragma: no cover
        raise NotImplementedError

    def list_tasks(self, owner: str, status: str = "all") -> list[Task]:  # pragma: no cover
        raise NotImplementedError

    def mark_complete(self, owner: str, task_id: int) -> Task:  # pragma: no cover
        raise NotImplementedError

    def delete_task(self, owner: str, task_id: int) -> Task:  # pragma: no cover
        raise NotImplementedError

    def update_task(
        self,
        owner: str,
        task_id: int,
        *,
        title: str | None = None,
        description: str | None = None,
    ) -> Task:  # pragma: no cover - interface only
        raise NotImplementedError

    def ping(self) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    def close(self) -> None:
        return None


# ----------------------------
# Shared validation
# ----------------------------


def require_owner(owner: str) -> str:
    if not isinstance(owner, str) or not owner.strip():
        raise ValidationError("owner must be a non-empty string")
    return owner


def clean_title(title: str) -> str:
    if not isinstance(title, str):
        raise ValidationError("title must be a string")
    value = title.strip()
    if not value:
        raise ValidationError("title must be non-empty")
    if len(value) > TITLE_MAX_CHARS:
        raise ValidationError(f"title must be at most {TITLE_MAX_CHARS} characters")
    return value


def clean_description(description: str | None) -> str | None:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("description must be a string")
    if len(description) > DESCRIPTION_MAX_CHARS:
        raise ValidationError(
            f"description must be at most {DESCRIPTION_MAX_CHARS} characters"
        )
    return description


def check_status(status: str) -> str:
    if status not in STATUS_FILTERS:
        allowed = ", ".join(sorted(STATUS_FILTERS))
        raise ValidationError(f"status must be one of: {allowed}")
    return status


def check_message(role: str, content: str, max_chars: int) -> None:
    if role not in ROLES:
        raise ValidationError(f"role must be 'user' or 'assistant', got {role!r}")
    if not isinstance(content, str):
        raise ValidationError("content must be a string")
    if len(content) > max_chars:
        raise ValidationError(f"content must be at most {max_chars} characters")


def matches_status(task: Task, status: str) -> bool:
    if status == "pending":
        return not task.completed
    if status == "completed":
        return task.completed
    return True


__all__ = [
    "DEFAULT_MAX_MESSAGE_CHARS",
    "Store",
    "require_owner",
    "clean_title",
    "clean_description",
    "check_status",
    "check_message",
    "matches_status",
]
