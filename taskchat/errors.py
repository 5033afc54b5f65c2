from __future__ import annotations


class TaskChatError(Exception):
    """Base class for errors raised by taskchat components."""


class NotFoundError(TaskChatError):
    """Resource is missing or owned by someone else.

    Both cases are reported identically so a caller cannot test for the
    existence of another owner's rows.
    """

    def __init__(self, kind: str, resource_id: int | None) -> None:
        self.kind = kind
        self.resource_id = resource_id
        super().__init__(f"{kind} {resource_id} not found")


class ValidationError(TaskChatError, ValueError):
    """Input rejected before any side effect."""


class MessageValidationError(ValidationError):
    pass


class AgentFailedError(TaskChatError):
    """The agent raised or timed out while producing a reply."""

    user_message = "Sorry, something went wrong while generating a reply. Please try again."

    def __init__(self, conversation_id: int) -> None:
        self.conversation_id = conversation_id
        super().__init__(self.user_message)


class ConversationBusyError(TaskChatError):
    """Another turn is already in flight for the conversation."""

    def __init__(self, conversation_id: int) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"conversation {conversation_id} is busy")


class RateLimitedError(TaskChatError):
    def __init__(self, owner: str, limit: int) -> None:
        self.owner = owner
        self.limit = limit
        super().__init__(f"rate limit exceeded: max {limit} requests per minute")


__all__ = [
    "TaskChatError",
    "NotFoundError",
    "ValidationError",
    "MessageValidationError",
    "AgentFailedError",
    "ConversationBusyError",
    "RateLimitedError",
]
