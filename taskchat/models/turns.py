from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from .records import Message, Role


class Turn(BaseModel):
    """Role-tagged text handed to the agent; the in-memory view of a Message."""

    role: Role
    content: str

    @classmethod
    def from_message(cls, message: Message) -> Turn:
        return cls(role=message.role, content=message.content)

    def as_input_item(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ToolCall(BaseModel):
    """Record of one task tool invocation made while producing a reply."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    status: Literal["ok", "not_found", "invalid"]
    result: str


class TurnResult(BaseModel):
    conversation_id: int
    response: str
    tool_calls: list[ToolCall] = Field(default_factory=list)


__all__ = ["Turn", "ToolCall", "TurnResult"]
