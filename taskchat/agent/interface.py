from __future__ import annotations

from typing import Protocol

from taskchat.models.turns import Turn
from taskchat.tools.todo.tools import TaskTools


class Agent(Protocol):
    """Produces one assistant reply for a conversation.

    `turns` is the full history, oldest first, ending with the new user
    message. The agent may call any of `tools` zero or more times before
    returning its final text.
    """

    async def reply(self, turns: list[Turn], tools: TaskTools) -> str: ...


__all__ = ["Agent"]
