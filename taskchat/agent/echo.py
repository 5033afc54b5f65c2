from __future__ import annotations

import asyncio

from taskchat.models.turns import Turn
from taskchat.tools.todo.tools import TaskTools, ToolResult


def _parse_id(raw: str) -> int | None:
    value = raw.strip().lstrip("#")
    try:
        return int(value)
    except ValueError:
        return None


class EchoAgent:
    """Deterministic agent for local runs and tests; no external API calls.

    Protocol, applied to the last user turn:
    - ``add: <title>`` or ``add: <title> | <description>`` creates a task
    - ``list`` or ``list: <all|pending|completed>`` lists tasks
    - ``done: <id>`` completes, ``delete: <id>`` deletes
    - ``update: <id>: <new title>`` renames
    - anything else is echoed back
    Tool replies are returned verbatim. Tools run in a worker thread so store
    I/O never blocks the event loop.
    """

    async def reply(self, turns: list[Turn], tools: TaskTools) -> str:
        text = ""
        for turn in reversed(turns):
            if turn.role == "user":
                text = turn.content.strip()
                break
        command, _, rest = text.partition(":")
        command = command.strip().lower()
        rest = rest.strip()

        result: ToolResult
        if command == "add" and rest:
            title, _, description = rest.partition("|")
            result = await asyncio.to_thread(
                tools.create_task, title.strip(), description.strip() or None
            )
            return result.text
        if command == "list":
            result = await asyncio.to_thread(tools.list_tasks, rest or "all")
            return result.text
        if command in {"done", "complete", "delete", "update"}:
            raw_id, _, new_title = rest.partition(":")
            task_id = _parse_id(raw_id)
            if task_id is None:
                return "Error: task id must be a number."
            if command == "delete":
                result = await asyncio.to_thread(tools.delete_task, task_id)
            elif command == "update":
                result = await asyncio.to_thread(
                    tools.update_task, task_id, new_title.strip() or None
                )
            else:
                result = await asyncio.to_thread(tools.complete_task, task_id)
            return result.text
        return f"You said: {text}" if text else "(no content)"


__all__ = ["EchoAgent"]
