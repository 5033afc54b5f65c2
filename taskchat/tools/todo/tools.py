from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from taskchat.errors import NotFoundError, ValidationError
from taskchat.models.records import Task
from taskchat.models.turns import ToolCall
from taskchat.observability import get_json_logger, get_metrics
from taskchat.store.interface import Store

ToolStatus = Literal["ok", "not_found", "invalid"]

TOOL_NAMES = ("add_task", "list_tasks", "complete_task", "delete_task", "update_task")


@dataclass(slots=True)
class ToolResult:
    """Structured outcome of a tool call; `text` is what the agent sees."""

    tool: str
    status: ToolStatus
    text: str
    task: Task | None = None
    tasks: list[Task] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def format_task_line(task: Task) -> str:
    marker = "[x]" if task.completed else "[ ]"
    return f"{marker} #{task.id}: {task.title}"


def format_task_list(tasks: list[Task]) -> str:
    if not tasks:
        return "No tasks found."
    return "\n".join(format_task_line(t) for t in tasks)


def _not_found(tool: str, task_id: int) -> ToolResult:
    return ToolResult(tool=tool, status="not_found", text=f"Task #{task_id} not found.")


def _invalid(tool: str, exc: ValidationError) -> ToolResult:
    return ToolResult(tool=tool, status="invalid", text=f"Error: {exc}")


class TaskTools:
    """The five task operations an agent may call, bound to one owner.

    The owner is fixed at construction from the verified request identity, so
    nothing the agent passes can redirect a call to another user's tasks.
    Every call is appended to `calls` in invocation order.
    """

    def __init__(self, store: Store, owner: str) -> None:
        self._store = store
        self._owner = owner
        self.calls: list[ToolCall] = []

    @property
    def owner(self) -> str:
        return self._owner

    def _run(
        self,
        tool: str,
        arguments: dict[str, Any],
        op: Callable[[], ToolResult],
        task_id: int | None = None,
    ) -> ToolResult:
        logger = get_json_logger("taskchat.tools")
        metrics = get_metrics()
        logger.info(
            "tool call",
            extra={"event": "tool_call", "tool": tool, "attributes": arguments},
        )
        metrics.increment("tool_calls", {"tool": tool})
        try:
            result = op()
        except NotFoundError:
            result = _not_found(tool, task_id if task_id is not None else 0)
        except ValidationError as exc:
            result = _invalid(tool, exc)
        except Exception:
            logger.exception("tool error", extra={"event": "tool_error", "tool": tool})
            metrics.increment("tool_errors", {"tool": tool})
            raise
        if not result.ok:
            metrics.increment("tool_rejections", {"tool": tool, "status": result.status})
        self.calls.append(
            ToolCall(name=tool, arguments=arguments, status=result.status, result=result.text)
        )
        return result

    def create_task(self, title: str, description: str | None = None) -> ToolResult:
        def op() -> ToolResult:
            task = self._store.create_task(self._owner, title, description)
            return ToolResult(
                tool="add_task",
                status="ok",
                text=f"Created task #{task.id}: {task.title}",
                task=task,
            )

        args: dict[str, Any] = {"title": title}
        if description is not None:
            args["description"] = description
        return self._run("add_task", args, op)

    def list_tasks(self, status: str = "all") -> ToolResult:
        def op() -> ToolResult:
            tasks = self._store.list_tasks(self._owner, status)
            return ToolResult(
                tool="list_tasks", status="ok", text=format_task_list(tasks), tasks=tasks
            )

        return self._run("list_tasks", {"status": status}, op)

    def complete_task(self, task_id: int) -> ToolResult:
        def op() -> ToolResult:
            task = self._store.mark_complete(self._owner, task_id)
            return ToolResult(
                tool="complete_task",
                status="ok",
                text=f"Completed task #{task.id}: {task.title}",
                task=task,
            )

        return self._run("complete_task", {"task_id": task_id}, op, task_id)

    def delete_task(self, task_id: int) -> ToolResult:
        def op() -> ToolResult:
            task = self._store.delete_task(self._owner, task_id)
            return ToolResult(
                tool="delete_task",
                status="ok",
                text=f"Deleted task #{task.id}: {task.title}",
                task=task,
            )

        return self._run("delete_task", {"task_id": task_id}, op, task_id)

    def update_task(
        self, task_id: int, title: str | None = None, description: str | None = None
    ) -> ToolResult:
        def op() -> ToolResult:
            task = self._store.update_task(
                self._owner, task_id, title=title, description=description
            )
            return ToolResult(
                tool="update_task",
                status="ok",
                text=f"Updated task #{task.id}: {task.title}",
                task=task,
            )

        args: dict[str, Any] = {"task_id": task_id}
        if title is not None:
            args["title"] = title
        if description is not None:
            args["description"] = description
        return self._run("update_task", args, op, task_id)

    def as_function_tools(self) -> list[Any]:
        """Expose the operations as Agents SDK function tools bound to this owner."""
        from agents import function_tool

        @function_tool(name_override="add_task", strict_mode=False)
        def add_task(title: str, description: str | None = None) -> str:
            """Create a new task for the user.

            Args:
                title: Short title of the task.
                description: Optional longer description.
            """
            return self.create_task(title, description).text

        @function_tool(name_override="list_tasks", strict_mode=False)
        def list_tasks(status: str = "all") -> str:
            """List the user's tasks.

            Args:
                status: One of "all", "pending" or "completed".
            """
            return self.list_tasks(status).text

        @function_tool(name_override="complete_task")
        def complete_task(task_id: int) -> str:
            """Mark a task as completed.

            Args:
                task_id: Numeric id of the task.
            """
            return self.complete_task(task_id).text

        @function_tool(name_override="delete_task")
        def delete_task(task_id: int) -> str:
            """Delete a task.

            Args:
                task_id: Numeric id of the task.
            """
            return self.delete_task(task_id).text

        @function_tool(name_override="update_task", strict_mode=False)
        def update_task(
            task_id: int, title: str | None = None, description: str | None = None
        ) -> str:
            """Change a task's title and/or description.

            Args:
                task_id: Numeric id of the task.
                title: New title, if changing it.
                description: New description, if changing it.
            """
            return self.update_task(task_id, title, description).text

        return [add_task, list_tasks, complete_task, delete_task, update_task]


__all__ = [
    "TOOL_NAMES",
    "TaskTools",
    "ToolResult",
    "format_task_line",
    "format_task_list",
]
