from __future__ import annotations

from .tools import TOOL_NAMES, TaskTools, ToolResult, format_task_line, format_task_list

__all__ = ["TOOL_NAMES", "TaskTools", "ToolResult", "format_task_line", "format_task_list"]
