from __future__ import annotations

import types
from typing import Any

import pytest

from taskchat.agent import EchoAgent, build_agent
from taskchat.config import load_settings
from taskchat.models.turns import Turn
from taskchat.store.sql_store import SqlStore
from taskchat.tools.todo import TaskTools


def _turns(*pairs: tuple[str, str]) -> list[Turn]:
    return [Turn(role=role, content=content) for role, content in pairs]  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_echo_agent_echoes_plain_text(sql_store: SqlStore) -> None:
    tools = TaskTools(sql_store, "u1")

    turns = _turns(("user", "hi"), ("assistant", "x"), ("user", "yo"))

    reply = await EchoAgent().reply(turns, tools)

    assert reply == "You said: yo"
    assert tools.calls == []


@pytest.mark.asyncio
async def test_echo_agent_drives_every_tool(sql_store: SqlStore) -> None:
    tools = TaskTools(sql_store, "u1")
    agent = EchoAgent()

    created = await agent.reply(_turns(("user", "add: Read book | chapter 3")), tools)
    task_id = sql_store.list_tasks("u1")[0].id
    renamed = await agent.reply(_turns(("user", f"update: {task_id}: Read novel")), tools)
    done = await agent.reply(_turns(("user", f"done: #{task_id}")), tools)
    listed = await agent.reply(_turns(("user", "list: completed")), tools)
    deleted = await agent.reply(_turns(("user", f"delete: {task_id}")), tools)
    empty = await agent.reply(_turns(("user", "list")), tools)

    assert created == f"Created task #{task_id}: Read book"
    assert renamed == f"Updated task #{task_id}: Read novel"
    assert done == f"Completed task #{task_id}: Read novel"
    assert listed == f"[x] #{task_id}: Read novel"
    assert deleted == f"Deleted task #{task_id}: Read novel"
    assert empty == "No tasks found."
    assert [c.name for c in tools.calls] == [
        "add_task",
        "update_task",
        "complete_task",
        "list_tasks",
        "delete_task",
        "list_tasks",
    ]
    assert tools.calls[0].arguments == {"title": "Read book", "description": "chapter 3"}


@pytest.mark.asyncio
async def test_echo_agent_rejects_non_numeric_id(sql_store: SqlStore) -> None:
    tools = TaskTools(sql_store, "u1")

    reply = await EchoAgent().reply(_turns(("user", "done: first")), tools)

    assert reply == "Error: task id must be a number."
    assert tools.calls == []


def test_build_agent_selects_echo_without_key() -> None:
    assert isinstance(build_agent(load_settings({"OPENAI_API_KEY": ""})), EchoAgent)


def test_build_agent_selects_sdk_agent_with_key() -> None:
    from taskchat.agent.openai_agents import OpenAIAgentsAgent

    agent = build_agent(load_settings({"OPENAI_API_KEY": "sk-test", "AGENT_MODEL": "gpt-x"}))

    assert isinstance(agent, OpenAIAgentsAgent)
    assert agent.model == "gpt-x"


class _FakeSDKRunner:
    calls: list[dict[str, Any]] = []
    output: Any = "All done."

    @staticmethod
    async def run(agent: Any, input: Any, max_turns: int) -> Any:  # noqa: A002
        _FakeSDKRunner.calls.append({"agent": agent, "input": input, "max_turns": max_turns})
        return types.SimpleNamespace(final_output=_FakeSDKRunner.output, new_items=[])


def _patch_sdk_runner(monkeypatch: pytest.MonkeyPatch, output: Any) -> None:
    import taskchat.agent.openai_agents as oaa

    _FakeSDKRunner.calls = []
    _FakeSDKRunner.output = output
    monkeypatch.setattr(oaa, "SDKRunner", _FakeSDKRunner)


@pytest.mark.asyncio
async def test_sdk_agent_passes_history_and_tools(
    monkeypatch: pytest.MonkeyPatch, sql_store: SqlStore
) -> None:
    from taskchat.agent.openai_agents import OpenAIAgentsAgent

    _patch_sdk_runner(monkeypatch, "  Added it.  ")
    agent = OpenAIAgentsAgent(
        name="TaskAgent", instructions="help", model="gpt-4o-mini", max_turns=3
    )

    reply = await agent.reply(
        _turns(("user", "hi"), ("assistant", "hello"), ("user", "add milk")),
        TaskTools(sql_store, "u1"),
    )

    assert reply == "Added it."
    [call] = _FakeSDKRunner.calls
    assert call["max_turns"] == 3
    assert call["input"] == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "add milk"},
    ]
    assert [t.name for t in call["agent"].tools] == [
        "add_task",
        "list_tasks",
        "complete_task",
        "delete_task",
        "update_task",
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("output", [None, "", "   "])
async def test_sdk_agent_falls_back_on_empty_output(
    monkeypatch: pytest.MonkeyPatch, sql_store: SqlStore, output: Any
) -> None:
    from taskchat.agent.openai_agents import FALLBACK_REPLY, OpenAIAgentsAgent

    _patch_sdk_runner(monkeypatch, output)
    agent = OpenAIAgentsAgent(name="TaskAgent", instructions="help", model="gpt-4o-mini")

    reply = await agent.reply(_turns(("user", "hi")), TaskTools(sql_store, "u1"))

    assert reply == FALLBACK_REPLY
