from __future__ import annotations

from typing import Any

from agents import Agent as SDKAgent
from agents import Runner as SDKRunner

from taskchat.models.turns import Turn
from taskchat.observability import get_json_logger
from taskchat.tools.todo.tools import TaskTools

FALLBACK_REPLY = "I've processed your request."


class OpenAIAgentsAgent:
    """Agent backed by the OpenAI Agents SDK.

    A fresh SDK agent is built per call because the function tools close over
    the owner-bound `TaskTools` of that request. History comes from our own
    store, so no SDK session is used.
    """

    def __init__(
        self,
        *,
        name: str,
        instructions: str,
        model: str,
        max_turns: int = 10,
    ) -> None:
        self._name = name
        self._instructions = instructions
        self._model = model
        self._max_turns = max(1, int(max_turns))

    @property
    def model(self) -> str:
        return self._model

    def build_sdk_agent(self, tools: TaskTools) -> SDKAgent[Any]:
        return SDKAgent(
            name=self._name,
            instructions=self._instructions,
            model=self._model,
            tools=tools.as_function_tools(),
        )

    async def reply(self, turns: list[Turn], tools: TaskTools) -> str:
        agent = self.build_sdk_agent(tools)
        input_items: Any = [t.as_input_item() for t in turns]
        result = await SDKRunner.run(agent, input_items, max_turns=self._max_turns)
        output = result.final_output
        get_json_logger("taskchat.agent").debug(
            "agent run finished",
            extra={
                "event": "agent_run_finished",
                "attributes": {"model": self._model, "items": len(result.new_items)},
            },
        )
        if output is None:
            return FALLBACK_REPLY
        text = str(output).strip()
        return text or FALLBACK_REPLY


__all__ = ["OpenAIAgentsAgent", "FALLBACK_REPLY"]
