from __future__ import annotations

from taskchat.config import Settings
from taskchat.observability import get_json_logger

from .echo import EchoAgent
from .interface import Agent


def build_agent(settings: Settings) -> Agent:
    """Pick the agent: OpenAI Agents SDK when an API key is configured, else Echo."""
    logger = get_json_logger("taskchat")
    if settings.openai_api_key:
        # defer import so Echo mode does not need the SDK configured
        from .openai_agents import OpenAIAgentsAgent

        logger.info(
            "agent selected",
            extra={
                "event": "agent_selected",
                "attributes": {
                    "agent": "OpenAIAgents",
                    "name": settings.agent_name,
                    "model": settings.agent_model,
                    "max_turns": settings.agent_max_turns,
                },
            },
        )
        return OpenAIAgentsAgent(
            name=settings.agent_name,
            instructions=settings.agent_instructions,
            model=settings.agent_model,
            max_turns=settings.agent_max_turns,
        )
    logger.info(
        "agent selected",
        extra={"event": "agent_selected", "attributes": {"agent": "Echo"}},
    )
    return EchoAgent()


__all__ = ["Agent", "EchoAgent", "build_agent"]
