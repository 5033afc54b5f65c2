from __future__ import annotations

import asyncio

from taskchat.agent.interface import Agent
from taskchat.errors import (
    AgentFailedError,
    ConversationBusyError,
    MessageValidationError,
    RateLimitedError,
)
from taskchat.models.turns import Turn, TurnResult
from taskchat.observability import Tracer, bind_conversation, get_json_logger, get_metrics
from taskchat.store.interface import Store
from taskchat.tools.todo.tools import TaskTools

from .guards import InMemoryTurnLock, RateLimiter, TurnLock


class ChatOrchestrator:
    """Runs one conversational turn end to end.

    Holds no per-conversation state: history is reloaded from the store on
    every call. The user message is persisted strictly before the agent runs
    and the reply strictly after, so a failure in between leaves an unanswered
    user message rather than a gap in ordering.
    """

    def __init__(
        self,
        store: Store,
        agent: Agent,
        *,
        max_message_chars: int | None = None,
        agent_timeout_s: float = 60.0,
        lock: TurnLock | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self._store = store
        self._agent = agent
        # never accept more than the store will persist
        store_max = store.max_message_chars
        self._max_chars = min(max_message_chars or store_max, store_max)
        self._timeout_s = agent_timeout_s
        self._lock: TurnLock = lock or InMemoryTurnLock()
        self._limiter = limiter

    @property
    def store(self) -> Store:
        return self._store

    @property
    def max_message_chars(self) -> int:
        return self._max_chars

    def validate_message(self, message: str) -> str:
        if not isinstance(message, str) or not message.strip():
            raise MessageValidationError("message must not be empty")
        if len(message) > self._max_chars:
            raise MessageValidationError(
                f"message must be at most {self._max_chars} characters"
            )
        return message

    async def handle_turn(
        self, owner: str, message: str, conversation_id: int | None = None
    ) -> TurnResult:
        self.validate_message(message)
        if self._limiter is not None:
            allowed = await asyncio.to_thread(self._limiter.check_and_increment, owner)
            if not allowed:
                get_metrics().increment("chat_rate_limited", {"owner": owner})
                raise RateLimitedError(owner, getattr(self._limiter, "max_requests", 0))

        conversation = await asyncio.to_thread(
            self._store.get_or_create_conversation, owner, conversation_id
        )
        bind_conversation(conversation.id)
        token = await asyncio.to_thread(self._lock.acquire, conversation.id)
        if token is None:
            get_metrics().increment("chat_busy", {})
            raise ConversationBusyError(conversation.id)
        try:
            return await self._run_turn(owner, conversation.id, message)
        finally:
            await asyncio.to_thread(self._lock.release, conversation.id, token)

    async def _run_turn(self, owner: str, conversation_id: int, message: str) -> TurnResult:
        logger = get_json_logger("taskchat.chat")
        metrics = get_metrics()

        history = await asyncio.to_thread(self._store.load_history, conversation_id, owner)
        turns = [Turn.from_message(m) for m in history]
        turns.append(Turn(role="user", content=message))
        await asyncio.to_thread(self._store.append_message, conversation_id, owner, "user", message)
        logger.info(
            "turn started",
            extra={
                "event": "turn_started",
                "conversation_id": conversation_id,
                "attributes": {"history_len": len(history), "content_len": len(message)},
            },
        )
        metrics.increment("chat_turns_started", {})

        tools = TaskTools(self._store, owner)
        tracer = Tracer(logger)
        try:
            with tracer.span("agent_reply", {"conversation_id": conversation_id}):
                reply = await asyncio.wait_for(
                    self._agent.reply(turns, tools), timeout=self._timeout_s
                )
        except Exception as exc:
            logger.exception(
                "agent failed",
                extra={"event": "agent_error", "conversation_id": conversation_id},
            )
            metrics.increment("agent_errors", {})
            raise AgentFailedError(conversation_id) from exc

        reply = self._fit(reply)
        await asyncio.to_thread(
            self._store.append_message, conversation_id, owner, "assistant", reply
        )
        logger.info(
            "turn completed",
            extra={
                "event": "turn_completed",
                "conversation_id": conversation_id,
                "attributes": {"tool_calls": len(tools.calls), "reply_len": len(reply)},
            },
        )
        metrics.increment("chat_turns_completed", {})
        return TurnResult(conversation_id=conversation_id, response=reply, tool_calls=tools.calls)

    def _fit(self, reply: str) -> str:
        text = reply if isinstance(reply, str) else str(reply)
        if len(text) <= self._max_chars:
            return text
        if self._max_chars <= 3:
            return text[: self._max_chars]
        return text[: self._max_chars - 3] + "..."


__all__ = ["ChatOrchestrator"]
