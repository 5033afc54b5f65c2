from __future__ import annotations

import asyncio
import uuid
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from taskchat.auth import TokenCodec, parse_bearer
from taskchat.chat.orchestrator import ChatOrchestrator
from taskchat.errors import (
    AgentFailedError,
    ConversationBusyError,
    MessageValidationError,
    NotFoundError,
    RateLimitedError,
)
from taskchat.models.records import Conversation, Message
from taskchat.models.turns import ToolCall
from taskchat.observability import (
    configure_uvicorn_logging,
    get_json_logger,
    get_metrics,
    use_request_context,
)


class ChatRequest(BaseModel):
    conversation_id: int | None = None
    message: str | None = None


class ChatResponse(BaseModel):
    conversation_id: int
    response: str
    tool_calls: list[ToolCall]


def _message_view(m: Message) -> dict[str, Any]:
    return {
        "id": m.id,
        "role": m.role,
        "content": m.content,
        "created_at": m.created_at.isoformat(),
    }


def _conversation_view(c: Conversation) -> dict[str, Any]:
    return {
        "id": c.id,
        "created_at": c.created_at.isoformat(),
        "updated_at": c.updated_at.isoformat(),
    }


def _request_id(request: Request) -> str:
    return request.headers.get("X-Request-ID") or str(uuid.uuid4())


def create_app(orchestrator: ChatOrchestrator, codec: TokenCodec) -> FastAPI:
    app = FastAPI(title="taskchat")
    configure_uvicorn_logging()
    logger = get_json_logger("taskchat.gateway")
    metrics = get_metrics()
    store = orchestrator.store

    async def current_owner(
        user_id: str, authorization: str | None = Header(default=None)
    ) -> str:
        token = parse_bearer(authorization)
        if token is None:
            metrics.increment("gateway_auth_errors", {"reason": "missing"})
            raise HTTPException(
                status_code=401,
                detail="missing bearer token",
                headers={"WWW-Authenticate": "Bearer"},
            )
        subject = codec.verify_token(token)
        if subject is None:
            metrics.increment("gateway_auth_errors", {"reason": "invalid"})
            raise HTTPException(
                status_code=401,
                detail="invalid token",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if subject != user_id:
            metrics.increment("gateway_auth_errors", {"reason": "subject_mismatch"})
            raise HTTPException(status_code=403, detail="token subject does not match user")
        return subject

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled error",
            exc_info=exc,
            extra={"event": "gateway_error", "path": request.url.path},
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/ready")
    async def ready() -> dict[str, str]:
        try:
            await asyncio.to_thread(store.ping)
        except Exception as exc:
            logger.error("store not ready", extra={"event": "gateway_error", "path": "ready"})
            metrics.increment("gateway_ready_errors", {})
            raise HTTPException(status_code=503, detail="store not ready") from exc
        return {"status": "ok"}

    @app.post("/api/{user_id}/chat", response_model=ChatResponse)
    async def chat(
        body: ChatRequest, request: Request, owner: str = Depends(current_owner)
    ) -> ChatResponse:
        with use_request_context(_request_id(request), owner, body.conversation_id):
            try:
                result = await orchestrator.handle_turn(
                    owner, body.message or "", conversation_id=body.conversation_id
                )
            except MessageValidationError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            except NotFoundError as exc:
                raise HTTPException(status_code=404, detail="conversation not found") from exc
            except ConversationBusyError as exc:
                raise HTTPException(
                    status_code=409, detail="another message is still being processed"
                ) from exc
            except RateLimitedError as exc:
                raise HTTPException(status_code=429, detail=str(exc)) from exc
            except AgentFailedError as exc:
                raise HTTPException(status_code=500, detail=exc.user_message) from exc
            logger.info(
                "gateway chat",
                extra={
                    "event": "gateway_chat",
                    "conversation_id": result.conversation_id,
                    "attributes": {"tool_calls": len(result.tool_calls)},
                },
            )
            metrics.increment("gateway_chats", {})
            return ChatResponse(
                conversation_id=result.conversation_id,
                response=result.response,
                tool_calls=result.tool_calls,
            )

    # ----------------------------
    # Conversation management
    # ----------------------------

    @app.get("/api/{user_id}/conversations")
    async def list_conversations(owner: str = Depends(current_owner)) -> dict[str, Any]:
        def _collect() -> list[dict[str, Any]]:
            items: list[dict[str, Any]] = []
            for conv in store.list_conversations(owner):
                view = _conversation_view(conv)
                view["message_count"] = len(store.load_history(conv.id, owner))
                items.append(view)
            return items

        return {"conversations": await asyncio.to_thread(_collect)}

    @app.get("/api/{user_id}/conversations/{conversation_id}")
    async def get_conversation(
        conversation_id: int, owner: str = Depends(current_owner)
    ) -> dict[str, Any]:
        try:
            conv = await asyncio.to_thread(store.get_conversation, owner, conversation_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail="conversation not found") from exc
        messages = await asyncio.to_thread(store.load_history, conversation_id, owner)
        view = _conversation_view(conv)
        view["messages"] = [_message_view(m) for m in messages]
        return view

    @app.get("/api/{user_id}/conversations/{conversation_id}/messages")
    async def get_messages(
        conversation_id: int, owner: str = Depends(current_owner)
    ) -> dict[str, Any]:
        try:
            await asyncio.to_thread(store.get_conversation, owner, conversation_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail="conversation not found") from exc
        messages = await asyncio.to_thread(store.load_history, conversation_id, owner)
        return {"messages": [_message_view(m) for m in messages]}

    @app.delete("/api/{user_id}/conversations/{conversation_id}", status_code=204)
    async def delete_conversation(
        conversation_id: int, owner: str = Depends(current_owner)
    ) -> Response:
        try:
            await asyncio.to_thread(store.delete_conversation, owner, conversation_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail="conversation not found") from exc
        logger.info(
            "conversation deleted",
            extra={"event": "conversation_deleted", "conversation_id": conversation_id},
        )
        return Response(status_code=204)

    return app


__all__ = ["create_app", "ChatRequest", "ChatResponse"]
