from __future__ import annotations

from fastapi import FastAPI

from taskchat.agent import build_agent
from taskchat.auth import TokenCodec
from taskchat.chat.guards import build_guards
from taskchat.chat.orchestrator import ChatOrchestrator
from taskchat.config import Settings, load_settings
from taskchat.store import build_store

from .app import create_app


def build_app(settings: Settings | None = None) -> FastAPI:
    cfg = settings or load_settings()
    store = build_store(cfg)
    lock, limiter = build_guards(cfg)
    orchestrator = ChatOrchestrator(
        store,
        build_agent(cfg),
        max_message_chars=cfg.max_message_chars,
        agent_timeout_s=cfg.agent_timeout_s,
        lock=lock,
        limiter=limiter,
    )
    return create_app(orchestrator, TokenCodec.from_settings(cfg))


app = build_app()
