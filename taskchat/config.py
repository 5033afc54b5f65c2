from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

DEFAULT_INSTRUCTIONS = (
    "You are a helpful todo-list assistant. Use the task tools to add, list, "
    "complete, delete and update the user's tasks, then confirm what you did in "
    "one or two friendly sentences. If a task cannot be found, say so and ask "
    "the user which task they meant."
)


@dataclass(slots=True)
class Settings:
    database_url: str
    store_backend: str
    redis_url: str | None
    store_key_prefix: str
    auth_secret: str
    auth_algorithm: str
    auth_token_ttl_min: int
    max_message_chars: int
    rate_limit_per_minute: int
    openai_api_key: str | None
    agent_name: str
    agent_model: str
    agent_instructions: str
    agent_max_turns: int
    agent_timeout_s: float


def _read_instructions(e: dict[str, Any]) -> str:
    path = e.get("AGENT_INSTRUCTIONS_FILE")
    if path:
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except OSError:
            # Fall back to env/default if the file is missing or unreadable
            pass
    return e.get("AGENT_INSTRUCTIONS") or DEFAULT_INSTRUCTIONS


def _int(e: dict[str, Any], name: str, default: int, minimum: int = 0) -> int:
    raw = (e.get(name) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    return max(minimum, value)


def _float(e: dict[str, Any], name: str, default: float) -> float:
    raw = (e.get(name) or "").strip()
    try:
        value = float(raw) if raw else default
    except ValueError:
        value = default
    return value if value > 0 else default


def load_settings(env: dict[str, str] | None = None) -> Settings:
    e: dict[str, Any] = dict(os.environ)
    if env:
        e.update(env)
    backend = (e.get("STORE_BACKEND") or "sql").strip().lower()
    if backend not in {"sql", "redis"}:
        backend = "sql"
    return Settings(
        database_url=e.get("DATABASE_URL") or "sqlite:///./taskchat.db",
        store_backend=backend,
        redis_url=(e.get("REDIS_URL") or "").strip() or None,
        store_key_prefix=(e.get("STORE_KEY_PREFIX") or "taskchat").strip(),
        auth_secret=e.get("AUTH_SECRET") or "dev-secret",
        auth_algorithm=e.get("AUTH_ALGORITHM") or "HS256",
        auth_token_ttl_min=_int(e, "AUTH_TOKEN_TTL_MIN", 60, minimum=1),
        max_message_chars=_int(e, "MAX_MESSAGE_CHARS", 4000, minimum=1),
        rate_limit_per_minute=_int(e, "RATE_LIMIT_PER_MINUTE", 20),
        openai_api_key=e.get("OPENAI_API_KEY") or None,
        agent_name=e.get("AGENT_NAME", "TaskAgent"),
        agent_model=e.get("AGENT_MODEL", "gpt-4o-mini"),
        agent_instructions=_read_instructions(e),
        agent_max_turns=_int(e, "AGENT_MAX_TURNS", 10, minimum=1),
        agent_timeout_s=_float(e, "AGENT_TIMEOUT_S", 60.0),
    )


__all__ = ["Settings", "load_settings", "DEFAULT_INSTRUCTIONS"]
