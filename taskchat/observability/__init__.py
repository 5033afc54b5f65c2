from __future__ import annotations

import contextvars
import datetime as dt
import json
import logging
import os
import sys
import time
import uuid
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

SENSITIVE_KEYS = {
    "openai_api_key",
    "api_key",
    "token",
    "access_token",
    "authorization",
    "password",
    "secret",
    "auth_secret",
}

# Extras copied verbatim from LogRecord attributes into the JSON payload
_STANDARD_EXTRAS = (
    "event",
    "span_id",
    "parent_id",
    "duration_ms",
    "request_id",
    "conversation_id",
    "owner",
    "tool",
    "path",
    "status",
    "attributes",
    "metadata",
)


def _iso_now() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def _redact(obj: Any) -> Any:
    if isinstance(obj, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in obj.items():
            if isinstance(k, str) and k.lower() in SENSITIVE_KEYS:
                redacted[k] = "[REDACTED]"
            else:
                redacted[k] = _redact(v)
        return redacted
    if isinstance(obj, list | tuple):
        return [_redact(v) for v in obj]
    return obj


def _build_base_payload(record: logging.LogRecord) -> dict[str, Any]:
    service = getattr(record, "service", None) or os.getenv("SERVICE_NAME")
    return {
        "ts": _iso_now(),
        "level": record.levelname.lower(),
        "logger": record.name,
        "service": service,
        "msg": record.getMessage(),
    }


def _enrich_with_context(payload: dict[str, Any]) -> None:
    ctx = get_request_context() or {}
    for key in ("request_id", "owner", "conversation_id"):
        value = ctx.get(key)
        if key not in payload and value is not None:
            payload[key] = value


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload = _build_base_payload(record)
        for attr in _STANDARD_EXTRAS:
            if hasattr(record, attr):
                payload[attr] = getattr(record, attr)
        span_name = getattr(record, "span_name", None)
        if span_name is not None:
            payload["name"] = span_name
        _enrich_with_context(payload)
        for key in ("attributes", "metadata"):
            if isinstance(payload.get(key), dict):
                payload[key] = _redact(payload[key])
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["err_type"] = getattr(exc_type, "__name__", str(exc_type))
            if exc_value is not None:
                payload["err"] = str(exc_value)
            payload["stack"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleLogFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(message)s")

    @staticmethod
    def _shorten(value: str | None, *, n: int = 8) -> str:
        if not value:
            return "-"
        return value[:n]

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        ctx = get_request_context() or {}
        parts: list[str] = [_iso_now()[11:19], record.levelname.upper()]
        parts.append(str(getattr(record, "service", None) or record.name))
        event = getattr(record, "event", None)
        if event:
            parts.append(str(event))
        owner = getattr(record, "owner", None) or ctx.get("owner")
        if owner:
            parts.append(f"owner={owner}")
        conv_id = getattr(record, "conversation_id", None) or ctx.get("conversation_id")
        if conv_id is not None:
            parts.append(f"conv={conv_id}")
        req_id = getattr(record, "request_id", None) or ctx.get("request_id")
        if req_id:
            parts.append(f"req={self._shorten(str(req_id))}")
        parts.append("-")
        parts.append(record.getMessage())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _choose_formatter() -> logging.Formatter:
    format_pref = (os.getenv("LOG_FORMAT") or "").strip().lower() or "auto"
    if format_pref == "auto":
        try:
            if sys.stdout.isatty():
                return ConsoleLogFormatter()
        except Exception:
            pass
        return JsonLogFormatter()
    if format_pref == "console":
        return ConsoleLogFormatter()
    return JsonLogFormatter()


def _parse_level(value: str | None, default: int = logging.INFO) -> int:
    name = (value or "").strip().upper()
    if not name:
        return default
    level = getattr(logging, name, None)
    return level if isinstance(level, int) else default


def _level_for_logger(logger_name: str) -> int:
    base_level = _parse_level(os.getenv("LOG_LEVEL"), logging.INFO)
    overrides = (os.getenv("LOG_MODULE_LEVELS") or "").strip()
    if not overrides:
        return base_level
    for entry in overrides.split(","):
        entry = entry.strip()
        if not entry or "=" not in entry:
            continue
        prefix, lvl = entry.split("=", 1)
        prefix = prefix.strip()
        if not prefix:
            continue
        if logger_name == prefix or logger_name.startswith(prefix + "."):
            return _parse_level(lvl, base_level)
    return base_level


def get_json_logger(name: str = "taskchat") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(_choose_formatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_logger(name))
        logger.propagate = False
    return logger


def configure_uvicorn_logging() -> None:
    """Bind uvicorn loggers to our formatter and levels.

    Replaces the handlers on "uvicorn", "uvicorn.error" and "uvicorn.access"
    with a single stdout handler so server and app logs share one format.
    """
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        for h in list(lg.handlers):
            lg.removeHandler(h)
            h.close()
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(_choose_formatter())
        lg.addHandler(handler)
        lg.setLevel(_level_for_logger(name))
        lg.propagate = False


@dataclass
class Span:
    span_id: str
    name: str
    start_ns: int
    parent_id: str | None


class Tracer:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_json_logger("taskchat.trace")
        self._stack: list[Span] = []

    @contextmanager
    def span(
        self,
        name: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> Generator[Span, None, None]:
        span_id = str(uuid.uuid4())
        parent_id = self._stack[-1].span_id if self._stack else None
        span = Span(
            span_id=span_id,
            name=name,
            start_ns=time.perf_counter_ns(),
            parent_id=parent_id,
        )
        self._logger.debug(
            "span start",
            extra={
                "event": "span_start",
                "span_name": name,
                "span_id": span_id,
                "parent_id": parent_id,
                "attributes": dict(metadata or {}),
            },
        )
        self._stack.append(span)
        try:
            yield span
        finally:
            duration_ms = (time.perf_counter_ns() - span.start_ns) / 1_000_000.0
            self._logger.info(
                "span end",
                extra={
                    "event": "span_end",
                    "span_name": name,
                    "span_id": span_id,
                    "parent_id": parent_id,
                    "duration_ms": duration_ms,
                },
            )
            if self._stack and self._stack[-1].span_id == span_id:
                self._stack.pop()


class Metrics:
    def __init__(self) -> None:
        self._counters: dict[tuple[str, tuple[tuple[str, str], ...]], int] = {}

    def increment(
        self,
        name: str,
        labels: Mapping[str, str] | None = None,
        amount: int = 1,
    ) -> None:
        label_items: tuple[tuple[str, str], ...] = tuple(sorted((labels or {}).items()))
        key = (name, label_items)
        self._counters[key] = self._counters.get(key, 0) + amount

    def value(self, name: str, labels: Mapping[str, str] | None = None) -> int:
        """Sum of a counter across label sets matching `labels` (all if None)."""
        want = dict(labels or {})
        total = 0
        for (counter, label_items), count in self._counters.items():
            if counter != name:
                continue
            have = dict(label_items)
            if all(have.get(k) == v for k, v in want.items()):
                total += count
        return total

    def snapshot(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for (name, label_items), value in sorted(self._counters.items()):
            out.append({"name": name, "labels": dict(label_items), "value": value})
        return out


# ----------------------------
# Request context helpers
# ----------------------------

_request_context_var: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "taskchat_request_context", default=None
)


def get_request_context() -> dict[str, Any] | None:
    return _request_context_var.get()


def bind_conversation(conversation_id: int) -> None:
    """Attach a resolved conversation id to the active request context."""
    ctx = _request_context_var.get()
    if ctx is not None:
        ctx["conversation_id"] = conversation_id


@contextmanager
def use_request_context(
    request_id: str, owner: str, conversation_id: int | None = None
) -> Generator[None, None, None]:
    token = _request_context_var.set(
        {"request_id": request_id, "owner": owner, "conversation_id": conversation_id}
    )
    try:
        yield None
    finally:
        _request_context_var.reset(token)


# ----------------------------
# Metrics singleton
# ----------------------------

_metrics_singleton: Metrics | None = None


def get_metrics() -> Metrics:
    global _metrics_singleton
    if _metrics_singleton is None:
        _metrics_singleton = Metrics()
    return _metrics_singleton


def reset_metrics() -> None:
    global _metrics_singleton
    _metrics_singleton = Metrics()


__all__ = [
    "ConsoleLogFormatter",
    "JsonLogFormatter",
    "Metrics",
    "Span",
    "Tracer",
    "bind_conversation",
    "configure_uvicorn_logging",
    "get_json_logger",
    "get_metrics",
    "get_request_context",
    "reset_metrics",
    "use_request_context",
]
