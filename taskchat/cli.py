from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any

from taskchat.auth import TokenCodec
from taskchat.config import load_settings


def _port(raw: str | None, default: int = 8000) -> int:
    try:
        return int((raw or "").strip() or default)
    except ValueError:
        return default


def serve(host: str, port: int) -> int:
    import uvicorn

    from taskchat.observability import configure_uvicorn_logging

    configure_uvicorn_logging()
    uvicorn.run(
        "taskchat.gateway.asgi:app",
        host=host,
        port=port,
        log_level=(os.getenv("LOG_LEVEL") or "info").lower(),
    )
    return 0


def issue_token(user: str) -> str:
    return TokenCodec.from_settings(load_settings()).create_access_token(user)


def send_chat(
    base_url: str, user: str, message: str, conversation_id: int | None, timeout: float
) -> dict[str, Any]:
    import httpx

    payload: dict[str, Any] = {"message": message}
    if conversation_id is not None:
        payload["conversation_id"] = conversation_id
    headers = {"Authorization": f"Bearer {issue_token(user)}"}
    resp = httpx.post(
        f"{base_url.rstrip('/')}/api/{user}/chat", json=payload, headers=headers, timeout=timeout
    )
    resp.raise_for_status()
    return dict(resp.json())


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser("taskchat")
    sub = parser.add_subparsers(dest="cmd")

    p_serve = sub.add_parser("serve", help="Run the HTTP gateway with uvicorn")
    p_serve.add_argument("--host", default=os.getenv("GATEWAY_HOST", "0.0.0.0"))
    p_serve.add_argument("--port", type=int, default=_port(os.getenv("GATEWAY_PORT")))

    p_token = sub.add_parser("token", help="Print a bearer token for a user (dev only)")
    p_token.add_argument("--user", required=True)

    p_chat = sub.add_parser("chat", help="Send one chat message and print the JSON reply")
    p_chat.add_argument("--base-url", default=os.getenv("TASKCHAT_URL", "http://localhost:8000"))
    p_chat.add_argument("--user", required=True)
    p_chat.add_argument("--conv", type=int)
    p_chat.add_argument("--message", required=True)
    p_chat.add_argument("--timeout", type=float, default=90.0)

    args = parser.parse_args(argv)
    cmd = str(getattr(args, "cmd", "") or "")

    if cmd == "serve":
        raise SystemExit(serve(args.host, args.port))

    if cmd == "token":
        sys.stdout.write(issue_token(args.user) + "\n")
        return

    if cmd == "chat":
        try:
            out = send_chat(args.base_url, args.user, args.message, args.conv, args.timeout)
        except Exception as exc:  # noqa: BLE001
            sys.stderr.write(f"error: chat request failed: {exc}\n")
            raise SystemExit(1) from exc
        sys.stdout.write(json.dumps(out, indent=2) + "\n")
        return

    parser.print_help()


if __name__ == "__main__":
    main()
