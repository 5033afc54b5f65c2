from __future__ import annotations

import pytest

from taskchat.auth import TokenCodec, parse_bearer
from taskchat.config import load_settings


def test_token_round_trip_returns_subject() -> None:
    codec = TokenCodec(secret="s3cret")

    token = codec.create_access_token("alice", {"scope": "chat"})

    assert codec.verify_token(token) == "alice"


def test_wrong_secret_or_garbage_is_rejected() -> None:
    token = TokenCodec(secret="a").create_access_token("alice")

    assert TokenCodec(secret="b").verify_token(token) is None
    assert TokenCodec(secret="a").verify_token("not-a-jwt") is None


def test_expired_token_is_rejected() -> None:
    codec = TokenCodec(secret="s3cret", ttl_min=-1)

    assert codec.verify_token(codec.create_access_token("alice")) is None


def test_token_without_subject_is_rejected() -> None:
    from jose import jwt

    token = jwt.encode({"scope": "chat"}, "s3cret", algorithm="HS256")

    assert TokenCodec(secret="s3cret").verify_token(token) is None


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, None),
        ("", None),
        ("Bearer", None),
        ("Bearer   ", None),
        ("Basic abc", None),
        ("Bearer abc", "abc"),
        ("bearer  abc ", "abc"),
    ],
)
def test_parse_bearer(header: str | None, expected: str | None) -> None:
    assert parse_bearer(header) == expected


def test_codec_from_settings() -> None:
    settings = load_settings(
        {"AUTH_SECRET": "from-env", "AUTH_ALGORITHM": "HS512", "AUTH_TOKEN_TTL_MIN": "5"}
    )

    codec = TokenCodec.from_settings(settings)

    assert (codec.secret, codec.algorithm, codec.ttl_min) == ("from-env", "HS512", 5)
    assert codec.verify_token(codec.create_access_token("bob")) == "bob"
