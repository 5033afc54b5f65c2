from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from functools import lru_cache

import pytest

from taskchat.store.interface import Store
from taskchat.store.sql_store import SqlStore


def _redis_ping(url: str) -> bool:
    try:
        import redis

        return bool(redis.Redis.from_url(url, socket_connect_timeout=0.5).ping())
    except Exception:
        return False


@lru_cache(maxsize=1)
def _redis_url_or_none() -> str | None:
    """Prefer REDIS_URL when reachable, then a local default."""
    for url in (os.getenv("REDIS_URL"), "redis://localhost:6379/0"):
        if url and _redis_ping(url):
            return url
    return None


@pytest.fixture(scope="session", autouse=True)
def _no_openai_for_tests() -> None:
    """Keep agent selection on the deterministic EchoAgent."""
    os.environ["OPENAI_API_KEY"] = ""


@pytest.fixture(scope="session")
def redis_url() -> str:
    url = _redis_url_or_none()
    if url is None:
        pytest.skip("Redis not available; set REDIS_URL or start a local Redis")
    return url


@pytest.fixture()
def unique_prefix() -> str:
    return f"testtaskchat:{uuid.uuid4()}"


@pytest.fixture()
def sql_store() -> Generator[SqlStore, None, None]:
    s = SqlStore(url="sqlite://")
    yield s
    s.close()


@pytest.fixture(params=["sql", "redis"])
def store(request: pytest.FixtureRequest, unique_prefix: str) -> Generator[Store, None, None]:
    """Run store contract tests against every backend that is reachable."""
    if request.param == "sql":
        s: Store = SqlStore(url="sqlite://")
    else:
        from taskchat.store.redis_store import RedisStore

        url = request.getfixturevalue("redis_url")
        s = RedisStore(url=url, key_prefix=unique_prefix)
    yield s
    if request.param == "redis":
        from taskchat.store.redis_store import RedisStore

        assert isinstance(s, RedisStore)
        for key in s.client.scan_iter(match=f"{unique_prefix}:*"):
            s.client.delete(key)
    s.close()


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip tests marked 'redis' up front when no Redis is reachable."""
    if _redis_url_or_none() is not None:
        return
    for item in items:
        if "redis" in item.keywords:
            item.add_marker(pytest.mark.skip(reason="Redis not available"))
