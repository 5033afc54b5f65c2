from __future__ import annotations

from taskchat.config import Settings

from .interface import Store


def build_store(settings: Settings) -> Store:
    """Construct the configured store backend."""
    if settings.store_backend == "redis":
        from .redis_store import RedisStore

        return RedisStore(
            url=settings.redis_url,
            key_prefix=settings.store_key_prefix,
            max_message_chars=settings.max_message_chars,
        )
    from .sql_store import SqlStore

    return SqlStore(url=settings.database_url, max_message_chars=settings.max_message_chars)


__all__ = ["Store", "build_store"]
