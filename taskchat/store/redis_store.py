from __future__ import annotations

import json
from typing import Any, TypeVar, cast

import redis
from pydantic import BaseModel

from taskchat.errors import NotFoundError, ValidationError
from taskchat.models.records import Conversation, Message, Task, utcnow

from .interface import (
    DEFAULT_MAX_MESSAGE_CHARS,
    Store,
    check_message,
    check_status,
    clean_description,
    clean_title,
    matches_status,
    require_owner,
)

M = TypeVar("M", bound=BaseModel)


class RedisStore(Store):
    """Redis-backed store.

    Data structures:
    - Counters `{prefix}:seq:{kind}` issue integer ids via INCR
    - Hash per row: `{prefix}:{kind}:{id}` with field `json`
    - Sorted set of an owner's tasks: `{prefix}:user:{owner}:tasks`, score=id
    - Sorted set of an owner's conversations: `{prefix}:user:{owner}:convs`,
      score=updated_at epoch seconds
    - Sorted set of a conversation's messages: `{prefix}:conv:{id}:msgs`,
      score=message id (ids are issued in append order)
    """

    def __init__(
        self,
        *,
        url: str | None = None,
        client: redis.Redis | None = None,
        key_prefix: str = "taskchat",
        max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
    ) -> None:
        self._redis: redis.Redis = client or redis.Redis.from_url(
            url or "redis://localhost:6379/0"
        )
        self._prefix = key_prefix.rstrip(":")
        self.max_message_chars = max_message_chars

    @property
    def client(self) -> redis.Redis:
        return self._redis

    # key helpers
    def _seq_key(self, kind: str) -> str:
        return f"{self._prefix}:seq:{kind}"

    def _row_key(self, kind: str, row_id: int) -> str:
        return f"{self._prefix}:{kind}:{row_id}"

    def _user_tasks_key(self, owner: str) -> str:
        return f"{self._prefix}:user:{owner}:tasks"

    def _user_convs_key(self, owner: str) -> str:
        return f"{self._prefix}:user:{owner}:convs"

    def _conv_msgs_key(self, conversation_id: int) -> str:
        return f"{self._prefix}:conv:{conversation_id}:msgs"

    # serialization
    def _next_id(self, kind: str) -> int:
        return int(cast(int, self._redis.incr(self._seq_key(kind))))

    @staticmethod
    def _dump(model: BaseModel) -> str:
        return json.dumps(model.model_dump(mode="json"), separators=(",", ":"))

    def _load(self, kind: str, row_id: int, model: type[M]) -> M | None:
        raw = cast(bytes | None, self._redis.hget(self._row_key(kind, row_id), "json"))
        if raw is None:
            return None
        return model.model_validate(json.loads(raw.decode("utf-8")))

    def _load_many(self, kind: str, ids: list[int], model: type[M]) -> list[M]:
        if not ids:
            return []
        p = self._redis.pipeline()
        for row_id in ids:
            p.hget(self._row_key(kind, row_id), "json")
        out: list[M] = []
        for raw in cast(list[Any], p.execute()):
            if raw is not None:
                out.append(model.model_validate(json.loads(raw.decode("utf-8"))))
        return out

    @staticmethod
    def _ids(raw: Any) -> list[int]:
        return [int(b) for b in cast(list[bytes], raw)]

    def _owned_task(self, owner: str, task_id: int) -> Task:
        task = self._load("task", task_id, Task)
        if task is None or task.user_id != owner:
            raise NotFoundError("task", task_id)
        return task

    def _owned_conversation(self, owner: str, conversation_id: int) -> Conversation:
        conv = self._load("conv", conversation_id, Conversation)
        if conv is None or conv.user_id != owner:
            raise NotFoundError("conversation", conversation_id)
        return conv

    # conversations / messages
    def get_or_create_conversation(
        self, owner: str, existing_id: int | None = None
    ) -> Conversation:
        require_owner(owner)
        if existing_id is not None:
            return self._owned_conversation(owner, existing_id)
        conv = Conversation(id=self._next_id("conv"), user_id=owner)
        p = self._redis.pipeline()
        p.hset(self._row_key("conv", conv.id), mapping={"json": self._dump(conv)})
        p.zadd(self._user_convs_key(owner), {str(conv.id): conv.updated_at.timestamp()})
        p.execute()
        return conv

    def get_conversation(self, owner: str, conversation_id: int) -> Conversation:
        return self._owned_conversation(owner, conversation_id)

    def list_conversations(self, owner: str) -> list[Conversation]:
        ids = self._ids(self._redis.zrevrange(self._user_convs_key(owner), 0, -1))
        return self._load_many("conv", ids, Conversation)

    def delete_conversation(self, owner: str, conversation_id: int) -> None:
        self._owned_conversation(owner, conversation_id)
        msg_ids = self._ids(self._redis.zrange(self._conv_msgs_key(conversation_id), 0, -1))
        p = self._redis.pipeline()
        for mid in msg_ids:
            p.delete(self._row_key("msg", mid))
        p.delete(self._conv_msgs_key(conversation_id))
        p.delete(self._row_key("conv", conversation_id))
        p.zrem(self._user_convs_key(owner), str(conversation_id))
        p.execute()

    def append_message(self, conversation_id: int, owner: str, role: str, content: str) -> Message:
        check_message(role, content, self.max_message_chars)
        conv = self._owned_conversation(owner, conversation_id)
        now = utcnow()
        msg = Message(
            id=self._next_id("msg"),
            conversation_id=conversation_id,
            user_id=owner,
            role=cast(Any, role),
            content=content,
            created_at=now,
        )
        conv.updated_at = now
        p = self._redis.pipeline()
        p.hset(self._row_key("msg", msg.id), mapping={"json": self._dump(msg)})
        p.zadd(self._conv_msgs_key(conversation_id), {str(msg.id): msg.id})
        p.hset(self._row_key("conv", conversation_id), mapping={"json": self._dump(conv)})
        p.zadd(self._user_convs_key(owner), {str(conversation_id): now.timestamp()})
        p.execute()
        return msg

    def load_history(self, conversation_id: int, owner: str | None = None) -> list[Message]:
        ids = self._ids(self._redis.zrange(self._conv_msgs_key(conversation_id), 0, -1))
        messages = self._load_many("msg", ids, Message)
        if owner is not None:
            messages = [m for m in messages if m.user_id == owner]
        return messages

    # tasks
    def create_task(self, owner: str, title: str, description: str | None = None) -> Task:
        require_owner(owner)
        ttl = clean_title(title)
        desc = clean_description(description)
        task = Task(id=self._next_id("task"), user_id=owner, title=ttl, description=desc)
        p = self._redis.pipeline()
        p.hset(self._row_key("task", task.id), mapping={"json": self._dump(task)})
        p.zadd(self._user_tasks_key(owner), {str(task.id): task.id})
        p.execute()
        return task

    def get_task(self, owner: str, task_id: int) -> Task:
        return self._owned_task(owner, task_id)

    def list_tasks(self, owner: str, status: str = "all") -> list[Task]:
        check_status(status)
        ids = self._ids(self._redis.zrange(self._user_tasks_key(owner), 0, -1))
        return [t for t in self._load_many("task", ids, Task) if matches_status(t, status)]

    def _save_task(self, task: Task) -> Task:
        task.updated_at = utcnow()
        self._redis.hset(self._row_key("task", task.id), mapping={"json": self._dump(task)})
        return task

    def mark_complete(self, owner: str, task_id: int) -> Task:
        task = self._owned_task(owner, task_id)
        task.completed = True
        return self._save_task(task)

    def delete_task(self, owner: str, task_id: int) -> Task:
        task = self._owned_task(owner, task_id)
        p = self._redis.pipeline()
        p.delete(self._row_key("task", task_id))
        p.zrem(self._user_tasks_key(owner), str(task_id))
        p.execute()
        return task

    def update_task(
        self,
        owner: str,
        task_id: int,
        *,
        title: str | None = None,
        description: str | None = None,
    ) -> Task:
        if title is None and description is None:
            raise ValidationError("no fields to update")
        new_title = clean_title(title) if title is not None else None
        new_description = clean_description(description)
        task = self._owned_task(owner, task_id)
        if new_title is not None:
            task.title = new_title
        if new_description is not None:
            task.description = new_description
        return self._save_task(task)

    def ping(self) -> bool:
        return bool(self._redis.ping())

    def close(self) -> None:
        self._redis.close()


__all__ = ["RedisStore"]
