from __future__ import annotations

import datetime as _dt
from typing import Any

from sqlalchemy import Column, DateTime, Text, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, col, create_engine, select

from taskchat.errors import NotFoundError, ValidationError
from taskchat.models.records import Conversation, Message, Task, utcnow

from .interface import (
    DEFAULT_MAX_MESSAGE_CHARS,
    Store,
    check_message,
    check_status,
    clean_description,
    clean_title,
    require_owner,
)


def _ts_column() -> Any:
    return Column(DateTime(timezone=True), nullable=False)


class TaskRow(SQLModel, table=True):
    __tablename__ = "tasks"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, nullable=False, max_length=255)
    title: str = Field(nullable=False, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    completed: bool = Field(default=False, index=True)
    created_at: _dt.datetime = Field(default_factory=utcnow, sa_column=_ts_column())
    updated_at: _dt.datetime = Field(default_factory=utcnow, sa_column=_ts_column())


class ConversationRow(SQLModel, table=True):
    __tablename__ = "conversations"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, nullable=False, max_length=255)
    created_at: _dt.datetime = Field(default_factory=utcnow, sa_column=_ts_column())
    updated_at: _dt.datetime = Field(default_factory=utcnow, sa_column=_ts_column())


class MessageRow(SQLModel, table=True):
    __tablename__ = "messages"

    id: int | None = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="conversations.id", index=True, nullable=False)
    user_id: str = Field(index=True, nullable=False, max_length=255)
    role: str = Field(nullable=False, max_length=20)
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: _dt.datetime = Field(default_factory=utcnow, sa_column=_ts_column())


def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if database_url in {"sqlite://", "sqlite:///:memory:"}:
            return create_engine(
                database_url, echo=echo, connect_args=connect_args, poolclass=StaticPool
            )
        return create_engine(database_url, echo=echo, connect_args=connect_args)
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


class SqlStore(Store):
    """Relational store on SQLModel.

    Tables:
    - `tasks` with denormalized `user_id` for owner filtering
    - `conversations`
    - `messages` with FK `conversation_id -> conversations.id` and `user_id`
      copied from the conversation

    Each operation runs in its own session and commits before returning.
    """

    def __init__(
        self,
        *,
        url: str | None = None,
        engine: Engine | None = None,
        max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
        create_tables: bool = True,
    ) -> None:
        if engine is None:
            engine = make_engine(url or "sqlite://")
        self._engine = engine
        self.max_message_chars = max_message_chars
        if create_tables:
            SQLModel.metadata.create_all(self._engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    def _session(self) -> Session:
        return Session(self._engine, expire_on_commit=False)

    # row lookups (owner-scoped)
    @staticmethod
    def _owned_task(session: Session, owner: str, task_id: int) -> TaskRow:
        row = session.get(TaskRow, task_id)
        if row is None or row.user_id != owner:
            raise NotFoundError("task", task_id)
        return row

    @staticmethod
    def _owned_conversation(session: Session, owner: str, conversation_id: int) -> ConversationRow:
        row = session.get(ConversationRow, conversation_id)
        if row is None or row.user_id != owner:
            raise NotFoundError("conversation", conversation_id)
        return row

    # conversations / messages
    def get_or_create_conversation(
        self, owner: str, existing_id: int | None = None
    ) -> Conversation:
        require_owner(owner)
        with self._session() as session:
            if existing_id is not None:
                row = self._owned_conversation(session, owner, existing_id)
                return Conversation.model_validate(row)
            row = ConversationRow(user_id=owner)
            session.add(row)
            session.commit()
            session.refresh(row)
            return Conversation.model_validate(row)

    def get_conversation(self, owner: str, conversation_id: int) -> Conversation:
        with self._session() as session:
            return Conversation.model_validate(
                self._owned_conversation(session, owner, conversation_id)
            )

    def list_conversations(self, owner: str) -> list[Conversation]:
        with self._session() as session:
            stmt = (
                select(ConversationRow)
                .where(ConversationRow.user_id == owner)
                .order_by(col(ConversationRow.updated_at).desc(), col(ConversationRow.id).desc())
            )
            return [Conversation.model_validate(r) for r in session.exec(stmt).all()]

    def delete_conversation(self, owner: str, conversation_id: int) -> None:
        with self._session() as session:
            conv = self._owned_conversation(session, owner, conversation_id)
            stmt = select(MessageRow).where(MessageRow.conversation_id == conversation_id)
            for msg in session.exec(stmt).all():
                session.delete(msg)
            session.delete(conv)
            session.commit()

    def append_message(self, conversation_id: int, owner: str, role: str, content: str) -> Message:
        check_message(role, content, self.max_message_chars)
        with self._session() as session:
            conv = self._owned_conversation(session, owner, conversation_id)
            now = utcnow()
            row = MessageRow(
                conversation_id=conversation_id,
                user_id=owner,
                role=role,
                content=content,
                created_at=now,
            )
            conv.updated_at = now
            session.add(row)
            session.add(conv)
            session.commit()
            session.refresh(row)
            return Message.model_validate(row)

    def load_history(self, conversation_id: int, owner: str | None = None) -> list[Message]:
        with self._session() as session:
            stmt = select(MessageRow).where(MessageRow.conversation_id == conversation_id)
            if owner is not None:
                stmt = stmt.where(MessageRow.user_id == owner)
            stmt = stmt.order_by(col(MessageRow.created_at), col(MessageRow.id))
            return [Message.model_validate(r) for r in session.exec(stmt).all()]

    # tasks
    def create_task(self, owner: str, title: str, description: str | None = None) -> Task:
        require_owner(owner)
        row = TaskRow(
            user_id=owner, title=clean_title(title), description=clean_description(description)
        )
        with self._session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return Task.model_validate(row)

    def get_task(self, owner: str, task_id: int) -> Task:
        with self._session() as session:
            return Task.model_validate(self._owned_task(session, owner, task_id))

    def list_tasks(self, owner: str, status: str = "all") -> list[Task]:
        check_status(status)
        with self._session() as session:
            stmt = select(TaskRow).where(TaskRow.user_id == owner)
            if status == "pending":
                stmt = stmt.where(col(TaskRow.completed).is_(False))
            elif status == "completed":
                stmt = stmt.where(col(TaskRow.completed).is_(True))
            stmt = stmt.order_by(col(TaskRow.id))
            return [Task.model_validate(r) for r in session.exec(stmt).all()]

    def mark_complete(self, owner: str, task_id: int) -> Task:
        with self._session() as session:
            row = self._owned_task(session, owner, task_id)
            row.completed = True
            row.updated_at = utcnow()
            session.add(row)
            session.commit()
            session.refresh(row)
            return Task.model_validate(row)

    def delete_task(self, owner: str, task_id: int) -> Task:
        with self._session() as session:
            row = self._owned_task(session, owner, task_id)
            task = Task.model_validate(row)
            session.delete(row)
            session.commit()
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
        with self._session() as session:
            row = self._owned_task(session, owner, task_id)
            if new_title is not None:
                row.title = new_title
            if new_description is not None:
                row.description = new_description
            row.updated_at = utcnow()
            session.add(row)
            session.commit()
            session.refresh(row)
            return Task.model_validate(row)

    def ping(self) -> bool:
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self._engine.dispose()


__all__ = ["SqlStore", "TaskRow", "ConversationRow", "MessageRow", "make_engine"]
