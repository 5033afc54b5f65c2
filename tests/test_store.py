from __future__ import annotations

import datetime as _dt

import pytest

from taskchat.errors import NotFoundError, ValidationError
from taskchat.store.interface import Store


def test_get_or_create_without_id_creates_distinct_conversations(store: Store) -> None:
    c1 = store.get_or_create_conversation("u1")
    c2 = store.get_or_create_conversation("u1")

    assert c1.id != c2.id
    assert c1.user_id == "u1"
    assert c2.user_id == "u1"


def test_get_or_create_with_existing_id_returns_same(store: Store) -> None:
    created = store.get_or_create_conversation("u1")

    again = store.get_or_create_conversation("u1", created.id)
    once_more = store.get_or_create_conversation("u1", created.id)

    assert again.id == created.id
    assert once_more.id == created.id


def test_get_or_create_foreign_or_unknown_id_fails(store: Store) -> None:
    theirs = store.get_or_create_conversation("u1")
    before = len(store.list_conversations("u2"))

    with pytest.raises(NotFoundError):
        store.get_or_create_conversation("u2", theirs.id)
    with pytest.raises(NotFoundError):
        store.get_or_create_conversation("u2", 987654)

    # never falls back to creating one
    assert len(store.list_conversations("u2")) == before


def test_append_and_load_history_round_trip_in_order(store: Store) -> None:
    conv = store.get_or_create_conversation("u1")
    sent = [
        ("user", "hello"),
        ("assistant", "hi there"),
        ("user", "add milk"),
        ("assistant", "Created task #1: milk"),
    ]
    for role, content in sent:
        store.append_message(conv.id, "u1", role, content)

    history = store.load_history(conv.id)

    assert [(m.role, m.content) for m in history] == sent
    assert all(m.conversation_id == conv.id and m.user_id == "u1" for m in history)
    stamps = [m.created_at for m in history]
    assert stamps == sorted(stamps)


def test_append_message_rejects_bad_role_and_oversize(store: Store) -> None:
    conv = store.get_or_create_conversation("u1")

    with pytest.raises(ValidationError):
        store.append_message(conv.id, "u1", "system", "nope")
    with pytest.raises(ValidationError):
        store.append_message(conv.id, "u1", "user", "x" * (store.max_message_chars + 1))

    assert store.load_history(conv.id) == []


def test_append_message_to_foreign_conversation_is_not_found(store: Store) -> None:
    conv = store.get_or_create_conversation("u1")

    with pytest.raises(NotFoundError):
        store.append_message(conv.id, "u2", "user", "sneaky")

    assert store.load_history(conv.id) == []


def test_load_history_scoped_by_owner(store: Store) -> None:
    conv = store.get_or_create_conversation("u1")
    store.append_message(conv.id, "u1", "user", "mine")

    assert store.load_history(conv.id, owner="u2") == []
    assert [m.content for m in store.load_history(conv.id, owner="u1")] == ["mine"]


def test_append_message_touches_conversation(store: Store) -> None:
    older = store.get_or_create_conversation("u1")
    newer = store.get_or_create_conversation("u1")
    store.append_message(older.id, "u1", "user", "bump")

    listed = store.list_conversations("u1")

    assert [c.id for c in listed][:2] == [older.id, newer.id]
    assert store.get_conversation("u1", older.id).updated_at >= older.updated_at


def test_delete_conversation_cascades_and_is_owner_scoped(store: Store) -> None:
    conv = store.get_or_create_conversation("u1")
    store.append_message(conv.id, "u1", "user", "hello")

    with pytest.raises(NotFoundError):
        store.delete_conversation("u2", conv.id)

    store.delete_conversation("u1", conv.id)

    assert store.load_history(conv.id) == []
    with pytest.raises(NotFoundError):
        store.get_conversation("u1", conv.id)
    assert all(c.id != conv.id for c in store.list_conversations("u1"))


def test_create_and_list_tasks(store: Store) -> None:
    t = store.create_task("u1", "  Buy groceries  ")

    assert t.id >= 1
    assert t.title == "Buy groceries"
    assert t.description is None
    assert t.completed is False
    assert [x.id for x in store.list_tasks("u1", "all")] == [t.id]
    assert store.list_tasks("u2", "all") == []


def test_list_tasks_filters_by_status(store: Store) -> None:
    a = store.create_task("u1", "A")
    b = store.create_task("u1", "B")
    store.mark_complete("u1", b.id)

    assert [t.id for t in store.list_tasks("u1", "pending")] == [a.id]
    assert [t.id for t in store.list_tasks("u1", "completed")] == [b.id]
    assert [t.id for t in store.list_tasks("u1")] == [a.id, b.id]
    with pytest.raises(ValidationError):
        store.list_tasks("u1", "done")


def test_complete_keeps_title(store: Store) -> None:
    t = store.create_task("u1", "Write report")

    done = store.mark_complete("u1", t.id)

    assert done.completed is True
    assert done.title == "Write report"
    assert store.get_task("u1", t.id).completed is True


def test_delete_removes_from_listing(store: Store) -> None:
    t = store.create_task("u1", "Temp")

    deleted = store.delete_task("u1", t.id)

    assert deleted.id == t.id
    assert all(x.id != t.id for x in store.list_tasks("u1"))
    with pytest.raises(NotFoundError):
        store.delete_task("u1", t.id)


def test_partial_update_keeps_other_field(store: Store) -> None:
    t = store.create_task("u1", "Old", description="keep me")

    renamed = store.update_task("u1", t.id, title="New")
    assert renamed.title == "New"
    assert renamed.description == "keep me"

    described = store.update_task("u1", t.id, description="changed")
    assert described.title == "New"
    assert described.description == "changed"

    with pytest.raises(ValidationError):
        store.update_task("u1", t.id)


def test_task_title_validation(store: Store) -> None:
    with pytest.raises(ValidationError):
        store.create_task("u1", "   ")
    with pytest.raises(ValidationError):
        store.create_task("u1", "x" * 201)
    with pytest.raises(ValidationError):
        store.create_task("u1", "ok", description="d" * 1001)
    assert store.list_tasks("u1") == []


@pytest.mark.parametrize("op", ["get", "complete", "delete", "update"])
def test_foreign_task_behaves_like_missing(store: Store, op: str) -> None:
    t = store.create_task("u1", "Private")

    def call(owner: str, task_id: int) -> object:
        if op == "get":
            return store.get_task(owner, task_id)
        if op == "complete":
            return store.mark_complete(owner, task_id)
        if op == "delete":
            return store.delete_task(owner, task_id)
        return store.update_task(owner, task_id, title="Hijacked")

    with pytest.raises(NotFoundError) as foreign:
        call("u2", t.id)
    with pytest.raises(NotFoundError) as missing:
        call("u2", 987654)

    assert type(foreign.value) is type(missing.value)
    assert foreign.value.kind == missing.value.kind == "task"
    untouched = store.get_task("u1", t.id)
    assert untouched.title == "Private"
    assert untouched.completed is False


def test_ping(store: Store) -> None:
    assert store.ping() is True


def test_timestamps_come_back_as_utc(store: Store) -> None:
    conv = store.get_or_create_conversation("u1")
    msg = store.append_message(conv.id, "u1", "user", "hi")
    task = store.create_task("u1", "Buy groceries")

    reloaded = store.get_conversation("u1", conv.id)
    [stored] = store.load_history(conv.id, "u1")
    [listed] = store.list_tasks("u1")
    stamps = [
        msg.created_at,
        task.created_at,
        reloaded.created_at,
        reloaded.updated_at,
        stored.created_at,
        listed.created_at,
        listed.updated_at,
    ]
    assert all(s.utcoffset() == _dt.timedelta(0) for s in stamps)
