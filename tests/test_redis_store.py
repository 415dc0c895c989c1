from __future__ import annotations

import datetime as dt
from collections.abc import Generator
from typing import Any

import fakeredis
import pytest
import redis

from taskapi.tasks.errors import TaskStoreError
from taskapi.tasks.models import Priority, Task
from taskapi.tasks.redis_store import RedisTaskStore
from taskapi.tasks.store import TaskQuery

T0 = dt.datetime(2024, 1, 1, tzinfo=dt.UTC)


@pytest.fixture(params=["fake", "live"])
def redis_client(request: pytest.FixtureRequest, unique_prefix: str) -> Generator[Any, None, None]:
    """The same store tests run on an in-process fake and, when reachable, a real server."""
    if request.param == "fake":
        yield fakeredis.FakeRedis(decode_responses=True)
        return
    redis_url = request.getfixturevalue("redis_url")
    client = redis.Redis.from_url(redis_url, decode_responses=True)
    yield client
    keys = list(client.scan_iter(f"{unique_prefix}:*"))
    if keys:
        client.delete(*keys)


@pytest.fixture()
def store(redis_client: Any, unique_prefix: str) -> RedisTaskStore:
    return RedisTaskStore(client=redis_client, key_prefix=unique_prefix)


def _task(owner: str, title: str, minutes: int, **fields: object) -> Task:
    return Task.model_validate(
        {"title": title, "owner": owner, "created_at": T0 + dt.timedelta(minutes=minutes), **fields}
    )


def test_save_and_find_one_persists_across_instances(
    store: RedisTaskStore, redis_client: Any, unique_prefix: str
) -> None:
    t = store.save(_task("alice", "Write tests", 0, due_date=T0, priority="high"))

    fetched = store.find_one(t.id, "alice")
    assert fetched is not None
    assert fetched.title == "Write tests"
    assert fetched.priority is Priority.HIGH
    assert fetched.due_date == T0
    assert fetched.completed is False

    # Recreate store to simulate process restart
    store2 = RedisTaskStore(client=redis_client, key_prefix=unique_prefix)
    again = store2.find_one(t.id, "alice")
    assert again is not None
    assert again.id == t.id


def test_find_one_is_owner_scoped(store: RedisTaskStore) -> None:
    t = store.save(_task("alice", "Private", 0))
    assert store.find_one(t.id, "bob") is None
    assert store.find_one("missing", "alice") is None


def test_find_filters_and_sorts(store: RedisTaskStore) -> None:
    a = store.save(_task("alice", "a", 1, completed=True))
    b = store.save(_task("alice", "b", 2, priority="low"))
    store.save(_task("bob", "c", 3))

    newest_first = store.find(TaskQuery(owner="alice"))
    assert [t.id for t in newest_first] == [b.id, a.id]
    oldest_first = store.find(TaskQuery(owner="alice", descending=False))
    assert [t.id for t in oldest_first] == [a.id, b.id]
    assert [t.id for t in store.find(TaskQuery(owner="alice", completed=True))] == [a.id]
    assert [t.id for t in store.find(TaskQuery(owner="alice", priority="low"))] == [b.id]
    assert store.find(TaskQuery(owner="nobody")) == []


def test_save_overwrites_and_touches(store: RedisTaskStore) -> None:
    t = store.save(_task("alice", "Edit me", 0))
    first_touch = t.updated_at
    t.title = "Edited"
    t.completed = True
    store.save(t)

    fetched = store.find_one(t.id, "alice")
    assert fetched is not None
    assert fetched.title == "Edited"
    assert fetched.completed is True
    assert fetched.updated_at >= first_touch
    assert len(store.find(TaskQuery(owner="alice"))) == 1


def test_find_one_and_delete(store: RedisTaskStore) -> None:
    t = store.save(_task("alice", "Remove me", 0))

    assert store.find_one_and_delete(t.id, "bob") is None
    removed = store.find_one_and_delete(t.id, "alice")
    assert removed is not None
    assert removed.id == t.id
    assert store.find_one(t.id, "alice") is None
    assert store.find(TaskQuery(owner="alice")) == []
    assert store.find_one_and_delete(t.id, "alice") is None


def test_ping(store: RedisTaskStore) -> None:
    assert store.ping() is True


def test_driver_failure_becomes_store_error() -> None:
    # Nothing listens on port 1
    s = RedisTaskStore(url="redis://127.0.0.1:1/0", key_prefix="unreachable")
    with pytest.raises(TaskStoreError):
        s.find_one("x", "alice")


def test_find_drops_index_entries_without_a_document(
    store: RedisTaskStore, redis_client: Any, unique_prefix: str
) -> None:
    kept = store.save(_task("alice", "kept", 1))
    lost = store.save(_task("alice", "lost", 2))
    redis_client.delete(f"{unique_prefix}:task:{lost.id}")

    assert [t.id for t in store.find(TaskQuery(owner="alice"))] == [kept.id]
    members = redis_client.zrange(f"{unique_prefix}:owner:alice", 0, -1)
    assert members == [kept.id]


def test_find_keeps_index_entries_for_unreadable_documents(
    store: RedisTaskStore, redis_client: Any, unique_prefix: str
) -> None:
    t = store.save(_task("alice", "corrupt", 1))
    redis_client.hset(f"{unique_prefix}:task:{t.id}", mapping={"json": "{not json"})

    assert store.find(TaskQuery(owner="alice")) == []
    assert redis_client.zcard(f"{unique_prefix}:owner:alice") == 1
