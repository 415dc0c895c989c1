from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import redis
from pydantic import ValidationError

from taskapi.observability import get_json_logger

from .errors import TaskStoreError
from .models import Task
from .store import TaskQuery, TaskStore, apply_query, touch

logger = get_json_logger("taskapi.store")


@contextmanager
def _driver_errors(op: str) -> Iterator[None]:
    try:
        yield
    except redis.exceptions.RedisError as exc:
        logger.error(
            "store error",
            extra={"event": "store_error", "op": op, "attributes": {"error": str(exc)[:200]}},
        )
        raise TaskStoreError() from exc


class RedisTaskStore(TaskStore):
    """Redis-backed task store.

    Data structures:
    - Hash per task: key `{prefix}:task:{id}` with a single `json` field
    - Sorted set per owner: key `{prefix}:owner:{owner}` with
      score=created_at epoch seconds, member=task_id
    """

    def __init__(
        self,
        *,
        url: str | None = None,
        key_prefix: str = "tasks",
        client: Any | None = None,
    ) -> None:
        if client is not None:
            self._redis = client
        else:
            self._redis = redis.Redis.from_url(
                url or "redis://localhost:6379/0", decode_responses=True
            )
        self._prefix = key_prefix.rstrip(":")

    # key helpers
    def _task_key(self, task_id: str) -> str:
        return f"{self._prefix}:task:{task_id}"

    def _owner_key(self, owner: str) -> str:
        return f"{self._prefix}:owner:{owner}"

    @staticmethod
    def _decode(raw: str | bytes | None) -> Task | None:
        if raw is None:
            return None
        try:
            return Task.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning("skipping unreadable task document", extra={"event": "store_decode"})
            return None

    @staticmethod
    def _encode(task: Task) -> str:
        return json.dumps(task.model_dump(mode="json"), separators=(",", ":"))

    def find(self, query: TaskQuery) -> list[Task]:
        with _driver_errors("find"):
            task_ids = self._redis.zrange(self._owner_key(query.owner), 0, -1)
            if not task_ids:
                return []
            p = self._redis.pipeline(transaction=False)
            for tid in task_ids:
                p.hget(self._task_key(tid), "json")
            raws = p.execute()
            # Index entries whose document is gone are dropped from the owner set
            dangling = [tid for tid, raw in zip(task_ids, raws, strict=True) if raw is None]
            if dangling:
                self._redis.zrem(self._owner_key(query.owner), *dangling)
        tasks = [t for t in (self._decode(raw) for raw in raws) if t is not None]
        return apply_query(tasks, query)

    def find_one(self, task_id: str, owner: str) -> Task | None:
        with _driver_errors("find_one"):
            raw = self._redis.hget(self._task_key(task_id), "json")
        task = self._decode(raw)
        if task is None or task.owner != owner:
            return None
        return task

    def save(self, task: Task) -> Task:
        touch(task)
        with _driver_errors("save"):
            p = self._redis.pipeline()
            p.hset(self._task_key(task.id), mapping={"json": self._encode(task)})
            p.zadd(self._owner_key(task.owner), {task.id: task.created_at.timestamp()})
            p.execute()
        return task

    def find_one_and_delete(self, task_id: str, owner: str) -> Task | None:
        key = self._task_key(task_id)

        def _remove(pipe: Any) -> Task | None:
            task = self._decode(pipe.hget(key, "json"))
            if task is None or task.owner != owner:
                return None
            pipe.multi()
            pipe.delete(key)
            pipe.zrem(self._owner_key(owner), task_id)
            return task

        with _driver_errors("find_one_and_delete"):
            # WATCH on the task key makes the read and the delete one atomic step
            return self._redis.transaction(_remove, key, value_from_callable=True)

    def ping(self) -> bool:
        with _driver_errors("ping"):
            return bool(self._redis.ping())


__all__ = ["RedisTaskStore"]
