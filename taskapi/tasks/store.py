from __future__ import annotations

import datetime as _dt
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .models import Task

# Wire name -> key function. Only these fields can be sorted on.
SORT_FIELDS: dict[str, Callable[[Task], Any]] = {
    "createdAt": lambda t: t.created_at,
    "updatedAt": lambda t: t.updated_at,
    "dueDate": lambda t: t.due_date,
    "priority": lambda t: t.priority.rank,
    "title": lambda t: t.title,
    "completed": lambda t: t.completed,
}


@dataclass(frozen=True, slots=True)
class TaskQuery:
    """Owner-scoped filter plus sort for listing tasks."""

    owner: str
    priority: str | None = None
    completed: bool | None = None
    sort_by: str = "createdAt"
    descending: bool = True

    def matches(self, task: Task) -> bool:
        if task.owner != self.owner:
            return False
        if self.priority is not None and task.priority.value != self.priority:
            return False
        if self.completed is not None and task.completed is not self.completed:
            return False
        return True


def _null_first_key(key: Callable[[Task], Any]) -> Callable[[Task], tuple[bool, Any]]:
    # Missing values order before any value, the way a document database sorts nulls
    def wrapped(task: Task) -> tuple[bool, Any]:
        value = key(task)
        return (value is not None, value if value is not None else 0)

    return wrapped


def apply_query(tasks: Iterable[Task], query: TaskQuery) -> list[Task]:
    """Filter and sort tasks; shared by every store implementation."""
    key = SORT_FIELDS.get(query.sort_by)
    if key is None:
        raise ValueError(f"unsupported sort field: {query.sort_by}")
    selected = [t for t in tasks if query.matches(t)]
    selected.sort(key=_null_first_key(key), reverse=query.descending)
    return selected


class TaskStore:
    """Pluggable task store interface.

    Every lookup that targets a single task is scoped by owner: a task that
    exists but belongs to someone else is reported exactly like a missing one.
    """

    def find(self, query: TaskQuery) -> list[Task]:  # pragma: no cover - interface only
        raise NotImplementedError

    def find_one(self, task_id: str, owner: str) -> Task | None:  # pragma: no cover
        raise NotImplementedError

    def save(self, task: Task) -> Task:  # pragma: no cover - interface only
        raise NotImplementedError

    def find_one_and_delete(self, task_id: str, owner: str) -> Task | None:  # pragma: no cover
        raise NotImplementedError

    def ping(self) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError


def touch(task: Task) -> Task:
    """Refresh the last-modified timestamp before a save."""
    task.updated_at = _dt.datetime.now(_dt.UTC)
    return task


__all__ = ["SORT_FIELDS", "TaskQuery", "TaskStore", "apply_query", "touch"]
