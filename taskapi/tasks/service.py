from __future__ import annotations

from taskapi.observability import get_json_logger, get_metrics

from .errors import TaskNotFoundError, TaskValidationError
from .models import Task, TaskCreate, TaskUpdate
from .store import SORT_FIELDS, TaskQuery, TaskStore

# Query value meaning "do not filter on this field"
ALL = "all"


def build_query(
    owner: str,
    *,
    priority: str | None = None,
    completed: str | None = None,
    sort_by: str | None = None,
    order: str | None = None,
) -> TaskQuery:
    """Translate raw list query parameters into an owner-scoped TaskQuery.

    - `priority`: equality filter unless absent/empty or "all"
    - `completed`: "true" selects completed tasks, any other value except
      "all" selects incomplete ones
    - `order`: ascending only for "asc", descending otherwise
    """
    sort_field = sort_by or "createdAt"
    if sort_field not in SORT_FIELDS:
        allowed = ", ".join(SORT_FIELDS)
        raise TaskValidationError(f"Invalid sortBy '{sort_field}'. Allowed: {allowed}")
    return TaskQuery(
        owner=owner,
        priority=priority if priority and priority != ALL else None,
        completed=None if completed is None or completed == ALL else completed == "true",
        sort_by=sort_field,
        descending=order != "asc",
    )


def _clean_title(value: str | None) -> str:
    title = (value or "").strip()
    if not title:
        raise TaskValidationError("Task title is required")
    return title


def _clean_description(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def toggle_message(task: Task) -> str:
    return f"Task marked as {'completed' if task.completed else 'incomplete'}"


class TaskService:
    """Owner-scoped task operations on top of a TaskStore.

    Every method takes the caller identity first; nothing here trusts an
    owner value coming from the request body.
    """

    def __init__(self, store: TaskStore) -> None:
        self._store = store
        self._logger = get_json_logger("taskapi.tasks")
        self._metrics = get_metrics()

    def _record(self, op: str, task_id: str | None = None) -> None:
        extra: dict[str, str] = {"event": "task_op", "op": op}
        if task_id:
            extra["task_id"] = task_id
        self._logger.info(f"task {op}", extra=extra)
        self._metrics.increment("task_ops", {"op": op})

    def _not_found(self, op: str, task_id: str) -> TaskNotFoundError:
        self._logger.info(
            "task not found", extra={"event": "task_not_found", "op": op, "task_id": task_id}
        )
        self._metrics.increment("task_errors", {"op": op, "kind": "not_found"})
        return TaskNotFoundError()

    def _require(self, owner: str, task_id: str, op: str) -> Task:
        task = self._store.find_one(task_id, owner)
        if task is None:
            raise self._not_found(op, task_id)
        return task

    def list_tasks(
        self,
        owner: str,
        *,
        priority: str | None = None,
        completed: str | None = None,
        sort_by: str | None = None,
        order: str | None = None,
    ) -> list[Task]:
        query = build_query(
            owner, priority=priority, completed=completed, sort_by=sort_by, order=order
        )
        tasks = self._store.find(query)
        self._record("list")
        return tasks

    def get_task(self, owner: str, task_id: str) -> Task:
        task = self._require(owner, task_id, "get")
        self._record("get", task_id)
        return task

    def create_task(self, owner: str, data: TaskCreate) -> Task:
        fields: dict[str, object] = {"title": _clean_title(data.title), "owner": owner}
        if data.description:
            fields["description"] = _clean_description(data.description)
        if data.due_date is not None:
            fields["due_date"] = data.due_date
        if data.priority is not None:
            fields["priority"] = data.priority
        task = self._store.save(Task.model_validate(fields))
        self._record("create", task.id)
        return task

    def update_task(self, owner: str, task_id: str, data: TaskUpdate) -> Task:
        provided = data.provided()
        # Validate the body before touching the store
        title = _clean_title(data.title) if "title" in provided else None
        for name in ("priority", "completed"):
            if name in provided and getattr(data, name) is None:
                raise TaskValidationError(f"{name} cannot be null")

        task = self._require(owner, task_id, "update")
        if title is not None:
            task.title = title
        if "description" in provided:
            task.description = _clean_description(data.description)
        if "due_date" in provided:
            task.due_date = data.due_date
        if data.priority is not None:
            task.priority = data.priority
        if data.completed is not None:
            task.completed = data.completed
        task = self._store.save(task)
        self._record("update", task_id)
        return task

    def delete_task(self, owner: str, task_id: str) -> Task:
        task = self._store.find_one_and_delete(task_id, owner)
        if task is None:
            raise self._not_found("delete", task_id)
        self._record("delete", task_id)
        return task

    def toggle_task(self, owner: str, task_id: str) -> Task:
        task = self._require(owner, task_id, "toggle")
        task.completed = not task.completed
        task = self._store.save(task)
        self._record("toggle", task_id)
        return task


__all__ = ["ALL", "TaskService", "build_query", "toggle_message"]
