from __future__ import annotations

import datetime as _dt
import uuid
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.UTC)


def _as_utc(value: _dt.datetime | None) -> _dt.datetime | None:
    # Naive timestamps are taken as UTC so that due dates stay comparable
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=_dt.UTC)
    return value


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.LOW: 0, Priority.MEDIUM: 1, Priority.HIGH: 2}


class _CamelModel(BaseModel):
    # Wire format is camelCase; python attributes stay snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(_CamelModel):
    """A task persisted in the store.

    - `owner` is set once from the caller identity and never changes
    - `updated_at` is refreshed by the store on every save
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: str | None = None
    due_date: _dt.datetime | None = None
    priority: Priority = Priority.MEDIUM
    completed: bool = False
    owner: str
    created_at: _dt.datetime = Field(default_factory=_utcnow)
    updated_at: _dt.datetime = Field(default_factory=_utcnow)

    @field_validator("due_date", "created_at", "updated_at")
    @classmethod
    def as_utc(cls, value: _dt.datetime | None) -> _dt.datetime | None:
        return _as_utc(value)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TaskCreate(_CamelModel):
    """Body of POST /api/tasks. Unknown fields (e.g. `owner`) are ignored."""

    title: str | None = None
    description: str | None = None
    due_date: _dt.datetime | None = None
    priority: Priority | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def falsy_due_date_is_unset(cls, value: Any) -> Any:
        return value or None

    @field_validator("due_date")
    @classmethod
    def as_utc(cls, value: _dt.datetime | None) -> _dt.datetime | None:
        return _as_utc(value)


class TaskUpdate(_CamelModel):
    """Body of PUT /api/tasks/{id}.

    Presence matters: only fields listed in `model_fields_set` are applied.
    """

    title: str | None = None
    description: str | None = None
    due_date: _dt.datetime | None = None
    priority: Priority | None = None
    completed: bool | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def falsy_due_date_clears(cls, value: Any) -> Any:
        return value or None

    @field_validator("due_date")
    @classmethod
    def as_utc(cls, value: _dt.datetime | None) -> _dt.datetime | None:
        return _as_utc(value)

    def provided(self) -> set[str]:
        return set(self.model_fields_set)


__all__ = ["Priority", "Task", "TaskCreate", "TaskUpdate"]
