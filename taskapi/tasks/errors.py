from __future__ import annotations


class TaskApiError(Exception):
    """Base for errors that map onto a `{success: false, message}` response."""

    status_code: int = 500
    default_message: str = "Server Error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class TaskValidationError(TaskApiError):
    status_code = 400
    default_message = "Invalid request"


class TaskNotFoundError(TaskApiError):
    status_code = 404
    default_message = "Task not found"


class AuthenticationError(TaskApiError):
    status_code = 401
    default_message = "Not authorized"


class TaskStoreError(TaskApiError):
    status_code = 503
    default_message = "Task store unavailable"


__all__ = [
    "AuthenticationError",
    "TaskApiError",
    "TaskNotFoundError",
    "TaskStoreError",
    "TaskValidationError",
]
