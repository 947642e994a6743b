"""Exceptions for scheduler operations."""


class SchedulerError(Exception):
    """Base exception for scheduler errors."""

    def __init__(self, message: str, task_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.task_id = task_id

    def __str__(self) -> str:
        return self.message


class TaskNotFoundError(SchedulerError):
    """Raised when an operation names a task id that is not loaded."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with ID '{task_id}' not found", task_id)


class HistoryError(SchedulerError):
    """Raised when a history file exists but cannot be read."""

    def __init__(self, message: str, task_id: str | None = None, path: str | None = None) -> None:
        super().__init__(message, task_id)
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} (path: {self.path})"
        return self.message
