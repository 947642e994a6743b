"""Data model for the task scheduler.

Tasks are the user-authored job definitions loaded from the tasks file,
ExecutionRecords are the persisted outcome of a single run, and
ValidationErrors describe everything wrong with a configuration.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

MAX_SNIPPET_LENGTH = 500

SYSTEM_TIMEZONE = "system"


class TaskType(str, Enum):
    """Kind of action a task performs."""

    HTTP = "http"
    COMMAND = "command"


class ExecutionStatus(str, Enum):
    """Outcome of a single task execution."""

    SUCCESS = "success"
    FAILURE = "failure"


class ValidationErrorType(str, Enum):
    """Categories of configuration problems."""

    JSON_SYNTAX = "json_syntax"
    STRUCTURE = "structure"
    TIMEZONE = "timezone"
    REQUIRED_FIELD = "required_field"
    INVALID_VALUE = "invalid_value"
    INVALID_TYPE = "invalid_type"
    CRON_EXPRESSION = "cron_expression"
    DUPLICATE_ID = "duplicate_id"
    FILE_NOT_FOUND = "file_not_found"
    FILE_ERROR = "file_error"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def truncate(text: Optional[str], max_length: int = MAX_SNIPPET_LENGTH) -> Optional[str]:
    """Truncate text to max_length characters, marking the cut with '...'."""
    if not text or len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


# Task ids double as history file names
UNSAFE_ID_CHARACTERS = ("/", "\\", "\x00")


def is_safe_task_id(task_id: str) -> bool:
    """Whether a task id can be used as a file name inside the history directory."""
    if not task_id or task_id in (".", ".."):
        return False
    return not any(char in task_id for char in UNSAFE_ID_CHARACTERS)


@dataclass
class Task:
    """Declarative job definition.

    Attributes:
        id: Stable unique key, also used as the history file name
        name: Display label
        schedule: Cron expression
        type: Which executor runs the task
        enabled: Whether the task gets a live job
        config: Type-specific settings ({url, method, headers, body} or {command})
    """

    id: str
    schedule: str
    type: TaskType
    name: str = ""
    enabled: bool = True
    config: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.id
        if not isinstance(self.type, TaskType):
            self.type = TaskType(self.type)

    @property
    def url(self) -> str:
        return self.config.get("url", "")

    @property
    def method(self) -> str:
        return str(self.config.get("method") or "GET").upper()

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self.config.get("headers") or {})

    @property
    def body(self) -> Any:
        return self.config.get("body")

    @property
    def command(self) -> str:
        return self.config.get("command", "")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Build a Task from an already validated task object."""
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            schedule=data["schedule"],
            type=TaskType(data["type"]),
            enabled=data.get("enabled", True),
            config=dict(data.get("config") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "schedule": self.schedule,
            "type": self.type.value,
            "enabled": self.enabled,
            "config": dict(self.config),
        }


@dataclass
class Configuration:
    """A loaded tasks file: the unit of validation and hot-reload."""

    tasks: List[Task] = field(default_factory=list)
    timezone: str = SYSTEM_TIMEZONE
    log_level: str = "info"

    @classmethod
    def empty(cls) -> "Configuration":
        return cls()


@dataclass
class ValidationError:
    """A single configuration problem.

    Attributes:
        type: Error category
        field: Path of the offending field, e.g. ``tasks[2].config.url``
        message: Human-readable description
        details: Extra data needed to fix the problem
    """

    type: ValidationErrorType
    field: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_critical(self) -> bool:
        """Whether the whole configuration must be discarded."""
        if self.type == ValidationErrorType.JSON_SYNTAX:
            return True
        return self.type == ValidationErrorType.STRUCTURE and self.field in ("root", "tasks")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "field": self.field,
            "message": self.message,
            "details": dict(self.details),
        }

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.field}: {self.message}"


@dataclass
class ValidationResult:
    """Outcome of validating a tasks file."""

    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationError] = field(default_factory=list)
    configuration: Optional[Configuration] = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def critical(self) -> bool:
        return any(e.is_critical for e in self.errors)


@dataclass
class TaskOutcome:
    """Normalized result of executing a task once.

    ``details`` holds the fields that end up in history (http_status,
    error_summary, response_snippet); ``result`` is the raw payload handed
    back to manual triggers.
    """

    status: ExecutionStatus
    elapsed_ms: int
    started_at: datetime
    finished_at: datetime
    details: Dict[str, Any] = field(default_factory=dict)
    result: Any = None

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @property
    def error_summary(self) -> Optional[str]:
        return self.details.get("error_summary")


@dataclass
class ExecutionRecord:
    """One line of durable execution history."""

    task_id: str
    start_ts: str
    end_ts: str
    status: ExecutionStatus
    elapsed_ms: int
    type: TaskType
    http_status: Optional[int] = None
    error_summary: Optional[str] = None
    response_snippet: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, ExecutionStatus):
            self.status = ExecutionStatus(self.status)
        if not isinstance(self.type, TaskType):
            self.type = TaskType(self.type)
        self.error_summary = truncate(self.error_summary)
        self.response_snippet = truncate(self.response_snippet)

    @classmethod
    def from_outcome(cls, task: Task, outcome: TaskOutcome) -> "ExecutionRecord":
        details = outcome.details
        return cls(
            task_id=task.id,
            start_ts=format_timestamp(outcome.started_at),
            end_ts=format_timestamp(outcome.finished_at),
            status=outcome.status,
            elapsed_ms=outcome.elapsed_ms,
            type=task.type,
            http_status=details.get("http_status") if task.type == TaskType.HTTP else None,
            error_summary=details.get("error_summary"),
            response_snippet=details.get("response_snippet"),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionRecord":
        return cls(
            task_id=data["task_id"],
            start_ts=data["start_ts"],
            end_ts=data["end_ts"],
            status=ExecutionStatus(data["status"]),
            elapsed_ms=int(data["elapsed_ms"]),
            type=TaskType(data["type"]),
            http_status=data.get("http_status"),
            error_summary=data.get("error_summary"),
            response_snippet=data.get("response_snippet"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, omitting optional fields that were not recorded."""
        data: Dict[str, Any] = {
            "task_id": self.task_id,
            "start_ts": self.start_ts,
            "end_ts": self.end_ts,
            "status": self.status.value,
            "elapsed_ms": self.elapsed_ms,
            "type": self.type.value,
        }
        if self.http_status is not None:
            data["http_status"] = self.http_status
        if self.error_summary:
            data["error_summary"] = self.error_summary
        if self.response_snippet:
            data["response_snippet"] = self.response_snippet
        return data


@dataclass
class HistoryStats:
    """Aggregate numbers over a task's retained history."""

    total: int = 0
    success: int = 0
    failure: int = 0
    avg_elapsed_ms: int = 0
    last_run_ts: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "failure": self.failure,
            "avgElapsedMs": self.avg_elapsed_ms,
            "lastRunTs": self.last_run_ts,
        }
