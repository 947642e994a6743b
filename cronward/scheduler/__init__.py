"""Recurring task scheduler core.

Tasks are loaded from a JSON tasks file, bound to cron triggers and
executed as HTTP requests or shell commands. Every run is appended to a
per-task history file.
"""

from cronward.scheduler.config_validator import ConfigValidator
from cronward.scheduler.config_watcher import ConfigWatcher, WatchEvent
from cronward.scheduler.cron_scheduler import CronScheduler, build_cron_trigger
from cronward.scheduler.exceptions import HistoryError, SchedulerError, TaskNotFoundError
from cronward.scheduler.facade import SchedulerFacade
from cronward.scheduler.history_store import HistoryStore
from cronward.scheduler.models import (
    Configuration,
    ExecutionRecord,
    ExecutionStatus,
    HistoryStats,
    Task,
    TaskOutcome,
    TaskType,
    ValidationError,
    ValidationErrorType,
    ValidationResult,
)
from cronward.scheduler.task_executor import TaskExecutor, run_command, run_http

__all__ = [
    "ConfigValidator",
    "ConfigWatcher",
    "Configuration",
    "CronScheduler",
    "ExecutionRecord",
    "ExecutionStatus",
    "HistoryError",
    "HistoryStats",
    "HistoryStore",
    "SchedulerError",
    "SchedulerFacade",
    "Task",
    "TaskExecutor",
    "TaskNotFoundError",
    "TaskOutcome",
    "TaskType",
    "ValidationError",
    "ValidationErrorType",
    "ValidationResult",
    "WatchEvent",
    "build_cron_trigger",
    "run_command",
    "run_http",
]
