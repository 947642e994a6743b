"""Public control surface of the scheduler.

SchedulerFacade wires the ConfigValidator, CronScheduler, TaskExecutor,
HistoryStore and ConfigWatcher together and serves the control operations
(status, task listing, manual runs, reload, history).
"""

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from cronward.scheduler.config_validator import ConfigValidator
from cronward.scheduler.config_watcher import ConfigWatcher
from cronward.scheduler.cron_scheduler import (
    DEFAULT_MAX_INSTANCES,
    DEFAULT_MISFIRE_GRACE_SECONDS,
    DEFAULT_PREVIEW_COUNT,
    INVALID_CRON,
    CronScheduler,
)
from cronward.scheduler.exceptions import TaskNotFoundError
from cronward.scheduler.history_store import HistoryStore
from cronward.scheduler.models import (
    Configuration,
    ExecutionRecord,
    ExecutionStatus,
    HistoryStats,
    Task,
    ValidationError,
    ValidationErrorType,
    ValidationResult,
    format_timestamp,
    utc_now,
)
from cronward.scheduler.task_executor import TaskExecutor

if TYPE_CHECKING:
    from cronward.config import AppConfig

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "cronward"
DISABLED = "Disabled"

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class SchedulerFacade:
    """Loads the tasks file and exposes the scheduler's control operations.

    Example:
        facade = SchedulerFacade(config_path, history_dir)
        await facade.start()
        facade.list_tasks()
        summary = await facade.run_now("backup")
        await facade.stop()

    Attributes:
        _config_path: Tasks file path
        _scheduler: CronScheduler owning the job registry
        _validation: Result of the most recent load
        _last_good: Last configuration loaded without critical errors
    """

    def __init__(
        self,
        config_path: Path,
        history_dir: Path,
        executor: Optional[TaskExecutor] = None,
        history: Optional[HistoryStore] = None,
        validator: Optional[ConfigValidator] = None,
        watch: bool = True,
        apply_log_level: bool = True,
        max_instances: int = DEFAULT_MAX_INSTANCES,
        misfire_grace_time: int = DEFAULT_MISFIRE_GRACE_SECONDS,
        debounce_seconds: float = 0.5,
        poll_interval: float = 1.0,
    ) -> None:
        """Initialize the facade.

        Args:
            config_path: Tasks file (JSON)
            history_dir: Directory holding per-task history files
            executor: Task executor (default TaskExecutor())
            history: History store (default HistoryStore(history_dir))
            validator: Config validator (default ConfigValidator())
            watch: Reload automatically when the tasks file changes
            apply_log_level: Set the package log level from the tasks file
            max_instances: Overlapping runs allowed per task
            misfire_grace_time: Seconds a late cron fire still runs
            debounce_seconds: Watcher quiet period before reloading
            poll_interval: Watcher stat interval
        """
        self._config_path = Path(config_path)
        self._executor = executor or TaskExecutor()
        self._history = history or HistoryStore(Path(history_dir))
        self._validator = validator or ConfigValidator()
        self._scheduler = CronScheduler(
            self._executor,
            self._history,
            max_instances=max_instances,
            misfire_grace_time=misfire_grace_time,
        )
        self._apply_level = apply_log_level
        self._watcher: Optional[ConfigWatcher] = None
        if watch:
            self._watcher = ConfigWatcher(
                self._config_path,
                self.reload,
                debounce_seconds=debounce_seconds,
                poll_interval=poll_interval,
            )

        self._validation = ValidationResult()
        self._configuration = Configuration.empty()
        self._last_good: Optional[Configuration] = None
        self._running = False
        self._reload_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: "AppConfig",
        watch: Optional[bool] = None,
        apply_log_level: bool = True,
    ) -> "SchedulerFacade":
        """Build a facade from application settings."""
        settings = config.scheduler
        return cls(
            config_path=settings.tasks_file,
            history_dir=settings.history_dir,
            executor=TaskExecutor(http_timeout=settings.http_timeout),
            history=HistoryStore(settings.history_dir, max_records=settings.max_history_records),
            watch=settings.watch_config if watch is None else watch,
            apply_log_level=apply_log_level,
            max_instances=settings.max_instances,
            misfire_grace_time=settings.misfire_grace_time,
            debounce_seconds=settings.debounce_seconds,
        )

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def validation(self) -> ValidationResult:
        """Result of the most recent configuration load."""
        return self._validation

    @property
    def configuration(self) -> Configuration:
        """Configuration currently in effect."""
        return self._configuration

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def scheduler(self) -> CronScheduler:
        return self._scheduler

    def load(self) -> ValidationResult:
        """Read and validate the tasks file, then rebuild the job registry.

        Timers only fire once the facade is started; one-shot callers use
        this to inspect a configuration without running it.

        Returns:
            The validation result of this load
        """
        result = self._read_config()

        if result.configuration is not None and not result.critical:
            configuration = result.configuration
            self._last_good = configuration
        elif self._last_good is not None:
            logger.warning("Configuration unusable, keeping last known good configuration")
            configuration = self._last_good
        else:
            logger.warning("Configuration unusable, starting with no tasks")
            configuration = Configuration.empty()

        self._validation = result
        self._configuration = configuration
        if self._apply_level:
            self._apply_log_level(configuration.log_level)

        for error in result.errors:
            logger.error(f"Config error: {error}")
        for warning in result.warnings:
            logger.warning(f"Config warning: {warning}")

        self._scheduler.rebuild(configuration.tasks, configuration.timezone)
        return result

    async def start(self) -> None:
        """Load the configuration, start the timers and the watcher."""
        if self._running:
            return

        logger.info("Starting scheduler...")
        self.load()
        self._scheduler.start()

        if self._watcher and not await self._watcher.start():
            logger.warning("Config watcher unavailable; hot reload disabled")

        self._running = True
        logger.info(f"Scheduler started with {self._scheduler.active_count} active task(s)")

    async def stop(self) -> None:
        """Stop all jobs and the watcher. In-flight runs complete on their own."""
        if not self._running:
            return

        logger.info("Stopping scheduler...")
        if self._watcher:
            await self._watcher.stop()
        self._scheduler.clear()
        self._scheduler.shutdown()
        self._running = False
        logger.info("Scheduler stopped")

    async def reload(self) -> ValidationResult:
        """Destroy every job, reload the tasks file and rebuild.

        Reloads are serialized; a reload never patches jobs in place.
        """
        async with self._reload_lock:
            logger.info("Reloading scheduler configuration...")
            self._scheduler.clear()
            result = self.load()
            logger.info(
                f"Configuration reloaded: {self._scheduler.active_count} active task(s), "
                f"{len(result.errors)} error(s)"
            )
            return result

    def list_tasks(self) -> List[Dict[str, Any]]:
        """Describe every loaded task, including disabled ones."""
        tasks = []
        for task in self._scheduler.tasks:
            next_runs = self._scheduler.next_runs(task.id, DEFAULT_PREVIEW_COUNT)
            if not task.enabled:
                next_run = DISABLED
            elif next_runs:
                next_run = next_runs[0]
            else:
                next_run = INVALID_CRON

            tasks.append({
                "id": task.id,
                "name": task.name,
                "type": task.type.value,
                "schedule": task.schedule,
                "enabled": task.enabled,
                "running": self._scheduler.is_running(task.id),
                "nextRun": next_run,
                "nextRuns": next_runs,
            })
        return tasks

    def get_status(self) -> Dict[str, Any]:
        """Scheduler state and configuration health."""
        return {
            "running": self._running,
            "timezone": self._scheduler.timezone_name,
            "totalTasks": len(self._scheduler.tasks),
            "activeTasks": self._scheduler.active_count,
            "configValid": self._validation.is_valid,
            "configPath": str(self._config_path),
            "validationErrors": [e.to_dict() for e in self._validation.errors],
            "validationWarnings": [w.to_dict() for w in self._validation.warnings],
        }

    async def run_now(self, task_id: str) -> Dict[str, Any]:
        """Execute a task immediately, outside its cron schedule.

        Execution failures are reported in the returned summary, never raised.

        Raises:
            TaskNotFoundError: If no loaded task has this id
        """
        task = self._require_task(task_id)
        logger.info(f"Manually executing task '{task.name}'")

        started_at = utc_now()
        outcome = await self._scheduler.dispatch(task)

        if outcome is None:
            finished_at = utc_now()
            return {
                "taskId": task.id,
                "taskName": task.name,
                "startTime": format_timestamp(started_at),
                "endTime": format_timestamp(finished_at),
                "duration": int((finished_at - started_at).total_seconds() * 1000),
                "status": "error",
                "error": "Task execution failed",
            }

        summary = {
            "taskId": task.id,
            "taskName": task.name,
            "startTime": format_timestamp(outcome.started_at),
            "endTime": format_timestamp(outcome.finished_at),
            "duration": outcome.elapsed_ms,
        }
        if outcome.success:
            summary["status"] = "success"
            summary["result"] = outcome.result
            logger.info(f"Task '{task.name}' completed successfully in {outcome.elapsed_ms}ms")
        else:
            summary["status"] = "error"
            summary["error"] = outcome.error_summary
            logger.error(f"Task '{task.name}' failed: {outcome.error_summary}")
        return summary

    def get_history(self, task_id: Optional[str] = None, limit: int = 10) -> List[Dict[str, Any]]:
        """Recent runs as RunSummary dicts, newest first.

        Args:
            task_id: Restrict to one task; None merges every task's history
            limit: Maximum number of runs returned

        Raises:
            TaskNotFoundError: If task_id names no loaded task
        """
        if task_id is not None:
            self._require_task(task_id)
            records = self._history.tail(task_id, limit)
        else:
            records = self._history.tail_all(limit)

        return [self._run_summary(record) for record in records]

    def get_task_statistics(self, task_id: str) -> HistoryStats:
        """Aggregate history numbers for a loaded task."""
        self._require_task(task_id)
        return self._history.stats(task_id)

    def _require_task(self, task_id: str) -> Task:
        task = self._scheduler.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _run_summary(self, record: ExecutionRecord) -> Dict[str, Any]:
        task = self._scheduler.get_task(record.task_id)
        summary: Dict[str, Any] = {
            "taskId": record.task_id,
            "taskName": task.name if task else record.task_id,
            "startTime": record.start_ts,
            "endTime": record.end_ts,
            "duration": record.elapsed_ms,
        }
        if record.status == ExecutionStatus.SUCCESS:
            summary["status"] = "success"
            summary["result"] = {
                "response": record.response_snippet,
                "httpStatus": record.http_status,
            }
        else:
            summary["status"] = "error"
            summary["error"] = record.error_summary
        return summary

    def _read_config(self) -> ValidationResult:
        path = self._config_path
        try:
            raw_text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning(f"Config file not found: {path}")
            return ValidationResult(
                errors=[
                    ValidationError(
                        ValidationErrorType.FILE_NOT_FOUND,
                        "root",
                        f"Config file not found: {path}",
                        {"path": str(path)},
                    )
                ]
            )
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read config file {path}: {e}")
            return ValidationResult(
                errors=[
                    ValidationError(
                        ValidationErrorType.FILE_ERROR,
                        "root",
                        f"Failed to read config file: {e}",
                        {"path": str(path)},
                    )
                ]
            )

        return self._validator.validate(raw_text)

    @staticmethod
    def _apply_log_level(level: str) -> None:
        logging.getLogger(PACKAGE_LOGGER).setLevel(_LOG_LEVELS.get(level, logging.INFO))
