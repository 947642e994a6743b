"""Cron scheduler owning the live job registry.

The CronScheduler binds every enabled task to an APScheduler CronTrigger,
computes upcoming fire times for display, and dispatches executions to the
TaskExecutor and HistoryStore when triggers fire.

The registry is rebuilt from scratch on every configuration load; jobs are
never patched in place.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, tzinfo
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_MISSED,
)
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from tzlocal import get_localzone

from cronward.scheduler.models import (
    SYSTEM_TIMEZONE,
    ExecutionRecord,
    Task,
    TaskOutcome,
)

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_COUNT = 3
INVALID_CRON = "Invalid cron"

# Cron fires and manual runs may overlap; this only bounds runaway overlap
DEFAULT_MAX_INSTANCES = 10
DEFAULT_MISFIRE_GRACE_SECONDS = 60

_CRON_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Resolve a configured timezone name.

    Args:
        name: IANA zone name, or "system"/None for the local zone

    Returns:
        tzinfo for the zone

    Raises:
        ValueError: If the zone is unknown
    """
    if not name or name == SYSTEM_TIMEZONE:
        return get_localzone()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: '{name}'") from e


def _weekday_number(token: str) -> int:
    if token.isdigit():
        number = int(token)
        if number > 7:
            raise ValueError(f"Invalid day of week: '{token}'")
        return number
    name = token.lower()[:3]
    if name not in _CRON_WEEKDAYS:
        raise ValueError(f"Invalid day of week: '{token}'")
    return _CRON_WEEKDAYS.index(name)


def _translate_day_of_week(value: str) -> str:
    """Convert a crontab day-of-week field to APScheduler syntax.

    Crontab counts Sunday as 0 (or 7) while APScheduler numbers Monday as 0,
    so numeric fields are expanded into explicit weekday names.
    """
    if not re.search(r"\d", value):
        return value

    names: List[str] = []
    for part in value.split(","):
        base, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"Invalid step in day of week: '{part}'")

        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            first, last = base.split("-", 1)
            start, end = _weekday_number(first), _weekday_number(last)
        else:
            start = _weekday_number(base)
            end = 6 if step_text else start

        if start > end:
            raise ValueError(f"Invalid day of week range: '{part}'")

        names.extend(_CRON_WEEKDAYS[day % 7] for day in range(start, end + 1, step))

    return ",".join(dict.fromkeys(names))


def build_cron_trigger(schedule: str, timezone: Optional[tzinfo] = None) -> CronTrigger:
    """Parse a cron schedule string into a CronTrigger.

    Supports both 5-part (minute hour day month weekday) and
    6-part (second minute hour day month weekday) cron formats.
    Weekdays follow crontab numbering (0 or 7 is Sunday).

    Args:
        schedule: Cron schedule string
        timezone: Zone the expression is evaluated in (local zone if None)

    Returns:
        CronTrigger instance

    Raises:
        ValueError: If the expression is malformed
    """
    if not isinstance(schedule, str):
        raise ValueError("Cron schedule must be a string")

    tz = timezone or get_localzone()
    parts = schedule.split()

    if len(parts) == 6:
        second, minute, hour, day, month, weekday = parts
    elif len(parts) == 5:
        second = "0"
        minute, hour, day, month, weekday = parts
    else:
        raise ValueError(
            f"Invalid cron schedule: '{schedule}'. "
            "Expected 5 or 6 parts (minute hour day month weekday "
            "or second minute hour day month weekday)"
        )

    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_translate_day_of_week(weekday),
        timezone=tz,
    )


def compute_fire_times(
    trigger: CronTrigger,
    count: int,
    now: datetime,
) -> List[datetime]:
    """Compute the next fire times of a trigger in ascending order.

    A fire time that does not move strictly forward (a timezone transition
    anomaly) is skipped rather than emitted.
    """
    fire_times: List[datetime] = []
    cursor = now
    attempts = 0

    while len(fire_times) < count and attempts < count * 10:
        attempts += 1
        fire_time = trigger.get_next_fire_time(None, cursor)
        if fire_time is None:
            break

        if fire_times and fire_time <= fire_times[-1]:
            logger.debug(f"Skipping out-of-order fire time {fire_time.isoformat()}")
            cursor = cursor + timedelta(seconds=1)
            continue

        fire_times.append(fire_time)
        cursor = fire_time + timedelta(seconds=1)

    return fire_times


def format_fire_time(value: datetime, tz: tzinfo) -> str:
    """Format a fire time as 'YYYY-MM-DD HH:MM:SS TZ' in the given zone."""
    local = value.astimezone(tz)
    abbreviation = local.strftime("%Z") or str(tz)
    return f"{local.strftime('%Y-%m-%d %H:%M:%S')} {abbreviation}"


@dataclass
class Job:
    """Runtime binding of a task to its cron trigger."""

    task: Task
    trigger: CronTrigger

    @property
    def job_id(self) -> str:
        return self.task.id


class CronScheduler:
    """Owns the job registry and fires tasks on their cron schedules.

    Example:
        scheduler = CronScheduler(executor, history)
        scheduler.rebuild(configuration.tasks, configuration.timezone)
        scheduler.start()
        scheduler.next_runs("backup", 3)
    """

    def __init__(
        self,
        executor: Any,
        history: Any,
        max_instances: int = DEFAULT_MAX_INSTANCES,
        misfire_grace_time: int = DEFAULT_MISFIRE_GRACE_SECONDS,
    ) -> None:
        """Initialize the cron scheduler.

        Args:
            executor: TaskExecutor used to run tasks
            history: HistoryStore receiving execution records
            max_instances: Concurrent fires allowed per task
            misfire_grace_time: Seconds a late fire is still executed
        """
        self._executor = executor
        self._history = history
        self._max_instances = max_instances
        self._misfire_grace_time = misfire_grace_time

        self._tasks: Dict[str, Task] = {}
        self._jobs: Dict[str, Job] = {}
        self._active_runs: Dict[str, int] = {}
        self._timezone_name = SYSTEM_TIMEZONE
        self._tz: tzinfo = get_localzone()
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_started(self) -> bool:
        return self._scheduler is not None

    @property
    def timezone_name(self) -> str:
        return self._timezone_name

    @property
    def tasks(self) -> List[Task]:
        """Snapshots of every loaded task, enabled or not."""
        return [self._snapshot(t) for t in self._tasks.values()]

    @property
    def active_count(self) -> int:
        """Number of live jobs."""
        return len(self._jobs)

    def get_task(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return self._snapshot(task) if task else None

    def has_job(self, task_id: str) -> bool:
        return task_id in self._jobs

    def is_running(self, task_id: str) -> bool:
        """Whether at least one execution of the task is in flight."""
        return self._active_runs.get(task_id, 0) > 0

    def start(self) -> None:
        """Start firing jobs. Must be called from a running event loop."""
        if self._scheduler:
            return

        self._scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,
                "max_instances": self._max_instances,
                "misfire_grace_time": self._misfire_grace_time,
            },
            timezone=self._tz,
        )
        self._setup_listeners()
        self._scheduler.start()

        for job in self._jobs.values():
            self._add_to_apscheduler(job)

        logger.info(f"Cron scheduler started with {len(self._jobs)} job(s)")

    def shutdown(self) -> None:
        """Stop firing jobs. In-flight executions are not cancelled."""
        if not self._scheduler:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Cron scheduler stopped")

    def clear(self) -> None:
        """Stop and discard every job."""
        for job_id in list(self._jobs):
            self._remove_from_apscheduler(job_id)
        self._jobs.clear()
        logger.debug("All jobs stopped")

    def rebuild(self, tasks: List[Task], timezone_name: Optional[str] = None) -> None:
        """Replace the registry with jobs for the given tasks.

        Args:
            tasks: Individually valid tasks (disabled ones are kept for listing)
            timezone_name: Configured zone, or "system"
        """
        self.clear()

        self._timezone_name = timezone_name or SYSTEM_TIMEZONE
        try:
            self._tz = resolve_timezone(self._timezone_name)
        except ValueError as e:
            logger.warning(f"{e}, falling back to system timezone")
            self._tz = get_localzone()

        self._tasks = {task.id: self._snapshot(task) for task in tasks}

        for task in self._tasks.values():
            if not task.enabled:
                logger.info(f"Task '{task.name}' is disabled")
                continue

            try:
                trigger = build_cron_trigger(task.schedule, self._tz)
            except ValueError as e:
                logger.error(f"Error creating job for task '{task.name}': {e}")
                continue

            job = Job(task=task, trigger=trigger)
            self._jobs[task.id] = job
            self._add_to_apscheduler(job)
            logger.info(f"Task '{task.name}' scheduled with pattern: {task.schedule}")

        logger.info(f"Initialized {len(self._jobs)} task(s)")

    def next_fire_times(
        self,
        task_id: str,
        count: int = DEFAULT_PREVIEW_COUNT,
        now: Optional[datetime] = None,
    ) -> List[datetime]:
        """Compute upcoming fire times for a live job (empty if none)."""
        job = self._jobs.get(task_id)
        if job is None:
            return []
        return compute_fire_times(job.trigger, count, now or datetime.now(self._tz))

    def next_runs(
        self,
        task_id: str,
        count: int = DEFAULT_PREVIEW_COUNT,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Formatted upcoming fire times for a task.

        Returns:
            Ascending list of 'YYYY-MM-DD HH:MM:SS TZ' strings, an empty list
            for disabled or unknown tasks, or [INVALID_CRON] when the
            schedule cannot be evaluated
        """
        task = self._tasks.get(task_id)
        if task is None or not task.enabled:
            return []
        if task_id not in self._jobs:
            return [INVALID_CRON]

        try:
            fire_times = self.next_fire_times(task_id, count, now)
            return [format_fire_time(t, self._tz) for t in fire_times]
        except Exception as e:
            logger.warning(f"Error computing next runs for task '{task.name}': {e}")
            return [INVALID_CRON]

    async def dispatch(self, task: Task) -> Optional[TaskOutcome]:
        """Execute a task once and record the outcome to history.

        Failures never propagate: a broken run must not cancel future fires.

        Returns:
            The execution outcome, or None if the executor itself crashed
        """
        self._active_runs[task.id] = self._active_runs.get(task.id, 0) + 1
        try:
            outcome = await self._executor.execute(task)
        except Exception as e:
            logger.error(f"Error executing task '{task.name}': {e}")
            return None
        finally:
            self._active_runs[task.id] -= 1
            if self._active_runs[task.id] <= 0:
                del self._active_runs[task.id]

        try:
            await self._history.record(ExecutionRecord.from_outcome(task, outcome))
        except Exception as e:
            logger.error(f"Failed to record history for task '{task.id}': {e}")

        return outcome

    async def _job_callback(self, task_id: str) -> None:
        """Callback invoked by APScheduler when a job should run."""
        job = self._jobs.get(task_id)
        if job is None:
            logger.warning(f"Job {task_id} not found, skipping execution")
            return

        logger.info(f"Executing task '{job.task.name}' at {datetime.now(self._tz).isoformat()}")
        await self.dispatch(job.task)

    def _setup_listeners(self) -> None:
        """Set up APScheduler event listeners."""
        if not self._scheduler:
            return

        def on_job_error(event: Any) -> None:
            exception = getattr(event, "exception", "Unknown error")
            logger.error(f"Job {event.job_id} failed: {exception}")

        def on_job_missed(event: Any) -> None:
            logger.warning(f"Job {event.job_id} missed scheduled run")

        def on_max_instances(event: Any) -> None:
            logger.warning(f"Job {event.job_id} skipped: too many overlapping runs")

        self._scheduler.add_listener(on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(on_job_missed, EVENT_JOB_MISSED)
        self._scheduler.add_listener(on_max_instances, EVENT_JOB_MAX_INSTANCES)

    def _add_to_apscheduler(self, job: Job) -> None:
        if not self._scheduler:
            return

        try:
            self._scheduler.add_job(
                func=self._job_callback,
                trigger=job.trigger,
                id=job.job_id,
                name=job.task.name,
                args=[job.job_id],
                replace_existing=True,
            )
            logger.debug(f"Added job {job.job_id} to APScheduler")
        except Exception as e:
            logger.error(f"Failed to add job {job.job_id} to APScheduler: {e}")

    def _remove_from_apscheduler(self, job_id: str) -> None:
        if not self._scheduler:
            return

        if self._scheduler.get_job(job_id):
            self._scheduler.remove_job(job_id)
            logger.debug(f"Removed job {job_id} from APScheduler")

    @staticmethod
    def _snapshot(task: Task) -> Task:
        return replace(task, config=dict(task.config))
