"""Tests for the cron scheduler and trigger helpers."""

import asyncio
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest
from apscheduler.triggers.cron import CronTrigger

from cronward.scheduler.cron_scheduler import (
    INVALID_CRON,
    CronScheduler,
    _translate_day_of_week,
    build_cron_trigger,
    compute_fire_times,
    format_fire_time,
    resolve_timezone,
)
from cronward.scheduler.models import (
    ExecutionRecord,
    ExecutionStatus,
    Task,
    TaskOutcome,
    TaskType,
    utc_now,
)

UTC = ZoneInfo("UTC")


def make_task(task_id: str = "t1", schedule: str = "0 9 * * *", enabled: bool = True) -> Task:
    return Task(
        id=task_id,
        name=task_id.upper(),
        schedule=schedule,
        type=TaskType.HTTP,
        enabled=enabled,
        config={"url": "https://example.com"},
    )


def make_outcome(success: bool = True) -> TaskOutcome:
    now = utc_now()
    return TaskOutcome(
        status=ExecutionStatus.SUCCESS if success else ExecutionStatus.FAILURE,
        elapsed_ms=12,
        started_at=now,
        finished_at=now,
        details={"http_status": 200} if success else {"error_summary": "Connection refused"},
    )


@pytest.fixture
def executor() -> Any:
    executor = MagicMock()
    executor.execute = AsyncMock(return_value=make_outcome())
    return executor


@pytest.fixture
def history() -> Any:
    history = MagicMock()
    history.record = AsyncMock(return_value=True)
    return history


@pytest.fixture
def scheduler(executor: Any, history: Any) -> CronScheduler:
    return CronScheduler(executor, history)


class TestTriggerHelpers:
    """Tests for cron parsing helpers."""

    def test_five_field_expression(self) -> None:
        trigger = build_cron_trigger("30 9 * * *", UTC)

        assert isinstance(trigger, CronTrigger)
        start = datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
        assert trigger.get_next_fire_time(None, start) == datetime(2024, 1, 1, 9, 30, tzinfo=UTC)

    def test_six_field_expression_has_seconds(self) -> None:
        trigger = build_cron_trigger("15 30 9 * * *", UTC)

        start = datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
        assert trigger.get_next_fire_time(None, start) == datetime(2024, 1, 1, 9, 30, 15, tzinfo=UTC)

    @pytest.mark.parametrize("schedule", ["* * *", "", "1 2 3 4 5 6 7"])
    def test_wrong_field_count(self, schedule: str) -> None:
        with pytest.raises(ValueError):
            build_cron_trigger(schedule, UTC)

    def test_invalid_field_value(self) -> None:
        with pytest.raises(ValueError):
            build_cron_trigger("99 * * * *", UTC)

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("0", "sun"),
            ("7", "sun"),
            ("1-5", "mon,tue,wed,thu,fri"),
            ("0,6", "sun,sat"),
            ("*/2", "sun,tue,thu,sat"),
            ("mon-fri", "mon-fri"),
            ("*", "*"),
        ],
    )
    def test_crontab_weekday_numbering(self, value: str, expected: str) -> None:
        """Sunday is 0 or 7 in crontab numbering."""
        assert _translate_day_of_week(value) == expected

    def test_invalid_weekday(self) -> None:
        with pytest.raises(ValueError):
            _translate_day_of_week("8")

    def test_sunday_schedule_fires_on_sunday(self) -> None:
        trigger = build_cron_trigger("0 12 * * 0", UTC)

        # 2024-01-01 is a Monday
        fire = trigger.get_next_fire_time(None, datetime(2024, 1, 1, tzinfo=UTC))
        assert fire.weekday() == 6
        assert fire.date().isoformat() == "2024-01-07"

    def test_compute_fire_times_strictly_ascending(self) -> None:
        trigger = build_cron_trigger("*/15 * * * *", UTC)
        now = datetime(2024, 1, 1, 0, 0, 30, tzinfo=UTC)

        times = compute_fire_times(trigger, 3, now)

        assert times == [
            datetime(2024, 1, 1, 0, 15, tzinfo=UTC),
            datetime(2024, 1, 1, 0, 30, tzinfo=UTC),
            datetime(2024, 1, 1, 0, 45, tzinfo=UTC),
        ]

    def test_compute_fire_times_across_dst(self) -> None:
        """Fire times stay strictly increasing across a DST transition."""
        tz = ZoneInfo("America/New_York")
        trigger = build_cron_trigger("30 * * * *", tz)
        # Clocks go forward at 2024-03-10 02:00 local time
        now = datetime(2024, 3, 10, 0, 45, tzinfo=tz)

        times = compute_fire_times(trigger, 5, now)

        assert len(times) == 5
        assert all(a < b for a, b in zip(times, times[1:]))

    def test_format_fire_time(self) -> None:
        value = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

        assert format_fire_time(value, ZoneInfo("Europe/London")) == "2024-06-01 13:00:00 BST"
        assert format_fire_time(value, UTC) == "2024-06-01 12:00:00 UTC"

    def test_resolve_timezone(self) -> None:
        assert resolve_timezone("UTC") == UTC
        assert resolve_timezone("system") is not None
        with pytest.raises(ValueError):
            resolve_timezone("Not/AZone")


class TestRebuild:
    """Tests for building the job registry."""

    def test_enabled_tasks_get_jobs(self, scheduler: CronScheduler) -> None:
        scheduler.rebuild([make_task("a"), make_task("b")], "UTC")

        assert scheduler.active_count == 2
        assert scheduler.has_job("a")
        assert scheduler.timezone_name == "UTC"

    def test_disabled_task_listed_without_job(self, scheduler: CronScheduler) -> None:
        """Disabled tasks are kept for listing but never scheduled."""
        scheduler.rebuild([make_task("a"), make_task("b", enabled=False)], "UTC")

        assert scheduler.active_count == 1
        assert not scheduler.has_job("b")
        assert [t.id for t in scheduler.tasks] == ["a", "b"]

    def test_invalid_cron_skipped(self, scheduler: CronScheduler) -> None:
        scheduler.rebuild([make_task("a", schedule="bad cron"), make_task("b")], "UTC")

        assert scheduler.active_count == 1
        assert scheduler.next_runs("a") == [INVALID_CRON]

    def test_rebuild_replaces_previous_jobs(self, scheduler: CronScheduler) -> None:
        scheduler.rebuild([make_task("a"), make_task("b")], "UTC")
        scheduler.rebuild([make_task("c")], "UTC")

        assert scheduler.active_count == 1
        assert scheduler.get_task("a") is None
        assert scheduler.has_job("c")

    def test_unknown_timezone_falls_back_to_system(self, scheduler: CronScheduler) -> None:
        scheduler.rebuild([make_task("a")], "Nowhere/City")

        assert scheduler.active_count == 1
        assert len(scheduler.next_runs("a")) == 3

    def test_registry_not_shared_by_reference(self, scheduler: CronScheduler) -> None:
        """Mutating returned tasks does not affect the registry."""
        scheduler.rebuild([make_task("a")], "UTC")

        task = scheduler.get_task("a")
        task.config["url"] = "https://changed.example.com"
        task.enabled = False

        assert scheduler.get_task("a").url == "https://example.com"
        assert scheduler.get_task("a").enabled is True


class TestNextRuns:
    """Tests for upcoming fire time previews."""

    def test_three_strictly_increasing_runs(self, scheduler: CronScheduler) -> None:
        scheduler.rebuild([make_task("a", schedule="0 9 * * *")], "UTC")
        now = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)

        runs = scheduler.next_runs("a", 3, now=now)

        assert runs == [
            "2024-01-02 09:00:00 UTC",
            "2024-01-03 09:00:00 UTC",
            "2024-01-04 09:00:00 UTC",
        ]

    def test_disabled_task_has_no_runs(self, scheduler: CronScheduler) -> None:
        scheduler.rebuild([make_task("a", enabled=False)], "UTC")

        assert scheduler.next_runs("a") == []

    def test_unknown_task_has_no_runs(self, scheduler: CronScheduler) -> None:
        assert scheduler.next_runs("missing") == []

    def test_evaluation_failure_returns_sentinel(self, scheduler: CronScheduler) -> None:
        scheduler.rebuild([make_task("a")], "UTC")
        scheduler._jobs["a"].trigger = MagicMock()
        scheduler._jobs["a"].trigger.get_next_fire_time.side_effect = OverflowError("overflow")

        assert scheduler.next_runs("a") == [INVALID_CRON]

    @pytest.mark.parametrize("count", [1, 3, 5])
    def test_count(self, scheduler: CronScheduler, count: int) -> None:
        scheduler.rebuild([make_task("a", schedule="*/5 * * * *")], "UTC")

        assert len(scheduler.next_runs("a", count)) == count


class TestDispatch:
    """Tests for executing tasks and recording history."""

    @pytest.mark.asyncio
    async def test_dispatch_records_history(
        self, scheduler: CronScheduler, executor: Any, history: Any
    ) -> None:
        task = make_task("a")

        outcome = await scheduler.dispatch(task)

        assert outcome.success is True
        executor.execute.assert_awaited_once_with(task)
        record = history.record.await_args.args[0]
        assert isinstance(record, ExecutionRecord)
        assert record.task_id == "a"
        assert record.http_status == 200
        assert record.start_ts.endswith("Z")

    @pytest.mark.asyncio
    async def test_executor_crash_is_swallowed(
        self, scheduler: CronScheduler, executor: Any, history: Any
    ) -> None:
        executor.execute.side_effect = RuntimeError("boom")

        assert await scheduler.dispatch(make_task("a")) is None
        history.record.assert_not_awaited()
        assert scheduler.is_running("a") is False

    @pytest.mark.asyncio
    async def test_history_failure_is_swallowed(
        self, scheduler: CronScheduler, history: Any
    ) -> None:
        history.record.side_effect = OSError("disk full")

        outcome = await scheduler.dispatch(make_task("a"))

        assert outcome is not None

    @pytest.mark.asyncio
    async def test_running_state_and_overlap(
        self, scheduler: CronScheduler, executor: Any, history: Any
    ) -> None:
        """Overlapping runs of one task both execute and both get recorded."""
        release = asyncio.Event()

        async def slow(task: Task) -> TaskOutcome:
            await release.wait()
            return make_outcome()

        executor.execute.side_effect = slow
        task = make_task("a")

        first = asyncio.create_task(scheduler.dispatch(task))
        second = asyncio.create_task(scheduler.dispatch(task))
        await asyncio.sleep(0)

        assert scheduler.is_running("a") is True

        release.set()
        await asyncio.gather(first, second)

        assert scheduler.is_running("a") is False
        assert history.record.await_count == 2

    @pytest.mark.asyncio
    async def test_job_callback_for_removed_job(
        self, scheduler: CronScheduler, executor: Any
    ) -> None:
        await scheduler._job_callback("gone")

        executor.execute.assert_not_awaited()


class TestLifecycle:
    """Tests for the APScheduler integration."""

    @pytest.mark.asyncio
    async def test_start_adds_jobs(self, scheduler: CronScheduler) -> None:
        scheduler.rebuild([make_task("a"), make_task("b", enabled=False)], "UTC")
        scheduler.start()
        try:
            assert scheduler.is_started is True
            jobs = scheduler._scheduler.get_jobs()
            assert [job.id for job in jobs] == ["a"]
        finally:
            scheduler.shutdown()

        assert scheduler.is_started is False

    @pytest.mark.asyncio
    async def test_clear_removes_apscheduler_jobs(self, scheduler: CronScheduler) -> None:
        scheduler.start()
        try:
            scheduler.rebuild([make_task("a")], "UTC")
            assert len(scheduler._scheduler.get_jobs()) == 1

            scheduler.clear()
            assert scheduler._scheduler.get_jobs() == []
            assert scheduler.active_count == 0
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_job_fires(self, scheduler: CronScheduler, executor: Any, history: Any) -> None:
        """A job due every second is executed by the running scheduler."""
        scheduler.rebuild([make_task("a", schedule="* * * * * *")], "UTC")
        scheduler.start()
        try:
            for _ in range(30):
                await asyncio.sleep(0.1)
                if history.record.await_count:
                    break
        finally:
            scheduler.shutdown()

        assert executor.execute.await_count >= 1
        assert history.record.await_count >= 1

    def test_shutdown_when_not_started(self, scheduler: CronScheduler) -> None:
        scheduler.shutdown()

        assert scheduler.is_started is False
