"""Tests for the tasks file watcher."""

import asyncio
import os
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from cronward.scheduler.config_watcher import ConfigWatcher, WatchEvent


def _touch(path: Path, content: str) -> None:
    path.write_text(content)
    # Bump mtime explicitly; some filesystems have coarse timestamps
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))


class TestCheck:
    """Tests for stat signature comparison."""

    def test_no_change(self, tmp_path: Path) -> None:
        path = tmp_path / "scheduler.json"
        path.write_text("{}")
        watcher = ConfigWatcher(path, AsyncMock())
        watcher._signature = watcher._stat()

        assert watcher.check() is None

    def test_created(self, tmp_path: Path) -> None:
        path = tmp_path / "scheduler.json"
        watcher = ConfigWatcher(path, AsyncMock())
        watcher._signature = watcher._stat()

        path.write_text("{}")

        assert watcher.check() == WatchEvent.CREATED

    def test_modified(self, tmp_path: Path) -> None:
        path = tmp_path / "scheduler.json"
        path.write_text("{}")
        watcher = ConfigWatcher(path, AsyncMock())
        watcher._signature = watcher._stat()

        _touch(path, '{"tasks": []}')

        assert watcher.check() == WatchEvent.MODIFIED
        assert watcher.check() is None

    def test_deleted(self, tmp_path: Path) -> None:
        path = tmp_path / "scheduler.json"
        path.write_text("{}")
        watcher = ConfigWatcher(path, AsyncMock())
        watcher._signature = watcher._stat()

        path.unlink()

        assert watcher.check() == WatchEvent.DELETED


class TestDebounce:
    """Tests for coalescing change bursts."""

    @pytest.mark.asyncio
    async def test_burst_triggers_single_reload(self, tmp_path: Path) -> None:
        """Several events inside the quiet period produce one callback."""
        callback = AsyncMock()
        watcher = ConfigWatcher(tmp_path / "scheduler.json", callback, debounce_seconds=0.05)

        for _ in range(5):
            watcher.notify(WatchEvent.MODIFIED)
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.15)

        callback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_separate_changes_reload_twice(self, tmp_path: Path) -> None:
        callback = AsyncMock()
        watcher = ConfigWatcher(tmp_path / "scheduler.json", callback, debounce_seconds=0.02)

        watcher.notify(WatchEvent.MODIFIED)
        await asyncio.sleep(0.1)
        watcher.notify(WatchEvent.CREATED)
        await asyncio.sleep(0.1)

        assert callback.await_count == 2

    @pytest.mark.asyncio
    async def test_delete_does_not_reload(self, tmp_path: Path) -> None:
        """Deleting the file keeps the current configuration."""
        callback = AsyncMock()
        watcher = ConfigWatcher(tmp_path / "scheduler.json", callback, debounce_seconds=0.01)

        watcher.notify(WatchEvent.DELETED)
        await asyncio.sleep(0.05)

        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_callback_error_is_logged(self, tmp_path: Path) -> None:
        callback = AsyncMock(side_effect=RuntimeError("reload failed"))
        watcher = ConfigWatcher(tmp_path / "scheduler.json", callback, debounce_seconds=0.01)

        watcher.notify(WatchEvent.MODIFIED)
        await asyncio.sleep(0.05)

        callback.assert_awaited_once()


class TestLifecycle:
    """Tests for the polling task."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, tmp_path: Path) -> None:
        watcher = ConfigWatcher(tmp_path / "scheduler.json", AsyncMock())

        assert await watcher.start() is True
        assert watcher.is_running is True
        assert await watcher.start() is True

        await watcher.stop()
        assert watcher.is_running is False

    @pytest.mark.asyncio
    async def test_edit_is_picked_up(self, tmp_path: Path) -> None:
        """A file edit while running leads to one reload."""
        path = tmp_path / "scheduler.json"
        path.write_text('{"tasks": []}')
        callback = AsyncMock()
        watcher = ConfigWatcher(path, callback, debounce_seconds=0.02, poll_interval=0.02)

        await watcher.start()
        try:
            _touch(path, '{"tasks": [], "timezone": "UTC"}')
            for _ in range(50):
                await asyncio.sleep(0.02)
                if callback.await_count:
                    break
        finally:
            await watcher.stop()

        callback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_reload(self, tmp_path: Path) -> None:
        callback = AsyncMock()
        watcher = ConfigWatcher(tmp_path / "scheduler.json", callback, debounce_seconds=0.05)
        await watcher.start()

        watcher.notify(WatchEvent.MODIFIED)
        await watcher.stop()
        await asyncio.sleep(0.1)

        callback.assert_not_awaited()
