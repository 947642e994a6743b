"""Hot-reload watcher for the tasks file.

The watcher polls the file's stat signature from an asyncio task and
debounces changes so an editor's save sequence triggers a single reload.
"""

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.5
POLL_INTERVAL_SECONDS = 1.0

Signature = Tuple[int, int, int]


class WatchEvent(str, Enum):
    """Change observed on the watched path."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


class ConfigWatcher:
    """Calls ``on_change`` after the tasks file is created or modified.

    Example:
        watcher = ConfigWatcher(path, facade.reload)
        await watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        path: Path,
        on_change: Callable[[], Awaitable[None]],
        debounce_seconds: float = DEBOUNCE_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        """Initialize the watcher.

        Args:
            path: File to watch; it does not need to exist yet
            on_change: Coroutine function run after a debounced change
            debounce_seconds: Quiet period required before reloading
            poll_interval: Seconds between stat checks
        """
        self._path = Path(path)
        self._on_change = on_change
        self._debounce_seconds = debounce_seconds
        self._poll_interval = poll_interval

        self._signature: Optional[Signature] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._pending: Optional[asyncio.TimerHandle] = None
        self._reload_task: Optional[asyncio.Task] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self) -> bool:
        """Begin watching.

        Returns:
            False if the watcher could not be started (no hot reload)
        """
        if self.is_running:
            return True

        try:
            self._signature = self._stat()
            self._poll_task = asyncio.create_task(self._poll_loop())
        except Exception as e:
            logger.error(f"Failed to start config watcher for {self._path}: {e}")
            return False

        logger.info(f"Watching {self._path} for changes")
        return True

    async def stop(self) -> None:
        """Stop watching and drop any pending reload."""
        if self._pending:
            self._pending.cancel()
            self._pending = None

        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
            logger.debug(f"Stopped watching {self._path}")

    def check(self) -> Optional[WatchEvent]:
        """Compare the current stat signature with the last one seen.

        Returns:
            The observed event, or None if nothing changed
        """
        current = self._stat()
        previous = self._signature
        self._signature = current

        if current == previous:
            return None
        if previous is None:
            return WatchEvent.CREATED
        if current is None:
            return WatchEvent.DELETED
        return WatchEvent.MODIFIED

    def notify(self, event: WatchEvent) -> None:
        """Handle a change event, (re)arming the debounce timer."""
        if event == WatchEvent.DELETED:
            logger.warning(
                f"Config file {self._path} was deleted; keeping the current configuration"
            )
            return

        logger.debug(f"Config file {event.value}: {self._path}")
        if self._pending:
            self._pending.cancel()

        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self._debounce_seconds, self._fire)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                event = self.check()
                if event is not None:
                    self.notify(event)
            except Exception as e:
                logger.error(f"Config watcher error: {e}")

    def _fire(self) -> None:
        self._pending = None
        logger.info(f"Config file changed, reloading {self._path}")
        self._reload_task = asyncio.ensure_future(self._run_callback())

    async def _run_callback(self) -> None:
        try:
            await self._on_change()
        except Exception as e:
            logger.error(f"Reload after config change failed: {e}")

    def _stat(self) -> Optional[Signature]:
        try:
            st = os.stat(self._path)
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size, st.st_ino)
