"""Foreground host process for the scheduler.

This module provides:
- Service lifecycle management (start/stop)
- Signal handling: SIGINT/SIGTERM shut down, SIGHUP reloads the tasks file
"""

import asyncio
import logging
import signal
from typing import Any, Dict, Optional

from cronward.config import AppConfig
from cronward.scheduler.facade import SchedulerFacade

logger = logging.getLogger(__name__)


class SchedulerDaemon:
    """Hosts a SchedulerFacade until shutdown is requested.

    Attributes:
        _config: Application configuration
        _facade: Scheduler facade instance
        _running: Whether the daemon is running
        _shutdown_event: Event to signal shutdown

    Example:
        daemon = SchedulerDaemon(config)
        await daemon.start()
        await daemon.run_until_shutdown()
        await daemon.stop()
    """

    def __init__(
        self,
        config: AppConfig,
        facade: Optional[SchedulerFacade] = None,
        watch: Optional[bool] = None,
    ):
        """Initialize the daemon service.

        Args:
            config: Application configuration
            facade: Pre-built facade (built from config if None)
            watch: Override for hot reload of the tasks file
        """
        self._config = config
        self._facade = facade or SchedulerFacade.from_config(config, watch=watch)
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._reload_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the scheduler."""
        logger.info("Starting cronward...")
        await self._facade.start()
        self._running = True

        status = self._facade.get_status()
        logger.info(
            f"cronward started: {status['activeTasks']}/{status['totalTasks']} task(s) active, "
            f"timezone {status['timezone']}"
        )
        if not status["configValid"]:
            logger.warning(
                f"Tasks file has {len(status['validationErrors'])} validation error(s)"
            )

    async def stop(self) -> None:
        """Stop the scheduler. In-flight runs are not cancelled."""
        logger.info("Stopping cronward...")
        self._running = False

        try:
            await self._facade.stop()
        except Exception as e:
            logger.warning(f"Error stopping scheduler: {e}")

        logger.info("cronward stopped")

    async def run_until_shutdown(self) -> None:
        """Block until request_shutdown() is called."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request daemon shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    def request_reload(self) -> None:
        """Schedule a configuration reload on the event loop."""
        logger.info("Reload requested")
        self._reload_task = asyncio.ensure_future(self._reload())

    async def _reload(self) -> None:
        try:
            await self._facade.reload()
        except Exception as e:
            logger.error(f"Reload failed: {e}")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def facade(self) -> SchedulerFacade:
        return self._facade


async def run_daemon(config: AppConfig, options: Dict[str, Any]) -> None:
    """Run the scheduler with signal handling until SIGINT/SIGTERM.

    Args:
        config: Application configuration
        options: Host options:
            - watch: Enable hot reload (default from config)

    Example:
        await run_daemon(config, {"watch": False})
    """
    daemon = SchedulerDaemon(config, watch=options.get("watch"))

    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        if sig == signal.SIGHUP:
            logger.info("Received SIGHUP, reloading configuration...")
            daemon.request_reload()
            return
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        daemon.request_shutdown()

    signals = [signal.SIGTERM, signal.SIGINT]
    if hasattr(signal, "SIGHUP"):
        signals.append(signal.SIGHUP)

    for sig in signals:
        try:
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda signum, frame: handle_signal(signal.Signals(signum)))

    try:
        await daemon.start()
        await daemon.run_until_shutdown()
    finally:
        await daemon.stop()
