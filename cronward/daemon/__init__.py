"""Host process for running the scheduler in the foreground."""

from cronward.daemon.pid import PIDFile
from cronward.daemon.service import SchedulerDaemon, run_daemon

__all__ = [
    "PIDFile",
    "SchedulerDaemon",
    "run_daemon",
]
