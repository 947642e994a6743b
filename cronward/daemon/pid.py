"""PID file management for the scheduler host process."""

import os
import signal
from pathlib import Path
from typing import Optional


class PIDFile:
    """Track the running scheduler host through a PID file.

    One-shot CLI commands use it to find the host and signal it, e.g. to
    request a configuration reload.

    Example:
        pid_file = PIDFile(config.pid_file)

        if pid_file.is_running():
            pid_file.send_signal(signal.SIGHUP)
        else:
            pid_file.create()
            try:
                ...
            finally:
                pid_file.remove()
    """

    def __init__(self, path: Path):
        """Initialize PID file manager.

        Args:
            path: Path to the PID file
        """
        self.path = Path(path)

    def create(self) -> None:
        """Write the current process ID, creating the parent directory."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(str(os.getpid()))
        os.replace(tmp_path, self.path)

    def remove(self) -> None:
        """Remove PID file, ignoring a missing file."""
        self.path.unlink(missing_ok=True)

    def read(self) -> Optional[int]:
        """Read PID from file.

        Returns:
            The PID, or None if the file is missing or unreadable
        """
        try:
            return int(self.path.read_text().strip())
        except (ValueError, OSError):
            return None

    def is_running(self) -> bool:
        """Check whether the recorded process is alive."""
        pid = self.read()
        if pid is None:
            return False

        try:
            # Signal 0 only checks that the process exists
            os.kill(pid, 0)
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but belongs to another user
            return True

    def get_pid(self) -> Optional[int]:
        """The running host's PID, or None if not running."""
        if self.is_running():
            return self.read()
        return None

    def clear_if_stale(self) -> bool:
        """Remove the PID file if its process is gone.

        Returns:
            True if a stale file was removed
        """
        if self.read() is None or self.is_running():
            return False
        self.remove()
        return True

    def send_signal(self, sig: signal.Signals) -> int:
        """Send a signal to the running host.

        Returns:
            The PID that was signalled

        Raises:
            ProcessLookupError: If no live process is recorded
            PermissionError: If the process cannot be signalled
        """
        pid = self.get_pid()
        if pid is None:
            raise ProcessLookupError(f"No running process recorded in {self.path}")
        os.kill(pid, sig)
        return pid
