"""Tests for PID file management."""

import os
import signal
from unittest.mock import patch

import pytest

from cronward.daemon.pid import PIDFile


class TestPIDFile:
    """Tests for PIDFile class."""

    def test_create_pid_file(self, tmp_path):
        """Test creating a PID file."""
        pid_file = PIDFile(tmp_path / "test.pid")

        pid_file.create()

        assert pid_file.path.exists()
        assert pid_file.read() == os.getpid()
        assert not (tmp_path / "test.tmp").exists()

    def test_create_creates_parent_directories(self, tmp_path):
        """Test that create makes parent directories."""
        pid_file = PIDFile(tmp_path / "subdir" / "test.pid")

        pid_file.create()

        assert pid_file.path.exists()

    def test_read_nonexistent_file(self, tmp_path):
        """Test reading from non-existent file returns None."""
        assert PIDFile(tmp_path / "nonexistent.pid").read() is None

    def test_read_invalid_content(self, tmp_path):
        """Test reading invalid content returns None."""
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.path.write_text("not-a-pid")

        assert pid_file.read() is None

    def test_remove(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create()

        pid_file.remove()
        pid_file.remove()

        assert not pid_file.path.exists()

    def test_is_running_current_process(self, tmp_path):
        """The current process is detected as running."""
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create()

        assert pid_file.is_running() is True
        assert pid_file.get_pid() == os.getpid()

    def test_is_running_dead_process(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.path.write_text("4242")

        with patch("cronward.daemon.pid.os.kill", side_effect=ProcessLookupError):
            assert pid_file.is_running() is False
            assert pid_file.get_pid() is None

    def test_is_running_other_user(self, tmp_path):
        """A process owned by another user still counts as running."""
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.path.write_text("1")

        with patch("cronward.daemon.pid.os.kill", side_effect=PermissionError):
            assert pid_file.is_running() is True

    def test_clear_if_stale(self, tmp_path):
        """Test detection and removal of stale PID files."""
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.path.write_text("4242")

        with patch("cronward.daemon.pid.os.kill", side_effect=ProcessLookupError):
            assert pid_file.clear_if_stale() is True

        assert not pid_file.path.exists()

    def test_clear_if_stale_keeps_live_file(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create()

        assert pid_file.clear_if_stale() is False
        assert pid_file.path.exists()


class TestSendSignal:
    """Tests for signalling the host process."""

    def test_send_signal(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.path.write_text("4242")

        with patch("cronward.daemon.pid.os.kill") as kill:
            assert pid_file.send_signal(signal.SIGHUP) == 4242

        kill.assert_called_with(4242, signal.SIGHUP)

    def test_send_signal_without_host(self, tmp_path):
        """No recorded process raises ProcessLookupError."""
        pid_file = PIDFile(tmp_path / "test.pid")

        with pytest.raises(ProcessLookupError):
            pid_file.send_signal(signal.SIGHUP)
