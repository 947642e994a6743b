"""Tests for exit codes module."""

import pytest

from cronward.cli.exit_codes import ExitCode


class TestExitCode:
    """Test exit code constants."""

    @pytest.mark.parametrize(
        "code,value",
        [
            (ExitCode.SUCCESS, 0),
            (ExitCode.GENERAL_ERROR, 1),
            (ExitCode.CONFIGURATION_ERROR, 2),
            (ExitCode.TASK_FAILED, 3),
            (ExitCode.SCHEDULER_ERROR, 4),
            (ExitCode.NETWORK_ERROR, 5),
            (ExitCode.STORAGE_ERROR, 6),
            (ExitCode.INVALID_ARGUMENT, 7),
            (ExitCode.NOT_FOUND, 8),
            (ExitCode.PERMISSION_DENIED, 9),
            (ExitCode.CANCELLED, 130),
        ],
    )
    def test_code_values(self, code: int, value: int) -> None:
        """Exit codes keep their documented values."""
        assert code == value

    def test_codes_are_unique(self) -> None:
        """No two exit codes share a value."""
        codes = [
            value for name, value in vars(ExitCode).items()
            if name.isupper() and isinstance(value, int)
        ]
        assert len(codes) == len(set(codes))


class TestExitCodeGetName:
    """Test get_name method."""

    def test_get_name_success(self) -> None:
        """Test getting name for success code."""
        assert ExitCode.get_name(ExitCode.SUCCESS) == "SUCCESS"

    def test_get_name_task_failed(self) -> None:
        """Test getting name for task failure code."""
        assert ExitCode.get_name(ExitCode.TASK_FAILED) == "TASK_FAILED"

    def test_get_name_scheduler_error(self) -> None:
        assert ExitCode.get_name(ExitCode.SCHEDULER_ERROR) == "SCHEDULER_ERROR"

    def test_get_name_unknown(self) -> None:
        """Test getting name for unknown code."""
        assert ExitCode.get_name(999) == "UNKNOWN(999)"


class TestExitCodeGetDescription:
    """Test get_description method."""

    def test_get_description_success(self) -> None:
        """Test getting description for success code."""
        assert ExitCode.get_description(ExitCode.SUCCESS) == "Operation completed successfully"

    def test_get_description_configuration(self) -> None:
        description = ExitCode.get_description(ExitCode.CONFIGURATION_ERROR)
        assert "tasks file" in description

    def test_get_description_unknown(self) -> None:
        """Test getting description for unknown code."""
        assert ExitCode.get_description(999) == "Unknown exit code: 999"
