"""CLI command modules for cronward.

This package contains the CLI command implementations and supporting
utilities for error handling and output formatting.
"""

from cronward.cli import config, run, tasks

from cronward.cli.exit_codes import ExitCode
from cronward.cli.error_handler import (
    CronwardError,
    ConfigurationError,
    TaskFailedError,
    SchedulerUnavailableError,
    NetworkError,
    StorageError,
    ValidationError,
    NotFoundError,
    handle_errors,
)
from cronward.cli.output import (
    print_json,
    print_yaml,
    print_table,
    print_result,
    print_key_value,
    format_duration,
)

__all__ = [
    # Command modules
    "config",
    "run",
    "tasks",
    # Exit codes
    "ExitCode",
    # Error handling
    "CronwardError",
    "ConfigurationError",
    "TaskFailedError",
    "SchedulerUnavailableError",
    "NetworkError",
    "StorageError",
    "ValidationError",
    "NotFoundError",
    "handle_errors",
    # Output
    "print_json",
    "print_yaml",
    "print_table",
    "print_result",
    "print_key_value",
    "format_duration",
]
