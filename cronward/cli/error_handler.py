"""Global exception handling for cronward.

This module provides centralized error handling through custom exception
classes and a decorator that ensures consistent error reporting and
exit codes across all CLI commands.
"""

from functools import wraps
from typing import Callable, TypeVar, Any
import logging

import typer
from rich.console import Console

from cronward.cli.exit_codes import ExitCode
from cronward.scheduler.exceptions import HistoryError, SchedulerError, TaskNotFoundError

# Console for error output (stderr)
console = Console(stderr=True)

# Logger for error logging
logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class CronwardError(Exception):
    """Base exception for the cronward CLI.

    Attributes:
        message: Error message
        exit_code: Exit code to use when exiting
        details: Optional dictionary of additional error details
    """

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            exit_code: Optional override for exit code
            details: Optional dictionary of additional error details
        """
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(CronwardError):
    """Configuration-related error.

    Examples:
        - Tasks file contains invalid JSON
        - Settings file cannot be parsed
    """

    exit_code = ExitCode.CONFIGURATION_ERROR


class TaskFailedError(CronwardError):
    """A manually triggered task ran but failed."""

    exit_code = ExitCode.TASK_FAILED


class SchedulerUnavailableError(CronwardError):
    """The running scheduler process cannot be found or signalled."""

    exit_code = ExitCode.SCHEDULER_ERROR


class NetworkError(CronwardError):
    """Network/connectivity error."""

    exit_code = ExitCode.NETWORK_ERROR


class StorageError(CronwardError):
    """History storage error.

    Examples:
        - History file unreadable
        - Data directory not writable
    """

    exit_code = ExitCode.STORAGE_ERROR


class ValidationError(CronwardError):
    """Validation error for user input."""

    exit_code = ExitCode.INVALID_ARGUMENT


class NotFoundError(CronwardError):
    """Resource not found error.

    Examples:
        - Task id not present in the tasks file
    """

    exit_code = ExitCode.NOT_FOUND


def _convert(error: SchedulerError) -> CronwardError:
    """Translate scheduler core exceptions into CLI errors."""
    details = {"task_id": error.task_id} if error.task_id else None
    if isinstance(error, TaskNotFoundError):
        return NotFoundError(error.message, details=details)
    if isinstance(error, HistoryError):
        return StorageError(str(error), details=details)
    return CronwardError(error.message, details=details)


def _report(error: CronwardError) -> None:
    logger.error(
        f"CronwardError: {error.message}",
        extra={"exit_code": error.exit_code, "details": error.details},
    )

    console.print(f"[red]Error:[/red] {error.message}")

    if error.details:
        for key, value in error.details.items():
            console.print(f"  [dim]{key}:[/dim] {value}")


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling across CLI commands.

    This decorator catches all exceptions and converts them to appropriate
    error messages and exit codes. It handles:

    - CronwardError subclasses: Display error message with appropriate exit code
    - SchedulerError from the core: Converted to the matching CronwardError
    - KeyboardInterrupt: Show cancellation message with exit code 130
    - Other exceptions: Show generic error

    Example:
        @app.command()
        @handle_errors
        def my_command():
            raise ConfigurationError("Invalid config")
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except CronwardError as e:
            _report(e)
            raise typer.Exit(code=e.exit_code)

        except SchedulerError as e:
            converted = _convert(e)
            _report(converted)
            raise typer.Exit(code=converted.exit_code)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            logger.info("Operation cancelled by user (KeyboardInterrupt)")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            # Re-raise typer.Exit as-is
            raise

        except Exception as e:
            logger.exception("Unexpected error occurred")

            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --verbose for more details[/dim]")

            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]
