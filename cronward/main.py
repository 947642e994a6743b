"""Main CLI entry point for cronward."""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from cronward import __app_name__, __version__
from cronward.cli import config, run, tasks
from cronward.cli.exit_codes import ExitCode

# Create the main Typer app
app = typer.Typer(
    name=__app_name__,
    help="cronward - Recurring task scheduler for HTTP calls and shell commands.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Console for CLI output
console = Console()

# Register command groups
app.add_typer(run.app, name="run")
app.add_typer(tasks.app, name="tasks")
app.add_typer(config.app, name="config")

# Global state for CLI options
_global_state: dict[str, bool] = {
    "json": False,
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"{__app_name__} v{__version__}")
        raise typer.Exit(code=ExitCode.SUCCESS)


def _setup_logging(
    verbose: bool = False,
    debug: bool = False,
    quiet: bool = False,
    log_file: Optional[Path] = None,
    default_level: str = "WARNING",
    log_format: Optional[str] = None,
) -> None:
    """Set up logging configuration based on CLI options.

    Args:
        verbose: Enable INFO level logging
        debug: Enable DEBUG level logging
        quiet: Suppress non-error output
        log_file: Optional log file path
        default_level: Level used when no verbosity flag is given
        log_format: Format string used outside debug mode
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        level = getattr(logging, default_level.upper(), logging.WARNING)

    if debug:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    else:
        format_str = log_format or "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers: list[logging.Handler] = []

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log debug to file
        handlers.append(file_handler)

    if not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        handlers.append(console_handler)
    elif not log_file:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=logging.DEBUG if log_file else level,
        format=format_str,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    # APScheduler logs every job submission at INFO
    logging.getLogger("apscheduler").setLevel(logging.DEBUG if debug else logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured: level={logging.getLevelName(level)}, debug={debug}")


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable verbose output (INFO level logging).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode (DEBUG level logging).",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format where applicable.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output.",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log to file (logs DEBUG level regardless of console settings).",
    ),
) -> None:
    """cronward - Recurring task scheduler for HTTP calls and shell commands.

    [bold]Commands:[/bold]

    • [cyan]run[/cyan] - Run the scheduler in the foreground
    • [cyan]tasks[/cyan] - List, validate, trigger and inspect tasks
    • [cyan]config[/cyan] - Show settings

    [bold]Examples:[/bold]

        cronward run
        cronward tasks list
        cronward tasks run backup
        cronward tasks history --limit 20
    """
    _global_state["json"] = json_output

    if quiet and verbose:
        console.print("[red]Error:[/red] --quiet and --verbose are mutually exclusive")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    if quiet and debug:
        console.print("[red]Error:[/red] --quiet and --debug are mutually exclusive")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    from cronward.config import get_config

    settings = get_config().logging
    _setup_logging(
        verbose=verbose,
        debug=debug,
        quiet=quiet,
        log_file=log_file or settings.file,
        default_level=settings.level,
        log_format=settings.format,
    )

    logger = logging.getLogger(__name__)
    logger.debug(f"cronward v{__version__} starting")
    logger.debug(f"Options: verbose={verbose}, debug={debug}, json={json_output}, quiet={quiet}")


def is_json() -> bool:
    """Check if JSON output mode is enabled."""
    return _global_state.get("json", False)


__all__ = [
    "app",
    "is_json",
]


if __name__ == "__main__":
    app()
