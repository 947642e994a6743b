"""cronward run command - Host the scheduler in the foreground."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from cronward.cli.error_handler import SchedulerUnavailableError, StorageError, handle_errors

app = typer.Typer(help="Run the scheduler in the foreground.")
console = Console()


@app.callback(invoke_without_command=True)
@handle_errors
def run(
    tasks_file: Optional[Path] = typer.Option(
        None,
        "--tasks",
        "-t",
        help="Path to the tasks file (default from settings).",
        dir_okay=False,
        resolve_path=True,
    ),
    no_watch: bool = typer.Option(
        False,
        "--no-watch",
        help="Disable automatic reload when the tasks file changes.",
    ),
    pid_path: Optional[Path] = typer.Option(
        None,
        "--pid-file",
        help="Where to record the process ID (default in the data directory).",
        dir_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Start the scheduler and run until interrupted.

    Tasks fire on their cron schedules and every run is recorded to
    history. Send SIGHUP (or run 'cronward tasks reload') to reload the
    tasks file.

    Example:
        cronward run
        cronward run --tasks ./scheduler.json --no-watch
    """
    from cronward.config import ensure_directories, get_config
    from cronward.daemon.pid import PIDFile
    from cronward.daemon.service import run_daemon

    config = get_config()
    if tasks_file is not None:
        config.scheduler.tasks_file = tasks_file

    try:
        ensure_directories(config)
    except OSError as e:
        raise StorageError(f"Cannot create data directories: {e}")

    pid_file = PIDFile(pid_path or config.pid_file)

    if pid_file.is_running():
        raise SchedulerUnavailableError(
            "Scheduler is already running",
            details={"pid": pid_file.read()},
        )
    pid_file.clear_if_stale()

    try:
        pid_file.create()
    except OSError as e:
        raise StorageError(f"Failed to create PID file: {e}")

    console.print("[bold green]Starting cronward...[/bold green]")
    console.print(f"[dim]Tasks file: {config.scheduler.tasks_file}[/dim]")

    try:
        asyncio.run(run_daemon(config, {"watch": False if no_watch else None}))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    except Exception:
        logging.exception("Scheduler error")
        raise
    finally:
        pid_file.remove()
