"""cronward tasks command - Inspect and control scheduled tasks."""

import asyncio
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from cronward.cli.error_handler import (
    ConfigurationError,
    NetworkError,
    SchedulerUnavailableError,
    TaskFailedError,
    handle_errors,
)
from cronward.cli.output import (
    format_duration,
    print_json,
    print_key_value,
    print_result,
    print_table,
)
from cronward.scheduler.task_executor import TRANSPORT_FAILURES

app = typer.Typer(help="Inspect and control scheduled tasks.")
console = Console()

TASKS_FILE_OPTION = typer.Option(
    None,
    "--tasks",
    "-t",
    help="Path to the tasks file (default from settings).",
    dir_okay=False,
    resolve_path=True,
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Output in JSON format.",
)


def _json_mode(flag: bool) -> bool:
    from cronward.main import is_json

    return flag or is_json()


def _get_facade(tasks_file: Optional[Path] = None):
    """Build a facade for one-shot commands and load the tasks file."""
    from cronward.config import get_config
    from cronward.scheduler.facade import SchedulerFacade

    config = get_config()
    if tasks_file is not None:
        config.scheduler.tasks_file = tasks_file

    facade = SchedulerFacade.from_config(config, watch=False, apply_log_level=False)
    facade.load()
    return facade


@app.command("list")
@handle_errors
def list_tasks(
    tasks_file: Optional[Path] = TASKS_FILE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """List all tasks with their upcoming runs.

    Example:
        cronward tasks list
        cronward tasks list --json
    """
    facade = _get_facade(tasks_file)
    tasks = facade.list_tasks()

    if _json_mode(json_output):
        print_json(tasks)
        return

    if not tasks:
        console.print("[yellow]No tasks configured.[/yellow]")
        console.print(f"[dim]Tasks file: {facade.config_path}[/dim]")
        return

    table = Table(title="Scheduled Tasks")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Type")
    table.add_column("Schedule", style="green")
    table.add_column("Status", style="bold")
    table.add_column("Next Run")

    for task in tasks:
        status_str = "[green]enabled[/green]" if task["enabled"] else "[yellow]disabled[/yellow]"
        table.add_row(
            task["id"],
            task["name"],
            task["type"],
            task["schedule"],
            status_str,
            task["nextRun"],
        )

    console.print(table)


@app.command("status")
@handle_errors
def status(
    tasks_file: Optional[Path] = TASKS_FILE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show scheduler status and configuration health.

    Example:
        cronward tasks status
    """
    from cronward.config import get_config
    from cronward.daemon.pid import PIDFile

    facade = _get_facade(tasks_file)
    result = facade.get_status()
    # A one-shot process never runs timers; report the host process instead
    result["running"] = PIDFile(get_config().pid_file).is_running()

    if _json_mode(json_output):
        print_json(result)
        return

    print_key_value(
        {
            "Running": result["running"],
            "Tasks file": result["configPath"],
            "Timezone": result["timezone"],
            "Total tasks": result["totalTasks"],
            "Active tasks": result["activeTasks"],
            "Config valid": result["configValid"],
        },
        title="Scheduler Status",
    )

    if result["validationErrors"]:
        console.print()
        print_table(
            result["validationErrors"],
            ["type", "field", "message"],
            title="Validation Errors",
            column_styles={"type": "red", "field": "cyan"},
        )
    if result["validationWarnings"]:
        console.print()
        print_table(
            result["validationWarnings"],
            ["field", "message"],
            title="Warnings",
            column_styles={"field": "yellow"},
        )


@app.command("validate")
@handle_errors
def validate(
    path: Optional[Path] = typer.Argument(
        None,
        help="Tasks file to validate (default from settings).",
        dir_okay=False,
        resolve_path=True,
    ),
    json_output: bool = JSON_OPTION,
) -> None:
    """Validate a tasks file without running anything.

    Example:
        cronward tasks validate
        cronward tasks validate ./scheduler.json
    """
    from cronward.config import get_config
    from cronward.scheduler.config_validator import ConfigValidator

    path = path or get_config().scheduler.tasks_file
    try:
        raw_text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigurationError(f"Tasks file not found: {path}")
    except OSError as e:
        raise ConfigurationError(f"Cannot read tasks file: {e}", details={"path": str(path)})

    result = ConfigValidator().validate(raw_text)

    if _json_mode(json_output):
        print_json({
            "valid": result.is_valid,
            "tasks": len(result.configuration.tasks) if result.configuration else 0,
            "errors": [e.to_dict() for e in result.errors],
            "warnings": [w.to_dict() for w in result.warnings],
        })
    else:
        for error in result.errors:
            console.print(f"[red]✗[/red] [cyan]{error.field}[/cyan]: {error.message}")
            if error.type.value == "json_syntax":
                console.print(error.details.get("context", ""), markup=False)
        for warning in result.warnings:
            console.print(f"[yellow]![/yellow] [cyan]{warning.field}[/cyan]: {warning.message}")

        if result.is_valid:
            count = len(result.configuration.tasks) if result.configuration else 0
            print_result(True, f"{path} is valid ({count} task(s))")

    if not result.is_valid:
        raise ConfigurationError(
            f"{path} has {len(result.errors)} validation error(s)"
        )


@app.command("run")
@handle_errors
def run_task(
    task_id: str = typer.Argument(
        ...,
        help="ID of the task to run immediately.",
    ),
    tasks_file: Optional[Path] = TASKS_FILE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Run a task immediately (outside of its schedule).

    The run is recorded in the task's history like a scheduled run.

    Example:
        cronward tasks run backup
    """
    facade = _get_facade(tasks_file)

    if not _json_mode(json_output):
        console.print(f"[bold]Running task:[/bold] {task_id}")

    summary = asyncio.run(facade.run_now(task_id))

    if _json_mode(json_output):
        print_json(summary)
    elif summary["status"] == "success":
        result = summary.get("result") or {}
        details = {"duration": format_duration(summary["duration"])}
        if isinstance(result, dict) and "httpStatus" in result:
            details["http status"] = result["httpStatus"]
        if isinstance(result, dict) and result.get("stdout"):
            details["stdout"] = result["stdout"].strip()
        print_result(True, f"Task '{summary['taskName']}' completed", details)
    else:
        print_result(
            False,
            f"Task '{summary['taskName']}' failed",
            {"error": summary.get("error"), "duration": format_duration(summary["duration"])},
        )

    if summary["status"] != "success":
        if summary.get("error") in TRANSPORT_FAILURES:
            raise NetworkError(f"Task '{task_id}' could not connect: {summary['error']}")
        raise TaskFailedError(f"Task '{task_id}' failed: {summary.get('error')}")


@app.command("history")
@handle_errors
def history(
    task_id: Optional[str] = typer.Argument(
        None,
        help="Task ID to show history for (or all tasks if not specified).",
    ),
    limit: int = typer.Option(
        10,
        "--limit",
        "-l",
        help="Number of history entries to show.",
        min=1,
        max=100,
    ),
    tasks_file: Optional[Path] = TASKS_FILE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show task execution history, newest first.

    Example:
        cronward tasks history
        cronward tasks history backup --limit 20
    """
    facade = _get_facade(tasks_file)
    runs = facade.get_history(task_id, limit)

    if _json_mode(json_output):
        print_json(runs)
        return

    if not runs:
        console.print("[yellow]No history yet.[/yellow]")
        return

    table = Table(title=f"Task History{f' for {task_id}' if task_id else ''}")
    table.add_column("Task", style="cyan")
    table.add_column("Started", style="green")
    table.add_column("Duration")
    table.add_column("Status", style="bold")
    table.add_column("Details")

    for run in runs:
        if run["status"] == "success":
            status_str = "[green]success[/green]"
            result = run.get("result") or {}
            detail = f"HTTP {result['httpStatus']}" if result.get("httpStatus") else (result.get("response") or "")
        else:
            status_str = "[red]error[/red]"
            detail = run.get("error") or ""

        table.add_row(
            run["taskId"],
            run["startTime"],
            format_duration(run["duration"]),
            status_str,
            detail[:60],
        )

    console.print(table)


@app.command("stats")
@handle_errors
def stats(
    task_id: str = typer.Argument(
        ...,
        help="Task ID to summarize.",
    ),
    tasks_file: Optional[Path] = TASKS_FILE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show execution statistics for a task.

    Example:
        cronward tasks stats backup
    """
    facade = _get_facade(tasks_file)
    result = facade.get_task_statistics(task_id).to_dict()

    if _json_mode(json_output):
        print_json(result)
        return

    print_key_value(
        {
            "Total runs": result["total"],
            "Succeeded": result["success"],
            "Failed": result["failure"],
            "Average duration": format_duration(result["avgElapsedMs"]),
            "Last run": result["lastRunTs"],
        },
        title=f"Statistics for {task_id}",
    )


@app.command("reload")
@handle_errors
def reload() -> None:
    """Ask the running scheduler to reload its tasks file.

    Example:
        cronward tasks reload
    """
    from cronward.config import get_config
    from cronward.daemon.pid import PIDFile

    pid_file = PIDFile(get_config().pid_file)

    try:
        pid = pid_file.send_signal(signal.SIGHUP)
    except ProcessLookupError:
        pid_file.clear_if_stale()
        raise SchedulerUnavailableError("Scheduler is not running")
    except PermissionError:
        raise SchedulerUnavailableError(
            "Permission denied: cannot signal the scheduler process",
            details={"pid": pid_file.read()},
        )

    print_result(True, f"Reload requested (PID: {pid})")
