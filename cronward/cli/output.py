"""Output formatting utilities for cronward.

This module provides standardized output formatting for task listings,
status reports and run summaries. It supports both human-readable and
machine-readable (JSON) output.
"""

import json
from typing import Any, Dict, List

import yaml
from rich.console import Console
from rich.json import JSON as RichJSON
from rich.syntax import Syntax
from rich.table import Table

# Default console for output
console = Console()


def print_json(data: Any, console_instance: Console | None = None) -> None:
    """Print data as formatted JSON.

    Args:
        data: Data to print (must be JSON-serializable)
        console_instance: Optional custom console instance
    """
    prog_console = console_instance or console

    json_str = json.dumps(data, indent=2, default=str)
    # Never crop or wrap machine-readable output to the terminal width
    prog_console.print(RichJSON(json_str), soft_wrap=True)


def print_yaml(
    data: Any,
    title: str | None = None,
    console_instance: Console | None = None,
) -> None:
    """Print data as YAML-formatted output."""
    prog_console = console_instance or console

    yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
    if title:
        prog_console.print(f"[bold]{title}[/bold]")
    prog_console.print(Syntax(yaml_str, "yaml", theme="monokai"))


def print_table(
    data: List[Dict[str, Any]],
    columns: List[str],
    title: str | None = None,
    column_styles: Dict[str, str] | None = None,
    console_instance: Console | None = None,
) -> None:
    """Print data as a formatted table.

    Args:
        data: List of dictionaries containing row data
        columns: List of column keys to display
        title: Optional table title
        column_styles: Optional dict mapping column names to Rich styles
        console_instance: Optional custom console instance

    Example:
        print_table(facade.list_tasks(), ["id", "schedule", "nextRun"], title="Tasks")
    """
    prog_console = console_instance or console
    column_styles = column_styles or {}

    table = Table(title=title)

    for col in columns:
        style = column_styles.get(col)
        header = col.replace("_", " ").title()
        table.add_column(header, style=style)

    for row in data:
        values = []
        for col in columns:
            value = row.get(col, "")
            if value is None:
                value = ""
            elif isinstance(value, bool):
                value = "[green]Yes[/green]" if value else "[red]No[/red]"
            values.append(str(value))

        table.add_row(*values)

    prog_console.print(table)


def print_result(
    success: bool,
    message: str,
    details: Dict[str, Any] | None = None,
    console_instance: Console | None = None,
) -> None:
    """Print operation result with appropriate styling.

    Example:
        print_result(True, "Task completed", {"duration": "120ms"})
        print_result(False, "Task failed", {"error": "Connection refused"})
    """
    prog_console = console_instance or console

    icon = "[green]✓[/green]" if success else "[red]✗[/red]"
    prog_console.print(f"{icon} {message}")

    if details:
        for key, value in details.items():
            if value is not None:
                prog_console.print(f"  [dim]{key}:[/dim] {value}")


def print_key_value(
    data: Dict[str, Any],
    title: str | None = None,
    key_style: str = "cyan",
    console_instance: Console | None = None,
) -> None:
    """Print data as key-value pairs.

    Args:
        data: Dictionary of key-value pairs
        title: Optional title
        key_style: Style for keys
        console_instance: Optional custom console instance
    """
    prog_console = console_instance or console

    if title:
        prog_console.print(f"[bold]{title}[/bold]")
        prog_console.print()

    max_key_len = max(len(str(k)) for k in data.keys()) if data else 0

    for key, value in data.items():
        if isinstance(value, bool):
            formatted = "[green]Yes[/green]" if value else "[red]No[/red]"
        elif isinstance(value, (int, float)):
            formatted = f"[yellow]{value}[/yellow]"
        else:
            formatted = str(value) if value is not None else "[dim]N/A[/dim]"

        padded_key = str(key).ljust(max_key_len)
        prog_console.print(f"  [{key_style}]{padded_key}[/{key_style}] : {formatted}")


def format_duration(milliseconds: float) -> str:
    """Format a run duration in human-readable format.

    Example:
        format_duration(250)  # Returns "250ms"
        format_duration(90000)  # Returns "1m 30s"
    """
    if milliseconds < 1000:
        return f"{int(milliseconds)}ms"

    seconds = milliseconds / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"
