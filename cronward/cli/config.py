"""cronward config command - Show application settings."""

import typer
from rich.console import Console
from rich.syntax import Syntax

from cronward.cli.error_handler import ValidationError, handle_errors
from cronward.cli.output import print_key_value

app = typer.Typer(help="Show cronward configuration.")
console = Console()


@app.command("show")
@handle_errors
def show_config(
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, yaml, json).",
    ),
) -> None:
    """Show the effective settings after file and environment overrides.

    Example:
        cronward config show
        cronward config show --format yaml
    """
    from cronward.config import _config_to_dict, export_config_json, export_config_yaml, get_config

    config = get_config()

    if format == "yaml":
        console.print(Syntax(export_config_yaml(config), "yaml", theme="monokai"))
        return
    elif format == "json":
        console.print(Syntax(export_config_json(config), "json", theme="monokai"))
        return
    elif format != "table":
        raise ValidationError(f"Unknown format '{format}'. Choose from: table, yaml, json")

    data = _config_to_dict(config)
    print_key_value(
        {
            "config_dir": data["config_dir"],
            "data_dir": data["data_dir"],
        },
        title="cronward Configuration",
    )
    console.print()
    print_key_value(data["scheduler"], title="Scheduler")
    console.print()
    print_key_value(data["logging"], title="Logging")


@app.command("path")
def config_path() -> None:
    """Show the settings and tasks file locations.

    Example:
        cronward config path
    """
    from cronward.config import DEFAULT_CONFIG_FILE, get_config

    config = get_config()
    console.print(f"Settings: {config.config_dir / DEFAULT_CONFIG_FILE}")
    console.print(f"Tasks:    {config.scheduler.tasks_file}")
    console.print(f"History:  {config.scheduler.history_dir}")
