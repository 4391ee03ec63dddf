"""Settings commands for galaxybot."""

from dataclasses import asdict
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from galaxybot.npc.settings import SettingsError, load_settings_file
from galaxybot.utils.config import get_client_config

app = typer.Typer(
    name="settings",
    help="Inspect bot settings and filters.",
    no_args_is_help=True,
)

console = Console()


@app.command()
def show(
    path: Path = typer.Argument(
        None,
        help="Settings file (defaults to GALAXY_SETTINGS_FILE)",
    ),
) -> None:
    """Show the effective settings and name filters."""
    path = path or get_client_config().settings_file
    try:
        settings, filters = load_settings_file(path)
    except SettingsError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)

    source = str(path) if path else "defaults"
    table = Table(title=f"Bot Settings ({source})", border_style="blue")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for name, value in asdict(settings).items():
        table.add_row(name, str(value))
    console.print(table)

    filter_table = Table(title="Filters", border_style="blue")
    filter_table.add_column("List", style="bold")
    filter_table.add_column("Entries")
    for name, entries in asdict(filters).items():
        filter_table.add_row(name, ", ".join(sorted(entries)) or "[dim]empty[/dim]")
    console.print(filter_table)
