"""Environment commands for galaxybot."""

import typer
from rich.console import Console
from rich.table import Table

from galaxybot.cli.config import ENV_VAR_MAP
from galaxybot.cli.utils import display_value, get_current_env_values

app = typer.Typer(
    name="env",
    help="Environment management commands.",
    no_args_is_help=True,
)

console = Console()


@app.command()
def show() -> None:
    """Show current environment variable values.

    Secret values are masked.
    """
    values = get_current_env_values()

    table = Table(title="Environment Variables", border_style="blue")
    table.add_column("Variable", style="bold")
    table.add_column("Value")
    table.add_column("Description", style="dim")

    set_count = 0
    for name, value in values.items():
        var_config = ENV_VAR_MAP.get(name)
        description = var_config.description if var_config else ""
        if value is not None:
            set_count += 1
        elif var_config and var_config.default is not None:
            value_text = f"[dim]{var_config.default} (default)[/dim]"
            table.add_row(name, value_text, description)
            continue
        table.add_row(name, display_value(name, value), description)

    console.print(table)
    console.print(f"\n[dim]{set_count}/{len(values)} variables set[/dim]")
