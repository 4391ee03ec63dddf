"""Main Typer application for the galaxybot CLI."""

import asyncio
import signal
from contextlib import suppress
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from galaxybot.cli import env as env_cmd
from galaxybot.cli import settings as settings_cmd
from galaxybot.cli.utils import configure_logging
from galaxybot.npc.run_npc import BotRunner
from galaxybot.npc.settings import SettingsError, load_settings_file
from galaxybot.utils.challenge import TOKEN_STRATEGIES, resolve_strategy
from galaxybot.utils.config import get_client_config, load_env_file

console = Console()

app = typer.Typer(
    name="galaxybot",
    help="Galaxy prison bot - connect, track a planet and run the prison loop.",
    rich_markup_mode="rich",
)

app.add_typer(env_cmd.app, name="env", help="Environment management")
app.add_typer(settings_cmd.app, name="settings", help="Settings inspection")


@app.command()
def run(
    code: str = typer.Option(
        None,
        "--code",
        "-c",
        help="Recovery code (defaults to GALAXY_RECOVERY_CODE)",
    ),
    planet: str = typer.Option(
        None,
        "--planet",
        "-p",
        help="Planet to join (defaults to GALAXY_PLANET)",
    ),
    settings_file: Path = typer.Option(
        None,
        "--settings",
        "-s",
        help="TOML/JSON settings file (defaults to GALAXY_SETTINGS_FILE)",
    ),
    strategy: str = typer.Option(
        None,
        "--strategy",
        help="Challenge token strategy: " + ", ".join(sorted(TOKEN_STRATEGIES)),
    ),
    no_start: bool = typer.Option(
        False,
        "--no-start",
        help="Connect and track the planet without arming the bot",
    ),
) -> None:
    """Connect to the server and run the bot until interrupted."""
    config = get_client_config()
    if code:
        config.recovery_code = code.strip()
    if planet:
        config.planet = planet
    if strategy:
        config.token_strategy = strategy
    if settings_file:
        config.settings_file = settings_file

    if not config.recovery_code:
        console.print("[red]Error:[/red] Recovery code required (--code or GALAXY_RECOVERY_CODE)")
        raise typer.Exit(code=1)
    try:
        resolve_strategy(config.token_strategy)
        settings, filters = load_settings_file(config.settings_file)
    except (SettingsError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)

    runner = BotRunner(
        config,
        settings,
        filters,
        auto_start=not no_start,
        sink=lambda line: console.print(escape(line)),
    )
    console.print(f"[bold]Server:[/bold] [cyan]{config.ws_url}[/cyan]")
    console.print(f"[bold]Planet:[/bold] [cyan]{config.planet}[/cyan]")
    asyncio.run(_run_until_interrupted(runner))


async def _run_until_interrupted(runner: BotRunner) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(runner.stop()))
    try:
        await runner.run()
    finally:
        if runner.connected:
            await runner.stop()


@app.command()
def token(
    seed: str = typer.Argument(..., help="Seed sent by the server with HAAAPSI"),
    strategy: str = typer.Option(
        None,
        "--strategy",
        help="Only show this strategy",
    ),
) -> None:
    """Print the challenge token each strategy derives from SEED."""
    names = [strategy] if strategy else sorted(TOKEN_STRATEGIES)
    for name in names:
        try:
            derive = resolve_strategy(name)
        except ValueError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(code=1)
        console.print(f"[bold]{name}[/bold]: {derive(seed)}")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as get_version

        try:
            v = get_version("galaxy-prison-bot")
        except PackageNotFoundError:
            v = "0.1.0"
        console.print(f"[bold]galaxybot[/bold] v{v}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    env_file: Path = typer.Option(
        None,
        "--env",
        "-e",
        help="Env file to load (default: .env.local if present)",
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Override LOGURU_LEVEL",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        is_eager=True,
        callback=version_callback,
    ),
) -> None:
    """Galaxy prison bot CLI."""
    load_env_file(env_file)
    configure_logging(log_level)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
