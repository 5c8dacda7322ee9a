"""CLI commands for lockbot."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from lockbot import __logo__, __version__

app = typer.Typer(
    name="lockbot",
    help=f"{__logo__} lockbot - Group name, nickname and photo lock bot",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} lockbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """lockbot - Group name, nickname and photo lock bot."""
    pass


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    port: int | None = typer.Option(None, "--port", "-p", envvar="PORT", help="Dashboard port"),
    host: str | None = typer.Option(None, "--host", help="Dashboard host"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Start the dashboard and, when configured, the bot session."""
    from lockbot.api.hub import DashboardHub
    from lockbot.app.bootstrap import build_runtime, configure_logging, load_startup_config

    config = load_startup_config(config_path)
    hub = DashboardHub(backlog=config.dashboard.log_backlog)
    configure_logging(hub, verbose=verbose)

    bind_host = host or config.dashboard.host
    bind_port = port or config.dashboard.port
    console.print(f"{__logo__} Starting lockbot dashboard on http://{bind_host}:{bind_port}")

    runtime = build_runtime(config, config_path=config_path, hub=hub)
    try:
        asyncio.run(_run_foreground(runtime, bind_host, bind_port))
    except KeyboardInterrupt:
        console.print("\nShutting down...")


async def _run_foreground(runtime, host: str, port: int) -> None:
    from lockbot.api.server import create_app, serve

    await runtime.start()
    try:
        await serve(create_app(runtime, runtime.hub), host, port)
    finally:
        await runtime.stop()


# ============================================================================
# Configure / Status
# ============================================================================


@app.command()
def configure(
    cookies_file: Path = typer.Argument(..., help="JSON file holding the cookie array"),
    admin_id: str = typer.Option(..., "--admin-id", "-a", help="Admin user id"),
    prefix: str = typer.Option("/", "--prefix", help="Command prefix"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Save cookies, prefix and admin id without starting the bot."""
    from lockbot.config.loader import CredentialStore, validate_submission
    from lockbot.errors import ConfigError

    try:
        cookies_json = cookies_file.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Cannot read {cookies_file}: {e}[/red]")
        raise typer.Exit(1)

    try:
        submission = validate_submission(cookies_json, prefix, admin_id)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    store = CredentialStore(config_path)
    store.save_settings(cookies=submission.cookies, prefix=submission.prefix, admin_id=submission.admin_id)
    console.print(f"[green]✓[/green] Saved configuration to {store.path}")
    console.print("Start the bot with: [cyan]lockbot run[/cyan]")


@app.command()
def status(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show lockbot configuration status."""
    from lockbot.config.loader import get_config_path, load_config
    from lockbot.errors import ConfigError

    path = config_path or get_config_path()
    console.print(f"{__logo__} lockbot Status\n")
    console.print(f"Config: {path} {'[green]✓[/green]' if path.exists() else '[red]✗[/red]'}")

    try:
        config = load_config(path)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Bot nickname", config.bot_nickname)
    table.add_row("Prefix", config.prefix)
    table.add_row("Admin ID", config.admin_id or "[dim]not set[/dim]")
    table.add_row(
        "Cookies",
        f"[green]✓ {len(config.cookies)} entries[/green]" if config.has_credentials else "[dim]not set[/dim]",
    )
    table.add_row("Bridge", config.bridge.url)
    table.add_row("Dashboard", f"{config.dashboard.host}:{config.dashboard.port}")
    table.add_row("Login retry", f"{config.timings.login_retry_seconds:g}s")
    table.add_row(
        "Listener restarts",
        f"{config.timings.max_listener_restarts} x {config.timings.listener_retry_seconds:g}s",
    )
    console.print(table)


if __name__ == "__main__":
    app()
