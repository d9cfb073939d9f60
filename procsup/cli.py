"""CLI entry point for the process supervisor.

Commands:
- procsup server: Run the supervisor daemon in the foreground
- procsup kill: Ask a running daemon to exit
- procsup start: Register a process with the daemon and launch it
- procsup version: Show version information
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from procsup.core.client import request_add_process, request_kill
from procsup.core.config import ConfigError, SupervisorConfig, load_config
from procsup.core.daemon import run_server
from procsup.core.protocol import ProtocolError
from procsup.core.transport import TransportError

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route all log records through rich on stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _get_config(ctx: click.Context) -> SupervisorConfig:
    return ctx.obj["config"]


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.procsup/config.yaml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """procsup - run background processes without an init system.

    A daemon keeps a list of processes and relaunches them when it starts;
    the other commands talk to it over UDP.
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    configure_logging("DEBUG" if verbose else config.log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@click.pass_context
def server(ctx: click.Context) -> None:
    """Run the supervisor daemon until it receives kill."""
    config = _get_config(ctx)
    console.print(f"[bold]Starting supervisor[/bold] on {config.host}:{config.port}")
    console.print(f"[dim]State file: {config.state_path}[/dim]")

    try:
        status = run_server(config)
    except TransportError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)

    console.print("[green]Supervisor stopped[/green]")
    sys.exit(status)


@main.command()
@click.pass_context
def kill(ctx: click.Context) -> None:
    """Ask the running daemon to exit."""
    config = _get_config(ctx)

    try:
        request_kill(config)
    except (TransportError, ProtocolError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    console.print(Panel("[green]Supervisor acknowledged kill[/green]", title="Status"))


@main.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option("--pwd", "-p", help="Working directory (default: current directory)")
@click.option("--name", "-n", help="Display name (default: command basename)")
@click.pass_context
def start(
    ctx: click.Context,
    command: str,
    args: tuple[str, ...],
    pwd: str | None,
    name: str | None,
) -> None:
    """Register COMMAND with the daemon and launch it.

    Example:
        procsup start --name web -p /srv python3 -m http.server 8000
    """
    config = _get_config(ctx)
    display_name = name or Path(command).name
    working_dir = str(Path(pwd).resolve()) if pwd else None

    try:
        event = request_add_process(
            config,
            name=display_name,
            command=command,
            args=list(args),
            pwd=working_dir,
        )
    except (TransportError, ProtocolError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    payload = event.payload
    console.print(f"[bold]Submitted:[/bold] {payload.name}")
    console.print(f"[bold]Command:[/bold] {payload.command} {' '.join(payload.args)}".rstrip())
    console.print(f"[dim]Working directory: {payload.pwd}[/dim]")


@main.command()
def version() -> None:
    """Show version information."""
    from procsup import __version__

    console.print(f"procsup v{__version__}")
    console.print("Single-machine process supervisor")


if __name__ == "__main__":
    main()
