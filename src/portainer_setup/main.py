#!/usr/bin/env python3
"""Main entry point for portainerctl."""

import sys
from pathlib import Path

import typer
from typer.core import TyperGroup

from portainer_setup import __version__
from portainer_setup.commands import doctor as doctor_cmd
from portainer_setup.commands import manage as manage_cmd
from portainer_setup.commands import setup as setup_cmd
from portainer_setup.config import get_settings, set_log_level
from portainer_setup.utils.common import console


class DispatchGroup(TyperGroup):
    """Command group that reports unknown commands and exits with status 1."""

    def resolve_command(self, ctx: typer.Context, args: list[str]):
        name = args[0] if args else None
        if (
            name
            and not name.startswith("-")
            and not ctx.resilient_parsing
            and self.get_command(ctx, name) is None
        ):
            console.print(f"[red]Unknown command: {name}[/red]")
            typer.echo(ctx.get_help())
            raise typer.Exit(1)
        return super().resolve_command(ctx, args)


app = typer.Typer(
    name="portainerctl",
    cls=DispatchGroup,
    help="Set up and manage a Portainer server or agent with docker compose.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool):
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]portainerctl[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    project_root: Path | None = typer.Option(
        None,
        "--project-root",
        "-C",
        help="Directory holding docker-compose.yml (default: current directory)",
        file_okay=False,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs on stderr"),
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
):
    """
    Set up and manage a Portainer server or agent.

    Run [cyan]setup[/cyan] first, then use the management commands from the
    same directory (or pass --project-root).
    """
    if verbose:
        set_log_level("DEBUG")

    settings = get_settings()
    if project_root is not None:
        settings = settings.model_copy(
            update={"project_root": project_root.expanduser().resolve()}
        )
    ctx.obj = settings


app.command(name="setup")(setup_cmd.setup)

app.command(name="start")(manage_cmd.start)
app.command(name="stop")(manage_cmd.stop)
app.command(name="restart")(manage_cmd.restart)
app.command(name="logs")(manage_cmd.logs)
app.command(name="status")(manage_cmd.status)
app.command(name="update")(manage_cmd.update)
app.command(name="rollback")(manage_cmd.rollback)
app.command(name="backup")(manage_cmd.backup)
app.command(name="restore")(manage_cmd.restore)
app.command(name="shell")(manage_cmd.shell)
app.command(name="help")(manage_cmd.show_help)

app.command(name="doctor")(doctor_cmd.doctor)


def run():
    """Main entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    run()
