"""Management commands for an installed deployment."""

from pathlib import Path

import typer

from portainer_setup.config import ToolSettings
from portainer_setup.errors import PortainerSetupError
from portainer_setup.manager import PortainerManager
from portainer_setup.utils.common import console
from portainer_setup.utils.docker import ComposeClient

RESTORE_USAGE = "Usage: portainerctl restore /path/to/backup.tar.gz"


def _manager(ctx: typer.Context) -> PortainerManager:
    settings: ToolSettings = ctx.obj
    client = ComposeClient(settings.project_root, settings.docker_command)
    return PortainerManager(settings, client=client)


def _fail(exc: Exception) -> typer.Exit:
    console.print(f"[red]{exc}[/red]")
    return typer.Exit(1)


def start(ctx: typer.Context):
    """Start Portainer."""
    try:
        _manager(ctx).start()
    except PortainerSetupError as e:
        raise _fail(e) from e


def stop(ctx: typer.Context):
    """Stop Portainer."""
    try:
        _manager(ctx).stop()
    except PortainerSetupError as e:
        raise _fail(e) from e


def restart(ctx: typer.Context):
    """Restart Portainer."""
    try:
        _manager(ctx).restart()
    except PortainerSetupError as e:
        raise _fail(e) from e


def logs(
    ctx: typer.Context,
    tail: int | None = typer.Option(None, "-n", "--tail", help="Number of lines to show first"),
):
    """Show Portainer logs (Ctrl+C to exit)."""
    try:
        _manager(ctx).logs(tail=tail)
    except PortainerSetupError as e:
        raise _fail(e) from e


def status(ctx: typer.Context):
    """Show container status and resource usage."""
    try:
        _manager(ctx).status()
    except PortainerSetupError as e:
        raise _fail(e) from e


def update(
    ctx: typer.Context,
    version: str | None = typer.Option(
        None, "--version", help="Pin this image tag instead of pulling the current one again"
    ),
):
    """Update Portainer to the latest (or a pinned) version."""
    try:
        _manager(ctx).update(version=version)
    except PortainerSetupError as e:
        raise _fail(e) from e


def rollback(ctx: typer.Context):
    """Go back to the image that ran before the last update."""
    try:
        _manager(ctx).rollback()
    except PortainerSetupError as e:
        raise _fail(e) from e


def backup(ctx: typer.Context):
    """Create a backup of data (server only)."""
    try:
        _manager(ctx).backup()
    except PortainerSetupError as e:
        raise _fail(e) from e


def restore(
    ctx: typer.Context,
    backup_file: Path | None = typer.Argument(None, help="Backup archive to restore"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Restore data from backup (server only)."""
    try:
        manager = _manager(ctx)
        archive = manager.check_restore(backup_file)
    except PortainerSetupError as e:
        console.print(f"[red]{e}[/red]")
        if backup_file is None:
            console.print(RESTORE_USAGE)
        raise typer.Exit(1) from e

    console.print(f"[red]This will overwrite current data with {archive}.[/red]")
    if not yes and not typer.confirm("Continue?", default=False):
        console.print("[yellow]Restore cancelled[/yellow]")
        return

    try:
        manager.restore(archive)
    except PortainerSetupError as e:
        raise _fail(e) from e


def shell(ctx: typer.Context):
    """Access Portainer container shell."""
    try:
        returncode = _manager(ctx).shell()
    except PortainerSetupError as e:
        raise _fail(e) from e
    if returncode:
        raise typer.Exit(returncode)


def show_help(ctx: typer.Context):
    """Show this help message."""
    try:
        installation = _manager(ctx).mode.value
    except PortainerSetupError:
        installation = "not installed (run setup)"

    console.print("[bold]Portainer Management[/bold]")
    console.print(f"Installation type: {installation}\n")
    help_text = ctx.parent.get_help() if ctx.parent else ctx.get_help()
    if help_text:
        typer.echo(help_text)


__all__ = [
    "start",
    "stop",
    "restart",
    "logs",
    "status",
    "update",
    "rollback",
    "backup",
    "restore",
    "shell",
    "show_help",
]
