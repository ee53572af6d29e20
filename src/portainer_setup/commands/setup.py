"""Interactive installation: choose server or agent and generate the descriptor."""

import typer

from portainer_setup.bootstrap import DockerBootstrapper
from portainer_setup.builder import (
    PLACEHOLDER_ADDRESS,
    DescriptorWriter,
    build_descriptor,
    parse_install_choice,
    write_gitignore,
    write_manage_script,
    write_readme,
)
from portainer_setup.config import ToolSettings
from portainer_setup.descriptor import InstallMode
from portainer_setup.errors import BootstrapError, InvalidChoiceError
from portainer_setup.utils.common import console
from portainer_setup.utils.docker import primary_ip_address


def _ask_install_mode() -> str:
    console.print()
    console.print("[blue]What type of installation is this?[/blue]")
    console.print("[yellow]1) Main Portainer Server (for RPI or main machine)[/yellow]")
    console.print("[yellow]2) Portainer Agent (for laptops/remote machines)[/yellow]")
    console.print()
    return typer.prompt("Enter your choice (1 or 2)")


def _ask_server_address() -> str:
    console.print()
    console.print("[yellow]To connect this agent to your Portainer server, you'll need:[/yellow]")
    console.print("[blue]1. The IP address or hostname of your Portainer server[/blue]")
    console.print(
        "[blue]2. The agent key (generated in Portainer UI when adding an environment)[/blue]"
    )
    console.print()
    return typer.prompt(
        "Enter Portainer server address (e.g., 192.168.1.100 or portainer.example.com)",
        default="",
        show_default=False,
    )


def _print_next_steps(mode: InstallMode, settings: ToolSettings) -> None:
    manage = "./scripts/manage.sh"
    console.print()
    console.print("[green]=====================================[/green]")
    console.print("[green]Portainer setup completed![/green]")
    console.print("[green]=====================================[/green]")
    console.print()
    console.print("[blue]Next steps:[/blue]")

    if mode is InstallMode.SERVER:
        console.print("[yellow]1. Start Portainer Server:[/yellow]")
        console.print(f"   {manage} start")
        console.print("[yellow]2. Access Portainer:[/yellow]")
        console.print(f"   http://{primary_ip_address()}:{settings.ui_port}")
        console.print("[yellow]3. Create your admin account on first launch[/yellow]")
        commands = ["start", "stop", "logs", "status", "update", "backup", "help"]
    else:
        console.print("[yellow]1. Start Portainer Agent:[/yellow]")
        console.print(f"   {manage} start")
        console.print("[yellow]2. Connect agent to Portainer Server:[/yellow]")
        console.print("   - Access your Portainer server UI")
        console.print("   - Go to Environments > Add Environment")
        console.print("   - Select 'Docker Standalone' > 'Agent'")
        console.print("   - Follow the instructions to connect")
        console.print("[yellow]3. Verify connection in Portainer server[/yellow]")
        commands = ["start", "stop", "logs", "status", "update", "help"]

    console.print()
    console.print("[blue]Management commands:[/blue]")
    for name in commands:
        console.print(f"[yellow]* {name.capitalize() + ':':<9} {manage} {name}[/yellow]")


def setup(
    ctx: typer.Context,
    mode: str | None = typer.Option(
        None, "--mode", "-m", help="Installation type: server (1) or agent (2)"
    ),
    server_address: str | None = typer.Option(
        None, "--server-address", help="Portainer server address (agent only)"
    ),
    agent_key: str | None = typer.Option(None, "--agent-key", help="Agent key (agent only)"),
    healthcheck: bool = typer.Option(False, "--healthcheck", help="Add a container healthcheck"),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Overwrite an existing descriptor without asking"
    ),
    skip_bootstrap: bool = typer.Option(
        False, "--skip-bootstrap", help="Do not check for or install Docker"
    ),
):
    """Generate the Portainer server or agent deployment."""
    settings: ToolSettings = ctx.obj

    console.print("[yellow]Starting Portainer setup...[/yellow]")
    console.print(f"[green]Project root: {settings.project_root}[/green]")

    try:
        install_mode = parse_install_choice(mode if mode is not None else _ask_install_mode())
    except InvalidChoiceError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    if install_mode is InstallMode.SERVER:
        console.print("[green]Installing Portainer Server...[/green]")
    else:
        console.print("[green]Installing Portainer Agent...[/green]")

    if not skip_bootstrap:
        try:
            DockerBootstrapper(docker_command=settings.docker_command).ensure()
        except BootstrapError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1) from e

    console.print("[yellow]Creating directory structure...[/yellow]")
    settings.ensure_dirs(include_backups=install_mode is InstallMode.SERVER)

    writer = DescriptorWriter(settings)
    if writer.exists():
        console.print(f"[yellow]Warning: {settings.compose_file_name} already exists![/yellow]")
        console.print("[yellow]Running setup will OVERWRITE your existing configuration.[/yellow]")
        console.print("[yellow]Any customizations or comments will be lost.[/yellow]")
        if not yes and not typer.confirm(
            "Do you want to continue and overwrite it?", default=False
        ):
            console.print(
                f"[yellow]Setup cancelled. Your existing {settings.compose_file_name} "
                "is unchanged.[/yellow]"
            )
            raise typer.Exit(0)

        backup = writer.backup_existing()
        console.print(f"[green]Backup created: {backup}[/green]")

    if install_mode is InstallMode.AGENT and server_address is None:
        server_address = _ask_server_address()
    if install_mode is InstallMode.AGENT and not (server_address or "").strip():
        console.print(
            "[yellow]No server address provided. Edit AGENT_CLUSTER_ADDR and --server-addr "
            f"({PLACEHOLDER_ADDRESS}) in {settings.compose_file_name} later.[/yellow]"
        )

    console.print(f"[yellow]Creating {settings.compose_file_name}...[/yellow]")
    descriptor = build_descriptor(
        install_mode,
        settings,
        server_address=server_address,
        agent_key=agent_key,
        healthcheck=healthcheck,
    )
    writer.write(descriptor)
    console.print(
        f"[green]Created {settings.compose_file_name} for Portainer "
        f"{install_mode.value.capitalize()}[/green]"
    )
    if install_mode is InstallMode.AGENT:
        console.print(
            "[yellow]Note: You may need to update the server address and add the agent key "
            "in Portainer UI.[/yellow]"
        )

    console.print("[yellow]Creating management scripts...[/yellow]")
    write_manage_script(settings)
    write_gitignore(settings)
    write_readme(settings)

    _print_next_steps(install_mode, settings)


__all__ = ["setup"]
