"""Doctor command for diagnosing the host and the installation."""

import json

import typer
from rich.table import Table

from portainer_setup import __version__
from portainer_setup.bootstrap import DockerBootstrapper
from portainer_setup.config import ToolSettings
from portainer_setup.descriptor import infer_mode, load_descriptor
from portainer_setup.errors import BootstrapError, InvalidDescriptorError
from portainer_setup.state import StateManager
from portainer_setup.utils.common import command_exists, console
from portainer_setup.utils.docker import ComposeClient

CheckResult = tuple[bool, str, list[str]]


def check_docker(client: ComposeClient) -> CheckResult:
    """Check the docker CLI and that the daemon answers.

    Returns:
        Tuple of (is_healthy, status_message, recommendations)
    """
    if not client.is_available():
        return (
            False,
            "Docker CLI not found",
            ["Install Docker: portainerctl setup (or https://docs.docker.com/engine/install/)"],
        )

    version = client.daemon_version()
    if version is None:
        return (
            False,
            "Docker daemon not reachable",
            [
                "Start the daemon: sudo systemctl start docker",
                "Check that your user is in the 'docker' group (log out and back in after setup)",
            ],
        )
    return True, f"Docker v{version}", []


def check_compose(client: ComposeClient) -> CheckResult:
    if client.compose_available():
        return True, "docker compose plugin", []
    return (
        False,
        "docker compose plugin missing",
        ["Install it: sudo apt-get install -y docker-compose-plugin"],
    )


def check_boot(bootstrapper: DockerBootstrapper) -> CheckResult:
    """Check that docker is enabled at boot."""
    if not command_exists("systemctl"):
        return True, "systemctl not available", []
    if bootstrapper.service_enabled():
        return True, "enabled at boot", []
    return False, "not enabled at boot", ["Enable it: sudo systemctl enable docker"]


def check_descriptor(settings: ToolSettings) -> CheckResult:
    path = settings.compose_file
    if not path.exists():
        return False, f"{settings.compose_file_name} missing", ["Run: portainerctl setup"]

    try:
        descriptor = load_descriptor(path)
    except (InvalidDescriptorError, OSError) as e:
        return (
            False,
            f"Unreadable descriptor: {e}",
            [f"Fix {settings.compose_file_name} or run: portainerctl setup"],
        )
    return True, f"{descriptor.service.name} ({descriptor.service.image})", []


def check_state(settings: ToolSettings) -> CheckResult:
    """Check that the installation mode is recorded, not inferred."""
    if not settings.compose_file.exists():
        return False, "no installation", []

    try:
        state = StateManager(settings.state_file).load()
    except Exception as e:
        return False, f"Unreadable state file: {e}", [f"Remove {settings.state_file_name}"]

    if state is None:
        inferred = infer_mode(settings.compose_file.read_text())
        return (
            False,
            f"{inferred.value} (inferred, no state file)",
            ["Record the mode: portainerctl doctor --fix"],
        )
    return True, f"{state.mode.value} ({state.image})", []


def run_auto_fixes(
    settings: ToolSettings,
    bootstrapper: DockerBootstrapper,
    record_state: bool = False,
    enable_boot: bool = False,
) -> list[str]:
    """Run automatic fixes for common issues.

    Args:
        record_state: Write a state file for a descriptor that predates it
        enable_boot: Enable the docker service at boot

    Returns:
        List of actions taken
    """
    actions = []

    if record_state:
        try:
            text = settings.compose_file.read_text()
            mode = infer_mode(text)
            descriptor = load_descriptor(settings.compose_file, mode=mode)
            StateManager(settings.state_file).record_new(mode, descriptor.service.image)
            actions.append(f"Recorded installation mode: {mode.value}")
        except Exception as e:
            actions.append(f"State fix failed: {e}")

    if enable_boot:
        try:
            bootstrapper.enable_service()
            actions.append("Enabled docker at boot")
        except BootstrapError as e:
            actions.append(f"Boot fix failed: {e}")

    return actions


def _run_checks(
    settings: ToolSettings, client: ComposeClient, bootstrapper: DockerBootstrapper
) -> dict[str, CheckResult]:
    return {
        "docker": check_docker(client),
        "compose": check_compose(client),
        "boot": check_boot(bootstrapper),
        "descriptor": check_descriptor(settings),
        "state": check_state(settings),
    }


_LABELS = {
    "docker": "Docker",
    "compose": "Compose",
    "boot": "Boot",
    "descriptor": "Descriptor",
    "state": "Mode",
}


def doctor(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    auto_fix: bool = typer.Option(False, "--fix", help="Attempt to fix issues automatically"),
):
    """Run diagnostic checks on the host and the installation.

    Checks:
    - Docker CLI and daemon
    - docker compose plugin
    - Docker enabled at boot
    - Descriptor and recorded installation mode
    """
    settings: ToolSettings = ctx.obj
    client = ComposeClient(settings.project_root, settings.docker_command)
    bootstrapper = DockerBootstrapper(docker_command=settings.docker_command)

    checks = _run_checks(settings, client, bootstrapper)

    fix_actions = []
    if auto_fix:
        record_state = checks["descriptor"][0] and not checks["state"][0]
        enable_boot = checks["docker"][0] and not checks["boot"][0]
        fix_actions = run_auto_fixes(
            settings, bootstrapper, record_state=record_state, enable_boot=enable_boot
        )
        if fix_actions:
            checks = _run_checks(settings, client, bootstrapper)

    all_healthy = all(result[0] for result in checks.values())
    recommendations = [rec for result in checks.values() for rec in result[2]]

    if json_output:
        output = {
            "healthy": all_healthy,
            "project_root": str(settings.project_root),
            "checks": {
                name: {"healthy": result[0], "status": result[1], "recommendations": result[2]}
                for name, result in checks.items()
            },
            "recommendations": recommendations,
            "version": __version__,
        }
        if fix_actions:
            output["fixes_applied"] = fix_actions
        typer.echo(json.dumps(output, indent=2))
    else:
        console.print("\n[bold cyan]Portainer Setup Doctor[/bold cyan]")
        console.print(f"Project root: {settings.project_root}")
        console.print("=" * 50)

        table = Table(show_header=True, header_style="bold", box=None)
        table.add_column("Component", style="cyan", width=12)
        table.add_column("Status", width=8)
        table.add_column("Details", style="dim")
        for name, (healthy, status, _) in checks.items():
            table.add_row(_LABELS.get(name, name.title()), "ok" if healthy else "FAIL", status)
        console.print(table)

        console.print("\n" + "-" * 50)
        if all_healthy:
            console.print("[bold green]All checks passed[/bold green]")
        else:
            console.print("[bold yellow]Some issues detected[/bold yellow]")

        if fix_actions:
            console.print("\n[bold]Auto-fix actions taken:[/bold]")
            for action in fix_actions:
                console.print(f"  * {action}")

        if recommendations:
            console.print("\n[bold]Recommendations:[/bold]")
            for rec in recommendations:
                console.print(f"  * {rec}")
            if not auto_fix:
                console.print("\nRun [cyan]portainerctl doctor --fix[/cyan] to attempt automatic fixes")


__all__ = ["doctor"]
