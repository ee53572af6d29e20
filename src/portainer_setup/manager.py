"""
Command dispatcher for an installed Portainer deployment.

The installation mode is resolved once per invocation, from the state file
when there is one, and decides which operations are allowed.
"""

from pathlib import Path

from portainer_setup.backup import create_backup, restore_backup, validate_archive
from portainer_setup.config import ToolSettings, get_logger
from portainer_setup.descriptor import (
    Descriptor,
    InstallMode,
    infer_mode,
    load_descriptor,
    save_descriptor,
    with_tag,
)
from portainer_setup.errors import (
    DescriptorMissingError,
    ModeNotSupportedError,
    NoRollbackTargetError,
    OrchestratorError,
    PortainerSetupError,
)
from portainer_setup.locking import project_lock
from portainer_setup.state import InstallationState, StateManager
from portainer_setup.utils.common import console
from portainer_setup.utils.docker import ComposeClient, primary_ip_address

logger = get_logger("manager")


class PortainerManager:
    """Runs management operations against the project's compose deployment."""

    def __init__(
        self,
        settings: ToolSettings,
        client: ComposeClient | None = None,
        state_manager: StateManager | None = None,
    ):
        self.settings = settings
        self.client = client or ComposeClient(settings.project_root, settings.docker_command)
        self.state_manager = state_manager or StateManager(settings.state_file)
        self._mode: InstallMode | None = None
        self._state: InstallationState | None = None

    @property
    def mode(self) -> InstallMode:
        """Installation mode, read from the state file or inferred for old descriptors."""
        if self._mode is None:
            if not self.settings.compose_file.exists():
                raise DescriptorMissingError(self.settings.compose_file)

            self._state = self.state_manager.load()
            if self._state is not None:
                self._mode = self._state.mode
            else:
                self._mode = infer_mode(self.settings.compose_file.read_text())
                logger.warning(
                    "No state file, inferred mode from descriptor",
                    mode=self._mode.value,
                    descriptor=str(self.settings.compose_file),
                )
        return self._mode

    @property
    def is_server(self) -> bool:
        return self.mode is InstallMode.SERVER

    def load_descriptor(self) -> Descriptor:
        return load_descriptor(self.settings.compose_file, mode=self.mode)

    def server_url(self) -> str:
        return f"http://{primary_ip_address()}:{self.settings.ui_port}"

    def _require_server(self, action: str) -> None:
        if not self.is_server:
            raise ModeNotSupportedError(action, self.mode.value)

    def _locked(self):
        return project_lock(self.settings.lock_file)

    def _start(self) -> None:
        console.print(f"[yellow]Starting Portainer {self.mode.value}...[/yellow]")
        self.client.up()
        console.print(f"[green]Portainer {self.mode.value} started successfully![/green]")
        if self.is_server:
            console.print(f"[blue]Access it at: {self.server_url()}[/blue]")
        else:
            console.print(f"[blue]Agent is running on port {self.settings.agent_port}[/blue]")
            console.print("[yellow]Make sure it's connected to your Portainer server.[/yellow]")

    def _stop(self) -> None:
        console.print(f"[yellow]Stopping Portainer {self.mode.value}...[/yellow]")
        self.client.down()
        console.print(f"[green]Portainer {self.mode.value} stopped successfully![/green]")

    def start(self) -> None:
        with self._locked():
            self._start()

    def stop(self) -> None:
        with self._locked():
            self._stop()

    def restart(self) -> None:
        with self._locked():
            console.print(f"[yellow]Restarting Portainer {self.mode.value}...[/yellow]")
            self.client.restart()
            console.print(f"[green]Portainer {self.mode.value} restarted successfully![/green]")

    def logs(self, tail: int | None = None) -> None:
        """Follow logs until interrupted."""
        console.print("[yellow]Showing Portainer logs (Ctrl+C to exit)...[/yellow]")
        # Resolve the mode first so a missing descriptor fails before streaming.
        _ = self.mode
        try:
            self.client.logs(follow=True, tail=tail)
        except KeyboardInterrupt:
            console.print("\n[yellow]Stopped following logs[/yellow]")

    def status(self) -> None:
        console.print(f"[yellow]Container Status ({self.mode.value}):[/yellow]")
        self.client.ps()
        console.print()
        console.print("[yellow]System Resources:[/yellow]")
        self.client.stats()

    def _current_state(self, descriptor: Descriptor) -> InstallationState:
        if self._state is None:
            self._state = self.state_manager.record_new(self.mode, descriptor.service.image)
        return self._state

    def _deploy(self, descriptor: Descriptor, image: str, pull: bool) -> None:
        """Point the descriptor at ``image`` and recreate the container.

        If docker fails, the descriptor on disk is put back as it was.
        """
        compose_file = self.settings.compose_file
        original = compose_file.read_text()
        if image != descriptor.service.image:
            descriptor.service.image = image
            save_descriptor(descriptor, compose_file)
        try:
            if pull:
                self.client.pull()
            self.client.up()
        except OrchestratorError:
            compose_file.write_text(original)
            logger.warning("Deploy failed, descriptor restored", image=image)
            console.print(f"[yellow]Restored {compose_file.name} after failed deploy[/yellow]")
            raise

    def update(self, version: str | None = None) -> str:
        """Pull and recreate the deployment, optionally pinning a new tag.

        The image in use beforehand (by digest when Docker knows it) is
        recorded so ``rollback`` can return to it. A failed pull or start
        leaves the descriptor and state untouched.

        Returns:
            The image reference now in the descriptor
        """
        with self._locked():
            descriptor = self.load_descriptor()
            current = descriptor.service.image
            previous = self.client.image_digest(current) or current
            target = with_tag(current, version) if version else current

            if target != current:
                console.print(f"[cyan]Pinning image {target}[/cyan]")
            console.print("[yellow]Updating Portainer...[/yellow]")
            self._deploy(descriptor, target, pull=True)

            state = self._current_state(descriptor)
            self.state_manager.record_image_change(state, target, previous)
            logger.info("Updated deployment", image=target, previous=previous)
            console.print(f"[green]Portainer updated successfully! ({target})[/green]")
            return target

    def rollback(self) -> str:
        """Return to the image recorded by the last update."""
        with self._locked():
            descriptor = self.load_descriptor()
            state = self._current_state(descriptor)
            if not state.previous_image:
                raise NoRollbackTargetError()

            current = descriptor.service.image
            target = state.previous_image
            console.print(f"[yellow]Rolling back to {target}...[/yellow]")
            self._deploy(descriptor, target, pull=False)

            self.state_manager.record_image_change(state, target, current)
            logger.info("Rolled back deployment", image=target, previous=current)
            console.print(f"[green]Rolled back to {target}[/green]")
            return target

    def backup(self) -> Path:
        """Archive the server data directory."""
        self._require_server("backup")
        with self._locked():
            console.print("[yellow]Creating backup...[/yellow]")
            archive = create_backup(self.settings.data_dir, self.settings.backups_dir)
            console.print(f"[green]Backup created: {archive}[/green]")
            return archive

    def check_restore(self, archive: Path | None) -> Path:
        """Validate a restore request before asking for confirmation."""
        self._require_server("restore")
        if archive is None:
            raise PortainerSetupError("Please specify backup file to restore")
        archive = archive.expanduser()
        validate_archive(archive, self.settings.data_dir.name)
        return archive

    def restore(self, archive: Path) -> None:
        """Stop, replace the data directory with the archive, start again."""
        archive = self.check_restore(archive)
        with self._locked():
            console.print(f"[yellow]Restoring data from {archive}...[/yellow]")
            self._stop()
            restore_backup(archive, self.settings.data_dir)
            self._start()
            console.print("[green]Data restored successfully![/green]")

    def shell(self) -> int:
        service = self.load_descriptor().service.name
        console.print("[yellow]Accessing Portainer container shell...[/yellow]")
        return self.client.exec_shell(service)
