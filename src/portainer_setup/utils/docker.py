"""Docker and docker compose invocation for a single project directory."""

import socket
import subprocess
from pathlib import Path

from portainer_setup.config import get_logger
from portainer_setup.errors import OrchestratorError
from portainer_setup.utils.common import get_command_output, run_command

logger = get_logger("docker")

STATS_FORMAT = "table {{.Container}}\t{{.CPUPerc}}\t{{.MemUsage}}\t{{.NetIO}}\t{{.BlockIO}}"


class ComposeClient:
    """Runs ``docker`` / ``docker compose`` from the project root.

    Output is passed through to the terminal unless a method needs to parse it.
    """

    def __init__(self, project_root: Path, docker_command: str = "docker"):
        self.project_root = project_root
        self.docker_command = docker_command

    def _run_docker(self, args: list[str], *, capture: bool = False) -> subprocess.CompletedProcess:
        """Run a docker CLI command, raising OrchestratorError on failure."""
        cmd = [self.docker_command, *args]
        try:
            result = run_command(cmd, capture=capture, cwd=self.project_root)
        except FileNotFoundError as exc:
            raise OrchestratorError(cmd, 127, f"{self.docker_command} not found") from exc

        if result.returncode != 0:
            logger.error("Docker command failed", argv=cmd, returncode=result.returncode)
            raise OrchestratorError(cmd, result.returncode, result.stderr if capture else None)
        return result

    def compose(self, *args: str, capture: bool = False) -> subprocess.CompletedProcess:
        return self._run_docker(["compose", *args], capture=capture)

    def up(self) -> None:
        self.compose("up", "-d")

    def down(self) -> None:
        self.compose("down")

    def restart(self) -> None:
        self.compose("restart")

    def pull(self) -> None:
        self.compose("pull")

    def ps(self) -> None:
        self.compose("ps")

    def logs(self, follow: bool = True, tail: int | None = None) -> None:
        """Stream logs until the process ends or the operator interrupts."""
        args = ["logs"]
        if follow:
            args.append("-f")
        if tail:
            args.extend(["--tail", str(tail)])
        self.compose(*args)

    def stats(self) -> None:
        """Print a one-shot resource usage table for running containers."""
        self._run_docker(["stats", "--no-stream", "--format", STATS_FORMAT])

    def exec_shell(self, service: str, shell: str = "/bin/sh") -> int:
        """Open an interactive shell in a service container, returning its exit code."""
        cmd = [self.docker_command, "compose", "exec", service, shell]
        try:
            result = run_command(cmd, capture=False, cwd=self.project_root)
        except FileNotFoundError as exc:
            raise OrchestratorError(cmd, 127, f"{self.docker_command} not found") from exc
        return result.returncode

    def image_digest(self, image: str) -> str | None:
        """Resolve a local image to its repository digest, if it has one."""
        try:
            result = self._run_docker(
                ["image", "inspect", "--format", "{{index .RepoDigests 0}}", image], capture=True
            )
        except OrchestratorError:
            return None
        digest = result.stdout.strip()
        return digest or None

    def is_available(self) -> bool:
        """Check if the docker CLI is installed."""
        return bool(get_command_output([self.docker_command, "--version"]))

    def compose_available(self) -> bool:
        """Check if the compose plugin answers."""
        return bool(get_command_output([self.docker_command, "compose", "version"]))

    def daemon_version(self) -> str | None:
        """Version of the running daemon, or None when it is unreachable."""
        version = get_command_output(
            [self.docker_command, "version", "--format", "{{.Server.Version}}"]
        )
        return version or None


def primary_ip_address() -> str:
    """Best guess at the host's primary network address."""
    output = get_command_output(["hostname", "-I"])
    if output:
        return output.split()[0]

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            # No packet is sent; connect() only selects the outbound interface.
            sock.connect(("192.0.2.1", 80))
            return sock.getsockname()[0]
    except OSError:
        return "localhost"
