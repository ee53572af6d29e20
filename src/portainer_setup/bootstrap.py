"""
Dependency bootstrap: make sure Docker Engine and the compose plugin exist.

Installation goes through the host package manager and branches on the
distribution named in ``/etc/os-release``. Every step is a plain argv list so
the plan can be inspected before anything runs.
"""

import getpass
import grp
import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from portainer_setup.config import get_logger
from portainer_setup.errors import BootstrapError
from portainer_setup.utils.common import console, run_command

logger = get_logger("bootstrap")

OS_RELEASE_PATH = Path("/etc/os-release")
KEYRING_PATH = "/usr/share/keyrings/docker-archive-keyring.gpg"
SOURCES_LIST_PATH = "/etc/apt/sources.list.d/docker.list"
CONVENIENCE_SCRIPT_URL = "https://get.docker.com"

PREREQUISITES = [
    "apt-transport-https",
    "ca-certificates",
    "curl",
    "gnupg",
    "lsb-release",
]
DOCKER_PACKAGES = ["docker-ce", "docker-ce-cli", "containerd.io"]
COMPOSE_PACKAGE = "docker-compose-plugin"


@dataclass
class OsIdentity:
    """The fields of /etc/os-release that decide the install branch."""

    name: str
    version_id: str = ""
    id: str = ""

    @property
    def family(self) -> str:
        """``ubuntu``, ``debian`` (also Raspberry Pi OS) or ``generic``."""
        if "Ubuntu" in self.name:
            return "ubuntu"
        if "Raspberry Pi" in self.name or "Debian" in self.name:
            return "debian"
        return "generic"


def parse_os_release(text: str) -> OsIdentity:
    """Parse the KEY=VALUE lines of an os-release file."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip("\"'")
    return OsIdentity(
        name=values.get("NAME", ""),
        version_id=values.get("VERSION_ID", ""),
        id=values.get("ID", ""),
    )


def read_os_release(path: Path = OS_RELEASE_PATH) -> OsIdentity | None:
    if not path.exists():
        return None
    return parse_os_release(path.read_text())


def _group_exists(name: str) -> bool:
    try:
        grp.getgrnam(name)
        return True
    except KeyError:
        return False


def repository_commands(distro: str) -> list[list[str]]:
    """Add Docker's apt signing key and repository for ``distro``."""
    base_url = f"https://download.docker.com/linux/{distro}"
    source_line = (
        f"deb [arch=$(dpkg --print-architecture) signed-by={KEYRING_PATH}] "
        f"{base_url} $(lsb_release -cs) stable"
    )
    return [
        ["sh", "-c", f"curl -fsSL {base_url}/gpg | sudo gpg --dearmor --yes -o {KEYRING_PATH}"],
        ["sh", "-c", f'echo "{source_line}" | sudo tee {SOURCES_LIST_PATH} > /dev/null'],
    ]


def docker_install_plan(
    identity: OsIdentity,
    user: str,
    group_exists: Callable[[str], bool] = _group_exists,
) -> list[list[str]]:
    """Commands that install Docker Engine on the given distribution."""
    plan: list[list[str]] = []

    if identity.family == "generic":
        plan += [
            ["curl", "-fsSL", CONVENIENCE_SCRIPT_URL, "-o", "get-docker.sh"],
            ["sudo", "sh", "get-docker.sh"],
            ["rm", "-f", "get-docker.sh"],
        ]
    else:
        plan += [
            ["sudo", "apt-get", "update"],
            ["sudo", "apt-get", "install", "-y", *PREREQUISITES],
            *repository_commands(identity.family),
            ["sudo", "apt-get", "update"],
            ["sudo", "apt-get", "install", "-y", *DOCKER_PACKAGES],
        ]

    if not group_exists("docker"):
        plan.append(["sudo", "groupadd", "docker"])
    plan += [
        ["sudo", "usermod", "-aG", "docker", user],
        ["sudo", "systemctl", "enable", "docker"],
        ["sudo", "systemctl", "start", "docker"],
    ]
    return plan


def compose_install_plan() -> list[list[str]]:
    return [
        ["sudo", "apt-get", "update"],
        ["sudo", "apt-get", "install", "-y", COMPOSE_PACKAGE],
    ]


@dataclass
class BootstrapReport:
    """What the bootstrap had to do."""

    docker_installed: bool = False
    compose_installed: bool = False
    service_enabled: bool = False

    @property
    def relogin_required(self) -> bool:
        """Group membership changes only apply to new login sessions."""
        return self.docker_installed


class DockerBootstrapper:
    """Installs Docker Engine and the compose plugin when they are missing."""

    def __init__(
        self,
        runner: Callable[..., subprocess.CompletedProcess] = run_command,
        which: Callable[[str], str | None] = shutil.which,
        os_release_path: Path = OS_RELEASE_PATH,
        user: str | None = None,
        group_exists: Callable[[str], bool] = _group_exists,
        docker_command: str = "docker",
    ):
        self.runner = runner
        self.which = which
        self.os_release_path = os_release_path
        self.user = user or getpass.getuser()
        self.group_exists = group_exists
        self.docker_command = docker_command

    def docker_installed(self) -> bool:
        return self.which(self.docker_command) is not None

    def compose_installed(self) -> bool:
        try:
            result = self.runner([self.docker_command, "compose", "version"], capture=True)
        except FileNotFoundError:
            return False
        return result.returncode == 0

    def service_enabled(self) -> bool:
        """Whether docker starts at boot; hosts without systemctl count as enabled."""
        try:
            result = self.runner(["systemctl", "is-enabled", "docker"], capture=True)
        except FileNotFoundError:
            logger.warning("systemctl not available, skipping boot check")
            return True
        return result.returncode == 0

    def _execute(self, plan: list[list[str]]) -> None:
        for cmd in plan:
            logger.info("Bootstrap step", argv=cmd)
            try:
                self.runner(cmd, check=True, capture=False)
            except subprocess.CalledProcessError as exc:
                raise BootstrapError(
                    f"Command failed ({exc.returncode}): {' '.join(cmd)}"
                ) from exc
            except FileNotFoundError as exc:
                raise BootstrapError(f"Command not found: {cmd[0]}") from exc

    def enable_service(self) -> None:
        self._execute([["sudo", "systemctl", "enable", "docker"]])

    def install_docker(self) -> None:
        identity = read_os_release(self.os_release_path)
        if identity is None:
            raise BootstrapError("Could not detect OS type. Please install Docker manually.")

        if identity.family == "generic":
            console.print(
                "[yellow]Unknown OS type. Installing Docker with the get.docker.com script...[/yellow]"
            )
        else:
            console.print(
                f"[green]Detected {identity.name}. "
                f"Installing Docker from the {identity.family} repository...[/green]"
            )
        self._execute(docker_install_plan(identity, self.user, self.group_exists))

    def ensure(self) -> BootstrapReport:
        """Install whatever is missing and make sure docker starts at boot."""
        report = BootstrapReport()

        if self.docker_installed():
            console.print("[green]Docker is already installed.[/green]")
            if not self.service_enabled():
                console.print("[yellow]Enabling Docker to start on boot...[/yellow]")
                self.enable_service()
                report.service_enabled = True
        else:
            console.print("[red]Docker not found. Installing Docker...[/red]")
            self.install_docker()
            report.docker_installed = True
            report.service_enabled = True
            console.print(
                "[green]Docker installed successfully. You may need to log out and back in "
                "for group changes to take effect.[/green]"
            )

        if self.compose_installed():
            console.print("[green]Docker Compose is already installed.[/green]")
        else:
            console.print("[yellow]Docker Compose not found. Installing Docker Compose...[/yellow]")
            self._execute(compose_install_plan())
            report.compose_installed = True
            console.print("[green]Docker Compose installed successfully.[/green]")

        return report
