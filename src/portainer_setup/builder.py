"""
Configuration builder: turns an installation choice into a typed descriptor
and writes it, together with the state file and helper files, to the
project root.
"""

import shutil
from datetime import datetime
from pathlib import Path

from portainer_setup.config import ToolSettings, get_logger
from portainer_setup.descriptor import (
    Descriptor,
    HealthCheck,
    InstallMode,
    ServiceDefinition,
    save_descriptor,
)
from portainer_setup.errors import InvalidChoiceError
from portainer_setup.state import StateManager

logger = get_logger("builder")

PLACEHOLDER_ADDRESS = "CHANGE_ME"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

_CHOICES = {
    "1": InstallMode.SERVER,
    "server": InstallMode.SERVER,
    "2": InstallMode.AGENT,
    "agent": InstallMode.AGENT,
}

GITIGNORE_CONTENT = """\
# Ignore everything
*

# But track these essential files
!setup.sh
!README.md
!docker-compose.yml
"""

MANAGE_SCRIPT = """\
#!/usr/bin/env bash
# Portainer management script, forwards to portainerctl.
SCRIPT_DIR="$( cd "$( dirname "${BASH_SOURCE[0]}" )" && pwd )"
PROJECT_ROOT="$( cd "$SCRIPT_DIR/.." && pwd )"
exec portainerctl --project-root "$PROJECT_ROOT" "$@"
"""

PROJECT_README = """\
# Portainer Docker Setup

Portainer deployment managed with `portainerctl` and `docker compose`.

## Installation Types

### Portainer Server

The main installation. It serves the web UI and manages all agents.

**Ports:**
- `{ui_port}` - Web UI (`http://YOUR-IP:{ui_port}`)
- `{edge_port}` - Edge agent communication (optional)

Data lives in `./data/`, backups in `./backups/`.

### Portainer Agent

A lightweight agent for remote Docker hosts managed by a Portainer server.

**Ports:**
- `{agent_port}` - Agent communication

## Management

```bash
./scripts/manage.sh start      # start Portainer
./scripts/manage.sh stop       # stop Portainer
./scripts/manage.sh restart    # restart Portainer
./scripts/manage.sh logs       # follow logs (Ctrl+C to exit)
./scripts/manage.sh status     # container status and resource usage
./scripts/manage.sh update     # pull and recreate (--version TAG to pin)
./scripts/manage.sh rollback   # return to the image used before the last update
./scripts/manage.sh backup     # archive ./data (server only)
./scripts/manage.sh restore ./backups/portainer-data-YYYYmmdd-HHMMSS.tar.gz
./scripts/manage.sh shell      # shell inside the container
./scripts/manage.sh doctor     # diagnose Docker and this installation
```

Restoring overwrites the current Portainer data. Create a backup first.

## Connecting Agents to Server

1. Open the server UI and go to **Environments > Add environment**.
2. Choose **Docker Standalone** with the **Agent** connection method.
3. On the agent host, set the server address and agent key in
   `docker-compose.yml`, then run `./scripts/manage.sh restart`:

   ```yaml
   environment:
     - AGENT_CLUSTER_ADDR=YOUR_SERVER_IP
   command:
     - --server-addr=YOUR_SERVER_IP:{edge_port}
     - --agent-key=YOUR_AGENT_KEY
   ```

The agent must reach the server on port {edge_port}.

## Troubleshooting

- Container won't start: `./scripts/manage.sh logs` and `./scripts/manage.sh doctor`
- Permission denied on the Docker socket: `sudo usermod -aG docker $USER`, then log in again
- Port conflicts: change the published ports in `docker-compose.yml`

See https://docs.portainer.io/ for Portainer documentation.
"""


def parse_install_choice(answer: str) -> InstallMode:
    """Map a menu answer (``1``/``2``/``server``/``agent``) to a mode."""
    mode = _CHOICES.get(answer.strip().lower())
    if mode is None:
        raise InvalidChoiceError(answer)
    return mode


def build_server_descriptor(settings: ToolSettings, healthcheck: bool = False) -> Descriptor:
    """Portainer server: management UI plus the edge-agent channel."""
    service = ServiceDefinition(
        name=settings.server_container_name,
        container_name=settings.server_container_name,
        image=f"{settings.server_image}:{settings.image_tag}",
        security_opt=["no-new-privileges:true"],
        volumes=[
            "/etc/localtime:/etc/localtime:ro",
            "/var/run/docker.sock:/var/run/docker.sock:ro",
            f"./{settings.data_dir_name}:/data",
        ],
        ports=[
            f"{settings.ui_port}:9000",
            f"{settings.edge_port}:8000",
        ],
    )
    if healthcheck:
        service.healthcheck = HealthCheck(
            test=[
                "CMD",
                "wget",
                "--no-verbose",
                "--tries=1",
                "--spider",
                "http://localhost:9000/api/status",
            ],
            start_period="40s",
        )
    return Descriptor(mode=InstallMode.SERVER, service=service)


def build_agent_descriptor(
    settings: ToolSettings,
    server_address: str | None,
    agent_key: str | None = None,
    healthcheck: bool = False,
) -> Descriptor:
    """Portainer agent pointing at a remote server.

    An empty address falls back to ``CHANGE_ME`` and has to be edited later.
    """
    address = (server_address or "").strip() or PLACEHOLDER_ADDRESS
    command = [f"--server-addr={address}:{settings.edge_port}"]
    if agent_key:
        command.append(f"--agent-key={agent_key}")

    service = ServiceDefinition(
        name=settings.agent_container_name,
        container_name=settings.agent_container_name,
        image=f"{settings.agent_image}:{settings.image_tag}",
        volumes=[
            "/var/run/docker.sock:/var/run/docker.sock",
            "/var/lib/docker/volumes:/var/lib/docker/volumes",
            "/:/host:ro",
        ],
        ports=[f"{settings.agent_port}:9001"],
        environment=[f"AGENT_CLUSTER_ADDR={address}"],
        command=command,
    )
    if healthcheck:
        service.healthcheck = HealthCheck(
            test=[
                "CMD",
                "wget",
                "--no-verbose",
                "--tries=1",
                "--spider",
                "http://localhost:9001/ping",
            ],
            start_period="40s",
        )
    return Descriptor(mode=InstallMode.AGENT, service=service)


def build_descriptor(
    mode: InstallMode,
    settings: ToolSettings,
    server_address: str | None = None,
    agent_key: str | None = None,
    healthcheck: bool = False,
) -> Descriptor:
    if mode is InstallMode.SERVER:
        return build_server_descriptor(settings, healthcheck=healthcheck)
    return build_agent_descriptor(
        settings, server_address, agent_key=agent_key, healthcheck=healthcheck
    )


class DescriptorWriter:
    """Writes a descriptor and its state file, backing up what it replaces."""

    def __init__(self, settings: ToolSettings, state_manager: StateManager | None = None):
        self.settings = settings
        self.path = settings.compose_file
        self.state_manager = state_manager or StateManager(settings.state_file)

    def exists(self) -> bool:
        return self.path.exists()

    def backup_existing(self, now: datetime | None = None) -> Path | None:
        """Copy the current descriptor to a timestamped backup file."""
        if not self.path.exists():
            return None

        stamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
        backup = self.path.with_name(f"{self.path.name}.backup.{stamp}")
        counter = 1
        while backup.exists():
            backup = self.path.with_name(f"{self.path.name}.backup.{stamp}-{counter}")
            counter += 1

        shutil.copy2(self.path, backup)
        logger.info("Backed up descriptor", source=str(self.path), backup=str(backup))
        return backup

    def write(self, descriptor: Descriptor) -> Path:
        """Write the descriptor and record the installation state."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        save_descriptor(descriptor, self.path)

        server_address = ""
        if descriptor.mode is InstallMode.AGENT:
            for entry in descriptor.service.environment or []:
                key, _, value = entry.partition("=")
                if key == "AGENT_CLUSTER_ADDR":
                    server_address = value

        self.state_manager.record_new(descriptor.mode, descriptor.service.image, server_address)
        logger.info("Wrote descriptor", path=str(self.path), mode=descriptor.mode.value)
        return self.path


def write_manage_script(settings: ToolSettings) -> Path:
    """Create ``scripts/manage.sh`` forwarding to portainerctl."""
    settings.scripts_dir.mkdir(parents=True, exist_ok=True)
    script = settings.scripts_dir / "manage.sh"
    script.write_text(MANAGE_SCRIPT)
    script.chmod(0o755)
    return script


def write_gitignore(settings: ToolSettings) -> Path:
    path = settings.project_root / ".gitignore"
    path.write_text(GITIGNORE_CONTENT)
    return path


def write_readme(settings: ToolSettings) -> Path | None:
    """Create a usage README in the project root unless one is already there."""
    path = settings.project_root / "README.md"
    if path.exists():
        return None
    path.write_text(
        PROJECT_README.format(
            ui_port=settings.ui_port,
            edge_port=settings.edge_port,
            agent_port=settings.agent_port,
        )
    )
    logger.info("Wrote README", path=str(path))
    return path
