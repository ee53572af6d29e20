"""
Pydantic models for the compose descriptor.

A descriptor holds exactly one Portainer service, either the server or the
agent, and renders to ``docker-compose.yml``.
"""

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from portainer_setup.errors import InvalidDescriptorError

SERVER_IMAGE_MARKER = "portainer-ce"
DEFAULT_NETWORKS: dict[str, Any] = {"default": {"driver": "bridge"}}

# Ignored by compose v2, so it is not written back.
OBSOLETE_TOP_LEVEL_KEYS = ("version",)


class InstallMode(str, Enum):
    """The two mutually exclusive deployment variants."""

    SERVER = "server"
    AGENT = "agent"


class HealthCheck(BaseModel):
    """Docker healthcheck configuration."""

    test: list[str]
    interval: str = "30s"
    timeout: str = "10s"
    retries: int = 3
    start_period: str | None = None


class ServiceDefinition(BaseModel):
    """A single compose service.

    Unknown keys are kept so hand edits (resource limits, extra labels)
    survive a load and save.
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(exclude=True)
    container_name: str
    image: str
    restart: str = "unless-stopped"
    security_opt: list[str] | None = None
    volumes: list[str | dict[str, Any]] | None = None
    ports: list[str | dict[str, Any]] | None = None
    environment: list[str] | None = None
    command: list[str] | None = None
    healthcheck: HealthCheck | None = None

    @field_validator("ports", mode="before")
    @classmethod
    def normalize_ports(cls, v):
        """Normalize short port specifications to strings; long syntax stays a mapping."""
        if v is None:
            return None
        normalized = []
        for port in v:
            if isinstance(port, dict):
                normalized.append(port)
            elif isinstance(port, int):
                normalized.append(f"{port}:{port}")
            elif isinstance(port, str) and ":" not in port:
                normalized.append(f"{port}:{port}")
            else:
                normalized.append(str(port))
        return normalized

    @field_validator("environment", mode="before")
    @classmethod
    def normalize_environment(cls, v):
        """Accept the mapping form of ``environment`` as well as the list form."""
        if isinstance(v, dict):
            return [f"{key}={value}" for key, value in v.items()]
        return v

    @field_validator("command", mode="before")
    @classmethod
    def normalize_command(cls, v):
        if isinstance(v, str):
            return v.split()
        return v

    def to_compose(self) -> dict[str, Any]:
        """Compose representation of this service, without empty fields."""
        return self.model_dump(exclude_none=True)

    @property
    def published_ports(self) -> list[str]:
        published = []
        for port in self.ports or []:
            if isinstance(port, dict):
                published.append(f"{port.get('published', port['target'])}:{port['target']}")
            else:
                published.append(port)
        return published


class Descriptor(BaseModel):
    """Deployment descriptor: one service plus its networks.

    Top-level keys other than ``services`` and ``networks`` (named volumes,
    secrets, ``x-`` extensions) are carried in ``extra_sections`` and written
    back unchanged.
    """

    mode: InstallMode
    service: ServiceDefinition
    networks: dict[str, Any] = Field(default_factory=lambda: dict(DEFAULT_NETWORKS))
    extra_sections: dict[str, Any] = Field(default_factory=dict)

    def to_compose(self) -> dict[str, Any]:
        return {
            "services": {self.service.name: self.service.to_compose()},
            "networks": self.networks,
            **self.extra_sections,
        }

    def render(self) -> str:
        """Render the descriptor as compose YAML."""
        header = (
            f"# Portainer {self.mode.value} deployment generated by portainer-setup.\n"
            "# Manage it with: ./scripts/manage.sh help\n"
        )
        body = yaml.safe_dump(self.to_compose(), sort_keys=False, default_flow_style=False)
        return header + body

    @classmethod
    def from_compose(cls, data: dict[str, Any], mode: InstallMode | None = None) -> "Descriptor":
        """Build a descriptor from parsed compose data.

        Args:
            data: Parsed ``docker-compose.yml``
            mode: Installation mode; inferred from the image when omitted

        Raises:
            ValueError: If the compose data does not hold exactly one service.
        """
        services = data.get("services") or {}
        if not isinstance(services, dict) or len(services) != 1:
            count = len(services) if isinstance(services, dict) else 0
            raise ValueError(f"Expected exactly one service in descriptor, found {count}")

        name, body = next(iter(services.items()))
        if not isinstance(body, dict):
            raise ValueError(f"Service '{name}' has no definition")
        service = ServiceDefinition(name=name, **body)
        if mode is None:
            mode = infer_mode(service.image)

        extra_sections = {
            key: value
            for key, value in data.items()
            if key not in ("services", "networks", *OBSOLETE_TOP_LEVEL_KEYS)
        }
        return cls(
            mode=mode,
            service=service,
            networks=data.get("networks") or dict(DEFAULT_NETWORKS),
            extra_sections=extra_sections,
        )


def infer_mode(text: str) -> InstallMode:
    """Guess the mode from descriptor text by looking for the server image.

    Only used for descriptors that predate the state file.
    """
    if SERVER_IMAGE_MARKER in text:
        return InstallMode.SERVER
    return InstallMode.AGENT


def load_descriptor(path: Path, mode: InstallMode | None = None) -> Descriptor:
    """Load a descriptor from a compose file.

    Raises:
        InvalidDescriptorError: If the file is not a single-service compose file.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("top level is not a mapping")
        return Descriptor.from_compose(data, mode=mode)
    except (yaml.YAMLError, ValidationError, ValueError, TypeError) as exc:
        raise InvalidDescriptorError(path, str(exc)) from exc


def save_descriptor(descriptor: Descriptor, path: Path) -> Path:
    """Write a descriptor to disk."""
    path.write_text(descriptor.render())
    return path


def split_image(image: str) -> tuple[str, str]:
    """Split an image reference into repository and tag (or digest).

    ``portainer/agent:2.19.4`` -> (``portainer/agent``, ``2.19.4``). A registry
    port is not mistaken for a tag, and an untagged reference means ``latest``.
    """
    if "@" in image:
        repository, digest = image.split("@", 1)
        return repository, f"@{digest}"

    last_segment = image.rsplit("/", 1)[-1]
    if ":" in last_segment:
        repository, tag = image.rsplit(":", 1)
        return repository, tag
    return image, "latest"


def with_tag(image: str, tag: str) -> str:
    """Return ``image`` pointing at ``tag`` instead of its current tag."""
    repository, _ = split_image(image)
    if tag.startswith("@"):
        return f"{repository}{tag}"
    return f"{repository}:{tag}"
