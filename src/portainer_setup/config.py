"""
Configuration for portainer-setup.

Settings come from ``PORTAINER_SETUP_*`` environment variables (or a ``.env``
file) through pydantic-settings. All project paths hang off ``project_root``.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from portainer_setup.logs import ScopedLogger, make_logger


class ToolSettings(BaseSettings):
    """Tool configuration using Pydantic Settings."""

    model_config = SettingsConfigDict(
        env_prefix="PORTAINER_SETUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_root: Path = Field(default_factory=Path.cwd)

    # Logging
    log_level: str = "WARNING"
    log_format: str = "console"  # "console" or "json"

    # Orchestrator
    docker_command: str = "docker"

    # Images
    server_image: str = "portainer/portainer-ce"
    agent_image: str = "portainer/agent"
    image_tag: str = "latest"

    # Containers and ports
    server_container_name: str = "portainer"
    agent_container_name: str = "portainer-agent"
    ui_port: int = 9000
    edge_port: int = 8000
    agent_port: int = 9001

    # Layout
    data_dir_name: str = "data"
    backups_dir_name: str = "backups"
    scripts_dir_name: str = "scripts"
    compose_file_name: str = "docker-compose.yml"
    state_file_name: str = ".portainer-setup.toml"
    lock_file_name: str = ".portainer-setup.lock"

    @field_validator("project_root", mode="after")
    @classmethod
    def resolve_root(cls, v: Path) -> Path:
        return v.expanduser().resolve()

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, v: str) -> str:
        if v.lower() not in ("console", "pretty", "json"):
            raise ValueError(f"Unsupported log format: {v}")
        return v.lower()

    @property
    def compose_file(self) -> Path:
        return self.project_root / self.compose_file_name

    @property
    def state_file(self) -> Path:
        return self.project_root / self.state_file_name

    @property
    def lock_file(self) -> Path:
        return self.project_root / self.lock_file_name

    @property
    def data_dir(self) -> Path:
        return self.project_root / self.data_dir_name

    @property
    def backups_dir(self) -> Path:
        return self.project_root / self.backups_dir_name

    @property
    def scripts_dir(self) -> Path:
        return self.project_root / self.scripts_dir_name

    def ensure_dirs(self, include_backups: bool = False) -> None:
        """Create the directory layout used by a deployment."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.scripts_dir.mkdir(parents=True, exist_ok=True)
        if include_backups:
            self.backups_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> ToolSettings:
    """Get cached settings instance."""
    return ToolSettings()


_loggers: dict[str, ScopedLogger] = {}


def get_logger(scope: str) -> ScopedLogger:
    """Get a scoped logger for a specific module or component.

    Args:
        scope: The name/scope for the logger (e.g., "docker", "bootstrap", "backup")

    Returns:
        Scoped logger instance, shared per scope
    """
    if scope not in _loggers:
        settings = get_settings()
        _loggers[scope] = make_logger(
            scope,
            log_format=settings.log_format,
            level=settings.log_level,
            context={"component": scope},
        )
    return _loggers[scope]


def set_log_level(level: str) -> None:
    """Change the level of every logger handed out so far (used by ``--verbose``)."""
    for logger in _loggers.values():
        logger.set_level(level)
