"""
Installation state persisted next to the descriptor.

The state file records the installation mode explicitly so the dispatcher
never has to guess it from the descriptor text.
"""

import tomllib
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import tomli_w

from portainer_setup.config import get_logger
from portainer_setup.descriptor import InstallMode

logger = get_logger("state")


@dataclass
class InstallationState:
    """What was installed, and the image it ran before the last update."""

    mode: InstallMode
    image: str
    server_address: str = ""
    created_at: str = ""
    updated_at: str = ""
    previous_image: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for TOML serialization."""
        data = asdict(self)
        data["mode"] = self.mode.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstallationState":
        """Create from dictionary."""
        return cls(
            mode=InstallMode(data["mode"]),
            image=data["image"],
            server_address=data.get("server_address", ""),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            previous_image=data.get("previous_image", ""),
        )


class StateManager:
    """Loads and saves the installation state file."""

    def __init__(self, path: Path):
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> InstallationState | None:
        """Load the state, or None when no state file exists."""
        if not self.path.exists():
            return None

        with open(self.path, "rb") as f:
            data = tomllib.load(f)
        return InstallationState.from_dict(data["installation"])

    def save(self, state: InstallationState) -> None:
        """Write the state file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "wb") as f:
            tomli_w.dump({"installation": state.to_dict()}, f)
        logger.debug("Saved installation state", path=str(self.path), mode=state.mode.value)

    def record_new(
        self, mode: InstallMode, image: str, server_address: str = ""
    ) -> InstallationState:
        """Write a fresh state for a newly generated descriptor."""
        now = datetime.now().isoformat(timespec="seconds")
        state = InstallationState(
            mode=mode,
            image=image,
            server_address=server_address,
            created_at=now,
            updated_at=now,
        )
        self.save(state)
        return state

    def record_image_change(
        self, state: InstallationState, new_image: str, previous_image: str
    ) -> InstallationState:
        """Record that the deployment moved from ``previous_image`` to ``new_image``."""
        state.previous_image = previous_image
        state.image = new_image
        state.updated_at = datetime.now().isoformat(timespec="seconds")
        self.save(state)
        return state
