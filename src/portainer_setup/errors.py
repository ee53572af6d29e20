"""
Exceptions raised by portainer-setup.

Commands catch :class:`PortainerSetupError`, report it on the console and
exit with status 1.
"""

from pathlib import Path


class PortainerSetupError(Exception):
    """Base exception for all operator-facing errors."""

    pass


class InvalidChoiceError(PortainerSetupError):
    """Raised when the installation type answer is not server or agent."""

    def __init__(self, choice: str):
        self.choice = choice
        super().__init__(f"Invalid choice '{choice}'. Please run setup again and enter 1 or 2.")


class DescriptorMissingError(PortainerSetupError):
    """Raised when a command needs a descriptor that has not been generated."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"No descriptor found at {path}. Run 'portainerctl setup' first.")


class InvalidDescriptorError(PortainerSetupError):
    """Raised when docker-compose.yml is not a single-service compose file."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid descriptor {path}: {reason}")


class ModeNotSupportedError(PortainerSetupError):
    """Raised when a command is not available for the installed mode."""

    def __init__(self, action: str, mode: str):
        self.action = action
        self.mode = mode
        super().__init__(
            f"{action.capitalize()} is only available for Portainer Server installations "
            f"(this is a {mode} installation)."
        )


class BackupNotFoundError(PortainerSetupError):
    """Raised when the archive given to restore does not exist."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Backup file not found: {path}")


class InvalidArchiveError(PortainerSetupError):
    """Raised when a backup archive cannot be restored safely."""

    pass


class NoRollbackTargetError(PortainerSetupError):
    """Raised when rollback is requested but no previous image was recorded."""

    def __init__(self):
        super().__init__("No previous image recorded. Run 'update' before 'rollback'.")


class LockBusyError(PortainerSetupError):
    """Raised when another management operation holds the project lock."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Another operation is in progress (lock held on {path}).")


class OrchestratorError(PortainerSetupError):
    """Raised when a docker / docker compose invocation fails."""

    def __init__(self, command: list[str], returncode: int, stderr: str | None = None):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed ({returncode}): {' '.join(command)}"
        if stderr:
            message = f"{message}\n{stderr.strip()}"
        super().__init__(message)


class BootstrapError(PortainerSetupError):
    """Raised when Docker could not be installed or enabled."""

    pass
