"""Common utilities shared across the CLI."""

import shutil
import subprocess
from pathlib import Path

from rich.console import Console

from portainer_setup.config import get_logger

# Single shared console instance for the entire CLI
console = Console()

logger = get_logger("shell")


def command_exists(cmd: str) -> bool:
    """Check if a command exists in the system PATH.

    Args:
        cmd: Command name to check (e.g., 'docker', 'systemctl')

    Returns:
        True if command exists, False otherwise
    """
    return shutil.which(cmd) is not None


def run_command(
    cmd: list[str],
    *,
    check: bool = False,
    capture: bool = True,
    timeout: int | None = None,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess:
    """Unified subprocess runner with consistent error handling.

    Args:
        cmd: Command and arguments as list
        check: Raise exception on non-zero exit
        capture: Capture stdout/stderr; when False output goes straight to the terminal
        timeout: Command timeout in seconds
        cwd: Working directory
        env: Environment variables

    Returns:
        CompletedProcess instance
    """
    logger.debug("Running command", argv=cmd, cwd=str(cwd) if cwd else None)
    try:
        return subprocess.run(
            cmd,
            capture_output=capture,
            text=True,
            check=check,
            timeout=timeout,
            cwd=cwd,
            env=env,
        )
    except subprocess.CalledProcessError as e:
        logger.error("Command failed", argv=cmd, returncode=e.returncode)
        raise
    except subprocess.TimeoutExpired:
        logger.error("Command timed out", argv=cmd, timeout=timeout)
        raise
    except FileNotFoundError:
        logger.error("Command not found", command=cmd[0])
        raise


def get_command_output(cmd: list[str], default: str = "") -> str:
    """Get the stripped stdout of a command, returning a default on failure."""
    try:
        result = run_command(cmd, capture=True, timeout=5)
    except (subprocess.SubprocessError, FileNotFoundError):
        return default
    if result.returncode == 0:
        return result.stdout.strip()
    return default


__all__ = [
    "console",
    "command_exists",
    "run_command",
    "get_command_output",
]
