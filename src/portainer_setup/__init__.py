"""
portainer-setup: install and manage a Portainer deployment.

Generates a compose descriptor for either a Portainer server or a Portainer
agent and drives the deployment through the ``docker compose`` CLI.
"""

# Version is read from package metadata (pyproject.toml is the single source of truth)
try:
    from importlib.metadata import version

    __version__ = version("portainer-setup")
except Exception:
    __version__ = "0.0.0+unknown"
