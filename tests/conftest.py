"""Shared fixtures for portainer-setup tests."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from portainer_setup import manager as manager_module
from portainer_setup.builder import DescriptorWriter, build_descriptor
from portainer_setup.commands import manage as manage_module
from portainer_setup.commands import setup as setup_cmd
from portainer_setup.config import ToolSettings
from portainer_setup.descriptor import InstallMode
from portainer_setup.main import app


class FakeComposeClient:
    """Records compose calls instead of running docker."""

    def __init__(self):
        self.calls: list[str] = []
        self.digest: str | None = None
        self.shell_exit = 0
        self.logs_error: BaseException | None = None

    def up(self):
        self.calls.append("up")

    def down(self):
        self.calls.append("down")

    def restart(self):
        self.calls.append("restart")

    def pull(self):
        self.calls.append("pull")

    def ps(self):
        self.calls.append("ps")

    def stats(self):
        self.calls.append("stats")

    def logs(self, follow=True, tail=None):
        self.calls.append("logs")
        if self.logs_error is not None:
            raise self.logs_error

    def exec_shell(self, service, shell="/bin/sh"):
        self.calls.append(f"exec:{service}")
        return self.shell_exit

    def image_digest(self, image):
        return self.digest


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Keep rich from wrapping messages that tests look for."""
    monkeypatch.setenv("COLUMNS", "200")


@pytest.fixture(autouse=True)
def fixed_ip(monkeypatch):
    monkeypatch.setattr(manager_module, "primary_ip_address", lambda: "10.0.0.5")
    monkeypatch.setattr(setup_cmd, "primary_ip_address", lambda: "10.0.0.5")


@pytest.fixture
def project(tmp_path) -> Path:
    root = tmp_path / "portainer"
    root.mkdir()
    return root


@pytest.fixture
def settings(project) -> ToolSettings:
    return ToolSettings(project_root=project)


@pytest.fixture
def fake_client(monkeypatch) -> FakeComposeClient:
    client = FakeComposeClient()
    monkeypatch.setattr(manage_module, "ComposeClient", lambda *args, **kwargs: client)
    return client


@pytest.fixture
def cli(project):
    """Invoke portainerctl against the test project root."""
    runner = CliRunner()

    def invoke(*args: str, input: str | None = None):
        return runner.invoke(app, ["--project-root", str(project), *args], input=input)

    return invoke


@pytest.fixture
def install(settings):
    """Write a descriptor and state file the way setup does."""

    def _install(mode: InstallMode, server_address: str = "192.168.1.10") -> ToolSettings:
        settings.ensure_dirs(include_backups=mode is InstallMode.SERVER)
        descriptor = build_descriptor(mode, settings, server_address=server_address)
        DescriptorWriter(settings).write(descriptor)
        return settings

    return _install
