"""Tests for the management commands."""

import tarfile

import pytest
import yaml

from portainer_setup.descriptor import InstallMode
from portainer_setup.errors import OrchestratorError
from portainer_setup.locking import project_lock
from portainer_setup.state import StateManager


def _make_archive(tmp_path, files: dict[str, str]):
    source = tmp_path / "archive-src" / "data"
    source.mkdir(parents=True)
    for name, content in files.items():
        (source / name).write_text(content)

    archive = tmp_path / "portainer-data-20240101-000000.tar.gz"
    with tarfile.open(archive, "w:gz") as tar:
        tar.add(source, arcname="data")
    return archive


def _image(project):
    services = yaml.safe_load((project / "docker-compose.yml").read_text())["services"]
    return next(iter(services.values()))["image"]


class TestLifecycle:
    def test_start_server(self, cli, install, fake_client):
        install(InstallMode.SERVER)

        result = cli("start")

        assert result.exit_code == 0, result.output
        assert fake_client.calls == ["up"]
        assert "Access it at: http://10.0.0.5:9000" in result.output

    def test_start_agent(self, cli, install, fake_client):
        install(InstallMode.AGENT)

        result = cli("start")

        assert result.exit_code == 0, result.output
        assert "Agent is running on port 9001" in result.output

    def test_stop_and_restart(self, cli, install, fake_client):
        install(InstallMode.SERVER)

        assert cli("stop").exit_code == 0
        assert cli("restart").exit_code == 0
        assert fake_client.calls == ["down", "restart"]

    def test_status_shows_ps_then_stats(self, cli, install, fake_client):
        install(InstallMode.AGENT)

        result = cli("status")

        assert result.exit_code == 0, result.output
        assert fake_client.calls == ["ps", "stats"]

    def test_logs_interrupt_ends_cleanly(self, cli, install, fake_client):
        install(InstallMode.SERVER)
        fake_client.logs_error = KeyboardInterrupt()

        result = cli("logs")

        assert result.exit_code == 0, result.output
        assert "Stopped following logs" in result.output

    def test_shell_targets_service(self, cli, install, fake_client):
        install(InstallMode.SERVER)

        result = cli("shell")

        assert result.exit_code == 0, result.output
        assert fake_client.calls == ["exec:portainer"]

    def test_shell_propagates_exit_code(self, cli, install, fake_client):
        install(InstallMode.SERVER)
        fake_client.shell_exit = 3

        assert cli("shell").exit_code == 3

    def test_missing_descriptor(self, cli, fake_client):
        result = cli("start")

        assert result.exit_code == 1
        assert "setup" in result.output
        assert fake_client.calls == []

    def test_orchestrator_failure_exits_1(self, cli, install, fake_client, monkeypatch):
        install(InstallMode.SERVER)

        def failing_up():
            raise OrchestratorError(["docker", "compose", "up", "-d"], 1)

        monkeypatch.setattr(fake_client, "up", failing_up)

        result = cli("start")

        assert result.exit_code == 1
        assert "Command failed (1)" in result.output

    def test_busy_lock_fails_fast(self, cli, install, fake_client, settings):
        install(InstallMode.SERVER)

        with project_lock(settings.lock_file):
            result = cli("start")

        assert result.exit_code == 1
        assert "Another operation is in progress" in result.output
        assert fake_client.calls == []


class TestModeResolution:
    def test_state_file_wins_over_descriptor_text(self, cli, install, fake_client, settings):
        install(InstallMode.AGENT)
        # A server-looking comment must not flip an agent installation.
        with open(settings.compose_file, "a") as f:
            f.write("# migrated from portainer-ce\n")

        result = cli("backup")

        assert result.exit_code == 1
        assert "only available for Portainer Server" in result.output

    def test_legacy_server_descriptor(self, cli, install, fake_client, settings):
        install(InstallMode.SERVER)
        settings.state_file.unlink()

        result = cli("backup")

        assert result.exit_code == 0, result.output
        assert len(list(settings.backups_dir.glob("portainer-data-*.tar.gz"))) == 1

    def test_legacy_agent_descriptor(self, cli, install, fake_client, settings):
        install(InstallMode.AGENT)
        settings.state_file.unlink()

        result = cli("backup")

        assert result.exit_code == 1

    def test_help_shows_installation_type(self, cli, install, fake_client):
        install(InstallMode.SERVER)

        result = cli("help")

        assert result.exit_code == 0, result.output
        assert "Installation type: server" in result.output
        assert "restore" in result.output


class TestBackup:
    def test_server_backup_creates_archive(self, cli, install, fake_client, settings):
        install(InstallMode.SERVER)
        (settings.data_dir / "portainer.db").write_text("db")

        result = cli("backup")

        assert result.exit_code == 0, result.output
        archives = list(settings.backups_dir.glob("portainer-data-*.tar.gz"))
        assert len(archives) == 1
        with tarfile.open(archives[0]) as tar:
            assert "data/portainer.db" in tar.getnames()
        assert fake_client.calls == []

    def test_agent_backup_rejected(self, cli, install, fake_client, settings):
        install(InstallMode.AGENT)

        result = cli("backup")

        assert result.exit_code == 1
        assert not settings.backups_dir.exists() or not any(settings.backups_dir.iterdir())


class TestRestore:
    def test_missing_argument(self, cli, install, fake_client):
        install(InstallMode.SERVER)

        result = cli("restore")

        assert result.exit_code == 1
        assert "Please specify backup file to restore" in result.output
        assert "Usage: portainerctl restore" in result.output
        assert fake_client.calls == []

    def test_nonexistent_file(self, cli, install, fake_client, tmp_path):
        install(InstallMode.SERVER)

        result = cli("restore", str(tmp_path / "missing.tar.gz"))

        assert result.exit_code == 1
        assert "Backup file not found" in result.output
        assert fake_client.calls == []

    def test_agent_restore_rejected(self, cli, install, fake_client, tmp_path):
        install(InstallMode.AGENT)
        archive = _make_archive(tmp_path, {"portainer.db": "restored"})

        result = cli("restore", str(archive), "--yes")

        assert result.exit_code == 1
        assert fake_client.calls == []

    def test_decline_keeps_data(self, cli, install, fake_client, settings, tmp_path):
        install(InstallMode.SERVER)
        (settings.data_dir / "portainer.db").write_text("live")
        archive = _make_archive(tmp_path, {"portainer.db": "restored"})

        result = cli("restore", str(archive), input="n\n")

        assert result.exit_code == 0
        assert "Restore cancelled" in result.output
        assert (settings.data_dir / "portainer.db").read_text() == "live"
        assert fake_client.calls == []

    def test_restore_replaces_data_and_restarts(
        self, cli, install, fake_client, settings, tmp_path
    ):
        install(InstallMode.SERVER)
        (settings.data_dir / "stale.db").write_text("old")
        archive = _make_archive(tmp_path, {"portainer.db": "restored", "portainer.key": "k"})

        result = cli("restore", str(archive), input="y\n")

        assert result.exit_code == 0, result.output
        assert sorted(p.name for p in settings.data_dir.iterdir()) == [
            "portainer.db",
            "portainer.key",
        ]
        assert (settings.data_dir / "portainer.db").read_text() == "restored"
        assert fake_client.calls == ["down", "up"]
        assert "Data restored successfully" in result.output

    def test_restore_rejects_foreign_members(self, cli, install, fake_client, settings, tmp_path):
        install(InstallMode.SERVER)
        (settings.data_dir / "portainer.db").write_text("live")
        evil = tmp_path / "evil.txt"
        evil.write_text("x")
        archive = tmp_path / "evil.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(evil, arcname="../evil.txt")

        result = cli("restore", str(archive), "--yes")

        assert result.exit_code == 1
        assert (settings.data_dir / "portainer.db").read_text() == "live"
        assert fake_client.calls == []


class TestUpdate:
    def test_update_keeps_tag(self, cli, install, fake_client, project):
        install(InstallMode.SERVER)

        result = cli("update")

        assert result.exit_code == 0, result.output
        assert fake_client.calls == ["pull", "up"]
        assert _image(project) == "portainer/portainer-ce:latest"

    def test_update_pins_version_and_records_previous(
        self, cli, install, fake_client, project, settings
    ):
        install(InstallMode.SERVER)
        fake_client.digest = "portainer/portainer-ce@sha256:1234"

        result = cli("update", "--version", "2.19.4")

        assert result.exit_code == 0, result.output
        assert _image(project) == "portainer/portainer-ce:2.19.4"
        state = StateManager(settings.state_file).load()
        assert state.image == "portainer/portainer-ce:2.19.4"
        assert state.previous_image == "portainer/portainer-ce@sha256:1234"

    def test_rollback_restores_previous_image(self, cli, install, fake_client, project, settings):
        install(InstallMode.AGENT)
        assert cli("update", "--version", "2.19.4").exit_code == 0
        fake_client.calls.clear()

        result = cli("rollback")

        assert result.exit_code == 0, result.output
        assert _image(project) == "portainer/agent:latest"
        assert fake_client.calls == ["up"]
        state = StateManager(settings.state_file).load()
        assert state.previous_image == "portainer/agent:2.19.4"

    def test_rollback_without_update(self, cli, install, fake_client):
        install(InstallMode.SERVER)

        result = cli("rollback")

        assert result.exit_code == 1
        assert "No previous image recorded" in result.output
        assert fake_client.calls == []

    def test_failed_pull_keeps_descriptor_and_state(
        self, cli, install, fake_client, project, settings, monkeypatch
    ):
        install(InstallMode.SERVER)
        before = (project / "docker-compose.yml").read_text()

        def failing_pull():
            raise OrchestratorError(["docker", "compose", "pull"], 1, "manifest unknown")

        monkeypatch.setattr(fake_client, "pull", failing_pull)

        result = cli("update", "--version", "2.99.99-typo")

        assert result.exit_code == 1
        assert "manifest unknown" in result.output
        assert (project / "docker-compose.yml").read_text() == before
        state = StateManager(settings.state_file).load()
        assert state.image == "portainer/portainer-ce:latest"
        assert state.previous_image is None

    def test_failed_rollback_keeps_descriptor(
        self, cli, install, fake_client, project, monkeypatch
    ):
        install(InstallMode.AGENT)
        assert cli("update", "--version", "2.19.4").exit_code == 0

        def failing_up():
            raise OrchestratorError(["docker", "compose", "up", "-d"], 1)

        monkeypatch.setattr(fake_client, "up", failing_up)

        result = cli("rollback")

        assert result.exit_code == 1
        assert _image(project) == "portainer/agent:2.19.4"

    def test_unparsable_descriptor_exits_1(self, cli, install, fake_client, project):
        install(InstallMode.SERVER)
        (project / "docker-compose.yml").write_text("services:\n  portainer:\n")

        result = cli("update")

        assert result.exit_code == 1
        assert "Invalid descriptor" in result.output
        assert fake_client.calls == []


@pytest.mark.parametrize(
    "args,command",
    [
        (["frobnicate"], "frobnicate"),
        (["destroy"], "destroy"),
        (["frobnicate", "--yes"], "frobnicate"),
    ],
)
def test_unknown_command_exits_1(cli, args, command):
    result = cli(*args)

    assert result.exit_code == 1
    assert f"Unknown command: {command}" in result.output
    assert "Usage" in result.output


def test_known_command_help_still_exits_0(cli):
    result = cli("backup", "--help")

    assert result.exit_code == 0
    assert "Unknown command" not in result.output
