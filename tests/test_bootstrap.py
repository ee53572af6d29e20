"""Tests for the Docker bootstrap."""

import subprocess
from unittest.mock import MagicMock

import pytest

from portainer_setup import bootstrap as bootstrap_module
from portainer_setup.bootstrap import (
    COMPOSE_PACKAGE,
    DockerBootstrapper,
    OsIdentity,
    compose_install_plan,
    docker_install_plan,
    parse_os_release,
)
from portainer_setup.errors import BootstrapError

UBUNTU_RELEASE = """\
PRETTY_NAME="Ubuntu 22.04.4 LTS"
NAME="Ubuntu"
VERSION_ID="22.04"
ID=ubuntu
"""


@pytest.fixture(autouse=True)
def stub_console(monkeypatch):
    """Silence console output during tests."""
    mock_console = MagicMock()
    monkeypatch.setattr(bootstrap_module, "console", mock_console)
    return mock_console


class FakeRunner:
    """Stands in for run_command, answering per argv prefix."""

    def __init__(self, returncodes=None, fail_on=None):
        self.returncodes = returncodes or {}
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    def __call__(self, cmd, check=False, capture=True, **kwargs):
        self.calls.append(cmd)
        if self.fail_on and cmd[: len(self.fail_on)] == self.fail_on:
            raise subprocess.CalledProcessError(100, cmd)
        returncode = 0
        for prefix, code in self.returncodes.items():
            if tuple(cmd[: len(prefix)]) == prefix:
                returncode = code
        return subprocess.CompletedProcess(cmd, returncode, "", "")

    @property
    def executed(self):
        """Mutating steps, without the read-only checks."""
        checks = (["systemctl", "is-enabled"], ["docker", "compose", "version"])
        return [c for c in self.calls if not any(c[: len(p)] == p for p in checks)]


class TestOsIdentity:
    def test_parse_os_release(self):
        identity = parse_os_release(UBUNTU_RELEASE)
        assert identity == OsIdentity(name="Ubuntu", version_id="22.04", id="ubuntu")

    @pytest.mark.parametrize(
        "name,family",
        [
            ("Ubuntu", "ubuntu"),
            ("Debian GNU/Linux", "debian"),
            ("Raspberry Pi OS", "debian"),
            ("Fedora Linux", "generic"),
            ("Raspbian GNU/Linux", "generic"),
        ],
    )
    def test_family(self, name, family):
        assert OsIdentity(name=name).family == family


class TestInstallPlans:
    def test_ubuntu_uses_ubuntu_repository(self):
        plan = docker_install_plan(OsIdentity(name="Ubuntu"), "pi", group_exists=lambda _: True)

        assert plan[0] == ["sudo", "apt-get", "update"]
        assert plan[1][:4] == ["sudo", "apt-get", "install", "-y"]
        assert "lsb-release" in plan[1]
        assert "https://download.docker.com/linux/ubuntu/gpg" in plan[2][2]
        assert "docker-ce" in plan[5] and "containerd.io" in plan[5]
        assert ["sudo", "groupadd", "docker"] not in plan
        assert plan[-3:] == [
            ["sudo", "usermod", "-aG", "docker", "pi"],
            ["sudo", "systemctl", "enable", "docker"],
            ["sudo", "systemctl", "start", "docker"],
        ]

    def test_debian_family_uses_debian_repository(self):
        plan = docker_install_plan(
            OsIdentity(name="Raspberry Pi OS"), "pi", group_exists=lambda _: True
        )
        assert "https://download.docker.com/linux/debian/gpg" in plan[2][2]

    def test_generic_uses_convenience_script(self):
        plan = docker_install_plan(OsIdentity(name="Arch Linux"), "me", group_exists=lambda _: False)

        assert plan[0] == ["curl", "-fsSL", "https://get.docker.com", "-o", "get-docker.sh"]
        assert ["sudo", "sh", "get-docker.sh"] in plan
        assert not any("apt-get" in step for step in plan)
        assert ["sudo", "groupadd", "docker"] in plan

    def test_compose_plan(self):
        assert compose_install_plan()[-1] == ["sudo", "apt-get", "install", "-y", COMPOSE_PACKAGE]


class TestDockerBootstrapper:
    def _bootstrapper(self, tmp_path, runner, docker_path="/usr/bin/docker", release=None):
        os_release = tmp_path / "os-release"
        if release is not None:
            os_release.write_text(release)
        return DockerBootstrapper(
            runner=runner,
            which=lambda name: docker_path,
            os_release_path=os_release,
            user="pi",
            group_exists=lambda _: True,
        )

    def test_nothing_to_do(self, tmp_path):
        runner = FakeRunner()
        report = self._bootstrapper(tmp_path, runner).ensure()

        assert runner.executed == []
        assert report == bootstrap_module.BootstrapReport()
        assert report.relogin_required is False

    def test_enables_service_at_boot(self, tmp_path):
        runner = FakeRunner(returncodes={("systemctl", "is-enabled"): 1})
        report = self._bootstrapper(tmp_path, runner).ensure()

        assert runner.executed == [["sudo", "systemctl", "enable", "docker"]]
        assert report.service_enabled is True

    def test_installs_docker_on_ubuntu(self, tmp_path):
        runner = FakeRunner()
        bootstrapper = self._bootstrapper(tmp_path, runner, docker_path=None, release=UBUNTU_RELEASE)

        report = bootstrapper.ensure()

        assert report.docker_installed is True
        assert report.relogin_required is True
        assert runner.executed == docker_install_plan(
            OsIdentity(name="Ubuntu"), "pi", group_exists=lambda _: True
        )

    def test_installs_compose_plugin(self, tmp_path):
        runner = FakeRunner(returncodes={("docker", "compose", "version"): 1})
        report = self._bootstrapper(tmp_path, runner).ensure()

        assert report.compose_installed is True
        assert runner.executed == compose_install_plan()

    def test_unknown_os_without_release_file(self, tmp_path):
        bootstrapper = self._bootstrapper(tmp_path, FakeRunner(), docker_path=None)

        with pytest.raises(BootstrapError, match="Could not detect OS type"):
            bootstrapper.ensure()

    def test_failing_step_aborts(self, tmp_path):
        runner = FakeRunner(fail_on=["sudo", "apt-get", "install"])
        bootstrapper = self._bootstrapper(tmp_path, runner, docker_path=None, release=UBUNTU_RELEASE)

        with pytest.raises(BootstrapError, match=r"Command failed \(100\)"):
            bootstrapper.ensure()

        # Stops at the first failing step.
        assert runner.executed[-1][:3] == ["sudo", "apt-get", "install"]
        assert len(runner.executed) == 2

    def test_missing_systemctl_counts_as_enabled(self):
        def runner(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        bootstrapper = DockerBootstrapper(runner=runner, user="pi")
        assert bootstrapper.service_enabled() is True
        assert bootstrapper.compose_installed() is False

