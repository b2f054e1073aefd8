"""
Tests for the package installer — batching, repositories, services, groups.
"""

from pathlib import Path

import pytest

from wahaprov.core.errors import InstallError, MissingToolError
from wahaprov.core.models.spec import AptRepository
from wahaprov.core.services.command_runner import CommandRunner
from wahaprov.core.services.packages import PackageInstaller, read_os_release

from .conftest import ARMORED_KEY, FakeHost, Upstream


def _repo(apt_dirs: dict[str, str]) -> AptRepository:
    return AptRepository(
        name="docker",
        key_url="https://download.docker.com/linux/{os_id}/gpg",
        url="https://download.docker.com/linux/{os_id}",
        **apt_dirs,
    )


def _installer(host: FakeHost, os_release: Path, dry_run: bool = False) -> PackageInstaller:
    return PackageInstaller(host.runner(dry_run), downloader=Upstream(), os_release=os_release)


# ── os-release ──────────────────────────────────────────────────


class TestOsRelease:
    def test_parses_quoted_values(self, os_release: Path):
        info = read_os_release(os_release)
        assert info["ID"] == "ubuntu"
        assert info["VERSION_ID"] == "24.04"
        assert info["VERSION_CODENAME"] == "noble"

    def test_missing_file(self, tmp_path: Path):
        assert read_os_release(tmp_path / "nope") == {}


# ── Installs ────────────────────────────────────────────────────


class TestEnsureInstalled:
    def test_installs_missing_only(self, os_release: Path):
        host = FakeHost(installed=("curl",))
        installed = _installer(host, os_release).ensure_installed(["curl", "git"])
        assert installed == ["git"]
        assert ["apt-get", "install", "-y", "git"] in host.commands
        assert ["apt-get", "install", "-y", "curl"] not in host.commands

    def test_all_present_is_noop(self, os_release: Path):
        host = FakeHost(installed=("curl", "git"))
        assert _installer(host, os_release).ensure_installed(["curl", "git"]) == []
        assert host.mutations == []

    def test_second_call_changes_nothing(self, host: FakeHost, os_release: Path):
        installer = _installer(host, os_release)
        installer.ensure_installed(["curl"])
        before = len(host.mutations)
        installer.ensure_installed(["curl"])
        assert len(host.mutations) == before

    def test_failure_names_package(self, os_release: Path):
        host = FakeHost(broken=("docker-ce",))
        with pytest.raises(InstallError, match="docker-ce") as exc:
            _installer(host, os_release).ensure_installed(["curl", "docker-ce", "git"])
        assert exc.value.package == "docker-ce"
        assert exc.value.return_code == 100
        assert "(exit 100)" in str(exc.value)
        # fail fast: nothing after the broken package
        assert "git" not in host.installed

    def test_missing_apt(self, host: FakeHost, os_release: Path):
        runner = CommandRunner(host.registry(), which=lambda tool: None)
        installer = PackageInstaller(runner, os_release=os_release)
        with pytest.raises(MissingToolError, match="apt-get"):
            installer.ensure_installed(["curl"])

    def test_apt_runs_noninteractive(self, host: FakeHost, os_release: Path):
        _installer(host, os_release).ensure_installed(["curl"])
        installs = [ctx for ctx in host.call_log if ctx.action.argv[:2] == ["apt-get", "install"]]
        assert installs[0].env == {"DEBIAN_FRONTEND": "noninteractive"}


class TestBatchedRefresh:
    def test_single_refresh_for_many_requests(self, host: FakeHost, os_release: Path):
        installer = _installer(host, os_release)
        installer.queue(["curl", "wget"])
        installer.queue(["git"])
        installer.queue(["ufw"])
        installer.apply()
        assert host.count("apt-get", "update") == 1
        assert host.count("apt-get", "install") == 4

    def test_fresh_index_remembered(self, host: FakeHost, os_release: Path):
        installer = _installer(host, os_release)
        installer.ensure_installed(["curl"])
        installer.ensure_installed(["git"])
        assert host.count("apt-get", "update") == 1

    def test_no_refresh_when_nothing_missing(self, os_release: Path):
        host = FakeHost(installed=("curl",))
        _installer(host, os_release).ensure_installed(["curl"])
        assert host.count("apt-get", "update") == 0

    def test_refresh_failure(self, host: FakeHost, os_release: Path):
        host.set_failure(["apt-get", "update"], error="Temporary failure resolving", return_code=100)
        with pytest.raises(InstallError, match="package index"):
            _installer(host, os_release).ensure_installed(["curl"])


# ── Repositories ────────────────────────────────────────────────


class TestRepository:
    def test_registered_before_refresh(self, host: FakeHost, os_release: Path, apt_dirs):
        repo = _repo(apt_dirs)
        installer = _installer(host, os_release)
        installer.queue(["curl"])
        installer.queue(["docker-ce"], repo)
        installer.apply()

        assert repo.keyring_path.read_bytes() == ARMORED_KEY
        assert repo.list_path.read_text() == (
            f"deb [arch=amd64 signed-by={repo.keyring_path}] "
            "https://download.docker.com/linux/ubuntu noble stable\n"
        )
        assert repo.list_path.stat().st_mode & 0o777 == 0o644
        update_at = host.commands.index(["apt-get", "update"])
        arch_at = host.commands.index(["dpkg", "--print-architecture"])
        assert arch_at < update_at
        assert host.count("apt-get", "update") == 1

    def test_repo_change_forces_refresh(self, host: FakeHost, os_release: Path, apt_dirs):
        installer = _installer(host, os_release)
        installer.ensure_installed(["curl"])
        installer.ensure_installed(["docker-ce"], _repo(apt_dirs))
        assert host.count("apt-get", "update") == 2

    def test_registered_repo_is_left_alone(self, os_release: Path, apt_dirs):
        repo = _repo(apt_dirs)
        _installer(FakeHost(), os_release).ensure_installed(["docker-ce"], repo)
        mtime = repo.list_path.stat().st_mtime_ns

        host = FakeHost()
        installer = _installer(host, os_release)
        installer.ensure_installed(["curl"])
        installer.ensure_installed(["docker-ce"], repo)
        assert repo.list_path.stat().st_mtime_ns == mtime
        assert host.count("apt-get", "update") == 1

    def test_repo_skipped_when_packages_present(self, os_release: Path, apt_dirs):
        repo = _repo(apt_dirs)
        host = FakeHost(installed=("docker-ce",))
        _installer(host, os_release).ensure_installed(["docker-ce"], repo)
        assert not repo.list_path.exists()

    def test_bad_key_rejected(self, host: FakeHost, os_release: Path, apt_dirs):
        installer = PackageInstaller(
            host.runner(), downloader=lambda url: b"<html>", os_release=os_release
        )
        with pytest.raises(InstallError, match="signing key"):
            installer.ensure_installed(["docker-ce"], _repo(apt_dirs))

    def test_unknown_codename(self, host: FakeHost, tmp_path: Path, apt_dirs):
        release = tmp_path / "os-release"
        release.write_text("ID=ubuntu\n")
        with pytest.raises(InstallError, match="codename"):
            _installer(host, release).ensure_installed(["docker-ce"], _repo(apt_dirs))


# ── Upgrade, services, groups ───────────────────────────────────


class TestUpgrade:
    def test_upgrade_sequence(self, host: FakeHost, os_release: Path):
        _installer(host, os_release).upgrade_system()
        apt = [argv[1] for argv in host.commands if argv[0] == "apt-get"]
        assert apt == ["update", "upgrade", "autoremove", "autoclean"]


class TestServices:
    def test_enables_stopped_service(self, host: FakeHost, os_release: Path):
        assert _installer(host, os_release).ensure_service("docker")
        assert ["systemctl", "enable", "--now", "docker"] in host.commands
        assert "docker" in host.running

    def test_running_service_untouched(self, os_release: Path):
        host = FakeHost(running=("docker",))
        assert not _installer(host, os_release).ensure_service("docker")
        assert host.mutations == []


class TestGroups:
    def test_adds_member(self, host: FakeHost, os_release: Path):
        assert _installer(host, os_release).ensure_group_member("alice", "docker")
        assert ["usermod", "-aG", "docker", "alice"] in host.commands

    def test_existing_member(self, os_release: Path):
        host = FakeHost(groups={"alice": {"alice", "docker"}})
        assert not _installer(host, os_release).ensure_group_member("alice", "docker")
        assert host.mutations == []


class TestDryRun:
    def test_queries_but_does_not_install(self, host: FakeHost, os_release: Path, apt_dirs):
        repo = _repo(apt_dirs)
        installed = _installer(host, os_release, dry_run=True).ensure_installed(["curl"], repo)
        assert installed == ["curl"]
        assert host.mutations == []
        assert host.count("dpkg-query") == 1
        assert not repo.list_path.exists()
        assert host.installed == set()
