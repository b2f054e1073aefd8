"""
Package installer — idempotent APT installs with batched index refresh.

Read-only queries (``dpkg-query``) decide what is missing; only missing
packages cause any mutation. Vendor repositories are registered (key,
then ``.list`` file) before the index refresh, and the refresh runs
once per ``apply()`` however many requests were queued. A fresh index
is remembered for the rest of the run.

Each missing package gets its own ``apt-get install`` so a failure names
the package. The first failure aborts; nothing is retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from wahaprov.core.errors import ExternalCommandError, InstallError, MissingToolError
from wahaprov.core.models.spec import AptRepository
from wahaprov.core.persistence.atomic import atomic_write_bytes
from wahaprov.core.services.command_runner import CommandRunner
from wahaprov.core.services.network import DownloadError, http_get

logger = logging.getLogger(__name__)

OS_RELEASE = Path("/etc/os-release")

_ARMORED_KEY = b"-----BEGIN PGP PUBLIC KEY BLOCK-----"


def read_os_release(path: Path = OS_RELEASE) -> dict[str, str]:
    """Parse /etc/os-release into a dict (quotes stripped)."""
    info: dict[str, str] = {}
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return info
    for line in text.splitlines():
        key, sep, val = line.strip().partition("=")
        if sep:
            info[key] = val.strip().strip('"').strip("'")
    return info


class PackageInstaller:
    """Ensures APT packages (and their repositories) are present.

    Args:
        runner: Command runner (carries dry-run).
        downloader: Fetches repository signing keys.
        os_release: Path of the os-release file.
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        downloader: Callable[[str], bytes] = http_get,
        os_release: Path = OS_RELEASE,
    ):
        self._runner = runner
        self._download = downloader
        self._os_release = os_release
        self._index_fresh = False
        self._queue: list[tuple[list[str], AptRepository | None]] = []

    # ── Queries ─────────────────────────────────────────────────

    def is_installed(self, name: str) -> bool:
        receipt = self._runner.probe(["dpkg-query", "-W", "-f=${Status}", name])
        return receipt.ok and "install ok installed" in receipt.output

    def missing(self, names: Iterable[str]) -> list[str]:
        return [n for n in dict.fromkeys(names) if not self.is_installed(n)]

    # ── Batched install ─────────────────────────────────────────

    def queue(self, names: Iterable[str], extra_repo: AptRepository | None = None) -> None:
        """Add a request to the batch applied by :meth:`apply`."""
        self._queue.append((list(names), extra_repo))

    def apply(self) -> list[str]:
        """Install everything queued. Returns the packages that were missing."""
        requests, self._queue = self._queue, []

        missing: list[str] = []
        repos: list[AptRepository] = []
        for names, repo in requests:
            absent = [n for n in self.missing(names) if n not in missing]
            if not absent:
                continue
            missing.extend(absent)
            if repo is not None and repo not in repos:
                repos.append(repo)

        if not missing:
            logger.info("All requested packages already installed")
            return []

        self._require_apt()
        for repo in repos:
            if self._register_repo(repo):
                self._index_fresh = False

        if not self._index_fresh:
            self.refresh()

        for name in missing:
            self._install_one(name)
        logger.info("Installed: %s", ", ".join(missing))
        return missing

    def ensure_installed(
        self,
        names: Iterable[str],
        extra_repo: AptRepository | None = None,
    ) -> list[str]:
        """Install whichever of ``names`` are missing; no-op if none are."""
        self.queue(names, extra_repo)
        return self.apply()

    def refresh(self) -> None:
        """``apt-get update``."""
        try:
            self._runner.apt("update")
        except ExternalCommandError as e:
            raise InstallError("package index", e.stderr or str(e), e.return_code) from e
        self._index_fresh = True

    def upgrade_system(self) -> None:
        """Upgrade installed packages and clean the cache."""
        self._require_apt()
        if not self._index_fresh:
            self.refresh()
        for args in (("upgrade", "-y"), ("autoremove", "-y"), ("autoclean", "-y")):
            try:
                self._runner.apt(*args, timeout=3600)
            except ExternalCommandError as e:
                raise InstallError("system upgrade", e.stderr or str(e), e.return_code) from e

    # ── Services and groups ─────────────────────────────────────

    def ensure_service(self, name: str) -> bool:
        """Enable and start a systemd unit. Returns True if anything changed."""
        active = self._runner.probe(["systemctl", "is-active", "--quiet", name]).ok
        enabled = self._runner.probe(["systemctl", "is-enabled", "--quiet", name]).ok
        if active and enabled:
            logger.debug("Service %s already enabled and running", name)
            return False
        self._runner.run(["systemctl", "enable", "--now", name])
        logger.info("Enabled and started %s", name)
        return True

    def ensure_group_member(self, user: str, group: str) -> bool:
        """Add ``user`` to ``group``. Returns True if anything changed."""
        receipt = self._runner.probe(["id", "-nG", user])
        if receipt.ok and group in receipt.output.split():
            return False
        self._runner.run(["usermod", "-aG", group, user])
        logger.info("Added %s to the %s group (re-login required)", user, group)
        return True

    # ── Internals ───────────────────────────────────────────────

    def _require_apt(self) -> None:
        if not self._runner.which("apt-get"):
            raise MissingToolError("apt-get", "a Debian or Ubuntu host is required")

    def _install_one(self, name: str) -> None:
        try:
            self._runner.apt("install", "-y", name)
        except ExternalCommandError as e:
            raise InstallError(name, e.stderr or str(e), e.return_code) from e

    def _register_repo(self, repo: AptRepository) -> bool:
        """Write the signing key and source list. Returns True if either changed."""
        if self._runner.dry_run:
            logger.info("[dry-run] would register APT repository '%s'", repo.name)
            return True

        release = read_os_release(self._os_release)
        os_id = release.get("ID", "ubuntu")
        suite = repo.suite or release.get("VERSION_CODENAME") or release.get("UBUNTU_CODENAME")
        if not suite:
            raise InstallError(repo.name, f"cannot determine release codename from {self._os_release}")

        arch = self._runner.probe(["dpkg", "--print-architecture"])
        if not arch.ok or not arch.output:
            raise InstallError(repo.name, "cannot determine package architecture", arch.return_code)

        key_url = repo.key_url.format(os_id=os_id)
        try:
            key = self._download(key_url)
        except DownloadError as e:
            raise InstallError(repo.name, f"cannot fetch signing key: {e}") from e
        if not key.lstrip().startswith(_ARMORED_KEY):
            raise InstallError(repo.name, f"unexpected signing key format from {key_url}")

        source = repo.source_line(arch.output.strip(), suite, os_id).encode("utf-8")

        changed = False
        for path, content in ((repo.keyring_path, key), (repo.list_path, source)):
            if path.is_file() and path.read_bytes() == content:
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(path, content, mode=0o644)
            changed = True

        logger.info(
            "APT repository '%s' %s (%s %s)",
            repo.name,
            "registered" if changed else "already registered",
            os_id,
            suite,
        )
        return changed
