"""
Shared test fixtures and configuration.

``FakeHost`` stands in for the shell adapter and simulates just enough
of a Debian host (dpkg, apt-get, ufw, systemctl, id/usermod) for the
services and the orchestrator to run end to end without touching the
machine running the tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from wahaprov.adapters.mock import MockAdapter
from wahaprov.adapters.registry import AdapterRegistry
from wahaprov.core.models.action import Receipt
from wahaprov.core.services.command_runner import CommandRunner
from wahaprov.core.services.network import DownloadError

ARMORED_KEY = (
    b"-----BEGIN PGP PUBLIC KEY BLOCK-----\n\n"
    b"mQINBFit2ioBEADhWpZ8/wvZ6hUTiXOwQHXMAlaFHcPH9hAtr4F1y2+OYdbtMuth\n"
    b"-----END PGP PUBLIC KEY BLOCK-----\n"
)

OS_RELEASE = 'ID=ubuntu\nVERSION_ID="24.04"\nVERSION_CODENAME=noble\n'

STANDALONE_COMPOSE = """\
services:
  waha:
    image: devlikeapro/waha-plus
    restart: always
    ports:
      - '127.0.0.1:3000:3000/tcp'
    env_file:
      - .env
  redis:
    image: redis:7
"""

ENV_EXAMPLE = """\
# WAHA configuration
WAHA_API_KEY=00000000000000000000000000000000
WAHA_DASHBOARD_ENABLED=True
WAHA_DASHBOARD_USERNAME=admin
WAHA_DASHBOARD_PASSWORD=admin
WHATSAPP_SWAGGER_USERNAME=admin
WHATSAPP_SWAGGER_PASSWORD=admin
WHATSAPP_DEFAULT_ENGINE=WEBJS
WAHA_BASE_URL=http://localhost:3000

# Optional
# WHATSAPP_API_PORT=3000
# WAHA_APPS_ENABLED=False
# REDIS_URL=redis://localhost:6379
# TZ=UTC
# WHATSAPP_START_SESSION=
"""

CHATWOOT_COMPOSE = """\
services:
  waha:
    image: devlikeapro/waha-plus:latest
    ports:
      - '127.0.0.1:3000:3000/tcp'
    env_file: .waha.env
  chatwoot-rails:
    image: chatwoot/chatwoot:latest
    ports:
      - '127.0.0.1:3009:3009'
    env_file: .chatwoot.env
  postgres:
    image: pgvector/pgvector:pg16
"""

WAHA_ENV = """\
WAHA_API_KEY=00000000000000000000000000000000
WAHA_DASHBOARD_USERNAME=admin
WAHA_DASHBOARD_PASSWORD=admin
WHATSAPP_SWAGGER_USERNAME=admin
WHATSAPP_SWAGGER_PASSWORD=admin
WAHA_BASE_URL=http://waha:3000
WAHA_PUBLIC_URL=http://localhost:3000
# WHATSAPP_API_PORT=3000
# TZ=UTC
# WHATSAPP_START_SESSION=
"""

CHATWOOT_ENV = """\
SECRET_KEY_BASE=replace_with_lengthy_secure_hex
FRONTEND_URL=http://localhost:3009
POSTGRES_HOST=postgres
"""


class _Fail(Exception):
    def __init__(self, error: str, code: int = 1):
        self.error = error
        self.code = code
        super().__init__(error)


class _FakeDocker(MockAdapter):
    """Docker adapter double that shares the host's timeline."""

    def __init__(self, timeline: list[list[str]]):
        super().__init__(adapter_name="docker")
        self._timeline = timeline

    def execute(self, context):
        self._timeline.append(list(context.action.argv))
        return super().execute(context)


class FakeHost(MockAdapter):
    """Stateful stand-in for the shell adapter.

    Responses configured with ``set_output``/``set_failure`` win over
    the simulation, so a test can break any single command.
    """

    def __init__(
        self,
        installed: tuple[str, ...] = (),
        *,
        ufw_active: bool = False,
        ufw_rules: tuple[str, ...] = (),
        running: tuple[str, ...] = (),
        groups: dict[str, set[str]] | None = None,
        broken: tuple[str, ...] = (),
    ):
        super().__init__(adapter_name="shell")
        self.installed = set(installed)
        self.ufw_active = ufw_active
        self.ufw_rules = list(ufw_rules)
        self.running = set(running)
        self.groups = {user: set(g) for user, g in (groups or {}).items()}
        self.broken = set(broken)
        # every command that reached either adapter, in order
        self.timeline: list[list[str]] = []
        self.docker = _FakeDocker(self.timeline)

    # ── Wiring ──────────────────────────────────────────────────

    def which(self, tool: str) -> str | None:
        provided = {
            "apt-get": True,
            "ufw": "ufw" in self.installed,
            "docker": "docker-ce" in self.installed,
        }
        return f"/usr/bin/{tool}" if provided.get(tool, False) else None

    def registry(self) -> AdapterRegistry:
        registry = AdapterRegistry()
        registry.register(self)
        registry.register(self.docker)
        return registry

    def runner(self, dry_run: bool = False) -> CommandRunner:
        return CommandRunner(self.registry(), dry_run=dry_run, which=self.which)

    @property
    def mutations(self) -> list[list[str]]:
        """Mutating commands that actually reached the host."""
        return [ctx.action.argv for ctx in self.call_log if ctx.action.mutating]

    def count(self, *prefix: str) -> int:
        return sum(1 for argv in self.commands if argv[: len(prefix)] == list(prefix))

    # ── Simulation ──────────────────────────────────────────────

    def execute(self, context):
        self._call_log.append(context)
        self.timeline.append(list(context.action.argv))
        configured = self.response_for(context)
        if configured is not None:
            return configured
        try:
            output = self._simulate(list(context.action.argv))
        except _Fail as e:
            return Receipt.failure(
                adapter="shell",
                action_id=context.action.id,
                error=e.error,
                return_code=e.code,
            )
        return Receipt.success(adapter="shell", action_id=context.action.id, output=output)

    def _simulate(self, argv: list[str]) -> str:
        tool, args = argv[0], argv[1:]
        handler = getattr(self, f"_{tool.replace('-', '_')}", None)
        return handler(args) if handler else ""

    def _dpkg_query(self, args: list[str]) -> str:
        name = args[-1]
        if name not in self.installed:
            raise _Fail(f"dpkg-query: no packages found matching {name}")
        return "install ok installed"

    def _dpkg(self, args: list[str]) -> str:
        return "amd64" if args == ["--print-architecture"] else ""

    def _apt_get(self, args: list[str]) -> str:
        if args[0] == "install":
            name = args[-1]
            if name in self.broken:
                raise _Fail(f"E: Unable to locate package {name}", 100)
            self.installed.add(name)
        return ""

    def _ufw(self, args: list[str]) -> str:
        if "ufw" not in self.installed:
            raise _Fail("ufw: command not found", 127)
        if args == ["status"]:
            return "Status: active" if self.ufw_active else "Status: inactive"
        if args == ["show", "added"]:
            lines = [f"ufw allow {target}" for target in self.ufw_rules] or ["(None)"]
            return "\n".join(["Added user rules (see 'ufw status' for running firewall):", *lines])
        if args[0] == "allow" and args[1] not in self.ufw_rules:
            self.ufw_rules.append(args[1])
        if args == ["--force", "enable"]:
            self.ufw_active = True
        return ""

    def _systemctl(self, args: list[str]) -> str:
        name = args[-1]
        if args[0] in ("is-active", "is-enabled"):
            if name not in self.running:
                raise _Fail("", 3)
        elif args[:2] == ["enable", "--now"]:
            self.running.add(name)
        return ""

    def _id(self, args: list[str]) -> str:
        user = args[-1]
        return " ".join(sorted(self.groups.get(user, {user})))

    def _usermod(self, args: list[str]) -> str:
        group, user = args[-2], args[-1]
        self.groups.setdefault(user, {user}).add(group)
        return ""


class Upstream:
    """In-memory artifact server: ``url → bytes``; misses are HTTP 404."""

    def __init__(self, files: dict[str, bytes] | None = None):
        self.files = dict(files or {})
        self.requests: list[str] = []

    def __call__(self, url: str, timeout: int = 30) -> bytes:
        self.requests.append(url)
        if url.endswith("/gpg"):
            return ARMORED_KEY
        if url not in self.files:
            raise DownloadError(url, "HTTP 404 Not Found", status=404)
        return self.files[url]


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def host() -> FakeHost:
    """A bare host: nothing installed, firewall off."""
    return FakeHost()


@pytest.fixture
def os_release(tmp_path: Path) -> Path:
    path = tmp_path / "os-release"
    path.write_text(OS_RELEASE)
    return path


@pytest.fixture
def ufw_defaults(tmp_path: Path) -> Path:
    path = tmp_path / "ufw"
    path.write_text('# /etc/default/ufw\nIPV6=yes\nDEFAULT_INPUT_POLICY="DROP"\n')
    return path


@pytest.fixture
def apt_dirs(tmp_path: Path) -> dict[str, str]:
    """Keyring and sources directories under tmp_path."""
    return {
        "keyring_dir": str(tmp_path / "keyrings"),
        "sources_dir": str(tmp_path / "sources.list.d"),
    }
