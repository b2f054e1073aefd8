"""
Orchestrator — the linear provisioning run.

Flow (standalone / chatwoot):

    privilege → ports → credentials → packages → services → firewall
              → fetch → template → compose_up

Flow (bootstrap):

    privilege → packages (with upgrade) → services

Each step appends a ``StepRecord`` to the result. The first step that
raises halts the run: the failure is recorded, credentials generated so
far stay in the result, and containers are never started. Nothing is
rolled back and nothing is retried.

The run lock is taken right after the privilege check and held until
the run ends. Dry runs take no lock and write nothing.
"""

from __future__ import annotations

import contextlib
import logging
import os
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from wahaprov.core.config import profiles
from wahaprov.core.errors import MissingToolError, ProvisionError
from wahaprov.core.models.result import Credentials, ProvisioningResult, StepStatus
from wahaprov.core.models.spec import ProvisioningSpec
from wahaprov.core.observability.logging_config import redact
from wahaprov.core.persistence.run_lock import run_lock
from wahaprov.core.services.command_runner import CommandRunner
from wahaprov.core.services.compose import patch_compose
from wahaprov.core.services.firewall import UFW_DEFAULTS, FirewallManager
from wahaprov.core.services.network import http_get, resolve_public_address
from wahaprov.core.services.packages import OS_RELEASE, PackageInstaller
from wahaprov.core.services.ports import ensure_ports_free
from wahaprov.core.services.privilege import ensure_privileged
from wahaprov.core.services.secret_gen import generate_credentials
from wahaprov.core.services.stack_fetcher import fetch, seed_env_file
from wahaprov.core.services.templating import template_file

logger = logging.getLogger(__name__)

STACK_STEPS = (
    "privilege",
    "ports",
    "credentials",
    "packages",
    "services",
    "firewall",
    "fetch",
    "template",
    "compose_up",
)
BOOTSTRAP_STEPS = ("privilege", "packages", "services")

StepOutcome = tuple[StepStatus, str]


class Orchestrator:
    """Runs one provisioning pass for a spec.

    Every host-facing collaborator is injectable so the whole flow can
    run against a simulated host.

    Args:
        spec: Desired end state.
        runner: Command runner (default: real host, spec's dry-run).
        downloader: Fetches artifacts and signing keys.
        address_resolver: Returns the host address for report URLs.
        port_checker: Raises ``PortInUseError`` for bound ports.
        euid: Effective uid to check (default: the process's).
        os_release: Path of the os-release file.
        ufw_defaults: Path of /etc/default/ufw.
    """

    def __init__(
        self,
        spec: ProvisioningSpec,
        *,
        runner: CommandRunner | None = None,
        downloader: Callable[[str], bytes] = http_get,
        address_resolver: Callable[[], str] = resolve_public_address,
        port_checker: Callable[[Iterable[int]], None] = ensure_ports_free,
        euid: int | None = None,
        os_release: Path = OS_RELEASE,
        ufw_defaults: Path = UFW_DEFAULTS,
    ):
        self.spec = spec
        self.runner = runner or CommandRunner(dry_run=spec.dry_run)
        self._downloader = downloader
        self._resolve_address = address_resolver
        self._check_ports = port_checker
        self._euid = euid
        self.installer = PackageInstaller(self.runner, downloader=downloader, os_release=os_release)
        self.firewall = FirewallManager(
            self.runner,
            self.installer,
            management_rule=spec.management_rule,
            ipv6=spec.ipv6,
            defaults_path=ufw_defaults,
        )
        self._result = ProvisioningResult()

    @property
    def step_names(self) -> tuple[str, ...]:
        return BOOTSTRAP_STEPS if self.spec.profile == "bootstrap" else STACK_STEPS

    # ── Run ─────────────────────────────────────────────────────

    def run(self) -> ProvisioningResult:
        spec = self.spec
        result = self._result = ProvisioningResult(
            profile=spec.profile,
            dry_run=spec.dry_run,
            target_dir=None if spec.profile == "bootstrap" else str(spec.target_dir),
        )
        logger.info(
            "Starting %s run%s", spec.profile, " (dry-run)" if spec.dry_run else ""
        )

        names = list(self.step_names)
        if not self._run_step(names.pop(0)):
            return result

        try:
            lock = contextlib.nullcontext() if spec.dry_run else run_lock(spec.lock_path)
            with lock:
                for name in names:
                    if not self._run_step(name):
                        return result
        except ProvisionError as e:
            self._fail("lock", e, 0)
            return result

        result.ok = True
        if spec.profile == "bootstrap":
            result.reboot_required = True
        else:
            self._fill_urls()
        logger.info("Run finished: %d steps", len(result.steps))
        return result

    def _run_step(self, name: str) -> bool:
        handler: Callable[[], StepOutcome] = getattr(self, f"_step_{name}")
        start = time.monotonic()
        try:
            status, message = handler()
        except (ProvisionError, OSError) as e:
            self._fail(name, e, _elapsed_ms(start))
            return False
        self._result.record(name, status, message, _elapsed_ms(start))
        logger.info("✓ %s: %s", name, message or status)
        return True

    def _fail(self, name: str, error: Exception, duration_ms: int) -> None:
        result = self._result
        result.record(name, "failed", str(error), duration_ms)
        result.failed_step = name
        result.error = str(error)
        # the CLI prints the one user-facing ERROR line
        logger.info("✗ %s: %s", name, error)

    def _warn(self, message: str) -> None:
        self._result.warn(message)
        logger.warning(message)

    def _fill_urls(self) -> None:
        host = self._resolve_address()
        self._result.host_address = host
        self._result.urls["waha"] = f"http://{host}:{self.spec.port}"
        if self.spec.chatwoot_port is not None:
            self._result.urls["chatwoot"] = f"http://{host}:{self.spec.chatwoot_port}"

    @property
    def _credentials(self) -> Credentials:
        creds = self._result.credentials
        if creds is None:
            raise ProvisionError("Credentials have not been generated")
        return creds

    # ── Steps ───────────────────────────────────────────────────

    def _step_privilege(self) -> StepOutcome:
        euid = os.geteuid() if self._euid is None else self._euid
        if self.spec.dry_run and euid != 0:
            self._warn("Not running as root; dry run continues without privileges")
            return "skipped", "not root (dry-run)"
        ensure_privileged(euid)
        return "ok", "running as root"

    def _step_ports(self) -> StepOutcome:
        self._check_ports(self.spec.ports)
        return "ok", "free: " + ", ".join(str(p) for p in self.spec.ports)

    def _step_credentials(self) -> StepOutcome:
        creds = generate_credentials(self.spec.dashboard_username)
        redact(creds.api_key.get_secret_value(), creds.dashboard_password.get_secret_value())
        self._result.credentials = creds
        return "ok", "generated API key and dashboard password"

    def _step_packages(self) -> StepOutcome:
        spec = self.spec
        if spec.upgrade:
            self.installer.upgrade_system()
        base = list(spec.packages)
        if spec.profile != "bootstrap":
            base.append("ufw")
        self.installer.queue(base)
        self.installer.queue(spec.docker_packages, spec.docker_repo)
        installed = self.installer.apply()
        if not installed:
            return "ok", "all packages already installed"
        verb = "would install" if self.runner.dry_run else "installed"
        return "ok", f"{verb}: {', '.join(installed)}"

    def _step_services(self) -> StepOutcome:
        changed = [name for name in self.spec.services if self.installer.ensure_service(name)]
        user = self.spec.docker_group_user
        if user and user != "root" and self.installer.ensure_group_member(user, "docker"):
            self._warn(f"Added {user} to the docker group; log out and back in for it to apply")
        if not changed:
            return "ok", "services already running"
        return "ok", "enabled: " + ", ".join(changed)

    def _step_firewall(self) -> StepOutcome:
        newly = self.firewall.apply(self.spec.firewall_rules)
        allowed = [self.spec.management_rule.target, *(r.target for r in self.spec.firewall_rules)]
        if not newly:
            return "ok", "already allows " + ", ".join(allowed)
        return "ok", "allowed " + ", ".join(newly)

    def _step_fetch(self) -> StepOutcome:
        report = fetch(
            self.spec.target_dir,
            self.spec.artifacts,
            downloader=self._downloader,
            dry_run=self.spec.dry_run,
        )
        for warning in report.warnings:
            self._result.warn(warning)
        message = f"fetched {len(report.fetched)} file(s) into {report.target_dir}"
        if report.skipped:
            message += f"; not found upstream: {', '.join(report.skipped)}"
        if report.warnings:
            message += "; " + "; ".join(report.warnings)
        return ("skipped" if self.spec.dry_run else "ok"), message

    def _step_template(self) -> StepOutcome:
        spec = self.spec
        env_files = profiles.env_files(spec)
        if spec.dry_run:
            names = ", ".join(e.name for e in env_files)
            return "skipped", f"[dry-run] would patch {profiles.COMPOSE_FILE} and template {names}"

        target = spec.target_dir
        creds = self._credentials
        patch_compose(
            target / profiles.COMPOSE_FILE,
            image=spec.image,
            ports=profiles.compose_ports(spec),
        )
        for env in env_files:
            if env.seed_from:
                seed_env_file(target, env.seed_from, env.name, profiles.fallback_env(spec, creds))
            template_file(target / env.name, profiles.env_rules(spec, env, creds))
        return "ok", "configured " + ", ".join(e.name for e in env_files)

    def _step_compose_up(self) -> StepOutcome:
        cwd = str(self.spec.target_dir)
        if self.spec.dry_run:
            self.runner.compose("up", cwd)
            return "skipped", "[dry-run] would run docker compose up -d"
        if not self.runner.which("docker"):
            raise MissingToolError("docker", "install docker-ce first")
        self.runner.compose("config", cwd, mutating=False, timeout=60)
        self.runner.compose("up", cwd)
        return "ok", "containers started"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
