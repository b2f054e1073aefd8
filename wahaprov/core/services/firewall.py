"""
Firewall manager — idempotent UFW configuration.

States (queried live, never cached):

    UNINSTALLED → INSTALLED → CONFIGURED → ACTIVE

CONFIGURED means the management rule (SSH) is among the added rules.
Transitions only move forward and each is a no-op when already done.

Lockout guard: ``ensure_active()`` always allows the management rule
before it sets the default-deny policy or enables the firewall.
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path

from wahaprov.core.errors import ExternalCommandError, FirewallError
from wahaprov.core.models.spec import FirewallRule
from wahaprov.core.services.command_runner import CommandRunner
from wahaprov.core.services.packages import PackageInstaller
from wahaprov.core.services.templating import ConfigDocument, SetValue, template_file

logger = logging.getLogger(__name__)

UFW_DEFAULTS = Path("/etc/default/ufw")


class FirewallState(enum.IntEnum):
    UNINSTALLED = 0
    INSTALLED = 1
    CONFIGURED = 2
    ACTIVE = 3


class FirewallManager:
    """Drives UFW towards the desired rule set.

    Args:
        runner: Command runner.
        installer: Used to install ``ufw`` when missing.
        management_rule: Always allowed before enabling (default OpenSSH).
        ipv6: Desired ``IPV6=`` setting in /etc/default/ufw.
        defaults_path: Location of the UFW defaults file.
    """

    def __init__(
        self,
        runner: CommandRunner,
        installer: PackageInstaller,
        *,
        management_rule: FirewallRule = FirewallRule(app="OpenSSH"),
        ipv6: bool = False,
        defaults_path: Path = UFW_DEFAULTS,
    ):
        self._runner = runner
        self._installer = installer
        self._management = management_rule
        self._ipv6 = ipv6
        self._defaults_path = defaults_path

    # ── Queries ─────────────────────────────────────────────────

    def is_active(self) -> bool:
        receipt = self._runner.probe(["ufw", "status"])
        return receipt.ok and "Status: active" in receipt.output

    def added_rules(self) -> set[str]:
        """Targets of every ``ufw allow`` rule, whether or not UFW is active."""
        receipt = self._runner.probe(["ufw", "show", "added"])
        if not receipt.ok:
            return set()
        targets = set()
        for line in receipt.output.splitlines():
            parts = line.split()
            if len(parts) == 3 and parts[:2] == ["ufw", "allow"]:
                targets.add(parts[2])
        return targets

    def is_allowed(self, rule: FirewallRule) -> bool:
        return rule.target in self.added_rules()

    def state(self) -> FirewallState:
        if not self._runner.which("ufw"):
            return FirewallState.UNINSTALLED
        if self.is_active():
            return FirewallState.ACTIVE
        if self.is_allowed(self._management):
            return FirewallState.CONFIGURED
        return FirewallState.INSTALLED

    # ── Transitions ─────────────────────────────────────────────

    def ensure_installed(self) -> None:
        if self._runner.which("ufw"):
            return
        self._installer.ensure_installed(["ufw"])

    def configure_ipv6(self) -> bool:
        """Set ``IPV6=yes|no``; reload if it changed and UFW is running."""
        path = self._defaults_path
        wanted = "yes" if self._ipv6 else "no"
        if not path.is_file():
            logger.warning("%s not found; leaving IPv6 handling unchanged", path)
            return False
        current = ConfigDocument.parse(path.read_text(encoding="utf-8")).get("IPV6")
        if current == wanted:
            return False

        template_file(path, [SetValue("IPV6", wanted)], dry_run=self._runner.dry_run)
        logger.info("UFW IPv6 handling set to %s", wanted)
        if self.is_active():
            self._ufw("reload")
        return True

    def allow(self, rule: FirewallRule) -> bool:
        """Allow ``rule``. Returns False when it was already allowed."""
        if self.is_allowed(rule):
            logger.debug("UFW rule already present: %s", rule)
            return False
        self._ufw("allow", rule.target)
        logger.info("UFW allowed %s", rule)
        return True

    def ensure_active(self) -> bool:
        """Allow management access, deny by default, enable. False if already active."""
        self.allow(self._management)
        if self.is_active():
            return False
        self._ufw("default", "deny", "incoming")
        self._ufw("--force", "enable")
        logger.info("UFW enabled")
        return True

    def apply(self, rules: list[FirewallRule]) -> list[str]:
        """Converge on ``rules``. Returns the targets newly allowed."""
        self.ensure_installed()
        self.configure_ipv6()
        newly = []
        if self.allow(self._management):
            newly.append(self._management.target)
        for rule in rules:
            if self.allow(rule):
                newly.append(rule.target)
        self.ensure_active()
        return newly

    # ── Internals ───────────────────────────────────────────────

    def _ufw(self, *args: str) -> None:
        try:
            self._runner.run(["ufw", *args])
        except ExternalCommandError as e:
            raise FirewallError(f"Failed to run 'ufw {' '.join(args)}': {e.stderr or e}") from e
