"""
Error taxonomy — every failure the provisioning core can surface.

All errors derive from ``ProvisionError`` so the CLI can catch one type,
print ``ERROR: <message>`` and exit non-zero. Nothing in the core retries
or rolls back: an error at step N leaves steps 1..N-1 applied.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for all provisioning failures."""


class ConfigError(ProvisionError):
    """Raised when the provisioning configuration is invalid or missing."""


class PrivilegeError(ProvisionError, PermissionError):
    """The process lacks the rights to mutate system state."""


class MissingToolError(ProvisionError):
    """A required external collaborator (apt, ufw, docker) is absent."""

    def __init__(self, tool: str, hint: str = ""):
        self.tool = tool
        message = f"Required tool not found: {tool}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)


class PortInUseError(ProvisionError):
    """One or more requested ports are already bound on the host."""

    def __init__(self, ports: list[int]):
        self.ports = sorted(ports)
        joined = ", ".join(str(p) for p in self.ports)
        noun = "Port" if len(self.ports) == 1 else "Ports"
        verb = "is" if len(self.ports) == 1 else "are"
        super().__init__(
            f"{noun} {joined} {verb} already in use. "
            "Please free the port or choose a different one."
        )


class EntropyUnavailableError(ProvisionError):
    """The OS random source could not supply entropy."""


class ExternalCommandError(ProvisionError):
    """An external tool exited non-zero."""

    def __init__(self, argv: list[str], return_code: int | None, stderr: str = ""):
        self.argv = list(argv)
        self.return_code = return_code
        self.stderr = stderr
        command = " ".join(self.argv)
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"'{command}' failed (exit {return_code}){detail}")


class InstallError(ProvisionError):
    """A package (or its repository) could not be installed."""

    def __init__(self, package: str, message: str, return_code: int | None = None):
        self.package = package
        self.return_code = return_code
        detail = f"{message} (exit {return_code})" if return_code is not None else message
        super().__init__(f"Failed to install {package}: {detail}")


class FirewallError(ProvisionError):
    """The firewall could not be configured or enabled."""


class FetchError(ProvisionError):
    """A deployment artifact could not be downloaded or verified."""


class TemplateKeyNotFoundError(ProvisionError):
    """A strict template rule found nothing to act on."""

    def __init__(self, rule: object):
        self.rule = rule
        super().__init__(f"Template rule matched no line: {rule}")


class LockHeldError(ProvisionError):
    """Another provisioning run holds the lock for this target."""
