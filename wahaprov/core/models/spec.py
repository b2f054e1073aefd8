"""
ProvisioningSpec — the immutable desired end state of one run.

Built once from CLI flags plus an optional YAML config file and passed
by reference to every component. No component reads ambient process
state (euid aside) once the spec exists.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Profile = Literal["standalone", "chatwoot", "bootstrap"]


class FirewallRule(BaseModel):
    """One UFW allow rule: either a port (optionally with protocol) or an app profile."""

    model_config = ConfigDict(frozen=True)

    port: int | None = Field(default=None, ge=1, le=65535)
    proto: Literal["tcp", "udp"] | None = None
    app: str | None = None

    @model_validator(mode="after")
    def _one_target(self) -> FirewallRule:
        if (self.port is None) == (self.app is None):
            raise ValueError("A firewall rule needs exactly one of 'port' or 'app'")
        if self.app is not None and self.proto is not None:
            raise ValueError("'proto' only applies to port rules")
        return self

    @property
    def target(self) -> str:
        """The rule as UFW spells it: ``OpenSSH``, ``3000`` or ``3000/tcp``."""
        if self.app is not None:
            return self.app
        if self.proto:
            return f"{self.port}/{self.proto}"
        return str(self.port)

    def __str__(self) -> str:
        return self.target


class AptRepository(BaseModel):
    """A vendor APT repository with its signing key.

    ``url`` and ``key_url`` may contain ``{os_id}``, resolved from
    /etc/os-release at install time (e.g. ``ubuntu`` or ``debian``).
    """

    model_config = ConfigDict(frozen=True)

    name: str
    key_url: str
    url: str
    components: tuple[str, ...] = ("stable",)
    suite: str | None = None        # None = VERSION_CODENAME of the host
    keyring_dir: str = "/etc/apt/keyrings"
    sources_dir: str = "/etc/apt/sources.list.d"

    @property
    def keyring_path(self) -> Path:
        return Path(self.keyring_dir) / f"{self.name}.asc"

    @property
    def list_path(self) -> Path:
        return Path(self.sources_dir) / f"{self.name}.list"

    def source_line(self, arch: str, suite: str, os_id: str) -> str:
        url = self.url.format(os_id=os_id)
        components = " ".join(self.components)
        return f"deb [arch={arch} signed-by={self.keyring_path}] {url} {suite} {components}\n"


class Artifact(BaseModel):
    """A deployment file to download into the target directory."""

    model_config = ConfigDict(frozen=True)

    url: str
    name: str
    optional: bool = False

    @field_validator("name")
    @classmethod
    def _plain_name(cls, v: str) -> str:
        if not v or "/" in v or v in (".", ".."):
            raise ValueError(f"Artifact name must be a plain file name, got {v!r}")
        return v


class ProvisioningSpec(BaseModel):
    """Root desired-state model for one provisioning run."""

    model_config = ConfigDict(frozen=True)

    profile: Profile = "standalone"

    # Where the stack lives: <base_dir>/<dir_name>
    base_dir: Path = Path("/root")
    dir_name: str = "waha"

    port: int = Field(default=3000, ge=1, le=65535)
    chatwoot_port: int | None = Field(default=None, ge=1, le=65535)

    # Packages
    packages: tuple[str, ...] = ()
    docker_packages: tuple[str, ...] = ()
    docker_repo: AptRepository | None = None
    services: tuple[str, ...] = ()
    docker_group_user: str | None = None
    upgrade: bool = False

    # Firewall
    management_rule: FirewallRule = FirewallRule(app="OpenSSH")
    extra_firewall_rules: tuple[FirewallRule, ...] = ()
    ipv6: bool = False

    # Stack
    artifacts: tuple[Artifact, ...] = ()
    image: str = "devlikeapro/waha:gows"
    engine: str = "GOWS"
    timezone: str = "Asia/Kolkata"
    dashboard_username: str = "admin"
    template_overrides: dict[str, str] = Field(default_factory=dict)

    dry_run: bool = False

    @field_validator("dir_name")
    @classmethod
    def _relative_dir(cls, v: str) -> str:
        path = PurePosixPath(v)
        if not v or path.is_absolute() or ".." in path.parts or str(path) == ".":
            raise ValueError(f"--dir must be a relative path below the base directory, got {v!r}")
        return str(path)

    @model_validator(mode="after")
    def _distinct_ports(self) -> ProvisioningSpec:
        if self.chatwoot_port is not None and self.chatwoot_port == self.port:
            raise ValueError("WAHA and Chatwoot ports must differ")
        return self

    @property
    def target_dir(self) -> Path:
        return self.base_dir / self.dir_name

    @property
    def lock_path(self) -> Path:
        """Lock file beside the target: the target itself is replaced mid-run."""
        target = self.target_dir
        return target.parent / f".{target.name}.lock"

    @property
    def ports(self) -> list[int]:
        """Every host port the stack will bind."""
        ports = [self.port]
        if self.chatwoot_port is not None:
            ports.append(self.chatwoot_port)
        return ports

    @property
    def firewall_rules(self) -> list[FirewallRule]:
        """Rules to allow, management rule excluded (it is always applied first)."""
        rules = [FirewallRule(port=p) for p in self.ports]
        for rule in self.extra_firewall_rules:
            if rule not in rules:
                rules.append(rule)
        return rules
