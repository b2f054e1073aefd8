"""
Configuration loader — builds the ProvisioningSpec for one run.

Layers, lowest to highest precedence:

    profile defaults  <  YAML config file (--config)  <  CLI flags

The YAML file is optional. It reads with ``yaml.safe_load`` and must be
a mapping of ProvisioningSpec fields; unknown keys are rejected so a
typo does not silently fall back to a default.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from wahaprov.core.config import profiles
from wahaprov.core.errors import ConfigError
from wahaprov.core.models.spec import ProvisioningSpec

logger = logging.getLogger(__name__)

# Keys a config file may set. Profile and dry-run come from the command line.
CONFIG_KEYS = frozenset({
    "base_dir",
    "dir_name",
    "port",
    "chatwoot_port",
    "packages",
    "docker_packages",
    "docker_repo",
    "services",
    "docker_group_user",
    "upgrade",
    "management_rule",
    "extra_firewall_rules",
    "ipv6",
    "artifacts",
    "image",
    "engine",
    "timezone",
    "dashboard_username",
    "template_overrides",
})


def profile_defaults(profile: str) -> dict[str, Any]:
    """The built-in desired state of a profile."""
    defaults: dict[str, Any] = {
        "profile": profile,
        "packages": profiles.BASE_PACKAGES,
        "docker_packages": profiles.DOCKER_PACKAGES,
        "docker_repo": profiles.DOCKER_REPO,
        "services": profiles.SERVICES,
        "artifacts": profiles.default_artifacts(profile),
    }
    if profile == "bootstrap":
        defaults["upgrade"] = True
    return defaults


def load_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML overrides file.

    Raises:
        ConfigError: missing, unreadable, not YAML, not a mapping, or
            containing unknown keys.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config overrides from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    unknown = sorted(str(k) for k in data if k not in CONFIG_KEYS)
    if unknown:
        raise ConfigError(f"Unknown key(s) in {path}: {', '.join(unknown)}")
    return data


def build_spec(
    profile: str,
    overrides: dict[str, Any] | None = None,
    config_path: Path | None = None,
) -> ProvisioningSpec:
    """Merge defaults, config file and CLI overrides into a validated spec.

    ``None`` values in ``overrides`` mean "flag not given" and are ignored.

    Raises:
        ConfigError: the merged settings do not validate.
    """
    data = profile_defaults(profile)
    if config_path is not None:
        data.update(load_config_file(config_path))
    data.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        spec = ProvisioningSpec.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid provisioning configuration: {_describe(e)}") from e

    logger.info(
        "Provisioning spec: profile=%s target=%s ports=%s",
        spec.profile,
        spec.target_dir,
        spec.ports,
    )
    return spec


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        msg = err["msg"].removeprefix("Value error, ")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)
