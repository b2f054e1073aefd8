"""
Deployment profiles — what each kind of run installs, fetches and templates.

    standalone   WAHA alone, one ``.env`` seeded from ``.env.example``
    chatwoot     WAHA + Chatwoot, ``.waha.env`` and ``.chatwoot.env``
    bootstrap    base packages and Docker only, no stack

The rule lists are applied in order by the template engine; later
rules see the effect of earlier ones.
"""

from __future__ import annotations

from dataclasses import dataclass

from wahaprov.core.models.result import Credentials
from wahaprov.core.models.spec import AptRepository, Artifact, ProvisioningSpec
from wahaprov.core.services.compose import WAHA_REPO, PortMap
from wahaprov.core.services.templating import (
    AppendIfAbsent,
    CommentOut,
    InsertAfter,
    Rule,
    SetValue,
    UncommentSet,
    set_or_append,
)

# ── Packages ────────────────────────────────────────────────────

BASE_PACKAGES = ("curl", "wget", "gnupg2", "lsb-release", "net-tools", "git")

DOCKER_PACKAGES = ("docker-ce", "docker-ce-cli", "containerd.io", "docker-compose-plugin")

DOCKER_REPO = AptRepository(
    name="docker",
    key_url="https://download.docker.com/linux/{os_id}/gpg",
    url="https://download.docker.com/linux/{os_id}",
)

SERVICES = ("docker",)

# ── Artifacts ───────────────────────────────────────────────────

_RAW = "https://raw.githubusercontent.com/devlikeapro/waha/refs/heads/core"

STANDALONE_ARTIFACTS = (
    Artifact(url=f"{_RAW}/docker-compose.yaml", name="docker-compose.yaml"),
    Artifact(url=f"{_RAW}/.env.example", name=".env.example", optional=True),
)

CHATWOOT_ARTIFACTS = (
    Artifact(url=f"{_RAW}/docker-compose/chatwoot/.chatwoot.env", name=".chatwoot.env"),
    Artifact(url=f"{_RAW}/docker-compose/chatwoot/.waha.env", name=".waha.env"),
    Artifact(url=f"{_RAW}/docker-compose/chatwoot/docker-compose.yaml", name="docker-compose.yaml"),
)

COMPOSE_FILE = "docker-compose.yaml"

# Container ports the upstream compose files publish on 127.0.0.1
WAHA_CONTAINER_PORT = 3000
CHATWOOT_CONTAINER_PORT = 3009
CHATWOOT_IMAGE_REPO = "chatwoot/chatwoot"


@dataclass(frozen=True)
class EnvFile:
    """One environment file to template, and where it comes from."""

    name: str
    seed_from: str | None = None  # copied to ``name`` before templating


def env_files(spec: ProvisioningSpec) -> list[EnvFile]:
    if spec.profile == "chatwoot":
        return [EnvFile(".waha.env"), EnvFile(".chatwoot.env")]
    if spec.profile == "standalone":
        return [EnvFile(".env", seed_from=".env.example")]
    return []


def default_artifacts(profile: str) -> tuple[Artifact, ...]:
    if profile == "chatwoot":
        return CHATWOOT_ARTIFACTS
    if profile == "standalone":
        return STANDALONE_ARTIFACTS
    return ()


# ── Env rules ───────────────────────────────────────────────────


def fallback_env(spec: ProvisioningSpec, creds: Credentials) -> list[str]:
    """Minimal ``.env`` written when upstream ships no ``.env.example``."""
    api_key = creds.api_key.get_secret_value()
    return [
        "# WAHA Configuration",
        f"WAHA_API_KEY={api_key}",
        f"WAHA_API_KEY_PLAIN={api_key}",
        f"WAHA_DASHBOARD_USERNAME={creds.dashboard_username}",
        f"WAHA_DASHBOARD_PASSWORD={creds.dashboard_password.get_secret_value()}",
        f"WAHA_PORT={spec.port}",
    ]


def waha_env_rules(spec: ProvisioningSpec, creds: Credentials) -> list[Rule]:
    """Rules for the WAHA environment file of either profile."""
    api_key = creds.api_key.get_secret_value()
    password = creds.dashboard_password.get_secret_value()
    username = creds.dashboard_username
    standalone = spec.profile == "standalone"

    rules: list[Rule] = [
        SetValue("WAHA_API_KEY", api_key),
        InsertAfter("WAHA_API_KEY", "WAHA_API_KEY_PLAIN", api_key),
        SetValue("WAHA_DASHBOARD_USERNAME", username),
        SetValue("WAHA_DASHBOARD_PASSWORD", password),
        SetValue("WHATSAPP_SWAGGER_USERNAME", username),
        SetValue("WHATSAPP_SWAGGER_PASSWORD", password),
    ]
    if standalone:
        rules.append(SetValue("WHATSAPP_DEFAULT_ENGINE", spec.engine))
    rules.append(CommentOut("WAHA_BASE_URL"))
    if not standalone:
        rules.append(CommentOut("WAHA_PUBLIC_URL"))
    rules.append(UncommentSet("WHATSAPP_API_PORT", str(spec.port)))
    if standalone:
        rules += [
            UncommentSet("WAHA_APPS_ENABLED", "True"),
            InsertAfter("WAHA_APPS_ENABLED", "WAHA_APPS_ON", "calls"),
            UncommentSet("REDIS_URL", "redis://redis:6379"),
        ]
    rules += [
        UncommentSet("TZ", spec.timezone),
        UncommentSet("WHATSAPP_START_SESSION", "default"),
    ]
    if standalone:
        rules.append(AppendIfAbsent("WAHA_PORT", str(spec.port)))
    for key, value in spec.template_overrides.items():
        rules += set_or_append(key, value)
    return rules


def chatwoot_env_rules(spec: ProvisioningSpec) -> list[Rule]:
    return [SetValue("FRONTEND_URL", f"http://localhost:{spec.chatwoot_port}")]


def env_rules(spec: ProvisioningSpec, env: EnvFile, creds: Credentials) -> list[Rule]:
    if env.name == ".chatwoot.env":
        return chatwoot_env_rules(spec)
    return waha_env_rules(spec, creds)


def compose_ports(spec: ProvisioningSpec) -> dict[str, PortMap]:
    """Published-port rewrites for the compose file, per service image.

    WAHA listens on the chosen port inside the container too
    (``WHATSAPP_API_PORT``); Chatwoot keeps its container port.
    """
    ports = {WAHA_REPO: {WAHA_CONTAINER_PORT: (spec.port, spec.port)}}
    if spec.chatwoot_port is not None:
        ports[CHATWOOT_IMAGE_REPO] = {
            CHATWOOT_CONTAINER_PORT: (spec.chatwoot_port, CHATWOOT_CONTAINER_PORT)
        }
    return ports
