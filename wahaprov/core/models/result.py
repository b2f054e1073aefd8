"""
Credentials and ProvisioningResult — what one run produces.

Secrets are ``SecretStr`` so they never leak through ``repr()`` or a
stray log line. The only place they are revealed is the final report
(``to_dict(reveal_secrets=True)`` / the CLI summary).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr

StepStatus = Literal["ok", "skipped", "failed"]


class Credentials(BaseModel):
    """Generated access credentials for the WAHA dashboard and API."""

    api_key: SecretStr
    dashboard_username: str = "admin"
    dashboard_password: SecretStr

    def to_dict(self, reveal_secrets: bool = False) -> dict[str, str]:
        def _show(value: SecretStr) -> str:
            return value.get_secret_value() if reveal_secrets else str(value)

        return {
            "api_key": _show(self.api_key),
            "dashboard_username": self.dashboard_username,
            "dashboard_password": _show(self.dashboard_password),
        }


class StepRecord(BaseModel):
    """One entry in the step-by-step run log."""

    name: str
    status: StepStatus = "ok"
    message: str = ""
    duration_ms: int = 0


class ProvisioningResult(BaseModel):
    """Terminal output of a run: created empty, appended to, returned."""

    profile: str = "standalone"
    dry_run: bool = False
    ok: bool = False
    failed_step: str | None = None
    error: str | None = None

    target_dir: str | None = None
    host_address: str | None = None
    urls: dict[str, str] = Field(default_factory=dict)
    credentials: Credentials | None = None

    warnings: list[str] = Field(default_factory=list)
    steps: list[StepRecord] = Field(default_factory=list)
    reboot_required: bool = False

    def record(
        self,
        name: str,
        status: StepStatus = "ok",
        message: str = "",
        duration_ms: int = 0,
    ) -> StepRecord:
        entry = StepRecord(name=name, status=status, message=message, duration_ms=duration_ms)
        self.steps.append(entry)
        return entry

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def step(self, name: str) -> StepRecord | None:
        for entry in self.steps:
            if entry.name == name:
                return entry
        return None

    @property
    def completed_steps(self) -> list[str]:
        return [s.name for s in self.steps if s.status != "failed"]

    def to_dict(self, reveal_secrets: bool = False) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"credentials"})
        data["credentials"] = (
            self.credentials.to_dict(reveal_secrets) if self.credentials else None
        )
        return data
