"""
Action and Receipt — the execution contract between the command runner
and adapters.

The runner sends an ``Action`` (one external command), the adapter
answers with a ``Receipt``. Adapters report failure in the receipt;
they never raise.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ReceiptStatus = Literal["ok", "skipped", "failed"]


class Action(BaseModel):
    """One external command to run through an adapter."""

    id: str                         # e.g. "cmd-12"
    adapter: str                    # "shell" or "docker"
    argv: list[str] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)
    mutating: bool = True           # False for read-only queries

    @property
    def command(self) -> str:
        return " ".join(self.argv)


class Receipt(BaseModel):
    """Outcome of one action: exit status, captured output, timing."""

    adapter: str
    action_id: str
    status: ReceiptStatus = "ok"
    output: str = ""
    error: str | None = None
    return_code: int | None = None
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        kwargs.setdefault("return_code", 0)
        return cls(adapter=adapter, action_id=action_id, output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        """A mutating action held back by dry-run; ``reason`` becomes the output."""
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
