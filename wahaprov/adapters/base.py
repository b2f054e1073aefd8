"""
Adapter base — what every adapter implements.

An adapter turns an ``Action`` into a side effect on the host and
reports the outcome as a ``Receipt``. It must not raise: a missing
binary, a timeout or a non-zero exit are all failed receipts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from wahaprov.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """An action plus how to run it."""

    action: Action
    cwd: str | None = None
    dry_run: bool = False
    timeout: int = 300
    input: str | None = None        # stdin text
    env: dict[str, str] | None = None  # merged over os.environ

    @property
    def working_dir(self) -> str | None:
        return self.action.params.get("cwd", self.cwd)


class Adapter(ABC):
    """Base class for the shell and docker adapters (and test doubles)."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry key; ``Action.adapter`` refers to it."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Return ``(True, "")`` or ``(False, reason)``. Runs in dry-run too."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Run the action. Failures go in the receipt, never raised."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
