"""
Mock adapter — records actions instead of running them.

Succeeds by default. Responses can be configured per argv prefix, e.g.
``("ufw", "status")``; when several prefixes match, the longest wins.
"""

from __future__ import annotations

from collections.abc import Sequence

from wahaprov.adapters.base import Adapter, ExecutionContext
from wahaprov.core.models.action import Receipt


class MockAdapter(Adapter):
    """Test double for the shell or docker adapter."""

    def __init__(self, adapter_name: str = "shell", default_output: str = ""):
        self._name = adapter_name
        self._default_output = default_output
        self._responses: dict[tuple[str, ...], Receipt] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def commands(self) -> list[list[str]]:
        """argv of every executed action, in order."""
        return [ctx.action.argv for ctx in self._call_log]

    def set_response(self, prefix: Sequence[str], receipt: Receipt) -> None:
        self._responses[tuple(prefix)] = receipt

    def set_output(self, prefix: Sequence[str], output: str) -> None:
        self.set_response(prefix, Receipt.success(self._name, "", output))

    def set_failure(self, prefix: Sequence[str], error: str = "Mock failure", return_code: int = 1) -> None:
        self.set_response(prefix, Receipt.failure(self._name, "", error, return_code=return_code))

    def response_for(self, context: ExecutionContext) -> Receipt | None:
        """The configured response for this action, longest prefix first."""
        argv = tuple(context.action.argv)
        matches = [p for p in self._responses if argv[: len(p)] == p]
        if not matches:
            return None
        best = max(matches, key=len)
        return self._responses[best].model_copy(update={"action_id": context.action.id})

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        configured = self.response_for(context)
        if configured is not None:
            return configured
        return Receipt.success(
            self._name, context.action.id, self._default_output, metadata={"mock": True}
        )

    def reset(self) -> None:
        self._call_log.clear()
        self._responses.clear()
