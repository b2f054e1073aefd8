"""
Docker adapter — compose operations on a stack directory.

Uses the docker CLI (``docker compose`` plugin) — never the Docker API
directly. Command execution is delegated to the shell adapter so both
share one receipt shape.
"""

from __future__ import annotations

import logging

from wahaprov.adapters.base import Adapter, ExecutionContext
from wahaprov.adapters.shell.command import ShellCommandAdapter
from wahaprov.core.models.action import Receipt

logger = logging.getLogger(__name__)

_OPERATIONS: dict[str, list[str]] = {
    "up": ["compose", "up", "-d"],
    "config": ["compose", "config", "--quiet"],
    "version": ["compose", "version"],
}


def compose_argv(operation: str, service: str = "") -> list[str]:
    """The docker CLI invocation for a compose operation."""
    argv = ["docker", *_OPERATIONS[operation]]
    if operation == "up" and service:
        argv.append(service)
    return argv


class DockerAdapter(Adapter):
    """Docker Compose operations.

    Action params:
        operation (str): One of 'up', 'config', 'version'.
        service (str): Optional target service (for 'up').
    """

    def __init__(self, shell: ShellCommandAdapter | None = None):
        self._shell = shell or ShellCommandAdapter()

    @property
    def name(self) -> str:
        return "docker"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.action.params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"
        if operation not in _OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_OPERATIONS))}"
        if operation != "version" and not context.working_dir:
            return False, f"Operation '{operation}' needs a stack directory"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.action.params["operation"]
        argv = compose_argv(operation, context.action.params.get("service", ""))

        shell_ctx = context.model_copy(
            update={"action": context.action.model_copy(update={"argv": argv})}
        )
        receipt = self._shell.execute(shell_ctx)
        receipt.adapter = self.name
        receipt.metadata["operation"] = operation
        return receipt
