"""
Adapter registry — dispatches actions to adapters by name.

Services never hold adapters. They go through the command runner,
which hands every ``Action`` to ``AdapterRegistry.execute_action``.
Dry-run is enforced here, in one place: mutating actions are validated
and then answered with a skipped receipt; read-only actions always run.
"""

from __future__ import annotations

import logging
import time

from wahaprov.adapters.base import Adapter, ExecutionContext
from wahaprov.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Name → adapter map plus the dispatch loop."""

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        """Register an adapter, replacing any with the same name."""
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter: %s", adapter.name)
        self._adapters[adapter.name] = adapter
        logger.debug("Registered adapter: %s", adapter.name)

    @property
    def names(self) -> list[str]:
        return list(self._adapters)

    def execute_action(
        self,
        action: Action,
        *,
        cwd: str | None = None,
        dry_run: bool = False,
        timeout: int = 300,
        input: str | None = None,
        env: dict[str, str] | None = None,
    ) -> Receipt:
        """Validate and run ``action``. Never raises.

        Unknown adapters, failed validation and adapter crashes all come
        back as failed receipts.
        """
        start = time.monotonic()
        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                action.adapter, action.id, f"No adapter registered for '{action.adapter}'"
            )

        context = ExecutionContext(
            action=action, cwd=cwd, dry_run=dry_run, timeout=timeout, input=input, env=env
        )
        try:
            valid, problem = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(action.adapter, action.id, f"Validation error: {e}")
        if not valid:
            return Receipt.failure(action.adapter, action.id, f"Validation failed: {problem}")

        if dry_run and action.mutating:
            return Receipt.skip(
                action.adapter,
                action.id,
                f"[dry-run] would run: {action.command or action.params}",
                metadata={"dry_run": True},
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised on '%s': %s", action.adapter, action.command, e)
            receipt = Receipt.failure(action.adapter, action.id, f"Unexpected error: {e}")

        receipt.duration_ms = int((time.monotonic() - start) * 1000)
        return receipt
