"""
Command runner — the single place services execute external commands.

Every command goes through the adapter registry as an ``Action`` and
comes back as a ``Receipt``. ``run()`` turns a failed receipt into an
``ExternalCommandError``; ``probe()`` never raises and is used for
read-only queries of live host state.

Dry-run: mutating commands are not executed. Read-only commands always
execute, so a dry run still reports what the host actually looks like.
"""

from __future__ import annotations

import itertools
import logging
import shutil
from collections.abc import Callable, Sequence

from wahaprov.adapters.containers.docker import DockerAdapter, compose_argv
from wahaprov.adapters.registry import AdapterRegistry
from wahaprov.adapters.shell.command import ShellCommandAdapter
from wahaprov.core.errors import ExternalCommandError
from wahaprov.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def default_registry() -> AdapterRegistry:
    """A registry wired to the real host."""
    registry = AdapterRegistry()
    shell = ShellCommandAdapter()
    registry.register(shell)
    registry.register(DockerAdapter(shell))
    return registry


class CommandRunner:
    """Executes commands through the adapter registry.

    Args:
        registry: Adapter registry (default: real shell + docker adapters).
        dry_run: Hold back mutating commands.
        which: Tool lookup, ``shutil.which`` by default.
    """

    def __init__(
        self,
        registry: AdapterRegistry | None = None,
        *,
        dry_run: bool = False,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self._registry = registry or default_registry()
        self._dry_run = dry_run
        self._which = which
        self._ids = itertools.count(1)

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def which(self, tool: str) -> bool:
        """Whether ``tool`` is on PATH."""
        return self._which(tool) is not None

    def run(
        self,
        argv: Sequence[str],
        *,
        mutating: bool = True,
        input: str | None = None,
        cwd: str | None = None,
        timeout: int = 300,
        env: dict[str, str] | None = None,
    ) -> Receipt:
        """Run a command; raise ``ExternalCommandError`` if it fails."""
        receipt = self._dispatch(
            Action(id=self._next_id(), adapter="shell", argv=list(argv), mutating=mutating),
            cwd=cwd,
            timeout=timeout,
            input=input,
            env=env,
        )
        if receipt.failed:
            raise ExternalCommandError(list(argv), receipt.return_code, receipt.error or "")
        return receipt

    def probe(
        self,
        argv: Sequence[str],
        *,
        cwd: str | None = None,
        timeout: int = 30,
    ) -> Receipt:
        """Run a read-only command and return its receipt, failed or not."""
        return self._dispatch(
            Action(id=self._next_id(), adapter="shell", argv=list(argv), mutating=False),
            cwd=cwd,
            timeout=timeout,
        )

    def apt(self, *args: str, timeout: int = 900) -> Receipt:
        """Run ``apt-get`` non-interactively."""
        return self.run(["apt-get", *args], env=_APT_ENV, timeout=timeout)

    def compose(
        self,
        operation: str,
        cwd: str,
        *,
        mutating: bool = True,
        timeout: int = 900,
    ) -> Receipt:
        """Run a ``docker compose`` operation in ``cwd``; raise on failure."""
        argv = compose_argv(operation)
        receipt = self._dispatch(
            Action(
                id=self._next_id(),
                adapter="docker",
                argv=argv,
                params={"operation": operation},
                mutating=mutating,
            ),
            cwd=cwd,
            timeout=timeout,
        )
        if receipt.failed:
            raise ExternalCommandError(argv, receipt.return_code, receipt.error or "")
        return receipt

    # ── Internals ───────────────────────────────────────────────

    def _next_id(self) -> str:
        return f"cmd-{next(self._ids)}"

    def _dispatch(self, action: Action, **kwargs) -> Receipt:
        receipt = self._registry.execute_action(action, dry_run=self._dry_run, **kwargs)
        if receipt.status == "skipped":
            logger.info("[dry-run] would run: %s", action.command)
        elif receipt.failed and action.mutating:
            logger.debug("✗ %s → exit %s", action.command, receipt.return_code)
        else:
            logger.debug("✓ %s", action.command)
        return receipt
