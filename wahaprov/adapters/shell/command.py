"""
Shell command adapter — execute external commands.

This is the most fundamental adapter: it runs an argv list (never
through a shell) and captures its output and exit status.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from pathlib import Path

from wahaprov.adapters.base import Adapter, ExecutionContext
from wahaprov.core.models.action import Receipt

logger = logging.getLogger(__name__)

# Output kept on receipts is tail-truncated to this many characters
_MAX_OUTPUT = 4000


class ShellCommandAdapter(Adapter):
    """Execute commands and capture output.

    Action fields:
        argv (list[str]): The command and its arguments.
    Context:
        cwd, timeout, input (stdin text), env (extra variables).
    """

    @property
    def name(self) -> str:
        return "shell"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.action.argv:
            return False, "Missing required field: 'argv'"

        cwd = context.working_dir
        if cwd and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        argv = context.action.argv
        command = context.action.command
        timeout = context.timeout

        env = None
        if context.env:
            env = os.environ.copy()
            env.update(context.env)

        logger.debug("Executing: %s (cwd=%s)", command, context.working_dir)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                cwd=context.working_dir,
                capture_output=True,
                text=True,
                timeout=timeout,
                input=context.input,
                env=env,
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command not found: {argv[0]}",
                return_code=127,
                metadata={"command": command},
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command timed out after {timeout}s",
                metadata={"command": command, "timeout": timeout},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"command": command},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout.strip()[-_MAX_OUTPUT:]
        stderr = result.stderr.strip()[-_MAX_OUTPUT:]

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                duration_ms=elapsed_ms,
                return_code=0,
                metadata={"command": command, "stderr": stderr},
            )

        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=stderr or f"Command exited with code {result.returncode}",
            output=output,
            duration_ms=elapsed_ms,
            return_code=result.returncode,
            metadata={"command": command},
        )
