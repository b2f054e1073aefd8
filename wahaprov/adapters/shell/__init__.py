"""Shell adapter — runs external commands as argv, never through a shell."""

from wahaprov.adapters.shell.command import ShellCommandAdapter

__all__ = ["ShellCommandAdapter"]
