"""
Logging configuration — set up once by the CLI before any command runs.

Console output goes to stderr; stdout is reserved for the final report.
Level precedence:

    CLI flag  >  WAHAPROV_LOG_LEVEL  >  WARNING

WAHAPROV_LOG_FILE / WAHAPROV_LOG_FILE_LEVEL add a file handler.

Every handler carries the process-wide ``SecretFilter``: once a value
is passed to ``redact()`` it is masked in every later record, on the
console and in the log file alike.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LEVEL = "WAHAPROV_LOG_LEVEL"
ENV_FILE = "WAHAPROV_LOG_FILE"
ENV_FILE_LEVEL = "WAHAPROV_LOG_FILE_LEVEL"

REDACTED = "********"

# (format, datefmt) by console level; anything above INFO is minimal
_CONSOLE_FORMATS = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_MINIMAL_FORMAT = ("%(levelname)s: %(message)s", None)
_FILE_FORMAT = ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%Y-%m-%d %H:%M:%S")

_NOISY_LOGGERS = ("urllib3", "urllib.request")


class SecretFilter(logging.Filter):
    """Replaces registered secret values in the rendered message."""

    def __init__(self) -> None:
        super().__init__()
        self._secrets: set[str] = set()

    def add(self, *values: str) -> None:
        self._secrets.update(v for v in values if v)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        # longest first, so a secret containing another is masked whole
        for secret in sorted(self._secrets, key=len, reverse=True):
            masked = masked.replace(secret, REDACTED)
        if masked != message:
            record.msg, record.args = masked, None
        return True


_secret_filter = SecretFilter()


def redact(*values: str) -> None:
    """Mask ``values`` in every log record from now on."""
    _secret_filter.add(*values)


def resolve_level(verbose: bool = False, quiet: bool = False, debug: bool = False) -> str:
    """Console level from CLI flags, falling back to the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LEVEL, "WARNING")


def _prepare(handler: logging.Handler, level: int, fmt: tuple[str, str | None]) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt[0], datefmt=fmt[1]))
    handler.addFilter(_secret_filter)
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root logger's handlers with wahaprov's.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path; always written in full format.
        log_file_level: File level; defaults to ``level``.
        quiet_third_party: Hold library loggers at WARNING unless at DEBUG.
    """
    console_level = _parse_level(level)
    handlers = [
        _prepare(
            logging.StreamHandler(sys.stderr),
            console_level,
            _CONSOLE_FORMATS.get(console_level, _MINIMAL_FORMAT),
        )
    ]
    if log_file:
        file_level = _parse_level(log_file_level or level)
        handlers.append(
            _prepare(logging.FileHandler(log_file, encoding="utf-8"), file_level, _FILE_FORMAT)
        )

    root = logging.getLogger()
    root.handlers[:] = handlers
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
