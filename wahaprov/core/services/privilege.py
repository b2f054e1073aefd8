"""Privilege guard — fail before any mutation when not running as root."""

from __future__ import annotations

import logging
import os

from wahaprov.core.errors import PrivilegeError

logger = logging.getLogger(__name__)


def ensure_privileged(euid: int | None = None) -> None:
    """Raise ``PrivilegeError`` unless the effective uid is root.

    Installing packages, editing /etc and managing the firewall all
    require uid 0. No side effects either way.
    """
    if euid is None:
        euid = os.geteuid()
    if euid != 0:
        raise PrivilegeError("This command must be run with sudo or as root.")
    logger.debug("Running as root")
