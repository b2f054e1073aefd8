"""
Port availability — is a TCP/UDP port already bound on this host?

Checks by attempting to bind, which reflects the live socket table
without parsing ``ss`` output. Side-effect free: test sockets are
closed before returning.

For the wildcard host both address families are checked: docker
publishes on ``0.0.0.0`` and ``::``, and a listener bound to ``::``
with ``IPV6_V6ONLY`` does not block an IPv4 bind.
"""

from __future__ import annotations

import errno
import logging
import socket
from collections.abc import Iterable

from wahaprov.core.errors import PortInUseError

logger = logging.getLogger(__name__)

_ANY_V4 = "0.0.0.0"
_ANY_V6 = "::"


def _can_bind(kind: int, host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, kind) as sock:
        if kind == socket.SOCK_STREAM:
            # Lingering TIME_WAIT connections are not a conflict; listeners are
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def _can_bind_v6(kind: int, port: int) -> bool:
    """IPv6 wildcard check; a host without IPv6 has nothing bound there."""
    if not socket.has_ipv6:
        return True
    try:
        with socket.socket(socket.AF_INET6, kind) as sock:
            if kind == socket.SOCK_STREAM:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
            sock.bind((_ANY_V6, port))
    except OSError as e:
        return e.errno not in (errno.EADDRINUSE, errno.EACCES)
    return True


def is_port_free(port: int, host: str = _ANY_V4) -> bool:
    """Whether neither TCP nor UDP ``port`` is bound on ``host``.

    The default wildcard host also checks the IPv6 wildcard.
    """
    if not 1 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")
    free = all(
        _can_bind(kind, host, port)
        and (host != _ANY_V4 or _can_bind_v6(kind, port))
        for kind in (socket.SOCK_STREAM, socket.SOCK_DGRAM)
    )
    logger.debug("Port %d %s", port, "free" if free else "in use")
    return free


def ensure_ports_free(ports: Iterable[int], host: str = _ANY_V4) -> None:
    """Check every port and raise one ``PortInUseError`` naming all conflicts."""
    conflicts = [p for p in dict.fromkeys(ports) if not is_port_free(p, host)]
    if conflicts:
        raise PortInUseError(conflicts)
