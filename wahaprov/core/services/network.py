"""
Network helpers — HTTP downloads and public address resolution.

Uses ``urllib.request`` (no third-party HTTP client). ``file://`` URLs
work too, which lets artifact sources point at a local mirror.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import urllib.error
import urllib.request

logger = logging.getLogger(__name__)

USER_AGENT = "wahaprov/0.1"

# Tried in order; each returns the caller's public IP as plain text
ADDRESS_ENDPOINTS = (
    "https://ifconfig.me/ip",
    "https://icanhazip.com",
)


class DownloadError(Exception):
    """An HTTP/file download failed. ``status`` is the HTTP code when known."""

    def __init__(self, url: str, reason: str, status: int | None = None):
        self.url = url
        self.status = status
        super().__init__(f"{url}: {reason}")


def http_get(url: str, timeout: int = 30) -> bytes:
    """Fetch ``url`` and return the body.

    Raises:
        DownloadError: on any HTTP, network or file error.
    """
    try:
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.read()
    except urllib.error.HTTPError as e:
        raise DownloadError(url, f"HTTP {e.code} {e.reason}", status=e.code) from e
    except urllib.error.URLError as e:
        # file:// misses surface as URLError wrapping FileNotFoundError
        status = 404 if isinstance(e.reason, FileNotFoundError) else None
        raise DownloadError(url, str(e.reason), status=status) from e
    except (OSError, ValueError) as e:
        raise DownloadError(url, str(e)) from e


def format_host(address: str) -> str:
    """Bracket IPv6 literals so they can sit in front of ``:port``."""
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return address
    return f"[{ip}]" if ip.version == 6 else str(ip)


def _local_address() -> str:
    """Source address the kernel would use for outbound traffic."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            # UDP connect sends nothing; it only selects a route
            sock.connect(("192.0.2.1", 80))
            return sock.getsockname()[0]
        except OSError:
            return "127.0.0.1"


def resolve_public_address(timeout: int = 5) -> str:
    """The host's public IP, URL-ready (IPv6 bracketed).

    Falls back to the local outbound address when no endpoint answers.
    """
    for url in ADDRESS_ENDPOINTS:
        try:
            text = http_get(url, timeout=timeout).decode("ascii", "replace").strip()
            ipaddress.ip_address(text)
        except (DownloadError, ValueError) as e:
            logger.debug("Address lookup via %s failed: %s", url, e)
            continue
        return format_host(text)

    address = _local_address()
    logger.warning("Could not resolve public IP; using local address %s", address)
    return format_host(address)
