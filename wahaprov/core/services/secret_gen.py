"""
Secret generator — random credentials from the OS CSPRNG.

Uses :mod:`secrets` only. If the OS cannot supply entropy the call
fails with ``EntropyUnavailableError``; there is no fallback to
:mod:`random`.
"""

from __future__ import annotations

import logging
import secrets
import string

from pydantic import SecretStr

from wahaprov.core.errors import EntropyUnavailableError
from wahaprov.core.models.result import Credentials

logger = logging.getLogger(__name__)

ALPHANUMERIC = string.ascii_letters + string.digits

API_KEY_LENGTH = 48
PASSWORD_LENGTH = 24


def generate(length: int, alphabet: str = ALPHANUMERIC) -> str:
    """Return ``length`` characters drawn uniformly from ``alphabet``.

    Raises:
        ValueError: ``length`` < 1 or ``alphabet`` empty.
        EntropyUnavailableError: the OS random source failed.
    """
    if length < 1:
        raise ValueError(f"Secret length must be at least 1, got {length}")
    if not alphabet:
        raise ValueError("Secret alphabet must not be empty")

    try:
        return "".join(secrets.choice(alphabet) for _ in range(length))
    except (OSError, NotImplementedError) as e:
        raise EntropyUnavailableError(f"OS random source unavailable: {e}") from e


def generate_credentials(username: str = "admin") -> Credentials:
    """Fresh API key and dashboard password for one run."""
    creds = Credentials(
        api_key=SecretStr(generate(API_KEY_LENGTH)),
        dashboard_username=username,
        dashboard_password=SecretStr(generate(PASSWORD_LENGTH)),
    )
    logger.info("Generated API key and dashboard credentials for '%s'", username)
    return creds
