"""Credential lookup from the process environment."""

from __future__ import annotations

import os
import re
from logging import getLogger
from typing import TYPE_CHECKING

from imagewatch.domain.model import RegistryCredentials

if TYPE_CHECKING:
    from collections.abc import Mapping

log = getLogger(__name__)

_NON_ALNUM = re.compile(r"[^A-Z0-9]+")


def env_prefix(reference: str) -> str:
    """Normalise a credentials reference into an environment variable prefix."""

    return _NON_ALNUM.sub("_", reference.strip().upper()).strip("_")


class EnvCredentialProvider:
    """Resolve ``<REF>_USERNAME`` / ``<REF>_PASSWORD`` pairs on every call.

    Values are read at call time, so rotated secrets are picked up on the next
    pass. A reference without both variables set means anonymous access.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def __call__(self, reference: str | None) -> RegistryCredentials | None:
        if not reference:
            return None
        prefix = env_prefix(reference)
        username = self._environ.get(f"{prefix}_USERNAME", "").strip()
        password = self._environ.get(f"{prefix}_PASSWORD", "").strip()
        if not username or not password:
            log.warning(
                f"Credentials reference {reference!r} has no {prefix}_USERNAME/"
                f"{prefix}_PASSWORD pair; falling back to anonymous access"
            )
            return None
        return RegistryCredentials(username=username, password=password)
