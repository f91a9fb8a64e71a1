"""Port for pluggable registry credential injection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from imagewatch.domain.model import RegistryCredentials


@runtime_checkable
class CredentialProvider(Protocol):
    def __call__(self, reference: str | None) -> RegistryCredentials | None:
        """Return credentials for ``reference`` or ``None`` for anonymous access."""
        ...
