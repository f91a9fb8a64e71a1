"""Port for the persisted artifact ledger."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Collection

    from imagewatch.domain.model import ArtifactRecord


@runtime_checkable
class ArtifactLedger(Protocol):
    """Read access to artifacts already surfaced downstream, plus an append path."""

    def existing_digests(self, digests: Collection[str], correlation_id: int) -> set[str]:
        """Return the subset of ``digests`` already recorded for ``correlation_id``."""
        ...

    def add(self, record: ArtifactRecord) -> None: ...
