"""Remove digests the ledger already knows for a correlation id."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from imagewatch.domain.errors import LedgerQueryError

if TYPE_CHECKING:
    from imagewatch.domain.model import DigestTagMap
    from imagewatch.domain.ports.ledger import ArtifactLedger

log = getLogger(__name__)


def filter_known(
    digest_tag_map: DigestTagMap,
    correlation_id: int,
    ledger: ArtifactLedger,
) -> DigestTagMap:
    """Return ``digest_tag_map`` minus digests recorded for ``correlation_id``.

    The input is left untouched and the ledger is only read. Any ledger failure
    is raised as ``LedgerQueryError`` because notifying without this check could
    announce an artifact twice.
    """

    if not digest_tag_map:
        return {}

    try:
        known = ledger.existing_digests(list(digest_tag_map), correlation_id)
    except LedgerQueryError:
        raise
    except Exception as exc:
        raise LedgerQueryError(
            f"Artifact ledger query failed: {exc}", correlation_id=correlation_id
        ) from exc

    fresh = {digest: tag for digest, tag in digest_tag_map.items() if digest not in known}
    log.debug(
        f"Ledger filter for correlation_id={correlation_id}: "
        f"candidates={len(digest_tag_map)}, known={len(digest_tag_map) - len(fresh)}, "
        f"new={len(fresh)}"
    )
    return fresh
