"""Artifact ledger backed by SQLAlchemy sessions."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from imagewatch.adapters.sqlalchemy.mappings import ci_artifact_table
from imagewatch.domain.errors import LedgerQueryError

if TYPE_CHECKING:
    from collections.abc import Collection

    from sqlalchemy.orm import Session, sessionmaker

    from imagewatch.domain.model import ArtifactRecord

log = getLogger(__name__)


class SqlAlchemyArtifactLedger:
    """Ledger over the ``ci_artifact`` table.

    Each call opens its own short-lived session, so one ledger instance can be
    shared by sources reconciled on worker threads.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def existing_digests(self, digests: Collection[str], correlation_id: int) -> set[str]:
        if not digests:
            return set()
        stmt = (
            select(ci_artifact_table.c.image_digest)
            .where(ci_artifact_table.c.image_digest.in_(list(digests)))
            .where(ci_artifact_table.c.external_ci_pipeline_id == correlation_id)
        )
        try:
            with self.session_factory() as session:
                return set(session.execute(stmt).scalars())
        except SQLAlchemyError as exc:
            raise LedgerQueryError(
                f"Ledger lookup of {len(digests)} digest(s) failed: {exc}",
                correlation_id=correlation_id,
            ) from exc

    def add(self, record: ArtifactRecord) -> None:
        try:
            with self.session_factory() as session, session.begin():
                session.add(record)
        except IntegrityError:
            log.debug(
                f"Artifact {record.digest} already recorded for "
                f"correlation_id={record.correlation_id}"
            )
        except SQLAlchemyError as exc:
            raise LedgerQueryError(
                f"Recording artifact {record.digest} failed: {exc}",
                correlation_id=record.correlation_id,
            ) from exc


if TYPE_CHECKING:
    from imagewatch.domain.ports.ledger import ArtifactLedger

    def _ledger_check(session_factory: sessionmaker[Session]) -> ArtifactLedger:
        return SqlAlchemyArtifactLedger(session_factory)
