"""SQLAlchemy mapping metadata for the artifact ledger."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Index,
    Integer,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    orm,
)
from sqlalchemy.orm import configure_mappers

from imagewatch.domain.model import ArtifactRecord

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

ci_artifact_table = Table(
    "ci_artifact",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("image", String(1024), nullable=True),
    Column("image_digest", String(255), nullable=False),
    Column("external_ci_pipeline_id", Integer, nullable=False),
    Column("created_at", UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)),
    UniqueConstraint(
        "image_digest", "external_ci_pipeline_id", name="uq_ci_artifact_digest_pipeline"
    ),
    Index("ix_ci_artifact_external_ci_pipeline_id", "external_ci_pipeline_id"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the ledger model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(
        ArtifactRecord,
        ci_artifact_table,
        properties={
            "digest": ci_artifact_table.c.image_digest,
            "correlation_id": ci_artifact_table.c.external_ci_pipeline_id,
        },
    )

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
