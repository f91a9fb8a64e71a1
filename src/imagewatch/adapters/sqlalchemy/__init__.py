"""SQLAlchemy adapter package for the artifact ledger."""

from __future__ import annotations

from .mappings import ci_artifact_table, create_all_tables, mapper_registry, start_mappers
from .repositories import SqlAlchemyArtifactLedger
from .session import StartupError, artifact_ledger, is_started, shutdown, startup

__all__ = [
    "SqlAlchemyArtifactLedger",
    "StartupError",
    "artifact_ledger",
    "ci_artifact_table",
    "create_all_tables",
    "is_started",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
