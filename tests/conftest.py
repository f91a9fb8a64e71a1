from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker

from imagewatch.adapters.sqlalchemy import create_all_tables, start_mappers
from imagewatch.adapters.sqlalchemy.repositories import SqlAlchemyArtifactLedger
from imagewatch.domain.model import RegistryKind, RegistrySource

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    start_mappers()
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session_factory(sqlite_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=sqlite_engine, future=True, expire_on_commit=False)


@pytest.fixture
def sqlite_ledger(sqlite_session_factory: sessionmaker[Session]) -> SqlAlchemyArtifactLedger:
    return SqlAlchemyArtifactLedger(sqlite_session_factory)


@pytest.fixture
def distribution_source() -> RegistrySource:
    return RegistrySource(
        correlation_id=3,
        registry_url="registry.example.com",
        repository="team/web",
        kind=RegistryKind.DISTRIBUTION,
    )


@pytest.fixture
def ecr_source() -> RegistrySource:
    return RegistrySource(
        correlation_id=11,
        registry_url="445808685819",
        repository="devtron/html-ecr",
        kind=RegistryKind.ECR,
        region="us-east-2",
    )
