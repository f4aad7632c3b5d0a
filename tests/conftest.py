from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker

from gestus.adapters.sqlalchemy import SqlAlchemyStorage, start_mappers
from gestus.adapters.sqlalchemy.migrations import upgrade_head
from gestus.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork
from gestus.config.storage import DatabaseConfig

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    start_mappers()
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session_factory = sessionmaker(bind=sqlite_engine, future=True)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sqlite_storage() -> Iterator[SqlAlchemyStorage]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    storage = SqlAlchemyStorage(
        engine=engine,
        config=DatabaseConfig(uri="sqlite+pysqlite:///:memory:"),
    )
    storage.startup()
    try:
        yield storage
    finally:
        storage.shutdown()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_storage: SqlAlchemyStorage,
) -> Callable[[], SqlAlchemyUnitOfWork]:
    return sqlite_storage.unit_of_work
