"""SQLAlchemy-backed storage lifecycle and units of work for attempt reconciliation."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import create_engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from gestus.adapters.sqlalchemy.errors import storage_errors
from gestus.adapters.sqlalchemy.mappings import start_mappers
from gestus.adapters.sqlalchemy.migrations import upgrade_head
from gestus.adapters.sqlalchemy.repositories import (
    SqlAlchemyAttemptRepository,
    SqlAlchemyUserRepository,
)
from gestus.config.storage import DatabaseConfig, get_database_config
from gestus.domain.ports.unit_of_work import AttemptRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is requested before startup."""


def engine_options(config: DatabaseConfig) -> dict[str, Any]:
    """Keyword arguments for ``create_engine`` that bound every blocking call.

    SQLite gets a busy timeout. PostgreSQL and MySQL get connect and
    statement/read timeouts on top of the pool checkout timeout.
    """

    backend = make_url(config.uri).get_backend_name()
    if backend == "sqlite":
        return {
            "connect_args": {"timeout": config.timeout_seconds, "check_same_thread": False},
        }
    seconds = max(1, math.ceil(config.timeout_seconds))
    connect_args: dict[str, object] = {}
    if backend == "postgresql":
        milliseconds = int(config.timeout_seconds * 1000)
        connect_args = {
            "connect_timeout": seconds,
            "options": f"-c statement_timeout={milliseconds}",
        }
    elif backend in {"mysql", "mariadb"}:
        connect_args = {
            "connect_timeout": seconds,
            "read_timeout": seconds,
            "write_timeout": seconds,
        }
    return {
        "pool_pre_ping": True,
        "pool_timeout": config.timeout_seconds,
        "connect_args": connect_args,
    }


def build_engine(config: DatabaseConfig) -> Engine:
    """Create an engine whose blocking calls are bounded by ``config.timeout_seconds``."""

    return create_engine(config.uri, **engine_options(config))


class SqlAlchemyStorage:
    """Owns the engine and session factory of one relational store."""

    def __init__(
        self,
        *,
        engine: Engine | None = None,
        config: DatabaseConfig | None = None,
    ) -> None:
        self.config = config or (
            DatabaseConfig(uri=str(engine.url)) if engine is not None else get_database_config()
        )
        self._engine = engine
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @property
    def is_started(self) -> bool:
        return self._session_factory is not None

    def startup(self) -> None:
        """Configure mappers, migrate the schema and prepare the session factory."""

        if self.is_started:
            raise StartupError("Storage already started")
        engine = self._engine or build_engine(self.config)
        start_mappers()
        with storage_errors("schema migration"):
            upgrade_head(engine=engine)
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        log.info("Relational store ready (%s)", engine.url.render_as_string(hide_password=True))

    def unit_of_work(self) -> SqlAlchemyUnitOfWork:
        if self._session_factory is None:
            raise StartupError(
                "Storage not started. Call SqlAlchemyStorage.startup() before "
                "requesting a unit of work."
            )
        return SqlAlchemyUnitOfWork(
            self._session_factory,
            native_upsert=self.config.native_upsert,
        )

    def shutdown(self) -> None:
        """Dispose the engine and forget the session factory."""

        if self._engine is not None:
            self._engine.dispose()
        self._session_factory = None


class SqlAlchemyUnitOfWork:
    """One transaction around the attempt and user repositories."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        native_upsert: bool = True,
    ) -> None:
        self.session_factory = session_factory
        self.native_upsert = native_upsert
        self._session: Session | None = None
        self._repositories: AttemptRepositories | None = None

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work used outside of its context")
        return self._session

    @property
    def repositories(self) -> AttemptRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work used outside of its context")
        return self._repositories

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        self._session = self.session_factory()
        self._repositories = AttemptRepositories(
            attempts=SqlAlchemyAttemptRepository(self._session, native_upsert=self.native_upsert),
            users=SqlAlchemyUserRepository(self._session),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        self.session.close()
        self._session = None
        self._repositories = None
        return False

    def commit(self) -> None:
        with storage_errors("commit"):
            self.session.commit()

    def rollback(self) -> None:
        with storage_errors("rollback"):
            self.session.rollback()
