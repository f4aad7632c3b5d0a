"""SQLAlchemy adapter package for gestus."""

from __future__ import annotations

from .mappings import mapper_registry, start_mappers
from .repositories import SqlAlchemyAttemptRepository, SqlAlchemyUserRepository
from .unit_of_work import (
    SqlAlchemyStorage,
    SqlAlchemyUnitOfWork,
    StartupError,
    build_engine,
)

__all__ = [
    "SqlAlchemyAttemptRepository",
    "SqlAlchemyStorage",
    "SqlAlchemyUnitOfWork",
    "SqlAlchemyUserRepository",
    "StartupError",
    "build_engine",
    "mapper_registry",
    "start_mappers",
]
