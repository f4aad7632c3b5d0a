"""SQLAlchemy mapping metadata for attempts and the users they link to."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from functools import cache
from typing import Any, cast

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    orm,
)

from gestus.domain.model import InternalUser, UserRole

log = logging.getLogger(__name__)

NATURAL_KEY_CONSTRAINT = "uq_gesture_attempt_natural_key"
NATURAL_KEY_COLUMNS = ("external_identity", "gesture_id", "attempt_id")


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


class JSONPayload(TypeDecorator[Mapping[str, object]]):
    """Raw source payload stored as JSON text."""

    impl = Text
    cache_ok = True

    def process_bind_param(
        self, value: Mapping[str, object] | None, dialect: Dialect
    ) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(dict(value), sort_keys=True, default=str)

    def process_result_value(
        self, value: str | None, dialect: Dialect
    ) -> Mapping[str, object] | None:
        _ = dialect
        if value is None:
            return None
        loaded = json.loads(value)
        if not isinstance(loaded, dict):
            return None
        return cast(dict[str, Any], loaded)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

user_account_table = Table(
    "user_account",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=True, unique=True),
    Column("role", Enum(UserRole, native_enum=False), nullable=False, default=UserRole.STUDENT),
    Column("external_uid", String(128), nullable=True, unique=True),
    Column(
        "parent_id",
        Integer,
        ForeignKey("user_account.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("created_at", UTCDateTime(), nullable=True),
)

gesture_attempt_table = Table(
    "gesture_attempt",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("external_identity", String(128), nullable=False),
    Column(
        "internal_user_id",
        Integer,
        ForeignKey("user_account.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("gesture_id", String(128), nullable=False),
    Column("attempt_id", String(128), nullable=False),
    Column("gesture_name", String(255), nullable=False),
    Column("score", Integer, nullable=False),
    Column("timestamp", UTCDateTime(), nullable=False),
    Column("raw_payload", JSONPayload(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
    UniqueConstraint(*NATURAL_KEY_COLUMNS, name=NATURAL_KEY_CONSTRAINT),
    Index("ix_gesture_attempt_internal_user_id", "internal_user_id"),
    Index("ix_gesture_attempt_timestamp", "timestamp"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model.

    Attempts are read and written through Core statements; only users are
    mapped as entities.
    """

    log.info("Starting SQLAlchemy mappers")
    mapper_registry.map_imperatively(InternalUser, user_account_table)
    return mapper_registry
