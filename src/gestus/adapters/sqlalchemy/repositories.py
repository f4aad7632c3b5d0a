"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite

from gestus.adapters.sqlalchemy.errors import storage_errors
from gestus.adapters.sqlalchemy.mappings import gesture_attempt_table, user_account_table
from gestus.domain.model import InternalUser, StoredAttempt

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy import ColumnElement, CursorResult, Row
    from sqlalchemy.orm import Session

    from gestus.domain.model import NaturalKey, NormalizedAttempt

log = logging.getLogger(__name__)

_ON_CONFLICT_DIALECTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}
_ON_DUPLICATE_KEY_DIALECTS = {"mysql", "mariadb"}
# written on insert, left alone when the natural key already exists
_INSERT_ONLY_COLUMNS = frozenset(
    {"external_identity", "gesture_id", "attempt_id", "gesture_name", "created_at"}
)


def _natural_key_clause(key: NaturalKey) -> ColumnElement[bool]:
    external_identity, gesture_id, attempt_id = key
    columns = gesture_attempt_table.c
    return and_(
        columns.external_identity == external_identity,
        columns.gesture_id == gesture_id,
        columns.attempt_id == attempt_id,
    )


def _to_stored(row: Row[Any]) -> StoredAttempt:
    data = row._mapping  # noqa: SLF001
    return StoredAttempt(
        id=data["id"],
        external_identity=data["external_identity"],
        internal_user_id=data["internal_user_id"],
        gesture_id=data["gesture_id"],
        attempt_id=data["attempt_id"],
        gesture_name=data["gesture_name"],
        score=data["score"],
        timestamp=data["timestamp"],
        raw_payload=data["raw_payload"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


class SqlAlchemyAttemptRepository:
    """Attempt persistence through Core statements on the unit-of-work session.

    With ``native_upsert`` the write is a single ``INSERT ... ON CONFLICT`` (or
    ``ON DUPLICATE KEY UPDATE``) statement. Otherwise, or on dialects without
    such a statement, it is an ``UPDATE`` followed by an ``INSERT`` when no row
    matched; a concurrent insert then surfaces as ``DuplicateKeyRace``.
    """

    def __init__(self, session: Session, *, native_upsert: bool = True) -> None:
        self.session = session
        self.native_upsert = native_upsert

    def upsert(self, attempt: NormalizedAttempt, *, now: datetime) -> None:
        values: dict[str, object] = {
            "external_identity": attempt.external_identity,
            "internal_user_id": attempt.internal_user_id,
            "gesture_id": attempt.gesture_id,
            "attempt_id": attempt.attempt_id,
            "gesture_name": attempt.gesture_name,
            "score": attempt.score,
            "timestamp": attempt.timestamp,
            "raw_payload": dict(attempt.raw_payload),
            "created_at": now,
            "updated_at": now,
        }
        dialect = self.session.get_bind().dialect.name
        with storage_errors(f"upsert of {attempt.composite_id}"):
            if self.native_upsert and dialect in _ON_CONFLICT_DIALECTS:
                self._upsert_on_conflict(dialect, values)
            elif self.native_upsert and dialect in _ON_DUPLICATE_KEY_DIALECTS:
                self._upsert_on_duplicate_key(values)
            else:
                self._update_or_insert(attempt, values)

    def get_by_natural_key(self, key: NaturalKey) -> StoredAttempt | None:
        stmt = select(gesture_attempt_table).where(_natural_key_clause(key))
        with storage_errors("read of attempt by natural key"):
            row = self.session.execute(stmt).one_or_none()
        return _to_stored(row) if row is not None else None

    def list_for_identity(self, external_identity: str) -> list[StoredAttempt]:
        return self._list(gesture_attempt_table.c.external_identity == external_identity)

    def list_for_user(self, user_id: int) -> list[StoredAttempt]:
        return self._list(gesture_attempt_table.c.internal_user_id == user_id)

    def _list(self, criterion: ColumnElement[bool]) -> list[StoredAttempt]:
        columns = gesture_attempt_table.c
        stmt = (
            select(gesture_attempt_table)
            .where(criterion)
            .order_by(columns.timestamp.desc(), columns.id.desc())
        )
        with storage_errors("listing of attempts"):
            rows = self.session.execute(stmt).all()
        return [_to_stored(row) for row in rows]

    def _upsert_on_conflict(self, dialect: str, values: dict[str, object]) -> None:
        stmt = _ON_CONFLICT_DIALECTS[dialect](gesture_attempt_table).values(**values)
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                gesture_attempt_table.c.external_identity,
                gesture_attempt_table.c.gesture_id,
                gesture_attempt_table.c.attempt_id,
            ],
            set_={
                "internal_user_id": func.coalesce(
                    excluded.internal_user_id, gesture_attempt_table.c.internal_user_id
                ),
                "score": excluded.score,
                "timestamp": excluded.timestamp,
                "raw_payload": excluded.raw_payload,
                "updated_at": excluded.updated_at,
            },
        )
        self.session.execute(stmt)

    def _upsert_on_duplicate_key(self, values: dict[str, object]) -> None:
        stmt = mysql.insert(gesture_attempt_table).values(**values)
        inserted = stmt.inserted
        stmt = stmt.on_duplicate_key_update(
            internal_user_id=func.coalesce(
                inserted.internal_user_id, gesture_attempt_table.c.internal_user_id
            ),
            score=inserted.score,
            timestamp=inserted.timestamp,
            raw_payload=inserted.raw_payload,
            updated_at=inserted.updated_at,
        )
        self.session.execute(stmt)

    def _update_or_insert(self, attempt: NormalizedAttempt, values: dict[str, object]) -> None:
        changes = {
            key: value
            for key, value in values.items()
            if key not in _INSERT_ONLY_COLUMNS
        }
        if attempt.internal_user_id is None:
            del changes["internal_user_id"]
        stmt = (
            update(gesture_attempt_table)
            .where(_natural_key_clause(attempt.natural_key))
            .values(**changes)
        )
        result = cast("CursorResult[Any]", self.session.execute(stmt))
        if result.rowcount:
            return
        log.debug("No row for %s yet; inserting", attempt.natural_key)
        self.session.execute(insert(gesture_attempt_table).values(**values))


class SqlAlchemyUserRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_external_uid(self, external_uid: str) -> InternalUser | None:
        stmt = select(InternalUser).where(user_account_table.c.external_uid == external_uid)
        with storage_errors("lookup of user by external uid"):
            return self.session.execute(stmt).scalar_one_or_none()

    def find_by_email(self, email: str) -> InternalUser | None:
        stmt = (
            select(InternalUser)
            .where(func.lower(user_account_table.c.email) == email.lower())
            .order_by(user_account_table.c.id)
            .limit(1)
        )
        with storage_errors("lookup of user by email"):
            return self.session.execute(stmt).scalar_one_or_none()
