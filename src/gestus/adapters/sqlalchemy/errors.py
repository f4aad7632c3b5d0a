"""Translation of SQLAlchemy exceptions into the sync error taxonomy."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Final

from sqlalchemy import exc as sa_exc

from gestus.domain.errors import DuplicateKeyRace, ReconciliationFailure, StorageUnavailable

if TYPE_CHECKING:
    from collections.abc import Iterator

_UNAVAILABLE = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
)

_UNIQUE_SQLSTATE: Final[str] = "23505"
_MYSQL_DUPLICATE_ENTRY: Final[int] = 1062
_SQLITE_UNIQUE_ERRORS: Final[frozenset[str]] = frozenset(
    {"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"}
)
_UNIQUE_MESSAGES: Final[tuple[str, ...]] = (
    "unique constraint",
    "duplicate entry",
    "duplicate key",
)


def is_unique_violation(error: sa_exc.IntegrityError) -> bool:
    """Tell unique-key collisions apart from foreign-key, NOT NULL and CHECK failures."""

    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is not None:
        return sqlstate == _UNIQUE_SQLSTATE
    sqlite_name = getattr(orig, "sqlite_errorname", None)
    if sqlite_name is not None:
        return sqlite_name in _SQLITE_UNIQUE_ERRORS
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return args[0] == _MYSQL_DUPLICATE_ENTRY
    message = str(orig).lower()
    return any(marker in message for marker in _UNIQUE_MESSAGES)


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sa_exc.IntegrityError as exc:
        if is_unique_violation(exc):
            raise DuplicateKeyRace(f"{action}: {exc.orig}") from exc
        raise ReconciliationFailure(f"{action} violates a constraint: {exc.orig}") from exc
    except _UNAVAILABLE as exc:
        raise StorageUnavailable(f"{action}: {exc}") from exc
    except sa_exc.SQLAlchemyError as exc:
        raise ReconciliationFailure(f"{action}: {exc}") from exc
