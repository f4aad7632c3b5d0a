"""Application entry points wiring the adapters to the reconciliation core.

Every service returns a JSON-serializable dictionary. Services accept an
already started ``SqlAlchemyStorage``; without one they build a storage from
the environment and shut it down again before returning.
"""

from __future__ import annotations

from contextlib import contextmanager
from logging import getLogger
from typing import TYPE_CHECKING

from gestus.adapters.firebase import FirebaseAttemptSource
from gestus.adapters.sqlalchemy import SqlAlchemyStorage
from gestus.config import get_sync_config
from gestus.domain.history import summarize_attempts
from gestus.domain.identity import IdentityResolver
from gestus.domain.reconciliation import ReconciliationEngine
from gestus.domain.sync import SyncOrchestrator

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine

    from gestus.config import SyncConfig
    from gestus.domain.ports.fetching import AttemptSource
    from gestus.domain.sync import StopPredicate

log = getLogger(__name__)


def build_storage(*, engine: Engine | None = None) -> SqlAlchemyStorage:
    """Create and start the relational storage (runs pending migrations)."""

    storage = SqlAlchemyStorage(engine=engine)
    storage.startup()
    return storage


def build_orchestrator(
    storage: SqlAlchemyStorage,
    source: AttemptSource,
    *,
    sync_config: SyncConfig | None = None,
) -> SyncOrchestrator:
    config = sync_config or get_sync_config()
    return SyncOrchestrator(
        source=source,
        resolver=IdentityResolver(storage.unit_of_work),
        engine=ReconciliationEngine(storage.unit_of_work),
        max_reported_errors=config.max_reported_errors,
    )


@contextmanager
def _storage_scope(storage: SqlAlchemyStorage | None) -> Iterator[SqlAlchemyStorage]:
    if storage is not None:
        if not storage.is_started:
            storage.startup()
        yield storage
        return
    owned = build_storage()
    try:
        yield owned
    finally:
        owned.shutdown()


@contextmanager
def _source_scope(source: AttemptSource | None) -> Iterator[AttemptSource]:
    if source is not None:
        yield source
        return
    with FirebaseAttemptSource() as owned:
        yield owned


def sync_all_gesture_attempts(
    *,
    source: AttemptSource | None = None,
    storage: SqlAlchemyStorage | None = None,
    should_stop: StopPredicate | None = None,
) -> dict[str, object]:
    """Reconcile the attempts of every identity in the real-time store."""

    log.info("Starting full attempt sweep")
    with _storage_scope(storage) as active, _source_scope(source) as reader:
        summary = build_orchestrator(active, reader).sync_all(should_stop=should_stop)
    log.info(
        f"Finished full attempt sweep: identities={summary.total_identities}, "
        f"synced={summary.total_synced}, errors={summary.total_errors}"
    )
    return summary.to_dict()


def sync_gesture_attempts_for_identity(
    identity: str,
    *,
    source: AttemptSource | None = None,
    storage: SqlAlchemyStorage | None = None,
) -> dict[str, object]:
    """Reconcile the attempts of one identity; ``StorageUnavailable`` propagates."""

    cleaned = identity.strip()
    if not cleaned:
        raise ValueError("Identity must not be empty")
    log.info("Starting attempt sync for identity=%s", cleaned)
    with _storage_scope(storage) as active, _source_scope(source) as reader:
        result = build_orchestrator(active, reader).reconcile_for_identity(cleaned)
    return result.to_dict()


def load_attempt_history(
    *,
    identity: str | None = None,
    user_id: int | None = None,
    storage: SqlAlchemyStorage | None = None,
) -> dict[str, object]:
    """Return stored attempts (newest first) and their summary.

    Exactly one of ``identity`` and ``user_id`` must be given.
    """

    if (identity is None) == (user_id is None):
        raise ValueError("Pass exactly one of identity or user_id")
    with _storage_scope(storage) as active, active.unit_of_work() as uow:
        attempts = uow.repositories.attempts
        if user_id is not None:
            rows = attempts.list_for_user(user_id)
        else:
            rows = attempts.list_for_identity(identity or "")
    return {
        "summary": summarize_attempts(rows).to_dict(),
        "attempts": [row.to_dict() for row in rows],
    }
