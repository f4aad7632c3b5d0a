"""Idempotent reconciliation of normalized attempts into the relational store.

Every attempt is written in its own unit of work:

1. an atomic upsert keyed on ``(external_identity, gesture_id, attempt_id)``;
2. a read-back of the row by that natural key, since an upsert does not reveal
   reliably which branch ran or which surrogate id it touched;
3. if the write collides with a concurrent insert (``DuplicateKeyRace``) or the
   row is gone by the time it is read back, a fresh re-query by natural key.
   A row found there means another writer won the race; the attempt counts as
   reconciled. Nothing found is a ``ReconciliationFailure``.

The unique constraint of the store is the only coordination between writers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from gestus.domain.errors import (
    DuplicateKeyRace,
    ErrorKind,
    ReconciliationFailure,
    StorageUnavailable,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from gestus.domain.model import NormalizedAttempt, StoredAttempt
    from gestus.domain.ports.unit_of_work import AttemptUnitOfWork

log = logging.getLogger(__name__)

type Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class AttemptFailure:
    """Descriptor of one attempt that could not be reconciled."""

    input: NormalizedAttempt
    error_kind: ErrorKind
    message: str

    def to_dict(self) -> dict[str, object]:
        return {
            "input": self.input.to_dict(),
            "errorKind": str(self.error_kind),
            "message": self.message,
        }


@dataclass(slots=True)
class ReconcileBatchResult:
    """Outcome of reconciling one identity's attempts."""

    succeeded: list[StoredAttempt] = field(default_factory=list["StoredAttempt"])
    failed: list[AttemptFailure] = field(default_factory=list[AttemptFailure])

    def to_dict(self, *, include_rows: bool = False) -> dict[str, object]:
        payload: dict[str, object] = {
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "failures": [failure.to_dict() for failure in self.failed],
        }
        if include_rows:
            payload["rows"] = [row.to_dict() for row in self.succeeded]
        return payload


@dataclass(slots=True)
class ReconciliationEngine:
    """Write normalized attempts into the store, at most one row per natural key."""

    unit_of_work_factory: Callable[[], AttemptUnitOfWork]
    clock: Clock = _utcnow

    def reconcile(self, attempt: NormalizedAttempt) -> StoredAttempt:
        """Upsert ``attempt`` and return the authoritative stored row.

        Raises ``StorageUnavailable`` when the store cannot be reached and
        ``ReconciliationFailure`` when no row exists for the attempt afterwards.
        """

        stored: StoredAttempt | None = None
        try:
            with self.unit_of_work_factory() as uow:
                repository = uow.repositories.attempts
                repository.upsert(attempt, now=self.clock())
                stored = repository.get_by_natural_key(attempt.natural_key)
                uow.commit()
        except DuplicateKeyRace:
            log.debug("Duplicate key race for %s; re-querying", attempt.natural_key)

        if stored is not None:
            return stored
        return self._recover(attempt)

    def reconcile_all(
        self,
        identity: str,
        attempts: Iterable[NormalizedAttempt],
    ) -> ReconcileBatchResult:
        """Reconcile ``attempts`` of one identity sequentially.

        Per-attempt failures are collected; ``StorageUnavailable`` aborts the
        batch and propagates to the caller.
        """

        result = ReconcileBatchResult()
        for attempt in attempts:
            candidate = attempt if attempt.external_identity else attempt.with_identity(identity)
            if candidate.external_identity != identity:
                result.failed.append(
                    AttemptFailure(
                        input=candidate,
                        error_kind=ErrorKind.MALFORMED_INPUT,
                        message=(
                            f"Attempt belongs to identity {candidate.external_identity!r}, "
                            f"not {identity!r}"
                        ),
                    )
                )
                continue
            try:
                result.succeeded.append(self.reconcile(candidate))
            except StorageUnavailable:
                log.exception("Storage unavailable while reconciling identity=%s", identity)
                raise
            except ReconciliationFailure as exc:
                log.warning("Could not reconcile %s: %s", candidate.natural_key, exc)
                result.failed.append(
                    AttemptFailure(input=candidate, error_kind=exc.kind, message=str(exc))
                )

        log.info(
            "Reconciled identity=%s: succeeded=%s, failed=%s",
            identity,
            len(result.succeeded),
            len(result.failed),
        )
        return result

    def _recover(self, attempt: NormalizedAttempt) -> StoredAttempt:
        with self.unit_of_work_factory() as uow:
            existing = uow.repositories.attempts.get_by_natural_key(attempt.natural_key)
        if existing is None:
            raise ReconciliationFailure(
                f"No stored row for {attempt.composite_id} of identity "
                f"{attempt.external_identity!r} after upsert"
            )
        return existing
