"""Sweep reconciliation across every identity known to the real-time store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from gestus.domain.errors import ErrorKind, SyncError
from gestus.domain.normalization import normalize_attempts
from gestus.domain.reconciliation import ReconcileBatchResult

DEFAULT_MAX_REPORTED_ERRORS = 100

if TYPE_CHECKING:
    from collections.abc import Mapping

    from gestus.domain.identity import IdentityResolver
    from gestus.domain.model import NaturalKey
    from gestus.domain.ports.fetching import AttemptSource, ExternalIdentityProfile
    from gestus.domain.reconciliation import ReconciliationEngine

log = logging.getLogger(__name__)

type StopPredicate = Callable[[], bool]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class SyncIssue:
    """One entry of a sweep's error list."""

    identity: str | None
    error_kind: ErrorKind
    message: str
    attempt_key: NaturalKey | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "identity": self.identity,
            "errorKind": str(self.error_kind),
            "error": self.message,
        }
        if self.attempt_key is not None:
            _, gesture_id, attempt_id = self.attempt_key
            payload["attempt"] = f"{gesture_id}::{attempt_id}"
        return payload


@dataclass(slots=True)
class IdentitySyncResult:
    """Reconciliation summary for one external identity."""

    identity: str
    internal_user_id: int | None
    normalized: int
    batch: ReconcileBatchResult

    @property
    def synced(self) -> int:
        return len(self.batch.succeeded)

    @property
    def failed(self) -> int:
        return len(self.batch.failed)

    def to_dict(self) -> dict[str, object]:
        return {
            "identity": self.identity,
            "internalUserId": self.internal_user_id,
            "normalized": self.normalized,
            "synced": self.synced,
            "failed": self.failed,
            "errors": [failure.to_dict() for failure in self.batch.failed],
        }


@dataclass(slots=True)
class SweepSummary:
    """Aggregate outcome of one sweep; the error list is bounded."""

    max_reported_errors: int = DEFAULT_MAX_REPORTED_ERRORS
    total_identities: int = 0
    total_synced: int = 0
    total_failed: int = 0
    total_errors: int = 0
    stopped_early: bool = False
    errors: list[SyncIssue] = field(default_factory=list[SyncIssue])

    def record(self, issue: SyncIssue) -> None:
        self.total_errors += 1
        if len(self.errors) < self.max_reported_errors:
            self.errors.append(issue)

    def to_dict(self) -> dict[str, object]:
        return {
            "totalIdentities": self.total_identities,
            "totalSynced": self.total_synced,
            "totalFailed": self.total_failed,
            "totalErrors": self.total_errors,
            "stoppedEarly": self.stopped_early,
            "errors": [issue.to_dict() for issue in self.errors],
        }


@dataclass(slots=True)
class SyncOrchestrator:
    """Drive normalization, identity resolution and reconciliation per identity."""

    source: AttemptSource
    resolver: IdentityResolver
    engine: ReconciliationEngine
    max_reported_errors: int = DEFAULT_MAX_REPORTED_ERRORS
    clock: Callable[[], datetime] = _utcnow

    def sync_all(self, *, should_stop: StopPredicate | None = None) -> SweepSummary:
        """Run one sweep. Never raises; failures end up in the summary."""

        summary = SweepSummary(max_reported_errors=self.max_reported_errors)
        try:
            records = self.source.fetch_all_attempts()
        except SyncError as exc:
            log.exception("Could not read attempt records from the real-time store")
            summary.record(SyncIssue(identity=None, error_kind=exc.kind, message=str(exc)))
            return summary

        profiles = self._load_profiles()
        summary.total_identities = len(records)
        log.info("Starting sweep over %s identities", summary.total_identities)

        for identity, raw in records.items():
            if should_stop is not None and should_stop():
                log.warning("Sweep stopped before identity=%s", identity)
                summary.stopped_early = True
                break
            profile = profiles.get(identity)
            try:
                result = self._sync_identity(
                    identity,
                    raw,
                    email=profile.email if profile else None,
                )
            except SyncError as exc:
                summary.record(SyncIssue(identity=identity, error_kind=exc.kind, message=str(exc)))
                continue
            except Exception as exc:  # noqa: BLE001
                log.exception("Unexpected error while syncing identity=%s", identity)
                summary.record(
                    SyncIssue(
                        identity=identity,
                        error_kind=ErrorKind.RECONCILIATION_FAILURE,
                        message=str(exc),
                    )
                )
                continue
            if result is None:
                continue
            summary.total_synced += result.synced
            summary.total_failed += result.failed
            for failure in result.batch.failed:
                summary.record(
                    SyncIssue(
                        identity=identity,
                        error_kind=failure.error_kind,
                        message=failure.message,
                        attempt_key=failure.input.natural_key,
                    )
                )

        log.info(
            "Finished sweep: identities=%s, synced=%s, failed=%s, errors=%s",
            summary.total_identities,
            summary.total_synced,
            summary.total_failed,
            summary.total_errors,
        )
        return summary

    def reconcile_for_identity(self, identity: str) -> IdentitySyncResult:
        """Reconcile a single identity; ``StorageUnavailable`` propagates."""

        raw = self.source.fetch_attempts(identity)
        profile = self._load_profiles().get(identity)
        result = self._sync_identity(identity, raw, email=profile.email if profile else None)
        if result is None:
            return IdentitySyncResult(
                identity=identity,
                internal_user_id=None,
                normalized=0,
                batch=ReconcileBatchResult(),
            )
        return result

    def _sync_identity(
        self,
        identity: str,
        raw: object,
        *,
        email: str | None,
    ) -> IdentitySyncResult | None:
        attempts = normalize_attempts(raw, external_identity=identity, now=self.clock())
        if not attempts:
            log.warning("No attempts normalized for identity=%s; skipping", identity)
            return None

        user_id = self._resolve_user(identity, email=email)
        batch = self.engine.reconcile_all(
            identity,
            [attempt.with_internal_user(user_id) for attempt in attempts],
        )
        log.info(
            "Identity %s: %s/%s attempts synced",
            identity,
            len(batch.succeeded),
            len(attempts),
        )
        return IdentitySyncResult(
            identity=identity,
            internal_user_id=user_id,
            normalized=len(attempts),
            batch=batch,
        )

    def _resolve_user(self, identity: str, *, email: str | None) -> int | None:
        try:
            return self.resolver.resolve(identity, email=email)
        except SyncError as exc:
            log.warning(
                "%s: identity resolution failed for %s (%s); storing without user",
                ErrorKind.IDENTITY_UNRESOLVED,
                identity,
                exc,
            )
            return None

    def _load_profiles(self) -> Mapping[str, ExternalIdentityProfile]:
        try:
            return self.source.fetch_profiles()
        except SyncError as exc:
            log.warning("Could not load identity profiles: %s", exc)
            return {}
