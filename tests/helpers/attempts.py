"""Reusable fakes and builders for attempt reconciliation tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from itertools import count
from typing import TYPE_CHECKING, Literal

from gestus.domain.errors import DuplicateKeyRace, StorageUnavailable
from gestus.domain.model import InternalUser, NormalizedAttempt, StoredAttempt
from gestus.domain.ports.fetching import ExternalIdentityProfile
from gestus.domain.ports.unit_of_work import AttemptRepositories

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from types import TracebackType

    from gestus.domain.model import NaturalKey

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


def make_attempt(
    *,
    identity: str = "uid-1",
    gesture_id: str = "hello",
    attempt_id: str = "0",
    score: int = 80,
    timestamp: datetime | None = None,
    internal_user_id: int | None = None,
) -> NormalizedAttempt:
    return NormalizedAttempt(
        external_identity=identity,
        gesture_id=gesture_id,
        attempt_id=attempt_id,
        gesture_name=gesture_id.title(),
        score=score,
        timestamp=timestamp or FIXED_NOW,
        raw_payload={"score": score},
        internal_user_id=internal_user_id,
    )


class FakeAttemptRepository:
    """In-memory attempt store keyed by natural key."""

    def __init__(self) -> None:
        self.rows: dict[NaturalKey, StoredAttempt] = {}
        self._ids = count(1)
        self.upserts: list[NaturalKey] = []
        # natural key -> hook run before the write
        self.before_upsert: dict[NaturalKey, Callable[[NormalizedAttempt], None]] = {}

    def upsert(self, attempt: NormalizedAttempt, *, now: datetime) -> None:
        self.upserts.append(attempt.natural_key)
        hook = self.before_upsert.get(attempt.natural_key)
        if hook is not None:
            hook(attempt)
        existing = self.rows.get(attempt.natural_key)
        self.rows[attempt.natural_key] = StoredAttempt(
            id=existing.id if existing else next(self._ids),
            external_identity=attempt.external_identity,
            internal_user_id=(
                attempt.internal_user_id
                if attempt.internal_user_id is not None
                else (existing.internal_user_id if existing else None)
            ),
            gesture_id=attempt.gesture_id,
            attempt_id=attempt.attempt_id,
            gesture_name=existing.gesture_name if existing else attempt.gesture_name,
            score=attempt.score,
            timestamp=attempt.timestamp,
            raw_payload=dict(attempt.raw_payload),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

    def insert_concurrently(self, attempt: NormalizedAttempt) -> None:
        """Store ``attempt`` as if another writer had won the race."""
        existing_hook = self.before_upsert.pop(attempt.natural_key, None)
        self.upsert(attempt, now=FIXED_NOW)
        self.upserts.pop()
        if existing_hook is not None:
            self.before_upsert[attempt.natural_key] = existing_hook

    def get_by_natural_key(self, key: NaturalKey) -> StoredAttempt | None:
        return self.rows.get(key)

    def list_for_identity(self, external_identity: str) -> list[StoredAttempt]:
        rows = [row for row in self.rows.values() if row.external_identity == external_identity]
        return sorted(rows, key=lambda row: row.timestamp, reverse=True)

    def list_for_user(self, user_id: int) -> list[StoredAttempt]:
        rows = [row for row in self.rows.values() if row.internal_user_id == user_id]
        return sorted(rows, key=lambda row: row.timestamp, reverse=True)


def raise_duplicate_key(attempt: NormalizedAttempt) -> None:
    raise DuplicateKeyRace(f"duplicate key for {attempt.composite_id}")


def raise_unavailable(attempt: NormalizedAttempt) -> None:
    raise StorageUnavailable(f"store offline while writing {attempt.composite_id}")


class FakeUserRepository:
    def __init__(self, users: Iterable[InternalUser] = ()) -> None:
        self.users: list[InternalUser] = list(users)

    def add(self, user: InternalUser) -> None:
        if user.id is None:
            user.id = len(self.users) + 1
        self.users.append(user)

    def find_by_external_uid(self, external_uid: str) -> InternalUser | None:
        return next((user for user in self.users if user.external_uid == external_uid), None)

    def find_by_email(self, email: str) -> InternalUser | None:
        return next(
            (user for user in self.users if user.email and user.email.lower() == email.lower()),
            None,
        )


class FakeUnitOfWork:
    def __init__(self, repositories: AttemptRepositories) -> None:
        self._repositories = repositories
        self.committed = False
        self.rolled_back = False

    @property
    def repositories(self) -> AttemptRepositories:
        return self._repositories

    def __enter__(self) -> FakeUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        return False

    def commit(self) -> None:
        self.committed = True

    def rollback(self) -> None:
        self.rolled_back = True


@dataclass
class FakeStore:
    """Shared in-memory repositories handed out by fresh units of work."""

    attempts: FakeAttemptRepository = field(default_factory=FakeAttemptRepository)
    users: FakeUserRepository = field(default_factory=FakeUserRepository)
    units: list[FakeUnitOfWork] = field(default_factory=list[FakeUnitOfWork])

    def unit_of_work(self) -> FakeUnitOfWork:
        uow = FakeUnitOfWork(AttemptRepositories(attempts=self.attempts, users=self.users))
        self.units.append(uow)
        return uow


class FakeAttemptSource:
    """In-memory implementation of the attempt source port."""

    def __init__(
        self,
        records: Mapping[str, object],
        *,
        profiles: Mapping[str, ExternalIdentityProfile] | None = None,
        failing_identities: Iterable[str] = (),
    ) -> None:
        self.records = dict(records)
        self.profiles = dict(profiles or {})
        self.failing_identities = set(failing_identities)
        self.fetched: list[str] = []

    def fetch_all_attempts(self) -> dict[str, object]:
        return dict(self.records)

    def fetch_attempts(self, external_identity: str) -> object:
        self.fetched.append(external_identity)
        if external_identity in self.failing_identities:
            raise StorageUnavailable(f"cannot read {external_identity}")
        return self.records.get(external_identity)

    def fetch_profiles(self) -> dict[str, ExternalIdentityProfile]:
        return dict(self.profiles)


def make_profile(uid: str, email: str | None = None) -> ExternalIdentityProfile:
    return ExternalIdentityProfile(uid=uid, email=email, display_name=uid)
