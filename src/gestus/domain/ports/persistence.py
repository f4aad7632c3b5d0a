"""Ports for persisting attempts and reading the identity store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from gestus.domain.model import InternalUser, NaturalKey, NormalizedAttempt, StoredAttempt


@runtime_checkable
class AttemptRepository(Protocol):
    """Persistence contract for the relational attempt store.

    Implementations translate storage failures into the domain error taxonomy:
    ``DuplicateKeyRace`` for unique-key collisions, ``StorageUnavailable`` for
    connectivity problems and timeouts, ``ReconciliationFailure`` otherwise.
    """

    def upsert(self, attempt: NormalizedAttempt, *, now: datetime) -> None:
        """Insert the attempt, or update the row sharing its natural key."""
        ...

    def get_by_natural_key(self, key: NaturalKey) -> StoredAttempt | None: ...

    def list_for_identity(self, external_identity: str) -> list[StoredAttempt]: ...

    def list_for_user(self, user_id: int) -> list[StoredAttempt]: ...


@runtime_checkable
class UserRepository(Protocol):
    """Read access to the credential/identity store."""

    def find_by_external_uid(self, external_uid: str) -> InternalUser | None: ...

    def find_by_email(self, email: str) -> InternalUser | None: ...
