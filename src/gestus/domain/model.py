"""Domain entities for gesture-practice attempts and the users they belong to."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

type NaturalKey = tuple[str, str, str]

UNKNOWN_GESTURE_ID = "unknown"
DEFAULT_ATTEMPT_ID = "default"
COMPOSITE_ID_SEPARATOR = "::"


class UserRole(StrEnum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"


@dataclass(eq=False, kw_only=True)
class InternalUser:
    """A user of the school application, as far as attempt linkage is concerned.

    ``external_uid`` links the user to an identity of the real-time store. Users
    are created and edited elsewhere; this core only reads them.
    """

    id: int | None = None
    name: str
    email: str | None = None
    role: UserRole = UserRole.STUDENT
    external_uid: str | None = None
    parent_id: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class NormalizedAttempt:
    """One practice attempt in canonical shape, ready for reconciliation."""

    external_identity: str
    gesture_id: str = UNKNOWN_GESTURE_ID
    attempt_id: str = DEFAULT_ATTEMPT_ID
    gesture_name: str
    score: int
    timestamp: datetime
    raw_payload: Mapping[str, object] = field(default_factory=dict[str, object])
    internal_user_id: int | None = None

    @property
    def natural_key(self) -> NaturalKey:
        return (self.external_identity, self.gesture_id, self.attempt_id)

    @property
    def composite_id(self) -> str:
        return f"{self.gesture_id}{COMPOSITE_ID_SEPARATOR}{self.attempt_id}"

    def with_internal_user(self, user_id: int | None) -> NormalizedAttempt:
        return replace(self, internal_user_id=user_id)

    def with_identity(self, external_identity: str) -> NormalizedAttempt:
        return replace(self, external_identity=external_identity)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.composite_id,
            "externalIdentity": self.external_identity,
            "internalUserId": self.internal_user_id,
            "gestureId": self.gesture_id,
            "attemptId": self.attempt_id,
            "gestureName": self.gesture_name,
            "score": self.score,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True, kw_only=True)
class StoredAttempt:
    """Durable row of the relational attempt store."""

    id: int
    external_identity: str
    internal_user_id: int | None
    gesture_id: str
    attempt_id: str
    gesture_name: str
    score: int
    timestamp: datetime
    raw_payload: Mapping[str, object] | None
    created_at: datetime
    updated_at: datetime

    @property
    def natural_key(self) -> NaturalKey:
        return (self.external_identity, self.gesture_id, self.attempt_id)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "externalIdentity": self.external_identity,
            "userId": self.internal_user_id,
            "gestureId": self.gesture_id,
            "attemptId": self.attempt_id,
            "gestureName": self.gesture_name,
            "score": self.score,
            "timestamp": self.timestamp.isoformat(),
            "rawData": dict(self.raw_payload) if self.raw_payload is not None else None,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
