"""Error taxonomy for attempt reconciliation."""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    """Stable identifiers reported in failure descriptors and sweep summaries."""

    MALFORMED_INPUT = "malformed_input"
    IDENTITY_UNRESOLVED = "identity_unresolved"
    DUPLICATE_KEY_RACE = "duplicate_key_race"
    RECONCILIATION_FAILURE = "reconciliation_failure"
    STORAGE_UNAVAILABLE = "storage_unavailable"


class SyncError(RuntimeError):
    """Base class for failures raised by the reconciliation core."""

    kind: ClassVar[ErrorKind] = ErrorKind.RECONCILIATION_FAILURE


class DuplicateKeyRace(SyncError):
    """Raised by a store when a write collides with an existing natural key."""

    kind = ErrorKind.DUPLICATE_KEY_RACE


class ReconciliationFailure(SyncError):
    """Raised when a single attempt could not be written, even after re-querying."""

    kind = ErrorKind.RECONCILIATION_FAILURE


class StorageUnavailable(SyncError):
    """Raised when a store cannot be reached or a call exceeds its timeout."""

    kind = ErrorKind.STORAGE_UNAVAILABLE
