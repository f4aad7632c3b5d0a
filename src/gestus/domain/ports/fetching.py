"""Ports for reading attempt telemetry from the real-time store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True)
class ExternalIdentityProfile:
    """Profile attributes of an external identity that help linking it to a user."""

    uid: str
    email: str | None = None
    display_name: str | None = None


@runtime_checkable
class AttemptSource(Protocol):
    """Read access to raw attempt records, keyed by external identity.

    Implementations raise ``StorageUnavailable`` when the store cannot be read.
    """

    def fetch_all_attempts(self) -> Mapping[str, object]:
        """Return every identity's raw attempt record in one scan."""
        ...

    def fetch_attempts(self, external_identity: str) -> object:
        """Return the raw attempt record of one identity (``None`` if absent)."""
        ...

    def fetch_profiles(self) -> Mapping[str, ExternalIdentityProfile]:
        """Return known identity profiles keyed by identity."""
        ...


__all__ = ["AttemptSource", "ExternalIdentityProfile"]
