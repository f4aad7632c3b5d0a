"""Public interface for the Firebase Realtime Database adapter."""

from __future__ import annotations

from .client import FirebaseAttemptSource
from .schema import UserProfilePayload

__all__ = ["FirebaseAttemptSource", "UserProfilePayload"]
