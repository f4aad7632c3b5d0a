"""Defaults for attempt sweeps."""

from __future__ import annotations

from dataclasses import dataclass

from gestus.domain.sync import DEFAULT_MAX_REPORTED_ERRORS

from .env import env_int


@dataclass(frozen=True, slots=True)
class SyncConfig:
    max_reported_errors: int = DEFAULT_MAX_REPORTED_ERRORS


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        max_reported_errors=env_int("GESTUS_MAX_REPORTED_ERRORS", DEFAULT_MAX_REPORTED_ERRORS),
    )
