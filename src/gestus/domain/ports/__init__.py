"""Domain port definitions for adapters."""

from __future__ import annotations

from .fetching import AttemptSource, ExternalIdentityProfile
from .persistence import AttemptRepository, UserRepository
from .unit_of_work import (
    AttemptRepositories,
    AttemptUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "AttemptRepositories",
    "AttemptRepository",
    "AttemptSource",
    "AttemptUnitOfWork",
    "ExternalIdentityProfile",
    "RepositoryCollection",
    "UnitOfWork",
    "UserRepository",
]
