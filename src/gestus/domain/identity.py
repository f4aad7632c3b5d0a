"""Resolve external identities of the real-time store to internal users."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from gestus.domain.errors import ErrorKind

if TYPE_CHECKING:
    from gestus.domain.model import InternalUser
    from gestus.domain.ports.unit_of_work import AttemptUnitOfWork

log = logging.getLogger(__name__)


def normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


@dataclass(slots=True)
class IdentityResolver:
    """Look up the internal user linked to an external identity.

    The linked external uid is tried first, then the email address
    (case-insensitive). Absence is not an error: attempts of unlinked
    identities are still stored and can be linked later.
    """

    unit_of_work_factory: Callable[[], AttemptUnitOfWork]

    def resolve(self, external_identity: str, *, email: str | None = None) -> int | None:
        user = self.lookup(external_identity, email=email)
        if user is None:
            log.debug(
                "%s: no internal user for identity=%s",
                ErrorKind.IDENTITY_UNRESOLVED,
                external_identity,
            )
            return None
        return user.id

    def lookup(self, external_identity: str, *, email: str | None = None) -> InternalUser | None:
        normalized_email = normalize_email(email)
        with self.unit_of_work_factory() as uow:
            users = uow.repositories.users
            user = users.find_by_external_uid(external_identity) if external_identity else None
            if user is None and normalized_email is not None:
                user = users.find_by_email(normalized_email)
        return user
