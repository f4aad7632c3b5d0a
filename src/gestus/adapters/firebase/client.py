"""Read attempt telemetry and profiles from the Firebase Realtime Database REST API."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, cast
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from gestus.adapters.http_resilience import ResilienceConfig, ResilientClient
from gestus.config.firebase import FirebaseConfig, get_firebase_config
from gestus.domain.errors import StorageUnavailable
from gestus.domain.ports.fetching import ExternalIdentityProfile

from .schema import UserProfilePayload

if TYPE_CHECKING:
    from types import TracebackType

log = getLogger(__name__)


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def _as_keyed_mapping(payload: object) -> dict[str, object]:
    # Firebase returns arrays for nodes whose keys are sequential integers
    if isinstance(payload, Mapping):
        return {str(key): value for key, value in cast(Mapping[object, object], payload).items()}
    if isinstance(payload, list):
        items = cast(list[object], payload)
        return {str(index): value for index, value in enumerate(items) if value is not None}
    return {}


@dataclass(slots=True)
class FirebaseAttemptSource:
    """Attempt source over the Realtime Database REST API.

    All reads share one ``ResilientClient``, so its rate limit and optional
    cache span the lifetime of the source. The client runs on a private event
    loop; call ``close`` (or use the source as a context manager) to release
    both.
    """

    config: FirebaseConfig = field(default_factory=get_firebase_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    _runner: asyncio.Runner | None = field(default=None, init=False, repr=False)
    _client: ResilientClient | None = field(default=None, init=False, repr=False)

    def __enter__(self) -> FirebaseAttemptSource:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        runner, client = self._runner, self._client
        self._runner = None
        self._client = None
        if runner is None:
            return
        try:
            if client is not None:
                runner.run(client.aclose())
        finally:
            runner.close()

    def fetch_all_attempts(self) -> dict[str, object]:
        payload = self._read(self.config.attempts_path)
        records = _as_keyed_mapping(payload)
        if payload is not None and not records:
            log.warning("Unexpected %s payload of type %s", self.config.attempts_path, type(payload))
        log.info("Read attempt records for %s identities", len(records))
        return records

    def fetch_attempts(self, external_identity: str) -> object:
        return self._read(self.config.attempts_path, quote(external_identity, safe=""))

    def fetch_profiles(self) -> dict[str, ExternalIdentityProfile]:
        profiles: dict[str, ExternalIdentityProfile] = {}
        for uid, record in _as_keyed_mapping(self._read(self.config.users_path)).items():
            if not isinstance(record, Mapping):
                continue
            try:
                payload = UserProfilePayload.model_validate(record)
            except ValidationError:
                log.warning("Skipping malformed profile for identity=%s", uid)
                continue
            profiles[uid] = ExternalIdentityProfile(
                uid=uid,
                email=payload.email,
                display_name=payload.display_name,
            )
        return profiles

    def _read(self, *segments: str) -> object:
        if self._runner is None:
            self._runner = asyncio.Runner()
        return self._runner.run(self._read_async(self.config.url_for(*segments)))

    async def _read_async(self, url: str) -> object:
        if self._client is None:
            self._client = self.client_factory(self.config.resilience)
        # the auth token travels as a query parameter; keep it out of messages
        params = {"auth": self.config.auth_token} if self.config.auth_token else None
        try:
            return await self._client.get_json(url, params=params)
        except httpx.HTTPStatusError as exc:
            raise StorageUnavailable(
                f"Reading {url} failed with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.TimeoutException as exc:
            raise StorageUnavailable(f"Timed out reading {url}") from exc
        except httpx.HTTPError as exc:
            raise StorageUnavailable(f"Could not read {url}: {type(exc).__name__}") from exc
        except ValueError as exc:
            raise StorageUnavailable(f"Invalid JSON from {url}") from exc
