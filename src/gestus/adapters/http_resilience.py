"""Read-only async client for JSON REST endpoints.

Requests pass through an httpx-retries transport, an optional aiolimiter rate
limit and, when configured, an in-memory hishel cache.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import httpx
from aiolimiter import AsyncLimiter
from hishel import AsyncSqliteStorage, FilterPolicy
from hishel import Response as HishelCacheResponse
from hishel._policies import BaseFilter
from hishel.httpx import AsyncCacheClient
from httpx_retries import Retry, RetryTransport

from gestus.config.http_resilience import (
    CacheConfig,
    RateLimit,
    ResilienceConfig,
    RetryPolicy,
    ShouldCacheHook,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

__all__ = [
    "CacheConfig",
    "RateLimit",
    "ResilienceConfig",
    "ResilientClient",
    "RetryPolicy",
    "build_retry",
]

log = logging.getLogger(__name__)

IN_MEMORY_DATABASE = ":memory:"


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=tuple(policy.allowed_methods),
        status_forcelist=tuple(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
        backoff_jitter=policy.backoff_jitter,
    )


class ResilientClient:
    """GET-only client; open one per batch of reads and close it afterwards.

    ``transport`` replaces the network transport underneath the retry and cache
    layers.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._limiter: AsyncLimiter | None = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit
            else None
        )
        retrying = RetryTransport(transport=transport, retry=build_retry(config.retry))
        if config.cache is None:
            self._client: httpx.AsyncClient = httpx.AsyncClient(
                timeout=config.timeout_seconds,
                transport=retrying,
            )
        else:
            log.debug("Caching %s responses for %ss", config.name, config.cache.default_ttl_seconds)
            self._client = AsyncCacheClient(
                timeout=config.timeout_seconds,
                transport=retrying,
                storage=AsyncSqliteStorage(
                    database_path=IN_MEMORY_DATABASE,
                    default_ttl=config.cache.default_ttl_seconds,
                    refresh_ttl_on_access=False,
                ),
                policy=_build_cache_policy(config.cache),
            )

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(
        self,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        if self._limiter is None:
            return await self._client.get(url, params=params)
        async with self._limiter:
            return await self._client.get(url, params=params)

    async def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
    ) -> object:
        """Return the decoded JSON body of ``url``.

        Error statuses raise ``httpx.HTTPStatusError``; a body that is not JSON
        raises ``ValueError``.
        """

        response = await self.get(url, params=params)
        response.raise_for_status()
        return response.json()


class _ShouldCacheResponseFilter(BaseFilter[HishelCacheResponse]):
    """Hishel response filter that only stores bodies accepted by a JSON predicate."""

    def __init__(self, predicate: ShouldCacheHook) -> None:
        self._predicate = predicate

    def needs_body(self) -> bool:
        return True

    def apply(self, item: HishelCacheResponse, body: bytes | None) -> bool:  # noqa: ARG002
        if body is None:
            return False
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return False
        return bool(self._predicate(payload))


def _build_cache_policy(config: CacheConfig) -> FilterPolicy | None:
    if config.should_cache is None:
        return None
    return FilterPolicy(response_filters=[_ShouldCacheResponseFilter(config.should_cache)])
