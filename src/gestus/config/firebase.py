"""Firebase Realtime Database configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float, optional_env_var, require_env_vars
from .errors import InvalidConfigurationValueError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy

FIREBASE_TIMEOUT_SECONDS = 10.0
ATTEMPTS_PATH = "gestureAttempts"
USERS_PATH = "users"


@dataclass(frozen=True)
class FirebaseConfig:
    """Where and how to read the real-time store over its REST interface."""

    database_url: str
    resilience: ResilienceConfig
    auth_token: str | None = None
    attempts_path: str = ATTEMPTS_PATH
    users_path: str = USERS_PATH

    def url_for(self, *segments: str) -> str:
        path = "/".join(segment.strip("/") for segment in segments if segment.strip("/"))
        return f"{self.database_url.rstrip('/')}/{path}.json"


def _has_payload(payload: object) -> bool:
    # missing paths come back as a JSON null
    return payload is not None


def build_firebase_resilience(
    *,
    timeout_seconds: float = FIREBASE_TIMEOUT_SECONDS,
    cache_ttl_seconds: float | None = None,
) -> ResilienceConfig:
    cache = None
    if cache_ttl_seconds is not None:
        cache = CacheConfig(default_ttl_seconds=cache_ttl_seconds, should_cache=_has_payload)
    return ResilienceConfig(
        name="firebase",
        timeout_seconds=timeout_seconds,
        retry=RetryPolicy(total=3),
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
        cache=cache,
    )


def get_firebase_config(*, resilience: ResilienceConfig | None = None) -> FirebaseConfig:
    values = require_env_vars(("FIREBASE_DATABASE_URL",))
    database_url = values["FIREBASE_DATABASE_URL"]
    if not database_url.startswith(("https://", "http://")):
        raise InvalidConfigurationValueError(
            "FIREBASE_DATABASE_URL", database_url, "an http(s) URL"
        )

    cache_ttl = optional_env_var("FIREBASE_HTTP_CACHE_TTL")
    return FirebaseConfig(
        database_url=database_url,
        auth_token=optional_env_var("FIREBASE_AUTH_TOKEN"),
        attempts_path=optional_env_var("FIREBASE_ATTEMPTS_PATH") or ATTEMPTS_PATH,
        users_path=optional_env_var("FIREBASE_USERS_PATH") or USERS_PATH,
        resilience=resilience
        or build_firebase_resilience(
            timeout_seconds=env_float("FIREBASE_TIMEOUT_SECONDS", FIREBASE_TIMEOUT_SECONDS),
            cache_ttl_seconds=(
                env_float("FIREBASE_HTTP_CACHE_TTL", 0.0) if cache_ttl is not None else None
            ),
        ),
    )
