"""Relational store configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import env_float, optional_env_var

APP_DIR_NAME: Final[str] = "gestus"
DEFAULT_DB_FILENAME: Final[str] = "gestus.db"
DEFAULT_DATABASE_TIMEOUT_SECONDS: Final[float] = 10.0
_FALSE_VALUES: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Local data directory holding the default SQLite database."""

    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    def database_uri(self) -> str:
        directory = self.data_dir.expanduser().resolve()
        directory.mkdir(parents=True, exist_ok=True)
        return f"sqlite+pysqlite:///{directory / self.database_filename}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Relational store settings.

    ``timeout_seconds`` bounds how long a call may block: it becomes the SQLite
    busy timeout, or the connection-pool checkout timeout for other back-ends.
    """

    uri: str
    timeout_seconds: float = DEFAULT_DATABASE_TIMEOUT_SECONDS
    native_upsert: bool = True

    @property
    def is_sqlite(self) -> bool:
        return self.uri.startswith("sqlite")


def _platform_data_home() -> Path:
    if os.name == "nt":
        local = os.getenv("LOCALAPPDATA")
        return Path(local) if local else Path.home() / "AppData" / "Local"
    xdg = os.getenv("XDG_DATA_HOME")
    return Path(xdg) if xdg else Path.home() / ".local" / "share"


def get_storage_config() -> StorageConfig:
    override = optional_env_var("GESTUS_DATA_DIR")
    data_dir = Path(override) if override else _platform_data_home() / APP_DIR_NAME
    return StorageConfig(data_dir=data_dir)


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    uri = optional_env_var("DATABASE_URI") or (storage or get_storage_config()).database_uri()
    upsert_flag = optional_env_var("DATABASE_NATIVE_UPSERT") or "1"
    return DatabaseConfig(
        uri=uri,
        timeout_seconds=env_float("DATABASE_TIMEOUT_SECONDS", DEFAULT_DATABASE_TIMEOUT_SECONDS),
        native_upsert=upsert_flag.lower() not in _FALSE_VALUES,
    )
