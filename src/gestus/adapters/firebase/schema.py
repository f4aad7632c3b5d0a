"""Pydantic models for records of the Firebase ``users`` node."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Final, cast

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

DISPLAY_NAME_FIELDS: Final[tuple[str, ...]] = ("displayName", "fullName", "name")
DEFAULT_DISPLAY_NAME: Final[str] = "Firebase user"


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class FirebaseBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class UserProfilePayload(FirebaseBaseModel):
    """Profile written by the practice client; only linkage attributes are kept."""

    email: str | None = None
    display_name: str = DEFAULT_DISPLAY_NAME

    @model_validator(mode="before")
    @classmethod
    def _resolve_display_name(cls, value: object) -> object:
        if not isinstance(value, Mapping):
            return value
        data: dict[str, object] = dict(cast(Mapping[str, object], value))
        for key in DISPLAY_NAME_FIELDS:
            candidate = data.get(key)
            if isinstance(candidate, str) and candidate.strip():
                data["display_name"] = candidate.strip()
                break
        return data

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        if not isinstance(value, str):
            return None
        return _blank_to_none(value)
