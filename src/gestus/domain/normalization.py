"""Normalize raw attempt records from the real-time store into canonical attempts.

Raw records are keyed by gesture id. Each gesture payload is either a single
attempt object, a list of attempt objects, or an object carrying a nested
``attempts`` list/mapping whose siblings act as defaults for every nested
attempt. Field names vary between client versions, so every canonical field is
resolved through an ordered alias table (first non-empty value wins).

Normalization never raises: malformed parts of a record fall back to defaults
or are skipped.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Final, cast

from gestus.domain.model import (
    COMPOSITE_ID_SEPARATOR,
    DEFAULT_ATTEMPT_ID,
    UNKNOWN_GESTURE_ID,
    NormalizedAttempt,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)

GENERIC_GESTURE_NAME: Final[str] = "Gesture"
NESTED_ATTEMPTS_FIELD: Final[str] = "attempts"
COMPOSITE_ID_FIELD: Final[str] = "id"


@dataclass(frozen=True, slots=True)
class FieldAliases:
    """Ordered alias keys for every canonical attempt field."""

    label: tuple[str, ...] = ("sign", "signName", "gestureName", "gesture_name", "name")
    score: tuple[str, ...] = ("percentage", "score", "confidence")
    timestamp: tuple[str, ...] = ("timestamp", "performedAt", "createdAt", "date")
    gesture_id: tuple[str, ...] = ("gestureId", "gesture_id")
    attempt_id: tuple[str, ...] = ("attemptId", "attempt_id")


ATTEMPT_FIELD_ALIASES: Final[FieldAliases] = FieldAliases()

_SCORE_MIN = Decimal(0)
_SCORE_MAX = Decimal(100)
_FRACTION_LIMIT = Decimal(1)


def normalize_attempts(
    raw: object,
    *,
    external_identity: str = "",
    now: datetime | None = None,
    aliases: FieldAliases = ATTEMPT_FIELD_ALIASES,
) -> list[NormalizedAttempt]:
    """Return canonical attempts for ``raw``, most recent first.

    ``now`` is used for attempts without a usable timestamp; pass a fixed value
    to make repeated normalizations of the same record identical.
    """

    if not isinstance(raw, Mapping):
        if raw is not None:
            log.debug("Ignoring non-mapping attempt record of type %s", type(raw).__name__)
        return []

    fallback_time = now or datetime.now(UTC)
    attempts = [
        _build_attempt(
            attempt,
            merged=merged,
            gesture_id=gesture_id,
            positional_id=positional_id,
            external_identity=external_identity,
            fallback_time=fallback_time,
            aliases=aliases,
        )
        for gesture_id, positional_id, attempt, merged in _iter_raw_attempts(
            cast(Mapping[object, object], raw)
        )
    ]
    return sorted(attempts, key=lambda attempt: attempt.timestamp, reverse=True)


def _iter_raw_attempts(
    raw: Mapping[object, object],
) -> Iterator[tuple[str, str, Mapping[str, object], dict[str, object]]]:
    """Yield ``(gesture_id, positional_id, own_fields, merged_fields)`` per attempt."""

    for raw_gesture_id, payload in raw.items():
        gesture_id = str(raw_gesture_id) if raw_gesture_id not in (None, "") else ""
        if isinstance(payload, list):
            yield from _iter_sequence(gesture_id, cast(list[object], payload), defaults={})
            continue
        if not isinstance(payload, Mapping):
            continue

        fields = cast(Mapping[str, object], payload)
        nested = fields.get(NESTED_ATTEMPTS_FIELD)
        defaults = {key: value for key, value in fields.items() if key != NESTED_ATTEMPTS_FIELD}
        if isinstance(nested, list):
            yield from _iter_sequence(gesture_id, cast(list[object], nested), defaults=defaults)
        elif isinstance(nested, Mapping):
            for attempt_key, attempt in cast(Mapping[object, object], nested).items():
                if isinstance(attempt, Mapping):
                    own = cast(Mapping[str, object], attempt)
                    yield gesture_id, str(attempt_key), own, {**defaults, **own}
        else:
            yield gesture_id, DEFAULT_ATTEMPT_ID, fields, dict(fields)


def _iter_sequence(
    gesture_id: str,
    items: list[object],
    *,
    defaults: dict[str, object],
) -> Iterator[tuple[str, str, Mapping[str, object], dict[str, object]]]:
    for index, attempt in enumerate(items):
        # holes in Firebase arrays keep their index
        if isinstance(attempt, Mapping):
            own = cast(Mapping[str, object], attempt)
            yield gesture_id, str(index), own, {**defaults, **own}


def _build_attempt(
    own: Mapping[str, object],
    *,
    merged: dict[str, object],
    gesture_id: str,
    positional_id: str,
    external_identity: str,
    fallback_time: datetime,
    aliases: FieldAliases,
) -> NormalizedAttempt:
    resolved_gesture, resolved_attempt = resolve_attempt_identity(
        own,
        gesture_id=gesture_id,
        positional_id=positional_id,
        aliases=aliases,
    )
    label = _first_text(merged, aliases.label)
    if label is None and resolved_gesture != UNKNOWN_GESTURE_ID:
        label = resolved_gesture
    return NormalizedAttempt(
        external_identity=external_identity,
        gesture_id=resolved_gesture,
        attempt_id=resolved_attempt,
        gesture_name=label or GENERIC_GESTURE_NAME,
        score=normalize_score(_first_present(merged, aliases.score)),
        timestamp=parse_timestamp(_first_present(merged, aliases.timestamp), default=fallback_time),
        raw_payload=merged,
    )


def resolve_attempt_identity(
    fields: Mapping[str, object],
    *,
    gesture_id: str,
    positional_id: str,
    aliases: FieldAliases = ATTEMPT_FIELD_ALIASES,
) -> tuple[str, str]:
    """Return ``(gesture_id, attempt_id)`` for one attempt object.

    Precedence: a composite ``"<gesture>::<attempt>"`` id, then explicit id
    fields, then the position of the attempt inside its record.
    """

    composite = fields.get(COMPOSITE_ID_FIELD)
    if isinstance(composite, str) and COMPOSITE_ID_SEPARATOR in composite:
        head, _, tail = composite.partition(COMPOSITE_ID_SEPARATOR)
        return head.strip() or UNKNOWN_GESTURE_ID, tail.strip() or DEFAULT_ATTEMPT_ID

    explicit_gesture = _first_text(fields, aliases.gesture_id)
    explicit_attempt = _first_text(fields, aliases.attempt_id)
    return (
        explicit_gesture or gesture_id or UNKNOWN_GESTURE_ID,
        explicit_attempt or positional_id or DEFAULT_ATTEMPT_ID,
    )


def normalize_score(value: object) -> int:
    """Map a fraction (``<= 1``) or percentage onto an integer in ``[0, 100]``."""

    number = _to_decimal(value)
    if number is None:
        return 0
    scaled = number if number > _FRACTION_LIMIT else number * 100
    clamped = min(max(scaled, _SCORE_MIN), _SCORE_MAX)
    return int(clamped.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_timestamp(value: object, *, default: datetime) -> datetime:
    """Parse epoch milliseconds or an ISO-8601 string into an aware UTC datetime."""

    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, int | float):
        return _from_epoch_ms(value, default=default)
    if isinstance(value, str):
        text = value.strip()
        # str.isdigit also accepts non-ASCII digits such as superscripts
        if text.isascii() and text.isdigit():
            return _from_epoch_ms(int(text), default=default)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)
        except (ValueError, OverflowError):
            return default
    return default


def _from_epoch_ms(value: float, *, default: datetime) -> datetime:
    try:
        seconds = value / 1000
        if not math.isfinite(seconds):
            return default
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return default


def _to_decimal(value: object) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if math.isinf(value):
            return _SCORE_MAX if value > 0 else _SCORE_MIN
        return Decimal(repr(value))
    if isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
        if number.is_nan():
            return None
        if number.is_infinite():
            return _SCORE_MAX if number > 0 else _SCORE_MIN
        return number
    return None


def _is_empty(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _first_present(fields: Mapping[str, object], keys: tuple[str, ...]) -> object:
    for key in keys:
        value = fields.get(key)
        if not _is_empty(value):
            return value
    return None


def _first_text(fields: Mapping[str, object], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = fields.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    return None
