from __future__ import annotations

from datetime import UTC, datetime

import pytest

from gestus.domain.normalization import (
    GENERIC_GESTURE_NAME,
    normalize_attempts,
    normalize_score,
    parse_timestamp,
    resolve_attempt_identity,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
JAN_1_MS = int(datetime(2024, 1, 1, tzinfo=UTC).timestamp() * 1000)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0.755, 76),
        (0.5, 50),
        ("0.5", 50),
        (57, 57),
        ("57", 57),
        (150, 100),
        (-5, 0),
        (0, 0),
        (1, 100),
        (None, 0),
        ("not a number", 0),
        (True, 0),
        (float("nan"), 0),
        (float("inf"), 100),
        (float("-inf"), 0),
    ],
)
def test_normalize_score(value: object, expected: int) -> None:
    assert normalize_score(value) == expected


def test_parse_timestamp_accepts_epoch_milliseconds() -> None:
    assert parse_timestamp(JAN_1_MS, default=NOW) == datetime(2024, 1, 1, tzinfo=UTC)
    assert parse_timestamp(str(JAN_1_MS), default=NOW) == datetime(2024, 1, 1, tzinfo=UTC)


def test_parse_timestamp_accepts_iso_strings() -> None:
    parsed = parse_timestamp("2024-01-01T03:00:00+03:00", default=NOW)

    assert parsed == datetime(2024, 1, 1, tzinfo=UTC)
    assert parse_timestamp("2024-01-01T00:00:00Z", default=NOW) == parsed
    assert parse_timestamp("2024-01-01T00:00:00", default=NOW) == parsed


@pytest.mark.parametrize(
    "value",
    [
        None,
        "",
        "yesterday",
        True,
        10**400,
        float("nan"),
        {},
        "\u00b2",
        "\u0663\u0664",
        "0001-01-01T00:00:00+05:00",
        "9999-12-31T23:59:59-05:00",
    ],
)
def test_parse_timestamp_falls_back_to_default(value: object) -> None:
    assert parse_timestamp(value, default=NOW) == NOW


def test_list_payload_uses_positions_and_skips_holes() -> None:
    raw = {
        "hello": [
            {"sign": "Hello", "score": 0.9, "timestamp": JAN_1_MS},
            None,
            {"sign": "Hello", "percentage": 57, "timestamp": JAN_1_MS + 1000},
        ]
    }

    attempts = normalize_attempts(raw, external_identity="uid-1", now=NOW)

    assert [(a.gesture_id, a.attempt_id, a.score) for a in attempts] == [
        ("hello", "2", 57),
        ("hello", "0", 90),
    ]
    assert {a.external_identity for a in attempts} == {"uid-1"}


def test_single_object_payload_gets_default_attempt_id() -> None:
    attempts = normalize_attempts(
        {"wave": {"percentage": 88, "timestamp": "2024-01-01T00:00:00Z"}},
        now=NOW,
    )

    assert len(attempts) == 1
    attempt = attempts[0]
    assert attempt.natural_key == ("", "wave", "default")
    assert attempt.gesture_name == "wave"
    assert attempt.score == 88


def test_nested_attempts_inherit_sibling_fields() -> None:
    raw = {
        "thanks": {
            "sign": "Thanks",
            "timestamp": JAN_1_MS,
            "attempts": {
                "k1": {"score": 90},
                "k2": {"sign": "Thank you", "score": 70, "timestamp": JAN_1_MS + 5000},
            },
        }
    }

    attempts = normalize_attempts(raw, now=NOW)

    by_id = {attempt.attempt_id: attempt for attempt in attempts}
    assert by_id["k1"].gesture_name == "Thanks"
    assert by_id["k1"].timestamp == datetime(2024, 1, 1, tzinfo=UTC)
    assert by_id["k1"].raw_payload == {"sign": "Thanks", "timestamp": JAN_1_MS, "score": 90}
    assert by_id["k2"].gesture_name == "Thank you"
    assert [attempt.attempt_id for attempt in attempts] == ["k2", "k1"]


def test_composite_id_takes_precedence_over_explicit_fields() -> None:
    fields = {"id": "wave::a7", "gestureId": "other", "attemptId": "ignored"}

    assert resolve_attempt_identity(fields, gesture_id="g", positional_id="3") == ("wave", "a7")


def test_explicit_fields_take_precedence_over_positions() -> None:
    fields = {"gestureId": "wave", "attemptId": "a7", "id": "plain-id"}

    assert resolve_attempt_identity(fields, gesture_id="g", positional_id="3") == ("wave", "a7")
    assert resolve_attempt_identity({}, gesture_id="g", positional_id="3") == ("g", "3")
    assert resolve_attempt_identity({}, gesture_id="", positional_id="") == ("unknown", "default")


def test_explicit_ids_are_not_inherited_from_nested_defaults() -> None:
    raw = {"g": {"attemptId": "shared", "attempts": [{"score": 10}, {"score": 20}]}}

    attempts = normalize_attempts(raw, now=NOW)

    assert sorted(attempt.attempt_id for attempt in attempts) == ["0", "1"]


def test_zero_score_is_kept() -> None:
    attempts = normalize_attempts({"g": {"percentage": 0, "score": 90}}, now=NOW)

    assert attempts[0].score == 0


def test_blank_alias_values_fall_through() -> None:
    attempts = normalize_attempts(
        {"g": {"sign": "  ", "signName": "Goodbye", "percentage": "", "score": 0.42}},
        now=NOW,
    )

    assert attempts[0].gesture_name == "Goodbye"
    assert attempts[0].score == 42


def test_missing_label_and_gesture_uses_generic_name() -> None:
    attempts = normalize_attempts({"": [{"score": 50}]}, now=NOW)

    assert attempts[0].gesture_id == "unknown"
    assert attempts[0].gesture_name == GENERIC_GESTURE_NAME


def test_missing_timestamp_uses_now() -> None:
    attempts = normalize_attempts({"g": {"score": 50}}, now=NOW)

    assert attempts[0].timestamp == NOW


@pytest.mark.parametrize("raw", [None, [], "attempts", 42])
def test_non_mapping_records_normalize_to_nothing(raw: object) -> None:
    assert normalize_attempts(raw, now=NOW) == []


def test_malformed_gesture_payloads_are_skipped() -> None:
    attempts = normalize_attempts({"a": "junk", "b": 3, "c": [1, "x"], "d": {"score": 1}}, now=NOW)

    assert [attempt.gesture_id for attempt in attempts] == ["d"]


def test_equal_timestamps_keep_source_order() -> None:
    raw = {"g": [{"score": 1}, {"score": 2}, {"score": 3}]}

    attempts = normalize_attempts(raw, now=NOW)

    assert [attempt.attempt_id for attempt in attempts] == ["0", "1", "2"]


def test_normalization_is_deterministic() -> None:
    raw = {
        "hello": [{"sign": "Hello", "score": 0.755}, {"percentage": 40, "date": "2024-02-01"}],
        "thanks": {"attempts": {"x": {"score": 12, "timestamp": JAN_1_MS}}},
    }

    first = normalize_attempts(raw, external_identity="uid-1", now=NOW)
    second = normalize_attempts(raw, external_identity="uid-1", now=NOW)

    assert first == second
    assert [attempt.natural_key for attempt in first] == [
        ("uid-1", "hello", "0"),
        ("uid-1", "hello", "1"),
        ("uid-1", "thanks", "x"),
    ]


def test_timestamps_at_the_calendar_edges_never_break_normalization() -> None:
    raw = {
        "hello": [
            {"score": 10, "timestamp": "0001-01-01T00:00:00+05:00"},
            {"score": 20, "timestamp": "9999-12-31T23:59:59-05:00"},
            {"score": 30, "timestamp": "\u00b2"},
            {"score": 40, "timestamp": "0001-01-01T00:00:00"},
        ]
    }

    attempts = normalize_attempts(raw, external_identity="uid-1", now=NOW)

    by_id = {attempt.attempt_id: attempt.timestamp for attempt in attempts}
    assert by_id == {
        "0": NOW,
        "1": NOW,
        "2": NOW,
        "3": datetime(1, 1, 1, tzinfo=UTC),
    }
