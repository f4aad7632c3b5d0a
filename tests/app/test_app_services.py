from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from gestus.app import (
    load_attempt_history,
    sync_all_gesture_attempts,
    sync_gesture_attempts_for_identity,
)
from gestus.domain.model import InternalUser
from tests.helpers.attempts import FakeAttemptSource, make_profile

if TYPE_CHECKING:
    from pathlib import Path

    from gestus.adapters.sqlalchemy import SqlAlchemyStorage


def _wave_record(first_score: float) -> dict[str, object]:
    return {
        "wave": {
            "attempts": [
                {"percentage": first_score, "timestamp": 1000},
                {"score": 55, "timestamp": 2000},
            ]
        }
    }


def _attempts(history: dict[str, object]) -> list[dict[str, object]]:
    attempts = history["attempts"]
    assert isinstance(attempts, list)
    return attempts  # type: ignore[return-value]


def test_end_to_end_sweep_is_idempotent(sqlite_storage: SqlAlchemyStorage) -> None:
    first = sync_all_gesture_attempts(
        source=FakeAttemptSource({"u1": _wave_record(0.9)}),
        storage=sqlite_storage,
    )
    history = load_attempt_history(identity="u1", storage=sqlite_storage)

    assert first["totalSynced"] == 2
    assert first["totalErrors"] == 0
    rows = _attempts(history)
    assert [(row["gestureId"], row["attemptId"], row["score"]) for row in rows] == [
        ("wave", "1", 55),
        ("wave", "0", 90),
    ]

    second = sync_all_gesture_attempts(
        source=FakeAttemptSource({"u1": _wave_record(95)}),
        storage=sqlite_storage,
    )
    history = load_attempt_history(identity="u1", storage=sqlite_storage)

    assert second["totalSynced"] == 2
    rows = _attempts(history)
    assert len(rows) == 2
    by_attempt = {row["attemptId"]: row for row in rows}
    assert by_attempt["0"]["score"] == 95
    assert by_attempt["1"]["score"] == 55
    assert history["summary"] == {
        "totalAttempts": 2,
        "averageScore": 75,
        "bestScore": 95,
        "lastPractice": "1970-01-01T00:00:02+00:00",
        "progressPercent": 75,
    }


def test_sync_identity_links_known_users(sqlite_storage: SqlAlchemyStorage) -> None:
    with sqlite_storage.unit_of_work() as uow:
        user = InternalUser(name="Ana", email="ana@school.test")
        uow.session.add(user)
        uow.commit()
    source = FakeAttemptSource(
        {"u1": _wave_record(0.5)},
        profiles={"u1": make_profile("u1", email="Ana@School.test")},
    )

    result = sync_gesture_attempts_for_identity("u1", source=source, storage=sqlite_storage)
    history = load_attempt_history(user_id=user.id, storage=sqlite_storage)

    assert result["internalUserId"] == user.id
    assert result["synced"] == 2
    assert {row["userId"] for row in _attempts(history)} == {user.id}


def test_sync_identity_rejects_blank_identity(sqlite_storage: SqlAlchemyStorage) -> None:
    with pytest.raises(ValueError, match="empty"):
        sync_gesture_attempts_for_identity("  ", source=FakeAttemptSource({}), storage=sqlite_storage)


@pytest.mark.parametrize(
    "kwargs",
    [{}, {"identity": "u1", "user_id": 1}],
)
def test_history_needs_exactly_one_target(
    sqlite_storage: SqlAlchemyStorage,
    kwargs: dict[str, object],
) -> None:
    with pytest.raises(ValueError, match="exactly one"):
        load_attempt_history(storage=sqlite_storage, **kwargs)  # type: ignore[arg-type]


def test_services_manage_their_own_storage(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("DATABASE_URI", f"sqlite+pysqlite:///{tmp_path / 'gestus.db'}")

    summary = sync_all_gesture_attempts(source=FakeAttemptSource({"u1": _wave_record(0.9)}))
    history = load_attempt_history(identity="u1")

    assert summary["totalSynced"] == 2
    assert len(_attempts(history)) == 2
