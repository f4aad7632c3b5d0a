from __future__ import annotations

import json

import pytest

from gestus.config import MissingConfigurationError
from gestus.ui import cli as cli_module


def test_sync_all_prints_the_summary(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    captured: dict[str, object] = {}

    def fake_sync(**kwargs: object) -> dict[str, object]:
        captured.update(kwargs)
        return {"totalIdentities": 1, "totalSynced": 2}

    monkeypatch.setattr(cli_module, "sync_all_gesture_attempts", fake_sync)

    cli_module.main(["sync-all"])

    assert json.loads(capsys.readouterr().out) == {"totalIdentities": 1, "totalSynced": 2}
    should_stop = captured["should_stop"]
    assert callable(should_stop)
    assert should_stop() is False


def test_sync_identity_passes_the_uid(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    calls: list[str] = []

    def fake_sync(identity: str) -> dict[str, object]:
        calls.append(identity)
        return {"identity": identity}

    monkeypatch.setattr(cli_module, "sync_gesture_attempts_for_identity", fake_sync)

    cli_module.main(["--verbose", "sync-identity", "uid-1"])

    assert calls == ["uid-1"]
    assert json.loads(capsys.readouterr().out) == {"identity": "uid-1"}


def test_history_by_user_id(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_history(**kwargs: object) -> dict[str, object]:
        captured.update(kwargs)
        return {"summary": {}, "attempts": []}

    monkeypatch.setattr(cli_module, "load_attempt_history", fake_history)

    cli_module.main(["history", "--user-id", "7"])

    assert captured == {"identity": None, "user_id": 7}


def test_history_requires_a_target() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["history"])

    assert excinfo.value.code == 2


def test_configuration_errors_exit_with_2(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_sync(**_: object) -> dict[str, object]:
        raise MissingConfigurationError("Missing configuration for: FIREBASE_DATABASE_URL")

    monkeypatch.setattr(cli_module, "sync_all_gesture_attempts", fake_sync)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["sync-all"])

    assert excinfo.value.code == 2


def test_unexpected_errors_exit_with_1(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_sync(identity: str) -> dict[str, object]:
        raise RuntimeError(f"boom for {identity}")

    monkeypatch.setattr(cli_module, "sync_gesture_attempts_for_identity", fake_sync)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["sync-identity", "uid-1"])

    assert excinfo.value.code == 1


def test_sigint_requests_a_stop() -> None:
    cli_module._STOP_REQUESTED.clear()  # noqa: SLF001

    cli_module.sigint_handler(2, None)

    assert cli_module._STOP_REQUESTED.is_set()  # noqa: SLF001
