# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from signal import SIGINT, default_int_handler, signal
from threading import Event
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from gestus.app import (
    load_attempt_history,
    sync_all_gesture_attempts,
    sync_gesture_attempts_for_identity,
)
from gestus.config import ConfigurationError, configure_logging

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

_STOP_REQUESTED = Event()


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reconcile gesture-practice attempts from Firebase into the school database"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sync-all", help="Reconcile the attempts of every identity")

    sync_identity = subparsers.add_parser(
        "sync-identity",
        help="Reconcile the attempts of one identity",
    )
    sync_identity.add_argument("uid", type=str, help="External identity (Firebase uid)")

    history = subparsers.add_parser("history", help="Show stored attempts and their summary")
    target = history.add_mutually_exclusive_group(required=True)
    target.add_argument("--identity", type=str, help="External identity (Firebase uid)")
    target.add_argument("--user-id", type=int, help="Internal user id")

    return parser.parse_args(list(argv))


def _emit(payload: dict[str, object]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
    _STOP_REQUESTED.clear()
    previous_handler = signal(SIGINT, sigint_handler)

    try:
        if parsed_args.command == "sync-all":
            _emit(sync_all_gesture_attempts(should_stop=_STOP_REQUESTED.is_set))
        elif parsed_args.command == "sync-identity":
            _emit(sync_gesture_attempts_for_identity(parsed_args.uid))
        elif parsed_args.command == "history":
            _emit(
                load_attempt_history(
                    identity=parsed_args.identity,
                    user_id=parsed_args.user_id,
                )
            )
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except (ValueError, ConfigurationError):
        log.exception("Invalid arguments or configuration")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during sync")
        sys.exit(1)
    finally:
        if previous_handler is not None:
            signal(SIGINT, previous_handler)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Stop a running sweep after the current identity; a second Ctrl+C aborts."""
    log.warning("Stop requested (Ctrl+C); finishing the current identity")
    _STOP_REQUESTED.set()
    signal(SIGINT, default_int_handler)


if __name__ == "__main__":
    main()
