"""Shared logging helpers for Gestus."""

from __future__ import annotations

import logging


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once with a terse CLI format.

    Pass ``force=True`` to reconfigure, e.g. when ``--verbose`` is given after
    logging was already set up. Noisy HTTP client loggers stay at WARNING
    unless DEBUG is requested.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    client_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in ("httpx", "httpcore", "hishel"):
        logging.getLogger(name).setLevel(client_level)
