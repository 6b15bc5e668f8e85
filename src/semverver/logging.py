"""Logging helpers for semverver.

One verbosity setting governs both our own log records and cargo's progress
output on stderr: ``quiet`` hides cargo's ``Compiling ...`` lines as well as
informational records.
"""

from __future__ import annotations

import logging
from typing import Literal, get_args

Verbosity = Literal["quiet", "normal", "verbose"]

_LEVEL_BY_VERBOSITY: dict[Verbosity, int] = {
    "quiet": logging.WARNING,
    "normal": logging.INFO,
    "verbose": logging.DEBUG,
}

# Chatty third-party loggers; only their warnings are of interest.
_QUIET_LIBRARIES = ("httpx", "httpcore")


def resolve_verbosity(configured: str, *, quiet: bool = False) -> Verbosity:
    """Combine ``output.verbosity`` from the config with the ``-q`` flag."""

    if quiet:
        return "quiet"
    if configured in get_args(Verbosity):
        return configured  # type: ignore[return-value]
    logging.getLogger(__name__).warning("Unknown verbosity %r, using 'normal'", configured)
    return "normal"


def cargo_is_quiet(verbosity: Verbosity) -> bool:
    return verbosity == "quiet"


def configure_logging(verbosity: Verbosity = "normal") -> int:
    """Configure root logging for a ``cargo semver`` run; returns the level."""

    level = _LEVEL_BY_VERBOSITY.get(verbosity, logging.INFO)
    logging.basicConfig(
        level=level,
        format="[%(levelname).1s] %(message)s",
    )
    logging.getLogger().setLevel(level)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    logging.getLogger(__name__).debug(
        "Logging configured with level %s (cargo quiet: %s)", logging.getLevelName(level), cargo_is_quiet(verbosity)
    )
    return level
