"""
Logging configuration — one call at CLI startup, inherited everywhere.

Console output mirrors the operator-facing ``[INFO] ...`` lines of the
shell tooling this replaces; ``--debug`` adds timestamps and source
locations. Modules just do ``logger = logging.getLogger(__name__)``.

Level precedence:
    --debug / --verbose / --quiet  >  PVEMIRROR_LOG_LEVEL  >  INFO
"""

from __future__ import annotations

import logging
import os
import sys

LEVEL_ENV = "PVEMIRROR_LOG_LEVEL"
FILE_ENV = "PVEMIRROR_LOG_FILE"
FILE_LEVEL_ENV = "PVEMIRROR_LOG_FILE_LEVEL"

_CONSOLE_FMT = "[%(levelname)s] %(message)s"
_DETAILED_FMT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level name from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(LEVEL_ENV, "INFO")


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler (and optionally a file handler) on root.

    Args:
        level: Console level name; unknown names mean INFO.
        log_file: Append full-detail records to this file as well.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)
    debug = console_level <= logging.DEBUG

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(
        logging.Formatter(_DETAILED_FMT, datefmt="%H:%M:%S") if debug
        else logging.Formatter(_CONSOLE_FMT)
    )
    handlers: list[logging.Handler] = [console]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(_parse_level(log_file_level or level))
        file_handler.setFormatter(
            logging.Formatter(_DETAILED_FMT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers[:] = handlers
    # Root must pass whatever the most verbose handler wants
    root.setLevel(min(h.level for h in handlers))

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    numeric = logging.getLevelName((level or "INFO").upper())
    return numeric if isinstance(numeric, int) else logging.INFO
