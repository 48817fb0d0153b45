"""
Logging configuration — one-time setup for the CLI or an embedding host.

Modules log through ``logging.getLogger(__name__)`` and never configure
handlers themselves.  The console handler writes to stderr so ``--json``
output on stdout stays parseable.

Level precedence:
    --debug / --verbose / --quiet  >  NPMPLUS_LOG_LEVEL  >  WARNING

A second, usually more detailed, handler can write to the file named by
NPMPLUS_LOG_FILE at NPMPLUS_LOG_FILE_LEVEL.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

LEVEL_ENV = "NPMPLUS_LOG_LEVEL"
FILE_ENV = "NPMPLUS_LOG_FILE"
FILE_LEVEL_ENV = "NPMPLUS_LOG_FILE_LEVEL"

# (format, datefmt) by the most detailed level they apply to
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)
_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(threadName)s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Chatty below WARNING and never interesting unless debugging npmplus itself
_NOISY_LOGGERS = ("urllib3", "urllib.request", "asyncio")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root handlers with a stderr handler and an optional file.

    Args:
        level: Console level name.  Unknown names fall back to WARNING.
        log_file: Path of an additional log file.
        log_file_level: Level for the file, ``level`` if omitted.
        quiet_third_party: Hold noisy libraries at WARNING unless the
            console is at DEBUG.
    """
    console_level = _parse_level(level)
    fmt, datefmt = _console_format(console_level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    root_level = console_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    # The root must let through whatever the most verbose handler wants
    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def setup_from_env(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env: Mapping[str, str] | None = None,
) -> str:
    """Configure logging from CLI switches plus NPMPLUS_LOG_* variables.

    Returns the console level that was applied.
    """
    env = os.environ if env is None else env
    level = resolve_level(debug, verbose, quiet, env.get(LEVEL_ENV))
    setup_logging(
        level=level,
        log_file=env.get(FILE_ENV) or None,
        log_file_level=env.get(FILE_LEVEL_ENV) or None,
        quiet_third_party=not debug,
    )
    return level


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env_level: str | None = None,
) -> str:
    """Pick the console level name. Switches win over the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return env_level.upper() if env_level else "WARNING"


def _console_format(level: int) -> tuple[str, str | None]:
    for ceiling, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= ceiling:
            return fmt, datefmt
    return _CONSOLE_FORMATS[-1][1], None


def _parse_level(level: str | None) -> int:
    numeric = logging.getLevelName(level.upper()) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
