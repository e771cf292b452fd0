"""Logging for **ChapterScout**.

All records go through one project logger, ``ChapterScout``. The gateway,
prober, crawler and transports take children of it from :func:`get_logger`
(``ChapterScout.fetcher``, ``ChapterScout.prober`` …) unless a caller injects
its own :class:`logging.Logger`::

    from chapter_scout.logger import get_logger
    log = get_logger("fetcher")
    log.debug("GET %s", url)

Console output goes to stderr; stdout belongs to the JSON report.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Iterator, Mapping, Union

LOGGER_NAME: Final[str] = "ChapterScout"
DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# rotating log file: 5 MiB, three backups
_MAX_BYTES: Final[int] = 5 * 1024 * 1024
_BACKUPS: Final[int] = 3

_LevelT = Union[int, str]


def get_logger(component: str | None = None) -> logging.Logger:
    """The project logger, or its child named *component*."""
    if not component:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{component}")


def _handlers(log_file: str | Path | None) -> Iterator[logging.Handler]:
    yield logging.StreamHandler(sys.stderr)
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        yield RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=_BACKUPS, encoding="utf-8")


def configure(
    *,
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
    replace_handlers: bool = True,
    components: Mapping[str, _LevelT] | None = None,
) -> logging.Logger:
    """(Re)configure the project logger.

    Parameters
    ----------
    level
        Level of the project logger (``"DEBUG"``, ``logging.INFO`` …).
    log_file
        Optional rotating logfile next to the stderr output.
    log_format
        :class:`logging.Formatter` format string for every handler.
    replace_handlers
        Drop previously installed handlers first.
    components
        Per-component levels, e.g. ``{"fetcher": "WARNING"}`` to hide
        per-request noise while the rest logs at DEBUG.
    """
    root = get_logger()
    root.setLevel(level)
    if replace_handlers:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(log_format)
    for handler in _handlers(log_file):
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.propagate = False

    for component, component_level in (components or {}).items():
        get_logger(component).setLevel(component_level)
    return root


def init_logging(
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Shorthand used by the CLI: fresh handlers at *level*."""
    return configure(level=level, log_file=log_file, log_format=log_format, replace_handlers=True)


logger: logging.Logger = get_logger()

__all__ = ["logger", "configure", "init_logging", "get_logger", "LOGGER_NAME", "DEFAULT_FORMAT"]
