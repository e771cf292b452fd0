"""Exception hierarchy and coarse error classification for ChapterScout."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from chapter_scout.crawler.models import ChapterResult

__all__ = [
    "ErrorKind",
    "ScrapeError",
    "ScrapeConfigError",
    "ChapterError",
    "ScrapeCancelled",
    "classify_status",
    "classify_error",
]


class ErrorKind(str, Enum):
    """Coarse error tag surfaced to callers."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    CORS = "cors"
    ABORTED = "aborted"
    UNKNOWN = "unknown"


class ScrapeError(Exception):
    """Base class for every error raised by the scraping core."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind


class ScrapeConfigError(ScrapeError, ValueError):
    """Run-fatal configuration problem, detected before any network activity."""


class ChapterError(ScrapeError):
    """A chapter page could not be loaded."""

    def __init__(self, result: "ChapterResult") -> None:
        super().__init__(result.error or "Chapter failed", result.error_kind or ErrorKind.UNKNOWN)
        self.result = result


class ScrapeCancelled(ScrapeError):
    """The run was cancelled through its signal."""

    def __init__(self, message: str = "Aborted") -> None:
        super().__init__(message, ErrorKind.ABORTED)


def classify_status(status: int) -> Optional[ErrorKind]:
    """Map an HTTP status to an :class:`ErrorKind`; ``None`` for success."""
    if status < 400:
        return None
    if status == 408:
        return ErrorKind.TIMEOUT
    if status == 403:
        return ErrorKind.CORS
    if status >= 500:
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an arbitrary exception to an :class:`ErrorKind`."""
    if isinstance(exc, ScrapeError):
        return exc.kind
    if isinstance(exc, asyncio.CancelledError):
        return ErrorKind.ABORTED
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, (ConnectionError, OSError)):
        return ErrorKind.NETWORK
    message = str(exc).lower()
    if "cors" in message or "proxy" in message:
        return ErrorKind.CORS
    if "network" in message or "failed to fetch" in message:
        return ErrorKind.NETWORK
    if "timeout" in message or "timed out" in message:
        return ErrorKind.TIMEOUT
    return ErrorKind.UNKNOWN
