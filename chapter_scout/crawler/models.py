# chapter_scout/crawler/models.py
"""
Data models shared by the gateway, the prober and the chapter crawler.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Tuple

from chapter_scout.errors import ErrorKind


@dataclass(slots=True, frozen=True)
class FetchResult:
    """Status and body of one request; bodies of HEAD requests are empty."""

    status: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return self.status < 400


class SourceKind(str, Enum):
    SEQUENTIAL = "sequential"
    DISCOVERED = "discovered"


@dataclass(slots=True, frozen=True)
class ScrapedImage:
    """An image confirmed to exist. ``url`` is the identity of the image."""

    url: str
    file_type: str
    alt_text: str
    source: SourceKind
    size: Optional[int] = None
    dimensions: Optional[Tuple[int, int]] = None

    def as_dict(self) -> dict:
        data = {
            "url": self.url,
            "file_type": self.file_type,
            "alt_text": self.alt_text,
            "source": self.source.value,
        }
        if self.size is not None:
            data["size"] = self.size
        if self.dimensions is not None:
            data["dimensions"] = {"width": self.dimensions[0], "height": self.dimensions[1]}
        return data


@dataclass(slots=True, frozen=True)
class SequentialPattern:
    """Zero-padded, incrementing file names below one base path."""

    base_path: str
    extension: str
    pad_width: int = 3

    def candidate(self, index: int) -> str:
        return f"{self.base_path}{index:0{self.pad_width}d}.{self.extension}"

    def candidates(self, start: int = 1, limit: int = 500) -> Iterator[str]:
        """Yield candidate URLs for indices ``start`` … ``limit`` (inclusive)."""
        for index in range(start, limit + 1):
            yield self.candidate(index)


@dataclass(slots=True, frozen=True)
class ChapterResult:
    """Outcome of one chapter attempt."""

    chapter_number: int
    resolved_url: str
    success: bool
    image_count: int
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def as_dict(self) -> dict:
        return {
            "chapter_number": self.chapter_number,
            "resolved_url": self.resolved_url,
            "success": self.success,
            "image_count": self.image_count,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    # a chapter failed during a multi-chapter run
    STOPPED = "stopped"
    CANCELLED = "cancelled"
    FAILED = "failed"
