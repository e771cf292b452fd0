# File: chapter_scout/aggregator.py
"""chapter_scout.aggregator: results of one scrape run."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from chapter_scout.crawler.models import ChapterResult, RunOutcome, ScrapedImage
from chapter_scout.errors import ErrorKind

__all__ = ["ScrapeReport"]


@dataclass(slots=True)
class ScrapeReport:
    """Images and per-chapter outcomes of a run, in the order they happened."""

    root_url: str
    images: List[ScrapedImage] = field(default_factory=list)
    chapter_results: List[ChapterResult] = field(default_factory=list)
    outcome: RunOutcome = RunOutcome.COMPLETED
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def failed_chapters(self) -> List[int]:
        return [r.chapter_number for r in self.chapter_results if not r.success]

    @property
    def successful_chapters(self) -> List[int]:
        return [r.chapter_number for r in self.chapter_results if r.success]

    def record(self, result: ChapterResult) -> None:
        self.chapter_results.append(result)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "root_url": self.root_url,
            "outcome": self.outcome.value,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "found": len(self.images),
            "images": [image.as_dict() for image in self.images],
            "chapter_results": [result.as_dict() for result in self.chapter_results],
            "failed_chapters": self.failed_chapters,
            "successful_chapters": self.successful_chapters,
        }

    def json(self, *, pretty: bool = False) -> str:
        """JSON representation of the report."""
        return json.dumps(self.as_dict(), ensure_ascii=False, indent=2 if pretty else None)
