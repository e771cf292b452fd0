# File: chapter_scout/events.py
"""chapter_scout.events: the outbound event stream of a scrape run."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, List, Optional, Tuple, Union

from chapter_scout.crawler.models import ChapterResult, RunOutcome, ScrapedImage
from chapter_scout.errors import ErrorKind

__all__ = ["Stage", "ProgressEvent", "ImageEvent", "FinishedEvent", "Event", "EventChannel"]


class Stage(str, Enum):
    LOADING = "loading"
    SCANNING = "scanning"
    ANALYZING = "analyzing"
    PROCESSING = "processing"


@dataclass(frozen=True)
class ProgressEvent:
    """Stage transition with running counts."""

    stage: Stage
    processed: int
    total: int
    found: int
    current_url: Optional[str] = None
    chapter_results: Optional[Tuple[ChapterResult, ...]] = None
    failed_chapters: Optional[Tuple[int, ...]] = None
    successful_chapters: Optional[Tuple[int, ...]] = None


@dataclass(frozen=True)
class ImageEvent:
    """A confirmed, non-filtered image."""

    image: ScrapedImage


@dataclass(frozen=True)
class FinishedEvent:
    """Terminal event; nothing follows it."""

    outcome: RunOutcome
    found: int
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


Event = Union[ProgressEvent, ImageEvent, FinishedEvent]


class EventChannel:
    """Single-producer, unbounded queue of run events.

    ``async for event in channel`` yields events until the terminal
    :class:`FinishedEvent` (included). Events published after :meth:`close`
    are dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: Event) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    def close(self, finished: FinishedEvent) -> None:
        if self._closed:
            return
        self.publish(finished)
        self._closed = True

    async def get(self) -> Event:
        return await self._queue.get()

    def drain(self) -> List[Event]:
        """Events queued so far, without waiting."""
        events: List[Event] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            event = await self._queue.get()
            yield event
            if isinstance(event, FinishedEvent):
                return
