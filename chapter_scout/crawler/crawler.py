# === FILE: chapter_scout/crawler/crawler.py ===
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from chapter_scout.aggregator import ScrapeReport
from chapter_scout.config import ScrapeOptions
from chapter_scout.crawler.cancel import CancelSignal
from chapter_scout.crawler.fetcher import FetchGateway
from chapter_scout.crawler.models import (
    ChapterResult,
    FetchResult,
    RunOutcome,
    ScrapedImage,
    SourceKind,
)
from chapter_scout.crawler.prober import BatchProber, ValidationMode
from chapter_scout.errors import (
    ChapterError,
    ErrorKind,
    ScrapeCancelled,
    classify_error,
    classify_status,
)
from chapter_scout.events import EventChannel, FinishedEvent, ImageEvent, ProgressEvent, Stage
from chapter_scout.logger import get_logger
from chapter_scout.parser.image_extractor import extract_image_urls, get_file_type
from chapter_scout.parser.sequence import detect_sequential_pattern
from chapter_scout.url_patterns import UrlPatternManager, extract_chapter_number
from chapter_scout.utils import extract_domain, normalize_file_types

__all__ = ("ChapterCrawler", "classify_page")

_PAGE_ERRORS = {
    408: "Request timeout (5 seconds)",
    404: "Chapter not found",
    403: "Access forbidden",
}


def classify_page(result: FetchResult) -> Optional[Tuple[str, ErrorKind]]:
    """Error message and kind for an unusable chapter page, ``None`` when usable."""
    if result.status >= 400:
        message = _PAGE_ERRORS.get(result.status, f"HTTP {result.status}")
        return message, classify_status(result.status) or ErrorKind.UNKNOWN
    if not result.body or not result.body.strip():
        return "Empty response from server", ErrorKind.UNKNOWN
    return None


class ChapterCrawler:
    """
    Scrapes ``chapter_count`` consecutive chapters starting at ``root_url``.

    One instance drives one run. Every confirmed image goes to the event
    channel as soon as it is known; the run ends with exactly one
    :class:`FinishedEvent`.
    """

    def __init__(
        self,
        root_url: str,
        file_types: Iterable[str],
        options: ScrapeOptions,
        gateway: FetchGateway,
        *,
        patterns: Optional[UrlPatternManager] = None,
        channel: Optional[EventChannel] = None,
        signal: Optional[CancelSignal] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.root_url = root_url
        self.file_types: Sequence[str] = normalize_file_types(file_types)
        self.options = options
        self.gateway = gateway
        self.patterns = patterns if patterns is not None else UrlPatternManager()
        self.channel = channel if channel is not None else EventChannel()
        self.signal = signal if signal is not None else CancelSignal()
        self.logger = logger or get_logger("crawler")
        self.seen_urls: Set[str] = set()
        self._report = ScrapeReport(root_url)
        self._started = False

    @property
    def report(self) -> ScrapeReport:
        return self._report

    @property
    def images(self) -> List[ScrapedImage]:
        return self._report.images

    @property
    def _total(self) -> int:
        return self.options.max_sequence * self.options.chapter_count

    # ------------------------------------------------------------------ run

    async def run(self) -> List[ScrapedImage]:
        """
        Scrape every requested chapter and return the emitted images.

        Raises :class:`ScrapeCancelled` when the signal fires and
        :class:`ChapterError` when the only requested chapter cannot be loaded.
        """
        if self._started:
            raise RuntimeError("ChapterCrawler instances run once")
        self._started = True
        self.gateway.clear()
        count = self.options.chapter_count
        self.logger.info("Scrape started: %s (%d chapter%s)", self.root_url, count, "" if count == 1 else "s")

        try:
            for number in range(1, count + 1):
                if number > 1:
                    await self.signal.sleep(self.options.fetch_interval)
                result = await self._attempt_chapter(number)
                if not result.success and count > 1:
                    self.logger.warning("Chapter %d failed, stopping to prevent chapter skipping", number)
                    self._report.outcome = RunOutcome.STOPPED
                    self._progress(Stage.ANALYZING, current_url=f"Stopped at failed chapter {number}", chapters=True)
                    break
        except (ScrapeCancelled, asyncio.CancelledError):
            self._finish(RunOutcome.CANCELLED, "Aborted", ErrorKind.ABORTED)
            self.logger.info("Scrape cancelled after %d images", len(self.images))
            raise
        except ChapterError as exc:
            self._finish(RunOutcome.FAILED, exc.message, exc.kind)
            raise
        except Exception as exc:
            self.logger.error("Scrape failed: %s", exc)
            self._finish(RunOutcome.FAILED, str(exc), classify_error(exc))
            raise

        self._progress(Stage.PROCESSING, processed=len(self.images), total=len(self.images), chapters=True)
        if self._report.outcome is RunOutcome.STOPPED:
            failed = self._report.failed_chapters[0]
            message = f"Stopped at failed chapter {failed} to prevent skipping chapters"
            self._progress(
                Stage.PROCESSING, processed=len(self.images), total=len(self.images), current_url=message, chapters=True
            )
            self._finish(RunOutcome.STOPPED, message, None)
        else:
            self._finish(RunOutcome.COMPLETED, None, None)
        self.logger.info(
            "Scrape finished: %d images from %d requests, chapters ok=%s failed=%s",
            len(self.images),
            self.gateway.requests_sent,
            self._report.successful_chapters,
            self._report.failed_chapters,
        )
        return list(self.images)

    def _finish(self, outcome: RunOutcome, error: Optional[str], kind: Optional[ErrorKind]) -> None:
        self._report.outcome = outcome
        self._report.error = error
        self._report.error_kind = kind
        self.channel.close(FinishedEvent(outcome, len(self.images), error, kind))

    def _progress(
        self,
        stage: Stage,
        *,
        processed: Optional[int] = None,
        total: Optional[int] = None,
        current_url: Optional[str] = None,
        chapters: bool = False,
    ) -> None:
        found = len(self.images)
        event = ProgressEvent(
            stage=stage,
            processed=found if processed is None else processed,
            total=self._total if total is None else total,
            found=found,
            current_url=current_url,
        )
        if chapters:
            event = replace(
                event,
                chapter_results=tuple(self._report.chapter_results),
                failed_chapters=tuple(self._report.failed_chapters),
                successful_chapters=tuple(self._report.successful_chapters),
            )
        self.channel.publish(event)

    # -------------------------------------------------------------- chapters

    def chapter_url(self, number: int) -> Optional[str]:
        """URL of chapter *number* of the run (chapter 1 is the root URL)."""
        if number == 1:
            return self.root_url
        first = extract_chapter_number(self.root_url)
        if first is None:
            return None
        return self.patterns.generate_chapter_url(self.root_url, first + number - 1)

    async def _attempt_chapter(self, number: int) -> ChapterResult:
        try:
            result = await self._crawl_chapter(number)
        except ChapterError as exc:
            self._report.record(exc.result)
            self.logger.warning("Chapter %d failed: %s", number, exc.message)
            if self.options.chapter_count == 1:
                raise
            return exc.result
        self._report.record(result)
        if result.success:
            self.logger.info("Chapter %d: %d images", number, result.image_count)
        else:
            self.logger.warning("Chapter %d failed: %s", number, result.error)
        return result

    async def _crawl_chapter(self, number: int) -> ChapterResult:
        url = self.chapter_url(number)
        if url is None:
            raise ChapterError(
                ChapterResult(number, "", False, 0, f"Could not resolve URL for chapter {number}", ErrorKind.UNKNOWN)
            )

        self._progress(Stage.LOADING, current_url=url)
        page = await self.gateway.fetch(url, "GET", self.signal)
        self.signal.raise_if_cancelled()
        failure = classify_page(page)
        if failure is not None:
            message, kind = failure
            raise ChapterError(ChapterResult(number, url, False, 0, message, kind))

        self._progress(Stage.SCANNING, current_url=url)
        discovered = extract_image_urls(page.body, url)
        self.logger.debug("Chapter %d: %d candidate URLs on page", number, len(discovered))

        start = len(self.images)
        pattern = detect_sequential_pattern(discovered)
        confirmed = 0
        if pattern is not None and pattern.extension.lower() in self.file_types:
            self.logger.debug("Sequential pattern %s###.%s (pad %d)", pattern.base_path, pattern.extension, pattern.pad_width)
            confirmed = await self._scan(
                number,
                url,
                pattern.candidates(1, self.options.max_sequence),
                SourceKind.SEQUENTIAL,
                pattern.extension.lower(),
            )
        if confirmed == 0:
            await self._scan(number, url, self._discovery_candidates(discovered), SourceKind.DISCOVERED)

        image_count = len(self.images) - start
        if image_count == 0:
            return ChapterResult(number, url, False, 0, f"No images found in chapter {number}", ErrorKind.UNKNOWN)
        return ChapterResult(number, url, True, image_count)

    def _discovery_candidates(self, discovered: Iterable[str]) -> List[str]:
        candidates: List[str] = []
        for url in discovered:
            if url in self.seen_urls:
                continue
            file_type = get_file_type(url)
            if not file_type or file_type not in self.file_types:
                self.seen_urls.add(url)
                continue
            candidates.append(url)
        return candidates

    def _new_prober(self) -> BatchProber:
        return BatchProber(
            self.gateway,
            ValidationMode.HEAD if self.options.validate_images else ValidationMode.LOAD,
            threshold=self.options.consecutive_miss_threshold,
            batch_size=self.options.batch_size,
            ceiling=self.options.max_sequence,
            load_timeout=self.options.load_timeout,
            parallel=self.options.parallel_probe,
        )

    async def _scan(
        self,
        number: int,
        page_url: str,
        candidates: Iterable[str],
        source: SourceKind,
        file_type: Optional[str] = None,
    ) -> int:
        """Probe *candidates*, emit the confirmed ones; returns the confirmed count (filtered included)."""
        alt_text = f"Image from {extract_domain(page_url)} - Chapter {number}"
        image_filter = self.options.image_filter
        confirmed = 0
        async for url in self._new_prober().scan(candidates, self.signal, skip=self.seen_urls):
            self.signal.raise_if_cancelled()
            self.seen_urls.add(url)
            confirmed += 1
            if image_filter is not None and image_filter(url):
                self.logger.debug("Image filtered out: %s", url)
                continue
            image = ScrapedImage(
                url=url,
                file_type=file_type or get_file_type(url) or "",
                alt_text=alt_text,
                source=source,
            )
            self._report.images.append(image)
            self.channel.publish(ImageEvent(image))
            self._progress(Stage.SCANNING, current_url=url)
        return confirmed
