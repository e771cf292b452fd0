# File: chapter_scout/engine.py
"""chapter_scout.engine: entry points that wire configuration, transport and crawler together."""

from __future__ import annotations

import asyncio
import contextlib
import signal as signals
from typing import Callable, Iterable, List, Optional

from chapter_scout.aggregator import ScrapeReport
from chapter_scout.config import ScoutConfig, ScrapeOptions, load_config
from chapter_scout.crawler.cancel import CancelSignal
from chapter_scout.crawler.crawler import ChapterCrawler
from chapter_scout.crawler.fetcher import FetchGateway, RetryPolicy
from chapter_scout.crawler.models import ScrapedImage
from chapter_scout.crawler.transport import Transport, open_transport
from chapter_scout.errors import ChapterError, ScrapeCancelled, ScrapeConfigError
from chapter_scout.events import Event, EventChannel
from chapter_scout.filters import build_image_filter, read_filter_file
from chapter_scout.logger import logger
from chapter_scout.site_presets import detect_website_pattern, preset_to_env_format
from chapter_scout.url_patterns import UrlPatternManager
from chapter_scout.utils import extract_domain, is_http_url, normalize_file_types

__all__ = ["Engine", "scrape", "validate_run"]


def validate_run(root_url: str, file_types: Iterable[str]) -> List[str]:
    """Reject run-fatal configuration; returns the normalized file types."""
    if not root_url or not is_http_url(root_url):
        raise ScrapeConfigError(f"Invalid URL: {root_url!r}")
    types = normalize_file_types(file_types)
    if not types:
        raise ScrapeConfigError("No file types selected")
    return types


async def scrape(
    root_url: str,
    file_types: Iterable[str],
    options: Optional[ScrapeOptions] = None,
    *,
    gateway: Optional[FetchGateway] = None,
    transport: Optional[Transport] = None,
    patterns: Optional[UrlPatternManager] = None,
    channel: Optional[EventChannel] = None,
    signal: Optional[CancelSignal] = None,
) -> List[ScrapedImage]:
    """
    Scrape ``options.chapter_count`` chapters starting at *root_url*.

    Exactly one of *gateway* / *transport* carries the requests. Configuration
    errors raise :class:`ScrapeConfigError` before any request is made.
    """
    types = validate_run(root_url, file_types)
    if gateway is None:
        if transport is None:
            raise ScrapeConfigError("scrape() needs a gateway or a transport")
        gateway = FetchGateway(transport)
    crawler = ChapterCrawler(
        root_url,
        types,
        options or ScrapeOptions(),
        gateway,
        patterns=patterns,
        channel=channel,
        signal=signal,
    )
    return await crawler.run()


class Engine:
    """Facade for the CLI and tests: configuration in, :class:`ScrapeReport` out."""

    @staticmethod
    def load_config(path: Optional[str]) -> ScoutConfig:
        return load_config(path)

    def __init__(self, config: ScoutConfig) -> None:
        self.config = config

    def build_patterns(self, root_url: Optional[str] = None) -> UrlPatternManager:
        """
        Rules from ``SCOUT_*`` environment variables, then from ``patterns_file``.

        When *root_url* belongs to a known reader site without a configured
        rule, that site's preset is added.
        """
        patterns = UrlPatternManager.from_environ()
        if self.config.patterns_file is not None:
            patterns.import_from_env_format(self.config.patterns_file.read_text(encoding="utf-8"))
        if root_url and not patterns.has_pattern_for(extract_domain(root_url)):
            preset = detect_website_pattern(root_url)
            if preset is not None and preset.generates_urls:
                logger.info("Using %s preset for %s", preset.name, extract_domain(root_url))
                patterns.import_from_env_format(preset_to_env_format(preset))
        return patterns

    def build_options(self, filters: Iterable[str] = (), **overrides: object) -> ScrapeOptions:
        """Configured scrape options with *overrides* and the image filter applied."""
        patterns = list(filters)
        if self.config.filters_file is not None:
            patterns = read_filter_file(self.config.filters_file) + patterns
        update = {k: v for k, v in overrides.items() if v is not None}
        if patterns:
            update["image_filter"] = build_image_filter(patterns)
        data = {**self.config.scrape.model_dump(), **update}
        return ScrapeOptions(**data)

    async def scrape(
        self,
        root_url: str,
        *,
        file_types: Optional[Iterable[str]] = None,
        options: Optional[ScrapeOptions] = None,
        patterns: Optional[UrlPatternManager] = None,
        channel: Optional[EventChannel] = None,
        signal: Optional[CancelSignal] = None,
    ) -> ScrapeReport:
        """Run one scrape; cancellation and chapter failures end up in the report."""
        types = validate_run(root_url, self.config.file_types if file_types is None else file_types)
        async with open_transport(self.config) as transport:
            gateway = FetchGateway(transport, RetryPolicy.from_config(self.config))
            crawler = ChapterCrawler(
                root_url,
                types,
                options or self.build_options(),
                gateway,
                patterns=patterns if patterns is not None else self.build_patterns(root_url),
                channel=channel,
                signal=signal,
            )
            try:
                await crawler.run()
            except ScrapeCancelled:
                logger.warning("Scrape of %s cancelled", root_url)
            except ChapterError as exc:
                logger.error("Chapter could not be loaded: %s", exc.message)
        return crawler.report

    def start_scan(
        self,
        root_url: str,
        *,
        file_types: Optional[Iterable[str]] = None,
        options: Optional[ScrapeOptions] = None,
        timeout: Optional[float] = None,
        on_event: Optional[Callable[[Event], None]] = None,
        cancel_on_sigint: bool = False,
    ) -> ScrapeReport:
        """Blocking wrapper around :meth:`scrape`; *timeout* cancels the run instead of killing it."""
        logger.info("Starting scrape…")

        async def _consume(channel: EventChannel) -> None:
            async for event in channel:
                on_event(event)  # type: ignore[misc]

        def _expire(cancel: CancelSignal) -> None:
            logger.error("Scrape did not finish within %s seconds", timeout)
            cancel.cancel()

        async def _runner() -> ScrapeReport:
            loop = asyncio.get_running_loop()
            cancel = CancelSignal()
            channel = EventChannel()
            consumer = asyncio.create_task(_consume(channel)) if on_event is not None else None
            timer = loop.call_later(timeout, _expire, cancel) if timeout else None
            if cancel_on_sigint:
                # not available on every platform's event loop
                with contextlib.suppress(NotImplementedError):
                    loop.add_signal_handler(signals.SIGINT, cancel.cancel)
            try:
                report = await self.scrape(
                    root_url, file_types=file_types, options=options, channel=channel, signal=cancel
                )
            finally:
                if timer is not None:
                    timer.cancel()
                if cancel_on_sigint:
                    with contextlib.suppress(NotImplementedError):
                        loop.remove_signal_handler(signals.SIGINT)
                if consumer is not None:
                    if channel.closed:
                        await consumer
                    else:
                        consumer.cancel()
            return report

        try:
            return asyncio.run(_runner())
        except ScrapeConfigError as exc:
            logger.error("Invalid scrape configuration: %s", exc)
            raise
        except Exception as exc:
            logger.error("Scrape failed: %s", exc)
            raise
