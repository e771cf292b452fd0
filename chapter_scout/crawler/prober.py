# chapter_scout/crawler/prober.py
"""
Existence probing of candidate image URLs.

Candidates are checked in windows of ``batch_size``. Inside a window they are
confirmed strictly in order and the first miss ends the window, so an image
that follows a gap is never reported. A window without any confirmation
counts as a miss; ``threshold`` misses in a row end the scan.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from itertools import islice
from typing import AsyncIterator, Container, Iterable, List, Optional, Sequence

from chapter_scout.crawler.cancel import CancelSignal
from chapter_scout.crawler.fetcher import FetchGateway
from chapter_scout.logger import get_logger

DEFAULT_BATCH_SIZE = 3
DEFAULT_SCAN_CEILING = 500
DEFAULT_LOAD_TIMEOUT = 5.0


class ValidationMode(str, Enum):
    #: HEAD request, any status below 400 exists
    HEAD = "head"
    #: full GET bounded by a timeout, a non-empty body exists
    LOAD = "load"


class BatchProber:
    """Ordered, threshold-bounded existence checks through a :class:`FetchGateway`."""

    def __init__(
        self,
        gateway: FetchGateway,
        mode: ValidationMode = ValidationMode.LOAD,
        *,
        threshold: int = 2,
        batch_size: int = DEFAULT_BATCH_SIZE,
        ceiling: int = DEFAULT_SCAN_CEILING,
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
        parallel: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.gateway = gateway
        self.mode = ValidationMode(mode)
        self.threshold = threshold
        self.batch_size = batch_size
        self.ceiling = ceiling
        self.load_timeout = load_timeout
        self.parallel = parallel
        self.logger = logger or get_logger("prober")
        self.misses = 0
        self.batches = 0

    @property
    def exhausted(self) -> bool:
        """True when the last scan ended on the consecutive-miss threshold."""
        return self.misses >= self.threshold

    async def exists(self, url: str, signal: Optional[CancelSignal] = None) -> bool:
        if self.mode is ValidationMode.HEAD:
            result = await self.gateway.fetch(url, "HEAD", signal)
            if not result.ok:
                self.logger.debug("Image validation failed: %s (%d)", url, result.status)
            return result.ok

        try:
            result = await asyncio.wait_for(self.gateway.fetch(url, "GET", signal), self.load_timeout)
        except asyncio.TimeoutError:
            self.logger.debug("Image load test timed out: %s", url)
            return False
        loaded = result.ok and bool(result.body)
        if not loaded:
            self.logger.debug("Image load test failed: %s (%d)", url, result.status)
        return loaded

    async def probe_batch(
        self, batch: Sequence[str], signal: Optional[CancelSignal] = None
    ) -> AsyncIterator[str]:
        """Yield confirmed URLs of *batch* in order, up to the first miss."""
        if not self.parallel:
            for url in batch:
                if signal is not None:
                    signal.raise_if_cancelled()
                if not await self.exists(url, signal):
                    return
                yield url
            return

        probes = [asyncio.ensure_future(self.exists(url, signal)) for url in batch]
        try:
            checks: List[bool] = list(await asyncio.gather(*probes))
        except BaseException:
            # no probe of this batch outlives a failed or cancelled one
            for probe in probes:
                probe.cancel()
            await asyncio.gather(*probes, return_exceptions=True)
            raise
        if signal is not None:
            signal.raise_if_cancelled()
        cut = checks.index(False) if False in checks else len(checks)
        for url in batch[:cut]:
            yield url

    async def scan(
        self,
        candidates: Iterable[str],
        signal: Optional[CancelSignal] = None,
        skip: Optional[Container[str]] = None,
    ) -> AsyncIterator[str]:
        """
        Probe *candidates* window by window and yield every confirmed URL.

        *skip* is consulted when each window is formed; URLs in it are never
        probed. A window left empty by *skip* counts as a miss.
        """
        self.misses = 0
        self.batches = 0
        remaining = islice(candidates, self.ceiling)

        while self.misses < self.threshold:
            window = list(islice(remaining, self.batch_size))
            if not window:
                break
            if signal is not None:
                signal.raise_if_cancelled()

            batch = [url for url in window if skip is None or url not in skip]
            self.batches += 1
            confirmed = 0
            async for url in self.probe_batch(batch, signal):
                confirmed += 1
                yield url

            if confirmed:
                self.misses = 0
            else:
                self.misses += 1
                self.logger.debug(
                    "Batch %d confirmed nothing (%d/%d consecutive misses)",
                    self.batches,
                    self.misses,
                    self.threshold,
                )

        if self.exhausted:
            self.logger.debug("Scan stopped after %d batches: miss threshold reached", self.batches)


__all__ = ["BatchProber", "ValidationMode", "DEFAULT_BATCH_SIZE", "DEFAULT_SCAN_CEILING"]
