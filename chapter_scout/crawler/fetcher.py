# chapter_scout/crawler/fetcher.py
"""
Fetch gateway: the single choke point for outbound requests.

Concurrent calls for the same ``(method, url)`` share one physical request;
rate limiting (429), SSL handshake failures (525) and timeouts (408) are
retried with exponential backoff inside that shared request.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Awaitable, Callable, Dict, Mapping, Optional, Tuple

from aiohttp import ClientError

from chapter_scout.config import ScoutConfig
from chapter_scout.crawler.cancel import CancelSignal, cancellable_sleep
from chapter_scout.crawler.models import FetchResult
from chapter_scout.crawler.transport import Transport, TransportError
from chapter_scout.errors import ScrapeCancelled
from chapter_scout.logger import get_logger

RATE_LIMITED = 429
SSL_HANDSHAKE_FAILED = 525
REQUEST_TIMEOUT = 408
TRANSPORT_FAILURE = 500

_RETRY_LABELS: Mapping[int, str] = {
    RATE_LIMITED: "Rate limited",
    SSL_HANDSHAKE_FAILED: "SSL handshake failed",
    REQUEST_TIMEOUT: "Request timeout",
}

SleepFn = Callable[[float, Optional[CancelSignal]], Awaitable[None]]
_Key = Tuple[str, str]


def _default_delays() -> Dict[int, float]:
    return {RATE_LIMITED: 1.0, SSL_HANDSHAKE_FAILED: 2.0, REQUEST_TIMEOUT: 1.5}


@dataclass(frozen=True)
class RetryPolicy:
    """Retryable statuses with their base delays (seconds)."""

    max_retries: int = 3
    delays: Mapping[int, float] = field(default_factory=_default_delays)

    @classmethod
    def from_config(cls, config: ScoutConfig) -> RetryPolicy:
        d = config.retry_delays
        return cls(
            max_retries=config.retry_times,
            delays={RATE_LIMITED: d.rate_limit, SSL_HANDSHAKE_FAILED: d.ssl, REQUEST_TIMEOUT: d.timeout},
        )

    def is_retryable(self, status: int) -> bool:
        return status in self.delays

    def delay_for(self, status: int, retries_left: int) -> float:
        """``base * 2 ** (max_retries - retries_left)``."""
        return self.delays[status] * 2 ** (self.max_retries - retries_left)


class FetchGateway:
    """Deduplicating, retrying front of a :class:`Transport`."""

    def __init__(
        self,
        transport: Transport,
        policy: Optional[RetryPolicy] = None,
        *,
        logger: Optional[logging.Logger] = None,
        sleep: SleepFn = cancellable_sleep,
    ) -> None:
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self.logger = logger or get_logger("fetcher")
        self._sleep = sleep
        self._pending: Dict[_Key, asyncio.Task[FetchResult]] = {}
        #: physical requests handed to the transport (retries included)
        self.requests_sent = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def clear(self) -> None:
        """Forget pending entries; running requests finish on their own."""
        if self._pending:
            self.logger.debug("Clearing request cache (%d entries)", len(self._pending))
        self._pending.clear()

    async def fetch(
        self, url: str, method: str = "GET", signal: Optional[CancelSignal] = None
    ) -> FetchResult:
        """
        Return the outcome of ``method url``.

        HTTP error statuses are returned, never raised. Raises
        :class:`ScrapeCancelled` when *signal* fires.
        """
        method = method.upper()
        if method not in ("GET", "HEAD"):
            raise ValueError(f"unsupported method: {method}")
        if signal is not None:
            signal.raise_if_cancelled()

        key = (method, url)
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._request(url, method, signal))
            self._pending[key] = task
            task.add_done_callback(partial(self._forget, key))
        else:
            self.logger.debug("Request deduplication: reusing pending %s %s", method, url)
        # shielded: a caller giving up must not cancel the shared request
        return await asyncio.shield(task)

    def _forget(self, key: _Key, task: asyncio.Task[FetchResult]) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled():
            # mark as retrieved when every caller already walked away
            task.exception()

    async def _request(self, url: str, method: str, signal: Optional[CancelSignal]) -> FetchResult:
        retries_left = self.policy.max_retries
        while True:
            if signal is not None:
                signal.raise_if_cancelled()
            self.requests_sent += 1
            try:
                call = self.transport.fetch(url, method)
                result = await (signal.guard(call) if signal is not None else call)
            except ScrapeCancelled:
                raise
            except asyncio.TimeoutError:
                self.logger.debug("Transport timeout for %s %s", method, url)
                result = FetchResult(REQUEST_TIMEOUT, "")
            except (ClientError, OSError, TransportError, ValueError) as exc:
                self.logger.error("Fetch error for %s: %s", url, exc)
                return FetchResult(TRANSPORT_FAILURE, "")

            if signal is not None:
                signal.raise_if_cancelled()

            if self.policy.is_retryable(result.status) and retries_left > 0:
                delay = self.policy.delay_for(result.status, retries_left)
                self.logger.warning(
                    "%s (%d) for %s, retrying in %.2fs (%d retries left)",
                    _RETRY_LABELS.get(result.status, "Retryable status"),
                    result.status,
                    url,
                    delay,
                    retries_left,
                )
                await self._sleep(delay, signal)
                retries_left -= 1
                continue

            if result.status == SSL_HANDSHAKE_FAILED:
                self.logger.error("SSL handshake failed permanently for %s after all retries", url)
            return result


__all__ = ["FetchGateway", "RetryPolicy", "SleepFn"]
