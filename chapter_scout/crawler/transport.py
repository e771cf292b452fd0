# chapter_scout/crawler/transport.py
"""
Transports: the only code that performs HTTP I/O.

The scraping core talks to target sites exclusively through a
:class:`Transport`. :class:`ProxyTransport` goes through the CORS proxy
endpoint (``POST /api/fetch`` with ``{"url", "method"}``);
:class:`DirectTransport` performs the same request the proxy would.
"""
from __future__ import annotations

import base64
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol, runtime_checkable
from urllib.parse import urlparse, urlunparse

from aiohttp import ClientSession, ClientTimeout

from chapter_scout.config import ScoutConfig
from chapter_scout.crawler.models import FetchResult
from chapter_scout.errors import ErrorKind, ScrapeError
from chapter_scout.logger import get_logger

PROXY_ENDPOINT = "/api/fetch"

_TEXT_TYPES = ("text/", "application/json", "application/xml", "application/xhtml")


class TransportError(ScrapeError):
    """The transport could not produce a response."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorKind.NETWORK)


@runtime_checkable
class Transport(Protocol):
    async def fetch(self, url: str, method: str = "GET") -> FetchResult:
        ...


def proxy_endpoint(proxy_url: str) -> str:
    """Append the fetch endpoint to a bare proxy origin."""
    parsed = urlparse(proxy_url)
    if parsed.path in ("", "/"):
        parsed = parsed._replace(path=PROXY_ENDPOINT)
    return urlunparse(parsed)


class ProxyTransport:
    """Fetch through the CORS proxy."""

    def __init__(self, session: ClientSession, proxy_url: str) -> None:
        self.session = session
        self.endpoint = proxy_endpoint(proxy_url)
        self.logger = get_logger("transport")

    async def fetch(self, url: str, method: str = "GET") -> FetchResult:
        async with self.session.post(self.endpoint, json={"url": url, "method": method}) as resp:
            raw = await resp.text()
            try:
                payload = json.loads(raw) if raw else {}
            except json.JSONDecodeError as exc:
                raise TransportError(f"Proxy returned invalid JSON ({resp.status})") from exc

        if not isinstance(payload, dict) or "status" not in payload:
            # error envelope such as {"error": "...", "type": "timeout"}
            error = payload.get("error") if isinstance(payload, dict) else None
            self.logger.debug("Proxy error for %s %s: %s (%s)", method, url, error, resp.status)
            status = resp.status if resp.status >= 400 else 500
            return FetchResult(status, "")

        body = payload.get("body")
        if body is None:
            body = ""
        elif not isinstance(body, str):
            body = json.dumps(body)
        return FetchResult(int(payload.get("status") or 200), body)


class DirectTransport:
    """Fetch target sites directly, the way the proxy does on its side."""

    def __init__(
        self,
        session: ClientSession,
        timeout: float = 5.0,
        user_agent: str = "Mozilla/5.0 (compatible; ChapterScout/1.0)",
    ) -> None:
        self.session = session
        self.timeout = ClientTimeout(total=timeout)
        self.user_agent = user_agent

    def _headers(self, method: str) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "*/*"
            if method == "HEAD"
            else "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "Cache-Control": "no-cache",
        }

    async def fetch(self, url: str, method: str = "GET") -> FetchResult:
        async with self.session.request(
            method,
            url,
            headers=self._headers(method),
            timeout=self.timeout,
            allow_redirects=True,
        ) as resp:
            if method == "HEAD":
                return FetchResult(resp.status, "")
            ctype = resp.headers.get("Content-Type", "text/plain").lower()
            if any(t in ctype for t in _TEXT_TYPES):
                return FetchResult(resp.status, await resp.text(errors="replace"))
            data = await resp.read()
            return FetchResult(resp.status, base64.b64encode(data).decode("ascii"))


@asynccontextmanager
async def open_transport(config: ScoutConfig) -> AsyncIterator[Transport]:
    """Yield the transport described by *config* with a managed session."""
    timeout = ClientTimeout(total=config.timeout)
    async with ClientSession(timeout=timeout, raise_for_status=False) as session:
        if config.proxy_url is not None:
            yield ProxyTransport(session, str(config.proxy_url))
        else:
            yield DirectTransport(session, timeout=config.timeout, user_agent=config.user_agent)


__all__ = [
    "Transport",
    "TransportError",
    "ProxyTransport",
    "DirectTransport",
    "open_transport",
    "proxy_endpoint",
]
