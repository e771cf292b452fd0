# File: tests/test_transport.py
from __future__ import annotations

import base64
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import ClientSession, web

from chapter_scout.config import ScoutConfig
from chapter_scout.crawler.models import FetchResult
from chapter_scout.crawler.transport import (
    DirectTransport,
    ProxyTransport,
    TransportError,
    open_transport,
    proxy_endpoint,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00"


async def _serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", port)
    await site.start()
    try:
        yield f"http://localhost:{port}"
    finally:
        await runner.cleanup()


# --------------------------------------------------------------------------- #
#                            Test-server fixtures                             #
# --------------------------------------------------------------------------- #


@pytest_asyncio.fixture
async def proxy_server(unused_tcp_port: int) -> AsyncIterator[str]:
    """Fake CORS proxy: echoes the requested URL and method back in the body."""
    app = web.Application()

    async def handle_fetch(request):
        payload = await request.json()
        if payload["url"].endswith("/broken"):
            return web.json_response({"error": "upstream timed out", "type": "timeout"}, status=504)
        if payload["url"].endswith("/garbage"):
            return web.Response(text="not json", content_type="text/plain")
        return web.json_response({"status": 200, "body": f"{payload['method']} {payload['url']}"})

    app.router.add_post("/api/fetch", handle_fetch)
    async for url in _serve_app(app, unused_tcp_port):
        yield url


@pytest_asyncio.fixture
async def site_server(unused_tcp_port: int) -> AsyncIterator[str]:
    app = web.Application()

    async def handle_page(_):
        return web.Response(text="<html><img src='/img/001.png'></html>", content_type="text/html")

    async def handle_image(_):
        return web.Response(body=PNG_BYTES, content_type="image/png")

    async def handle_agent(request):
        return web.Response(text=request.headers.get("User-Agent", ""), content_type="text/plain")

    app.router.add_get("/chapter-1", handle_page)
    app.router.add_get("/img/001.png", handle_image)
    app.router.add_get("/agent", handle_agent)
    async for url in _serve_app(app, unused_tcp_port):
        yield url


# --------------------------------------------------------------------------- #
#                                   Tests                                     #
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "proxy,expected",
    [
        ("http://proxy.test", "http://proxy.test/api/fetch"),
        ("http://proxy.test/", "http://proxy.test/api/fetch"),
        ("http://proxy.test/custom/fetch", "http://proxy.test/custom/fetch"),
    ],
)
def test_proxy_endpoint(proxy, expected):
    assert proxy_endpoint(proxy) == expected


@pytest.mark.asyncio()
async def test_proxy_transport_forwards_url_and_method(proxy_server: str):
    async with ClientSession() as session:
        transport = ProxyTransport(session, proxy_server)
        result = await transport.fetch("https://manga.test/chapter-1", "HEAD")
    assert result == FetchResult(200, "HEAD https://manga.test/chapter-1")


@pytest.mark.asyncio()
async def test_proxy_error_envelope_keeps_status(proxy_server: str):
    async with ClientSession() as session:
        result = await ProxyTransport(session, proxy_server).fetch("https://manga.test/broken")
    assert result == FetchResult(504, "")


@pytest.mark.asyncio()
async def test_proxy_invalid_json_raises(proxy_server: str):
    async with ClientSession() as session:
        with pytest.raises(TransportError):
            await ProxyTransport(session, proxy_server).fetch("https://manga.test/garbage")


@pytest.mark.asyncio()
async def test_direct_get_returns_page_text(site_server: str):
    async with ClientSession() as session:
        result = await DirectTransport(session).fetch(f"{site_server}/chapter-1")
    assert result.status == 200
    assert "001.png" in result.body


@pytest.mark.asyncio()
async def test_direct_get_encodes_binary_bodies(site_server: str):
    async with ClientSession() as session:
        result = await DirectTransport(session).fetch(f"{site_server}/img/001.png")
    assert result.ok
    assert base64.b64decode(result.body) == PNG_BYTES


@pytest.mark.asyncio()
async def test_direct_head_has_empty_body(site_server: str):
    async with ClientSession() as session:
        transport = DirectTransport(session)
        found = await transport.fetch(f"{site_server}/img/001.png", "HEAD")
        missing = await transport.fetch(f"{site_server}/img/002.png", "HEAD")
    assert found == FetchResult(200, "")
    assert missing.status == 404
    assert not missing.ok


@pytest.mark.asyncio()
async def test_direct_sends_user_agent(site_server: str):
    async with ClientSession() as session:
        result = await DirectTransport(session, user_agent="TestAgent/1.0").fetch(f"{site_server}/agent")
    assert result.body == "TestAgent/1.0"


@pytest.mark.asyncio()
async def test_open_transport_picks_implementation():
    async with open_transport(ScoutConfig()) as transport:
        assert isinstance(transport, DirectTransport)
    async with open_transport(ScoutConfig(proxy_url="http://proxy.test")) as transport:
        assert isinstance(transport, ProxyTransport)
        assert transport.endpoint == "http://proxy.test/api/fetch"
