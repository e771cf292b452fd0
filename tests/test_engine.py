# File: tests/test_engine.py
from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web

from chapter_scout.aggregator import ScrapeReport
from chapter_scout.config import ScoutConfig, ScrapeOptions
from chapter_scout.crawler.cancel import CancelSignal
from chapter_scout.crawler.models import RunOutcome
from chapter_scout.engine import Engine, scrape, validate_run
from chapter_scout.errors import ErrorKind, ScrapeCancelled, ScrapeConfigError
from chapter_scout.events import EventChannel, FinishedEvent, ImageEvent, ProgressEvent, Stage
from chapter_scout.url_patterns import UrlPatternManager

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


@pytest_asyncio.fixture
async def reader_site(unused_tcp_port: int) -> AsyncIterator[str]:
    """Chapter 1 with three sequential PNG pages; chapter 2 does not exist."""
    app = web.Application()

    async def handle_chapter(_):
        html = '<div class="reader"><img src="/img/001.png"><img data-src="/img/002.png"></div>'
        return web.Response(text=html, content_type="text/html")

    async def handle_image(request):
        if int(request.match_info["num"]) > 3:
            raise web.HTTPNotFound()
        return web.Response(body=PNG_BYTES, content_type="image/png")

    app.router.add_get("/manga/solo/chapter-1", handle_chapter)
    app.router.add_get("/img/{num:\\d+}.png", handle_image)
    async for url in _serve_app(app, unused_tcp_port):
        yield url


@pytest.fixture()
def engine_config() -> ScoutConfig:
    return ScoutConfig(
        timeout=2.0,
        retry_times=0,
        file_types=["png"],
        scrape=ScrapeOptions(fetch_interval=0, load_timeout=2.0),
    )


# --------------------------------------------------------------------------- #
#                                  scrape()                                   #
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "root_url,file_types",
    [
        ("", ["png"]),
        ("ftp://m.test/chapter-1", ["png"]),
        ("/manga/solo/chapter-1", ["png"]),
        ("https://m.test/chapter-1", []),
        ("https://m.test/chapter-1", [" ", "."]),
    ],
)
def test_validate_run_rejects(root_url, file_types):
    with pytest.raises(ScrapeConfigError):
        validate_run(root_url, file_types)


def test_validate_run_normalizes_types():
    assert validate_run("https://m.test/chapter-1", [".PNG", "jpg", "png"]) == ["png", "jpg"]


@pytest.mark.asyncio()
async def test_configuration_errors_precede_io(transport):
    with pytest.raises(ScrapeConfigError):
        await scrape("not a url", ["png"], transport=transport)
    with pytest.raises(ScrapeConfigError):
        await scrape("https://m.test/chapter-1", [], transport=transport)
    assert transport.calls == []


@pytest.mark.asyncio()
async def test_scrape_requires_a_transport():
    with pytest.raises(ScrapeConfigError):
        await scrape("https://m.test/chapter-1", ["png"])


@pytest.mark.asyncio()
async def test_scrape_with_transport(transport, fast_options):
    root = "https://m.test/manga/solo/chapter-1"
    transport.page(root, '<img src="https://cdn.test/p/01.png"><img src="https://cdn.test/p/02.png">')
    transport.image("https://cdn.test/p/01.png")
    transport.image("https://cdn.test/p/02.png")
    channel = EventChannel()

    images = await scrape(root, ["png"], fast_options, transport=transport, channel=channel)

    assert [i.url for i in images] == ["https://cdn.test/p/01.png", "https://cdn.test/p/02.png"]
    assert channel.drain()[-1] == FinishedEvent(RunOutcome.COMPLETED, 2)


# --------------------------------------------------------------------------- #
#                                   Engine                                    #
# --------------------------------------------------------------------------- #


def test_build_options_merges_overrides_and_filters(tmp_path):
    filters = tmp_path / "filters.txt"
    filters.write_text("# chrome\nlogo\n", encoding="utf-8")
    engine = Engine(ScoutConfig(filters_file=filters, scrape=ScrapeOptions(batch_size=5)))

    options = engine.build_options(["*/ads/*"], chapter_count=4, fetch_interval=None)

    assert options.chapter_count == 4
    assert options.fetch_interval == 15.0
    assert options.batch_size == 5
    assert options.image_filter("https://cdn.test/logo.png")
    assert options.image_filter("https://cdn.test/ads/1.png")
    assert not options.image_filter("https://cdn.test/ch1/001.png")


def test_build_options_without_filters():
    assert Engine(ScoutConfig()).build_options().image_filter is None


def test_build_patterns_reads_environment_and_file(monkeypatch, patterns_file):
    monkeypatch.setenv("SCOUT_URL_1", "https://env.test/read/1")
    monkeypatch.setenv("SCOUT_CONFIG_1", "/read/{n+1}")
    engine = Engine(ScoutConfig(patterns_file=patterns_file))

    patterns = engine.build_patterns()

    assert [domain for domain, _ in patterns.patterns()] == ["env.test", "site.test"]


def test_build_patterns_adds_preset_for_known_site():
    root = "https://www.mangahere.cc/manga/title/c001/"
    patterns = Engine(ScoutConfig()).build_patterns(root)

    assert patterns.has_pattern_for("mangahere.cc")
    assert patterns.generate_chapter_url(root, 2) == "https://www.mangahere.cc/manga/title/c002/"


def test_build_patterns_prefers_configured_rule(patterns_file):
    engine = Engine(ScoutConfig(patterns_file=patterns_file))
    assert [d for d, _ in engine.build_patterns("https://site.test/manga/title/chapter-1").patterns()] == ["site.test"]
    assert Engine(ScoutConfig()).build_patterns("https://mangadex.org/chapter/abc-1").patterns() == []


@pytest.mark.asyncio()
async def test_engine_scrape_direct(reader_site: str, engine_config: ScoutConfig):
    root = f"{reader_site}/manga/solo/chapter-1"
    channel = EventChannel()

    report = await Engine(engine_config).scrape(root, patterns=UrlPatternManager(), channel=channel)

    assert report.outcome is RunOutcome.COMPLETED
    assert [i.url for i in report.images] == [f"{reader_site}/img/00{n}.png" for n in (1, 2, 3)]
    assert report.successful_chapters == [1]
    events = channel.drain()
    assert sum(isinstance(e, ImageEvent) for e in events) == 3
    assert isinstance(events[-1], FinishedEvent)


@pytest.mark.asyncio()
async def test_engine_scrape_stops_at_missing_chapter(reader_site: str, engine_config: ScoutConfig):
    root = f"{reader_site}/manga/solo/chapter-1"
    options = engine_config.scrape.model_copy(update={"chapter_count": 3})

    report = await Engine(engine_config).scrape(root, options=options, patterns=UrlPatternManager())

    assert report.outcome is RunOutcome.STOPPED
    assert report.successful_chapters == [1]
    assert report.failed_chapters == [2]
    assert report.chapter_results[1].resolved_url == f"{reader_site}/manga/solo/chapter-2"
    assert len(report.images) == 3


@pytest.mark.asyncio()
async def test_engine_scrape_reports_page_failure(reader_site: str, engine_config: ScoutConfig):
    report = await Engine(engine_config).scrape(
        f"{reader_site}/manga/solo/chapter-9", patterns=UrlPatternManager()
    )
    assert report.outcome is RunOutcome.FAILED
    assert report.error == "Chapter not found"
    assert report.images == []


@pytest.mark.asyncio()
async def test_engine_scrape_cancelled_before_start(engine_config: ScoutConfig):
    signal = CancelSignal()
    signal.cancel()

    report = await Engine(engine_config).scrape(
        "https://m.test/manga/solo/chapter-1", patterns=UrlPatternManager(), signal=signal
    )

    assert report.outcome is RunOutcome.CANCELLED
    assert report.error_kind is ErrorKind.ABORTED


def test_start_scan_timeout_cancels_the_run(monkeypatch):
    async def slow_scrape(self, root_url, *, file_types, options, channel, signal):
        channel.publish(ProgressEvent(Stage.LOADING, 0, 500, 0, root_url))
        try:
            await signal.sleep(5)
        except ScrapeCancelled:
            channel.close(FinishedEvent(RunOutcome.CANCELLED, 0, "Aborted", ErrorKind.ABORTED))
        return ScrapeReport(root_url, outcome=RunOutcome.CANCELLED)

    monkeypatch.setattr(Engine, "scrape", slow_scrape)
    received = []

    report = Engine(ScoutConfig()).start_scan(
        "https://m.test/chapter-1", timeout=0.05, on_event=received.append
    )

    assert report.outcome is RunOutcome.CANCELLED
    assert [type(e) for e in received] == [ProgressEvent, FinishedEvent]


def test_start_scan_propagates_configuration_errors():
    with pytest.raises(ScrapeConfigError):
        Engine(ScoutConfig()).start_scan("mailto:someone@m.test")
