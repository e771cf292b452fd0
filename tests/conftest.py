# File: tests/conftest.py
import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest

from chapter_scout.config import ScrapeOptions
from chapter_scout.crawler.cancel import CancelSignal
from chapter_scout.crawler.fetcher import FetchGateway
from chapter_scout.crawler.models import FetchResult

Response = Union[FetchResult, BaseException, type]


class FakeTransport:
    """
    Scripted in-memory transport.

    Each route holds a list of responses; they are served in order and the
    last one repeats. Exceptions (classes or instances) are raised. Unknown
    routes answer ``default``.
    """

    def __init__(self, default: FetchResult = FetchResult(404, ""), delay: float = 0.0) -> None:
        self.default = default
        self.delay = delay
        self.routes: Dict[Tuple[str, str], List[Response]] = {}
        self.calls: List[Tuple[str, str]] = []

    def add(self, url: str, *responses: Response, method: str = "GET") -> "FakeTransport":
        self.routes[(method, url)] = list(responses)
        return self

    def page(self, url: str, html: str) -> "FakeTransport":
        return self.add(url, FetchResult(200, html))

    def image(self, url: str) -> "FakeTransport":
        """An existing image: HEAD and GET both succeed."""
        self.add(url, FetchResult(200, ""), method="HEAD")
        return self.add(url, FetchResult(200, "iVBORw0KGgo="))

    def count(self, url: str, method: Optional[str] = None) -> int:
        return sum(1 for m, u in self.calls if u == url and (method is None or m == method))

    async def fetch(self, url: str, method: str = "GET") -> FetchResult:
        self.calls.append((method, url))
        if self.delay:
            await asyncio.sleep(self.delay)
        queue = self.routes.get((method, url))
        if not queue:
            return self.default
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException) or (
            isinstance(response, type) and issubclass(response, BaseException)
        ):
            raise response
        return response


class RecordingSleep:
    """Gateway sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float, signal: Optional[CancelSignal] = None) -> None:
        self.delays.append(seconds)
        if signal is not None:
            signal.raise_if_cancelled()
        await asyncio.sleep(0)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def gateway(transport, sleeper) -> FetchGateway:
    return FetchGateway(transport, sleep=sleeper)


@pytest.fixture()
def fast_options() -> ScrapeOptions:
    """HEAD validation, no inter-chapter wait, small scan ceiling."""
    return ScrapeOptions(
        validate_images=True,
        fetch_interval=0,
        consecutive_miss_threshold=1,
        max_sequence=20,
    )


@pytest.fixture()
def patterns_file(tmp_path) -> Path:
    path = tmp_path / "patterns.env"
    path.write_text(
        "# site.test\n"
        "url=https://site.test/manga/title/chapter-1\n"
        "config=/{*}/{*}/chapter-{ch}\n"
        "ch={n+1}\n",
        encoding="utf-8",
    )
    return path
