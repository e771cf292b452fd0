# File: tests/test_events.py
import asyncio

import pytest

from chapter_scout.crawler.models import RunOutcome, ScrapedImage, SourceKind
from chapter_scout.events import EventChannel, FinishedEvent, ImageEvent, ProgressEvent, Stage

IMAGE = ScrapedImage("https://cdn.test/ch1/001.jpg", "jpg", "Image from cdn.test - Chapter 1", SourceKind.SEQUENTIAL)


@pytest.mark.asyncio()
async def test_iteration_ends_with_finished_event():
    channel = EventChannel()
    channel.publish(ProgressEvent(Stage.LOADING, 0, 500, 0, "https://m.test/chapter-1"))
    channel.publish(ImageEvent(IMAGE))
    channel.close(FinishedEvent(RunOutcome.COMPLETED, 1))

    events = [event async for event in channel]

    assert [type(e) for e in events] == [ProgressEvent, ImageEvent, FinishedEvent]
    assert channel.closed


@pytest.mark.asyncio()
async def test_nothing_is_published_after_close():
    channel = EventChannel()
    channel.close(FinishedEvent(RunOutcome.CANCELLED, 0, "Aborted"))
    channel.publish(ImageEvent(IMAGE))
    channel.close(FinishedEvent(RunOutcome.COMPLETED, 0))

    assert channel.drain() == [FinishedEvent(RunOutcome.CANCELLED, 0, "Aborted")]


@pytest.mark.asyncio()
async def test_consumer_receives_events_as_they_are_published():
    channel = EventChannel()
    received = []

    async def consume():
        async for event in channel:
            received.append(event)

    consumer = asyncio.create_task(consume())
    channel.publish(ImageEvent(IMAGE))
    await asyncio.sleep(0)
    assert received == [ImageEvent(IMAGE)]

    channel.close(FinishedEvent(RunOutcome.COMPLETED, 1))
    await asyncio.wait_for(consumer, timeout=1.0)
    assert isinstance(received[-1], FinishedEvent)
