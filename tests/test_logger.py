# File: tests/test_logger.py
import logging

import pytest

from chapter_scout.logger import LOGGER_NAME, configure, get_logger, init_logging


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    root = get_logger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    get_logger("fetcher").setLevel(logging.NOTSET)


def test_component_loggers_are_children():
    assert get_logger().name == LOGGER_NAME
    assert get_logger("prober").name == f"{LOGGER_NAME}.prober"
    assert get_logger("prober").parent is get_logger()


def test_configure_writes_rotating_file(tmp_path):
    log_file = tmp_path / "logs" / "scout.log"
    root = configure(level="DEBUG", log_file=log_file, log_format="%(name)s %(message)s")

    get_logger("crawler").info("chapter %d done", 1)
    for handler in root.handlers:
        handler.flush()

    assert not root.propagate
    assert len(root.handlers) == 2
    assert "ChapterScout.crawler chapter 1 done" in log_file.read_text(encoding="utf-8")


def test_replace_handlers():
    configure(level="INFO")
    configure(level="INFO", replace_handlers=False)
    assert len(get_logger().handlers) == 2
    init_logging("WARNING")
    assert len(get_logger().handlers) == 1
    assert get_logger().level == logging.WARNING


def test_component_levels():
    configure(level="DEBUG", components={"fetcher": "WARNING"})
    assert not get_logger("fetcher").isEnabledFor(logging.DEBUG)
    assert get_logger("prober").isEnabledFor(logging.DEBUG)
