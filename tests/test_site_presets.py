# File: tests/test_site_presets.py
import pytest

from chapter_scout.site_presets import (
    PREDEFINED_WEBSITE_PATTERNS,
    auto_detect_url_pattern,
    detect_website_pattern,
    preset_to_env_format,
    presets_by_id,
)
from chapter_scout.url_patterns import UrlPatternManager


@pytest.mark.parametrize(
    "url,preset_id",
    [
        ("https://img.manhuaus.com/image/manga/title/0201", "manhuaus-img"),
        ("https://manhuaus.com/manga/title/chapter-2/", "manhuaus"),
        ("https://www.webtoons.com/en/romance/title/episode-1/viewer", "webtoon"),
        ("https://cdn.manhuaplus.cc/2025/03/19/page.webp", "manhuaplus-cdn"),
        ("https://unknown.test/manga/title/chapter-1", None),
        ("not a url", None),
    ],
)
def test_detect_website_pattern(url, preset_id):
    preset = detect_website_pattern(url)
    assert (preset.id if preset else None) == preset_id


@pytest.mark.parametrize(
    "url,template,example",
    [
        (
            "https://reader.test/manga/solo/chapter-12",
            "https://reader.test/manga/solo/chapter-{chapter}",
            "https://reader.test/manga/solo/chapter-12",
        ),
        (
            "https://www.reader.test/read/solo/3",
            "https://reader.test/read/solo/{chapter}",
            "https://reader.test/read/solo/3",
        ),
        (
            "https://reader.test/solo/45.html",
            "https://reader.test/solo/{chapter}",
            "https://reader.test/solo/45",
        ),
        (
            "https://reader.test/series/solo/episode-007",
            "https://reader.test/series/solo/episode-{chapter}",
            "https://reader.test/series/solo/episode-7",
        ),
        (
            "http://reader.test/manga/solo/c12.html",
            "http://reader.test/manga/solo/c{chapter}",
            "http://reader.test/manga/solo/c12",
        ),
    ],
)
def test_auto_detect_known_shapes(url, template, example):
    pattern = auto_detect_url_pattern(url)
    assert pattern.id == "auto-detected"
    assert pattern.url_pattern == template
    assert pattern.variables == {"chapter": "{n+1}"}
    assert pattern.example == example


def test_auto_detect_generic_digits():
    pattern = auto_detect_url_pattern("https://reader.test/vol2-part")
    assert pattern.id == "auto-detected-generic"
    assert pattern.url_pattern == "https://reader.test/vol{chapter}-part"


def test_auto_detect_keeps_scheme():
    assert auto_detect_url_pattern("http://reader.test/manga/solo/chapter-3").url_pattern.startswith("http://")
    assert auto_detect_url_pattern("http://reader.test/vol2-part").url_pattern.startswith("http://")


@pytest.mark.parametrize("url", ["https://reader.test/about", "mailto:me@reader.test", ""])
def test_auto_detect_nothing(url):
    assert auto_detect_url_pattern(url) is None


def test_discovery_presets_export_a_comment_only():
    mangadex = presets_by_id()["mangadex"]
    assert not mangadex.generates_urls
    block = preset_to_env_format(mangadex)
    assert block.startswith("# MangaDex")
    assert UrlPatternManager.from_env_format(block).configs() == []


@pytest.mark.parametrize(
    "preset",
    [p for p in PREDEFINED_WEBSITE_PATTERNS if p.generates_urls],
    ids=lambda p: p.id,
)
def test_presets_import_and_generate(preset):
    manager = UrlPatternManager.from_env_format(preset_to_env_format(preset))
    assert len(manager) == 1
    generated = manager.generate_chapter_url(preset.example, 2)
    assert generated is not None
    assert generated.startswith("https://")
    assert "{" not in generated


def test_mangahere_preset_pads_chapter():
    manager = UrlPatternManager.from_env_format(preset_to_env_format(presets_by_id()["mangahere"]))
    assert (
        manager.generate_chapter_url("https://www.mangahere.cc/manga/other/c001/", 15)
        == "https://www.mangahere.cc/manga/other/c015/"
    )
