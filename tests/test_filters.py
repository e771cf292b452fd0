# File: tests/test_filters.py
import pytest

from chapter_scout.filters import build_image_filter, compile_filter, read_filter_file


@pytest.mark.parametrize(
    "pattern,url,expected",
    [
        ("logo", "https://cdn.test/img/LOGO-small.png", True),
        ("logo", "https://cdn.test/img/001.png", False),
        ("*/ads/*", "https://cdn.test/ads/banner.jpg", True),
        ("*/ads/*", "https://cdn.test/pages/banner.jpg", False),
        ("banner-??.jpg", "https://cdn.test/banner-01.jpg", True),
        ("banner-??.jpg", "https://cdn.test/banner-1.jpg", False),
        # the other wildcard characters are matched literally
        ("thumb(1)", "https://cdn.test/thumb(1).png", True),
        ("a+b", "https://cdn.test/aab.png", False),
    ],
)
def test_compile_filter(pattern, url, expected):
    assert compile_filter(pattern)(url) is expected


def test_build_image_filter_matches_any():
    image_filter = build_image_filter(["", "  ", "logo", "*/ads/*", "logo"])
    assert image_filter("https://cdn.test/site-logo.png")
    assert image_filter("https://cdn.test/ads/x.png")
    assert not image_filter("https://cdn.test/ch1/001.png")


def test_empty_filter_matches_nothing():
    assert not build_image_filter([])("https://cdn.test/ch1/001.png")


def test_read_filter_file(tmp_path):
    path = tmp_path / "filters.txt"
    path.write_text("# site chrome\nlogo\n\n*/ads/*\n", encoding="utf-8")
    assert read_filter_file(path) == ["logo", "*/ads/*"]


def test_read_filter_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_filter_file(tmp_path / "missing.txt")
