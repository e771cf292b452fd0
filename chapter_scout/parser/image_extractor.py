# === FILE: chapter_scout/parser/image_extractor.py ===
"""Heuristic image discovery for ChapterScout.

Reader sites rarely agree on markup: images hide in lazy-loading attributes,
``<noscript>`` fallbacks, inline CSS, JSON blobs and script arrays. This
module scans a page body with a set of independent heuristics and returns
every absolute image URL it can find.

Each heuristic is a pure function ``str -> Iterator[str]`` yielding *raw*
candidates in document order. :func:`extract_image_urls` resolves them
against the page URL, rejects anything that does not look like a real image
URL (see :func:`is_image_url`) and de-duplicates the result while keeping
first-seen order.

The goal is **not** a faithful DOM: the scan is best-effort by nature, and a
missing image is cheaper than a fabricated one.
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Callable, Iterator, List, Optional
from urllib.parse import unquote, urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from chapter_scout.parser.sequence import detect_all_patterns, generate_sequential_candidates
from chapter_scout.utils import IMAGE_EXTENSIONS, remove_duplicates

__all__: Sequence[str] = (
    "IMG_ATTRIBUTES",
    "HEURISTICS",
    "resolve_url",
    "is_image_url",
    "get_file_type",
    "img_tag_urls",
    "noscript_img_urls",
    "css_urls",
    "script_urls",
    "array_literal_urls",
    "href_image_urls",
    "markdown_image_urls",
    "site_specific_urls",
    "extract_image_urls",
)

_EXT = "|".join(IMAGE_EXTENSIONS)

IMG_ATTRIBUTES: tuple[str, ...] = (
    "data-src",
    "data-original",
    "data-lazy-src",
    "src",
    "data-srcset",
    "srcset",
    "data-pages",
    "data-images",
)

_IMAGE_EXT_RE = re.compile(rf"\.({_EXT})(?:$|[?#&])", re.IGNORECASE)
_FILE_TYPE_RE = re.compile(rf"\.({_EXT})(?:[?#].*)?$", re.IGNORECASE)
_ABSOLUTE_IMAGE_RE = re.compile(rf"https?://[^\s\"'<>]+\.(?:{_EXT})(?:[?#][^\s\"'<>]*)?", re.IGNORECASE)
_NOSCRIPT_RE = re.compile(r"<noscript[^>]*>([\s\S]*?)</noscript>", re.IGNORECASE)
_CSS_URL_RE = re.compile(
    r"(?:background(?:-image)?|content)\s*:\s*url\(\s*['\"]?(.*?)['\"]?\s*\)", re.IGNORECASE
)
_ARRAY_RE = re.compile(rf"\[([^\]]*?\.(?:{_EXT})[^\]]*?)\]", re.IGNORECASE)
_ARRAY_ITEM_RE = re.compile(r"https?:[^\s,'\"\]]+", re.IGNORECASE)
_MARKDOWN_IMAGE_RE = re.compile(r"!\[.*?\]\((.*?)\)")

# Structured-data leftovers that end up glued to URLs in JSON-LD blobs.
_FALSE_POSITIVE_PHRASES: tuple[str, ...] = (
    "primaryimageofpage",
    "primanyreadofpage",
    "readaction",
    "potentialaction",
)
_OVER_ENCODED: tuple[str, ...] = ("%22", "%3A", "website%3A")

# CDNs whose image paths other heuristics miss (protocol-relative or
# escaped references, timestamped names).
SITE_SPECIFIC_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    (
        "manhuaplus-cdn",
        re.compile(r"(?:https?:)?//cdn\.manhuaplus\.cc/\d{4}/\d{2}/\d{2}/[\w-]+\.webp", re.IGNORECASE),
    ),
    (
        "wp-manga",
        re.compile(
            r"(?:https?:)?//[^\s\"'<>]+/wp-content/uploads/WP-manga/data/[^\s\"'<>]+?\.(?:jpe?g|png|webp)",
            re.IGNORECASE,
        ),
    ),
)


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def resolve_url(raw: str, base_url: str) -> Optional[str]:
    """Make *raw* absolute against *base_url*; ``None`` for unusable values."""
    value = raw.strip() if raw else ""
    if not value or value.startswith(("data:", "javascript:", "blob:", "#")):
        return None
    if value.startswith(("http://", "https://")):
        return value
    try:
        return urljoin(base_url, value)
    except ValueError:
        return None


def is_image_url(url: str) -> bool:
    """True when *url* looks like a genuine absolute image URL."""
    if not re.match(r"^https?://", url):
        return False
    if any(token in url for token in _OVER_ENCODED):
        return False
    if any(ch in url for ch in "{}[]"):
        return False
    try:
        decoded = unquote(url)
    except ValueError:
        decoded = url
    lower = decoded.lower()
    if any(phrase in lower for phrase in _FALSE_POSITIVE_PHRASES):
        return False
    return bool(_IMAGE_EXT_RE.search(lower))


def get_file_type(url: str) -> Optional[str]:
    """Extension at the end of the URL path (query/fragment ignored)."""
    match = _FILE_TYPE_RE.search(url.lower())
    return match.group(1) if match else None


def _unescape_json(text: str) -> str:
    return text.replace("\\/", "/")


def _srcset_urls(value: str) -> Iterator[str]:
    for part in value.split(","):
        part = part.strip()
        if part:
            yield part.split()[0]


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


def img_tag_urls(html: str) -> Iterator[str]:
    """Lazy-loading and ``srcset`` attributes of ``<img>`` and ``<source>`` tags."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["img", "source"]):
        if not isinstance(tag, Tag):
            continue
        for attr in IMG_ATTRIBUTES:
            value = tag.get(attr)
            if isinstance(value, list):
                value = " ".join(value)
            if not value:
                continue
            if "srcset" in attr:
                yield from _srcset_urls(value)
            elif value.lstrip().startswith("["):
                # data-pages / data-images carrying a JSON list
                yield from _ARRAY_ITEM_RE.findall(_unescape_json(value))
            else:
                yield re.sub(r"\s+", "", value)


def noscript_img_urls(html: str) -> Iterator[str]:
    """Image tags embedded in ``<noscript>`` fallbacks."""
    for block in _NOSCRIPT_RE.findall(html):
        inner = BeautifulSoup(block, "html.parser")
        for img in inner.find_all("img"):
            if not isinstance(img, Tag):
                continue
            src = img.get("src") or img.get("data-src")
            if isinstance(src, str) and src:
                yield src


def css_urls(html: str) -> Iterator[str]:
    """``url(...)`` values of ``background``, ``background-image`` and ``content``."""
    for match in _CSS_URL_RE.finditer(html):
        yield match.group(1)


def script_urls(html: str) -> Iterator[str]:
    """Bare absolute image URLs in scripts and JSON (escaped slashes included)."""
    for match in _ABSOLUTE_IMAGE_RE.finditer(_unescape_json(html)):
        yield match.group(0)


def array_literal_urls(html: str) -> Iterator[str]:
    """Items of array literals such as ``["https://…/1.jpg", …]``."""
    for match in _ARRAY_RE.finditer(_unescape_json(html)):
        yield from _ARRAY_ITEM_RE.findall(match.group(1))


def href_image_urls(html: str) -> Iterator[str]:
    """``href`` attributes pointing straight at image files."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(href=True):
        if not isinstance(tag, Tag):
            continue
        href = tag.get("href")
        if isinstance(href, str) and _IMAGE_EXT_RE.search(href):
            yield href.strip()


def markdown_image_urls(text: str) -> Iterator[str]:
    """``![alt](url)`` images, for proxies that hand back markdown."""
    for match in _MARKDOWN_IMAGE_RE.finditer(text):
        yield match.group(1)


def site_specific_urls(html: str) -> Iterator[str]:
    """Matches of :data:`SITE_SPECIFIC_PATTERNS`."""
    text = _unescape_json(html)
    for _name, pattern in SITE_SPECIFIC_PATTERNS:
        for match in pattern.finditer(text):
            url = match.group(0)
            yield f"https:{url}" if url.startswith("//") else url


HEURISTICS: tuple[Callable[[str], Iterator[str]], ...] = (
    markdown_image_urls,
    img_tag_urls,
    noscript_img_urls,
    css_urls,
    script_urls,
    array_literal_urls,
    href_image_urls,
    site_specific_urls,
)


# ---------------------------------------------------------------------------
# Public function
# ---------------------------------------------------------------------------


def extract_image_urls(
    body: str,
    base_url: str,
    generate_sequential_guesses: bool = False,
    max_sequence: int = 500,
) -> List[str]:
    """Return absolute image URLs found in *body*, de-duplicated, in first-seen order.

    With *generate_sequential_guesses* the result is extended with indices
    ``1 … max_sequence`` of every sequential pattern among the found URLs.
    """
    found: List[str] = []
    for heuristic in HEURISTICS:
        for raw in heuristic(body):
            resolved = resolve_url(raw, base_url)
            if resolved and is_image_url(resolved):
                found.append(resolved)
    urls = remove_duplicates(found)

    if generate_sequential_guesses:
        guesses = generate_sequential_candidates(detect_all_patterns(urls), max_sequence)
        urls = remove_duplicates(urls + guesses)
    return urls
