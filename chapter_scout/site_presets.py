# === FILE: chapter_scout/site_presets.py ===

"""Known reader sites and URL shape auto-detection.

Presets are rule blocks ready to be imported into a
:class:`~chapter_scout.url_patterns.UrlPatternManager`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from chapter_scout.utils import extract_domain, is_http_url


@dataclass(frozen=True)
class WebsitePattern:
    """A chapter URL rule for one site."""

    id: str
    name: str
    domain: str
    description: str
    url_pattern: str = ""
    variables: Dict[str, str] = field(default_factory=dict)
    example: str = ""

    @property
    def generates_urls(self) -> bool:
        """False for sites served by discovery only (no numeric chapter path)."""
        return bool(self.domain and self.url_pattern)


PREDEFINED_WEBSITE_PATTERNS: Tuple[WebsitePattern, ...] = (
    WebsitePattern(
        "manhuato",
        "ManhuaTO",
        "manhuato.com",
        "Popular manga/manhua reading site",
        "https://manhuato.com/{*}/{*}/chapter-{ch_count}-ch{ch_next}",
        {"ch_count": "{n+1}", "ch_next": "{n+1}"},
        "https://manhuato.com/manga/title/chapter-1-ch2",
    ),
    WebsitePattern(
        "manhuaus",
        "ManhuaUS",
        "manhuaus.com",
        "Manga and manhua reader",
        "https://manhuaus.com/{*}/{*}/chapter-{ch_next}/",
        {"ch_next": "{n+1}"},
        "https://manhuaus.com/manga/title/chapter-2/",
    ),
    WebsitePattern(
        "manhuaus-org",
        "ManhuaUS (.org)",
        "manhuaus.org",
        "Manga and manhua reader (.org domain)",
        "https://manhuaus.org/{*}/{*}/chapter-{ch_next}/",
        {"ch_next": "{n+1}"},
        "https://manhuaus.org/manga/title/chapter-2/",
    ),
    WebsitePattern(
        "manhuaus-img",
        "ManhuaUS images",
        "img.manhuaus.com",
        "ManhuaUS image server",
        "https://img.manhuaus.com/image/{*}/{*}/{ch_next:04d}",
        {"ch_next": "{n+1}"},
        "https://img.manhuaus.com/image/manga/title/0201",
    ),
    WebsitePattern(
        "manhuaplus",
        "ManhuaPlus",
        "manhuaplus.org",
        "Manga and manhua reading platform",
        "https://manhuaplus.org/{*}/{*}/chapter-{ch_next}",
        {"ch_next": "{n+1}"},
        "https://manhuaplus.org/manga/title/chapter-203",
    ),
    WebsitePattern(
        "manhuaplus-cdn",
        "ManhuaPlus CDN",
        "cdn.manhuaplus.cc",
        "Image CDN with timestamped paths (discovery only)",
        example="https://cdn.manhuaplus.cc/2025/03/19/11-42-08-6911922306357488.webp",
    ),
    WebsitePattern(
        "mangakakalot",
        "MangaKakalot",
        "mangakakalot.com",
        "Popular manga reading platform",
        "https://mangakakalot.com/{*}/chapter-{chapter}",
        {"chapter": "{n+1}"},
        "https://mangakakalot.com/manga/title/chapter-1",
    ),
    WebsitePattern(
        "mangadex",
        "MangaDex",
        "mangadex.org",
        "International manga reader (chapter ids, discovery only)",
        example="https://mangadex.org/chapter/abc-123-def-456",
    ),
    WebsitePattern(
        "webtoon",
        "LINE Webtoon",
        "webtoons.com",
        "Official webtoon platform",
        "https://www.webtoons.com/{*}/{*}/{*}/episode-{episode}/viewer",
        {"episode": "{n+1}"},
        "https://www.webtoons.com/en/romance/title/episode-1/viewer",
    ),
    WebsitePattern(
        "readm",
        "ReadM",
        "readm.org",
        "Manga reader with clean interface",
        "https://www.readm.org/{*}/{*}/{chapter}",
        {"chapter": "{n+1}"},
        "https://www.readm.org/manga/title/1",
    ),
    WebsitePattern(
        "kissmanga",
        "KissManga",
        "kissmanga.org",
        "Classic manga reading site",
        "https://kissmanga.org/{*}/{*}/chapter-{chapter}",
        {"chapter": "{n+1}"},
        "https://kissmanga.org/manga/title/chapter-1",
    ),
    WebsitePattern(
        "mangapark",
        "MangaPark",
        "mangapark.net",
        "Multi-language manga platform (chapter ids, discovery only)",
        example="https://mangapark.net/manga/title/i123456",
    ),
    WebsitePattern(
        "mangahere",
        "MangaHere",
        "mangahere.cc",
        "Long-running manga site",
        "https://www.mangahere.cc/{*}/{*}/c{chapter:03d}/",
        {"chapter": "{n+1}"},
        "https://www.mangahere.cc/manga/title/c001/",
    ),
)


def _bare_domain(url: str) -> str:
    domain = extract_domain(url)
    return domain[4:] if domain.startswith("www.") else domain


def detect_website_pattern(url: str) -> Optional[WebsitePattern]:
    """Preset whose domain occurs in the host of *url*."""
    if not url or not is_http_url(url):
        return None
    domain = _bare_domain(url)
    # longest domain first so img.manhuaus.com wins over manhuaus.com
    for pattern in sorted(PREDEFINED_WEBSITE_PATTERNS, key=lambda p: -len(p.domain)):
        if pattern.domain and pattern.domain in domain:
            return pattern
    return None


_Template = Callable[[re.Match[str], str], str]

_CHAPTER_SHAPES: Tuple[Tuple[re.Pattern[str], _Template], ...] = (
    # /manga/title/chapter-123 or /manga/title/chapter-123-name
    (re.compile(r"/([^/]+)/([^/]+)/chapter-(\d+)(?:-[^/]*)?"), lambda m, base: f"{base}/{m[1]}/{m[2]}/chapter-{{chapter}}"),
    # /manga/title/c123 or /manga/title/c123.html
    (re.compile(r"/([^/]+)/([^/]+)/c(\d+)(?:\.html?)?"), lambda m, base: f"{base}/{m[1]}/{m[2]}/c{{chapter}}"),
    # /read/title/123
    (re.compile(r"/read/([^/]+)/(\d+)/?"), lambda m, base: f"{base}/read/{m[1]}/{{chapter}}"),
    # /manga/title/vol-1/ch-123
    (re.compile(r"/([^/]+)/([^/]+)/vol-\d+/ch-(\d+)"), lambda m, base: f"{base}/{m[1]}/{m[2]}/vol-1/ch-{{chapter}}"),
    # /series/title/episode-123
    (re.compile(r"/series/([^/]+)/episode-(\d+)"), lambda m, base: f"{base}/series/{m[1]}/episode-{{chapter}}"),
    # /webtoon/title/123/viewer
    (re.compile(r"/webtoon/([^/]+)/(\d+)/viewer"), lambda m, base: f"{base}/webtoon/{m[1]}/{{chapter}}/viewer"),
    # /title/123 or /title/123.html
    (re.compile(r"/([^/]+)/(\d+)(?:\.html?)?"), lambda m, base: f"{base}/{m[1]}/{{chapter}}"),
)


def auto_detect_url_pattern(url: str) -> Optional[WebsitePattern]:
    """Infer a rule from the shape of *url*; ``None`` when the path has no digits."""
    if not url or not is_http_url(url):
        return None
    domain = _bare_domain(url)
    parts = urlsplit(url)
    path = parts.path

    for regex, template in _CHAPTER_SHAPES:
        match = regex.search(path)
        if match:
            url_pattern = template(match, f"{parts.scheme}://{domain}")
            return WebsitePattern(
                "auto-detected",
                "Auto-Detected Pattern",
                domain,
                f"Detected pattern from {domain}",
                url_pattern,
                {"chapter": "{n+1}"},
                url_pattern.replace("{chapter}", str(int(match.groups()[-1]))),
            )

    digits = re.search(r"\d+", path)
    if digits:
        start, end = digits.span()
        return WebsitePattern(
            "auto-detected-generic",
            "Generic Auto-Detected",
            domain,
            f"Generic pattern detected from {domain}",
            f"{parts.scheme}://{parts.netloc}{path[:start]}{{chapter}}{path[end:]}",
            {"chapter": "{n+1}"},
            url,
        )
    return None


def preset_to_env_format(pattern: WebsitePattern) -> str:
    """Rule block for *pattern*, importable by the URL pattern manager."""
    if not pattern.generates_urls:
        return f"# {pattern.name} - {pattern.description}\n"
    lines = [
        f"# {pattern.name} - {pattern.description}",
        f"url={pattern.example or f'https://{pattern.domain}/'}",
        f"config={pattern.url_pattern}",
    ]
    lines.extend(f"{key}={value}" for key, value in pattern.variables.items())
    lines.append("")
    return "\n".join(lines) + "\n"


def presets_by_id() -> Dict[str, WebsitePattern]:
    return {p.id: p for p in PREDEFINED_WEBSITE_PATTERNS}


__all__ = [
    "WebsitePattern",
    "PREDEFINED_WEBSITE_PATTERNS",
    "detect_website_pattern",
    "auto_detect_url_pattern",
    "preset_to_env_format",
    "presets_by_id",
]
