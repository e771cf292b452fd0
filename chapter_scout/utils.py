# File: chapter_scout/utils.py
"""chapter_scout.utils: URL helpers, file-type tables and small collection utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Collection, Iterable, List, Sequence, Union
from urllib.parse import urlparse

from chapter_scout.logger import get_logger

__all__: Sequence[str] = (
    "IMAGE_EXTENSIONS",
    "SEQUENTIAL_EXTENSIONS",
    "DEFAULT_FILE_TYPES",
    "normalize_file_types",
    "is_http_url",
    "extract_domain",
    "read_lines",
    "remove_duplicates",
)

logger = get_logger("utils")

IMAGE_EXTENSIONS: tuple[str, ...] = ("png", "jpg", "jpeg", "gif", "webp", "svg", "bmp", "tiff", "ico")
# Extensions sequential numbering is inferred for.
SEQUENTIAL_EXTENSIONS: tuple[str, ...] = ("jpg", "jpeg", "png", "gif", "webp")
DEFAULT_FILE_TYPES: tuple[str, ...] = ("png", "jpg", "jpeg", "webp")


def normalize_file_types(file_types: Iterable[str]) -> List[str]:
    """Lower-case, strip leading dots, drop blanks and duplicates (order kept)."""
    cleaned = (t.strip().lstrip(".").lower() for t in file_types)
    return remove_duplicates([t for t in cleaned if t])


def is_http_url(url: str) -> bool:
    """True for absolute ``http``/``https`` URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_domain(url: str) -> str:
    """Return the hostname of *url* (lower-cased, without port)."""
    return (urlparse(url).hostname or "").lower()


def read_lines(path: Union[str, Path]) -> List[str]:
    """Read a text file and return its non-empty, non-comment lines."""
    p = Path(path).expanduser()
    if not p.exists():
        logger.error("File not found: %s", p)
        raise FileNotFoundError(f"File not found: {p}")
    lines = [
        line.strip()
        for line in p.read_text(encoding="utf-8").splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]
    logger.debug("Loaded %d entries from %s", len(lines), p)
    return lines


def remove_duplicates(urls: Collection[str]) -> List[str]:
    """Remove duplicates while preserving order."""
    unique = list(dict.fromkeys(urls))
    removed = len(urls) - len(unique)
    if removed:
        logger.debug("Removed %d duplicates", removed)
    return unique
