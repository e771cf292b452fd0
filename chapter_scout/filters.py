# === FILE: chapter_scout/filters.py ===

"""User image filters: URLs matching any pattern are not emitted."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Callable, Iterable, List, Union

from chapter_scout.logger import get_logger
from chapter_scout.utils import read_lines, remove_duplicates

__all__ = ["WILDCARD_CHARS", "compile_filter", "build_image_filter", "read_filter_file"]

logger = get_logger("filters")

WILDCARD_CHARS = frozenset("*+?[(")

ImageFilter = Callable[[str], bool]


def compile_filter(pattern: str) -> ImageFilter:
    """Predicate for one pattern.

    Patterns holding any of ``* + ? [ (`` are wildcards (``*`` any run,
    ``?`` one character, everything else literal); the rest match as
    case-insensitive substrings.
    """
    if WILDCARD_CHARS & set(pattern):
        regex = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
        compiled = re.compile(regex, re.IGNORECASE)
        return lambda url: compiled.search(url) is not None
    needle = pattern.lower()
    return lambda url: needle in url.lower()


def build_image_filter(patterns: Iterable[str]) -> ImageFilter:
    """Return a predicate that is True for URLs matching any of *patterns*."""
    cleaned = remove_duplicates([p.strip() for p in patterns if p and p.strip()])
    matchers: List[ImageFilter] = [compile_filter(p) for p in cleaned]

    def image_filter(url: str) -> bool:
        return any(match(url) for match in matchers)

    return image_filter


def read_filter_file(path: Union[str, Path]) -> List[str]:
    """One pattern per line; blank lines and ``#`` comments are skipped."""
    patterns = read_lines(path)
    logger.debug("Loaded %d image filters from %s", len(patterns), path)
    return patterns
