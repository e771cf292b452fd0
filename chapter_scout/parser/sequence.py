"""Sequential file-name detection.

Reader sites usually serve a chapter as ``…/001.jpg``, ``…/002.jpg`` and so
on. Given the image URLs found on a page, :func:`detect_sequential_pattern`
infers the base path, extension and zero padding of such a sequence so the
remaining pages can be generated instead of discovered.
"""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from chapter_scout.crawler.models import SequentialPattern
from chapter_scout.utils import SEQUENTIAL_EXTENSIONS

__all__ = [
    "SEQUENTIAL_IMAGE_RE",
    "DEFAULT_PAD_WIDTH",
    "detect_sequential_pattern",
    "detect_all_patterns",
    "generate_sequential_candidates",
]

SEQUENTIAL_IMAGE_RE = re.compile(
    rf"^(.*/)([0-9]{{2,4}})\.({'|'.join(SEQUENTIAL_EXTENSIONS)})$", re.IGNORECASE
)
DEFAULT_PAD_WIDTH = 3


def _group_numbers(urls: Iterable[str]) -> Dict[Tuple[str, str], Tuple[Set[int], int]]:
    # dicts keep first-seen order, which makes selection deterministic
    groups: Dict[Tuple[str, str], Tuple[Set[int], int]] = {}
    for url in urls:
        match = SEQUENTIAL_IMAGE_RE.match(url)
        if not match:
            continue
        base, digits, ext = match.groups()
        numbers, width = groups.get((base, ext), (set(), 0))
        numbers.add(int(digits))
        groups[(base, ext)] = (numbers, max(width, len(digits)))
    return groups


def _has_consecutive_pair(numbers: Set[int]) -> bool:
    return any(n + 1 in numbers for n in numbers)


def detect_all_patterns(urls: Iterable[str]) -> List[SequentialPattern]:
    """Every ``(path, extension)`` group holding at least one pair ``n, n+1``."""
    return [
        SequentialPattern(base_path=base, extension=ext, pad_width=width or DEFAULT_PAD_WIDTH)
        for (base, ext), (numbers, width) in _group_numbers(urls).items()
        if _has_consecutive_pair(numbers)
    ]


def detect_sequential_pattern(urls: Iterable[str]) -> Optional[SequentialPattern]:
    """Return the first qualifying pattern in first-seen order, or ``None``."""
    patterns = detect_all_patterns(urls)
    return patterns[0] if patterns else None


def generate_sequential_candidates(patterns: Iterable[SequentialPattern], limit: int) -> List[str]:
    """Materialize indices ``1 … limit`` of every pattern."""
    candidates: List[str] = []
    for pattern in patterns:
        candidates.extend(pattern.candidates(1, limit))
    return candidates
