# === FILE: chapter_scout/url_patterns.py ===

"""Per-domain chapter URL templating.

A pattern rule is a block of ``key=value`` lines::

    # manhuaus.com
    url=https://manhuaus.com/manga/some-title/chapter-1/
    config=/{*}/{*}/chapter-{ch_next}/
    ch_next={n+1}

``config`` is the URL template. The remaining lines bind template variables;
``{n+K}`` / ``{n-K}`` expressions inside them are evaluated with
``n = target - 1`` (so ``{n+1}`` is the target chapter itself). A ``{*}``
wildcard copies the original path segment at the same position.

Domains without a rule fall back to bumping the digits of the last numeric
path segment.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple, Union
from urllib.parse import urlsplit, urlunsplit

from chapter_scout.logger import get_logger
from chapter_scout.utils import extract_domain, is_http_url

__all__ = [
    "PatternBlock",
    "UrlPatternConfig",
    "PatternDebug",
    "UrlPatternManager",
    "parse_env_content",
    "ChapterInfo",
    "parse_chapter_from_url",
    "extract_chapter_number",
    "step_chapter_url",
    "navigation_state",
]

logger = get_logger("patterns")

_EXPRESSION_RE = re.compile(r"\{n(?:\s*([+-])\s*(\d+))?\}")
_PLACEHOLDER_RE = re.compile(r"\{(\w+)(?::0?(\d+)d)?\}")
_LEFTOVER_RE = re.compile(r"\{[^{}]*\}")
_NUMBERED_SEGMENT_RE = re.compile(r"^(.*?)(\d+)(.*)$")
_CHAPTER_SEGMENT_RE = re.compile(r"^(chapter|ch|episode|ep|part|p)[-_]?(\d+)$", re.IGNORECASE)


# --------------------------------------------------------------------------- #
# Rule text format                                                            #
# --------------------------------------------------------------------------- #


class PatternBlock(NamedTuple):
    """One ``url=`` / ``config=`` block with its variable lines."""

    url: str
    config: str
    variables: Dict[str, str]


def parse_env_content(content: str) -> List[PatternBlock]:
    """Parse rule text into blocks.

    Comment and blank lines are ignored; each line is split on its first
    ``=``. A ``url`` line starts a block, ``config`` completes it, and every
    other key is a variable of the current block. Blocks missing either
    ``url`` or ``config`` are dropped.
    """
    blocks: List[PatternBlock] = []
    url: Optional[str] = None
    config: Optional[str] = None
    variables: Dict[str, str] = {}

    def flush() -> None:
        if url and config:
            blocks.append(PatternBlock(url, config, dict(variables)))

    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key or not value:
            continue
        if key == "url":
            flush()
            url, config, variables = value, None, {}
        elif key == "config":
            config = value
        else:
            variables[key] = value
    flush()
    return blocks


# --------------------------------------------------------------------------- #
# Models                                                                      #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class UrlPatternConfig:
    """Chapter URL rule of one domain."""

    domain: str
    source_url: str
    template: str
    variables: Mapping[str, str] = field(default_factory=dict)

    @property
    def has_chapter_var(self) -> bool:
        return (
            "{ch_" in self.template
            or "{n" in self.template
            or any("ch_" in key for key in self.variables)
            or any("{n" in value for value in self.variables.values())
        )

    @classmethod
    def from_block(cls, block: PatternBlock) -> UrlPatternConfig:
        domain = extract_domain(block.url)
        if not domain:
            raise ValueError(f"no hostname in pattern url: {block.url!r}")
        return cls(domain=domain, source_url=block.url, template=block.config, variables=dict(block.variables))

    def to_block(self) -> str:
        lines = [f"# {self.domain}", f"url={self.source_url}", f"config={self.template}"]
        lines.extend(f"{key}={value}" for key, value in self.variables.items())
        lines.append("")
        return "\n".join(lines)


@dataclass(frozen=True)
class PatternDebug:
    """What the manager does with one URL."""

    original_url: str
    domain: str
    has_custom_pattern: bool
    generated_url: Optional[str]
    extracted_chapter: Optional[int]
    #: None when no custom rule applies
    has_chapter_variable: Optional[bool] = None
    previous_url: Optional[str] = None
    next_url: Optional[str] = None


# --------------------------------------------------------------------------- #
# Manager                                                                     #
# --------------------------------------------------------------------------- #


def _evaluate(value: str, target: int) -> str:
    n = target - 1

    def repl(match: re.Match[str]) -> str:
        sign, amount = match.groups()
        if not sign:
            return str(n)
        return str(n + int(amount) if sign == "+" else n - int(amount))

    return _EXPRESSION_RE.sub(repl, value)


def _path_segments(path: str) -> List[str]:
    return [segment for segment in path.split("/") if segment]


def _fill_wildcards(template: str, segments: List[str]) -> str:
    """Replace every ``{*}`` with the original path segment at the same position."""
    start = template.find("/", template.find("://") + 3) if template.startswith("http") else 0
    if start < 0:
        return template
    head, path = template[:start], template[start:]
    pieces = path.split("/")
    offset = 1 if path.startswith("/") else 0
    for i, piece in enumerate(pieces):
        if "{*}" in piece:
            j = i - offset
            pieces[i] = piece.replace("{*}", segments[j] if 0 <= j < len(segments) else "")
    return head + "/".join(pieces)


class UrlPatternManager:
    """Resolves chapter URLs from per-domain rules, one rule per domain."""

    def __init__(self, configs: Iterable[UrlPatternConfig] = ()) -> None:
        self._configs: Dict[str, UrlPatternConfig] = {}
        for config in configs:
            self.add(config)

    # -- construction ------------------------------------------------------ #

    @classmethod
    def from_env_format(cls, content: str) -> UrlPatternManager:
        manager = cls()
        manager.import_from_env_format(content)
        return manager

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> UrlPatternManager:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Pattern file not found: {p}")
        return cls.from_env_format(p.read_text(encoding="utf-8"))

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None, prefix: str = "SCOUT") -> UrlPatternManager:
        """Build rules from ``<PREFIX>_URL_<n>``, ``<PREFIX>_CONFIG_<n>`` and ``<PREFIX>_<VAR>_<n>``."""
        if environ is None:
            environ = os.environ
        key_re = re.compile(rf"^{re.escape(prefix)}_(.+?)_(\d+)$")
        groups: Dict[int, Dict[str, str]] = {}
        for key, value in environ.items():
            match = key_re.match(key)
            if match and value:
                name, group = match.groups()
                groups.setdefault(int(group), {})[name.lower()] = value

        lines: List[str] = []
        for _, values in sorted(groups.items()):
            if "url" not in values or "config" not in values:
                continue
            lines += [f"url={values['url']}", f"config={values['config']}"]
            lines += [f"{k}={v}" for k, v in values.items() if k not in ("url", "config")]
            lines.append("")
        return cls.from_env_format("\n".join(lines))

    def add(self, config: UrlPatternConfig) -> None:
        if config.domain in self._configs:
            logger.debug("Replacing URL pattern for %s", config.domain)
        self._configs[config.domain] = config

    # -- queries ----------------------------------------------------------- #

    def __len__(self) -> int:
        return len(self._configs)

    def patterns(self) -> List[Tuple[str, str]]:
        """``(domain, template)`` pairs in insertion order."""
        return [(domain, cfg.template) for domain, cfg in self._configs.items()]

    def configs(self) -> List[UrlPatternConfig]:
        return list(self._configs.values())

    def _lookup(self, domain: str) -> Optional[UrlPatternConfig]:
        domain = domain.lower()
        config = self._configs.get(domain)
        if config is None:
            # www.example.org and example.org share a rule
            alias = domain[4:] if domain.startswith("www.") else f"www.{domain}"
            config = self._configs.get(alias)
        return config

    def has_pattern_for(self, domain: str) -> bool:
        return self._lookup(domain) is not None

    # -- generation -------------------------------------------------------- #

    def generate_chapter_url(self, base_url: str, target: int) -> Optional[str]:
        """URL of chapter *target* for the site of *base_url*, or ``None``."""
        if not is_http_url(base_url):
            logger.warning("Failed to generate chapter URL: not an http(s) URL: %s", base_url)
            return None
        config = self._lookup(extract_domain(base_url))
        if config is not None:
            return self._apply(base_url, config, target)
        return self._increment_last_number(base_url, target)

    def _apply(self, base_url: str, config: UrlPatternConfig, target: int) -> Optional[str]:
        values = {key: _evaluate(value, target) for key, value in config.variables.items()}

        def substitute(match: re.Match[str]) -> str:
            name, width = match.groups()
            if name not in values:
                return match.group(0)
            value = values[name]
            return value.zfill(int(width)) if width and value.isdigit() else value

        result = _evaluate(_PLACEHOLDER_RE.sub(substitute, config.template), target)

        parts = urlsplit(base_url)
        if "{*}" in result:
            result = _fill_wildcards(result, _path_segments(parts.path))

        leftover = _LEFTOVER_RE.search(result)
        if leftover:
            logger.warning("Unresolved placeholder %s in pattern for %s", leftover.group(0), config.domain)
            return None

        if result.startswith("http"):
            return result
        path = result if result.startswith("/") else f"/{result}"
        return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))

    @staticmethod
    def _increment_last_number(base_url: str, target: int) -> Optional[str]:
        parts = urlsplit(base_url)
        segments = _path_segments(parts.path)
        for i in range(len(segments) - 1, -1, -1):
            match = _NUMBERED_SEGMENT_RE.match(segments[i])
            if not match:
                continue
            prefix, digits, suffix = match.groups()
            number = str(target)
            if digits.startswith("0"):
                number = number.zfill(len(digits))
            segments[i] = f"{prefix}{number}{suffix}"
            path = "/" + "/".join(segments) + ("/" if parts.path.endswith("/") else "")
            return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))
        return None

    def debug_pattern_generation(self, url: str, target: int) -> PatternDebug:
        domain = extract_domain(url)
        config = self._lookup(domain) if domain else None
        can_go_prev, can_go_next = navigation_state(url)
        return PatternDebug(
            original_url=url,
            domain=domain,
            has_custom_pattern=config is not None,
            generated_url=self.generate_chapter_url(url, target),
            extracted_chapter=extract_chapter_number(url),
            has_chapter_variable=config.has_chapter_var if config is not None else None,
            previous_url=step_chapter_url(url, "prev") if can_go_prev else None,
            next_url=step_chapter_url(url, "next") if can_go_next else None,
        )

    # -- import / export --------------------------------------------------- #

    def import_from_env_format(self, content: str) -> int:
        """Merge rules from *content*; returns the number of rules imported."""
        imported = 0
        for block in parse_env_content(content):
            try:
                config = UrlPatternConfig.from_block(block)
            except ValueError as exc:
                logger.warning("Skipping URL pattern: %s", exc)
                continue
            if not config.has_chapter_var:
                logger.warning("URL pattern for %s has no chapter variable; every chapter maps to one URL", config.domain)
            self.add(config)
            imported += 1
        logger.debug("Imported %d URL patterns", imported)
        return imported

    def export_to_env_format(self) -> str:
        return "\n".join(cfg.to_block() for cfg in self._configs.values())


# --------------------------------------------------------------------------- #
# Chapter numbers in URLs                                                     #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class ChapterInfo:
    has_chapter: bool
    chapter_number: int
    chapter_segment: str
    base_url: str


def parse_chapter_from_url(url: str) -> ChapterInfo:
    """Find a ``chapter-12`` / ``ch_3`` / ``ep5`` or purely numeric path segment, scanning from the end."""
    if is_http_url(url):
        for segment in reversed(_path_segments(urlsplit(url).path)):
            match = _CHAPTER_SEGMENT_RE.match(segment)
            if match:
                return ChapterInfo(True, int(match.group(2)), segment, url)
            if segment.isdigit():
                return ChapterInfo(True, int(segment), segment, url)
    return ChapterInfo(False, 0, "", url)


def extract_chapter_number(url: str) -> Optional[int]:
    """
    Chapter number of *url*; ``None`` when the path has no digits.

    The number comes from the first digit run of the last numbered path
    segment, the same digits the generic fallback rewrites, so
    ``generate_chapter_url(url, extract_chapter_number(url) + 1)`` is the
    next chapter even when an earlier slug holds digits (``top10``).
    """
    if not is_http_url(url):
        return None
    for segment in reversed(_path_segments(urlsplit(url).path)):
        numbered = _NUMBERED_SEGMENT_RE.match(segment)
        if numbered:
            return int(numbered.group(2))
    return None


def step_chapter_url(url: str, direction: str) -> Optional[str]:
    """URL of the previous or next chapter (``direction`` is ``"prev"`` or ``"next"``)."""
    if direction not in ("prev", "next"):
        raise ValueError(f"direction must be 'prev' or 'next', not {direction!r}")
    info = parse_chapter_from_url(url)
    if not info.has_chapter:
        return None
    number = info.chapter_number + (1 if direction == "next" else -1)
    if number < 0:
        return None

    parts = urlsplit(url)
    segments = _path_segments(parts.path)
    for i in range(len(segments) - 1, -1, -1):
        if segments[i] != info.chapter_segment:
            continue
        match = _CHAPTER_SEGMENT_RE.match(segments[i])
        if match:
            separator = "-" if "-" in segments[i] else "_" if "_" in segments[i] else ""
            segments[i] = f"{match.group(1)}{separator}{number}"
        else:
            segments[i] = str(number)
        break
    path = "/" + "/".join(segments) + ("/" if parts.path.endswith("/") else "")
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def navigation_state(url: str) -> Tuple[bool, bool]:
    """``(can_go_prev, can_go_next)`` for *url*."""
    info = parse_chapter_from_url(url)
    if not info.has_chapter:
        return False, False
    return info.chapter_number > 0, True
