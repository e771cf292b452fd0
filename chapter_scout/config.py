# === FILE: chapter_scout/config.py ===
"""
Configuration loading and validation for ChapterScout.
Pydantic describes the schema; YAML and JSON files are both accepted.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
    model_validator,
)

from chapter_scout.utils import DEFAULT_FILE_TYPES, IMAGE_EXTENSIONS, normalize_file_types

#: chapter count from which the inter-chapter wait must be at least 30 s
BULK_CHAPTER_COUNT = 15
MIN_FETCH_INTERVAL = 15.0
MIN_FETCH_INTERVAL_BULK = 30.0

STANDARD_INTERVALS: tuple[int, ...] = (15, 20, 25, 30, 45, 60, 75, 90, 120, 150, 180, 200)
BULK_INTERVALS: tuple[int, ...] = (30, 45, 60, 75, 90, 120, 150, 180, 200)


def min_fetch_interval(chapter_count: int) -> float:
    """Smallest inter-chapter delay (seconds) allowed for *chapter_count* chapters."""
    return MIN_FETCH_INTERVAL_BULK if chapter_count >= BULK_CHAPTER_COUNT else MIN_FETCH_INTERVAL


def fetch_interval_choices(chapter_count: int) -> tuple[int, ...]:
    """Interval presets offered for *chapter_count* chapters."""
    return BULK_INTERVALS if chapter_count >= BULK_CHAPTER_COUNT else STANDARD_INTERVALS


class ScrapeOptions(BaseModel):
    """Per-run scraping options."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    consecutive_miss_threshold: int = Field(2, ge=1, le=3, description="Failed batches tolerated in a row.")
    chapter_count: int = Field(1, ge=1, description="Number of chapters to fetch.")
    validate_images: bool = Field(False, description="HEAD-validate instead of load-testing candidates.")
    fetch_interval: float = Field(15.0, ge=0, description="Wait between chapters (seconds).")
    batch_size: int = Field(3, ge=1, description="Candidates probed per batch.")
    max_sequence: int = Field(500, ge=1, description="Absolute ceiling of sequential candidates.")
    load_timeout: float = Field(5.0, gt=0, description="Load-test timeout per candidate (seconds).")
    parallel_probe: bool = Field(False, description="Probe one batch concurrently.")
    image_filter: Optional[Callable[[str], bool]] = Field(
        None, exclude=True, description="Returns True for URLs that must not be emitted."
    )


class RetryDelays(BaseModel):
    """Base backoff delays (seconds) per retryable status class."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    rate_limit: float = Field(1.0, ge=0)
    ssl: float = Field(2.0, ge=0)
    timeout: float = Field(1.5, ge=0)


class ScoutConfig(BaseModel):
    """Configuration of the scraper process."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    proxy_url: Optional[HttpUrl] = Field(None, description="CORS proxy endpoint; direct fetch if absent.")
    timeout: float = Field(5.0, gt=0, description="Timeout of one request (seconds).")
    user_agent: str = Field(
        "Mozilla/5.0 (compatible; ChapterScout/1.0)", min_length=1, description="User-Agent header."
    )
    retry_times: int = Field(3, ge=0, description="Retries for 429/525/408 responses.")
    retry_delays: RetryDelays = Field(default_factory=RetryDelays)
    file_types: List[str] = Field(default_factory=lambda: list(DEFAULT_FILE_TYPES))
    patterns_file: Optional[Path] = Field(None, description="Chapter URL pattern rules.")
    filters_file: Optional[Path] = Field(None, description="Image filter patterns, one per line.")
    scrape: ScrapeOptions = Field(default_factory=ScrapeOptions)

    @field_validator("file_types", mode="after")
    def _check_file_types(cls, v: List[str]) -> List[str]:
        types = normalize_file_types(v)
        unknown = [t for t in types if t not in IMAGE_EXTENSIONS]
        if unknown:
            raise ValueError(f"unsupported file types: {', '.join(unknown)}")
        return types

    @model_validator(mode="after")
    def _check_files_exist(self) -> ScoutConfig:
        missing = [p for p in (self.patterns_file, self.filters_file) if p is not None and not p.is_file()]
        if missing:
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(missing[0]))
        return self


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of YAML must be a mapping, got {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of JSON must be a mapping, got {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None]) -> ScoutConfig:
    """
    Read a YAML or JSON file and return a validated :class:`ScoutConfig`.
    Raises FileNotFoundError when the file (or a file it references) is missing.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(_DEFAULT_CFG))
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Unsupported config format: {suffix}")

    # relative rule files are resolved against the config file's directory
    for key in ("patterns_file", "filters_file"):
        value = data.get(key)
        if isinstance(value, str) and not Path(value).expanduser().is_absolute():
            data[key] = str(path_obj.parent / value)

    try:
        return ScoutConfig(**data)
    except ValidationError:
        raise


__all__ = [
    "ScrapeOptions",
    "RetryDelays",
    "ScoutConfig",
    "load_config",
    "min_fetch_interval",
    "fetch_interval_choices",
    "BULK_CHAPTER_COUNT",
]
