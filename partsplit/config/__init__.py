from __future__ import annotations

"""Segmentation settings loader from environment variables."""

from dataclasses import dataclass
from pathlib import Path
import os

from partsplit.resolve import resolve_registry_path


def _env_int(name: str, default: int) -> int:
    """Read an int env var with a default."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}.") from None


def _env_float(name: str, default: float) -> float:
    """Read a float env var with a default."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}.") from None


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() in {"1", "true", "yes"}


DEV_ENV_NAMES = frozenset({"dev", "development", "local", "test"})


def app_env_name() -> str:
    """Return the application environment name; unset means production."""
    return (os.getenv("APP_ENV") or os.getenv("ENV") or "prod").lower()


DEFAULT_MAX_PAGES_PER_PART = 12
DEFAULT_SEGMENTATION_CONFIDENCE_THRESHOLD = 70.0
DEFAULT_MULTI_PART_MIN_PAGES = 10
DEFAULT_COVERAGE_GAP_DETAIL_LIMIT = 5
DEFAULT_FULL_TEXT_SCAN_CHARS = 300


@dataclass(frozen=True)
class Settings:
    """Configuration values parsed from the environment."""
    max_pages_per_part: int = DEFAULT_MAX_PAGES_PER_PART
    segmentation_confidence_threshold: float = DEFAULT_SEGMENTATION_CONFIDENCE_THRESHOLD
    multi_part_min_pages: int = DEFAULT_MULTI_PART_MIN_PAGES
    coverage_gap_detail_limit: int = DEFAULT_COVERAGE_GAP_DETAIL_LIMIT
    full_text_scan_chars: int = DEFAULT_FULL_TEXT_SCAN_CHARS
    instrument_registry_path: Path | None = None
    debug: bool = False
    app_env: str = "prod"

    def __post_init__(self) -> None:
        if self.max_pages_per_part < 1:
            raise ValueError("max_pages_per_part must be at least 1.")
        if not 0 <= self.segmentation_confidence_threshold <= 100:
            raise ValueError("segmentation_confidence_threshold must be within 0-100.")
        if self.multi_part_min_pages < 0:
            raise ValueError("multi_part_min_pages cannot be negative.")
        if self.coverage_gap_detail_limit < 0:
            raise ValueError("coverage_gap_detail_limit cannot be negative.")
        if self.full_text_scan_chars < 1:
            raise ValueError("full_text_scan_chars must be at least 1.")

    @property
    def is_dev(self) -> bool:
        return self.app_env in DEV_ENV_NAMES

    @classmethod
    def from_env(cls) -> "Settings":
        """Construct settings from environment variables."""
        registry_override = os.getenv("PARTSPLIT_INSTRUMENT_REGISTRY", "").strip()
        registry_path = resolve_registry_path(registry_override) if registry_override else None
        return cls(
            max_pages_per_part=_env_int(
                "PARTSPLIT_MAX_PAGES_PER_PART", DEFAULT_MAX_PAGES_PER_PART
            ),
            segmentation_confidence_threshold=_env_float(
                "PARTSPLIT_SEGMENTATION_CONFIDENCE_THRESHOLD",
                DEFAULT_SEGMENTATION_CONFIDENCE_THRESHOLD,
            ),
            multi_part_min_pages=_env_int(
                "PARTSPLIT_MULTI_PART_MIN_PAGES", DEFAULT_MULTI_PART_MIN_PAGES
            ),
            coverage_gap_detail_limit=_env_int(
                "PARTSPLIT_COVERAGE_GAP_DETAIL_LIMIT", DEFAULT_COVERAGE_GAP_DETAIL_LIMIT
            ),
            full_text_scan_chars=_env_int(
                "PARTSPLIT_FULL_TEXT_SCAN_CHARS", DEFAULT_FULL_TEXT_SCAN_CHARS
            ),
            instrument_registry_path=registry_path,
            debug=_env_bool("PARTSPLIT_DEBUG", False),
            app_env=app_env_name(),
        )
