"""Shared record types for page labeling, segmentation and quality gates."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

UNKNOWN_PART_LABEL = "Unknown Part"

CHAIRS = ("1st", "2nd", "3rd", "4th", "Aux", "Solo")
TRANSPOSITIONS = ("C", "Bb", "Eb", "F", "G", "D", "A")
SECTIONS = (
    "Woodwinds",
    "Brass",
    "Percussion",
    "Strings",
    "Keyboard",
    "Vocals",
    "Score",
    "Other",
)
PART_TYPES = ("FULL_SCORE", "CONDUCTOR_SCORE", "CONDENSED_SCORE", "PART")
SCORE_PART_TYPES = frozenset({"FULL_SCORE", "CONDUCTOR_SCORE", "CONDENSED_SCORE"})

# Which step produced a page label.
LABEL_SOURCES = (
    "pattern",
    "registry",
    "forward_fill",
    "blip",
    "front_matter",
    "unanalyzed",
    "none",
)


def coerce_page_index(value: Any) -> Optional[int]:
    """Return ``value`` as an int page index, or None when it is not integral."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    return None


def _coerce_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


@dataclass(frozen=True)
class PageHeader:
    page_index: int
    header_text: str = ""
    full_text: str = ""

    @classmethod
    def coerce(cls, raw: Any, position: int) -> "PageHeader":
        """Build a header from loosely typed upstream data.

        Non-integral page indices fall back to ``position`` and non-string text
        fields become empty strings; nothing here raises for bad content.
        """
        if isinstance(raw, PageHeader):
            page_index = coerce_page_index(raw.page_index)
            header_text = raw.header_text
            full_text = raw.full_text
        elif isinstance(raw, Mapping):
            page_index = coerce_page_index(_pick(raw, "page_index", "pageIndex"))
            header_text = _pick(raw, "header_text", "headerText")
            full_text = _pick(raw, "full_text", "fullText")
        else:
            page_index = None
            header_text = None
            full_text = None
        return cls(
            page_index=position if page_index is None else page_index,
            header_text=_coerce_text(header_text),
            full_text=_coerce_text(full_text),
        )

    def __repr__(self) -> str:
        return (
            f"PageHeader(page_index={self.page_index}, "
            f"header_len={len(self.header_text)}, full_text_len={len(self.full_text)})"
        )


@dataclass(frozen=True)
class PageLabel:
    page_index: int
    label: str
    confidence: int
    raw_header: str = field(default="", repr=False)
    source: str = "none"

    def __post_init__(self) -> None:
        if self.source not in LABEL_SOURCES:
            raise ValueError(f"Unknown page label source: {self.source!r}")

    def to_payload(self) -> Dict[str, Any]:
        # raw_header stays out of payloads; it may hold document content.
        return {
            "page_index": self.page_index,
            "label": self.label,
            "confidence": self.confidence,
            "source": self.source,
        }


@dataclass(frozen=True)
class PartSegment:
    label: str
    page_start: int
    page_end: int
    page_count: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "page_start": self.page_start,
            "page_end": self.page_end,
            "page_count": self.page_count,
        }


@dataclass(frozen=True)
class CuttingInstruction:
    part_name: str
    instrument: str
    section: str
    transposition: str
    part_number: int
    page_range: Tuple[int, int]

    @property
    def page_count(self) -> int:
        return self.page_range[1] - self.page_range[0] + 1

    def to_payload(self) -> Dict[str, Any]:
        return {
            "part_name": self.part_name,
            "instrument": self.instrument,
            "section": self.section,
            "transposition": self.transposition,
            "part_number": self.part_number,
            "page_range": [self.page_range[0], self.page_range[1]],
        }


@dataclass(frozen=True)
class NormalisedInstrument:
    instrument: str
    chair: Optional[str]
    transposition: str
    section: str
    part_type: str = "PART"
    method: str = "fallback"

    def __post_init__(self) -> None:
        if self.chair is not None and self.chair not in CHAIRS:
            raise ValueError(f"Unknown chair: {self.chair!r}")

    @property
    def is_score(self) -> bool:
        return self.section == "Score" or self.part_type in SCORE_PART_TYPES


@dataclass(frozen=True)
class SegmentBoundary:
    label: str
    start: int
    end: int


@dataclass(frozen=True)
class PageConfidence:
    page_index: int
    confidence: int
    label: str


@dataclass(frozen=True)
class SegmentationResult:
    page_labels: Tuple[PageLabel, ...]
    segments: Tuple[PartSegment, ...]
    cutting_instructions: Tuple[CuttingInstruction, ...]
    segmentation_confidence: int
    from_text_layer: bool
    segment_boundaries: Tuple[SegmentBoundary, ...]
    per_page_confidence: Tuple[PageConfidence, ...]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "page_labels": [label.to_payload() for label in self.page_labels],
            "segments": [segment.to_payload() for segment in self.segments],
            "cutting_instructions": [ci.to_payload() for ci in self.cutting_instructions],
            "segmentation_confidence": self.segmentation_confidence,
            "from_text_layer": self.from_text_layer,
            "segment_boundaries": [
                {"label": b.label, "start": b.start, "end": b.end}
                for b in self.segment_boundaries
            ],
            "per_page_confidence": [
                {"page_index": p.page_index, "confidence": p.confidence, "label": p.label}
                for p in self.per_page_confidence
            ],
        }


@dataclass(frozen=True)
class ParsedPart:
    """A part file as produced downstream by the PDF splitter."""
    part_name: Optional[str]
    instrument: Optional[str]
    section: Optional[str]
    page_count: int
    part_type: str = "PART"
    is_blank: bool = False
    page_range: Optional[Tuple[int, int]] = None


@dataclass(frozen=True)
class ExtractionMetadata:
    """Upstream metadata; instructions may still be raw mappings from JSON."""
    cutting_instructions: Sequence[Any] = ()
    confidence_score: Optional[float] = None
    is_multi_part: bool = False


@dataclass(frozen=True)
class QualityGateInput:
    parsed_parts: Sequence[Any]
    metadata: ExtractionMetadata
    total_pages: int
    max_pages_per_part: int = 12
    segmentation_confidence: Optional[float] = None
    segmentation_confidence_threshold: Optional[float] = None
    multi_part_min_pages: int = 10
    coverage_gap_detail_limit: int = 5


@dataclass(frozen=True)
class GateFinding:
    rule: str
    rule_name: str
    message: str
    failing_attributes: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "rule_name": self.rule_name,
            "message": self.message,
            "failing_attributes": dict(self.failing_attributes),
        }


@dataclass(frozen=True)
class QualityGateResult:
    failed: bool
    reasons: List[str]
    final_confidence: float
    findings: List[GateFinding] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "failed": self.failed,
            "reasons": list(self.reasons),
            "final_confidence": self.final_confidence,
            "findings": [finding.to_payload() for finding in self.findings],
        }
