"""
Part boundary detection: page headers in, contiguous part segments out.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from partsplit.api.confidence import (
    ConfidencePolicy,
    DEFAULT_POLICY,
    compute_segmentation_confidence,
    per_page_confidence,
)
from partsplit.api.instruments import InstrumentRegistry
from partsplit.api.models import (
    CuttingInstruction,
    NormalisedInstrument,
    PageLabel,
    PartSegment,
    SegmentBoundary,
    SegmentationResult,
    UNKNOWN_PART_LABEL,
)
from partsplit.api.page_labels import coerce_page_headers, label_pages
from partsplit.api.part_naming import normalize_instrument_label
from partsplit.api.smoothing import smooth_page_labels
from partsplit.config import DEFAULT_FULL_TEXT_SCAN_CHARS
from partsplit.logging_utils import get_logger, summarize_payload

logger = get_logger(__name__)


def _validate_total_pages(total_pages: Any) -> int:
    if isinstance(total_pages, bool) or not isinstance(total_pages, int):
        raise ValueError(f"total_pages must be an int, got {total_pages!r}.")
    if total_pages < 0:
        raise ValueError(f"total_pages cannot be negative, got {total_pages}.")
    return total_pages


def build_segments(page_labels: Sequence[PageLabel]) -> List[PartSegment]:
    """Group consecutive pages sharing a label into segments.

    A segment also ends where page indices skip, so every segment's
    ``page_count`` equals ``page_end - page_start + 1``.
    """
    segments: List[PartSegment] = []
    if not page_labels:
        return segments
    start = page_labels[0]
    prev = page_labels[0]
    current = start.label or UNKNOWN_PART_LABEL
    for label in page_labels[1:]:
        display = label.label or UNKNOWN_PART_LABEL
        if display != current or label.page_index != prev.page_index + 1:
            segments.append(
                PartSegment(
                    label=current,
                    page_start=start.page_index,
                    page_end=prev.page_index,
                    page_count=prev.page_index - start.page_index + 1,
                )
            )
            start = label
            current = display
        prev = label
    segments.append(
        PartSegment(
            label=current,
            page_start=start.page_index,
            page_end=prev.page_index,
            page_count=prev.page_index - start.page_index + 1,
        )
    )
    return segments


def _normalize_cached(
    label: str,
    cache: Dict[str, NormalisedInstrument],
    registry: Optional[InstrumentRegistry],
) -> NormalisedInstrument:
    normalized = cache.get(label)
    if normalized is None:
        normalized = normalize_instrument_label(label, registry)
        cache[label] = normalized
    return normalized


def build_cutting_instructions(
    segments: Sequence[PartSegment],
    *,
    cache: Optional[Dict[str, NormalisedInstrument]] = None,
    registry: Optional[InstrumentRegistry] = None,
) -> List[CuttingInstruction]:
    """Turn segments into 0-indexed cutting instructions numbered in document order."""
    if cache is None:
        cache = {}
    instructions: List[CuttingInstruction] = []
    for number, segment in enumerate(segments, start=1):
        normalized = _normalize_cached(segment.label, cache, registry)
        instructions.append(
            CuttingInstruction(
                part_name=segment.label,
                instrument=segment.label,
                section=normalized.section,
                transposition=normalized.transposition,
                part_number=number,
                page_range=(segment.page_start, segment.page_end),
            )
        )
    return instructions


def detect_part_boundaries(
    page_headers: Optional[Sequence[Any]],
    total_pages: int,
    from_text_layer: bool,
    *,
    policy: Optional[ConfidencePolicy] = None,
    registry: Optional[InstrumentRegistry] = None,
    full_text_scan_chars: int = DEFAULT_FULL_TEXT_SCAN_CHARS,
) -> SegmentationResult:
    """
    Segment a document's pages into instrument parts.

    Args:
        page_headers: Per-page header records (PageHeader or mappings).
        total_pages: Page count of the source document.
        from_text_layer: Whether headers came from the PDF text layer; carried through.
        policy: Confidence constants.
        registry: Alternate instrument registry.
        full_text_scan_chars: Page text scanned when a header is too short.

    Returns:
        SegmentationResult covering every page in ``range(total_pages)``.

    Raises:
        ValueError: If ``total_pages`` is not a non-negative int.
    """
    total_pages = _validate_total_pages(total_pages)
    policy = policy or DEFAULT_POLICY
    headers = coerce_page_headers(page_headers, total_pages)

    if not headers and total_pages == 0:
        return SegmentationResult(
            page_labels=(),
            segments=(),
            cutting_instructions=(),
            segmentation_confidence=0,
            from_text_layer=from_text_layer,
            segment_boundaries=(),
            per_page_confidence=(),
        )

    labels = label_pages(
        headers,
        policy=policy,
        registry=registry,
        full_text_scan_chars=full_text_scan_chars,
    )
    smoothed = smooth_page_labels(labels, total_pages, policy)
    segments = build_segments(smoothed)
    # Label -> normalized instrument, scoped to this call.
    cache: Dict[str, NormalisedInstrument] = {}
    instructions = build_cutting_instructions(segments, cache=cache, registry=registry)
    confidence = compute_segmentation_confidence(smoothed, policy)

    logger.info(
        "part_boundaries_detected total_pages=%s analyzed_pages=%s segments=%s confidence=%s from_text_layer=%s",
        total_pages,
        len(headers),
        len(segments),
        confidence,
        from_text_layer,
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "part_boundaries_segments segments=%s",
            summarize_payload(segments),
        )

    return SegmentationResult(
        page_labels=tuple(smoothed),
        segments=tuple(segments),
        cutting_instructions=tuple(instructions),
        segmentation_confidence=confidence,
        from_text_layer=from_text_layer,
        segment_boundaries=tuple(
            SegmentBoundary(label=s.label, start=s.page_start, end=s.page_end) for s in segments
        ),
        per_page_confidence=tuple(per_page_confidence(smoothed)),
    )
