"""One segmentation pass: label pages, segment, then run the quality gates.

The first text-layer pass and the corrective OCR pass both go through
``run_segmentation_pass`` so auto-commit is decided the same way each time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from partsplit.api.instruments import InstrumentRegistry, load_instrument_registry
from partsplit.api.models import (
    ExtractionMetadata,
    ParsedPart,
    QualityGateInput,
    QualityGateResult,
    SegmentationResult,
)
from partsplit.api.part_naming import is_blank_or_spacer_label, normalize_instrument_label
from partsplit.api.quality_gates import evaluate_quality_gates
from partsplit.api.segmentation import detect_part_boundaries
from partsplit.config import Settings
from partsplit.logging_utils import clear_log_context, get_logger, set_log_context, summarize_payload

logger = get_logger(__name__)


@dataclass(frozen=True)
class PassOutcome:
    segmentation: SegmentationResult
    quality: QualityGateResult

    @property
    def requires_human_review(self) -> bool:
        return self.quality.failed

    def to_payload(self) -> Dict[str, Any]:
        return {
            "segmentation": self.segmentation.to_payload(),
            "quality": self.quality.to_payload(),
            "requires_human_review": self.requires_human_review,
        }


def plan_parsed_parts(
    segmentation: SegmentationResult, registry: Optional[InstrumentRegistry] = None
) -> List[ParsedPart]:
    """Describe the part files the splitter will produce from ``segmentation``."""
    parts: List[ParsedPart] = []
    for instruction in segmentation.cutting_instructions:
        normalized = normalize_instrument_label(instruction.instrument, registry)
        parts.append(
            ParsedPart(
                part_name=instruction.part_name,
                instrument=instruction.instrument,
                section=instruction.section,
                page_count=instruction.page_count,
                part_type=normalized.part_type,
                is_blank=is_blank_or_spacer_label(instruction.part_name),
                page_range=instruction.page_range,
            )
        )
    return parts


def run_segmentation_pass(
    page_headers: Optional[Sequence[Any]],
    total_pages: int,
    *,
    from_text_layer: bool,
    extraction_confidence: Optional[float],
    is_multi_part: bool,
    parsed_parts: Optional[Sequence[Any]] = None,
    settings: Optional[Settings] = None,
    pass_name: str = "first_pass",
    document_id: Optional[str] = None,
) -> PassOutcome:
    """
    Segment a document and decide whether the result may be auto-committed.

    Args:
        page_headers: Per-page header records for this pass.
        total_pages: Page count of the source PDF.
        from_text_layer: Provenance flag carried into the result.
        extraction_confidence: Upstream metadata confidence (0-100).
        is_multi_part: Whether upstream metadata flags several parts.
        parsed_parts: Parts already produced by the splitter; planned from the
            segmentation when omitted.
        settings: Thresholds; read from the environment when omitted.
        pass_name: Log context label, e.g. ``first_pass`` or ``ocr_pass``.
        document_id: Log context identifier for the document.

    Returns:
        PassOutcome with the segmentation, the gate result and the review flag.
    """
    settings = settings or Settings.from_env()
    set_log_context(pass_name=pass_name, document_id=document_id)
    try:
        registry = (
            load_instrument_registry(settings.instrument_registry_path)
            if settings.instrument_registry_path
            else None
        )

        segmentation = detect_part_boundaries(
            page_headers,
            total_pages,
            from_text_layer,
            registry=registry,
            full_text_scan_chars=settings.full_text_scan_chars,
        )
        if parsed_parts is None:
            parsed_parts = plan_parsed_parts(segmentation, registry)

        quality = evaluate_quality_gates(
            QualityGateInput(
                parsed_parts=list(parsed_parts),
                metadata=ExtractionMetadata(
                    cutting_instructions=segmentation.cutting_instructions,
                    confidence_score=extraction_confidence,
                    is_multi_part=is_multi_part,
                ),
                total_pages=total_pages,
                max_pages_per_part=settings.max_pages_per_part,
                segmentation_confidence=segmentation.segmentation_confidence,
                segmentation_confidence_threshold=settings.segmentation_confidence_threshold,
                multi_part_min_pages=settings.multi_part_min_pages,
                coverage_gap_detail_limit=settings.coverage_gap_detail_limit,
            )
        )
        outcome = PassOutcome(segmentation=segmentation, quality=quality)

        logger.info(
            "segmentation_pass_complete pass=%s segments=%s confidence=%s final_confidence=%s review=%s",
            pass_name,
            len(segmentation.segments),
            segmentation.segmentation_confidence,
            quality.final_confidence,
            outcome.requires_human_review,
        )
        if quality.failed:
            logger.warning("auto_commit_blocked pass=%s reasons=%s", pass_name, quality.reasons)
        if settings.debug and logger.isEnabledFor(logging.DEBUG):
            logger.debug("segmentation_pass_outcome outcome=%s", summarize_payload(outcome))
        return outcome
    finally:
        clear_log_context()
