"""
Quality gates deciding whether a segmented document may be auto-committed.

Every processing pass calls ``evaluate_quality_gates`` so auto-commit
eligibility has exactly one implementation.
"""

from __future__ import annotations

import logging
import math
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from partsplit.api.models import (
    GateFinding,
    QualityGateInput,
    QualityGateResult,
    SCORE_PART_TYPES,
    coerce_page_index,
)
from partsplit.api.quality_gate_rules import get_gate_rule_spec
from partsplit.api.sentinels import (
    is_blank_or_spacer_label,
    is_forbidden_label,
    is_placeholder_label,
)
from partsplit.config import DEFAULT_SEGMENTATION_CONFIDENCE_THRESHOLD
from partsplit.logging_utils import get_logger, summarize_payload

logger = get_logger(__name__)

SCORE_SECTIONS = frozenset({"Score", "score"}) | SCORE_PART_TYPES


def _field(record: Any, snake: str, camel: Optional[str] = None) -> Any:
    if isinstance(record, Mapping):
        if snake in record:
            return record[snake]
        if camel and camel in record:
            return record[camel]
        return None
    return getattr(record, snake, None)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def _is_unusable_label(value: Any) -> bool:
    return is_forbidden_label(value) or is_placeholder_label(value)


def _is_blank_part(part: Any) -> bool:
    if _field(part, "is_blank", "isBlank") is True:
        return True
    return is_blank_or_spacer_label(_field(part, "part_name", "partName")) or is_blank_or_spacer_label(
        _field(part, "instrument")
    )


def parse_page_range(value: Any) -> Optional[Tuple[int, int]]:
    """Return ``(start, end)`` for a well-formed page range, else None."""
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return None
    if len(value) != 2:
        return None
    bounds: List[int] = []
    for bound in value:
        if isinstance(bound, str):
            return None
        index = coerce_page_index(bound)
        if index is None or index < 0:
            return None
        bounds.append(index)
    start, end = bounds
    if end < start:
        return None
    return start, end


def _finding(code: str, **attributes: Any) -> GateFinding:
    spec = get_gate_rule_spec(code)
    return GateFinding(
        rule=spec.code,
        rule_name=spec.name,
        message=spec.render(**attributes),
        failing_attributes=attributes,
    )


def _check_part_labels(parts: Sequence[Any]) -> List[GateFinding]:
    findings: List[GateFinding] = []
    for part in parts:
        if _is_blank_part(part):
            continue
        instrument = _field(part, "instrument")
        part_name = _field(part, "part_name", "partName")
        if _is_unusable_label(instrument) or _is_unusable_label(part_name):
            findings.append(
                _finding("forbidden_part_label", instrument=instrument, part_name=part_name)
            )
    return findings


def _check_instructions(
    instructions: Sequence[Any], total_pages: int
) -> Tuple[List[GateFinding], List[Tuple[int, int]]]:
    findings: List[GateFinding] = []
    ranges: List[Tuple[int, int]] = []
    for position, instruction in enumerate(instructions, start=1):
        instrument = _field(instruction, "instrument")
        part_name = _field(instruction, "part_name", "partName")
        part_number = _field(instruction, "part_number", "partNumber")
        if not _is_number(part_number):
            part_number = position
        if not (is_blank_or_spacer_label(part_name) or is_blank_or_spacer_label(instrument)):
            if _is_unusable_label(instrument) or _is_unusable_label(part_name):
                findings.append(
                    _finding(
                        "forbidden_instruction_label",
                        part_number=part_number,
                        instrument=instrument,
                        part_name=part_name,
                    )
                )
        raw_range = _field(instruction, "page_range", "pageRange")
        parsed = parse_page_range(raw_range)
        if parsed is None:
            findings.append(
                _finding(
                    "malformed_page_range",
                    part_number=part_number,
                    part_name=part_name,
                    page_range=raw_range,
                )
            )
        elif parsed[1] >= total_pages:
            findings.append(
                _finding(
                    "page_range_out_of_bounds",
                    part_number=part_number,
                    part_name=part_name,
                    page_range=list(parsed),
                    total_pages=total_pages,
                )
            )
        else:
            ranges.append(parsed)
    return findings, ranges


def _check_oversized_parts(parts: Sequence[Any], max_pages_per_part: int) -> List[GateFinding]:
    findings: List[GateFinding] = []
    for part in parts:
        section = _field(part, "section")
        part_type = _field(part, "part_type", "partType")
        if section in SCORE_SECTIONS or part_type in SCORE_PART_TYPES:
            continue
        page_count = _field(part, "page_count", "pageCount")
        if not _is_number(page_count):
            continue
        if page_count > max_pages_per_part:
            findings.append(
                _finding(
                    "oversized_part",
                    part_name=_field(part, "part_name", "partName"),
                    page_count=_format_number(page_count),
                    max_pages_per_part=max_pages_per_part,
                )
            )
    return findings


def uncovered_pages(ranges: Sequence[Tuple[int, int]], total_pages: int) -> List[int]:
    """Return the 1-based page numbers no 0-indexed range covers."""
    if total_pages <= 0:
        return []
    covered = np.zeros(total_pages, dtype=bool)
    for start, end in ranges:
        if start >= total_pages:
            continue
        covered[start : min(end, total_pages - 1) + 1] = True
    return [int(page) + 1 for page in np.flatnonzero(~covered)]


def _check_coverage(
    ranges: Sequence[Tuple[int, int]], total_pages: int, detail_limit: int
) -> List[GateFinding]:
    missing = uncovered_pages(ranges, total_pages)
    if not missing:
        return []
    if len(missing) <= detail_limit:
        return [_finding("page_coverage_gap", uncovered_pages=missing)]
    return [
        _finding(
            "page_coverage_gross",
            uncovered_count=len(missing),
            total_pages=total_pages,
            first_uncovered=missing[0],
        )
    ]


def evaluate_quality_gates(gate_input: QualityGateInput) -> QualityGateResult:
    """
    Evaluate every auto-commit gate against one pass's output.

    Args:
        gate_input: Parsed parts, extraction metadata and the prior segmentation
            confidence with its threshold.

    Returns:
        QualityGateResult whose ``reasons`` list one message per failing check.
        Document content never raises; only invalid configuration does.
    """
    total_pages = gate_input.total_pages
    if isinstance(total_pages, bool) or not isinstance(total_pages, int) or total_pages < 0:
        raise ValueError(f"total_pages must be a non-negative int, got {total_pages!r}.")
    if gate_input.max_pages_per_part < 1:
        raise ValueError("max_pages_per_part must be at least 1.")

    metadata = gate_input.metadata
    parts = list(gate_input.parsed_parts or [])
    instructions = list(metadata.cutting_instructions or [])
    threshold = gate_input.segmentation_confidence_threshold
    if not _is_number(threshold):
        threshold = DEFAULT_SEGMENTATION_CONFIDENCE_THRESHOLD

    findings: List[GateFinding] = []
    findings.extend(_check_part_labels(parts))
    instruction_findings, ranges = _check_instructions(instructions, total_pages)
    findings.extend(instruction_findings)
    findings.extend(_check_oversized_parts(parts, gate_input.max_pages_per_part))

    if (
        metadata.is_multi_part
        and total_pages > gate_input.multi_part_min_pages
        and len(instructions) < 2
    ):
        findings.append(
            _finding(
                "multi_part_too_few_instructions",
                total_pages=total_pages,
                instruction_count=len(instructions),
            )
        )

    findings.extend(_check_coverage(ranges, total_pages, gate_input.coverage_gap_detail_limit))

    segmentation_confidence = gate_input.segmentation_confidence
    if not _is_number(segmentation_confidence):
        segmentation_confidence = None
    if segmentation_confidence is not None and segmentation_confidence < threshold:
        findings.append(
            _finding(
                "segmentation_confidence_below_threshold",
                segmentation_confidence=_format_number(segmentation_confidence),
                threshold=_format_number(threshold),
            )
        )

    extraction_confidence = metadata.confidence_score if _is_number(metadata.confidence_score) else 0
    if segmentation_confidence is not None:
        final_confidence = min(extraction_confidence, segmentation_confidence)
    else:
        final_confidence = extraction_confidence

    reasons = [finding.message for finding in findings]
    result = QualityGateResult(
        failed=bool(reasons),
        reasons=reasons,
        final_confidence=final_confidence,
        findings=findings,
    )
    logger.info(
        "quality_gates_evaluated failed=%s rules=%s final_confidence=%s",
        result.failed,
        ",".join(finding.rule for finding in findings) or "-",
        final_confidence,
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("quality_gates_result result=%s", summarize_payload(result))
    return result
