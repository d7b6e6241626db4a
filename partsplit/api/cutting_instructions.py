"""
Validation and normalization of cutting instructions before a PDF is split.

Handles 1- to 0-indexed conversion, clamping, overlaps, coverage gaps and
filename collisions. All page ranges leaving this module are 0-indexed.
"""

from __future__ import annotations

import dataclasses
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from partsplit.api.models import CuttingInstruction, SECTIONS
from partsplit.api.part_naming import normalize_transposition
from partsplit.logging_utils import get_logger

logger = get_logger(__name__)

GAP_PART_NUMBER_START = 9900
GAP_INSTRUMENT = "Unknown"


@dataclass(frozen=True)
class PageGap:
    start: int
    end: int


@dataclass(frozen=True)
class PageOverlap:
    part1: str
    part2: str
    overlap: Tuple[int, int]


@dataclass(frozen=True)
class InstructionValidation:
    instructions: List[CuttingInstruction]
    warnings: List[str]
    errors: List[str]
    is_valid: bool
    gaps: Optional[List[PageGap]] = None
    overlaps: Optional[List[PageOverlap]] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "instructions": [instruction.to_payload() for instruction in self.instructions],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "is_valid": self.is_valid,
            "gaps": None if self.gaps is None else [
                {"start": gap.start, "end": gap.end} for gap in self.gaps
            ],
            "overlaps": None if self.overlaps is None else [
                {"part1": o.part1, "part2": o.part2, "overlap": list(o.overlap)}
                for o in self.overlaps
            ],
        }


@dataclass
class _Candidate:
    part_name: str
    page_start: int
    page_end: int
    instrument: str
    section: str
    transposition: str
    part_number: Optional[int] = None


def to_zero_indexed(page_range: Tuple[int, int]) -> Tuple[int, int]:
    return max(0, page_range[0] - 1), max(0, page_range[1] - 1)


def to_one_indexed(page_range: Tuple[int, int]) -> Tuple[int, int]:
    return page_range[0] + 1, page_range[1] + 1


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def _get(raw: Any, snake: str, camel: str) -> Any:
    if isinstance(raw, Mapping):
        if snake in raw:
            return raw[snake]
        return raw.get(camel)
    return getattr(raw, snake, None)


def _has(raw: Any, snake: str, camel: str) -> bool:
    if isinstance(raw, Mapping):
        return snake in raw or camel in raw
    return hasattr(raw, snake)


def _parse_candidate(index: int, raw: Any, errors: List[str]) -> Optional[_Candidate]:
    if not isinstance(raw, (Mapping, CuttingInstruction)):
        errors.append(f"Instruction {index}: Must be an object")
        return None
    part_name = _get(raw, "part_name", "partName")
    if not isinstance(part_name, str):
        errors.append(f"Instruction {index}: Missing or invalid partName")
        return None
    part_name = part_name.strip()
    if not part_name:
        errors.append(f"Instruction {index}: partName cannot be empty")
        return None

    page_range = _get(raw, "page_range", "pageRange")
    if isinstance(page_range, (list, tuple)) and len(page_range) >= 2:
        start, end = _as_int(page_range[0]), _as_int(page_range[1])
        if start is None:
            errors.append(f"Instruction {index} ({part_name}): pageRange[0] must be a finite integer")
            return None
        if end is None:
            errors.append(f"Instruction {index} ({part_name}): pageRange[1] must be a finite integer")
            return None
    elif _has(raw, "page_start", "pageStart") and _has(raw, "page_end", "pageEnd"):
        start = _as_int(_get(raw, "page_start", "pageStart"))
        end = _as_int(_get(raw, "page_end", "pageEnd"))
        if start is None:
            errors.append(f"Instruction {index} ({part_name}): pageStart must be an integer")
            return None
        if end is None:
            errors.append(f"Instruction {index} ({part_name}): pageEnd must be an integer")
            return None
    else:
        errors.append(f"Instruction {index} ({part_name}): Missing pageRange or pageStart/pageEnd")
        return None

    instrument = _get(raw, "instrument", "instrument")
    section = _get(raw, "section", "section")
    return _Candidate(
        part_name=part_name,
        page_start=start,
        page_end=end,
        instrument=instrument if isinstance(instrument, str) and instrument.strip() else GAP_INSTRUMENT,
        section=section if section in SECTIONS else "Other",
        transposition=normalize_transposition(_get(raw, "transposition", "transposition")),
        part_number=_as_int(_get(raw, "part_number", "partNumber")),
    )


def detect_overlaps(instructions: Sequence[CuttingInstruction]) -> List[PageOverlap]:
    """Return every pair of instructions whose page ranges intersect."""
    overlaps: List[PageOverlap] = []
    for i, first in enumerate(instructions):
        for second in instructions[i + 1 :]:
            start = max(first.page_range[0], second.page_range[0])
            end = min(first.page_range[1], second.page_range[1])
            if start <= end:
                overlaps.append(
                    PageOverlap(part1=first.part_name, part2=second.part_name, overlap=(start, end))
                )
    return overlaps


def detect_gaps(instructions: Sequence[CuttingInstruction], total_pages: int) -> List[PageGap]:
    """Return maximal 0-indexed page runs that no instruction covers."""
    covered = [False] * max(total_pages, 0)
    for instruction in instructions:
        start, end = instruction.page_range
        for page in range(max(start, 0), min(end, total_pages - 1) + 1):
            covered[page] = True
    gaps: List[PageGap] = []
    gap_start: Optional[int] = None
    for page, is_covered in enumerate(covered):
        if not is_covered and gap_start is None:
            gap_start = page
        elif is_covered and gap_start is not None:
            gaps.append(PageGap(gap_start, page - 1))
            gap_start = None
    if gap_start is not None:
        gaps.append(PageGap(gap_start, total_pages - 1))
    return gaps


def split_overlapping_ranges(instructions: Sequence[CuttingInstruction]) -> List[CuttingInstruction]:
    """Truncate the earlier of two consecutive overlapping ranges.

    Instructions are ordered by start page (ties keep input order). An earlier
    instruction left with no pages is dropped.
    """
    if len(instructions) <= 1:
        return list(instructions)
    ordered = sorted(
        enumerate(instructions), key=lambda item: (item[1].page_range[0], item[0])
    )
    result: List[CuttingInstruction] = []
    for position, (_, current) in enumerate(ordered):
        following = ordered[position + 1][1] if position + 1 < len(ordered) else None
        if following is not None and current.page_range[1] >= following.page_range[0]:
            adjusted_end = following.page_range[0] - 1
            if adjusted_end >= current.page_range[0]:
                result.append(
                    dataclasses.replace(current, page_range=(current.page_range[0], adjusted_end))
                )
            continue
        result.append(current)
    return result


def validate_and_normalize_instructions(
    raw_instructions: Any,
    total_pages: int,
    *,
    one_indexed: bool = False,
    allow_overlaps: bool = False,
    auto_fix_overlaps: bool = False,
    detect_gaps_enabled: bool = False,
) -> InstructionValidation:
    """
    Validate raw (upstream JSON) cutting instructions and normalize them.

    Args:
        raw_instructions: List of mappings (camelCase or snake_case) or CuttingInstructions.
        total_pages: Page count of the source PDF.
        one_indexed: Treat input ranges as 1-indexed and convert to 0-indexed.
        allow_overlaps: Report overlaps as warnings instead of errors.
        auto_fix_overlaps: Truncate overlapping ranges (implies warnings only).
        detect_gaps_enabled: Report uncovered page runs as warnings.

    Returns:
        InstructionValidation with 0-indexed, clamped instructions.
    """
    warnings: List[str] = []
    errors: List[str] = []
    if not isinstance(raw_instructions, (list, tuple)):
        errors.append("Instructions must be an array")
        return InstructionValidation([], warnings, errors, False)
    if not raw_instructions:
        warnings.append("No cutting instructions provided")
        return InstructionValidation([], warnings, errors, True)
    if isinstance(total_pages, bool) or not isinstance(total_pages, int) or total_pages <= 0:
        errors.append(f"Invalid totalPages: {total_pages}. Must be greater than 0")
        return InstructionValidation([], warnings, errors, False)

    candidates: List[_Candidate] = []
    for index, raw in enumerate(raw_instructions):
        candidate = _parse_candidate(index, raw, errors)
        if candidate is not None:
            candidates.append(candidate)
    if not candidates and errors:
        return InstructionValidation([], warnings, errors, False)

    if one_indexed:
        for candidate in candidates:
            candidate.page_start, candidate.page_end = to_zero_indexed(
                (candidate.page_start, candidate.page_end)
            )
        logger.info("cutting_instructions_converted_one_indexed count=%s", len(candidates))

    last_page = total_pages - 1
    for candidate in candidates:
        candidate.page_start = max(0, min(candidate.page_start, last_page))
        candidate.page_end = max(0, min(candidate.page_end, last_page))
        if candidate.page_start > candidate.page_end:
            errors.append(
                f'Part "{candidate.part_name}": pageStart ({candidate.page_start}) '
                f"cannot be greater than pageEnd ({candidate.page_end})"
            )

    instructions = [
        CuttingInstruction(
            part_name=candidate.part_name,
            instrument=candidate.instrument,
            section=candidate.section,
            transposition=candidate.transposition,
            part_number=candidate.part_number if candidate.part_number is not None else idx + 1,
            page_range=(candidate.page_start, candidate.page_end),
        )
        for idx, candidate in enumerate(candidates)
    ]

    overlaps = detect_overlaps(instructions)
    for overlap in overlaps:
        message = (
            f'Overlap detected between "{overlap.part1}" and "{overlap.part2}" '
            f"on pages {overlap.overlap[0]}-{overlap.overlap[1]}"
        )
        if allow_overlaps or auto_fix_overlaps:
            warnings.append(message)
        else:
            errors.append(message)
    if overlaps and auto_fix_overlaps:
        instructions = split_overlapping_ranges(instructions)
        warnings.append("Auto-fixed overlapping ranges")

    gaps: Optional[List[PageGap]] = None
    if detect_gaps_enabled:
        gaps = detect_gaps(instructions, total_pages)
        for gap in gaps:
            warnings.append(f"Gap detected: pages {gap.start}-{gap.end} are not covered by any part")

    is_valid = not errors and bool(instructions)
    logger.info(
        "cutting_instructions_validated instructions=%s errors=%s warnings=%s overlaps=%s gaps=%s valid=%s",
        len(instructions),
        len(errors),
        len(warnings),
        len(overlaps),
        len(gaps or []),
        is_valid,
    )
    return InstructionValidation(
        instructions=instructions,
        warnings=warnings,
        errors=errors,
        is_valid=is_valid,
        gaps=gaps,
        overlaps=overlaps or None,
    )


def build_gap_instructions(
    instructions: Sequence[CuttingInstruction], total_pages: int
) -> List[CuttingInstruction]:
    """Synthesize placeholder instructions for uncovered 0-indexed page runs.

    Names use 1-based page numbers; part numbers start at 9900 so they sort last.
    """
    return [
        CuttingInstruction(
            part_name=f"Unlabelled Pages {gap.start + 1}-{gap.end + 1}",
            instrument=GAP_INSTRUMENT,
            section="Other",
            transposition="C",
            part_number=GAP_PART_NUMBER_START + offset,
            page_range=(gap.start, gap.end),
        )
        for offset, gap in enumerate(detect_gaps(instructions, total_pages))
    ]


def _has_usable_range(instruction: Any) -> bool:
    page_range = _get(instruction, "page_range", "pageRange")
    if not isinstance(page_range, (list, tuple)) or len(page_range) < 2:
        return False
    return all(
        isinstance(bound, (int, float)) and not isinstance(bound, bool) and math.isfinite(bound)
        for bound in page_range[:2]
    )


def sanitize_cutting_instructions_for_split(instructions: Sequence[Any]) -> List[Any]:
    """Drop instructions whose page range would crash the splitter."""
    valid: List[Any] = []
    removed: List[str] = []
    for instruction in instructions:
        if _has_usable_range(instruction):
            valid.append(instruction)
        else:
            removed.append(_get(instruction, "part_name", "partName") or "unnamed")
    if removed:
        logger.warning(
            "cutting_instructions_removed_before_split removed=%s remaining=%s",
            removed,
            len(valid),
        )
    return valid


def generate_unique_filename(part_name: str, page_start: int, page_end: int, index: int) -> str:
    """Return ``"{name}__p{start}-{end}_{index}.pdf"`` with unsafe characters removed."""
    sanitized = re.sub(r"[^a-zA-Z0-9\s&_-]", "", part_name).strip()
    return f"{sanitized}__p{page_start}-{page_end}_{index}.pdf"
