"""Canonical rule metadata for the auto-commit quality gates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class GateRuleSpec:
    code: str
    gate: str
    name: str
    definition: str
    fail_condition: str
    suggestion: str
    message_template: str

    def render(self, **attributes: Any) -> str:
        return self.message_template.format(**attributes)


GATE_RULE_SPECS: Dict[str, GateRuleSpec] = {
    "forbidden_part_label": GateRuleSpec(
        code="forbidden_part_label",
        gate="G1",
        name="Parsed Part Has Forbidden Label",
        definition="Every split part that is not an explicit blank or spacer page must carry a real instrument and part name.",
        fail_condition="A parsed part's instrument or part name is missing, an absence sentinel (null, none, n/a, unknown, undefined) or a placeholder such as Unknown Part.",
        suggestion="Review the part's pages and assign the instrument printed in the header, or mark the pages as blank.",
        message_template='Part with null/unknown label: instrument="{instrument}" partName="{part_name}"',
    ),
    "forbidden_instruction_label": GateRuleSpec(
        code="forbidden_instruction_label",
        gate="G1b",
        name="Cutting Instruction Has Forbidden Label",
        definition="Every cutting instruction must name a real instrument and part before the document is split.",
        fail_condition="A cutting instruction's instrument or part name is missing, an absence sentinel or a placeholder label.",
        suggestion="Relabel the instruction from its page headers or merge its pages into the neighbouring part.",
        message_template='Cutting instruction {part_number} has null/unknown label: instrument="{instrument}" partName="{part_name}"',
    ),
    "malformed_page_range": GateRuleSpec(
        code="malformed_page_range",
        gate="G1c",
        name="Cutting Instruction Page Range Malformed",
        definition="A cutting instruction's page range must be two non-negative whole numbers with end >= start.",
        fail_condition="The page range is missing, not two elements long, non-numeric, negative, fractional or reversed.",
        suggestion="Rebuild the instruction's page range from the segment boundaries.",
        message_template='Cutting instruction {part_number} ("{part_name}") has malformed pageRange {page_range}',
    ),
    "page_range_out_of_bounds": GateRuleSpec(
        code="page_range_out_of_bounds",
        gate="G1c",
        name="Cutting Instruction Page Range Past Document End",
        definition="A cutting instruction's page range must lie within the document's pages.",
        fail_condition="The page range ends at or past the document's page count.",
        suggestion="Rebuild the instruction's page range against the document's actual page count.",
        message_template='Cutting instruction {part_number} ("{part_name}") pageRange {page_range} exceeds {total_pages} pages',
    ),
    "oversized_part": GateRuleSpec(
        code="oversized_part",
        gate="G2",
        name="Non-Score Part Exceeds Page Limit",
        definition="Individual instrument parts are short; a long non-score part usually hides a missed part boundary.",
        fail_condition="A part whose section and part type are not score types has more pages than the configured maximum.",
        suggestion="Inspect the part's pages for a second instrument header and split it there.",
        message_template='Non-score part "{part_name}" has {page_count} pages (max {max_pages_per_part})',
    ),
    "multi_part_too_few_instructions": GateRuleSpec(
        code="multi_part_too_few_instructions",
        gate="G3",
        name="Multi-Part Document Produced Too Few Parts",
        definition="A document flagged as containing several parts must be cut into at least two parts once it is long enough.",
        fail_condition="Metadata marks the document as multi-part, it has more pages than the multi-part minimum, and fewer than two cutting instructions exist.",
        suggestion="Re-run header extraction with OCR or split the document manually.",
        message_template="isMultiPart=true with {total_pages} pages but only {instruction_count} cutting instruction(s)",
    ),
    "page_coverage_gap": GateRuleSpec(
        code="page_coverage_gap",
        gate="G4",
        name="Pages Not Covered By Cutting Instructions",
        definition="The union of all cutting-instruction ranges must cover every page of the document.",
        fail_condition="Between one and the detail limit of pages are covered by no cutting instruction.",
        suggestion="Assign each listed page to a part or classify it as a blank page.",
        message_template="Pages not covered by any cutting instruction: {uncovered_pages}",
    ),
    "page_coverage_gross": GateRuleSpec(
        code="page_coverage_gross",
        gate="G4",
        name="Gross Page Coverage Failure",
        definition="The union of all cutting-instruction ranges must cover every page of the document.",
        fail_condition="More pages than the detail limit are covered by no cutting instruction.",
        suggestion="Re-run segmentation; large uncovered spans usually mean the header pass failed.",
        message_template="Gross page coverage failure: {uncovered_count} of {total_pages} pages not covered by any cutting instruction (first uncovered page {first_uncovered})",
    ),
    "segmentation_confidence_below_threshold": GateRuleSpec(
        code="segmentation_confidence_below_threshold",
        gate="G5",
        name="Segmentation Confidence Below Threshold",
        definition="The prior segmentation pass must be confident enough to trust its part boundaries.",
        fail_condition="A segmentation confidence was supplied and it is lower than the configured threshold.",
        suggestion="Run the corrective OCR pass or route the document to review.",
        message_template="segmentationConfidence {segmentation_confidence} < threshold {threshold}",
    ),
}


def get_gate_rule_spec(code: str) -> GateRuleSpec:
    return GATE_RULE_SPECS[code]
