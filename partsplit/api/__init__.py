"""
Part Segmentation API Module

This module exposes the public APIs for splitting multi-part score PDFs.
"""

from partsplit.api.instruments import canonicalize_instrument, match_instrument, load_instrument_registry
from partsplit.api.part_naming import normalize_instrument_label, is_forbidden_label
from partsplit.api.page_labels import coerce_page_headers, label_pages, header_text_coverage
from partsplit.api.smoothing import smooth_page_labels
from partsplit.api.confidence import ConfidencePolicy, compute_segmentation_confidence
from partsplit.api.segmentation import detect_part_boundaries
from partsplit.api.quality_gates import evaluate_quality_gates
from partsplit.api.cutting_instructions import (
    validate_and_normalize_instructions,
    build_gap_instructions,
    sanitize_cutting_instructions_for_split,
)

__all__ = [
    # Step 1: Instrument labels
    "load_instrument_registry",
    "match_instrument",
    "canonicalize_instrument",
    "normalize_instrument_label",
    "is_forbidden_label",
    # Step 2: Page labels
    "coerce_page_headers",
    "label_pages",
    "header_text_coverage",
    "smooth_page_labels",
    # Step 3: Segmentation
    "ConfidencePolicy",
    "compute_segmentation_confidence",
    "detect_part_boundaries",
    # Step 4: Gates
    "evaluate_quality_gates",
    # Cutting instructions
    "validate_and_normalize_instructions",
    "build_gap_instructions",
    "sanitize_cutting_instructions_for_split",
]
