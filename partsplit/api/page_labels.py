"""
Per-page instrument labeling from extracted header text.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Sequence

import numpy as np

from partsplit.api.confidence import ConfidencePolicy, DEFAULT_POLICY
from partsplit.api.instruments import InstrumentRegistry
from partsplit.api.models import PageHeader, PageLabel
from partsplit.api.part_naming import is_forbidden_label, normalize_instrument_label
from partsplit.config import DEFAULT_FULL_TEXT_SCAN_CHARS
from partsplit.logging_utils import describe_header_text, get_logger

logger = get_logger(__name__)

MIN_HEADER_CHARS = 3


def coerce_page_headers(
    raw: Optional[Iterable[Any]], total_pages: Optional[int] = None
) -> List[PageHeader]:
    """
    Coerce loosely typed upstream headers into ordered, unique PageHeaders.

    Entries with a non-integral page index take their list position; negative
    indices, and indices at or past ``total_pages`` when it is given, are
    dropped; for duplicate indices the first entry wins.
    """
    if raw is None:
        return []
    headers: List[PageHeader] = []
    seen: set[int] = set()
    for position, entry in enumerate(raw):
        header = PageHeader.coerce(entry, position)
        if header.page_index < 0:
            logger.warning("page_header_dropped reason=negative_index position=%s", position)
            continue
        if total_pages is not None and header.page_index >= total_pages:
            logger.warning(
                "page_header_dropped reason=out_of_range page_index=%s total_pages=%s position=%s",
                header.page_index,
                total_pages,
                position,
            )
            continue
        if header.page_index in seen:
            logger.warning(
                "page_header_dropped reason=duplicate_index page_index=%s position=%s",
                header.page_index,
                position,
            )
            continue
        seen.add(header.page_index)
        headers.append(header)
    headers.sort(key=lambda header: header.page_index)
    return headers


def select_label_text(header: PageHeader, full_text_scan_chars: int = DEFAULT_FULL_TEXT_SCAN_CHARS) -> str:
    """Return the header text, or the start of the page text when the header is too short."""
    text = header.header_text.strip()
    if len(text) >= MIN_HEADER_CHARS:
        return text
    fallback = header.full_text[:full_text_scan_chars].strip()
    if len(fallback) >= MIN_HEADER_CHARS:
        return fallback
    return text


def label_page(
    header: PageHeader,
    *,
    policy: Optional[ConfidencePolicy] = None,
    registry: Optional[InstrumentRegistry] = None,
    full_text_scan_chars: int = DEFAULT_FULL_TEXT_SCAN_CHARS,
) -> PageLabel:
    """
    Assign a canonical instrument label and confidence to one page.

    Args:
        header: The page's extracted text.
        policy: Confidence constants; defaults to ``DEFAULT_POLICY``.
        registry: Alternate instrument registry.
        full_text_scan_chars: How much page text to scan when the header is short.

    Returns:
        A PageLabel; unmatched or sentinel text yields an empty label at 0.
    """
    policy = policy or DEFAULT_POLICY
    text = select_label_text(header, full_text_scan_chars)
    unlabeled = PageLabel(
        page_index=header.page_index,
        label="",
        confidence=0,
        raw_header=header.header_text,
        source="none",
    )
    if len(text) < MIN_HEADER_CHARS or is_forbidden_label(text):
        return unlabeled
    normalized = normalize_instrument_label(text, registry)
    if normalized.method == "pattern":
        confidence = policy.exact_match
    elif normalized.method == "registry":
        confidence = policy.fuzzy_match
    else:
        return unlabeled
    if is_forbidden_label(normalized.instrument):
        return unlabeled
    return PageLabel(
        page_index=header.page_index,
        label=normalized.instrument,
        confidence=confidence,
        raw_header=header.header_text,
        source=normalized.method,
    )


def label_pages(
    headers: Sequence[PageHeader],
    *,
    policy: Optional[ConfidencePolicy] = None,
    registry: Optional[InstrumentRegistry] = None,
    full_text_scan_chars: int = DEFAULT_FULL_TEXT_SCAN_CHARS,
) -> List[PageLabel]:
    labels = [
        label_page(
            header,
            policy=policy,
            registry=registry,
            full_text_scan_chars=full_text_scan_chars,
        )
        for header in headers
    ]
    if logger.isEnabledFor(logging.DEBUG):
        for header, label in zip(headers, labels):
            # Header content stays out of logs; only its shape and the result.
            logger.debug(
                "page_labeled page_index=%s header=%s label=%s confidence=%s source=%s",
                header.page_index,
                describe_header_text(header.header_text),
                label.label or "-",
                label.confidence,
                label.source,
            )
    return labels


def header_text_coverage(headers: Sequence[PageHeader], total_pages: Optional[int] = None) -> float:
    """Fraction of pages (0.0-1.0) that carry a usable header string.

    ``total_pages`` widens the denominator to pages that have no header entry.
    """
    denominator = max(len(headers), total_pages or 0)
    if denominator == 0:
        return 0.0
    usable = np.fromiter(
        (len(header.header_text.strip()) >= MIN_HEADER_CHARS for header in headers),
        dtype=bool,
        count=len(headers),
    )
    return float(usable.sum()) / denominator
