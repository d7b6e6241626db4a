"""Gap filling and blip smoothing over per-page labels.

Each pass returns a new list; input labels are never mutated.
"""

from __future__ import annotations

import dataclasses
from typing import List, Optional, Sequence

from partsplit.api.confidence import ConfidencePolicy, DEFAULT_POLICY
from partsplit.api.models import PageLabel, UNKNOWN_PART_LABEL


def forward_fill(labels: Sequence[PageLabel], policy: Optional[ConfidencePolicy] = None) -> List[PageLabel]:
    """Carry the last seen label onto following unlabeled pages."""
    policy = policy or DEFAULT_POLICY
    filled: List[PageLabel] = []
    last_label = ""
    for label in labels:
        if label.label:
            last_label = label.label
            filled.append(label)
        elif last_label:
            filled.append(
                dataclasses.replace(
                    label, label=last_label, confidence=policy.propagated, source="forward_fill"
                )
            )
        else:
            filled.append(label)
    return filled


def smooth_blips(labels: Sequence[PageLabel], policy: Optional[ConfidencePolicy] = None) -> List[PageLabel]:
    """Relabel a single page that disagrees with two agreeing neighbours.

    Neighbours must sit on the adjacent page indices. Runs left to right over
    the already-smoothed sequence, so a corrected page counts as the left
    neighbour of the next one.
    """
    policy = policy or DEFAULT_POLICY
    smoothed = list(labels)
    if len(smoothed) <= 2:
        return smoothed
    for idx in range(1, len(smoothed) - 1):
        prev, curr, nxt = smoothed[idx - 1], smoothed[idx], smoothed[idx + 1]
        if prev.page_index + 1 != curr.page_index or curr.page_index + 1 != nxt.page_index:
            continue
        if prev.label and prev.label == nxt.label and curr.label != prev.label:
            smoothed[idx] = dataclasses.replace(
                curr,
                label=prev.label,
                confidence=min(curr.confidence, policy.blip_cap),
                source="blip",
            )
    return smoothed


def fill_front_matter(labels: Sequence[PageLabel], policy: Optional[ConfidencePolicy] = None) -> List[PageLabel]:
    """Give the leading unlabeled run the first real label."""
    policy = policy or DEFAULT_POLICY
    first = next((label for label in labels if label.label), None)
    if first is None:
        return list(labels)
    filled: List[PageLabel] = []
    leading = True
    for label in labels:
        if leading and not label.label:
            filled.append(
                dataclasses.replace(
                    label, label=first.label, confidence=policy.front_matter, source="front_matter"
                )
            )
            continue
        leading = False
        filled.append(label)
    return filled


def mark_unanalyzed_pages(labels: Sequence[PageLabel], total_pages: int) -> List[PageLabel]:
    """Add an ``Unknown Part`` label at 0 for every page with no header entry."""
    covered = {label.page_index for label in labels}
    marked = list(labels)
    for page_index in range(total_pages):
        if page_index not in covered:
            marked.append(
                PageLabel(
                    page_index=page_index,
                    label=UNKNOWN_PART_LABEL,
                    confidence=0,
                    raw_header="",
                    source="unanalyzed",
                )
            )
    marked.sort(key=lambda label: label.page_index)
    return marked


def smooth_page_labels(
    labels: Sequence[PageLabel],
    total_pages: int,
    policy: Optional[ConfidencePolicy] = None,
) -> List[PageLabel]:
    """Run forward fill, blip correction, front-matter fill and unanalyzed marking in order."""
    policy = policy or DEFAULT_POLICY
    smoothed = forward_fill(labels, policy)
    smoothed = smooth_blips(smoothed, policy)
    smoothed = fill_front_matter(smoothed, policy)
    return mark_unanalyzed_pages(smoothed, total_pages)
