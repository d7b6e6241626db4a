"""Confidence policy constants and segmentation confidence aggregation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from partsplit.api.models import PageConfidence, PageLabel

MIN_CONFIDENCE = 0
MAX_CONFIDENCE = 100


@dataclass(frozen=True)
class ConfidencePolicy:
    """Per-step label confidences and the front-matter adjustment.

    The values are tunable but must keep exact > fuzzy > propagated > front_matter.
    """
    exact_match: int = 80
    fuzzy_match: int = 65
    propagated: int = 40
    blip_cap: int = 60
    front_matter: int = 30
    front_matter_floor: int = 50
    front_matter_window: int = 2

    def __post_init__(self) -> None:
        for name in (
            "exact_match",
            "fuzzy_match",
            "propagated",
            "blip_cap",
            "front_matter",
            "front_matter_floor",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"ConfidencePolicy.{name} must be an int, got {value!r}.")
            if not MIN_CONFIDENCE <= value <= MAX_CONFIDENCE:
                raise ValueError(f"ConfidencePolicy.{name} must be within 0..100, got {value}.")
        if isinstance(self.front_matter_window, bool) or not isinstance(self.front_matter_window, int):
            raise ValueError("ConfidencePolicy.front_matter_window must be an int.")
        if self.front_matter_window < 0:
            raise ValueError("ConfidencePolicy.front_matter_window must be >= 0.")
        if not (self.exact_match > self.fuzzy_match > self.propagated > self.front_matter):
            raise ValueError(
                "ConfidencePolicy requires exact_match > fuzzy_match > propagated > front_matter "
                f"(got {self.exact_match}, {self.fuzzy_match}, {self.propagated}, {self.front_matter})."
            )


DEFAULT_POLICY = ConfidencePolicy()


def clamp_confidence(value: float) -> int:
    if not math.isfinite(value):
        return MIN_CONFIDENCE
    return int(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, value)))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def per_page_confidence(page_labels: Sequence[PageLabel]) -> List[PageConfidence]:
    return [
        PageConfidence(page_index=label.page_index, confidence=label.confidence, label=label.label)
        for label in page_labels
    ]


def compute_segmentation_confidence(
    page_labels: Sequence[PageLabel], policy: Optional[ConfidencePolicy] = None
) -> int:
    """Average per-page confidence into one 0..100 score.

    Every page inside the front-matter window is floored at
    ``front_matter_floor``, analyzed or not. Empty input scores 0.
    """
    if not page_labels:
        return MIN_CONFIDENCE
    policy = policy or DEFAULT_POLICY
    scores = np.clip(
        np.array([label.confidence for label in page_labels], dtype=np.float64),
        MIN_CONFIDENCE,
        MAX_CONFIDENCE,
    )
    indices = np.array([label.page_index for label in page_labels], dtype=np.int64)
    in_window = indices < policy.front_matter_window
    scores = np.where(in_window, np.maximum(scores, policy.front_matter_floor), scores)
    return clamp_confidence(round_half_up(float(scores.mean())))
