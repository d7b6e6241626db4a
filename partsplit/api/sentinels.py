"""Sentinel, placeholder and blank-page label checks."""

from __future__ import annotations

import re
from typing import Any

from partsplit.api.models import UNKNOWN_PART_LABEL

# Upstream extraction emits these strings to signal "no value".
FORBIDDEN_LABELS = frozenset({"null", "none", "n/a", "na", "unknown", "undefined", ""})

_EDGE_PUNCTUATION = " \t\r\n\"'`()[]{}<>.,;:!?-_*/\\|"
_UNLABELLED_RE = re.compile(r"^unlabell?ed pages? \d+(?:\s*-\s*\d+)?$", re.IGNORECASE)
_BLANK_RE = re.compile(
    r"^(?:this\s+page\s+(?:is\s+)?)?(?:intentionally\s+)?(?:left\s+)?blank(?:\s+pages?)?$"
    r"|^(?:spacer|empty)(?:\s+pages?)?$"
    r"|^tacet$",
    re.IGNORECASE,
)


def _squash(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip(_EDGE_PUNCTUATION).lower()


def is_forbidden_label(value: Any) -> bool:
    """Return True when ``value`` is absent, blank-ish or an explicit absence sentinel."""
    if not isinstance(value, str):
        return True
    return _squash(value) in FORBIDDEN_LABELS


def is_placeholder_label(value: Any) -> bool:
    """Return True for labels the segmenter or gap filler use for unidentified pages."""
    if not isinstance(value, str):
        return False
    squashed = re.sub(r"\s+", " ", value).strip()
    return squashed.lower() == UNKNOWN_PART_LABEL.lower() or bool(_UNLABELLED_RE.match(squashed))


def is_blank_or_spacer_label(value: Any) -> bool:
    """Return True when a label explicitly classifies pages as blank or spacer pages."""
    if not isinstance(value, str):
        return False
    squashed = _squash(value)
    return bool(squashed) and bool(_BLANK_RE.match(squashed))
