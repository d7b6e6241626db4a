"""Normalize raw instrument labels into canonical part names.

Examples:
    normalize_instrument_label("Clarinet in Bb II")
        -> NormalisedInstrument(instrument="2nd Bb Clarinet", chair="2nd", ...)
    build_part_display_name("American Patrol", "1st Bb Clarinet")
        -> "American Patrol 1st Bb Clarinet"
    build_part_filename("American Patrol 1st Bb Clarinet")
        -> "American_Patrol_1st_Bb_Clarinet.pdf"
"""

from __future__ import annotations

import re
from typing import Any, Optional, Union

from partsplit.api.instruments import (
    InstrumentRegistry,
    UNKNOWN_INSTRUMENT,
    canonicalize_instrument,
    clean_instrument_text,
)
from partsplit.api.models import NormalisedInstrument
from partsplit.api.sentinels import (
    FORBIDDEN_LABELS,
    is_blank_or_spacer_label,
    is_forbidden_label,
    is_placeholder_label,
)

__all__ = [
    "FORBIDDEN_LABELS",
    "build_part_display_name",
    "build_part_filename",
    "build_part_storage_slug",
    "infer_chair",
    "infer_part_type",
    "is_blank_or_spacer_label",
    "is_forbidden_label",
    "is_placeholder_label",
    "normalize_chair",
    "normalize_chair_phrases",
    "normalize_instrument_label",
    "normalize_transposition",
]

# Roman numerals count only in uppercase. A bare digit counts only when it
# leads the text or trails an instrument word.
_CHAIR_TOKEN_RE = re.compile(
    r"(?i:\b(?P<ordinal>1st|first|2nd|second|3rd|third|4th|fourth)\b)"
    r"|(?i:^(?P<lead>[1-4])(?=\s+[a-z]))"
    r"|(?i:(?<=[a-z.])\s+(?P<trail>[1-4])$)"
    r"|(?<!\w)(?P<roman>IV|I{1,3})(?!\w)"
    r"|(?i:\b(?P<special>solo|aux(?:iliary)?)\b)"
)

_CHAIR_PHRASE_RULES = (
    re.compile(r"\bclarinet\s+in\s+b(?:b|-flat|♭)\s*(i{1,3}|iv|[1-4])\b", re.IGNORECASE),
    re.compile(r"\bb(?:b|-flat|♭)\s+clarinet\s*(i{1,3}|iv|[1-4])\b", re.IGNORECASE),
    re.compile(r"\bclarinet\s*(i{1,3}|iv|[1-4])\s+in\s+b(?:b|-flat|♭)\b", re.IGNORECASE),
)
# "Violin II", "Trumpet 1": a chair token trailing an instrument name.
_TRAILING_CHAIR_RE = re.compile(
    r"^(?P<body>[^\d]*[a-z][^\d]*?)\s+(?P<chair>i{1,3}|iv|[1-4])$", re.IGNORECASE
)

_ORDINALS = {
    "1": "1st", "1st": "1st", "first": "1st", "i": "1st",
    "2": "2nd", "2nd": "2nd", "second": "2nd", "ii": "2nd",
    "3": "3rd", "3rd": "3rd", "third": "3rd", "iii": "3rd",
    "4": "4th", "4th": "4th", "fourth": "4th", "iv": "4th",
}

_TRANSPOSITION_ALIASES = {
    "bb": "Bb", "b-flat": "Bb", "b♭": "Bb",
    "eb": "Eb", "e-flat": "Eb", "e♭": "Eb",
    "f": "F", "g": "G", "d": "D", "a": "A", "c": "C",
}

_SCORE_NAME_TO_PART_TYPE = {
    "Full Score": "FULL_SCORE",
    "Conductor Score": "CONDUCTOR_SCORE",
    "Condensed Score": "CONDENSED_SCORE",
}


def normalize_chair(raw: Any) -> Optional[str]:
    """Map a chair designation ("2", "second", "II", "aux") to canonical form."""
    if raw is None or isinstance(raw, bool):
        return None
    value = str(raw).strip().lower()
    if not value:
        return None
    if value in _ORDINALS:
        return _ORDINALS[value]
    if value.startswith("aux"):
        return "Aux"
    if value.startswith("solo"):
        return "Solo"
    return None


def normalize_transposition(raw: Any) -> str:
    if not isinstance(raw, str):
        return "C"
    return _TRANSPOSITION_ALIASES.get(raw.strip().lower(), "C")


def normalize_chair_phrases(raw: str) -> str:
    """Rewrite irregular chair phrasing so the chair leads the instrument."""
    normalized = re.sub(r"\s+", " ", raw).strip()
    for rule in _CHAIR_PHRASE_RULES:
        normalized = rule.sub(
            lambda match: f"{_ORDINALS[match.group(1).lower()]} Bb Clarinet", normalized
        )
    trailing = _TRAILING_CHAIR_RE.match(normalized)
    if trailing and infer_chair(trailing.group("body")) is None:
        chair = _ORDINALS[trailing.group("chair").lower()]
        normalized = f"{chair} {trailing.group('body')}"
    return normalized


def infer_chair(text: str) -> Optional[str]:
    """Return the chair named by the earliest chair token in ``text``."""
    match = _CHAIR_TOKEN_RE.search(text)
    if match is None:
        return None
    token = next(group for group in match.groups() if group)
    return normalize_chair(token)


def infer_part_type(text: str) -> str:
    lower = text.lower()
    if re.search(r"\bconductor\b", lower):
        return "CONDUCTOR_SCORE"
    if re.search(r"\bcondensed\s+score\b", lower):
        return "CONDENSED_SCORE"
    if re.search(r"\b(?:full\s+score|score)\b", lower):
        return "FULL_SCORE"
    return "PART"


def normalize_instrument_label(
    raw: Any, registry: Optional[InstrumentRegistry] = None
) -> NormalisedInstrument:
    """Normalize one raw label into instrument, chair, transposition and section.

    Never raises; sentinel or empty input yields ``Unknown`` with method ``empty``.
    """
    text = clean_instrument_text(raw)
    if not text or is_forbidden_label(text):
        return NormalisedInstrument(
            instrument=UNKNOWN_INSTRUMENT,
            chair=None,
            transposition="C",
            section="Other",
            part_type="PART",
            method="empty",
        )
    rewritten = normalize_chair_phrases(text)
    part_type = infer_part_type(rewritten)
    match = canonicalize_instrument(rewritten, registry)

    if match.section == "Score":
        if part_type == "PART":
            part_type = _SCORE_NAME_TO_PART_TYPE.get(match.name, "FULL_SCORE")
        return NormalisedInstrument(
            instrument=match.name,
            chair=None,
            transposition=match.transposition,
            section=match.section,
            part_type=part_type,
            method=match.method,
        )

    chair = match.chair or infer_chair(rewritten)
    instrument = match.name
    if chair and match.matched:
        instrument = f"{chair} {match.name}"
    return NormalisedInstrument(
        instrument=instrument,
        chair=chair,
        transposition=match.transposition,
        section=match.section,
        part_type=part_type,
        method=match.method,
    )


def build_part_display_name(
    piece_title: str, part: Union[NormalisedInstrument, str]
) -> str:
    """Join a piece title and a part's instrument into a display name."""
    title = re.sub(r"\s+", " ", piece_title or "").strip()
    instrument = part.instrument if isinstance(part, NormalisedInstrument) else (part or "")
    return f"{title} {instrument.strip()}".strip()


def build_part_filename(display_name: str) -> str:
    """Build a filesystem-safe ``.pdf`` filename from a display name."""
    name = re.sub(r'[/\\:*?"<>|]', "", display_name.strip())
    name = re.sub(r"\s+", "_", name)
    name = re.sub(r"_{2,}", "_", name)
    return name[:200] + ".pdf"


def build_part_storage_slug(display_name: str) -> str:
    """Build an object-storage key segment: ASCII letters, digits, ``-`` and ``_``."""
    slug = re.sub(r"[^a-zA-Z0-9\-_ ]", "", display_name.strip())
    slug = re.sub(r"\s+", "_", slug)
    slug = re.sub(r"_{2,}", "_", slug)
    return slug[:150]
