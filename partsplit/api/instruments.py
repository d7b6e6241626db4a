"""Instrument canonicalization: pattern table, alias registry and fallbacks.

The registry is read once from ``partsplit/data/instruments.yaml`` and the
pattern table is compiled at import time; both are read-only afterwards.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from partsplit.api.models import SECTIONS, TRANSPOSITIONS
from partsplit.api.sentinels import is_forbidden_label
from partsplit.resolve import DEFAULT_REGISTRY_PATH

UNKNOWN_INSTRUMENT = "Unknown"
# Aliases shorter than this only match a whole header, never inside one.
MIN_SUBSTRING_ALIAS_LENGTH = 3
CLOSE_MATCH_MIN_TOKEN_LENGTH = 5
CLOSE_MATCH_CUTOFF = 0.85


@dataclass(frozen=True)
class CanonicalInstrument:
    name: str
    transposition: str
    section: str
    aliases: Tuple[str, ...]


@dataclass(frozen=True)
class InstrumentMatch:
    """Outcome of canonicalizing one phrase.

    ``method`` is ``pattern`` or ``registry`` for real matches, ``fallback`` for
    the cleaned raw string and ``empty`` for blank or sentinel input.
    """
    name: str
    transposition: str
    section: str
    method: str
    chair: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.method in {"pattern", "registry"}


class InstrumentRegistry:
    """Read-only canonical instrument table with alias lookups."""

    def __init__(self, instruments: Sequence[CanonicalInstrument]) -> None:
        self._instruments: Tuple[CanonicalInstrument, ...] = tuple(instruments)
        by_name: Dict[str, CanonicalInstrument] = {}
        alias_index: Dict[str, CanonicalInstrument] = {}
        for instrument in self._instruments:
            by_name.setdefault(instrument.name, instrument)
            for alias in instrument.aliases:
                # First registration wins for shared aliases.
                alias_index.setdefault(alias, instrument)
        self._by_name = MappingProxyType(by_name)
        self._alias_index = MappingProxyType(alias_index)
        searchable = [
            (alias, instrument)
            for alias, instrument in alias_index.items()
            if len(alias) >= MIN_SUBSTRING_ALIAS_LENGTH
        ]
        # Longest alias first; sorted() is stable so registry order breaks ties.
        searchable = sorted(searchable, key=lambda item: len(item[0]), reverse=True)
        self._substring_aliases: Tuple[Tuple[re.Pattern[str], CanonicalInstrument], ...] = tuple(
            (re.compile(r"(?<!\w)" + re.escape(alias) + r"(?!\w)"), instrument)
            for alias, instrument in searchable
        )
        self._close_match_aliases: Tuple[str, ...] = tuple(
            alias
            for alias in alias_index
            if " " not in alias
            and alias.isalpha()
            and len(alias) >= CLOSE_MATCH_MIN_TOKEN_LENGTH
        )

    @property
    def instruments(self) -> Tuple[CanonicalInstrument, ...]:
        return self._instruments

    @property
    def alias_index(self) -> Mapping[str, CanonicalInstrument]:
        return self._alias_index

    def get(self, name: str) -> Optional[CanonicalInstrument]:
        return self._by_name.get(name)

    def find_by_alias(self, alias: str) -> Optional[CanonicalInstrument]:
        """Find a canonical instrument by exact alias match."""
        return self._alias_index.get(_squash(alias))

    def find_by_fuzzy_match(self, text: str) -> Optional[CanonicalInstrument]:
        """Find the best canonical instrument for free text.

        Tries an exact alias, then the longest alias contained in the text on
        word boundaries, then a close match of single words to tolerate OCR typos.
        """
        lower = _squash(text)
        if not lower:
            return None
        exact = self._alias_index.get(lower)
        if exact is not None:
            return exact
        for pattern, instrument in self._substring_aliases:
            if pattern.search(lower):
                return instrument
        for token in re.findall(r"[^\W\d_]+", lower):
            if len(token) < CLOSE_MATCH_MIN_TOKEN_LENGTH:
                continue
            close = difflib.get_close_matches(
                token, self._close_match_aliases, n=1, cutoff=CLOSE_MATCH_CUTOFF
            )
            if close:
                return self._alias_index[close[0]]
        return None


def _squash(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip().lower()


def _parse_registry_entry(index: int, raw: Any) -> CanonicalInstrument:
    if not isinstance(raw, Mapping):
        raise ValueError(f"Instrument registry entry {index} must be a mapping.")
    name = raw.get("name")
    transposition = raw.get("transposition")
    section = raw.get("section")
    aliases = raw.get("aliases") or []
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Instrument registry entry {index} has no name.")
    if transposition not in TRANSPOSITIONS:
        raise ValueError(f"Instrument {name!r} has invalid transposition {transposition!r}.")
    if section not in SECTIONS:
        raise ValueError(f"Instrument {name!r} has invalid section {section!r}.")
    if not isinstance(aliases, list) or not all(isinstance(a, str) for a in aliases):
        raise ValueError(f"Instrument {name!r} aliases must be a list of strings.")
    return CanonicalInstrument(
        name=name.strip(),
        transposition=transposition,
        section=section,
        aliases=tuple(_squash(alias) for alias in aliases if alias.strip()),
    )


@lru_cache(maxsize=8)
def _load_registry(path_str: str) -> InstrumentRegistry:
    data = yaml.safe_load(Path(path_str).read_text(encoding="utf-8")) or {}
    entries = data.get("instruments") if isinstance(data, Mapping) else None
    if not isinstance(entries, list) or not entries:
        raise ValueError(f"Instrument registry {path_str} has no instruments list.")
    return InstrumentRegistry(
        [_parse_registry_entry(idx, entry) for idx, entry in enumerate(entries)]
    )


def load_instrument_registry(path: str | Path | None = None) -> InstrumentRegistry:
    """Load (once per file) the canonical instrument registry."""
    resolved = Path(path) if path is not None else DEFAULT_REGISTRY_PATH
    return _load_registry(str(resolved.resolve()))


# ---------------------------------------------------------------------------
# Ordered pattern table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InstrumentPattern:
    pattern: re.Pattern[str]
    name: str
    chair: Optional[str] = None


# Chair words may sit a few words before the instrument; a bare digit only
# counts at the start of the text, directly before the instrument word.
_CHAIR_TOKENS: Dict[str, Tuple[str, Optional[str]]] = {
    "1st": (r"1st|first", "1"),
    "2nd": (r"2nd|second", "2"),
    "3rd": (r"3rd|third", "3"),
    "4th": (r"4th|fourth", "4"),
    "Solo": (r"solo", None),
}

# Named instruments whose names contain a more generic instrument word.
_VARIANT_PATTERNS: List[Tuple[str, str]] = [
    (r"\bpiano[\s/.-]*conductor\b", "Condensed Score"),
    (r"\bcondensed[\s.-]*score\b", "Condensed Score"),
    (r"\bfull[\s.-]*score\b", "Full Score"),
    (r"\bconductor\b", "Conductor Score"),
    (r"\bpicc?olo\b", "Piccolo"),
    (r"\balto[\s.-]*flute\b", "Alto Flute"),
    (r"\benglish[\s.-]*horn\b|\bcor\s+anglais\b", "English Horn"),
    (r"\bcontra[\s.-]?bass[\s.-]*clarinet\b", "Contrabass Clarinet"),
    (r"\bbass[\s.-]*clarinet\b", "Bass Clarinet"),
    (r"\balto[\s.-]*clarinet\b", "Alto Clarinet"),
    (r"\b(?:e-?flat|eb|e♭)[\s.-]*clarinet\b|\bclarinet\s+in\s+(?:e-?flat|eb|e♭)(?!\w)", "Eb Clarinet"),
    (r"\bclarinet\s+in\s+a\b", "A Clarinet"),
    (r"\bcontra[\s.-]?bassoon\b", "Contrabassoon"),
    (r"\bsoprano[\s.-]*sax", "Bb Soprano Saxophone"),
    (r"\balto[\s.-]*sax|\ba\.\s*sax", "Eb Alto Saxophone"),
    (r"\btenor[\s.-]*sax", "Bb Tenor Saxophone"),
    (r"\bbari(?:tone)?[\s.-]*sax", "Eb Baritone Saxophone"),
    (r"\bbass[\s.-]*trombone\b", "Bass Trombone"),
    (r"\bbass[\s.-]*drum\b", "Bass Drum"),
    (r"\bsnare(?:[\s.-]*drum)?\b", "Snare Drum"),
    (r"\belectric[\s.-]*bass\b|\bbass[\s.-]*guitar\b", "Electric Bass"),
    (r"\b(?:string|double)[\s.-]*bass\b|\bcontrabass\b", "String Bass"),
    (r"\bfl(?:u|ü|ue)gel(?:horn)?\b", "Flugelhorn"),
    (r"\beuphonium\b", "Euphonium"),
    (r"\bmallet", "Mallet Percussion"),
    (r"\bdrum[\s.-]*(?:set|kit)\b", "Drum Set"),
]

# (registry name, instrument regex, chairs) for chair+instrument combinations.
_CHAIR_FAMILIES: List[Tuple[str, str, Tuple[str, ...]]] = [
    ("Bb Clarinet", r"(?:clarinet|clar|cl)\b", ("1st", "2nd", "3rd", "4th", "Solo")),
    ("Flute", r"flute\b", ("1st", "2nd", "3rd")),
    ("Eb Alto Saxophone", r"(?:alto\b|a\.\s*sax)", ("1st", "2nd")),
    ("Bb Trumpet", r"(?:trumpet|tpt)\b", ("1st", "2nd", "3rd", "4th", "Solo")),
    ("Bb Cornet", r"cornet\b", ("1st", "2nd", "3rd", "Solo")),
    ("F Horn", r"(?:f\s*)?horn\b", ("1st", "2nd", "3rd", "4th")),
    ("Trombone", r"(?:trombone|tbn)\b", ("1st", "2nd", "3rd", "4th")),
    ("Violin", r"violin\b", ("1st", "2nd")),
    ("Percussion", r"perc(?:ussion)?\b", ("1st", "2nd", "3rd")),
]

_BARE_PATTERNS: List[Tuple[str, str]] = [
    (r"\bclarinet\b", "Bb Clarinet"),
    (r"\bflute\b", "Flute"),
    (r"\boboe\b", "Oboe"),
    (r"\bbassoon\b", "Bassoon"),
    (r"\bsax(?:ophone)?\b", "Saxophone"),
    (r"\btrumpet\b", "Bb Trumpet"),
    (r"\bcornet\b", "Bb Cornet"),
    (r"\b(?:french\s+)?horn\b", "F Horn"),
    (r"\btrombone\b", "Trombone"),
    (r"\btuba\b", "Tuba"),
    (r"\bbaritone\b", "Baritone"),
    (r"\btimpani\b", "Timpani"),
    (r"\bmarimba\b", "Marimba"),
    (r"\bxylo(?:phone)?\b", "Xylophone"),
    (r"\bvibraphone\b", "Vibraphone"),
    (r"\bglockenspiel\b|\b(?:orchestra\s+)?bells\b", "Bells"),
    (r"\bchimes\b", "Chimes"),
    (r"\bcymbals?\b", "Cymbals"),
    (r"\btriangle\b", "Triangle"),
    (r"\btambourine\b", "Tambourine"),
    (r"\bpercussion\b", "Percussion"),
    (r"\bviolin\b", "Violin"),
    (r"\bviola\b", "Viola"),
    (r"\b(?:violon)?cello\b", "Cello"),
    (r"\bharp\b", "Harp"),
    (r"\bguitar\b", "Guitar"),
    (r"\bpiano\b", "Piano"),
    (r"\borgan\b", "Organ"),
    (r"\bcelest[ae]\b", "Celesta"),
    (r"\b(?:voice|vocals?|choir)\b", "Voice"),
    (r"\bbass\b", "String Bass"),
]


def _build_pattern_table() -> Tuple[InstrumentPattern, ...]:
    table: List[InstrumentPattern] = []
    for regex, name in _VARIANT_PATTERNS:
        table.append(InstrumentPattern(re.compile(regex, re.IGNORECASE), name))
    for name, instrument_regex, chairs in _CHAIR_FAMILIES:
        for chair in chairs:
            words, digit = _CHAIR_TOKENS[chair]
            regex = rf"\b(?:{words})\b.{{0,20}}?\b{instrument_regex}"
            if digit:
                regex = rf"{regex}|^{digit}\s+{instrument_regex}"
            table.append(InstrumentPattern(re.compile(regex, re.IGNORECASE), name, chair))
    for regex, name in _BARE_PATTERNS:
        table.append(InstrumentPattern(re.compile(regex, re.IGNORECASE), name))
    return tuple(table)


PATTERN_TABLE: Tuple[InstrumentPattern, ...] = _build_pattern_table()


def _check_pattern_names(registry: InstrumentRegistry) -> None:
    missing = sorted({p.name for p in PATTERN_TABLE if registry.get(p.name) is None})
    if missing:
        raise ValueError(f"Pattern table references unknown instruments: {missing}")


_check_pattern_names(load_instrument_registry())


# ---------------------------------------------------------------------------
# Public lookups
# ---------------------------------------------------------------------------


def clean_instrument_text(raw: Any) -> str:
    """Collapse whitespace and trim stray punctuation; non-strings become ''."""
    if not isinstance(raw, str):
        return ""
    return re.sub(r"\s+", " ", raw).strip(" \t\r\n-_:;,|*")


def _entry_for(name: str, registry: InstrumentRegistry) -> CanonicalInstrument:
    entry = registry.get(name)
    if entry is None:
        # Custom registries may omit names the pattern table relies on.
        entry = load_instrument_registry().get(name)
    if entry is None:
        raise ValueError(f"Pattern table references unknown instrument {name!r}.")
    return entry


def match_pattern(text: str, registry: Optional[InstrumentRegistry] = None) -> Optional[InstrumentMatch]:
    """Return the first pattern-table hit for ``text``, if any."""
    registry = registry or load_instrument_registry()
    for entry in PATTERN_TABLE:
        if entry.pattern.search(text):
            canonical = _entry_for(entry.name, registry)
            return InstrumentMatch(
                name=canonical.name,
                transposition=canonical.transposition,
                section=canonical.section,
                method="pattern",
                chair=entry.chair,
            )
    return None


def match_instrument(raw: Any, registry: Optional[InstrumentRegistry] = None) -> Optional[InstrumentMatch]:
    """Resolve ``raw`` via the pattern table, then the registry. None on a miss."""
    text = clean_instrument_text(raw)
    if not text or is_forbidden_label(text):
        return None
    registry = registry or load_instrument_registry()
    hit = match_pattern(text, registry)
    if hit is not None:
        return hit
    canonical = registry.find_by_fuzzy_match(text)
    if canonical is None:
        return None
    return InstrumentMatch(
        name=canonical.name,
        transposition=canonical.transposition,
        section=canonical.section,
        method="registry",
    )


def canonicalize_instrument(raw: Any, registry: Optional[InstrumentRegistry] = None) -> InstrumentMatch:
    """Resolve ``raw`` to a canonical instrument; never raises, never returns ''."""
    text = clean_instrument_text(raw)
    if not text or is_forbidden_label(text):
        return InstrumentMatch(UNKNOWN_INSTRUMENT, "C", "Other", "empty")
    hit = match_instrument(text, registry)
    if hit is not None:
        return hit
    return InstrumentMatch(text, "C", "Other", "fallback")


def get_section_for_label(label: Any, registry: Optional[InstrumentRegistry] = None) -> str:
    return canonicalize_instrument(label, registry).section


def get_transposition_for_label(label: Any, registry: Optional[InstrumentRegistry] = None) -> str:
    return canonicalize_instrument(label, registry).transposition


def get_instruments_by_section(
    section: str, registry: Optional[InstrumentRegistry] = None
) -> List[CanonicalInstrument]:
    registry = registry or load_instrument_registry()
    return [instrument for instrument in registry.instruments if instrument.section == section]


def all_sections() -> List[str]:
    return list(SECTIONS)
