from __future__ import annotations

import json
import logging
import unittest
from typing import Dict, List, Sequence

import pytest

from partsplit.api.models import NormalisedInstrument, PageHeader, PageLabel, PartSegment
from partsplit.api.segmentation import (
    build_cutting_instructions,
    build_segments,
    detect_part_boundaries,
)


def _headers(texts: Sequence[str], start: int = 0) -> List[Dict[str, object]]:
    return [
        {"pageIndex": start + offset, "headerText": text, "fullText": ""}
        for offset, text in enumerate(texts)
    ]


def _band_headers() -> List[Dict[str, object]]:
    return _headers(
        ["Flute 1"] * 5 + ["Oboe"] * 5 + ["Clarinet in Bb II"] * 5 + ["Tuba"] * 5
    )


class DetectPartBoundariesTests(unittest.TestCase):
    def test_segments_follow_headers(self) -> None:
        result = detect_part_boundaries(_band_headers(), 20, True)
        self.assertEqual(
            [(s.label, s.page_start, s.page_end, s.page_count) for s in result.segments],
            [
                ("1st Flute", 0, 4, 5),
                ("Oboe", 5, 9, 5),
                ("2nd Bb Clarinet", 10, 14, 5),
                ("Tuba", 15, 19, 5),
            ],
        )
        self.assertEqual(result.segmentation_confidence, 80)
        self.assertTrue(result.from_text_layer)

    def test_cutting_instructions(self) -> None:
        result = detect_part_boundaries(_band_headers(), 20, False)
        instructions = result.cutting_instructions
        self.assertEqual([i.part_number for i in instructions], [1, 2, 3, 4])
        clarinet = instructions[2]
        self.assertEqual(clarinet.part_name, "2nd Bb Clarinet")
        self.assertEqual(clarinet.instrument, "2nd Bb Clarinet")
        self.assertEqual((clarinet.section, clarinet.transposition), ("Woodwinds", "Bb"))
        self.assertEqual(clarinet.page_range, (10, 14))
        self.assertEqual((instructions[3].section, instructions[3].transposition), ("Brass", "C"))

    def test_segments_partition_pages(self) -> None:
        headers = _headers(["Flute", "", "Oboe", "N/A", "Oboe", "Tuba", "", "Tuba"])
        result = detect_part_boundaries(headers, 10, True)
        pages = sorted({label.page_index for label in result.page_labels})
        self.assertEqual(pages, list(range(10)))
        self.assertEqual(sum(s.page_count for s in result.segments), len(pages))
        for previous, current in zip(result.segments, result.segments[1:]):
            self.assertEqual(current.page_start, previous.page_end + 1)
        for segment in result.segments:
            self.assertEqual(segment.page_count, segment.page_end - segment.page_start + 1)

    def test_idempotent(self) -> None:
        first = detect_part_boundaries(_band_headers(), 22, True)
        second = detect_part_boundaries(_band_headers(), 22, True)
        self.assertEqual(first, second)
        self.assertEqual(
            json.dumps(first.to_payload(), sort_keys=True),
            json.dumps(second.to_payload(), sort_keys=True),
        )

    def test_blip_is_smoothed_in_result(self) -> None:
        result = detect_part_boundaries(_headers(["Flute", "Flute", "Oboe", "Flute", "Flute"]), 5, True)
        self.assertEqual([l.label for l in result.page_labels], ["Flute"] * 5)
        self.assertEqual(len(result.segments), 1)
        self.assertEqual(result.per_page_confidence[2].confidence, 60)

    def test_unanalyzed_pages_form_unknown_segment(self) -> None:
        headers = _headers(["Flute"] * 3) + _headers(["Oboe"] * 2, start=5)
        result = detect_part_boundaries(headers, 7, True)
        self.assertEqual(
            [(s.label, s.page_start, s.page_end) for s in result.segments],
            [("Flute", 0, 2), ("Unknown Part", 3, 4), ("Oboe", 5, 6)],
        )
        unknown = result.cutting_instructions[1]
        self.assertEqual((unknown.section, unknown.transposition), ("Other", "C"))

    def test_runs_break_at_index_discontinuity(self) -> None:
        labels = [
            PageLabel(page_index=0, label="Flute", confidence=80, source="pattern"),
            PageLabel(page_index=1, label="Flute", confidence=80, source="pattern"),
            PageLabel(page_index=3, label="Flute", confidence=80, source="pattern"),
        ]
        self.assertEqual(
            [(s.page_start, s.page_end, s.page_count) for s in build_segments(labels)],
            [(0, 1, 2), (3, 3, 1)],
        )

    def test_headers_past_last_page_are_dropped(self) -> None:
        headers = _headers(["Flute", "Flute"]) + _headers(["Oboe"], start=5)
        result = detect_part_boundaries(headers, 2, True)
        self.assertEqual(
            [(s.label, s.page_start, s.page_end) for s in result.segments],
            [("Flute", 0, 1)],
        )
        self.assertEqual([i.page_range for i in result.cutting_instructions], [(0, 1)])
        self.assertEqual([l.page_index for l in result.page_labels], [0, 1])

    def test_blip_needs_adjacent_pages(self) -> None:
        headers = _headers(["Flute", "Oboe"]) + _headers(["Flute"], start=3)
        result = detect_part_boundaries(headers, 4, True)
        self.assertEqual(
            [(s.label, s.page_start, s.page_end) for s in result.segments],
            [("Flute", 0, 0), ("Oboe", 1, 1), ("Unknown Part", 2, 2), ("Flute", 3, 3)],
        )

    def test_sentinel_headers_never_become_labels(self) -> None:
        result = detect_part_boundaries(_headers(["null", "N/A", "Flute"]), 3, True)
        labels = {l.label for l in result.page_labels}
        self.assertEqual(labels, {"Flute"})
        self.assertEqual(result.page_labels[0].source, "front_matter")

        result = detect_part_boundaries(_headers(["null", "N/A"]), 2, True)
        self.assertEqual([s.label for s in result.segments], ["Unknown Part"])
        for instruction in result.cutting_instructions:
            self.assertNotIn(instruction.part_name.lower(), {"null", "n/a"})

    def test_empty_headers_without_pages(self) -> None:
        result = detect_part_boundaries([], 0, True)
        self.assertEqual(result.segmentation_confidence, 0)
        self.assertEqual(result.segments, ())
        self.assertEqual(result.cutting_instructions, ())

    def test_empty_headers_with_pages(self) -> None:
        result = detect_part_boundaries([], 5, False)
        self.assertEqual(result.segmentation_confidence, 20)
        self.assertEqual(
            [(s.label, s.page_start, s.page_end, s.page_count) for s in result.segments],
            [("Unknown Part", 0, 4, 5)],
        )

    def test_invalid_total_pages(self) -> None:
        with self.assertRaises(ValueError):
            detect_part_boundaries([], -1, True)
        with self.assertRaises(ValueError):
            detect_part_boundaries([], True, True)  # type: ignore[arg-type]

    def test_malformed_headers_do_not_raise(self) -> None:
        headers = [
            {"pageIndex": "abc", "headerText": None},
            {"pageIndex": 1, "headerText": 12345},
            PageHeader(page_index=2, header_text="Tuba"),
            "garbage",
        ]
        result = detect_part_boundaries(headers, 4, True)
        self.assertEqual([s.label for s in result.segments], ["Tuba"])
        self.assertEqual(result.segments[0].page_count, 4)


def test_boundaries_mirror_segments():
    result = detect_part_boundaries(_band_headers(), 20, True)
    assert [(b.label, b.start, b.end) for b in result.segment_boundaries] == [
        (s.label, s.page_start, s.page_end) for s in result.segments
    ]
    assert len(result.per_page_confidence) == 20


def test_build_segments_labels_empty_pages_unknown():
    labels = [
        PageLabel(page_index=0, label="", confidence=0),
        PageLabel(page_index=1, label="Unknown Part", confidence=0, source="unanalyzed"),
        PageLabel(page_index=2, label="Flute", confidence=80, source="pattern"),
    ]
    segments = build_segments(labels)
    assert [(s.label, s.page_start, s.page_end) for s in segments] == [
        ("Unknown Part", 0, 1),
        ("Flute", 2, 2),
    ]
    assert build_segments([]) == []


def test_normalization_cache_is_per_call():
    segments = [
        PartSegment(label="Flute", page_start=0, page_end=1, page_count=2),
        PartSegment(label="Oboe", page_start=2, page_end=2, page_count=1),
        PartSegment(label="Flute", page_start=4, page_end=4, page_count=1),
    ]
    cache: Dict[str, NormalisedInstrument] = {}
    instructions = build_cutting_instructions(segments, cache=cache)
    assert set(cache) == {"Flute", "Oboe"}
    assert [i.part_number for i in instructions] == [1, 2, 3]
    assert [i.page_range for i in instructions] == [(0, 1), (2, 2), (4, 4)]


def test_logs_never_contain_header_text(caplog):
    caplog.set_level(logging.DEBUG, logger="partsplit")
    headers = _headers(["Flute Property of Springfield Band"] * 3)
    result = detect_part_boundaries(headers, 3, True)
    assert result.segments[0].label == "Flute"
    assert "part_boundaries_detected" in caplog.text
    assert "Springfield" not in caplog.text


@pytest.mark.parametrize("total_pages", [0, 1, 7, 40])
def test_confidence_bounded_for_any_page_count(total_pages):
    result = detect_part_boundaries(_headers(["Oboe"] * min(total_pages, 3)), total_pages, True)
    assert 0 <= result.segmentation_confidence <= 100


def test_out_of_range_headers_are_logged(caplog):
    caplog.set_level(logging.WARNING, logger="partsplit")
    headers = _headers(["Flute", "Flute"]) + _headers(["Oboe"], start=5)
    detect_part_boundaries(headers, 2, True)
    assert "page_header_dropped reason=out_of_range page_index=5 total_pages=2" in caplog.text
