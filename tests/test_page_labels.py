from __future__ import annotations

import logging
import unittest

import pytest

from partsplit.api.confidence import ConfidencePolicy
from partsplit.api.models import LABEL_SOURCES, PageHeader, PageLabel
from partsplit.api.page_labels import (
    coerce_page_headers,
    header_text_coverage,
    label_page,
    label_pages,
    select_label_text,
)


class CoercePageHeadersTests(unittest.TestCase):
    def test_malformed_entries_are_coerced(self) -> None:
        headers = coerce_page_headers(
            [
                {"pageIndex": 0, "headerText": "Flute"},
                {"page_index": 1.5, "header_text": 5},
                {"page_index": -3, "header_text": "Oboe"},
                {"page_index": 0, "header_text": "Oboe"},
                {"page_index": "2", "header_text": "Oboe", "full_text": None},
            ]
        )
        self.assertEqual([h.page_index for h in headers], [0, 1, 2])
        self.assertEqual(headers[0].header_text, "Flute")
        self.assertEqual(headers[1].header_text, "")
        self.assertEqual(headers[2].header_text, "Oboe")
        self.assertEqual(headers[2].full_text, "")

    def test_headers_are_sorted(self) -> None:
        headers = coerce_page_headers(
            [PageHeader(page_index=4, header_text="Tuba"), {"page_index": 1, "header_text": "Flute"}]
        )
        self.assertEqual([h.page_index for h in headers], [1, 4])

    def test_indices_past_total_pages_are_dropped(self) -> None:
        entries = [
            {"pageIndex": 0, "headerText": "Flute"},
            {"pageIndex": 1, "headerText": "Flute"},
            {"pageIndex": 5, "headerText": "Oboe"},
        ]
        with self.assertLogs("partsplit.api.page_labels", level="WARNING") as logs:
            headers = coerce_page_headers(entries, total_pages=2)
        self.assertEqual([h.page_index for h in headers], [0, 1])
        self.assertIn("reason=out_of_range page_index=5", logs.output[0])
        self.assertEqual([h.page_index for h in coerce_page_headers(entries)], [0, 1, 5])

    def test_none_and_garbage_entries(self) -> None:
        self.assertEqual(coerce_page_headers(None), [])
        headers = coerce_page_headers(["not a mapping", None])
        self.assertEqual([(h.page_index, h.header_text) for h in headers], [(0, ""), (1, "")])

    def test_header_repr_hides_text(self) -> None:
        header = PageHeader(page_index=0, header_text="Flute, property of Jane Doe")
        self.assertNotIn("Jane Doe", repr(header))


class LabelPageTests(unittest.TestCase):
    def test_pattern_match_scores_exact(self) -> None:
        label = label_page(PageHeader(page_index=3, header_text="Flute 1"))
        self.assertEqual(label.label, "1st Flute")
        self.assertEqual(label.confidence, 80)
        self.assertEqual(label.source, "pattern")
        self.assertEqual(label.raw_header, "Flute 1")

    def test_registry_match_scores_fuzzy(self) -> None:
        label = label_page(PageHeader(page_index=0, header_text="Tpt."))
        self.assertEqual(label.label, "Bb Trumpet")
        self.assertEqual(label.confidence, 65)
        self.assertEqual(label.source, "registry")

    def test_sentinel_and_unmatched_headers_are_unlabeled(self) -> None:
        for text in ("N/A", "null", "Zzyzx Qwerty", ""):
            label = label_page(PageHeader(page_index=0, header_text=text))
            self.assertEqual(label.label, "", msg=text)
            self.assertEqual(label.confidence, 0)
            self.assertEqual(label.source, "none")

    def test_short_header_falls_back_to_full_text(self) -> None:
        header = PageHeader(page_index=0, header_text="Fl", full_text="Oboe\nAllegro moderato")
        self.assertEqual(select_label_text(header), "Oboe\nAllegro moderato")
        label = label_page(header)
        self.assertEqual(label.label, "Oboe")
        self.assertEqual(label.confidence, 80)

    def test_full_text_scan_is_bounded(self) -> None:
        header = PageHeader(page_index=0, header_text="", full_text="x" * 400 + " Tuba")
        self.assertEqual(label_page(header).label, "")
        self.assertEqual(label_page(header, full_text_scan_chars=500).label, "Tuba")

    def test_policy_controls_confidence(self) -> None:
        policy = ConfidencePolicy(exact_match=90, fuzzy_match=70)
        self.assertEqual(label_page(PageHeader(0, "Oboe"), policy=policy).confidence, 90)
        self.assertEqual(label_page(PageHeader(0, "Tpt."), policy=policy).confidence, 70)

    def test_label_repr_hides_raw_header(self) -> None:
        label = label_page(PageHeader(page_index=0, header_text="Flute (Jane Doe copy)"))
        self.assertEqual(label.label, "Flute")
        self.assertNotIn("Jane Doe", repr(label))
        self.assertNotIn("raw_header", label.to_payload())


def test_label_pages_debug_log_omits_header_text(caplog):
    caplog.set_level(logging.DEBUG, logger="partsplit.api.page_labels")
    headers = [
        PageHeader(page_index=0, header_text="Flute (Jane Doe copy)"),
        PageHeader(page_index=1, header_text="Oboe"),
    ]
    labels = label_pages(headers)
    assert [label.label for label in labels] == ["Flute", "Oboe"]
    assert "page_labeled" in caplog.text
    assert "Jane Doe" not in caplog.text


def test_header_text_coverage():
    headers = [
        PageHeader(0, "Flute"),
        PageHeader(1, ""),
        PageHeader(2, "ab"),
        PageHeader(3, "Oboe"),
    ]
    assert header_text_coverage(headers) == 0.5
    assert header_text_coverage(headers, total_pages=8) == 0.25
    assert header_text_coverage([]) == 0.0
    assert header_text_coverage([], total_pages=3) == 0.0


def test_page_label_rejects_unknown_source():
    with pytest.raises(ValueError, match="guess"):
        PageLabel(page_index=0, label="Flute", confidence=80, source="guess")
    labels = label_pages([PageHeader(page_index=0, header_text="Tuba"), PageHeader(page_index=1, header_text="")])
    assert all(label.source in LABEL_SOURCES for label in labels)
