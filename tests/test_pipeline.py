from __future__ import annotations

import logging
from typing import Dict, List, Sequence

import pytest

from partsplit.api.models import ParsedPart
from partsplit.config import Settings
from partsplit.logging_utils import LoggingContextFilter, clear_log_context
from partsplit.pipeline import plan_parsed_parts, run_segmentation_pass


@pytest.fixture(autouse=True)
def _reset_log_context():
    yield
    clear_log_context()


def _headers(texts: Sequence[str]) -> List[Dict[str, object]]:
    return [{"pageIndex": idx, "headerText": text} for idx, text in enumerate(texts)]


def _band() -> List[Dict[str, object]]:
    return _headers(["Flute 1"] * 5 + ["Oboe"] * 5 + ["Clarinet in Bb II"] * 5 + ["Tuba"] * 5)


def test_clean_pass_is_auto_committable():
    outcome = run_segmentation_pass(
        _band(),
        20,
        from_text_layer=True,
        extraction_confidence=90,
        is_multi_part=True,
        settings=Settings(),
    )
    assert not outcome.requires_human_review
    assert outcome.quality.reasons == []
    assert outcome.quality.final_confidence == 80
    assert outcome.segmentation.segmentation_confidence == 80
    assert outcome.to_payload()["requires_human_review"] is False


def test_oversized_part_requires_review(caplog):
    caplog.set_level(logging.WARNING, logger="partsplit")
    headers = _headers(["Clarinet in Bb II"] * 15 + ["Tuba"] * 5)
    outcome = run_segmentation_pass(
        headers,
        20,
        from_text_layer=True,
        extraction_confidence=90,
        is_multi_part=True,
        settings=Settings(),
        pass_name="ocr_pass",
    )
    assert outcome.requires_human_review
    assert outcome.quality.reasons == ['Non-score part "2nd Bb Clarinet" has 15 pages (max 12)']
    assert "auto_commit_blocked pass=ocr_pass" in caplog.text


def test_empty_headers_require_review():
    outcome = run_segmentation_pass(
        [],
        12,
        from_text_layer=False,
        extraction_confidence=95,
        is_multi_part=True,
        settings=Settings(),
    )
    assert outcome.requires_human_review
    rules = {finding.rule for finding in outcome.quality.findings}
    assert {
        "forbidden_part_label",
        "forbidden_instruction_label",
        "multi_part_too_few_instructions",
        "segmentation_confidence_below_threshold",
    } <= rules
    # Only the two front-matter pages score, at the floor of 50.
    assert outcome.segmentation.segmentation_confidence == 8
    assert "segmentationConfidence 8 < threshold 70" in outcome.quality.reasons
    assert outcome.quality.final_confidence == 8


def test_full_score_is_not_oversized():
    outcome = run_segmentation_pass(
        _headers(["Full Score"] * 18 + ["Flute"] * 2),
        20,
        from_text_layer=True,
        extraction_confidence=90,
        is_multi_part=True,
        settings=Settings(),
    )
    parts = plan_parsed_parts(outcome.segmentation)
    assert [(p.part_name, p.part_type, p.page_count) for p in parts] == [
        ("Full Score", "FULL_SCORE", 18),
        ("Flute", "PART", 2),
    ]
    assert parts[0].section == "Score"
    assert not outcome.requires_human_review


def test_supplied_parsed_parts_are_gated():
    parts = [
        ParsedPart(part_name="Tuba", instrument="null", section="Brass", page_count=20),
    ]
    outcome = run_segmentation_pass(
        _band(),
        20,
        from_text_layer=True,
        extraction_confidence=90,
        is_multi_part=True,
        parsed_parts=parts,
        settings=Settings(),
    )
    assert [finding.rule for finding in outcome.quality.findings] == [
        "forbidden_part_label",
        "oversized_part",
    ]


def test_settings_are_read_from_environment(monkeypatch):
    monkeypatch.delenv("PARTSPLIT_INSTRUMENT_REGISTRY", raising=False)
    monkeypatch.setenv("PARTSPLIT_MAX_PAGES_PER_PART", "20")
    monkeypatch.setenv("PARTSPLIT_SEGMENTATION_CONFIDENCE_THRESHOLD", "85")
    outcome = run_segmentation_pass(
        _headers(["Clarinet in Bb II"] * 15 + ["Tuba"] * 5),
        20,
        from_text_layer=True,
        extraction_confidence=90,
        is_multi_part=True,
    )
    assert outcome.quality.reasons == ["segmentationConfidence 80 < threshold 85"]


def test_custom_registry_from_settings(tmp_path):
    registry_path = tmp_path / "instruments.yaml"
    registry_path.write_text(
        "version: 1\n"
        "instruments:\n"
        "  - name: Kazoo\n"
        "    transposition: C\n"
        "    section: Other\n"
        "    aliases: [kazoo, kz]\n",
        encoding="utf-8",
    )
    outcome = run_segmentation_pass(
        _headers(["Kazoo"] * 3 + ["Tuba"] * 3),
        6,
        from_text_layer=True,
        extraction_confidence=90,
        is_multi_part=False,
        settings=Settings(instrument_registry_path=registry_path),
    )
    labels = [(label.label, label.confidence, label.source) for label in outcome.segmentation.page_labels]
    assert labels[0] == ("Kazoo", 65, "registry")
    assert labels[3] == ("Tuba", 80, "pattern")
    tuba = outcome.segmentation.cutting_instructions[1]
    assert (tuba.section, tuba.transposition) == ("Brass", "C")


def test_log_context_is_cleared_after_each_pass():
    record = logging.LogRecord("partsplit", logging.INFO, __file__, 1, "msg", (), None)
    run_segmentation_pass(
        _band(),
        20,
        from_text_layer=True,
        extraction_confidence=90,
        is_multi_part=True,
        settings=Settings(),
        pass_name="ocr_pass",
        document_id="doc-7",
    )
    LoggingContextFilter().filter(record)
    assert (record.document_id, record.pass_name) == ("-", "-")

    with pytest.raises(ValueError):
        run_segmentation_pass(
            [],
            -1,
            from_text_layer=True,
            extraction_confidence=90,
            is_multi_part=False,
            settings=Settings(),
            document_id="doc-8",
        )
    LoggingContextFilter().filter(record)
    assert record.document_id == "-"


def test_out_of_range_headers_are_dropped_before_gating():
    headers = [
        {"pageIndex": 0, "headerText": "Flute"},
        {"pageIndex": 1, "headerText": "Flute"},
        {"pageIndex": 5, "headerText": "Oboe"},
    ]
    outcome = run_segmentation_pass(
        headers,
        2,
        from_text_layer=True,
        extraction_confidence=90,
        is_multi_part=False,
        settings=Settings(),
    )
    assert [i.page_range for i in outcome.segmentation.cutting_instructions] == [(0, 1)]
    assert not any(f.rule == "page_range_out_of_bounds" for f in outcome.quality.findings)
    assert not outcome.requires_human_review
