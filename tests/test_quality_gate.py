"""Tests for the local (non-model) quality gates."""

import pytest

from quiz_generation.quality_gate import detect_unclear_pages, quick_evidence_check
from quiz_generation.schemas import QuestionEvidence

from conftest import PAGE_TEXTS


def ev(text: str) -> QuestionEvidence:
    return QuestionEvidence(source_text=text, page_index=0, confidence=0.9)


class TestDetectUnclearPages:
    """Tests for detect_unclear_pages."""

    def test_clear_pages(self):
        assert detect_unclear_pages(PAGE_TEXTS[:3]) is False

    def test_sentinel(self):
        assert detect_unclear_pages(["UNCLEAR"]) is True

    def test_any_short_page(self):
        assert detect_unclear_pages([PAGE_TEXTS[0], "too short"]) is True

    def test_boundary_length(self):
        assert detect_unclear_pages(["x" * 20]) is False
        assert detect_unclear_pages(["x" * 19]) is True


class TestQuickEvidenceCheck:
    """Tests for quick_evidence_check."""

    def test_no_evidence_is_total_failure(self):
        result = quick_evidence_check(PAGE_TEXTS[:2], [])
        assert (result.passed, result.failed, result.fail_rate) == (0, 0, 1.0)

    def test_matching_evidence_passes(self):
        result = quick_evidence_check(PAGE_TEXTS[:2], [ev("Plants make their own food"), ev("called HERBIVORES")])
        assert result.passed == 2
        assert result.fail_rate == 0.0

    def test_short_source_text_fails(self):
        result = quick_evidence_check(PAGE_TEXTS[:1], [ev("ab"), ev("")])
        assert result.failed == 2

    def test_half_match_passes(self):
        # two of four long words present
        result = quick_evidence_check(["the plants grow tall"], [ev("plants grow zebra yacht")])
        assert result.passed == 1

    def test_mostly_unmatched_fails(self):
        result = quick_evidence_check(PAGE_TEXTS[:1], [ev("volcanoes erupt molten plants")])
        assert result.failed == 1

    def test_only_short_words_fails(self):
        result = quick_evidence_check(PAGE_TEXTS[:1], [ev("an a of it")])
        assert result.failed == 1

    def test_fail_rate(self):
        items = [ev("Plants make their own food"), ev("volcanoes erupt molten lava"), ev("x")]
        result = quick_evidence_check(PAGE_TEXTS[:1], items)
        assert result.passed == 1
        assert result.failed == 2
        assert result.fail_rate == pytest.approx(2 / 3)

    def test_adding_unrelated_evidence_never_lowers_fail_rate(self):
        evidence = [ev("Plants make their own food"), ev("flat teeth")]
        previous = quick_evidence_check(PAGE_TEXTS[:2], evidence).fail_rate
        for extra in ["quantum chromodynamics", "medieval castles", "ocean trenches deep"]:
            evidence.append(ev(extra))
            rate = quick_evidence_check(PAGE_TEXTS[:2], evidence).fail_rate
            assert 0.0 <= rate <= 1.0
            assert rate >= previous
            previous = rate
