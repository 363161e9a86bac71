"""Tests for confidence scoring and the formatting sub-score."""

import pytest

from app.features.doubts.confidence import (
    ConfidenceSignals,
    calculate_confidence,
    check_formatting_quality,
    context_quality_score,
    reliability_label,
    response_quality_score,
)

WELL_FORMATTED = """### Newton's Second Law
#### The idea
**Force** changes motion, written as [F = m × a].
#### Steps
1. Measure the mass.
- Compute `a = F / m`.
```python
a = force / mass
```"""


class TestFormattingQuality:
    def test_empty_text_scores_zero(self):
        assert check_formatting_quality("").score == 0
        assert check_formatting_quality(None).score == 0

    def test_plain_text_scores_zero(self):
        assert check_formatting_quality("Force is a push or a pull.").score == 0

    def test_every_marker_reaches_ninety(self):
        result = check_formatting_quality(WELL_FORMATTED)
        assert result.has_main_title
        assert result.has_subtitles
        assert result.has_bullet_points
        assert result.has_numbered_lists
        assert result.has_bold_text
        assert result.has_code_blocks
        assert result.has_inline_code
        assert result.has_formulas
        assert result.subtitle_count == 2
        assert result.score == 90

    def test_single_subheading_gets_no_extra_weight(self):
        result = check_formatting_quality("### Title\n#### Only one\n")
        # 15 title + 15 subtitle + 5 for at least one title
        assert result.score == 35


class TestComponents:
    def test_context_bonus_is_capped(self):
        signals = ConfidenceSignals(has_selected_text=True, has_context=True, has_visual_context=True)
        assert context_quality_score(signals) == 25

    @pytest.mark.parametrize(
        "length, expected",
        [(0, 5), (99, 5), (100, 10), (199, 10), (200, 15), (399, 15), (400, 20), (5000, 20)],
    )
    def test_response_length_breakpoints(self, length, expected):
        assert response_quality_score(length) == expected

    @pytest.mark.parametrize(
        "score, label",
        [(100, "High"), (85, "High"), (84, "Good"), (70, "Good"), (69, "Moderate"), (50, "Moderate"), (49, "Low"), (0, "Low")],
    )
    def test_reliability_labels(self, score, label):
        assert reliability_label(score) == label


class TestCalculateConfidence:
    def test_baseline_answer(self):
        # 85 × 0.35 = 29.75, +5 for a short answer
        result = calculate_confidence(ConfidenceSignals())
        assert result.final_score == 35
        assert result.breakdown.ai_confidence.value == 85
        assert result.breakdown.ai_confidence.weight == "35%"
        assert result.breakdown.ai_confidence.contribution == 30
        assert result.breakdown.summary.total_score == 35
        assert result.breakdown.summary.reliability == "Low"

    def test_selection_never_lowers_the_score(self):
        without = calculate_confidence(ConfidenceSignals(response_length=250, formatting_score=40))
        with_selection = calculate_confidence(
            ConfidenceSignals(response_length=250, formatting_score=40, has_selected_text=True)
        )
        assert with_selection.final_score == without.final_score + 12

    def test_verified_source_shifts_weight_and_adds_bonus(self):
        result = calculate_confidence(ConfidenceSignals(is_verified_source=True))
        # 85 × 0.50 = 42.5, +5 length, +10 bonus = 57.5
        assert result.final_score == 58
        assert result.breakdown.ai_confidence.weight == "50%"

    def test_score_is_clamped_to_100(self):
        result = calculate_confidence(
            ConfidenceSignals(
                ai_confidence=100,
                has_selected_text=True,
                has_context=True,
                has_visual_context=True,
                response_length=1000,
                formatting_score=100,
                is_verified_source=True,
            )
        )
        assert result.final_score == 100

    @pytest.mark.parametrize("ai_confidence", [-50, 0, 85, 100, 250])
    def test_score_stays_in_bounds(self, ai_confidence):
        result = calculate_confidence(
            ConfidenceSignals(ai_confidence=ai_confidence, formatting_score=500, response_length=10)
        )
        assert 0 <= result.final_score <= 100

    def test_all_zero_signals_score_the_length_floor(self):
        result = calculate_confidence(
            ConfidenceSignals(ai_confidence=0, response_length=0, formatting_score=0)
        )
        assert result.final_score == 5
        assert result.breakdown.summary.reliability == "Low"
        assert result.breakdown.ai_confidence.contribution == 0
        assert result.breakdown.context_quality.contribution == 0
        assert result.breakdown.response_quality.contribution == 5

    def test_breakdown_serialises_with_camel_case_keys(self):
        dumped = calculate_confidence(ConfidenceSignals()).breakdown.model_dump(by_alias=True)
        assert set(dumped) == {
            "aiConfidence",
            "contextQuality",
            "responseQuality",
            "formattingQuality",
            "summary",
        }
        assert dumped["summary"] == {"totalScore": 35, "reliability": "Low"}
