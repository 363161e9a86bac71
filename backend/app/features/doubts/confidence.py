"""
Doubts feature: Confidence scoring.

The score is the single gate for auto-resolve / pending / writeback, so
everything here is a pure function of its inputs.

  AI base       35% of the model's assumed confidence (50% for verified sources)
  Context       +12 selection, +8 any context, +5 visual region (max 25)
  Length        20 / 15 / 10 / 5 at 400 / 200 / 100 / <100 chars
  Formatting    formatting sub-score scaled to 0–20
  Verified      +10 for human-verified answers
"""

import math
import re
from dataclasses import dataclass

from app.features.doubts.schemas import (
    AIConfidenceComponent,
    ConfidenceBreakdown,
    ScoreSummary,
    WeightedComponent,
)

_MAIN_TITLE = re.compile(r"###\s+.+")
_SUBTITLE = re.compile(r"####\s+.+")
_BULLETS = re.compile(r"^[\s]*[-*]\s+.+", re.MULTILINE)
_NUMBERED = re.compile(r"^\d+\.\s+.+", re.MULTILINE)
_BOLD = re.compile(r"\*\*.+?\*\*")
_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`.+?`")
_FORMULA = re.compile(r"\[.+?\]")


@dataclass(frozen=True)
class FormattingQuality:
    score: int
    has_main_title: bool = False
    has_subtitles: bool = False
    has_bullet_points: bool = False
    has_numbered_lists: bool = False
    has_bold_text: bool = False
    has_code_blocks: bool = False
    has_inline_code: bool = False
    has_formulas: bool = False
    title_count: int = 0
    subtitle_count: int = 0


def check_formatting_quality(text: str | None) -> FormattingQuality:
    """Score the markdown structure of a model answer (0–100 scale)."""
    if not text:
        return FormattingQuality(score=0)

    has_main_title = bool(_MAIN_TITLE.search(text))
    has_subtitles = bool(_SUBTITLE.search(text))
    has_bullet_points = bool(_BULLETS.search(text))
    has_numbered_lists = bool(_NUMBERED.search(text))
    has_bold_text = bool(_BOLD.search(text))
    has_code_blocks = bool(_CODE_BLOCK.search(text))
    has_inline_code = bool(_INLINE_CODE.search(text))
    has_formulas = bool(_FORMULA.search(text))

    title_count = len(_MAIN_TITLE.findall(text))
    subtitle_count = len(_SUBTITLE.findall(text))

    score = (
        (15 if has_main_title else 0)
        + (15 if has_subtitles else 0)
        + (10 if has_bullet_points else 0)
        + (10 if has_numbered_lists else 0)
        + (10 if has_bold_text else 0)
        + (5 if has_code_blocks else 0)
        + (5 if has_inline_code else 0)
        + (5 if has_formulas else 0)
        + (5 if title_count >= 1 else 0)
        + (10 if subtitle_count >= 2 else 0)
    )

    return FormattingQuality(
        score=min(100, score),
        has_main_title=has_main_title,
        has_subtitles=has_subtitles,
        has_bullet_points=has_bullet_points,
        has_numbered_lists=has_numbered_lists,
        has_bold_text=has_bold_text,
        has_code_blocks=has_code_blocks,
        has_inline_code=has_inline_code,
        has_formulas=has_formulas,
        title_count=title_count,
        subtitle_count=subtitle_count,
    )


@dataclass(frozen=True)
class ConfidenceSignals:
    ai_confidence: float = 85
    has_context: bool = False
    has_selected_text: bool = False
    has_visual_context: bool = False
    is_vision_mode: bool = False
    response_length: int = 0
    formatting_score: float = 0
    content_type: str = "text"
    is_verified_source: bool = False


@dataclass(frozen=True)
class ConfidenceResult:
    final_score: int
    breakdown: ConfidenceBreakdown


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return min(high, max(low, value))


def reliability_label(score: float) -> str:
    if score >= 85:
        return "High"
    if score >= 70:
        return "Good"
    if score >= 50:
        return "Moderate"
    return "Low"


def context_quality_score(signals: ConfidenceSignals) -> int:
    score = 0
    if signals.has_selected_text:
        score += 12
    if signals.has_context:
        score += 8
    if signals.has_visual_context:
        score += 5
    return min(25, score)


def response_quality_score(length: int) -> int:
    if length >= 400:
        return 20
    if length >= 200:
        return 15
    if length >= 100:
        return 10
    return 5


def calculate_confidence(signals: ConfidenceSignals) -> ConfidenceResult:
    """Compute the 0–100 trust score and its fixed-shape breakdown."""
    ai_weight = 0.50 if signals.is_verified_source else 0.35
    ai_score = _clamp(signals.ai_confidence) * ai_weight

    context_score = context_quality_score(signals)
    response_score = response_quality_score(signals.response_length)
    formatting_score = _clamp(signals.formatting_score) / 100 * 20
    source_bonus = 10 if signals.is_verified_source else 0

    total = ai_score + context_score + response_score + formatting_score + source_bonus
    final_score = int(_clamp(_round_half_up(total)))

    breakdown = ConfidenceBreakdown(
        ai_confidence=AIConfidenceComponent(
            value=_round_half_up(ai_score / ai_weight),
            weight=f"{round(ai_weight * 100)}%",
            contribution=_round_half_up(ai_score),
        ),
        context_quality=WeightedComponent(weight="25%", contribution=context_score),
        response_quality=WeightedComponent(weight="20%", contribution=response_score),
        formatting_quality=WeightedComponent(
            weight="20%", contribution=_round_half_up(formatting_score)
        ),
        summary=ScoreSummary(
            total_score=final_score,
            reliability=reliability_label(final_score),
        ),
    )
    return ConfidenceResult(final_score=final_score, breakdown=breakdown)
