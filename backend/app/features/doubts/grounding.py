"""
Doubts feature: Context grounding.

Rebuilds "what the learner is pointing at" from the raw request:
  - video region   → transcript window around the `[at M:SS]` marker
  - other regions  → the selection with UI placeholders stripped
  - no region      → selection/context plus a head sample of the resource text
"""

import asyncio
import logging
import math
import re
from typing import Callable

from app.features.doubts.schemas import ContentRecord, GroundingContext, VisualContext

logger = logging.getLogger(__name__)

# Markers the viewer injects into the selection to say "the user drew a box here".
UI_PLACEHOLDERS = [
    re.compile(r"\(Visual Scan - AI Analysis\)"),
    re.compile(r"\(Video Focus - Analyzing Frame.*?\)"),
    re.compile(r"\(Image Focus - AI Vision\)"),
    re.compile(r"\(Visual Scan.*?\)"),
]
SECTION_MARKERS = re.compile(r"\[\[(INTRO|CONCEPT|CODE|SUMMARY)\]\]")

_TIMESTAMP = re.compile(r"\[at (\d+):(\d+)\]")
_PLACEHOLDER_ONLY = re.compile(r"^\(.*\)$", re.DOTALL)

RelatedConceptsFetcher = Callable[[str], list[str]]


def strip_ui_placeholders(text: str | None, include_section_markers: bool = False) -> str:
    cleaned = (text or "").strip()
    for pattern in UI_PLACEHOLDERS:
        cleaned = pattern.sub("", cleaned)
    if include_section_markers:
        cleaned = SECTION_MARKERS.sub("", cleaned)
    return cleaned.strip()


def parse_timestamp(selected_text: str | None) -> tuple[int, str] | None:
    """Find `[at M:SS]` in the selection. Returns (total_seconds, "m:ss")."""
    match = _TIMESTAMP.search(selected_text or "")
    if not match:
        return None
    minutes, seconds = int(match.group(1)), int(match.group(2))
    return minutes * 60 + seconds, f"{minutes}:{seconds:02d}"


def window_bounds(
    total_seconds: float, words_per_second: float, half_window_seconds: float
) -> tuple[int, int]:
    """Word-index bounds [start, end) of the window around a timestamp."""
    start = max(0, math.floor((total_seconds - half_window_seconds) * words_per_second))
    end = math.floor((total_seconds + half_window_seconds) * words_per_second)
    return start, end


def transcript_window(
    transcript: str,
    total_seconds: float,
    words_per_second: float = 2.5,
    half_window_seconds: float = 30,
) -> str:
    words = transcript.split()
    start, end = window_bounds(total_seconds, words_per_second, half_window_seconds)
    return " ".join(words[start:end])


class GroundingBuilder:
    """Builds the request-scoped GroundingContext."""

    def __init__(
        self,
        related_concepts: RelatedConceptsFetcher | None = None,
        words_per_second: float = 2.5,
        half_window_seconds: int = 30,
        region_fallback_chars: int = 3500,
        general_sample_chars: int = 2000,
        graph_timeout: float = 5,
    ):
        self.related_concepts = related_concepts
        self.words_per_second = words_per_second
        self.half_window_seconds = half_window_seconds
        self.region_fallback_chars = region_fallback_chars
        self.general_sample_chars = general_sample_chars
        self.graph_timeout = graph_timeout

    async def _fetch_related_concepts(self, content_id: str) -> list[str]:
        if self.related_concepts is None:
            return []
        try:
            names = await asyncio.wait_for(
                asyncio.to_thread(self.related_concepts, content_id),
                timeout=self.graph_timeout,
            )
            return [n for n in names if n][:5]
        except Exception as e:
            logger.warning(f"⚠️ Concept graph fetch failed for content {content_id}: {e}")
            return []

    async def build(
        self,
        query: str,
        selected_text: str | None = None,
        context: str | None = None,
        visual_context: VisualContext | None = None,
        content: ContentRecord | None = None,
    ) -> GroundingContext:
        full_text = content.extracted_text if content else ""
        content_type = content.type if content else "video"

        grounding = GroundingContext(
            course_name=(content.course_name if content else None) or "General Course",
            resource_name=(content.title if content else None) or "Main content",
            content_type=content_type,
            selected_text=selected_text,
        )
        grounding.lookup_context = selected_text or grounding.resource_name

        if content:
            grounding.related_concepts = await self._fetch_related_concepts(content.id)

        if visual_context is None:
            grounding.context_text = self._general_context(selected_text or context or "", full_text)
            return grounding

        grounding.is_region = True

        if content_type == "video":
            parsed = parse_timestamp(selected_text)
            if parsed:
                total_seconds, label = parsed
                grounding.selected_timestamp = label
                if full_text:
                    grounding.transcript_segment = transcript_window(
                        full_text,
                        total_seconds,
                        self.words_per_second,
                        self.half_window_seconds,
                    )
        else:
            cleaned = strip_ui_placeholders(selected_text)
            grounding.transcript_segment = cleaned or selected_text

        segment = (grounding.transcript_segment or "").strip()
        if (not segment or _PLACEHOLDER_ONLY.match(segment)) and full_text:
            grounding.transcript_segment = full_text[: self.region_fallback_chars]

        grounding.context_text = grounding.transcript_segment or ""

        # Mentors reviewing an escalated video doubt see the excerpt too.
        if content_type == "video" and grounding.transcript_segment:
            grounding.selected_text = (
                f"{selected_text or ''}\n\n[Extracted Video Content]: {grounding.transcript_segment}"
            ).strip()

        return grounding

    def _general_context(self, text: str, full_text: str) -> str:
        if full_text and full_text[:50] not in text:
            sample = full_text[: self.general_sample_chars]
            text = f"{text}\n\n[Context]: {sample}"
        return text.strip()
