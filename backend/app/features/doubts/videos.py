"""
Doubts feature: Supplementary video lookup.

Ranking lives in the ML service; this client only builds the topic, calls
`/search-videos` and falls back to "no video" on any failure or timeout.
"""

import asyncio
import logging
import re

import httpx

from app.features.doubts.classifier import is_small_talk
from app.features.doubts.grounding import strip_ui_placeholders
from app.features.doubts.schemas import SuggestedVideo

logger = logging.getLogger(__name__)

_ANY_MARKER = re.compile(r"\[\[.*?\]\]")
_VIDEO_PLACEHOLDER = re.compile(r"\[\[VIDEO:?\s*[^\]]*\]\]")
NO_VIDEO_NOTE = "\n\n*No high-quality video found specifically for this subtopic.*"


def build_search_topic(
    query: str, explanation: str, selected_text: str | None = None, language: str = "english"
) -> str:
    """Selection (or query) plus the head of the answer, capped at 100 chars."""
    clean_selection = strip_ui_placeholders(selected_text, include_section_markers=True)
    answer_head = _ANY_MARKER.sub("", explanation)[:80].strip()

    if clean_selection and len(clean_selection) > 5:
        topic = f"{clean_selection[:60]} {answer_head}"
    else:
        topic = f"{query[:50]} {answer_head}"

    suffix = "hindi" if language == "hindi" else "english"
    return f"{topic} {suffix} tutorial"[:100]


def replace_video_placeholders(explanation: str) -> str:
    if "[[VIDEO:" not in explanation:
        return explanation
    return _VIDEO_PLACEHOLDER.sub(NO_VIDEO_NOTE, explanation)


class VideoSearchClient:
    """Free-text topic → best ranked video, or None."""

    def __init__(self, http: httpx.AsyncClient, base_url: str, timeout: float = 8):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def search(self, topic: str, language: str = "english") -> list[dict]:
        response = await self.http.post(
            f"{self.base_url}/search-videos",
            json={
                "query": topic[:200],
                "max_duration_minutes": 10,
                "language": language,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        if not data.get("success"):
            return []
        return data.get("videos") or []

    async def suggest(
        self,
        query: str,
        explanation: str,
        selected_text: str | None = None,
        language: str = "english",
    ) -> SuggestedVideo | None:
        if is_small_talk(query):
            return None

        topic = build_search_topic(query, explanation, selected_text, language)
        try:
            videos = await asyncio.wait_for(self.search(topic, language), timeout=self.timeout)
        except Exception as e:
            logger.warning(f"⚠️ Post-answer video discovery failed: {e}")
            return None

        if not videos:
            return None

        top = videos[0]
        try:
            return SuggestedVideo(
                id=str(top["id"]),
                url=top["url"],
                title=top.get("title") or "",
                thumbnail=top.get("thumbnail"),
                search_query=topic,
            )
        except KeyError as e:
            logger.warning(f"⚠️ Video search returned an incomplete result (missing {e})")
            return None
