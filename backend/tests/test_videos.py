"""Tests for the supplementary video lookup."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.features.doubts.videos import (
    NO_VIDEO_NOTE,
    VideoSearchClient,
    build_search_topic,
    replace_video_placeholders,
)


def _http(body: dict | None = None, error: Exception | None = None):
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json = MagicMock(return_value=body or {})
    http = MagicMock()
    http.post = AsyncMock(return_value=response, side_effect=error)
    return http


class TestSearchTopic:
    def test_uses_selection_when_meaningful(self):
        topic = build_search_topic("why?", "### Inertia\nA body resists change.", "Newton's first law")
        assert topic.startswith("Newton's first law ### Inertia")
        assert topic.endswith("english tutorial")

    def test_falls_back_to_query(self):
        topic = build_search_topic("What is torque?", "Torque [[VIDEO: torque]] turns things.", "ab")
        assert topic == "What is torque? Torque  turns things. english tutorial"

    def test_is_capped(self):
        assert len(build_search_topic("q" * 200, "a" * 200, language="hindi")) == 100


class TestPlaceholders:
    def test_replaced_with_note(self):
        assert replace_video_placeholders("Intro [[VIDEO: lens]]") == f"Intro {NO_VIDEO_NOTE}"

    def test_untouched_without_marker(self):
        assert replace_video_placeholders("Plain answer") == "Plain answer"


class TestVideoSearchClient:
    @pytest.mark.asyncio
    async def test_top_result_is_suggested(self):
        http = _http({
            "success": True,
            "videos": [
                {"id": 7, "url": "https://youtu.be/abc", "title": "Inertia in 5 min", "thumbnail": "t.jpg"},
                {"id": 8, "url": "https://youtu.be/def", "title": "Second"},
            ],
        })

        video = await VideoSearchClient(http, "http://ml:8000").suggest("What is inertia?", "Inertia is...")

        assert video.id == "7"
        assert video.title == "Inertia in 5 min"
        assert video.search_query.endswith("english tutorial")
        url = http.post.await_args.args[0]
        assert url == "http://ml:8000/search-videos"
        assert http.post.await_args.kwargs["json"]["max_duration_minutes"] == 10

    @pytest.mark.asyncio
    async def test_small_talk_skips_search(self):
        http = _http()
        assert await VideoSearchClient(http, "http://ml:8000").suggest("thanks!", "You're welcome") is None
        http.post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_means_no_video(self):
        http = _http(error=httpx.ConnectError("ml down"))
        assert await VideoSearchClient(http, "http://ml:8000").suggest("What is inertia?", "...") is None

    @pytest.mark.asyncio
    async def test_unsuccessful_search(self):
        http = _http({"success": False})
        assert await VideoSearchClient(http, "http://ml:8000").suggest("What is inertia?", "...") is None

    @pytest.mark.asyncio
    async def test_incomplete_result(self):
        http = _http({"success": True, "videos": [{"title": "no id or url"}]})
        assert await VideoSearchClient(http, "http://ml:8000").suggest("What is inertia?", "...") is None
