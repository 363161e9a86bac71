"""Tests for the guest layer: daily quota, curriculum context, media extraction."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.core.rate_limit import GuestQuota
from app.features.doubts.guest import (
    BUSY_MESSAGE,
    GuestDoubtService,
    MediaExtractionClient,
    limit_reached_answer,
)
from app.features.doubts.schemas import GuestAskRequest
from fakes import FakeChatModel, FakeContentRepository


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestGuestQuota:
    def test_fourth_request_in_window_is_rejected(self):
        quota = GuestQuota(limit=3, window_seconds=86400, timer=FakeClock())

        assert [quota.hit("+91-98") for _ in range(3)] == [True, True, True]
        assert quota.hit("+91-98") is False
        assert quota.used("+91-98") == 3

    def test_window_resets_after_a_day(self):
        clock = FakeClock()
        quota = GuestQuota(limit=3, window_seconds=86400, timer=clock)
        for _ in range(3):
            quota.hit("guest-1")

        clock.now = 86401

        assert quota.hit("guest-1") is True
        assert quota.used("guest-1") == 1

    def test_window_is_not_extended_by_later_requests(self):
        clock = FakeClock()
        quota = GuestQuota(limit=3, window_seconds=100, timer=clock)
        quota.hit("guest-1")
        clock.now = 90
        quota.hit("guest-1")

        clock.now = 101

        assert quota.used("guest-1") == 0

    def test_identifiers_are_independent(self):
        quota = GuestQuota(limit=1, timer=FakeClock())
        assert quota.hit("a") is True
        assert quota.hit("b") is True
        assert quota.hit("a") is False

    def test_capacity_evicts_least_recent_guest(self):
        quota = GuestQuota(limit=1, maxsize=2, timer=FakeClock())
        quota.hit("a")
        quota.hit("b")
        assert quota.hit("a") is False

        quota.hit("c")

        assert quota.used("b") == 0
        assert quota.used("a") == 1

    def test_limit_message(self):
        message = limit_reached_answer("https://eta.example/login")
        assert "Guest Limit Reached" in message
        assert "3 free guest doubts" in message
        assert message.endswith("https://eta.example/login")


def _service(model, contents=None, extraction=None, server_api_key="server-key"):
    return GuestDoubtService(
        contents=contents or FakeContentRepository(),
        extraction=extraction,
        llm_factory=lambda api_key, name: model,
        server_api_key=server_api_key,
        login_url="https://eta.example/login",
    )


class TestGuestDoubtService:
    @pytest.mark.asyncio
    async def test_curriculum_concepts_ground_the_answer(self):
        contents = FakeContentRepository()
        contents.institution_concepts = ["Newton's Laws", "Momentum"]
        model = FakeChatModel(content="Force equals mass times acceleration.")

        result = await _service(model, contents).resolve(
            GuestAskRequest(query="newton second law", institution_code="IIT-D")
        )

        assert result.success
        assert result.source == "institutional_kg"
        assert "Found in your Curriculum" in result.answer
        assert "*Newton's Laws, Momentum*" in result.answer
        assert result.answer.endswith("visit: https://eta.example/login")
        system_prompt = model.calls[0][0].content
        assert "Newton's Laws, Momentum" in system_prompt

    @pytest.mark.asyncio
    async def test_general_answer_without_institution(self):
        result = await _service(FakeChatModel(content="An answer.")).resolve(
            GuestAskRequest(query="What is torque?")
        )
        assert result.source == "general_ai"
        assert "Found in your Curriculum" not in result.answer

    @pytest.mark.asyncio
    async def test_model_failure_returns_busy_message(self):
        result = await _service(FakeChatModel(error=RuntimeError("boom"))).resolve(
            GuestAskRequest(query="What is torque?")
        )
        assert result.success is False
        assert result.answer == BUSY_MESSAGE

    @pytest.mark.asyncio
    async def test_without_server_key(self):
        model = FakeChatModel(content="unused")
        result = await _service(model, server_api_key="").resolve(GuestAskRequest(query="q"))
        assert result.success is False
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_extracted_media_becomes_context(self):
        extraction = MagicMock()
        extraction.extract = AsyncMock(return_value="Kirchhoff's voltage law diagram")
        model = FakeChatModel(content="It shows a loop.")

        result = await _service(model, extraction=extraction).resolve(
            GuestAskRequest(media_url="https://files.example/sheet.pdf", guest_id="g-1")
        )

        assert result.success
        extraction.extract.assert_awaited_once_with("https://files.example/sheet.pdf", "g-1", "pdf")
        assert "Kirchhoff's voltage law diagram" in model.calls[0][0].content
        assert model.calls[0][1].content == "Explain what is in this image/document"

    @pytest.mark.asyncio
    async def test_extraction_failure_is_tolerated(self):
        extraction = MagicMock()
        extraction.extract = AsyncMock(side_effect=httpx.ConnectError("ml service down"))

        result = await _service(FakeChatModel(content="ok"), extraction=extraction).resolve(
            GuestAskRequest(query="what is this", media_url="https://files.example/photo.jpg")
        )

        assert result.success


class TestMediaExtractionClient:
    @pytest.mark.asyncio
    async def test_posts_to_extract(self):
        response = MagicMock()
        response.raise_for_status = MagicMock()
        response.json = MagicMock(return_value={"success": True, "data": {"text": "page one"}})
        http = MagicMock()
        http.post = AsyncMock(return_value=response)

        client = MediaExtractionClient(http, "http://ml:8000/", timeout=30)
        text = await client.extract("https://files.example/a.pdf", "g-1", "pdf")

        assert text == "page one"
        http.post.assert_awaited_once_with(
            "http://ml:8000/extract",
            json={"file_url": "https://files.example/a.pdf", "content_id": "g-1", "content_type": "pdf"},
            timeout=30,
        )

    @pytest.mark.asyncio
    async def test_unsuccessful_extraction_raises(self):
        response = MagicMock()
        response.raise_for_status = MagicMock()
        response.json = MagicMock(return_value={"success": False, "message": "unsupported"})
        http = MagicMock()
        http.post = AsyncMock(return_value=response)

        with pytest.raises(ValueError, match="unsupported"):
            await MediaExtractionClient(http, "http://ml:8000").extract("u", "g", "image")
