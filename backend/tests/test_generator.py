"""Tests for answer generation: short-circuits, key handling, error mapping, vision mode."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.core.exceptions import (
    AIUnavailableError,
    ApiLimitReachedError,
    InvalidApiKeyError,
    NoApiKeyError,
    ProviderConfigError,
)
from app.features.doubts.classifier import RegexQueryClassifier, is_small_talk
from app.features.doubts.generator import AnswerGenerator, map_provider_error
from app.features.doubts.schemas import ContentRecord, GroundingContext, VisualContext
from fakes import FakeChatModel, make_status_error

ANSWER = "### Inertia\n**Inertia** is the resistance of a body to changes in its motion." * 3


def _generator(model: FakeChatModel, server_api_key="server-key", **kwargs):
    calls = []

    def factory(api_key, model_name):
        calls.append((api_key, model_name))
        return model

    generator = AnswerGenerator(llm_factory=factory, server_api_key=server_api_key, **kwargs)
    return generator, calls


class TestClassifier:
    def test_greeting(self):
        intent = RegexQueryClassifier().classify("Hello there")
        assert intent.is_greeting
        assert not intent.is_vague

    def test_vague_request(self):
        assert RegexQueryClassifier().classify("explain this?").is_vague

    def test_hinglish_keywords_need_word_boundaries(self):
        classifier = RegexQueryClassifier()
        assert classifier.classify("Newton ka law kya hai").language == "hindi"
        assert classifier.classify("Why does a chair not move?").language == "english"

    def test_requested_language_wins(self):
        assert RegexQueryClassifier().classify("What is inertia?", "hindi").language == "hindi"

    def test_small_talk(self):
        assert is_small_talk("thanks!")
        assert not is_small_talk("thanks, but why does the cart slow down on the slope?")


class TestShortCircuits:
    @pytest.mark.asyncio
    async def test_greeting_needs_no_model_or_key(self):
        model = FakeChatModel(content=ANSWER)
        generator, calls = _generator(model, server_api_key="")

        result = await generator.generate("hi", GroundingContext(), user_name="Asha")

        assert result.is_conversational
        assert result.confidence == 100
        assert result.source == "system_response"
        assert "Asha" in result.explanation
        assert calls == []

    @pytest.mark.asyncio
    async def test_vague_request_without_selection_asks_for_one(self):
        generator, calls = _generator(FakeChatModel(content=ANSWER))

        result = await generator.generate("explain this", GroundingContext())

        assert result.is_conversational
        assert result.confidence == 90
        assert calls == []

    @pytest.mark.asyncio
    async def test_vague_request_with_selection_calls_the_model(self):
        generator, calls = _generator(FakeChatModel(content=ANSWER))

        result = await generator.generate(
            "explain this",
            GroundingContext(context_text="F = ma"),
            selected_text="F = ma",
        )

        assert not result.is_conversational
        assert len(calls) == 1


class TestModelCall:
    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        generator, _ = _generator(FakeChatModel(content=ANSWER), server_api_key="")
        with pytest.raises(NoApiKeyError):
            await generator.generate("What is inertia?", GroundingContext())

    @pytest.mark.asyncio
    async def test_learner_key_is_preferred(self):
        generator, calls = _generator(FakeChatModel(content=ANSWER))

        await generator.generate("What is inertia?", GroundingContext(), api_key="learner-key")

        assert calls == [("learner-key", "llama-3.3-70b-versatile")]

    @pytest.mark.asyncio
    async def test_answer_is_scored(self):
        generator, _ = _generator(FakeChatModel(content=ANSWER))

        result = await generator.generate(
            "What is inertia?",
            GroundingContext(context_text="Lecture notes"),
            selected_text="inertia",
        )

        assert result.source == "groq_llama"
        assert result.breakdown is not None
        assert result.breakdown.summary.total_score == result.confidence
        assert 0 <= result.confidence <= 100

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code, error_type",
        [(401, InvalidApiKeyError), (403, InvalidApiKeyError), (413, ApiLimitReachedError), (429, ApiLimitReachedError), (500, AIUnavailableError)],
    )
    async def test_provider_errors_are_mapped(self, status_code, error_type):
        generator, _ = _generator(FakeChatModel(error=make_status_error(status_code)))
        with pytest.raises(error_type):
            await generator.generate("What is inertia?", GroundingContext())

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        generator, _ = _generator(FakeChatModel(content=ANSWER, delay=1), timeout=0.01)
        with pytest.raises(AIUnavailableError) as exc_info:
            await generator.generate("What is inertia?", GroundingContext())
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_unknown_provider_is_a_configuration_error(self):
        def factory(api_key, model_name):
            raise ValueError("Unknown LLM provider: 'mistral'. Supported: groq, openai, gemini")

        generator = AnswerGenerator(llm_factory=factory, server_api_key="server-key")

        with pytest.raises(ProviderConfigError) as exc_info:
            await generator.generate("What is inertia?", GroundingContext())

        assert exc_info.value.error_code == "PROVIDER_MISCONFIGURED"
        assert "mistral" in exc_info.value.detail

    def test_status_from_response_attribute(self):
        error = Exception("rate limited")
        error.response = MagicMock(status_code=429)
        assert isinstance(map_provider_error(error), ApiLimitReachedError)

    def test_timeout_error_mapping(self):
        assert isinstance(map_provider_error(asyncio.TimeoutError()), AIUnavailableError)


class TestVisionMode:
    REGION = VisualContext(x=0, y=0, width=100, height=100)
    IMAGE = ContentRecord(id="content-7", type="image", file_url="https://cdn.example.com/diagram.png")

    @pytest.mark.asyncio
    async def test_image_region_is_sent_inline(self):
        response = MagicMock(content=b"\x89PNG")
        response.raise_for_status = MagicMock()
        http = MagicMock()
        http.get = AsyncMock(return_value=response)
        model = FakeChatModel(content=ANSWER)
        generator, calls = _generator(model, http=http)

        result = await generator.generate(
            "What does the arrow show?",
            GroundingContext(is_region=True, content_type="image"),
            visual_context=self.REGION,
            content=self.IMAGE,
        )

        assert result.is_vision_mode
        assert result.source == "groq_vision"
        assert calls[0][1] == "meta-llama/llama-4-scout-17b-16e-instruct"
        image_part = model.calls[0][0].content[1]
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_image_fetch_failure_falls_back_to_text(self):
        http = MagicMock()
        http.get = AsyncMock(side_effect=httpx.ConnectError("cdn down"))
        generator, calls = _generator(FakeChatModel(content=ANSWER), http=http)

        result = await generator.generate(
            "What does the arrow show?",
            GroundingContext(is_region=True, content_type="image"),
            visual_context=self.REGION,
            content=self.IMAGE,
        )

        assert not result.is_vision_mode
        assert result.source == "groq_llama"
        assert calls[0][1] == "llama-3.3-70b-versatile"
