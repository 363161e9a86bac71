"""
Doubts feature: Answer generation.

  query ─► classifier ─► greeting / vague?  ─► canned reply (no model call)
                    └─► prompt (strict-region | general) ─► chat model
                                                     └─► formatting check ─► confidence

Provider failures are mapped to user-actionable errors (NO_API_KEY,
INVALID_API_KEY, API_LIMIT_REACHED). Cancelling the task that awaits
``generate`` cancels the outstanding model call.
"""

import asyncio
import base64
import logging
import re
from dataclasses import dataclass
from typing import Callable

import httpx
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from app.core.exceptions import (
    AIUnavailableError,
    ApiLimitReachedError,
    InvalidApiKeyError,
    NoApiKeyError,
    ProviderConfigError,
    ProviderError,
)
from app.core.llm_provider import create_llm
from app.features.doubts.classifier import QueryClassifier, RegexQueryClassifier
from app.features.doubts.confidence import (
    ConfidenceSignals,
    calculate_confidence,
    check_formatting_quality,
)
from app.features.doubts.prompts import (
    GREETING_REPLY,
    SELECT_AREA_REPLY,
    build_system_prompt,
    display_context_for,
)
from app.features.doubts.schemas import (
    ConfidenceBreakdown,
    ContentRecord,
    GroundingContext,
    VisualContext,
)

logger = logging.getLogger(__name__)

ChatModelFactory = Callable[[str, str], BaseChatModel]

_CODING_TOPIC = re.compile(
    r"code|programming|java|python|javascript|script|algorithm|function|class", re.IGNORECASE
)
_EXPLICIT_CODE_REQUEST = re.compile(
    r"show\s+code|example\s+in|write\s+a\s+program|snippet", re.IGNORECASE
)


@dataclass
class GeneratedAnswer:
    explanation: str
    confidence: int
    source: str
    breakdown: ConfidenceBreakdown | None = None
    is_conversational: bool = False
    is_vision_mode: bool = False
    language: str = "english"


def map_provider_error(error: Exception) -> ProviderError:
    """Translate an SDK / transport error into one of our provider errors."""
    status_code = getattr(error, "status_code", None)
    if status_code is None:
        response = getattr(error, "response", None)
        status_code = getattr(response, "status_code", None)

    if status_code in (401, 403):
        return InvalidApiKeyError()
    if status_code in (413, 429):
        return ApiLimitReachedError()
    if isinstance(error, asyncio.TimeoutError):
        return AIUnavailableError("Model call timed out")
    return AIUnavailableError(str(error))


def extract_text(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(item["text"])
            elif isinstance(item, str):
                parts.append(item)
        return "\n".join(parts)
    return str(content)


def _guess_mime_type(url: str) -> str:
    path = url.split("?", 1)[0].lower()
    if path.endswith(".png"):
        return "image/png"
    if path.endswith(".webp"):
        return "image/webp"
    return "image/jpeg"


def _default_llm_factory(api_key: str, model: str) -> BaseChatModel:
    return create_llm(api_key=api_key, model=model)


class AnswerGenerator:
    """Builds the prompt, calls the chat model and scores the result."""

    def __init__(
        self,
        llm_factory: ChatModelFactory | None = None,
        classifier: QueryClassifier | None = None,
        http: httpx.AsyncClient | None = None,
        server_api_key: str = "",
        text_model: str = "llama-3.3-70b-versatile",
        vision_model: str = "meta-llama/llama-4-scout-17b-16e-instruct",
        timeout: float = 45,
        image_timeout: float = 15,
        base_confidence: float = 85,
    ):
        self.llm_factory = llm_factory or _default_llm_factory
        self.classifier = classifier or RegexQueryClassifier()
        self.http = http
        self.server_api_key = server_api_key
        self.text_model = text_model
        self.vision_model = vision_model
        self.timeout = timeout
        self.image_timeout = image_timeout
        self.base_confidence = base_confidence

    async def generate(
        self,
        query: str,
        grounding: GroundingContext,
        selected_text: str | None = None,
        visual_context: VisualContext | None = None,
        content: ContentRecord | None = None,
        language: str = "english",
        user_name: str = "Student",
        api_key: str | None = None,
    ) -> GeneratedAnswer:
        intent = self.classifier.classify(query, language)
        has_selection = bool(selected_text) or visual_context is not None
        display_context = display_context_for(grounding.context_text)

        # ── Conversational short-circuits (no model call) ──
        if intent.is_greeting and len(query) < 20:
            return GeneratedAnswer(
                explanation=GREETING_REPLY.format(user_name=user_name, display_context=display_context),
                confidence=100,
                source="system_response",
                is_conversational=True,
                language=intent.language,
            )

        if intent.is_vague and not has_selection:
            return GeneratedAnswer(
                explanation=SELECT_AREA_REPLY.format(user_name=user_name, display_context=display_context),
                confidence=90,
                source="system_response",
                is_conversational=True,
                language=intent.language,
            )

        active_key = api_key or self.server_api_key
        if not active_key:
            raise NoApiKeyError()

        is_vision_mode = bool(
            visual_context is not None
            and content is not None
            and content.file_url
            and content.type == "image"
        )
        wants_code = bool(
            _CODING_TOPIC.search(query)
            or _CODING_TOPIC.search(selected_text or "")
            or _EXPLICIT_CODE_REQUEST.search(query)
        )
        system_prompt = build_system_prompt(grounding, intent.language, user_name, wants_code)

        messages = None
        if is_vision_mode:
            messages = await self._vision_messages(system_prompt, query, content.file_url)
            is_vision_mode = messages is not None
        if messages is None:
            messages = [SystemMessage(content=system_prompt), HumanMessage(content=query)]

        model = self.vision_model if is_vision_mode else self.text_model
        raw_content = await self._invoke(active_key, model, messages)

        formatting = check_formatting_quality(raw_content)
        result = calculate_confidence(
            ConfidenceSignals(
                ai_confidence=self.base_confidence,
                has_context=bool(grounding.context_text),
                has_selected_text=bool(selected_text),
                has_visual_context=visual_context is not None,
                is_vision_mode=is_vision_mode,
                response_length=len(raw_content),
                formatting_score=formatting.score,
                content_type=grounding.content_type,
            )
        )

        return GeneratedAnswer(
            explanation=raw_content,
            confidence=result.final_score,
            breakdown=result.breakdown,
            source="groq_vision" if is_vision_mode else "groq_llama",
            is_vision_mode=is_vision_mode,
            language=intent.language,
        )

    async def _invoke(self, api_key: str, model: str, messages: list) -> str:
        try:
            llm = self.llm_factory(api_key, model)
        except ValueError as e:
            logger.error(f"❌ Model provider could not be built: {e}")
            raise ProviderConfigError(str(e)) from e

        try:
            response = await asyncio.wait_for(llm.ainvoke(messages), timeout=self.timeout)
        except asyncio.CancelledError:
            logger.info("Model call cancelled by the caller")
            raise
        except Exception as e:
            mapped = map_provider_error(e)
            logger.error(f"❌ Model call failed ({mapped.error_code}): {e}")
            raise mapped from e
        return extract_text(response.content)

    async def _vision_messages(self, system_prompt: str, query: str, image_url: str) -> list | None:
        """Inline the resource image as a data URL. None when it cannot be fetched."""
        try:
            if self.http is not None:
                response = await self.http.get(image_url, timeout=self.image_timeout)
            else:
                async with httpx.AsyncClient(timeout=self.image_timeout) as client:
                    response = await client.get(image_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Failed to fetch image for vision mode, using text mode: {e}")
            return None

        encoded = base64.b64encode(response.content).decode("ascii")
        data_url = f"data:{_guess_mime_type(image_url)};base64,{encoded}"
        return [
            HumanMessage(
                content=[
                    {"type": "text", "text": f"{system_prompt}\n\nACTUAL STUDENT QUERY: {query}"},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ]
            )
        ]
