"""
Doubts feature: Guest layer (messaging relays, no account).

Nothing is persisted: the answer is grounded in the institution's curriculum
concepts and, when the guest sent a file, in the text the ML service extracts
from it. Every reply ends with a call-to-action to sign in.
"""

import asyncio
import logging
from typing import Callable

import httpx
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from app.core.llm_provider import create_llm
from app.features.doubts.generator import extract_text
from app.features.doubts.prompts import GUEST_PROMPT
from app.features.doubts.repository import ContentRepository
from app.features.doubts.schemas import GuestAnswer, GuestAskRequest

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_QUERY = "Explain what is in this image/document"
BUSY_MESSAGE = (
    "The Eta system is currently processing high traffic. "
    "Please try again or log in to your portal for priority access."
)


def limit_reached_answer(login_url: str, quota: int = 3) -> str:
    return (
        "🚀 **Guest Limit Reached!**\n\n"
        f"You've used your {quota} free guest doubts. To continue learning, seeing interactive "
        "3D models, and accessing your institution's full video library, please log in to the "
        f"Eta platform.\n\nVisit: {login_url}"
    )


def _guest_llm_factory(api_key: str, model: str) -> BaseChatModel:
    return create_llm(api_key=api_key, model=model, temperature=0.5, max_tokens=800)


class MediaExtractionClient:
    """Calls the ML service `/extract` endpoint for a PDF or image URL."""

    def __init__(self, http: httpx.AsyncClient, base_url: str, timeout: float = 600):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def extract(self, file_url: str, reference_id: str, content_type: str) -> str:
        """Returns the extracted text.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx answer.
            ValueError: If the service reports an unsuccessful extraction.
        """
        response = await self.http.post(
            f"{self.base_url}/extract",
            json={
                "file_url": file_url,
                "content_id": reference_id,
                "content_type": content_type,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        body = response.json()
        if not body.get("success"):
            raise ValueError(body.get("message") or "ML extraction failed")

        data = body.get("data") or {}
        return data.get("text") or data.get("content") or ""


class GuestDoubtService:
    def __init__(
        self,
        contents: ContentRepository,
        extraction: MediaExtractionClient | None = None,
        llm_factory: Callable[[str, str], BaseChatModel] | None = None,
        server_api_key: str = "",
        model: str = "llama-3.3-70b-versatile",
        timeout: float = 45,
        login_url: str = "https://eta-ott.netlify.app/login",
    ):
        self.contents = contents
        self.extraction = extraction
        self.llm_factory = llm_factory or _guest_llm_factory
        self.server_api_key = server_api_key
        self.model = model
        self.timeout = timeout
        self.login_url = login_url

    async def resolve(self, data: GuestAskRequest) -> GuestAnswer:
        extracted_text = ""
        if data.media_url:
            extracted_text = await self._extract_media(data)

        query = data.query or DEFAULT_MEDIA_QUERY
        concepts = await self._institution_concepts(data.institution_code, query)

        kg_context = ""
        if concepts:
            kg_context = (
                "Institutional Knowledge Context: This query relates to the following "
                f"concepts in your curriculum: {', '.join(concepts)}."
            )
        media_context = (
            f"\nContent extracted from your upload: {extracted_text}" if extracted_text else ""
        )

        if not self.server_api_key:
            logger.error("❌ Guest doubt rejected: no server model key configured")
            return GuestAnswer(success=False, answer=BUSY_MESSAGE)

        messages = [
            SystemMessage(content=GUEST_PROMPT.format(kg_context=kg_context, media_context=media_context)),
            HumanMessage(content=query),
        ]
        try:
            llm = self.llm_factory(self.server_api_key, self.model)
            response = await asyncio.wait_for(llm.ainvoke(messages), timeout=self.timeout)
        except Exception as e:
            logger.error(f"❌ Guest resolve error: {e}")
            return GuestAnswer(success=False, answer=BUSY_MESSAGE)

        answer = extract_text(response.content)
        if concepts:
            answer += (
                "\n\n🔍 **Found in your Curriculum:**\n"
                f"This topic is linked to: *{', '.join(concepts)}* in your portal."
            )
        answer += (
            "\n\n🚀 **Unlock Full Potential:**\n"
            "To see interactive 3D graphs, teacher videos, and get unlimited AI support, "
            f"visit: {self.login_url}"
        )

        return GuestAnswer(
            success=True,
            answer=answer,
            source="institutional_kg" if concepts else "general_ai",
        )

    async def _extract_media(self, data: GuestAskRequest) -> str:
        if self.extraction is None:
            return ""
        media_type = data.media_type or ("pdf" if data.media_url.lower().endswith(".pdf") else "image")
        logger.info(f"📸 Guest: extracting context from {media_type}...")
        try:
            text = await self.extraction.extract(data.media_url, data.guest_id or "guest_temp", media_type)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Guest media extraction failed: {e}")
            return ""
        logger.info(f"✅ Extracted {len(text)} chars for guest context")
        return text

    async def _institution_concepts(self, institution_code: str | None, query: str) -> list[str]:
        if not institution_code:
            return []
        try:
            return await asyncio.to_thread(
                self.contents.find_institution_concepts, institution_code, query
            )
        except Exception as e:
            logger.warning(f"⚠️ Curriculum lookup failed for institution {institution_code}: {e}")
            return []
