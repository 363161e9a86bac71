"""
Doubts feature: Schemas for request/response models and value objects.

Wire format is camelCase (the web client and the WhatsApp relay both send
camelCase); Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ─────────────────────────────────────────────
class VisualContext(CamelModel):
    """Region-of-interest drawn by the learner, in viewer coordinates."""
    x: float
    y: float
    width: float
    height: float


class AskRequest(CamelModel):
    query: str = Field(min_length=1)
    selected_text: str | None = None
    course_id: str
    content_id: str | None = None
    context: str | None = None
    visual_context: VisualContext | None = None
    language: Literal["english", "hindi"] = "english"
    user_api_key: str | None = None
    job_id: str | None = None  # lets the client cancel the generation


class GuestAskRequest(CamelModel):
    query: str | None = None
    institution_code: str | None = None
    media_url: str | None = None
    media_type: str | None = None  # pdf | image
    guest_id: str | None = None


class AnswerRequest(CamelModel):
    answer: str = Field(min_length=1)
    save_to_graph: bool = True


class FeedbackRequest(CamelModel):
    helpful: bool
    rating: int | None = Field(default=None, ge=1, le=5)


class ApiKeyRequest(CamelModel):
    api_key: str = Field(min_length=1)


# ── Confidence breakdown (fixed shape) ───────────────────
class AIConfidenceComponent(CamelModel):
    value: int
    weight: str
    contribution: int


class WeightedComponent(CamelModel):
    weight: str
    contribution: int


class ScoreSummary(CamelModel):
    total_score: int
    reliability: Literal["High", "Good", "Moderate", "Low"]


class ConfidenceBreakdown(CamelModel):
    ai_confidence: AIConfidenceComponent
    context_quality: WeightedComponent
    response_quality: WeightedComponent
    formatting_quality: WeightedComponent
    summary: ScoreSummary


# ── Value objects ────────────────────────────────────────
class ContentRecord(BaseModel):
    """The slice of a content item the engine needs (read from `contents`)."""
    id: str
    course_id: str | None = None
    course_name: str | None = None
    title: str | None = None
    type: str = "video"
    file_url: str | None = None
    extracted_text: str = ""


class GroundingContext(CamelModel):
    """Request-scoped description of what the learner is pointing at."""
    selected_timestamp: str | None = None
    transcript_segment: str | None = None
    course_name: str = "General Course"
    resource_name: str = "Main content"
    related_concepts: list[str] = []
    is_region: bool = False
    content_type: str = "video"
    context_text: str = ""
    selected_text: str | None = None
    lookup_context: str = ""  # exact-key / search context for semantic memory


class MemoryMatch(BaseModel):
    question: str
    answer: str
    confidence: float
    source: str
    course_id: str | None = None
    similarity: float | None = None


class SuggestedVideo(CamelModel):
    id: str
    url: str
    title: str
    thumbnail: str | None = None
    search_query: str | None = None


# ── Responses ────────────────────────────────────────────
class DoubtFeedback(CamelModel):
    helpful: bool | None = None
    rating: int | None = None


class DoubtRecord(CamelModel):
    """A doubt as stored in the `doubts` table."""
    id: str
    student_id: str
    course_id: str
    content_id: str | None = None
    query: str
    selected_text: str | None = None
    context: str | None = None
    visual_context: VisualContext | None = None
    ai_response: str | None = None
    confidence: float = 0
    confidence_breakdown: ConfidenceBreakdown | None = None
    status: str
    escalated: bool = False
    faculty_answer: str | None = None
    answered_by: str | None = None
    resolved_at: datetime | None = None
    suggested_video: SuggestedVideo | None = None
    source: str = "AI_API"
    is_from_cache: bool = False
    is_conversational: bool = False
    feedback: DoubtFeedback | None = None
    job_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AskResult(CamelModel):
    doubt: DoubtRecord
    is_from_cache: bool
    is_saved: bool
    is_conversational: bool = False
    source: Literal["KNOWLEDGE_GRAPH", "AI_API"]
    confidence: float


class AskResponse(CamelModel):
    success: bool = True
    message: str
    data: AskResult


class DoubtResponse(CamelModel):
    success: bool = True
    message: str | None = None
    data: DoubtRecord


class DoubtListResponse(CamelModel):
    success: bool = True
    count: int
    data: list[DoubtRecord]


class GuestAnswer(CamelModel):
    success: bool
    answer: str
    source: str | None = None
    limit_reached: bool = False


class MessageResponse(CamelModel):
    success: bool = True
    message: str
