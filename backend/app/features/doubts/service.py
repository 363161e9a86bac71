"""
Doubts feature: Business logic for asking, escalating and answering doubts.

  ask ─► grounding ─► semantic memory ──hit──► doubt (resolved | pending)
                                  └─miss─► doubt (processing) ─► generator job
                                                 ─► video ─► writeback ─► doubt (resolved | pending)
"""

import asyncio
import logging
import uuid

from cryptography.fernet import InvalidToken

from app.core.exceptions import (
    DoubtNotFoundError,
    DuplicateJobError,
    GenerationCancelledError,
    JobNotFoundError,
    PermissionDeniedError,
    ProviderError,
)
from app.core.notifications import NotificationSink
from app.core.security import CurrentUser, decrypt_value, encrypt_value
from app.background.writeback_tasks import HUMAN_CONFIDENCE, WritebackJob, WritebackQueue
from app.features.doubts.generator import AnswerGenerator, GeneratedAnswer
from app.features.doubts.grounding import GroundingBuilder
from app.features.doubts.jobs import JobRegistry
from app.features.doubts.lifecycle import DoubtStatus, status_for_confidence, transition
from app.features.doubts.memory import SemanticMemory
from app.features.doubts.repository import (
    ContentRepository,
    DoubtRepository,
    UserRepository,
    utc_now_iso,
)
from app.features.doubts.schemas import (
    AnswerRequest,
    AskRequest,
    AskResponse,
    AskResult,
    DoubtRecord,
    FeedbackRequest,
    GroundingContext,
    MemoryMatch,
)
from app.features.doubts.videos import VideoSearchClient, replace_video_placeholders

logger = logging.getLogger(__name__)


class DoubtService:
    """Owns the doubt lifecycle. Collaborators are injected at app startup."""

    def __init__(
        self,
        doubts: DoubtRepository,
        contents: ContentRepository,
        users: UserRepository,
        grounding: GroundingBuilder,
        memory: SemanticMemory,
        generator: AnswerGenerator,
        videos: VideoSearchClient | None,
        writeback: WritebackQueue,
        notifier: NotificationSink,
        jobs: JobRegistry,
        resolve_threshold: float = 80,
        cache_hit_threshold: float = 85,
    ):
        self.doubts = doubts
        self.contents = contents
        self.users = users
        self.grounding = grounding
        self.memory = memory
        self.generator = generator
        self.videos = videos
        self.writeback = writeback
        self.notifier = notifier
        self.jobs = jobs
        self.resolve_threshold = resolve_threshold
        self.cache_hit_threshold = cache_hit_threshold

    # ── Ask ──────────────────────────────────────────────

    async def ask(self, user: CurrentUser, data: AskRequest) -> AskResponse:
        """Resolve a doubt from memory, or generate, score and persist a new answer.

        Raises:
            ProviderError: NO_API_KEY / INVALID_API_KEY / API_LIMIT_REACHED / AI_UNAVAILABLE.
            GenerationCancelledError: If the learner stopped the generation.
        """
        content = None
        if data.content_id:
            content = await asyncio.to_thread(self.contents.get_content, data.content_id)

        grounding = await self.grounding.build(
            query=data.query,
            selected_text=data.selected_text,
            context=data.context,
            visual_context=data.visual_context,
            content=content,
        )

        base_row = {
            "student_id": user.id,
            "course_id": data.course_id,
            "content_id": data.content_id,
            "query": data.query,
            "selected_text": grounding.selected_text,
            "context": grounding.model_dump_json(),
            "visual_context": data.visual_context.model_dump() if data.visual_context else None,
        }

        match = await self.memory.lookup(
            data.query, grounding.lookup_context, data.course_id, data.content_id
        )
        if match is not None and self._is_cache_hit(match):
            return await self._answer_from_memory(base_row, match)

        return await self._answer_with_model(user, data, grounding, content, base_row)

    def _is_cache_hit(self, match: MemoryMatch) -> bool:
        # Exact-key entries are only stored at writeback confidence, similarity hits must clear the bar.
        if match.similarity is None:
            return True
        return match.confidence >= self.cache_hit_threshold

    async def _answer_from_memory(self, base_row: dict, match: MemoryMatch) -> AskResponse:
        status = status_for_confidence(match.confidence, self.resolve_threshold)
        row = await asyncio.to_thread(
            self.doubts.create,
            {
                **base_row,
                "ai_response": match.answer,
                "confidence": match.confidence,
                "status": status.value,
                "source": "KNOWLEDGE_GRAPH",
                "is_from_cache": True,
            },
        )
        logger.info(f"✅ Doubt {row['id']} answered from semantic memory ({match.source}, {match.confidence}%)")

        return AskResponse(
            message="Answer retrieved from Knowledge Graph",
            data=AskResult(
                doubt=DoubtRecord.model_validate(row),
                is_from_cache=True,
                is_saved=True,
                source="KNOWLEDGE_GRAPH",
                confidence=match.confidence,
            ),
        )

    async def _answer_with_model(
        self,
        user: CurrentUser,
        data: AskRequest,
        grounding: GroundingContext,
        content,
        base_row: dict,
    ) -> AskResponse:
        job_id = data.job_id or str(uuid.uuid4())
        if self.jobs.is_running(job_id, owner=user.id):
            raise DuplicateJobError(job_id)

        row = await asyncio.to_thread(
            self.doubts.create,
            {
                **base_row,
                "status": DoubtStatus.PROCESSING.value,
                "source": "AI_API",
                "job_id": job_id,
            },
        )
        doubt_id = row["id"]

        api_key = data.user_api_key or await self._stored_api_key(user.id)

        try:
            answer: GeneratedAnswer = await self.jobs.run(
                job_id,
                self.generator.generate(
                    query=data.query,
                    grounding=grounding,
                    selected_text=data.selected_text,
                    visual_context=data.visual_context,
                    content=content,
                    language=data.language,
                    user_name=user.name,
                    api_key=api_key,
                ),
                owner=user.id,
            )
        except asyncio.CancelledError:
            if self.jobs.consume_cancellation(job_id, owner=user.id):
                await self._set_status(doubt_id, DoubtStatus.CANCELLED)
                raise GenerationCancelledError(doubt_id)
            # Client disconnected mid-generation.
            await self._set_status(doubt_id, DoubtStatus.FAILED)
            raise
        except (ProviderError, DuplicateJobError) as e:
            logger.warning(f"⚠️ Generation failed for doubt {doubt_id}: {e.error_code}")
            await self._set_status(doubt_id, DoubtStatus.FAILED)
            raise

        explanation = answer.explanation
        suggested_video = None
        if not answer.is_conversational and self.videos is not None:
            suggested_video = await self.videos.suggest(
                data.query, explanation, data.selected_text, answer.language
            )
        if suggested_video is None:
            explanation = replace_video_placeholders(explanation)

        is_saved = False
        if not answer.is_conversational:
            is_saved = self.writeback.enqueue(
                WritebackJob(
                    query=data.query,
                    answer=explanation,
                    confidence=answer.confidence,
                    course_id=data.course_id,
                    content_id=data.content_id,
                    context=grounding.lookup_context,
                )
            )

        status = transition(
            DoubtStatus.PROCESSING,
            status_for_confidence(answer.confidence, self.resolve_threshold),
        )
        updated = await asyncio.to_thread(
            self.doubts.update,
            doubt_id,
            {
                "status": status.value,
                "ai_response": explanation,
                "confidence": answer.confidence,
                "confidence_breakdown": answer.breakdown.model_dump() if answer.breakdown else None,
                "suggested_video": suggested_video.model_dump() if suggested_video else None,
                "is_conversational": answer.is_conversational,
            },
        )
        logger.info(f"✅ Doubt {doubt_id} answered by model ({answer.source}, {answer.confidence}%, {status.value})")

        message = (
            "AI Mentor resolved your doubt!"
            if status == DoubtStatus.RESOLVED
            else "AI provided a tentative answer, but confidence is low."
        )
        return AskResponse(
            message=message,
            data=AskResult(
                doubt=DoubtRecord.model_validate(updated or row),
                is_from_cache=False,
                is_saved=is_saved,
                is_conversational=answer.is_conversational,
                source="AI_API",
                confidence=answer.confidence,
            ),
        )

    async def _stored_api_key(self, user_id: str) -> str | None:
        encrypted = await asyncio.to_thread(self.users.get_encrypted_api_key, user_id)
        if not encrypted:
            return None
        try:
            return decrypt_value(encrypted)
        except InvalidToken:
            logger.warning(f"⚠️ Stored model key for user {user_id} could not be decrypted, ignoring it")
            return None

    async def _set_status(self, doubt_id: str, status: DoubtStatus) -> None:
        await asyncio.to_thread(self.doubts.update, doubt_id, {"status": status.value})

    # ── Cancel ───────────────────────────────────────────

    def cancel_job(self, user: CurrentUser, job_id: str) -> None:
        """Stop an in-flight generation started by this user.

        Raises:
            JobNotFoundError: If no generation with this id is running for the user.
        """
        if not self.jobs.cancel(job_id, owner=user.id):
            raise JobNotFoundError(job_id)

    # ── Escalate / answer / feedback ─────────────────────

    async def escalate(self, user: CurrentUser, doubt_id: str) -> DoubtRecord:
        doubt = await self._get_owned(user, doubt_id)
        status = transition(doubt["status"], DoubtStatus.ESCALATED)

        updated = await asyncio.to_thread(
            self.doubts.update, doubt_id, {"status": status.value, "escalated": True}
        )

        course = await asyncio.to_thread(self.contents.get_course, doubt["course_id"])
        faculty_ids = (course or {}).get("faculty_ids") or []
        if faculty_ids:
            await self.notifier.notify_many(
                faculty_ids,
                "doubt_escalated",
                {
                    "doubtId": doubt_id,
                    "courseId": doubt["course_id"],
                    "studentName": user.name,
                    "query": doubt["query"],
                },
            )
        else:
            logger.warning(f"⚠️ Doubt {doubt_id} escalated but course {doubt['course_id']} has no instructors")

        logger.info(f"Doubt {doubt_id} escalated to {len(faculty_ids)} instructor(s)")
        return DoubtRecord.model_validate(updated or doubt)

    async def answer(self, user: CurrentUser, doubt_id: str, data: AnswerRequest) -> DoubtRecord:
        """Instructor answer. Optionally becomes the verified memory entry for the question."""
        if not user.is_faculty:
            raise PermissionDeniedError("Only faculty can answer doubts")

        doubt = await self._get(doubt_id)
        status = transition(doubt["status"], DoubtStatus.ANSWERED)

        updated = await asyncio.to_thread(
            self.doubts.update,
            doubt_id,
            {
                "status": status.value,
                "faculty_answer": data.answer,
                "answered_by": user.id,
                "resolved_at": utc_now_iso(),
            },
        )

        if data.save_to_graph:
            self.writeback.enqueue(
                WritebackJob(
                    query=doubt["query"],
                    answer=data.answer,
                    confidence=HUMAN_CONFIDENCE,
                    course_id=doubt.get("course_id"),
                    content_id=doubt.get("content_id"),
                    context=_lookup_context_of(doubt),
                    is_human=True,
                )
            )

        await self.notifier.notify(
            doubt["student_id"],
            "doubt_answered",
            {"doubtId": doubt_id, "answeredBy": user.name, "query": doubt["query"]},
        )
        return DoubtRecord.model_validate(updated or doubt)

    async def feedback(self, user: CurrentUser, doubt_id: str, data: FeedbackRequest) -> DoubtRecord:
        doubt = await self._get_owned(user, doubt_id)
        changes: dict = {"feedback": {"helpful": data.helpful, "rating": data.rating}}

        if (
            data.helpful
            and doubt["status"] == DoubtStatus.ANSWERED.value
            and doubt.get("resolved_at")
        ):
            changes["status"] = transition(doubt["status"], DoubtStatus.RESOLVED).value

        updated = await asyncio.to_thread(self.doubts.update, doubt_id, changes)
        return DoubtRecord.model_validate(updated or doubt)

    # ── Reads ────────────────────────────────────────────

    async def get_doubt(self, user: CurrentUser, doubt_id: str) -> DoubtRecord:
        doubt = await self._get(doubt_id)
        if doubt["student_id"] != user.id and not user.is_faculty:
            raise PermissionDeniedError()
        return DoubtRecord.model_validate(doubt)

    async def list_my_doubts(self, user: CurrentUser) -> list[DoubtRecord]:
        rows = await asyncio.to_thread(self.doubts.list_for_student, user.id)
        return [DoubtRecord.model_validate(r) for r in rows]

    async def list_escalated(self, user: CurrentUser, course_id: str) -> list[DoubtRecord]:
        if not user.is_faculty:
            raise PermissionDeniedError("Only faculty can view escalated doubts")
        rows = await asyncio.to_thread(self.doubts.list_escalated, course_id)
        return [DoubtRecord.model_validate(r) for r in rows]

    async def set_api_key(self, user: CurrentUser, api_key: str) -> None:
        await asyncio.to_thread(self.users.set_encrypted_api_key, user.id, encrypt_value(api_key))
        logger.info(f"🔑 Stored model key for user {user.id}")

    async def _get(self, doubt_id: str) -> dict:
        doubt = await asyncio.to_thread(self.doubts.get, doubt_id)
        if doubt is None:
            raise DoubtNotFoundError(doubt_id)
        return doubt

    async def _get_owned(self, user: CurrentUser, doubt_id: str) -> dict:
        doubt = await self._get(doubt_id)
        if doubt["student_id"] != user.id:
            raise PermissionDeniedError("Only the learner who asked can do this")
        return doubt


def _lookup_context_of(doubt: dict) -> str:
    """The exact-key context the doubt was asked with, from its stored snapshot."""
    snapshot = doubt.get("context")
    if snapshot:
        try:
            return GroundingContext.model_validate_json(snapshot).lookup_context
        except ValueError:
            logger.warning(f"⚠️ Doubt {doubt.get('id')} has an unreadable context snapshot")
    return doubt.get("selected_text") or ""
