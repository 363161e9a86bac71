"""
Background writeback: commits validated answers into semantic memory.

Requests only enqueue a WritebackJob; a single worker started in the app
lifespan drains the queue. A failed job is logged and kept in a bounded
failure log, it never reaches the learner's response.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.core.embeddings import EmbeddingProvider
from app.features.doubts.memory import (
    ConceptStore,
    ExactKeyStore,
    SupabaseVectorIndex,
    build_query_key,
)

logger = logging.getLogger(__name__)

WRITEBACK_THRESHOLD = 80
HUMAN_CONFIDENCE = 100


def should_writeback(confidence: float, is_human: bool = False, threshold: float = WRITEBACK_THRESHOLD) -> bool:
    """Human answers always qualify; AI answers only at or above the threshold."""
    if is_human:
        return True
    return confidence >= threshold


def derive_concepts(query: str) -> list[str]:
    """Whitespace tokens longer than 5 chars, first letter capitalised.

    Best-effort tagging, not entity extraction.
    """
    concepts: list[str] = []
    for word in query.split():
        if len(word) > 5:
            name = word[:1].upper() + word[1:]
            if name not in concepts:
                concepts.append(name)
    return concepts


@dataclass
class WritebackJob:
    query: str
    answer: str
    confidence: float
    course_id: str | None = None
    content_id: str | None = None
    context: str = ""
    is_human: bool = False

    @property
    def source_tag(self) -> str:
        return "FACULTY_VERIFIED" if self.is_human else "AI_GENERATED"


@dataclass
class WritebackFailure:
    query: str
    reason: str
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MemoryWriter:
    """Applies one WritebackJob to the memory stores."""

    def __init__(
        self,
        embeddings: EmbeddingProvider,
        index: SupabaseVectorIndex,
        exact_store: ExactKeyStore,
        concept_store: ConceptStore,
        threshold: float = WRITEBACK_THRESHOLD,
        store_timeout: float = 15,
    ):
        self.embeddings = embeddings
        self.index = index
        self.exact_store = exact_store
        self.concept_store = concept_store
        self.threshold = threshold
        self.store_timeout = store_timeout

    async def commit(self, job: WritebackJob) -> bool:
        """Persist the pair. Returns False when skipped or aborted.

        Raises on store errors so the queue can record the failure.
        """
        if not should_writeback(job.confidence, job.is_human, self.threshold):
            return False

        confidence = HUMAN_CONFIDENCE if job.is_human else job.confidence

        try:
            vector = await self.embeddings.embed(job.query)
        except Exception as e:
            logger.warning(f"⚠️ Writeback aborted, could not embed question: {e}")
            return False

        existing = await self._store_call(self.index.get, job.query)
        if (
            existing
            and not job.is_human
            and (existing.get("confidence") or 0) > confidence
        ):
            # Stored confidence never goes down; only human answers overwrite.
            logger.info(f"Writeback skipped, memory already holds a stronger answer for '{job.query[:40]}'")
            return False

        await self._store_call(
            self.index.upsert,
            {
                "question_text": job.query,
                "answer_text": job.answer,
                "embedding": vector,
                "confidence": confidence,
                "course_id": job.course_id,
                "content_id": job.content_id,
                "source_tag": job.source_tag,
            },
        )
        await self._store_call(
            self.exact_store.upsert,
            {
                "query_key": build_query_key(job.query, job.context),
                "query": job.query.strip(),
                "context": job.context.strip(),
                "answer": job.answer,
                "confidence": confidence,
                "content_id": job.content_id,
            },
        )

        try:
            await self._store_call(
                self.concept_store.link, job.query, derive_concepts(job.query), job.course_id
            )
        except Exception as e:
            logger.warning(f"⚠️ Concept tagging failed for '{job.query[:40]}': {e}")

        logger.info(f"✅ Resolution saved to semantic memory (confidence: {confidence}%)")
        return True

    async def _store_call(self, fn, *args):
        """Run a blocking store call off the loop, bounded by ``store_timeout``."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.store_timeout)
        except asyncio.TimeoutError:
            name = getattr(fn, "__qualname__", repr(fn))
            raise TimeoutError(f"{name} timed out after {self.store_timeout}s") from None


class WritebackQueue:
    """Fire-and-forget queue in front of MemoryWriter."""

    def __init__(self, writer: MemoryWriter, failure_log_size: int = 100, drain_timeout: float = 30):
        self.writer = writer
        self.drain_timeout = drain_timeout
        self.failures: deque[WritebackFailure] = deque(maxlen=failure_log_size)
        self._queue: asyncio.Queue[WritebackJob] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="writeback-worker")

    async def stop(self) -> None:
        """Drain pending jobs for up to ``drain_timeout``, then stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Writeback drain timed out, dropping {self.pending} queued job(s)")
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    def enqueue(self, job: WritebackJob) -> bool:
        """Queue a job if it qualifies. Returns True when queued."""
        if not should_writeback(job.confidence, job.is_human, self.writer.threshold):
            return False
        self._queue.put_nowait(job)
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def drain(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.process(job)
            finally:
                self._queue.task_done()

    async def process(self, job: WritebackJob) -> bool:
        try:
            return await self.writer.commit(job)
        except Exception as e:
            logger.error(f"❌ Writeback failed for '{job.query[:40]}': {e}")
            self.failures.append(WritebackFailure(query=job.query, reason=str(e)))
            return False
