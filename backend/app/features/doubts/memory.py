"""
Doubts feature: Semantic memory.

Previously validated question/answer pairs, retrievable two ways:
  1. exact key  (normalized query + context) in `doubt_memory` (fast path)
  2. embedding similarity over `qa_memory` (pgvector RPC `match_qa_memory`)

Lookup never raises: any embedding / index failure is a "no match".
"""

import asyncio
import logging

from supabase import Client

from app.core.embeddings import EmbeddingProvider
from app.features.doubts.grounding import strip_ui_placeholders
from app.features.doubts.schemas import MemoryMatch

logger = logging.getLogger(__name__)

SIMILARITY_FLOORS = {"strict": 0.85, "lax": 0.75}


def build_query_key(query: str, context: str | None = None) -> str:
    key = query.lower().strip()
    if context:
        key += "|" + context.lower().strip()
    return key


def choose_search_phrase(query: str, context: str | None = None) -> str:
    """Pick the text to embed.

    Vague or short queries ("explain this") carry little meaning on their
    own, so the grounding context drives the search for them.
    """
    phrase = query
    lowered = query.lower()
    is_analyze_request = "analyze" in lowered or "explain" in lowered
    is_short_query = len(query.split(" ")) < 5

    if (is_analyze_request or is_short_query) and context and len(context) > 5:
        clean_context = strip_ui_placeholders(context)
        phrase = clean_context if len(query) < 10 else f"{query}: {clean_context}"
    elif context and len(context) > 5:
        phrase = f"{query} (context: {context[:150]})"

    return phrase[:500]


def pick_best_match(
    candidates: list[dict], course_id: str | None, floor: float
) -> dict | None:
    """Course affinity outranks raw similarity; similarity breaks ties."""
    survivors = [c for c in candidates if (c.get("similarity") or 0) >= floor]
    if not survivors:
        return None

    def rank(candidate: dict) -> tuple[bool, float]:
        same_course = course_id is not None and str(candidate.get("course_id")) == str(course_id)
        return same_course, candidate["similarity"]

    return max(survivors, key=rank)


# ── Stores ───────────────────────────────────────────────

class SupabaseVectorIndex:
    """Top-k similarity search plus keyed upsert/delete on `qa_memory`."""

    def __init__(self, db: Client, table: str = "qa_memory", rpc: str = "match_qa_memory"):
        self.db = db
        self.table = table
        self.rpc = rpc

    def search(self, vector: list[float], k: int, course_id: str | None = None) -> list[dict]:
        result = self.db.rpc(
            self.rpc,
            {
                "query_embedding": vector,
                "match_count": k,
                "filter_course_id": course_id,
            },
        ).execute()
        return result.data if result.data else []

    def get(self, question_text: str) -> dict | None:
        result = (
            self.db.table(self.table)
            .select("question_text, confidence, source_tag, course_id")
            .eq("question_text", question_text)
            .execute()
        )
        return result.data[0] if result.data else None

    def upsert(self, record: dict) -> None:
        self.db.table(self.table).upsert(record, on_conflict="question_text").execute()

    def delete(self, question_text: str) -> None:
        self.db.table(self.table).delete().eq("question_text", question_text).execute()


class ExactKeyStore:
    """Exact-key answers in `doubt_memory`, optionally tied to a content item."""

    def __init__(self, db: Client, min_confidence: float = 80):
        self.db = db
        self.min_confidence = min_confidence

    def find(self, query_key: str, content_id: str | None = None) -> MemoryMatch | None:
        if content_id:
            result = (
                self.db.table("doubt_memory")
                .select("query, answer, confidence")
                .eq("query_key", query_key)
                .eq("content_id", content_id)
                .gte("confidence", self.min_confidence)
                .limit(1)
                .execute()
            )
            if result.data:
                row = result.data[0]
                return MemoryMatch(
                    question=row["query"],
                    answer=row["answer"],
                    confidence=row["confidence"],
                    source="content_knowledge_base",
                )

        result = (
            self.db.table("doubt_memory")
            .select("query, answer, confidence")
            .eq("query_key", query_key)
            .gte("confidence", self.min_confidence)
            .limit(1)
            .execute()
        )
        if result.data:
            row = result.data[0]
            return MemoryMatch(
                question=row["query"],
                answer=row["answer"],
                confidence=row["confidence"],
                source="graph_db",
            )
        return None

    def upsert(self, entry: dict) -> None:
        self.db.table("doubt_memory").upsert(entry, on_conflict="query_key").execute()


class ConceptStore:
    """question → concept links in `qa_concepts`."""

    def __init__(self, db: Client):
        self.db = db

    def link(self, question_text: str, concepts: list[str], course_id: str | None) -> None:
        if not concepts:
            return
        rows = [
            {"question_text": question_text, "concept_name": name, "course_id": course_id}
            for name in concepts
        ]
        self.db.table("qa_concepts").upsert(
            rows, on_conflict="question_text,concept_name"
        ).execute()


# ── Lookup ───────────────────────────────────────────────

class SemanticMemory:
    """Cache-first lookup over validated answers."""

    def __init__(
        self,
        embeddings: EmbeddingProvider,
        index: SupabaseVectorIndex,
        exact_store: ExactKeyStore,
        strictness: str = "strict",
        top_k: int = 5,
        search_timeout: float = 15,
    ):
        self.embeddings = embeddings
        self.index = index
        self.exact_store = exact_store
        self.floor = SIMILARITY_FLOORS.get(strictness, SIMILARITY_FLOORS["strict"])
        self.top_k = top_k
        self.search_timeout = search_timeout

    async def lookup(
        self,
        query: str,
        context: str | None = None,
        course_id: str | None = None,
        content_id: str | None = None,
    ) -> MemoryMatch | None:
        exact = await self.find_exact(query, context, content_id)
        if exact:
            return exact
        return await self.search_similar(query, context, course_id)

    async def find_exact(
        self, query: str, context: str | None = None, content_id: str | None = None
    ) -> MemoryMatch | None:
        query_key = build_query_key(query, context)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.exact_store.find, query_key, content_id),
                timeout=self.search_timeout,
            )
        except Exception as e:
            logger.warning(f"⚠️ Exact-key memory lookup failed: {e}")
            return None

    async def search_similar(
        self, query: str, context: str | None = None, course_id: str | None = None
    ) -> MemoryMatch | None:
        search_phrase = choose_search_phrase(query, context)

        try:
            vector = await self.embeddings.embed(search_phrase)
        except Exception as e:
            logger.warning(f"⚠️ Embedding service unavailable, skipping memory search: {e}")
            return None

        try:
            candidates = await asyncio.wait_for(
                asyncio.to_thread(self.index.search, vector, self.top_k),
                timeout=self.search_timeout,
            )
        except Exception as e:
            logger.warning(f"⚠️ Vector index search failed: {e}")
            return None

        best = pick_best_match(candidates, course_id, self.floor)
        if best is None:
            return None

        return MemoryMatch(
            question=best["question_text"],
            answer=best["answer_text"],
            confidence=round(best["similarity"] * 100, 2),
            source="KNOWLEDGE_GRAPH",
            course_id=best.get("course_id"),
            similarity=best["similarity"],
        )
