"""
Eta Doubt Engine - FastAPI Application Entry Point.

Feature-based modular architecture:
  Each feature in app/features/ has its own router, service and schemas.
  Long-lived clients are created in the lifespan and kept on app.state.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.background.scheduler import init_scheduler, shutdown_scheduler
from app.background.writeback_tasks import MemoryWriter, WritebackQueue
from app.config import Settings, get_settings
from app.core.database import create_supabase_client
from app.core.embeddings import EmbeddingProvider
from app.core.exceptions import AppBaseError, app_error_handler
from app.core.notifications import NotificationSink
from app.core.rate_limit import GuestQuota
from app.features.doubts.generator import AnswerGenerator
from app.features.doubts.grounding import GroundingBuilder
from app.features.doubts.guest import GuestDoubtService, MediaExtractionClient
from app.features.doubts.jobs import JobRegistry
from app.features.doubts.memory import (
    ConceptStore,
    ExactKeyStore,
    SemanticMemory,
    SupabaseVectorIndex,
)
from app.features.doubts.repository import ContentRepository, DoubtRepository, UserRepository
from app.features.doubts.service import DoubtService
from app.features.doubts.videos import VideoSearchClient

# ── Feature Routers ──────────────────────────────────────
from app.features.doubts.router import router as doubts_router

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_state(app: FastAPI, settings: Settings, db, http: httpx.AsyncClient) -> None:
    """Wire repositories, collaborators and services onto app.state."""
    doubts = DoubtRepository(db)
    contents = ContentRepository(db)
    users = UserRepository(db)

    embeddings = EmbeddingProvider(
        dimensions=settings.EMBEDDING_DIMENSIONS,
        timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
    )
    index = SupabaseVectorIndex(db)
    exact_store = ExactKeyStore(db, min_confidence=settings.WRITEBACK_THRESHOLD)

    writeback = WritebackQueue(
        MemoryWriter(
            embeddings,
            index,
            exact_store,
            ConceptStore(db),
            threshold=settings.WRITEBACK_THRESHOLD,
            store_timeout=settings.WRITEBACK_STORE_TIMEOUT_SECONDS,
        ),
        failure_log_size=settings.WRITEBACK_FAILURE_LOG_SIZE,
        drain_timeout=settings.WRITEBACK_DRAIN_TIMEOUT_SECONDS,
    )
    jobs = JobRegistry()

    app.state.db = db
    app.state.http = http
    app.state.doubt_repository = doubts
    app.state.writeback = writeback
    app.state.jobs = jobs
    app.state.guest_quota = GuestQuota(
        limit=settings.GUEST_DAILY_QUOTA,
        window_seconds=settings.GUEST_QUOTA_WINDOW_SECONDS,
        maxsize=settings.GUEST_QUOTA_MAX_TRACKED,
    )
    app.state.doubt_service = DoubtService(
        doubts=doubts,
        contents=contents,
        users=users,
        grounding=GroundingBuilder(
            related_concepts=contents.get_related_concepts,
            words_per_second=settings.GROUNDING_WORDS_PER_SECOND,
            half_window_seconds=settings.GROUNDING_HALF_WINDOW_SECONDS,
            region_fallback_chars=settings.GROUNDING_REGION_FALLBACK_CHARS,
            general_sample_chars=settings.GROUNDING_GENERAL_SAMPLE_CHARS,
            graph_timeout=settings.GRAPH_TIMEOUT_SECONDS,
        ),
        memory=SemanticMemory(
            embeddings,
            index,
            exact_store,
            strictness=settings.MEMORY_STRICTNESS,
            top_k=settings.MEMORY_TOP_K,
            search_timeout=settings.VECTOR_SEARCH_TIMEOUT_SECONDS,
        ),
        generator=AnswerGenerator(
            http=http,
            server_api_key=settings.LLM_API_KEY,
            text_model=settings.LLM_MODEL,
            vision_model=settings.LLM_VISION_MODEL,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            image_timeout=settings.IMAGE_FETCH_TIMEOUT_SECONDS,
            base_confidence=settings.LLM_BASE_CONFIDENCE,
        ),
        videos=VideoSearchClient(
            http, settings.ML_SERVICE_URL, timeout=settings.VIDEO_SEARCH_TIMEOUT_SECONDS
        ),
        writeback=writeback,
        notifier=NotificationSink(
            db,
            http=http,
            webhook_url=settings.NOTIFY_WEBHOOK_URL,
            timeout=settings.NOTIFY_TIMEOUT_SECONDS,
        ),
        jobs=jobs,
        resolve_threshold=settings.RESOLVE_THRESHOLD,
        cache_hit_threshold=settings.CACHE_HIT_THRESHOLD,
    )
    app.state.guest_service = GuestDoubtService(
        contents=contents,
        extraction=MediaExtractionClient(
            http, settings.ML_SERVICE_URL, timeout=settings.EXTRACTION_TIMEOUT_SECONDS
        ),
        server_api_key=settings.LLM_API_KEY,
        model=settings.LLM_MODEL,
        timeout=settings.LLM_TIMEOUT_SECONDS,
        login_url=settings.GUEST_LOGIN_URL,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup & shutdown."""
    settings = get_settings()
    configure_logging(settings.DEBUG)
    logger.info(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} starting...")
    logger.info(f"🤖 LLM Provider: {settings.LLM_PROVIDER} ({settings.LLM_MODEL})")
    logger.info(f"🧠 Memory: {settings.MEMORY_STRICTNESS}, embeddings {settings.EMBEDDING_PROVIDER}")
    logger.info(f"🔗 Supabase: {settings.SUPABASE_URL[:40]}...")

    db = create_supabase_client(settings)
    http = httpx.AsyncClient()
    build_state(app, settings, db, http)

    app.state.writeback.start()
    app.state.scheduler = init_scheduler(
        app.state.doubt_repository, settings.STALE_PROCESSING_MINUTES
    )

    yield

    logger.info("👋 Shutting down...")
    shutdown_scheduler(app.state.scheduler)
    await app.state.writeback.stop()
    if app.state.writeback.failures:
        logger.warning(f"⚠️ {len(app.state.writeback.failures)} writeback job(s) failed this run")
    await http.aclose()


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Doubt resolution engine: semantic memory, AI mentor and faculty escalation",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error envelope ───────────────────────────────────
    app.add_exception_handler(AppBaseError, app_error_handler)

    # ── Register Feature Routers ─────────────────────────
    app.include_router(doubts_router, prefix="/api/doubts", tags=["Doubts"])

    # ── Health Check ─────────────────────────────────────
    @app.get("/health", tags=["System"])
    async def health_check():
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    return app


app = create_app()
