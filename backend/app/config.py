"""
Application configuration using Pydantic Settings.
All config is loaded from environment variables / .env file.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # ── App ──────────────────────────────────────────────
    APP_NAME: str = "eta-doubt-engine"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"  # comma-separated

    # ── Supabase ─────────────────────────────────────────
    SUPABASE_URL: str
    SUPABASE_KEY: str  # anon/public key
    SUPABASE_SERVICE_KEY: str = ""  # service_role key (for admin ops)

    # ── Security ─────────────────────────────────────────
    ENCRYPTION_SECRET_KEY: str  # Fernet key for encrypting learners' own model keys
    JWT_SECRET_KEY: str  # JWT verification key (tokens are issued by the identity service)
    JWT_ALGORITHM: str = "HS256"

    # ── LLM (Provider-Agnostic) ──────────────────────────
    LLM_PROVIDER: str = "groq"  # groq | openai | gemini
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_VISION_MODEL: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    LLM_API_KEY: str = ""  # server key, used when the learner has none
    LLM_TEMPERATURE: float = 0.6
    LLM_MAX_TOKENS: int = 2048
    LLM_TIMEOUT_SECONDS: float = 45
    LLM_BASE_CONFIDENCE: float = 85  # fixed assumption for the default text model

    # ── Embedding ────────────────────────────────────────
    EMBEDDING_PROVIDER: str = "gemini"  # gemini | openai
    EMBEDDING_MODEL: str = "gemini-embedding-001"
    EMBEDDING_API_KEY: str = ""
    EMBEDDING_DIMENSIONS: int = 768
    EMBEDDING_TIMEOUT_SECONDS: float = 15

    # ── Resolution thresholds (0–100) ────────────────────
    RESOLVE_THRESHOLD: int = 80
    WRITEBACK_THRESHOLD: int = 80
    CACHE_HIT_THRESHOLD: int = 85

    # ── Semantic memory ──────────────────────────────────
    MEMORY_STRICTNESS: str = "strict"  # strict (0.85) | lax (0.75)
    MEMORY_TOP_K: int = 5
    VECTOR_SEARCH_TIMEOUT_SECONDS: float = 15

    # ── Grounding ────────────────────────────────────────
    GROUNDING_WORDS_PER_SECOND: float = 2.5
    GROUNDING_HALF_WINDOW_SECONDS: int = 30
    GROUNDING_REGION_FALLBACK_CHARS: int = 3500
    GROUNDING_GENERAL_SAMPLE_CHARS: int = 2000
    GRAPH_TIMEOUT_SECONDS: float = 5

    # ── ML service (video search, media extraction) ──────
    ML_SERVICE_URL: str = "http://localhost:8000"
    VIDEO_SEARCH_TIMEOUT_SECONDS: float = 8
    EXTRACTION_TIMEOUT_SECONDS: float = 600
    IMAGE_FETCH_TIMEOUT_SECONDS: float = 15

    # ── Notifications ────────────────────────────────────
    NOTIFY_WEBHOOK_URL: str = ""  # optional push relay (websocket gateway)
    NOTIFY_TIMEOUT_SECONDS: float = 10

    # ── Guest layer ──────────────────────────────────────
    GUEST_DAILY_QUOTA: int = 3
    GUEST_QUOTA_WINDOW_SECONDS: int = 86400
    GUEST_QUOTA_MAX_TRACKED: int = 100_000  # distinct guests per window before LRU eviction
    GUEST_LOGIN_URL: str = "https://eta-ott.netlify.app/login"

    # ── Background ───────────────────────────────────────
    WRITEBACK_FAILURE_LOG_SIZE: int = 100
    WRITEBACK_STORE_TIMEOUT_SECONDS: float = 15
    WRITEBACK_DRAIN_TIMEOUT_SECONDS: float = 30
    STALE_PROCESSING_MINUTES: int = 15

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance (singleton)."""
    return Settings()
