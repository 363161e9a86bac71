"""Pytest configuration and shared fixtures."""

import os
from types import SimpleNamespace

import pytest

# Settings are read when app modules are imported, so this must run at collection time.
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("ENCRYPTION_SECRET_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")
os.environ.setdefault("LLM_API_KEY", "")

from app.background.writeback_tasks import MemoryWriter, WritebackQueue  # noqa: E402
from app.core.security import CurrentUser  # noqa: E402
from app.features.doubts.generator import AnswerGenerator  # noqa: E402
from app.features.doubts.grounding import GroundingBuilder  # noqa: E402
from app.features.doubts.jobs import JobRegistry  # noqa: E402
from app.features.doubts.memory import SemanticMemory  # noqa: E402
from app.features.doubts.service import DoubtService  # noqa: E402
from fakes import (  # noqa: E402
    FakeChatModel,
    FakeConceptStore,
    FakeContentRepository,
    FakeDoubtRepository,
    FakeEmbeddings,
    FakeExactStore,
    FakeNotifier,
    FakeUserRepository,
    FakeVectorIndex,
    FakeVideos,
)


# ── Fixtures ─────────────────────────────────────────────

@pytest.fixture
def student():
    return CurrentUser(id="student-1", role="student", name="Asha")


@pytest.fixture
def faculty():
    return CurrentUser(id="fac-1", role="faculty", name="Dr. Rao")


@pytest.fixture
def chat_model():
    return FakeChatModel(content="### Answer\nA short answer.")


@pytest.fixture
def stores():
    return SimpleNamespace(
        doubts=FakeDoubtRepository(),
        contents=FakeContentRepository(),
        users=FakeUserRepository(),
        embeddings=FakeEmbeddings(),
        index=FakeVectorIndex(),
        exact=FakeExactStore(),
        concepts=FakeConceptStore(),
        notifier=FakeNotifier(),
        videos=FakeVideos(),
        llm_calls=[],
    )


@pytest.fixture
def make_service(stores, chat_model):
    """Build a DoubtService over the fakes. Keyword overrides go to the generator."""

    def _make(server_api_key: str = "server-key", **generator_kwargs) -> DoubtService:
        def factory(api_key, model):
            stores.llm_calls.append((api_key, model))
            return chat_model

        writer = MemoryWriter(stores.embeddings, stores.index, stores.exact, stores.concepts)
        generator = AnswerGenerator(
            llm_factory=factory,
            server_api_key=server_api_key,
            **generator_kwargs,
        )
        return DoubtService(
            doubts=stores.doubts,
            contents=stores.contents,
            users=stores.users,
            grounding=GroundingBuilder(related_concepts=stores.contents.get_related_concepts),
            memory=SemanticMemory(stores.embeddings, stores.index, stores.exact),
            generator=generator,
            videos=stores.videos,
            writeback=WritebackQueue(writer),
            notifier=stores.notifier,
            jobs=JobRegistry(),
        )

    return _make
