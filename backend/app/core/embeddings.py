"""
Embedding provider: wraps the configured LangChain embedding model.
"""

import asyncio
import logging

from app.core.llm_provider import create_embeddings

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when the embedding provider fails or times out."""


class EmbeddingProvider:
    """Text → fixed-length vector, with a per-call timeout."""

    def __init__(self, model=None, dimensions: int = 768, timeout: float = 15):
        self._model = model
        self.dimensions = dimensions
        self.timeout = timeout

    @property
    def model(self):
        # Lazy so that startup does not fail when the key is missing.
        if self._model is None:
            self._model = create_embeddings()
        return self._model

    async def embed(self, text: str) -> list[float]:
        """Generate embedding vector for a single text string.

        Raises:
            EmbeddingError: On provider failure or timeout.
        """
        try:
            vector = await asyncio.wait_for(
                self.model.aembed_query(text), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding timed out after {self.timeout}s") from e
        except Exception as e:
            raise EmbeddingError(str(e)) from e

        if not vector:
            raise EmbeddingError("Embedding provider returned an empty vector")
        # Truncate to the index dimensionality (e.g. 768)
        return list(vector[: self.dimensions])
