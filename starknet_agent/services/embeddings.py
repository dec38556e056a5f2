"""
Embeddings service.

Turns chunk texts and queries into vectors through the configured LLM
provider, batching document texts.
"""
import logging
from typing import List, Optional

from starknet_agent.interfaces.providers.llm import LLMProvider

logger = logging.getLogger(__name__)


class EmbeddingsService:
    """Service for embedding documents and queries."""

    def __init__(
        self,
        llm_provider: LLMProvider,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        batch_size: int = 100,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be a positive integer")
        self.llm_provider = llm_provider
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Embed texts in batches, returning one vector per text in order."""
        if not texts:
            return []

        embeddings: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            vectors = await self.llm_provider.embed_texts(
                batch, model=self.model, dimensions=self.dimensions
            )
            if len(vectors) != len(batch):
                raise ValueError(
                    f"Embedding provider returned {len(vectors)} vectors for {len(batch)} texts"
                )
            embeddings.extend(vectors)

        logger.debug(f"Embedded {len(embeddings)} document chunks")
        return embeddings

    async def embed_query(self, text: str) -> List[float]:
        return await self.llm_provider.embed_text(
            text, model=self.model, dimensions=self.dimensions
        )
