"""
Built-in retrieval plugin.

Exposes the documents ingested for an agent through a single tool that
embeds a query and returns the closest chunks from the agent's namespace.
"""
import logging
from typing import Any, Dict

from pydantic import BaseModel, Field

from starknet_agent.interfaces.plugins.plugins import Plugin, ToolRegistry
from starknet_agent.plugins.tools.starknet_tool import StarknetTool, tool_success
from starknet_agent.services.embeddings import EmbeddingsService
from starknet_agent.services.vector_store import VectorStoreService

logger = logging.getLogger(__name__)

RAG_PLUGIN_NAME = "rag"


class RetrieveDocumentsParams(BaseModel):
    query: str = Field(..., min_length=1, description="What to look for in the documents")
    limit: int = Field(4, ge=1, le=20, description="Maximum number of chunks to return")


class RagPlugin(Plugin):
    """Plugin giving an agent access to its ingested documents."""

    def __init__(
        self,
        embeddings_service: EmbeddingsService,
        vector_store: VectorStoreService,
    ):
        self.embeddings = embeddings_service
        self.vector_store = vector_store

    @property
    def name(self) -> str:
        return RAG_PLUGIN_NAME

    @property
    def description(self) -> str:
        return "Retrieves passages from documents uploaded for the agent"

    async def retrieve_documents(
        self, agent: Any, params: RetrieveDocumentsParams
    ) -> Dict[str, Any]:
        agent_id = agent.get_agent_id()
        embedding = await self.embeddings.embed_query(params.query)
        results = await self.vector_store.search(agent_id, embedding, limit=params.limit)
        logger.info(f"Retrieved {len(results)} chunks for agent {agent_id}")
        return tool_success(
            documents=[
                {
                    "document_id": r.document_id,
                    "chunk_index": r.chunk_index,
                    "content": r.content,
                    "score": r.score,
                    "original_name": r.metadata.get("original_name"),
                }
                for r in results
            ]
        )

    def initialize(self, tool_registry: ToolRegistry) -> bool:
        return tool_registry.register_tool(
            StarknetTool(
                name="retrieve_documents",
                plugin=RAG_PLUGIN_NAME,
                description=(
                    "Search the documents uploaded for this agent and return the "
                    "most relevant passages for a query"
                ),
                func=self.retrieve_documents,
                schema=RetrieveDocumentsParams,
            )
        )
