import pytest
from unittest.mock import AsyncMock, MagicMock

from starknet_agent.domains.ingestion import SearchResult
from starknet_agent.plugins.rag import RAG_PLUGIN_NAME, RagPlugin
from starknet_agent.plugins.registry import ToolRegistry


@pytest.fixture
def embeddings():
    service = MagicMock()
    service.embed_query = AsyncMock(return_value=[0.1, 0.2])
    return service


@pytest.fixture
def vector_store():
    store = MagicMock()
    store.search = AsyncMock(
        return_value=[
            SearchResult(
                id="doc-0",
                document_id="doc",
                chunk_index=0,
                content="Vesu is a lending protocol.",
                score=0.87,
                metadata={"original_name": "vesu.md"},
            )
        ]
    )
    return store


@pytest.fixture
def agent():
    agent = MagicMock()
    agent.get_agent_id.return_value = "agent-1"
    return agent


def test_plugin_identity(embeddings, vector_store):
    plugin = RagPlugin(embeddings, vector_store)
    assert plugin.name == RAG_PLUGIN_NAME
    assert plugin.description


def test_initialize_registers_tool(embeddings, vector_store):
    registry = ToolRegistry()
    assert RagPlugin(embeddings, vector_store).initialize(registry) is True
    tool = registry.get_tool("retrieve_documents")
    assert tool.plugin == "rag"
    assert "query" in tool.get_schema()["required"]


@pytest.mark.asyncio
async def test_retrieve_documents(embeddings, vector_store, agent):
    registry = ToolRegistry()
    RagPlugin(embeddings, vector_store).initialize(registry)
    registry.bind_agent(agent)

    result = await registry.get_tool("retrieve_documents").execute(query="lending", limit=2)

    embeddings.embed_query.assert_awaited_once_with("lending")
    vector_store.search.assert_awaited_once_with("agent-1", [0.1, 0.2], limit=2)
    assert result == {
        "status": "success",
        "documents": [
            {
                "document_id": "doc",
                "chunk_index": 0,
                "content": "Vesu is a lending protocol.",
                "score": 0.87,
                "original_name": "vesu.md",
            }
        ],
    }


@pytest.mark.asyncio
async def test_retrieve_documents_validates_limit(embeddings, vector_store, agent):
    registry = ToolRegistry()
    RagPlugin(embeddings, vector_store).initialize(registry)
    registry.bind_agent(agent)

    result = await registry.get_tool("retrieve_documents").execute(query="x", limit=50)

    assert result["status"] == "failure"
    vector_store.search.assert_not_called()
