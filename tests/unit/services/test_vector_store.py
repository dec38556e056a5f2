import mongomock
import pytest
from unittest.mock import AsyncMock, MagicMock

from starknet_agent.adapters.mongodb_adapter import MongoDBAdapter
from starknet_agent.domains.ingestion import VectorStoreEntry
from starknet_agent.services.vector_store import UPSERT_BATCH_SIZE, VectorStoreService


@pytest.fixture
def mongodb_adapter():
    adapter = MongoDBAdapter(
        connection_string="mongodb://localhost:27017/", database_name="test_db"
    )
    adapter.client = mongomock.MongoClient()
    adapter.db = adapter.client["test_db"]
    return adapter


@pytest.fixture
def vector_provider():
    provider = MagicMock()
    provider.upsert = AsyncMock()
    provider.query = AsyncMock(return_value=[])
    provider.delete = AsyncMock()
    return provider


@pytest.fixture
def store(vector_provider, mongodb_adapter):
    return VectorStoreService(vector_provider, mongodb_adapter)


def entry(document_id, index, content, name="notes.txt"):
    return VectorStoreEntry(
        id=f"{document_id}-{index}",
        vector=[0.1, 0.2],
        content=content,
        metadata={
            "document_id": document_id,
            "chunk_index": index,
            "original_name": name,
            "mime_type": "text/plain",
        },
    )


def test_collection_created(store, mongodb_adapter):
    assert mongodb_adapter.collection_exists("document_vectors")


@pytest.mark.asyncio
async def test_upsert_writes_both_stores(store, vector_provider, mongodb_adapter):
    await store.upsert("agent-1", [entry("doc", 0, "hello"), entry("doc", 1, "world")], "u1")

    vector_provider.upsert.assert_awaited_once()
    vectors = vector_provider.upsert.call_args.args[0]
    assert vector_provider.upsert.call_args.kwargs["namespace"] == "agent-1"
    assert vectors[0] == {
        "id": "doc-0",
        "values": [0.1, 0.2],
        "metadata": {"document_id": "doc", "chunk_index": 0, "user_id": "u1"},
    }
    stored = mongodb_adapter.find_one("document_vectors", {"id": "doc-1"})
    assert stored["content"] == "world"
    assert stored["agent_id"] == "agent-1"
    assert stored["created_at"] is not None


@pytest.mark.asyncio
async def test_upsert_is_idempotent(store, mongodb_adapter):
    await store.upsert("agent-1", [entry("doc", 0, "first")], "u1")
    await store.upsert("agent-1", [entry("doc", 0, "second")], "u1")
    docs = mongodb_adapter.find("document_vectors", {"id": "doc-0"})
    assert len(docs) == 1
    assert docs[0]["content"] == "second"


@pytest.mark.asyncio
async def test_upsert_batches(store, vector_provider):
    entries = [entry("doc", i, "x") for i in range(UPSERT_BATCH_SIZE + 5)]
    await store.upsert("agent-1", entries, "u1")
    sizes = [len(call.args[0]) for call in vector_provider.upsert.await_args_list]
    assert sizes == [UPSERT_BATCH_SIZE, 5]


@pytest.mark.asyncio
async def test_upsert_empty(store, vector_provider):
    await store.upsert("agent-1", [], "u1")
    vector_provider.upsert.assert_not_called()


@pytest.mark.asyncio
async def test_search_joins_content(store, vector_provider):
    await store.upsert("agent-1", [entry("doc", 0, "hello"), entry("doc", 1, "world")], "u1")
    vector_provider.query.return_value = [
        {"id": "doc-1", "score": 0.9},
        {"id": "ghost-0", "score": 0.8},
        {"id": "doc-0", "score": 0.5},
    ]

    results = await store.search("agent-1", [0.1, 0.2], limit=3)

    assert [r.id for r in results] == ["doc-1", "doc-0"]
    assert results[0].content == "world"
    assert results[0].score == 0.9
    assert results[0].metadata["original_name"] == "notes.txt"
    assert vector_provider.query.call_args.kwargs["namespace"] == "agent-1"
    assert vector_provider.query.call_args.kwargs["top_k"] == 3


@pytest.mark.asyncio
async def test_search_no_matches(store):
    assert await store.search("agent-1", [0.1]) == []


@pytest.mark.asyncio
async def test_list_and_get_documents(store):
    await store.upsert(
        "agent-1",
        [entry("a", 0, "12345"), entry("a", 1, "678"), entry("b", 0, "xy", name="b.md")],
        "u1",
    )
    await store.upsert("agent-1", [entry("c", 0, "other user")], "u2")

    listed = store.list_documents("agent-1", "u1")
    assert [(d["document_id"], d["size"]) for d in listed] == [("a", 8), ("b", 2)]

    chunks = store.get_document("agent-1", "a", "u1")
    assert [c["chunk_index"] for c in chunks] == [0, 1]
    assert store.get_document("agent-1", "a", "u2") == []


@pytest.mark.asyncio
async def test_delete_document(store, vector_provider, mongodb_adapter):
    await store.upsert("agent-1", [entry("a", 0, "one"), entry("a", 1, "two")], "u1")

    assert await store.delete_document("agent-1", "a", "u1") == 2
    vector_provider.delete.assert_awaited_once_with(["a-0", "a-1"], namespace="agent-1")
    assert mongodb_adapter.count_documents("document_vectors", {}) == 0


@pytest.mark.asyncio
async def test_delete_missing_document(store, vector_provider):
    assert await store.delete_document("agent-1", "nope", "u1") == 0
    vector_provider.delete.assert_not_called()


@pytest.mark.asyncio
async def test_total_sizes(store):
    await store.upsert("agent-1", [entry("a", 0, "1234")], "u1")
    await store.upsert("agent-2", [entry("b", 0, "12")], "u1")
    await store.upsert("agent-3", [entry("c", 0, "1")], "u2")

    assert store.total_size_for_agent("agent-1") == 4
    assert store.total_size_for_user("u1") == 6
    assert store.total_size_for_user() == 7
