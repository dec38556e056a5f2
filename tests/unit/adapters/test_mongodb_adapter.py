import os
import uuid

import mongomock
import pytest
from pymongo import ASCENDING, DESCENDING, MongoClient

from starknet_agent.adapters.mongodb_adapter import MongoDBAdapter


@pytest.fixture
def mongo_client():
    """Fixture for MongoDB client (mock or real based on env var)."""
    if os.environ.get("MONGODB_REAL") == "1":
        # Use real MongoDB for integration tests
        client = MongoClient("mongodb://localhost:27017/")
        yield client
        client.drop_database("test_db")
    else:
        yield mongomock.MongoClient()


@pytest.fixture
def mongodb_adapter(mongo_client):
    """Fixture for MongoDB adapter."""
    adapter = MongoDBAdapter(
        connection_string="mongodb://localhost:27017/", database_name="test_db"
    )
    # Replace the real client with our fixture
    adapter.client = mongo_client
    adapter.db = mongo_client["test_db"]
    return adapter


@pytest.fixture
def chunks():
    return [
        {"id": "doc-0", "agent_id": "a1", "chunk_index": 0, "content": "alpha"},
        {"id": "doc-1", "agent_id": "a1", "chunk_index": 1, "content": "beta"},
        {"id": "doc-2", "agent_id": "a1", "chunk_index": 2, "content": "gamma"},
        {"id": "other-0", "agent_id": "a2", "chunk_index": 0, "content": "delta"},
    ]


class TestMongoDBAdapter:
    """Test suite for MongoDB adapter."""

    @pytest.mark.parametrize(
        "connection_string,database", [("", "db"), ("mongodb://localhost", "")]
    )
    def test_init_requires_settings(self, connection_string, database):
        with pytest.raises(ValueError):
            MongoDBAdapter(connection_string=connection_string, database_name=database)

    def test_create_collection(self, mongodb_adapter):
        mongodb_adapter.create_collection("document_vectors")
        assert mongodb_adapter.collection_exists("document_vectors") is True
        assert mongodb_adapter.collection_exists("jobs") is False

    def test_create_collection_twice(self, mongodb_adapter):
        mongodb_adapter.create_collection("jobs")
        mongodb_adapter.create_collection("jobs")
        assert mongodb_adapter.db.list_collection_names().count("jobs") == 1

    def test_insert_one_generates_uuid(self, mongodb_adapter):
        result_id = mongodb_adapter.insert_one("jobs", {"status": "pending"})
        uuid.UUID(result_id)
        assert mongodb_adapter.find_one("jobs", {"_id": result_id})["status"] == "pending"

    def test_insert_one_keeps_id(self, mongodb_adapter):
        assert mongodb_adapter.insert_one("jobs", {"_id": "job-1"}) == "job-1"

    def test_insert_many(self, mongodb_adapter, chunks):
        ids = mongodb_adapter.insert_many("document_vectors", chunks)
        assert len(ids) == len(chunks)
        assert mongodb_adapter.count_documents("document_vectors", {}) == 4

    def test_insert_many_empty(self, mongodb_adapter):
        assert mongodb_adapter.insert_many("document_vectors", []) == []

    def test_find_with_sort_limit_skip(self, mongodb_adapter, chunks):
        mongodb_adapter.insert_many("document_vectors", chunks)

        results = mongodb_adapter.find(
            "document_vectors", {"agent_id": "a1"}, sort=[("chunk_index", DESCENDING)]
        )
        assert [r["chunk_index"] for r in results] == [2, 1, 0]

        results = mongodb_adapter.find(
            "document_vectors",
            {"agent_id": "a1"},
            sort=[("chunk_index", ASCENDING)],
            skip=1,
            limit=1,
        )
        assert [r["id"] for r in results] == ["doc-1"]

    def test_update_one(self, mongodb_adapter, chunks):
        mongodb_adapter.insert_many("document_vectors", chunks)
        assert mongodb_adapter.update_one(
            "document_vectors", {"id": "doc-0"}, {"$set": {"content": "changed"}}
        ) is True
        assert mongodb_adapter.find_one("document_vectors", {"id": "doc-0"})["content"] == "changed"
        assert mongodb_adapter.update_one(
            "document_vectors", {"id": "missing"}, {"$set": {"content": "x"}}
        ) is False

    def test_update_one_with_upsert(self, mongodb_adapter):
        assert mongodb_adapter.update_one(
            "document_vectors", {"id": "new"}, {"$set": {"content": "x"}}, upsert=True
        ) is True
        assert mongodb_adapter.find_one("document_vectors", {"id": "new"}) is not None

    def test_delete_one(self, mongodb_adapter, chunks):
        mongodb_adapter.insert_many("document_vectors", chunks)
        assert mongodb_adapter.delete_one("document_vectors", {"id": "doc-0"}) is True
        assert mongodb_adapter.delete_one("document_vectors", {"id": "doc-0"}) is False

    def test_delete_all_returns_count(self, mongodb_adapter, chunks):
        mongodb_adapter.insert_many("document_vectors", chunks)
        assert mongodb_adapter.delete_all("document_vectors", {"agent_id": "a1"}) == 3
        assert mongodb_adapter.delete_all("document_vectors", {"agent_id": "a1"}) == 0
        assert mongodb_adapter.count_documents("document_vectors", {}) == 1

    def test_aggregate(self, mongodb_adapter, chunks):
        mongodb_adapter.insert_many("document_vectors", chunks)
        results = mongodb_adapter.aggregate(
            "document_vectors",
            [{"$group": {"_id": "$agent_id", "count": {"$sum": 1}}}],
        )
        assert {r["_id"]: r["count"] for r in results} == {"a1": 3, "a2": 1}

    def test_create_unique_index(self, mongodb_adapter):
        mongodb_adapter.create_index("document_vectors", [("id", ASCENDING)], unique=True)
        indexes = mongodb_adapter.db["document_vectors"].index_information()
        id_index = next(
            info for name, info in indexes.items()
            if name != "_id_" and "id" in dict(info["key"])
        )
        assert id_index["unique"] is True
