"""
Vector store service.

Chunk vectors live in Pinecone, one namespace per agent. Chunk content and
metadata live in the MongoDB ``document_vectors`` collection, keyed by the
same chunk id, so listings and size accounting never touch Pinecone.
"""
import logging
from datetime import datetime as dt
from datetime import timezone
from typing import Any, Dict, List, Optional

from starknet_agent.adapters.mongodb_adapter import MongoDBAdapter
from starknet_agent.domains.ingestion import SearchResult, VectorStoreEntry
from starknet_agent.interfaces.providers.vector_storage import VectorStorageProvider

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 100


class VectorStoreService:
    """Stores and searches embedded document chunks."""

    def __init__(
        self,
        vector_provider: VectorStorageProvider,
        mongodb_adapter: MongoDBAdapter,
        collection_name: str = "document_vectors",
    ):
        self.vectors = vector_provider
        self.mongo = mongodb_adapter
        self.collection = collection_name
        self._ensure_collection()

    def _ensure_collection(self) -> None:
        if not self.mongo.collection_exists(self.collection):
            self.mongo.create_collection(self.collection)
            logger.info(f"Created MongoDB collection: {self.collection}")

        self.mongo.create_index(self.collection, [("id", 1)], unique=True)
        self.mongo.create_index(self.collection, [("agent_id", 1)])
        self.mongo.create_index(self.collection, [("user_id", 1)])
        self.mongo.create_index(
            self.collection, [("agent_id", 1), ("document_id", 1), ("chunk_index", 1)]
        )

    async def upsert(
        self, agent_id: str, entries: List[VectorStoreEntry], user_id: str
    ) -> None:
        """Store embedded chunks for an agent.

        Args:
            agent_id: Agent owning the chunks; also the Pinecone namespace
            entries: Embedded chunks
            user_id: Owner of the agent
        """
        if not entries:
            logger.info("Upsert skipped: no entries provided.")
            return

        now = dt.now(tz=timezone.utc)
        vectors = []
        for entry in entries:
            metadata = dict(entry.metadata)
            document_id = metadata.get("document_id", entry.id)
            chunk_index = int(metadata.get("chunk_index", 0))

            vectors.append(
                {
                    "id": entry.id,
                    "values": entry.vector,
                    "metadata": {
                        "document_id": document_id,
                        "chunk_index": chunk_index,
                        "user_id": user_id,
                    },
                }
            )
            self.mongo.update_one(
                self.collection,
                {"id": entry.id},
                {
                    "$set": {
                        "id": entry.id,
                        "agent_id": agent_id,
                        "user_id": user_id,
                        "document_id": document_id,
                        "chunk_index": chunk_index,
                        "content": entry.content,
                        "original_name": metadata.get("original_name"),
                        "mime_type": metadata.get("mime_type"),
                        "metadata": metadata,
                        "updated_at": now,
                    },
                    "$setOnInsert": {"created_at": now},
                },
                upsert=True,
            )

        for start in range(0, len(vectors), UPSERT_BATCH_SIZE):
            await self.vectors.upsert(
                vectors[start : start + UPSERT_BATCH_SIZE], namespace=agent_id
            )
        logger.info(f"Stored {len(entries)} chunks for agent {agent_id}")

    async def search(
        self, agent_id: str, embedding: List[float], limit: int = 4
    ) -> List[SearchResult]:
        """Return the chunks closest to ``embedding`` in the agent's namespace."""
        matches = await self.vectors.query(
            vector=embedding,
            top_k=limit,
            namespace=agent_id,
        )
        if not matches:
            return []

        ids = [match["id"] for match in matches]
        docs = {
            doc["id"]: doc
            for doc in self.mongo.find(
                self.collection, {"id": {"$in": ids}, "agent_id": agent_id}
            )
        }

        results = []
        for match in matches:
            doc = docs.get(match["id"])
            if not doc:
                logger.warning(
                    f"Chunk {match['id']} found in Pinecone but not in MongoDB. Skipping."
                )
                continue
            results.append(
                SearchResult(
                    id=doc["id"],
                    document_id=doc["document_id"],
                    chunk_index=doc["chunk_index"],
                    content=doc["content"],
                    score=float(match.get("score") or 0.0),
                    metadata={
                        "original_name": doc.get("original_name"),
                        "mime_type": doc.get("mime_type"),
                    },
                )
            )
        return results

    def list_documents(self, agent_id: str, user_id: str) -> List[Dict[str, Any]]:
        """List an agent's documents with their total content size."""
        documents: Dict[str, Dict[str, Any]] = {}
        for doc in self.mongo.find(
            self.collection,
            {"agent_id": agent_id, "user_id": user_id},
            sort=[("document_id", 1), ("chunk_index", 1)],
        ):
            summary = documents.setdefault(
                doc["document_id"],
                {
                    "document_id": doc["document_id"],
                    "original_name": doc.get("original_name"),
                    "mime_type": doc.get("mime_type"),
                    "size": 0,
                },
            )
            summary["size"] += len(doc.get("content") or "")
        return list(documents.values())

    def get_document(
        self, agent_id: str, document_id: str, user_id: str
    ) -> List[Dict[str, Any]]:
        """Return a document's chunks ordered by chunk index."""
        docs = self.mongo.find(
            self.collection,
            {"agent_id": agent_id, "document_id": document_id, "user_id": user_id},
            sort=[("chunk_index", 1)],
        )
        return [
            {
                "id": doc["id"],
                "chunk_index": doc["chunk_index"],
                "content": doc["content"],
                "original_name": doc.get("original_name"),
                "mime_type": doc.get("mime_type"),
            }
            for doc in docs
        ]

    async def delete_document(
        self, agent_id: str, document_id: str, user_id: str
    ) -> int:
        """Delete a document's chunks from both stores. Returns the chunk count."""
        query = {"agent_id": agent_id, "document_id": document_id, "user_id": user_id}
        ids = [doc["id"] for doc in self.mongo.find(self.collection, query)]
        if not ids:
            logger.warning(f"Document {document_id} not found for agent {agent_id}")
            return 0

        await self.vectors.delete(ids, namespace=agent_id)
        deleted = self.mongo.delete_all(self.collection, query)
        logger.info(f"Deleted {deleted} chunks of document {document_id}")
        return deleted

    def _total_size(self, query: Dict[str, Any]) -> int:
        return sum(
            len(doc.get("content") or "")
            for doc in self.mongo.find(self.collection, query)
        )

    def total_size_for_agent(self, agent_id: str) -> int:
        return self._total_size({"agent_id": agent_id})

    def total_size_for_user(self, user_id: Optional[str] = None) -> int:
        """Total stored content for a user, or for everyone when no user is given."""
        return self._total_size({"user_id": user_id} if user_id else {})

    async def close(self) -> None:
        await self.vectors.close()
