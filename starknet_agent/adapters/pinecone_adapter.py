import asyncio
import logging
from typing import Any, Dict, List, Optional

from pinecone import PineconeAsyncio, ServerlessSpec
from pinecone.exceptions import PineconeApiException

from starknet_agent.interfaces.providers.vector_storage import VectorStorageProvider

logger = logging.getLogger(__name__)

# Serverless indexes reject traffic for a short while after creation
INDEX_READY_DELAY_SECONDS = 30


class PineconeAdapter(VectorStorageProvider):
    """
    Pinecone storage for document chunk vectors.

    Every call is scoped to a namespace, one per agent. The client and the
    index handle are created on first use and reused afterwards.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        index_name: Optional[str] = None,
        embedding_dimensions: int = 3072,
        cloud_provider: str = "aws",
        region: str = "us-east-1",
        metric: str = "cosine",
        create_index_if_not_exists: bool = True,
    ):
        if not api_key:
            raise ValueError("Pinecone API key is required.")
        if not index_name:
            raise ValueError("Pinecone index name is required.")
        if embedding_dimensions <= 0:
            raise ValueError("embedding_dimensions must be a positive integer.")

        self.api_key = api_key
        self.index_name = index_name
        self.embedding_dimensions = embedding_dimensions
        self.cloud_provider = cloud_provider
        self.region = region
        self.metric = metric
        self.create_index_if_not_exists = create_index_if_not_exists

        self.pinecone: Optional[PineconeAsyncio] = None
        self.index_host: Optional[str] = None
        self._index = None
        self._lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._lock:
            if self._initialized:
                return
            client = PineconeAsyncio(api_key=self.api_key)
            try:
                if self.create_index_if_not_exists:
                    await self._create_index(client)
                description = await client.describe_index(self.index_name)
            except PineconeApiException as e:
                logger.error(f"Pinecone rejected index '{self.index_name}': {e}")
                raise

            if not description.host:
                raise RuntimeError(f"Could not obtain host for index '{self.index_name}'.")
            if description.dimension and description.dimension != self.embedding_dimensions:
                raise ValueError(
                    f"Pinecone index dimension ({description.dimension}) does not match "
                    f"configured embedding dimension ({self.embedding_dimensions})."
                )

            self.pinecone = client
            self.index_host = description.host
            self._index = client.IndexAsyncio(host=description.host)
            self._initialized = True
            logger.info(f"Connected to Pinecone index '{self.index_name}' at {self.index_host}")

    async def _create_index(self, client: PineconeAsyncio) -> None:
        listing = await client.list_indexes()
        if self.index_name in {idx.get("name") for idx in listing.get("indexes", [])}:
            return

        logger.info(
            f"Creating Pinecone index '{self.index_name}' ({self.embedding_dimensions} dimensions)"
        )
        await client.create_index(
            name=self.index_name,
            dimension=self.embedding_dimensions,
            metric=self.metric,
            spec=ServerlessSpec(cloud=self.cloud_provider, region=self.region),
        )
        await asyncio.sleep(INDEX_READY_DELAY_SECONDS)

    async def upsert(self, vectors: List[Dict[str, Any]], namespace: str) -> None:
        """Write ``{"id", "values", "metadata"}`` records into ``namespace``."""
        if not vectors:
            return
        await self._ensure_initialized()
        await self._index.upsert(vectors=vectors, namespace=namespace)
        logger.debug(f"Upserted {len(vectors)} vectors into namespace {namespace}")

    async def query(
        self,
        vector: List[float],
        namespace: str,
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Return the ``top_k`` closest matches with their metadata."""
        await self._ensure_initialized()
        params = {
            "vector": vector,
            "namespace": namespace,
            "top_k": top_k,
            "include_values": False,
            "include_metadata": True,
        }
        if filter:
            params["filter"] = filter
        response = await self._index.query(**params)
        if not response:
            return []
        return list(response.get("matches") or [])

    async def delete(self, ids: List[str], namespace: str) -> None:
        if not ids:
            return
        await self._ensure_initialized()
        await self._index.delete(ids=ids, namespace=namespace)
        logger.debug(f"Deleted {len(ids)} vectors from namespace {namespace}")

    async def close(self) -> None:
        """Release the index handle and the HTTP session."""
        if self._index is not None:
            await self._index.close()
        if self.pinecone is not None:
            await self.pinecone.close()
        self._index = None
        self.pinecone = None
        self._initialized = False
