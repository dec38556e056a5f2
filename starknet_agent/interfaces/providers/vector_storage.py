from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class VectorStorageProvider(ABC):
    """Namespaced storage of pre-computed embedding vectors."""

    @abstractmethod
    async def upsert(self, vectors: List[Dict[str, Any]], namespace: str) -> None:
        pass

    @abstractmethod
    async def query(
        self,
        vector: List[float],
        namespace: str,
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Return matches as ``{"id", "score", "metadata"}`` mappings."""
        pass

    @abstractmethod
    async def delete(self, ids: List[str], namespace: str) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
