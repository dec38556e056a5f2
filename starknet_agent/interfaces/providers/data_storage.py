from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple


class DataStorageProvider(ABC):
    """
    Document store holding agents, conversations, chunk text and job records.

    Documents are plain dicts keyed by a string ``_id``; queries and update
    operators follow MongoDB syntax.
    """

    @abstractmethod
    def create_collection(self, name: str) -> None:
        """Create ``name`` unless it already exists."""
        pass

    @abstractmethod
    def collection_exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def insert_one(self, collection: str, document: Dict) -> str:
        """Insert ``document`` and return its ``_id``, generated when missing."""
        pass

    @abstractmethod
    def insert_many(self, collection: str, documents: List[Dict]) -> List[str]:
        pass

    @abstractmethod
    def find_one(self, collection: str, query: Dict) -> Optional[Dict]:
        pass

    @abstractmethod
    def find(
        self,
        collection: str,
        query: Dict,
        sort: Optional[List[Tuple]] = None,
        limit: int = 0,
        skip: int = 0,
    ) -> List[Dict]:
        pass

    @abstractmethod
    def update_one(
        self, collection: str, query: Dict, update: Dict, upsert: bool = False
    ) -> bool:
        """Apply ``update``; True when a document matched or was inserted."""
        pass

    @abstractmethod
    def delete_one(self, collection: str, query: Dict) -> bool:
        pass

    @abstractmethod
    def delete_all(self, collection: str, query: Dict) -> int:
        """Delete every match and return how many went."""
        pass

    @abstractmethod
    def count_documents(self, collection: str, query: Dict) -> int:
        pass

    @abstractmethod
    def aggregate(self, collection: str, pipeline: List[Dict]) -> List[Dict]:
        pass

    @abstractmethod
    def create_index(self, collection: str, keys: List[Tuple], **kwargs) -> None:
        pass
