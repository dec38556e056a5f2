"""
MongoDB adapter for the Starknet Agent system.

Stores agents, conversations, document chunks and ingestion jobs. Document
ids are string UUIDs unless the caller supplies one.
"""
import logging
import uuid
from typing import Dict, List, Optional, Tuple

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from starknet_agent.interfaces.providers.data_storage import DataStorageProvider

logger = logging.getLogger(__name__)


def _with_id(document: Dict) -> Dict:
    document.setdefault("_id", str(uuid.uuid4()))
    return document


class MongoDBAdapter(DataStorageProvider):
    def __init__(self, connection_string: str, database_name: str):
        if not connection_string:
            raise ValueError("MongoDB connection string is required.")
        if not database_name:
            raise ValueError("MongoDB database name is required.")
        self.client = MongoClient(connection_string)
        self.db = self.client[database_name]

    def _collection(self, name: str) -> Collection:
        return self.db[name]

    def collection_exists(self, name: str) -> bool:
        return name in self.db.list_collection_names()

    def create_collection(self, name: str) -> None:
        if not self.collection_exists(name):
            self.db.create_collection(name)
            logger.debug(f"Created collection {name}")

    def insert_one(self, collection: str, document: Dict) -> str:
        self._collection(collection).insert_one(_with_id(document))
        return document["_id"]

    def insert_many(self, collection: str, documents: List[Dict]) -> List[str]:
        if not documents:
            return []
        self._collection(collection).insert_many([_with_id(d) for d in documents])
        return [d["_id"] for d in documents]

    def find_one(self, collection: str, query: Dict) -> Optional[Dict]:
        return self._collection(collection).find_one(query)

    def find(
        self,
        collection: str,
        query: Dict,
        sort: Optional[List[Tuple]] = None,
        limit: int = 0,
        skip: int = 0,
    ) -> List[Dict]:
        cursor = self._collection(collection).find(query)
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def update_one(
        self, collection: str, query: Dict, update: Dict, upsert: bool = False
    ) -> bool:
        result = self._collection(collection).update_one(query, update, upsert=upsert)
        return bool(result.matched_count) or result.upserted_id is not None

    def delete_one(self, collection: str, query: Dict) -> bool:
        return self._collection(collection).delete_one(query).deleted_count == 1

    def delete_all(self, collection: str, query: Dict) -> int:
        return self._collection(collection).delete_many(query).deleted_count

    def count_documents(self, collection: str, query: Dict) -> int:
        return self._collection(collection).count_documents(query)

    def aggregate(self, collection: str, pipeline: List[Dict]) -> List[Dict]:
        return list(self._collection(collection).aggregate(pipeline))

    def create_index(self, collection: str, keys: List[Tuple], **kwargs) -> None:
        try:
            self._collection(collection).create_index(keys, **kwargs)
        except PyMongoError as e:
            logger.error(f"Error creating index on {collection}: {e}")
            raise
