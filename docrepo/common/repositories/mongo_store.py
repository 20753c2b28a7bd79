"""
MongoDB Document Store

pymongo implementation of DocumentStoreInterface over one collection.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import BulkWriteError

from ..database import DatabaseClient
from ..error_handling import store_operation
from ..errors import BatchInsertFailed
from .base import DocumentStoreInterface, WriteResult, stamp_new_document, stamp_update
from .pipeline import Stage

logger = logging.getLogger(__name__)


class MongoDocumentStore(DocumentStoreInterface):
    """
    Document store backed by a MongoDB collection.

    Connection Management:
    - Uses the process-wide DatabaseClient (one MongoClient, pooled)
    - The collection handle is resolved lazily on first use

    Error Handling:
    - Fail-fast: driver errors surface as StoreUnavailable
    - Duplicate keys surface as DuplicateRecord
    - No retries; pymongo's retryable reads/writes are the only retry layer
    """

    def __init__(self, collection: str, client: Optional[DatabaseClient] = None):
        """
        Initialize the store for one collection.

        Args:
            collection: Collection name (e.g., "users")
            client: DatabaseClient to use (default: process singleton)
        """
        self.name = collection
        self._client = client
        self._collection: Optional[Collection] = None

    def _get_collection(self) -> Collection:
        if self._collection is None:
            client = self._client or DatabaseClient()
            self._collection = client.collection(self.name)
            logger.info(f"Document store bound to collection: {self.name}")
        return self._collection

    @store_operation("insert_one")
    def insert_one(self, document: Dict[str, Any]) -> Dict[str, Any]:
        stored = stamp_new_document(document)
        result = self._get_collection().insert_one(stored)
        stored["_id"] = result.inserted_id
        return stored

    @store_operation("insert_many")
    def insert_many(self, documents: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        stored = [stamp_new_document(document) for document in documents]
        if not stored:
            return []
        try:
            result = self._get_collection().insert_many(stored, ordered=False)
        except BulkWriteError as e:
            failed = len(e.details.get("writeErrors", []))
            logger.error(f"[{self.name}] insert_many rejected {failed} of {len(stored)} documents")
            raise BatchInsertFailed(
                f"{failed} of {len(stored)} documents rejected",
                failed_count=failed,
            ) from e
        for document, inserted_id in zip(stored, result.inserted_ids):
            document["_id"] = inserted_id
        return stored

    @store_operation("find_one")
    def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._get_collection().find_one(filter)

    @store_operation("find")
    def find(self, filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        return list(self._get_collection().find(filter))

    @store_operation("count_documents")
    def count_documents(self, filter: Dict[str, Any]) -> int:
        return self._get_collection().count_documents(filter)

    @store_operation("find_one_and_update")
    def find_one_and_update(
        self,
        filter: Dict[str, Any],
        update: Dict[str, Any],
        return_updated: bool = True,
    ) -> Optional[Dict[str, Any]]:
        return self._get_collection().find_one_and_update(
            filter,
            stamp_update(update),
            return_document=ReturnDocument.AFTER if return_updated else ReturnDocument.BEFORE,
        )

    @store_operation("update_many")
    def update_many(self, filter: Dict[str, Any], update: Dict[str, Any]) -> WriteResult:
        result = self._get_collection().update_many(filter, stamp_update(update))
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            acknowledged=result.acknowledged,
        )

    @store_operation("aggregate")
    def aggregate(self, pipeline: Sequence[Stage]) -> List[Dict[str, Any]]:
        return list(self._get_collection().aggregate([stage.to_mongo() for stage in pipeline]))

    @store_operation("create_index")
    def create_index(self, keys: List[tuple], unique: bool = False) -> str:
        return self._get_collection().create_index(keys, unique=unique)
