"""
Document Store Interface Definitions

Defines the abstract interface every document store backend implements.
This enables swapping implementations (MongoDB, in-memory) without
changing repository code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .pipeline import Stage


@dataclass
class WriteResult:
    """
    Result of a multi-document write (the bulk soft-delete acknowledgement).

    Attributes:
        matched_count: Number of documents that matched the filter
        modified_count: Number of documents actually modified
        acknowledged: Whether the store acknowledged the write
    """
    matched_count: int
    modified_count: int
    acknowledged: bool = True


def utcnow() -> datetime:
    """Timestamp used for createdAt / updatedAt / deletedAt."""
    return datetime.now(timezone.utc)


def stamp_new_document(document: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Fill system fields on a record about to be inserted.

    Caller-supplied createdAt is kept (imports, fixtures); a naive value is
    taken as UTC. deletedAt always starts out null.
    """
    now = now or utcnow()
    stamped = dict(document)
    created_at = stamped.get("createdAt")
    if created_at is None:
        stamped["createdAt"] = now
    elif isinstance(created_at, datetime) and created_at.tzinfo is None:
        stamped["createdAt"] = created_at.replace(tzinfo=timezone.utc)
    stamped["updatedAt"] = now
    stamped["deletedAt"] = None
    return stamped


def stamp_update(update: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Add `updatedAt` to an operator-style update unless it sets it itself."""
    now = now or utcnow()
    stamped = {key: (dict(value) if isinstance(value, dict) else value) for key, value in update.items()}
    set_fields = stamped.setdefault("$set", {})
    set_fields.setdefault("updatedAt", now)
    return stamped


class DocumentStoreInterface(ABC):
    """
    Abstract interface for one document collection.

    Implementations:
    - MongoDocumentStore: pymongo collection
    - InMemoryDocumentStore: process-local, for tests and local development

    Stores assign `_id` and the timestamp fields on insert. All methods
    follow fail-fast semantics: backend errors propagate to the caller
    as InfrastructureError.
    """

    name: str

    @abstractmethod
    def insert_one(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a single document.

        Args:
            document: Document to insert (no `_id` required)

        Returns:
            The stored document including `_id`, `createdAt`, `deletedAt`
        """
        pass

    @abstractmethod
    def insert_many(self, documents: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Insert documents in bulk. Order of the result is not guaranteed.

        Raises:
            BatchInsertFailed: If the store rejected any document
        """
        pass

    @abstractmethod
    def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Find a single document.

        Args:
            filter: MongoDB query filter

        Returns:
            Document dict if found, None otherwise
        """
        pass

    @abstractmethod
    def find(self, filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Find all documents matching the filter.

        Args:
            filter: MongoDB query filter

        Returns:
            List of matching documents in natural order
        """
        pass

    @abstractmethod
    def count_documents(self, filter: Dict[str, Any]) -> int:
        """Count documents matching the filter."""
        pass

    @abstractmethod
    def find_one_and_update(
        self,
        filter: Dict[str, Any],
        update: Dict[str, Any],
        return_updated: bool = True,
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically update the first matching document.

        Args:
            filter: MongoDB query filter
            update: Operator-style update (e.g., {"$set": {...}})
            return_updated: Return the post-update state (else pre-update)

        Returns:
            The document, or None if nothing matched
        """
        pass

    @abstractmethod
    def update_many(self, filter: Dict[str, Any], update: Dict[str, Any]) -> WriteResult:
        """
        Update every matching document.

        Returns:
            WriteResult with match/modify counts
        """
        pass

    @abstractmethod
    def aggregate(self, pipeline: Sequence[Stage]) -> List[Dict[str, Any]]:
        """
        Run a staged pipeline.

        Args:
            pipeline: Stages built with PipelineBuilder

        Returns:
            List of result documents
        """
        pass

    @abstractmethod
    def create_index(self, keys: List[tuple], unique: bool = False) -> str:
        """
        Ensure an index exists.

        Args:
            keys: List of (field, direction) tuples
            unique: Enforce uniqueness at store level

        Returns:
            Index name
        """
        pass
