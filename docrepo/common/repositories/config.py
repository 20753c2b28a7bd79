"""
Document Store Configuration and Factory

Provides factory functions that return the store implementation selected
by STORE_BACKEND, one shared instance per collection.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Type

from ..config import Settings, get_settings
from ..models import T
from .base import DocumentStoreInterface

logger = logging.getLogger(__name__)


class StoreBackend(str, Enum):
    """Document store implementation."""
    MONGO = "mongo"    # pymongo collection
    MEMORY = "memory"  # process-local, not durable


@dataclass
class RepositoryConfig:
    """
    Configuration for repository construction.

    Built from Settings so every repository in the process agrees on
    backend and pagination behaviour.
    """
    backend: StoreBackend = StoreBackend.MONGO
    default_page: int = 1
    default_limit: int = 10
    legacy_page_stats: bool = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RepositoryConfig":
        settings = settings or get_settings()
        return cls(
            backend=StoreBackend(settings.store_backend),
            default_page=settings.pagination_default_page,
            default_limit=settings.pagination_default_limit,
            legacy_page_stats=settings.legacy_page_stats,
        )


# One store per collection name
_stores: Dict[str, DocumentStoreInterface] = {}


def get_document_store(collection: str, config: Optional[RepositoryConfig] = None) -> DocumentStoreInterface:
    """
    Get the document store for a collection.

    Args:
        collection: Collection name
        config: Optional explicit configuration (default: from settings)

    Returns:
        DocumentStoreInterface implementation
    """
    if collection not in _stores:
        config = config or RepositoryConfig.from_settings()
        if config.backend == StoreBackend.MEMORY:
            from .memory_store import InMemoryDocumentStore
            _stores[collection] = InMemoryDocumentStore(collection)
        else:
            from .mongo_store import MongoDocumentStore
            _stores[collection] = MongoDocumentStore(collection)
        logger.info(f"Initialized {config.backend.value} document store for '{collection}'")

    return _stores[collection]


def get_repository(collection: str, model: Type[T], config: Optional[RepositoryConfig] = None):
    """
    Build a Repository for a collection using process configuration.

    Args:
        collection: Collection name
        model: Document subclass for the records
        config: Optional explicit configuration (default: from settings)

    Returns:
        Repository[model]
    """
    from .repository import Repository

    config = config or RepositoryConfig.from_settings()
    return Repository(
        get_document_store(collection, config),
        model,
        default_page=config.default_page,
        default_limit=config.default_limit,
        legacy_page_stats=config.legacy_page_stats,
    )


def reset_document_stores() -> None:
    """
    Forget every cached store and close the MongoDB pool.

    Used for testing or when configuration changes.
    """
    from ..database import reset_database_client

    _stores.clear()
    reset_database_client()
    logger.info("Document stores reset")
