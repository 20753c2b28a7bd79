"""
Repository Pattern for Document Collections

Generic, soft-delete-aware data access over a pluggable document store.

Public API:
- Repository: CRUD, array mutation and faceted pagination for one collection
- get_repository(): Factory building a Repository from settings
- get_document_store(): Factory returning the configured store per collection
- DocumentStoreInterface: Abstract interface for store backends
- PipelineBuilder / stage variants: Aggregation pipeline construction
- WriteResult: Result dataclass for bulk writes

Usage:
    from docrepo.common.repositories import get_repository
    from docrepo.auth.models import User

    users = get_repository("users", User)
    page = users.find_all({"page": 1, "limit": 20})
    users.remove_by_id(page.data[0].id)
"""

from .base import DocumentStoreInterface, WriteResult
from .config import (
    RepositoryConfig,
    StoreBackend,
    get_document_store,
    get_repository,
    reset_document_stores,
)
from .pipeline import (
    AddFields,
    Count,
    Facet,
    Limit,
    Match,
    PageWindow,
    PipelineBuilder,
    RawStage,
    Skip,
    Sort,
    Stage,
)
from .repository import Repository, not_deleted

__all__ = [
    # Repository
    "Repository",
    "not_deleted",
    "get_repository",
    # Stores
    "DocumentStoreInterface",
    "get_document_store",
    "reset_document_stores",
    "RepositoryConfig",
    "StoreBackend",
    "WriteResult",
    # Pipeline
    "PipelineBuilder",
    "PageWindow",
    "Stage",
    "Match",
    "Facet",
    "Sort",
    "Skip",
    "Limit",
    "Count",
    "AddFields",
    "RawStage",
]
