"""
Generic Repository

Soft-delete-aware CRUD, array mutation and paginated querying over one
document store. Every default-scope read goes through `not_deleted()`,
so a record whose `deletedAt` is set is invisible unless a caller opts
in with `include_deleted=True`. Nothing here ever deletes physically.
"""

import re
from typing import (
    Any,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    Union,
)

from bson import ObjectId
from pydantic import BaseModel

from ..errors import UpdateTargetNotFound
from ..logger import get_logger
from ..models import Paginate, PageDescriptor, PaginatedResult, SortSpec, T, to_object_id
from .base import DocumentStoreInterface, WriteResult, utcnow
from .pipeline import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    PageWindow,
    PipelineBuilder,
    StageLike,
)

Query = Mapping[str, Any]
Patch = Union[Mapping[str, Any], BaseModel]
Identifier = Union[str, ObjectId]
PaginateLike = Union[Paginate, Mapping[str, Any], None]


def not_deleted(query: Optional[Query] = None) -> Dict[str, Any]:
    """AND a caller filter with `deletedAt == null`."""
    return {**(query or {}), "deletedAt": None}


def scoped(query: Optional[Query], include_deleted: bool) -> Dict[str, Any]:
    return dict(query or {}) if include_deleted else not_deleted(query)


def as_update(patch: Patch) -> Dict[str, Any]:
    """
    Normalize a patch into an operator-style update.

    Plain field mappings become `$set`; mappings that already use update
    operators pass through unchanged.
    """
    if isinstance(patch, BaseModel):
        patch = patch.model_dump(by_alias=True, exclude_unset=True)
    data = dict(patch)
    data.pop("_id", None)
    if data and all(key.startswith("$") for key in data):
        return data
    operators = {key: value for key, value in data.items() if key.startswith("$")}
    fields = {key: value for key, value in data.items() if not key.startswith("$")}
    if fields:
        operators["$set"] = {**operators.get("$set", {}), **fields}
    return operators


def substring_filter(query: Query) -> Dict[str, Any]:
    """
    Build a case-insensitive, dot-matches-newline substring match per field.

    Values are stripped and regex-escaped so they match literally.
    """
    return {
        field: {"$regex": re.escape(str(value).strip()), "$options": "si"}
        for field, value in query.items()
    }


class Repository(Generic[T]):
    """
    Generic data-access object bound to one document store.

    Usage:
        users = Repository(get_document_store("users"), User)
        created = users.create_one(User(email="a@b.com", password=hashed))
        page = users.find_all({"page": 2, "limit": 20})

    Args:
        store: DocumentStoreInterface implementation for the collection
        model: Document subclass records are validated into
        default_page: Page used when a request omits it or passes 0
        default_limit: Page size used when a request omits it or passes 0
        legacy_page_stats: Emit compatibility page stats (see page_stats_stages)
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        model: Type[T],
        default_page: int = DEFAULT_PAGE,
        default_limit: int = DEFAULT_LIMIT,
        legacy_page_stats: bool = False,
    ):
        self.store = store
        self.model = model
        self.default_page = default_page
        self.default_limit = default_limit
        self.legacy_page_stats = legacy_page_stats
        self.logger = get_logger(__name__, collection=store.name)

    # ===== helpers =====

    def _to_model(self, raw: Optional[Dict[str, Any]]) -> Optional[T]:
        if raw is None:
            return None
        return self.model.model_validate(raw)

    def _to_document(self, data: Union[T, Mapping[str, Any]]) -> Dict[str, Any]:
        if isinstance(data, BaseModel):
            return data.to_document() if hasattr(data, "to_document") else data.model_dump(by_alias=True)
        document = dict(data)
        if "_id" in document and document["_id"] is None:
            document.pop("_id")
        return document

    # ===== create =====

    def create_one(self, data: Union[T, Mapping[str, Any]]) -> T:
        """Insert one record; the store assigns `_id` and `createdAt`."""
        created = self.store.insert_one(self._to_document(data))
        self.logger.bind("create_one").debug(f"Created {created['_id']}")
        return self._to_model(created)

    def create_many(self, data: Sequence[Union[T, Mapping[str, Any]]]) -> List[T]:
        """
        Bulk insert. Result order is not guaranteed to match input order.

        Raises:
            BatchInsertFailed: If the store rejected any record
        """
        created = self.store.insert_many([self._to_document(item) for item in data])
        self.logger.bind("create_many").debug(f"Created {len(created)} documents")
        return [self._to_model(raw) for raw in created]

    # ===== read =====

    def find_all(self, paginate: PaginateLike = None) -> PaginatedResult[T]:
        return self.find_by_paginate({}, paginate)

    def find_all_by_query(self, query: Query) -> List[T]:
        return [self._to_model(raw) for raw in self.store.find(not_deleted(query))]

    def find_one_by_id(self, id: Identifier) -> Optional[T]:
        return self._to_model(self.store.find_one(not_deleted({"_id": to_object_id(id)})))

    def find_one_by_query(self, query: Query) -> Optional[T]:
        return self._to_model(self.store.find_one(not_deleted(query)))

    def search_by_any_character(self, query: Query) -> List[T]:
        """Substring search: every field must contain its value, ignoring case."""
        return self.find_all_by_query(substring_filter(query))

    def count(self, query: Optional[Query] = None, include_deleted: bool = False) -> int:
        return self.store.count_documents(scoped(query, include_deleted))

    def exists(self, query: Query) -> bool:
        return self.store.find_one(not_deleted(query)) is not None

    # ===== update =====

    def update_by_id(self, id: Identifier, patch: Patch) -> T:
        """
        Apply a patch to one live record and return its post-update state.

        Soft-deleted records are not updatable.

        Raises:
            UpdateTargetNotFound: If no live record has this id
        """
        object_id = to_object_id(id)
        updated = self.store.find_one_and_update(
            not_deleted({"_id": object_id}), as_update(patch), return_updated=True
        )
        if updated is None:
            self.logger.bind("update_by_id").info(f"No live record {object_id}")
            raise UpdateTargetNotFound()
        return self._to_model(updated)

    def update_by_query(self, query: Query, patch: Patch) -> Optional[T]:
        """
        Patch the first live record matching the query.

        Unlike update_by_id a miss returns None instead of raising.
        """
        updated = self.store.find_one_and_update(not_deleted(query), as_update(patch), return_updated=True)
        return self._to_model(updated)

    # ===== soft delete =====

    def remove_by_id(self, id: Identifier) -> Optional[T]:
        """Soft-delete one live record; None when already deleted or absent."""
        removed = self.store.find_one_and_update(
            not_deleted({"_id": to_object_id(id)}),
            {"$set": {"deletedAt": utcnow()}},
            return_updated=True,
        )
        if removed is not None:
            self.logger.bind("remove_by_id").info(f"Soft-deleted {removed['_id']}")
        return self._to_model(removed)

    def remove_by_query(self, query: Query) -> WriteResult:
        """Soft-delete every live record matching the query."""
        result = self.store.update_many(not_deleted(query), {"$set": {"deletedAt": utcnow()}})
        self.logger.bind("remove_by_query").info(f"Soft-deleted {result.modified_count} documents")
        return result

    # ===== array mutation =====

    def push_item_to_array_by_query(
        self,
        query: Query,
        item: Mapping[str, Any],
        include_deleted: bool = True,
    ) -> Optional[T]:
        """
        Append values to array fields of the first matching record.

        Args:
            query: Filter selecting the record
            item: {array_field: value} pairs; use {"$each": [...]} for several
            include_deleted: Whether soft-deleted records may be targeted
        """
        updated = self.store.find_one_and_update(
            scoped(query, include_deleted), {"$push": dict(item)}, return_updated=True
        )
        return self._to_model(updated)

    def remove_item_from_array_by_query(
        self,
        query: Query,
        item: Mapping[str, Any],
        include_deleted: bool = True,
    ) -> Optional[T]:
        """Remove matching elements from array fields of the first matching record."""
        updated = self.store.find_one_and_update(
            scoped(query, include_deleted), {"$pull": dict(item)}, return_updated=True
        )
        return self._to_model(updated)

    # ===== pagination =====

    def _window(self, paginate: PaginateLike, sort: Union[SortSpec, Mapping[str, Any], None] = None) -> PageWindow:
        return PageWindow.resolve(
            paginate,
            sort,
            default_page=self.default_page,
            default_limit=self.default_limit,
        )

    def _run_paginated(
        self,
        match_filters: Sequence[Dict[str, Any]],
        window: PageWindow,
        extra_stages: Sequence[StageLike],
    ) -> PaginatedResult[T]:
        pipeline = PipelineBuilder.paginated(
            match_filters,
            window,
            extra_stages=extra_stages,
            legacy_page_stats=self.legacy_page_stats,
        )
        rows = self.store.aggregate(pipeline.build())
        row = rows[0] if rows else {}
        page_rows = row.get("page") or []
        page = PageDescriptor.model_validate(page_rows[0]) if page_rows else None
        data = [self._to_model(raw) for raw in row.get("data") or []]
        self.logger.bind("paginate").debug(
            f"page={window.page} limit={window.limit} returned={len(data)}"
            f" total={page.total_index if page else 0}"
        )
        return PaginatedResult[self.model](page=page, data=data)

    def find_by_paginate(
        self,
        query: Optional[Query] = None,
        paginate: PaginateLike = None,
        extra_stages: Sequence[StageLike] = (),
    ) -> PaginatedResult[T]:
        """
        One page of live records, newest first, with page metadata.

        Count and data come from one faceted pipeline over the same match.

        Args:
            query: Filter ANDed with the soft-delete filter
            paginate: {"page", "limit"}; zero/absent use defaults, negatives are mirrored
            extra_stages: Stages appended to the data branch (e.g. $lookup)

        Returns:
            PaginatedResult; `page` is None when nothing matched
        """
        window = self._window(paginate)
        return self._run_paginated([not_deleted(query)], window, extra_stages)

    def find_by_query_filter_and_populate(
        self,
        query: Optional[Query] = None,
        paginate: PaginateLike = None,
        sort: Union[SortSpec, Mapping[str, Any], None] = None,
        extra_stages: Sequence[StageLike] = (),
    ) -> PaginatedResult[T]:
        """
        Paginate with one $match stage per query field and a caller sort.

        Args:
            query: Each field becomes its own soft-delete-scoped match stage
            paginate: {"page", "limit"}
            sort: {"sortBy", "sortOrder"}; defaults to createdAt descending
            extra_stages: Stages appended to the data branch

        Raises:
            InvalidSortOrder: If sortOrder is not 1 or -1
        """
        window = self._window(paginate, sort)
        match_filters = [not_deleted({key: value}) for key, value in (query or {}).items()]
        return self._run_paginated(match_filters or [not_deleted()], window, extra_stages)
