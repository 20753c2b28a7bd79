"""
Aggregation pipeline construction.

Stages are plain data (tagged variants) so the same pipeline can be
rendered for MongoDB or evaluated by the in-memory store:

    Match, Facet, Sort, Skip, Limit, Count, AddFields, RawStage

PipelineBuilder composes them; `PipelineBuilder.paginated()` builds the
single-round-trip pagination pipeline shared by `find_by_paginate` and
`find_by_query_filter_and_populate`:

    $match ... -> $facet {
        page: [$count totalIndex, $addFields {...derived page fields...}],
        data: [$sort, $skip, $limit, ...extra stages],
    }
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from ..errors import InvalidPagination, InvalidSortOrder
from ..models import Paginate, SortSpec

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
DEFAULT_SORT_BY = "createdAt"
DEFAULT_SORT_ORDER = -1


class Stage(ABC):
    """One pipeline stage."""

    @abstractmethod
    def to_mongo(self) -> Dict[str, Any]:
        """Render as a MongoDB aggregation stage."""
        pass


@dataclass
class Match(Stage):
    filter: Dict[str, Any]

    def to_mongo(self) -> Dict[str, Any]:
        return {"$match": dict(self.filter)}


@dataclass
class Facet(Stage):
    branches: Dict[str, List[Stage]]

    def to_mongo(self) -> Dict[str, Any]:
        return {
            "$facet": {
                name: [stage.to_mongo() for stage in stages]
                for name, stages in self.branches.items()
            }
        }


@dataclass
class Sort(Stage):
    keys: Dict[str, int]

    def to_mongo(self) -> Dict[str, Any]:
        return {"$sort": dict(self.keys)}


@dataclass
class Skip(Stage):
    count: int

    def to_mongo(self) -> Dict[str, Any]:
        return {"$skip": self.count}


@dataclass
class Limit(Stage):
    count: int

    def to_mongo(self) -> Dict[str, Any]:
        return {"$limit": self.count}


@dataclass
class Count(Stage):
    field: str

    def to_mongo(self) -> Dict[str, Any]:
        return {"$count": self.field}


@dataclass
class AddFields(Stage):
    fields: Dict[str, Any]

    def to_mongo(self) -> Dict[str, Any]:
        return {"$addFields": dict(self.fields)}


@dataclass
class RawStage(Stage):
    """Caller-supplied stage passed through as-is (e.g. $lookup)."""

    spec: Dict[str, Any]

    @property
    def operator(self) -> str:
        return next(iter(self.spec))

    def to_mongo(self) -> Dict[str, Any]:
        return dict(self.spec)


StageLike = Union[Stage, Mapping[str, Any]]


def as_stage(value: StageLike) -> Stage:
    """Accept Stage objects or raw MongoDB stage dicts."""
    if isinstance(value, Stage):
        return value
    if isinstance(value, Mapping) and len(value) == 1:
        return RawStage(dict(value))
    raise TypeError(f"Not a pipeline stage: {value!r}")


def _coerce_positive(value: Optional[int], default: int) -> int:
    # zero/absent fall back to the default; negatives are mirrored
    if not value:
        return default
    return abs(int(value))


@dataclass
class PageWindow:
    """
    Resolved page request.

    Attributes:
        page: 1-based page number (never clamped to the last page)
        limit: Page size
        sort_by: Sort field
        sort_order: 1 ascending, -1 descending
    """
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort_by: str = DEFAULT_SORT_BY
    sort_order: int = DEFAULT_SORT_ORDER

    @property
    def skip(self) -> int:
        return self.limit * (self.page - 1)

    @property
    def starting_index(self) -> int:
        return self.limit * (self.page - 1) + 1

    @property
    def ending_index(self) -> int:
        return self.limit * self.page

    @classmethod
    def resolve(
        cls,
        paginate: Union[Paginate, Mapping[str, Any], None] = None,
        sort: Union[SortSpec, Mapping[str, Any], None] = None,
        default_page: int = DEFAULT_PAGE,
        default_limit: int = DEFAULT_LIMIT,
    ) -> "PageWindow":
        """
        Build a window from a page request and optional sort.

        Raises:
            InvalidPagination: If page/limit are not numeric
            InvalidSortOrder: If a sort is given with an order other than 1/-1
        """
        if paginate is None:
            request = Paginate()
        elif isinstance(paginate, Paginate):
            request = paginate
        else:
            try:
                request = Paginate.model_validate(dict(paginate))
            except PydanticValidationError as e:
                raise InvalidPagination() from e

        sort_by, sort_order = resolve_sort(sort)
        return cls(
            page=_coerce_positive(request.page, default_page),
            limit=_coerce_positive(request.limit, default_limit),
            sort_by=sort_by,
            sort_order=sort_order,
        )


def resolve_sort(sort: Union[SortSpec, Mapping[str, Any], None]) -> Tuple[str, int]:
    """
    Resolve a caller sort to (field, direction).

    Falls back to (createdAt, -1) unless both field and order are given.

    Raises:
        InvalidSortOrder: If the order is not 1/-1 or the sort is malformed
    """
    if sort is None:
        return DEFAULT_SORT_BY, DEFAULT_SORT_ORDER
    if isinstance(sort, SortSpec):
        spec = sort
    else:
        try:
            spec = SortSpec.model_validate(dict(sort))
        except PydanticValidationError as e:
            raise InvalidSortOrder() from e
    if not (spec.sort_by and spec.sort_order):
        return DEFAULT_SORT_BY, DEFAULT_SORT_ORDER

    try:
        order = int(spec.sort_order)
    except (TypeError, ValueError) as e:
        raise InvalidSortOrder() from e
    if order not in (1, -1):
        raise InvalidSortOrder()
    return spec.sort_by, order


def page_stats_stages(window: PageWindow, legacy_page_stats: bool = False) -> List[Stage]:
    """
    Stages of the `page` facet branch.

    By default itemsOnCurrentPage is the number of records actually on the
    requested page and nextPage is null on the last page.

    With legacy_page_stats both keep their compatibility rendering:
    itemsOnCurrentPage is min(limit, totalIndex) whatever the page, and
    nextPage sits inside the same $addFields that defines totalPage, where
    `$totalPage` is still unresolved, so nextPage is always page + 1.
    """
    page = window.page
    limit = window.limit
    fields: Dict[str, Any] = {
        "totalPage": {"$ceil": {"$divide": ["$totalIndex", limit]}},
        "currentPage": page,
        "previousPage": {"$cond": {"if": {"$gt": [page, 1]}, "then": page - 1, "else": None}},
        "startingIndex": window.starting_index,
        "endingIndex": window.ending_index,
        "itemsOnCurrentPage": {
            "$max": [0, {"$min": [limit, {"$subtract": ["$totalIndex", window.skip]}]}]
        },
        "limit": limit,
        "sortBy": window.sort_by,
        "sortOrder": window.sort_order,
    }

    if legacy_page_stats:
        fields["itemsOnCurrentPage"] = {
            "$cond": {"if": {"$gte": [limit, "$totalIndex"]}, "then": "$totalIndex", "else": limit}
        }
        fields["nextPage"] = {
            "$cond": {"if": {"$gt": ["$totalPage", page]}, "then": None, "else": page + 1}
        }
        return [Count("totalIndex"), AddFields(fields)]

    next_page = AddFields({
        "nextPage": {"$cond": {"if": {"$gt": ["$totalPage", page]}, "then": page + 1, "else": None}}
    })
    return [Count("totalIndex"), AddFields(fields), next_page]


def data_stages(window: PageWindow, extra_stages: Sequence[StageLike] = ()) -> List[Stage]:
    """
    Stages of the `data` facet branch.

    `_id` breaks ties so records sharing a sort value keep a stable page order.
    """
    return [
        Sort({window.sort_by: window.sort_order, "_id": window.sort_order}),
        Skip(window.skip),
        Limit(window.limit),
        *(as_stage(stage) for stage in extra_stages),
    ]


@dataclass
class PipelineBuilder:
    """Fluent builder over a list of stages."""

    stages: List[Stage] = field(default_factory=list)

    def match(self, filter: Dict[str, Any]) -> "PipelineBuilder":
        self.stages.append(Match(filter))
        return self

    def facet(self, **branches: Sequence[StageLike]) -> "PipelineBuilder":
        self.stages.append(Facet({
            name: [as_stage(stage) for stage in branch] for name, branch in branches.items()
        }))
        return self

    def sort(self, keys: Dict[str, int]) -> "PipelineBuilder":
        self.stages.append(Sort(keys))
        return self

    def skip(self, count: int) -> "PipelineBuilder":
        self.stages.append(Skip(count))
        return self

    def limit(self, count: int) -> "PipelineBuilder":
        self.stages.append(Limit(count))
        return self

    def count(self, field_name: str) -> "PipelineBuilder":
        self.stages.append(Count(field_name))
        return self

    def add_fields(self, fields: Dict[str, Any]) -> "PipelineBuilder":
        self.stages.append(AddFields(fields))
        return self

    def extend(self, stages: Sequence[StageLike]) -> "PipelineBuilder":
        self.stages.extend(as_stage(stage) for stage in stages)
        return self

    def build(self) -> List[Stage]:
        return list(self.stages)

    def to_mongo(self) -> List[Dict[str, Any]]:
        return [stage.to_mongo() for stage in self.stages]

    @classmethod
    def paginated(
        cls,
        match_filters: Sequence[Dict[str, Any]],
        window: PageWindow,
        extra_stages: Sequence[StageLike] = (),
        legacy_page_stats: bool = False,
    ) -> "PipelineBuilder":
        """
        Build the faceted count + page pipeline.

        Args:
            match_filters: One $match stage per filter, applied in order
            window: Resolved page/limit/sort
            extra_stages: Stages appended to the data branch (joins, enrichment)
            legacy_page_stats: Emit the compatibility nextPage/itemsOnCurrentPage expressions

        Returns:
            Builder holding the full pipeline
        """
        builder = cls()
        for match_filter in match_filters:
            builder.match(match_filter)
        return builder.facet(
            page=page_stats_stages(window, legacy_page_stats),
            data=data_stages(window, extra_stages),
        )
