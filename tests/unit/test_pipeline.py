"""
Tests for aggregation pipeline construction.

Covers page-request coercion, sort resolution and the rendered shape of
the faceted pagination pipeline in both page-stats modes.
"""

import pytest

from docrepo.common.errors import InvalidPagination, InvalidSortOrder
from docrepo.common.models import Paginate, SortSpec
from docrepo.common.repositories.pipeline import (
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
    as_stage,
    data_stages,
    page_stats_stages,
    resolve_sort,
)


class TestStageRendering:
    """Each stage variant renders to one MongoDB stage document."""

    def test_simple_stages(self):
        assert Match({"a": 1}).to_mongo() == {"$match": {"a": 1}}
        assert Sort({"createdAt": -1}).to_mongo() == {"$sort": {"createdAt": -1}}
        assert Skip(20).to_mongo() == {"$skip": 20}
        assert Limit(10).to_mongo() == {"$limit": 10}
        assert Count("totalIndex").to_mongo() == {"$count": "totalIndex"}
        assert AddFields({"x": 1}).to_mongo() == {"$addFields": {"x": 1}}

    def test_facet_renders_nested_branches(self):
        facet = Facet({"a": [Skip(1)], "b": [Limit(2), Count("n")]})

        assert facet.to_mongo() == {
            "$facet": {"a": [{"$skip": 1}], "b": [{"$limit": 2}, {"$count": "n"}]}
        }

    def test_raw_stage_passes_through(self):
        lookup = {"$lookup": {"from": "users", "localField": "owner", "foreignField": "_id", "as": "owner"}}
        stage = as_stage(lookup)

        assert isinstance(stage, RawStage)
        assert stage.operator == "$lookup"
        assert stage.to_mongo() == lookup

    def test_as_stage_keeps_stage_objects(self):
        stage = Limit(3)
        assert as_stage(stage) is stage

    def test_as_stage_rejects_multi_key_dict(self):
        with pytest.raises(TypeError):
            as_stage({"$match": {}, "$limit": 1})


class TestPageWindow:
    """Tests for page/limit coercion."""

    def test_defaults_when_absent(self):
        window = PageWindow.resolve()

        assert window.page == 1
        assert window.limit == 10
        assert (window.sort_by, window.sort_order) == ("createdAt", -1)

    def test_zero_falls_back_to_default(self):
        window = PageWindow.resolve({"page": 0, "limit": 0})

        assert window.page == 1
        assert window.limit == 10

    def test_negatives_are_mirrored(self):
        window = PageWindow.resolve({"page": -3, "limit": -5})

        assert window.page == 3
        assert window.limit == 5

    def test_numeric_strings_accepted(self):
        window = PageWindow.resolve({"page": "2", "limit": "25"})

        assert window.page == 2
        assert window.limit == 25

    def test_non_numeric_raises(self):
        with pytest.raises(InvalidPagination):
            PageWindow.resolve({"page": "two"})

    def test_custom_defaults(self):
        window = PageWindow.resolve(Paginate(), default_page=2, default_limit=50)

        assert window.page == 2
        assert window.limit == 50

    def test_index_bounds(self):
        window = PageWindow.resolve({"page": 3, "limit": 10})

        assert window.skip == 20
        assert window.starting_index == 21
        assert window.ending_index == 30


class TestResolveSort:
    """Tests for sort resolution."""

    def test_none_uses_default(self):
        assert resolve_sort(None) == ("createdAt", -1)

    def test_partial_sort_uses_default(self):
        assert resolve_sort({"sortBy": "title"}) == ("createdAt", -1)
        assert resolve_sort({"sortOrder": 1}) == ("createdAt", -1)

    def test_valid_sort(self):
        assert resolve_sort({"sortBy": "title", "sortOrder": 1}) == ("title", 1)
        assert resolve_sort(SortSpec(sort_by="title", sort_order="-1")) == ("title", -1)

    @pytest.mark.parametrize("order", [2, "-2", "desc", 1.5])
    def test_invalid_order_raises(self, order):
        with pytest.raises(InvalidSortOrder):
            resolve_sort({"sortBy": "title", "sortOrder": order})

    def test_non_string_field_raises(self):
        with pytest.raises(InvalidSortOrder):
            resolve_sort({"sortBy": 5, "sortOrder": 1})


class TestPageStatsStages:
    """Tests for the page branch of the facet."""

    def test_intended_mode_uses_separate_next_page_stage(self):
        stages = page_stats_stages(PageWindow(page=2, limit=10))

        assert [type(stage) for stage in stages] == [Count, AddFields, AddFields]
        assert "nextPage" not in stages[1].fields
        assert stages[2].fields["nextPage"] == {
            "$cond": {"if": {"$gt": ["$totalPage", 2]}, "then": 3, "else": None}
        }

    def test_intended_mode_counts_items_on_requested_page(self):
        stages = page_stats_stages(PageWindow(page=3, limit=10))

        assert stages[1].fields["itemsOnCurrentPage"] == {
            "$max": [0, {"$min": [10, {"$subtract": ["$totalIndex", 20]}]}]
        }

    def test_legacy_mode_renders_single_add_fields(self):
        stages = page_stats_stages(PageWindow(page=2, limit=10), legacy_page_stats=True)

        assert [type(stage) for stage in stages] == [Count, AddFields]
        fields = stages[1].fields
        assert fields["nextPage"] == {
            "$cond": {"if": {"$gt": ["$totalPage", 2]}, "then": None, "else": 3}
        }
        assert fields["itemsOnCurrentPage"] == {
            "$cond": {"if": {"$gte": [10, "$totalIndex"]}, "then": "$totalIndex", "else": 10}
        }

    def test_static_fields(self):
        fields = page_stats_stages(PageWindow(page=1, limit=5, sort_by="title", sort_order=1))[1].fields

        assert fields["currentPage"] == 1
        assert fields["startingIndex"] == 1
        assert fields["endingIndex"] == 5
        assert fields["limit"] == 5
        assert fields["sortBy"] == "title"
        assert fields["sortOrder"] == 1
        assert fields["totalPage"] == {"$ceil": {"$divide": ["$totalIndex", 5]}}


class TestPipelineBuilder:
    """Tests for PipelineBuilder."""

    def test_fluent_chain(self):
        pipeline = PipelineBuilder().match({"a": 1}).sort({"b": 1}).skip(5).limit(5).to_mongo()

        assert pipeline == [
            {"$match": {"a": 1}},
            {"$sort": {"b": 1}},
            {"$skip": 5},
            {"$limit": 5},
        ]

    def test_paginated_shape(self):
        window = PageWindow(page=2, limit=10)
        lookup = {"$lookup": {"from": "users", "localField": "owner", "foreignField": "_id", "as": "owner"}}

        pipeline = PipelineBuilder.paginated(
            [{"deletedAt": None}], window, extra_stages=[lookup]
        ).to_mongo()

        assert pipeline[0] == {"$match": {"deletedAt": None}}
        facet = pipeline[1]["$facet"]
        assert set(facet) == {"page", "data"}
        assert facet["page"][0] == {"$count": "totalIndex"}
        assert facet["data"] == [
            {"$sort": {"createdAt": -1, "_id": -1}},
            {"$skip": 10},
            {"$limit": 10},
            lookup,
        ]

    def test_data_sort_breaks_ties_on_id(self):
        window = PageWindow(sort_by="title", sort_order=1)

        assert data_stages(window)[0] == Sort({"title": 1, "_id": 1})

    def test_paginated_emits_one_match_per_filter(self):
        filters = [{"a": 1, "deletedAt": None}, {"b": 2, "deletedAt": None}]

        stages = PipelineBuilder.paginated(filters, PageWindow()).build()

        assert [stage for stage in stages if isinstance(stage, Match)] == [Match(f) for f in filters]
        assert isinstance(stages[-1], Facet)
