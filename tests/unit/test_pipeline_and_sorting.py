"""Unit tests for the aggregation stage vocabulary and record sorting."""
from datetime import datetime, timezone

import pytest

from media_catalog.errors import UnsupportedQueryError
from media_catalog.query.pipeline import (
    FieldKey,
    FirstAccumulator,
    GroupStage,
    LimitStage,
    LowerKey,
    SumAccumulator,
    UnwindStage,
    parse_pipeline,
    to_mongo,
)
from media_catalog.query.sorting import FindOptions, normalize_sort, sort_records


class TestParsePipeline:
    """Test suite for parsing native pipelines into tagged stages."""

    def test_parses_every_supported_stage(self):
        stages = parse_pipeline([
            {"$match": {"approved": True}},
            {"$unwind": "$tags"},
            {"$group": {"_id": {"$toLower": "$tags"}, "count": {"$sum": 1}, "sample": {"$first": "$id"}}},
            {"$sort": {"count": -1}},
            {"$limit": 5},
        ])
        assert stages[1] == UnwindStage("tags")
        assert stages[2] == GroupStage(
            LowerKey("tags"), {"count": SumAccumulator(1), "sample": FirstAccumulator("id")}
        )
        assert stages[3].spec == [("count", -1)]
        assert stages[4] == LimitStage(5)

    def test_sum_of_field(self):
        (stage,) = parse_pipeline([{"$group": {"_id": "$year", "total": {"$sum": "$remix_count"}}}])
        assert stage.key == FieldKey("year")
        assert stage.accumulators["total"] == SumAccumulator(path="remix_count")

    @pytest.mark.parametrize(
        "raw",
        [
            [{"$lookup": {"from": "other"}}],
            [{"$group": {"count": {"$sum": 1}}}],
            [{"$group": {"_id": "$year", "avg": {"$avg": "$n"}}}],
            [{"$limit": 0}],
            [{"$unwind": "tags"}],
            [{"$match": {}, "$limit": 1}],
        ],
    )
    def test_rejects_unsupported_input(self, raw):
        with pytest.raises(UnsupportedQueryError):
            parse_pipeline(raw)

    def test_to_mongo_round_trips_native_form(self):
        native = [
            {"$match": {"approved": True}},
            {"$group": {"_id": {"$toLower": "$tags"}, "count": {"$sum": 1}}},
            {"$sort": {"count": -1, "_id": 1}},
            {"$limit": 10},
            {"$unwind": "$tags"},
        ]
        assert to_mongo(native) == native


class TestSorting:
    """Test suite for stable multi-key sorting."""

    def test_normalize_accepts_dict_and_pairs(self):
        assert normalize_sort({"year": -1, "id": 1}) == [("year", -1), ("id", 1)]
        assert normalize_sort([("year", -1)]) == [("year", -1)]
        assert normalize_sort(None) == []

    def test_normalize_rejects_bad_direction(self):
        with pytest.raises(ValueError):
            normalize_sort({"year": 0})

    def test_multi_key_with_stable_ties(self):
        records = [
            {"id": "a", "year": 2020, "n": 1},
            {"id": "b", "year": 2019, "n": 2},
            {"id": "c", "year": 2020, "n": 2},
            {"id": "d", "year": 2020, "n": 1},
        ]
        result = sort_records(records, [("year", -1), ("n", 1)])
        assert [r["id"] for r in result] == ["a", "d", "c", "b"]

    def test_missing_and_none_sort_first_ascending(self):
        records = [{"id": "a", "v": 3}, {"id": "b"}, {"id": "c", "v": None}, {"id": "d", "v": "text"}]
        result = sort_records(records, {"v": 1})
        assert [r["id"] for r in result] == ["b", "c", "a", "d"]

    def test_nested_path_and_datetimes(self):
        records = [
            {"id": "a", "when": datetime(2024, 2, 1, tzinfo=timezone.utc)},
            {"id": "b", "when": datetime(2024, 1, 1, tzinfo=timezone.utc)},
        ]
        assert [r["id"] for r in sort_records(records, {"when": 1})] == ["b", "a"]

    def test_naive_and_aware_datetimes_compare(self):
        records = [
            {"id": "a", "when": datetime(2024, 1, 2, tzinfo=timezone.utc)},
            {"id": "b", "when": datetime(2024, 1, 1)},
        ]
        assert [r["id"] for r in sort_records(records, {"when": 1})] == ["b", "a"]

    def test_arrays_sort_by_smallest_or_largest_element(self):
        records = [{"id": "a", "v": [3, 9]}, {"id": "b", "v": [5]}, {"id": "c", "v": [1, 10]}]
        assert [r["id"] for r in sort_records(records, {"v": 1})] == ["c", "a", "b"]
        assert [r["id"] for r in sort_records(records, {"v": -1})] == ["c", "a", "b"]

    def test_empty_array_sorts_before_null(self):
        records = [{"id": "n", "v": None}, {"id": "e", "v": []}, {"id": "x", "v": 1}]
        assert [r["id"] for r in sort_records(records, {"v": 1})] == ["e", "n", "x"]

    def test_subdocuments_compare_in_field_order(self):
        records = [{"id": "y", "v": {"b": 1, "a": 0}}, {"id": "x", "v": {"a": 9}}]
        assert [r["id"] for r in sort_records(records, {"v": 1})] == ["x", "y"]

    def test_find_options_defaults_and_validation(self):
        assert FindOptions().sort == [("date_added", 1)]
        with pytest.raises(ValueError):
            FindOptions(skip=-1)
