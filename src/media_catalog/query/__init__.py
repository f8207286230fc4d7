"""Canonical query model and the in-memory engine that evaluates it."""

from media_catalog.query.engine import QueryEngine
from media_catalog.query.filters import MISSING, build_filter, deep_get
from media_catalog.query.pipeline import parse_pipeline, to_mongo
from media_catalog.query.ranges import NumericRange, parse_range, require_range
from media_catalog.query.sorting import ASCENDING, DEFAULT_SORT, DESCENDING, FindOptions, sort_records

__all__ = [
    "QueryEngine",
    "MISSING",
    "build_filter",
    "deep_get",
    "parse_pipeline",
    "to_mongo",
    "NumericRange",
    "parse_range",
    "require_range",
    "ASCENDING",
    "DESCENDING",
    "DEFAULT_SORT",
    "FindOptions",
    "sort_records",
]
