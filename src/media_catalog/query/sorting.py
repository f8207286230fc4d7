"""
Sort specifications and a stable multi-key sort over plain records.

Values of different types are ordered the way the primary store orders BSON
types, so a sort over a field that is sometimes missing or null produces the
same sequence on both backends.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from media_catalog.query.filters import MISSING, deep_get

ASCENDING = 1
DESCENDING = -1

SortSpec = List[Tuple[str, int]]
RawSort = Union[Mapping[str, int], Sequence[Tuple[str, int]], None]

# Creation timestamp is the default ordering key
DEFAULT_SORT: SortSpec = [("date_added", ASCENDING)]


def normalize_sort(spec: RawSort) -> SortSpec:
    """Accept {"year": -1} or [("year", -1)] and return a list of pairs"""
    if not spec:
        return []
    items = spec.items() if isinstance(spec, Mapping) else spec
    normalized: SortSpec = []
    for name, direction in items:
        if direction not in (ASCENDING, DESCENDING):
            raise ValueError(f"Sort direction for '{name}' must be 1 or -1, got {direction!r}")
        normalized.append((name, int(direction)))
    return normalized


def _type_rank(value: Any) -> int:
    if value is MISSING or value is None:
        return 0
    if isinstance(value, bool):
        return 5
    if isinstance(value, (int, float)):
        return 1
    if isinstance(value, str):
        return 2
    if isinstance(value, dict):
        return 3
    if isinstance(value, (list, tuple)):
        return 4
    if isinstance(value, datetime):
        return 6
    return 7


def _value_key(value: Any) -> Tuple[int, Any]:
    rank = _type_rank(value)
    if rank == 0:
        return (0, 0)
    if rank == 3:
        # Subdocuments compare field by field in stored order
        pairs = []
        for name, item in value.items():
            item_key = _value_key(item)
            pairs.append((item_key[0], name, item_key))
        return (rank, pairs)
    if rank == 4:
        return (rank, [_value_key(v) for v in value])
    if rank == 6 and value.tzinfo is None:
        return (rank, value.replace(tzinfo=timezone.utc))
    if rank == 7:
        return (rank, str(value))
    return (rank, value)


def sort_key(value: Any, direction: int = ASCENDING) -> Tuple[int, Any]:
    """
    Key for one sort field.

    An array field sorts by its smallest element when ascending and by its
    largest when descending. An empty array sorts before null.
    """
    if isinstance(value, (list, tuple)):
        if not value:
            return (-1, 0)
        keys = [_value_key(v) for v in value]
        return min(keys) if direction == ASCENDING else max(keys)
    return _value_key(value)


def sort_records(records: Iterable[Dict[str, Any]], spec: RawSort) -> List[Dict[str, Any]]:
    """
    Stable multi-key sort.

    Sorting once per key from the least significant to the most significant
    keeps earlier orderings for ties; the final tie-break is input order.
    """
    result = list(records)
    for name, direction in reversed(normalize_sort(spec)):
        result.sort(key=lambda doc: sort_key(deep_get(doc, name), direction), reverse=direction == DESCENDING)
    return result


@dataclass
class FindOptions:
    """Sort, pagination and projection for `find`"""

    sort: RawSort = field(default_factory=lambda: list(DEFAULT_SORT))
    skip: Optional[int] = None
    limit: Optional[int] = None
    projection: Optional[Dict[str, int]] = None

    def __post_init__(self):
        if self.skip is not None and self.skip < 0:
            raise ValueError("skip must be >= 0")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be >= 0")
