"""
In-memory query engine.

Evaluates canonical filters, projections and aggregation pipelines over plain
dict records with the same observable semantics as the primary document
store, so the static snapshot can answer any query the primary can.

Notable rules (all mirror the primary store):
    - equality against an array field matches when any element is equal
    - ``{"field": None}`` matches both null and missing fields
    - range operators only compare values of the same type family
    - ``$ne`` and ``$nin`` match documents where the field is missing
    - ``$group`` on a missing key groups under ``None``

In strict mode (dev/test) an operator or stage outside the supported subset
raises UnsupportedQueryError. Otherwise it is logged once and ignored.
"""

import copy
import logging
import operator
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from media_catalog.errors import UnsupportedQueryError
from media_catalog.query.filters import MISSING, deep_get
from media_catalog.query.pipeline import (
    ConstantKey,
    FieldKey,
    FirstAccumulator,
    GroupStage,
    LimitStage,
    LowerKey,
    MatchStage,
    RawPipeline,
    SortStage,
    Stage,
    SumAccumulator,
    UnwindStage,
    parse_stage,
)
from media_catalog.query.sorting import sort_records

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

_COMPARISONS: Dict[str, Callable[[Any, Any], bool]] = {
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
}
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}
_LOGICAL = ("$and", "$or", "$nor")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _same_family(a: Any, b: Any) -> bool:
    if _is_number(a) and _is_number(b):
        return True
    for kind in (str, datetime, bool):
        if isinstance(a, kind) and isinstance(b, kind):
            return True
    return False


def _comparable(value: Any) -> Any:
    # Naive datetimes are UTC, as the driver returns them
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _values_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if isinstance(a, dict) and isinstance(b, dict):
        return list(a.keys()) == list(b.keys()) and all(_values_equal(a[k], b[k]) for k in a)
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(_values_equal(x, y) for x, y in zip(a, b))
    if _is_number(a) and _is_number(b):
        return a == b
    return type(a) is type(b) and _comparable(a) == _comparable(b)


def _candidates(value: Any) -> List[Any]:
    """The value itself plus, for arrays, each element"""
    if isinstance(value, list):
        return [value, *value]
    return [value]


def _freeze(value: Any) -> Any:
    """Hashable stand-in for a group key"""
    if isinstance(value, dict):
        return ("__dict__", tuple((k, _freeze(v)) for k, v in value.items()))
    if isinstance(value, list):
        return ("__list__", tuple(_freeze(v) for v in value))
    if isinstance(value, bool):
        return ("__bool__", value)
    return value


def _set_path(doc: Record, path: str, value: Any) -> Record:
    """Copy of `doc` with `path` replaced; intermediate mappings are copied, never mutated"""
    head, _, rest = path.partition(".")
    result = dict(doc)
    if rest:
        child = doc.get(head)
        result[head] = _set_path(child if isinstance(child, dict) else {}, rest, value)
    else:
        result[head] = value
    return result


def _compile(pattern: Any, options: str = "") -> "re.Pattern[str]":
    if isinstance(pattern, re.Pattern):
        return pattern
    flags = 0
    for letter in options or "":
        flags |= _REGEX_FLAGS.get(letter, 0)
    return re.compile(str(pattern), flags)


class QueryEngine:
    """Filter/projection/aggregation evaluator over in-memory records"""

    def __init__(self, strict: bool = True):
        self.strict = strict
        self._warned: Set[str] = set()

    # ---- unsupported constructs ----

    def _unsupported(self, message: str, construct: str) -> None:
        if self.strict:
            raise UnsupportedQueryError(message, construct=construct)
        if construct not in self._warned:
            self._warned.add(construct)
            logger.warning(f"{message}; ignoring it in the in-memory engine")

    # ---- filters ----

    def matches(self, record: Record, query: Optional[Mapping[str, Any]]) -> bool:
        if not query:
            return True
        for key, condition in query.items():
            if key in _LOGICAL:
                if not self._match_logical(record, key, condition):
                    return False
            elif key.startswith("$"):
                self._unsupported(f"Unsupported top-level operator: {key}", key)
            elif not self._match_field(deep_get(record, key), condition):
                return False
        return True

    def _match_logical(self, record: Record, op: str, clauses: Any) -> bool:
        if not isinstance(clauses, list) or not clauses:
            raise UnsupportedQueryError(f"{op} expects a non-empty list", construct=op)
        results = (self.matches(record, clause) for clause in clauses)
        if op == "$and":
            return all(results)
        if op == "$or":
            return any(results)
        return not any(results)

    def _match_field(self, value: Any, condition: Any) -> bool:
        if isinstance(condition, re.Pattern):
            return self._match_regex(value, condition)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            return self._match_operators(value, condition)
        return self._equals(value, condition)

    def _equals(self, value: Any, target: Any) -> bool:
        if target is None and (value is MISSING or value is None):
            return True
        if value is MISSING:
            return False
        return any(_values_equal(c, target) for c in _candidates(value))

    def _match_regex(self, value: Any, pattern: Any, options: str = "") -> bool:
        compiled = _compile(pattern, options)
        return any(isinstance(c, str) and compiled.search(c) for c in _candidates(value))

    def _match_in(self, value: Any, targets: Any, op: str) -> bool:
        if not isinstance(targets, (list, tuple, set)):
            raise UnsupportedQueryError(f"{op} expects a list", construct=op)
        for target in targets:
            if isinstance(target, re.Pattern):
                if self._match_regex(value, target):
                    return True
            elif self._equals(value, target):
                return True
        return False

    def _match_operators(self, value: Any, ops: Dict[str, Any]) -> bool:
        for op, arg in ops.items():
            if op == "$options":
                continue  # consumed by $regex
            if op == "$eq":
                ok = self._equals(value, arg)
            elif op == "$ne":
                ok = not self._equals(value, arg)
            elif op in _COMPARISONS:
                compare = _COMPARISONS[op]
                ok = value is not MISSING and any(
                    _same_family(c, arg) and compare(_comparable(c), _comparable(arg)) for c in _candidates(value)
                )
            elif op == "$in":
                ok = self._match_in(value, arg, op)
            elif op == "$nin":
                ok = not self._match_in(value, arg, op)
            elif op == "$exists":
                ok = (value is not MISSING) == bool(arg)
            elif op == "$regex":
                ok = self._match_regex(value, arg, ops.get("$options", ""))
            else:
                self._unsupported(f"Unsupported filter operator: {op}", op)
                ok = True
            if not ok:
                return False
        return True

    def filter_records(self, records: Iterable[Record], query: Optional[Mapping[str, Any]]) -> List[Record]:
        return [r for r in records if self.matches(r, query)]

    # ---- projection ----

    def apply_projection(self, record: Record, projection: Optional[Mapping[str, Any]]) -> Record:
        """Inclusion or exclusion projection over dotted paths; returns a new dict"""
        if not projection:
            return copy.deepcopy(record)

        include = [k for k, v in projection.items() if v and k != "_id"]
        if include:
            result: Record = {}
            if "_id" in record and projection.get("_id", 1):
                result["_id"] = copy.deepcopy(record["_id"])
            for path in include:
                value = deep_get(record, path)
                if value is not MISSING:
                    result = _set_path(result, path, copy.deepcopy(value))
            return result

        result = copy.deepcopy(record)
        for path in (k for k, v in projection.items() if not v):
            *parents, leaf = path.split(".")
            target: Any = result
            for key in parents:
                target = target.get(key) if isinstance(target, dict) else None
            if isinstance(target, dict):
                target.pop(leaf, None)
        return result

    # ---- aggregation ----

    def run_pipeline(self, records: Iterable[Record], pipeline: RawPipeline) -> List[Record]:
        """
        Run stages in order, each on the previous stage's output.

        Output documents may share nested objects with the input; callers that
        hand results out must copy them.
        """
        docs = list(records)
        for raw in pipeline:
            try:
                stage = parse_stage(raw)
            except UnsupportedQueryError as e:
                self._unsupported(str(e), e.construct or "stage")
                continue
            docs = self._run_stage(docs, stage)
        return docs

    def _run_stage(self, docs: List[Record], stage: Stage) -> List[Record]:
        if isinstance(stage, MatchStage):
            return self.filter_records(docs, stage.filter)
        if isinstance(stage, GroupStage):
            return self._group(docs, stage)
        if isinstance(stage, SortStage):
            return sort_records(docs, stage.spec)
        if isinstance(stage, LimitStage):
            return docs[: stage.count]
        if isinstance(stage, UnwindStage):
            return self._unwind(docs, stage.path)
        raise UnsupportedQueryError(f"Unsupported aggregation stage: {stage!r}")

    @staticmethod
    def _group_key(doc: Record, stage: GroupStage) -> Any:
        key = stage.key
        if isinstance(key, FieldKey):
            value = deep_get(doc, key.path)
            return None if value is MISSING else value
        if isinstance(key, LowerKey):
            value = deep_get(doc, key.path)
            if value is MISSING or value is None:
                return ""
            return str(value).lower()
        if isinstance(key, ConstantKey):
            return key.value
        raise UnsupportedQueryError(f"Unsupported group key: {key!r}")

    def _group(self, docs: List[Record], stage: GroupStage) -> List[Record]:
        groups: Dict[Any, Record] = {}
        for doc in docs:
            key = self._group_key(doc, stage)
            token = _freeze(key)
            group = groups.get(token)
            if group is None:
                group = {"_id": key}
                for name, acc in stage.accumulators.items():
                    if isinstance(acc, SumAccumulator):
                        group[name] = 0
                    elif isinstance(acc, FirstAccumulator):
                        value = deep_get(doc, acc.path)
                        group[name] = None if value is MISSING else value
                groups[token] = group

            for name, acc in stage.accumulators.items():
                if isinstance(acc, SumAccumulator):
                    if acc.path is None:
                        group[name] += acc.amount
                    else:
                        value = deep_get(doc, acc.path)
                        if _is_number(value):
                            group[name] += value
        return list(groups.values())

    @staticmethod
    def _unwind(docs: List[Record], path: str) -> List[Record]:
        unwound: List[Record] = []
        for doc in docs:
            value = deep_get(doc, path)
            if value is MISSING or value is None:
                continue
            if isinstance(value, list):
                unwound.extend(_set_path(doc, path, item) for item in value)
            else:
                unwound.append(doc)
        return unwound
