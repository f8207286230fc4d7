"""
Aggregation pipeline vocabulary shared by both backends.

Only five stages exist: match, group, sort, limit and unwind. Each is a small
tagged dataclass; `parse_pipeline` reads the primary store's native dict form
and `to_mongo` writes it back, so callers may use either representation.
Anything outside this set raises UnsupportedQueryError at parse time.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from media_catalog.errors import UnsupportedQueryError
from media_catalog.query.sorting import SortSpec, normalize_sort


def _field_ref(value: Any, where: str) -> str:
    """'$audio.intensity' -> 'audio.intensity'"""
    if not isinstance(value, str) or not value.startswith("$") or len(value) < 2:
        raise UnsupportedQueryError(f"{where} expects a '$field' reference, got {value!r}", construct=where)
    return value[1:]


# ---- group keys ----

@dataclass(frozen=True)
class FieldKey:
    path: str


@dataclass(frozen=True)
class LowerKey:
    """Group on the lower-cased string value of a field"""

    path: str


@dataclass(frozen=True)
class ConstantKey:
    value: Any = None


GroupKey = Union[FieldKey, LowerKey, ConstantKey]


# ---- accumulators ----

@dataclass(frozen=True)
class SumAccumulator:
    """{"$sum": 1} counts documents, {"$sum": "$field"} totals a numeric field"""

    amount: Union[int, float] = 1
    path: Optional[str] = None


@dataclass(frozen=True)
class FirstAccumulator:
    path: str


Accumulator = Union[SumAccumulator, FirstAccumulator]


# ---- stages ----

@dataclass(frozen=True)
class MatchStage:
    filter: Dict[str, Any]


@dataclass(frozen=True)
class GroupStage:
    key: GroupKey
    accumulators: Dict[str, Accumulator] = field(default_factory=dict)


@dataclass(frozen=True)
class SortStage:
    spec: SortSpec


@dataclass(frozen=True)
class LimitStage:
    count: int


@dataclass(frozen=True)
class UnwindStage:
    path: str


Stage = Union[MatchStage, GroupStage, SortStage, LimitStage, UnwindStage]
RawPipeline = Sequence[Union[Stage, Mapping[str, Any]]]


def _parse_group_key(raw: Any) -> GroupKey:
    if isinstance(raw, str) and raw.startswith("$"):
        return FieldKey(_field_ref(raw, "$group._id"))
    if isinstance(raw, Mapping):
        if set(raw) == {"$toLower"}:
            return LowerKey(_field_ref(raw["$toLower"], "$toLower"))
        raise UnsupportedQueryError(f"Unsupported $group key expression: {dict(raw)!r}", construct="$group._id")
    return ConstantKey(raw)


def _parse_accumulator(name: str, raw: Any) -> Accumulator:
    if not isinstance(raw, Mapping) or len(raw) != 1:
        raise UnsupportedQueryError(f"Accumulator '{name}' must have exactly one operator", construct=name)
    (op, arg), = raw.items()
    if op == "$sum":
        if isinstance(arg, bool) or not isinstance(arg, (int, float, str)):
            raise UnsupportedQueryError(f"Unsupported $sum argument: {arg!r}", construct="$sum")
        if isinstance(arg, str):
            return SumAccumulator(path=_field_ref(arg, "$sum"))
        return SumAccumulator(amount=arg)
    if op == "$first":
        return FirstAccumulator(_field_ref(arg, "$first"))
    raise UnsupportedQueryError(f"Unsupported accumulator: {op}", construct=op)


def parse_stage(raw: Union[Stage, Mapping[str, Any]]) -> Stage:
    if isinstance(raw, (MatchStage, GroupStage, SortStage, LimitStage, UnwindStage)):
        return raw
    if not isinstance(raw, Mapping) or len(raw) != 1:
        raise UnsupportedQueryError(f"A pipeline stage must be a single-key mapping, got {raw!r}")

    (name, body), = raw.items()
    if name == "$match":
        return MatchStage(dict(body))
    if name == "$group":
        body = dict(body)
        if "_id" not in body:
            raise UnsupportedQueryError("$group requires an _id", construct="$group")
        key = _parse_group_key(body.pop("_id"))
        return GroupStage(key, {k: _parse_accumulator(k, v) for k, v in body.items()})
    if name == "$sort":
        return SortStage(normalize_sort(body))
    if name == "$limit":
        if isinstance(body, bool) or not isinstance(body, int) or body <= 0:
            raise UnsupportedQueryError(f"$limit must be a positive integer, got {body!r}", construct="$limit")
        return LimitStage(body)
    if name == "$unwind":
        path = body.get("path") if isinstance(body, Mapping) else body
        return UnwindStage(_field_ref(path, "$unwind"))
    raise UnsupportedQueryError(f"Unsupported aggregation stage: {name}", construct=name)


def parse_pipeline(raw: RawPipeline) -> List[Stage]:
    return [parse_stage(stage) for stage in raw]


def _group_key_to_mongo(key: GroupKey) -> Any:
    if isinstance(key, FieldKey):
        return f"${key.path}"
    if isinstance(key, LowerKey):
        return {"$toLower": f"${key.path}"}
    return key.value


def _accumulator_to_mongo(acc: Accumulator) -> Dict[str, Any]:
    if isinstance(acc, SumAccumulator):
        return {"$sum": f"${acc.path}" if acc.path else acc.amount}
    return {"$first": f"${acc.path}"}


def stage_to_mongo(stage: Stage) -> Dict[str, Any]:
    if isinstance(stage, MatchStage):
        return {"$match": stage.filter}
    if isinstance(stage, GroupStage):
        body: Dict[str, Any] = {"_id": _group_key_to_mongo(stage.key)}
        body.update({name: _accumulator_to_mongo(acc) for name, acc in stage.accumulators.items()})
        return {"$group": body}
    if isinstance(stage, SortStage):
        return {"$sort": dict(stage.spec)}
    if isinstance(stage, LimitStage):
        return {"$limit": stage.count}
    return {"$unwind": f"${stage.path}"}


def to_mongo(stages: RawPipeline) -> List[Dict[str, Any]]:
    """Native pipeline for the primary store (validates raw dict input too)"""
    return [stage_to_mongo(stage) for stage in parse_pipeline(stages)]
