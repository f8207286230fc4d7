"""
Canonical filter construction.

Turns raw request parameters into one backend-neutral filter document that
both the primary store and the in-memory engine evaluate identically.
"""

import re
from typing import Any, Dict, List, Optional

from media_catalog.errors import ValidationError
from media_catalog.query.ranges import range_condition, require_range


class _Missing:
    """Sentinel for a path that does not resolve (distinct from a stored None)"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()

# Fields searched by the free-text `q` parameter
TEXT_FIELDS = ("title", "context", "source.title", "tags")

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")
_TRUE_WORDS = {"true", "1", "yes", "y"}
_FALSE_WORDS = {"false", "0", "no", "n"}


def deep_get(doc: Any, path: str) -> Any:
    """
    Resolve a dotted path; any missing or non-mapping intermediate yields MISSING.

    >>> deep_get({"audio": {"intensity": 7}}, "audio.intensity")
    7
    >>> deep_get({"audio": None}, "audio.intensity")
    MISSING
    """
    current = doc
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return MISSING
        current = current[key]
    return current


def escape_regex(text: Any) -> str:
    """Escape user input so it is matched literally (no ReDoS via crafted patterns)"""
    return re.escape(str(text))


def parse_boolean(value: Any, fallback: bool = False) -> bool:
    if value is None:
        return fallback
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_WORDS:
            return True
        if normalized in _FALSE_WORDS:
            return False
    return fallback


def tokenize(text: Any) -> List[str]:
    return [t for t in _TOKEN_SPLIT.split(str(text or "").lower()) if t]


def split_tags(raw: Optional[str]) -> List[str]:
    """Comma-separated tag list, trimmed and lower-cased for matching"""
    if not raw:
        return []
    return [t.strip().lower() for t in raw.split(",") if t.strip()]


def tag_patterns(tags: List[str]) -> List["re.Pattern[str]"]:
    """Whole-tag, case-insensitive matchers; stored tags keep their original case"""
    return [re.compile(f"^{escape_regex(tag)}$", re.IGNORECASE) for tag in tags]


def _parse_year(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError("Invalid year. Expected an integer", details={"field": "year", "value": raw})
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ValidationError(
            "Invalid year. Expected an integer",
            details={"field": "year", "value": raw},
        ) from None


def build_filter(
    q: Optional[str] = None,
    intensity_range: Optional[str] = None,
    duration_range: Optional[str] = None,
    years: Optional[str] = None,
    year: Optional[Any] = None,
    breed: Optional[str] = None,
    category: Optional[str] = None,
    source_type: Optional[str] = None,
    meme_status: Optional[str] = None,
    note: Optional[str] = None,
    tags: Optional[str] = None,
    exclude_tags: Optional[str] = None,
    has_video: Optional[Any] = None,
    include_unapproved: bool = False,
) -> Dict[str, Any]:
    """
    Build a canonical filter from request parameters.

    Absent/empty parameters add no condition. Malformed numeric input raises
    ValidationError instead of silently widening the query.
    """
    base: Dict[str, Any] = {}
    clauses: List[Dict[str, Any]] = []

    if not include_unapproved:
        base["approved"] = True

    for param, field, raw in (
        ("intensity_range", "audio.intensity", intensity_range),
        ("duration_range", "audio.duration", duration_range),
        ("years", "year", years),
    ):
        rng = require_range(param, raw)
        if rng is not None:
            base[field] = range_condition(rng)

    if year is not None and year != "":
        if "year" in base:
            clauses.append({"year": _parse_year(year)})
        else:
            base["year"] = _parse_year(year)

    if source_type:
        base["source_type"] = source_type
    if meme_status:
        base["meme_status"] = meme_status
    if category:
        base["audio.category"] = category
    if breed:
        base["goat.breed"] = {"$regex": escape_regex(breed), "$options": "i"}
    if note:
        base["analysis.primary_note"] = {"$regex": f"^{escape_regex(note)}$", "$options": "i"}

    if q:
        terms = tokenize(q)
        if terms:
            pattern = "|".join(terms)
            clauses.append({"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in TEXT_FIELDS]})

    need = split_tags(tags)
    if need:
        clauses.append({"tags": {"$in": tag_patterns(need)}})
    ban = split_tags(exclude_tags)
    if ban:
        clauses.append({"tags": {"$nin": tag_patterns(ban)}})

    if has_video is not None and has_video != "":
        clauses.append({"media.video": {"$exists": parse_boolean(has_video)}})

    if not clauses:
        return base
    return {"$and": [base, *clauses]} if base else {"$and": clauses}
