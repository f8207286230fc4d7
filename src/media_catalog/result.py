"""
Lookup outcome for single-record reads.

Repositories return `None` for a missing record; `lookup()` turns that and
dependency failures into one explicit type so callers can pattern-match:

    match await repo.lookup(record_id):
        case Found(record):
            ...
        case NotFound():
            ...
        case Failed(error):
            ...
"""

from dataclasses import dataclass
from typing import Any, Dict, Union


@dataclass(frozen=True, slots=True)
class Found:
    record: Dict[str, Any]


@dataclass(frozen=True, slots=True)
class NotFound:
    pass


@dataclass(frozen=True, slots=True)
class Failed:
    error: Exception


LookupResult = Union[Found, NotFound, Failed]
