"""
Immutable record snapshot backing the fallback repository.

Loaded once on first use from the configured snapshot file, or from the sample
dataset bundled with the package when that file is missing or unreadable.
`reload()` exists for operators; request handling never triggers it.
"""

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from media_catalog.io.readers import read_records

logger = logging.getLogger(__name__)

BUNDLED_SNAPSHOT = Path(__file__).parent / "data" / "sample_records.json"

Record = Dict[str, Any]


def _parse_timestamp(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    # Timestamps without an offset are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_records(raw: Iterable[Any]) -> Tuple[Record, ...]:
    """
    Validate and normalize raw snapshot entries.

    - every record must be a mapping with a non-empty string `id`
    - `approved` defaults to True
    - ISO `date_added` strings become datetimes, as the primary store returns them
    """
    records = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValueError(f"snapshot entry {index} is not an object")
        record_id = entry.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ValueError(f"snapshot entry {index} has no string 'id'")

        record = dict(entry)
        record.pop("_id", None)
        if record.get("approved") is None:
            record["approved"] = True
        if "date_added" in record:
            record["date_added"] = _parse_timestamp(record["date_added"])
        records.append(record)
    return tuple(records)


class SnapshotStore:
    """Lazy, memoized holder of the snapshot records"""

    def __init__(self, path: Optional[Path] = None, bundled_path: Path = BUNDLED_SNAPSHOT):
        self.path = Path(path) if path is not None else None
        self.bundled_path = bundled_path
        self._records: Optional[Tuple[Record, ...]] = None
        self._source: Optional[str] = None
        self._lock = threading.Lock()

    @classmethod
    def from_records(cls, records: Iterable[Any], source: str = "memory") -> "SnapshotStore":
        """Store pre-populated with in-memory records (tests, tooling)"""
        store = cls(path=None)
        store._records = normalize_records(records)
        store._source = source
        return store

    @property
    def loaded(self) -> bool:
        return self._records is not None

    @property
    def source(self) -> str:
        self.get_records()
        return self._source or "unknown"

    def get_records(self) -> Tuple[Record, ...]:
        """All snapshot records. Callers must copy before handing records out."""
        if self._records is None:
            with self._lock:
                if self._records is None:
                    self._load()
        return self._records

    def reload(self) -> Tuple[Record, ...]:
        with self._lock:
            self._records = None
            self._source = None
            self._load()
        return self._records

    def _load(self) -> None:
        if self.path is not None:
            if self.path.exists():
                try:
                    self._records = normalize_records(read_records(self.path))
                    self._source = str(self.path)
                    logger.info(f"Loaded {len(self._records)} snapshot records from {self.path}")
                    return
                except (OSError, ValueError) as e:
                    logger.warning(
                        f"Failed to read snapshot file {self.path}: {e}. Falling back to bundled sample dataset"
                    )
            else:
                logger.warning(f"Snapshot file not found: {self.path}. Falling back to bundled sample dataset")

        self._records = normalize_records(read_records(self.bundled_path))
        self._source = str(self.bundled_path)
        logger.info(f"Loaded {len(self._records)} snapshot records from bundled dataset")
