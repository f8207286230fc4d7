"""
Static Repository - Snapshot-backed fallback

Answers the repository contract from the in-memory snapshot using the
QueryEngine. The snapshot is shared by every request, so nothing leaves this
class without being deep-copied first.
"""

import copy
import logging
from typing import Any, List, Mapping, Optional

import numpy as np

from media_catalog.query.engine import QueryEngine
from media_catalog.query.filters import MISSING, deep_get
from media_catalog.query.pipeline import RawPipeline
from media_catalog.query.sorting import DEFAULT_SORT, FindOptions, sort_records
from media_catalog.snapshot import SnapshotStore
from media_catalog.utils.reproducibility import get_rng
from api.repositories.base import BaseRepository, Filter, Record, UpdateSummary
from api.repositories.mongo import DEFAULT_PROJECTION

logger = logging.getLogger(__name__)


def _already_seen(value: Any, seen: List[Any]) -> bool:
    # `True == 1` in Python but not in the primary store
    return any(type(value) is type(s) and value == s for s in seen)


class StaticRecordsRepository(BaseRepository):
    """Repository implementation over the immutable snapshot"""

    backend = "static"

    def __init__(
        self,
        store: SnapshotStore,
        engine: Optional[QueryEngine] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.store = store
        self.engine = engine or QueryEngine()
        self.rng = rng if rng is not None else get_rng()

    def _matching(self, filter: Optional[Filter]) -> List[Record]:
        return self.engine.filter_records(self.store.get_records(), filter)

    def _project(self, records: List[Record], projection: Optional[Mapping[str, int]] = None) -> List[Record]:
        merged = dict(DEFAULT_PROJECTION)
        if projection:
            merged.update(projection)
        return [self.engine.apply_projection(r, merged) for r in records]

    async def find(self, filter: Optional[Filter] = None, options: Optional[FindOptions] = None) -> List[Record]:
        options = options or FindOptions()
        sort = options.sort if options.sort is not None else DEFAULT_SORT
        results = sort_records(self._matching(filter), sort)
        # skip/limit of 0 mean "none", as in the primary store
        if options.skip:
            results = results[options.skip:]
        if options.limit:
            results = results[: options.limit]
        return self._project(results, options.projection)

    async def find_by_id(self, record_id: str) -> Optional[Record]:
        query = {"id": record_id, "approved": True}
        for record in self.store.get_records():
            if self.engine.matches(record, query):
                return self._project([record])[0]
        return None

    async def find_random(self, filter: Optional[Filter] = None, n: int = 1) -> List[Record]:
        """Sample without replacement: draw an index from the remaining pool, remove it, repeat"""
        pool = self._matching(filter)
        picked: List[Record] = []
        while pool and len(picked) < n:
            picked.append(pool.pop(int(self.rng.integers(len(pool)))))
        return self._project(picked)

    async def count(self, filter: Optional[Filter] = None) -> int:
        return len(self._matching(filter))

    async def aggregate(self, pipeline: RawPipeline) -> List[Record]:
        results = self.engine.run_pipeline(self.store.get_records(), pipeline)
        return [copy.deepcopy(doc) for doc in results]

    async def distinct(self, field: str, filter: Optional[Filter] = None) -> List[Any]:
        values: List[Any] = []
        for record in self._matching(filter):
            value = deep_get(record, field)
            if value is MISSING:
                continue
            for item in value if isinstance(value, list) else [value]:
                if item is None or item == "" or _already_seen(item, values):
                    continue
                values.append(copy.deepcopy(item))
        return values

    async def update_one(self, filter: Filter, update: Mapping[str, Any]) -> UpdateSummary:
        logger.warning(f"update_one ignored: the static snapshot is read-only (filter={dict(filter)})")
        return UpdateSummary()
