"""
Mongo Repository - Primary store adapter

Executes canonical queries against the records collection. Every call goes
through the named "mongodb" circuit breaker, so a slow or failing primary
store turns into fast CircuitOpenError rejections instead of hung requests.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from pymongo.errors import PyMongoError

from media_catalog.errors import DatabaseError, UnsupportedQueryError
from media_catalog.query.pipeline import RawPipeline, parse_stage, stage_to_mongo
from media_catalog.query.sorting import DEFAULT_SORT, FindOptions, normalize_sort
from media_catalog.resilience.circuit_breaker import AnyBreaker, CircuitState
from api.repositories.base import BaseRepository, Filter, Record, UpdateSummary

logger = logging.getLogger(__name__)

DEFAULT_PROJECTION: Dict[str, int] = {"_id": 0}

# $sample draws per find_random call
SAMPLE_ATTEMPTS = 3


def _projection(extra: Optional[Mapping[str, int]]) -> Dict[str, int]:
    projection = dict(DEFAULT_PROJECTION)
    if extra:
        projection.update(extra)
    return projection


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


class MongoRecordsRepository(BaseRepository):
    """Repository implementation over a PyMongo AsyncCollection"""

    backend = "mongodb"

    def __init__(self, collection, breaker: AnyBreaker, strict: bool = True):
        self.collection = collection
        self.breaker = breaker
        self.strict = strict
        logger.info(f"MongoRecordsRepository initialized (collection={getattr(collection, 'name', '?')})")

    async def _run(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        """Run one store call under the breaker; driver errors become DatabaseError"""

        async def guarded():
            try:
                return await call()
            except PyMongoError as e:
                logger.error(f"MongoDB {operation} failed: {e}")
                raise DatabaseError(f"Database operation '{operation}' failed", operation=operation) from e

        return await self.breaker.call(guarded)

    def circuit_state(self) -> CircuitState:
        return self.breaker.state

    async def find(self, filter: Optional[Filter] = None, options: Optional[FindOptions] = None) -> List[Record]:
        options = options or FindOptions()
        sort = normalize_sort(options.sort) if options.sort is not None else list(DEFAULT_SORT)

        async def call():
            cursor = self.collection.find(dict(filter or {}), _projection(options.projection))
            if sort:
                cursor = cursor.sort(sort)
            if options.skip:
                cursor = cursor.skip(options.skip)
            if options.limit:
                cursor = cursor.limit(options.limit)
            return await cursor.to_list(None)

        return await self._run("find", call)

    async def find_by_id(self, record_id: str) -> Optional[Record]:
        return await self._run(
            "find_by_id",
            lambda: self.collection.find_one({"id": record_id, "approved": True}, DEFAULT_PROJECTION),
        )

    async def find_random(self, filter: Optional[Filter] = None, n: int = 1) -> List[Record]:
        """
        Up to `n` distinct records.

        $sample may return a document more than once on large collections, so
        repeats are dropped and the shortfall is drawn again excluding the ids
        already taken.
        """
        if n <= 0:
            return []
        match = dict(filter or {})

        async def call():
            records: List[Record] = []
            seen = set()
            for _ in range(SAMPLE_ATTEMPTS):
                wanted = n - len(records)
                query = {"$and": [match, {"id": {"$nin": sorted(seen)}}]} if seen else match
                pipeline = [{"$match": query}, {"$sample": {"size": wanted}}, {"$project": DEFAULT_PROJECTION}]
                cursor = await self.collection.aggregate(pipeline)
                batch = await cursor.to_list(None)
                repeats = 0
                for doc in batch:
                    if doc.get("id") in seen:
                        repeats += 1
                        continue
                    seen.add(doc.get("id"))
                    records.append(doc)
                # A short batch without repeats means the pool is exhausted
                if len(records) >= n or not repeats:
                    break
            return records[:n]

        return await self._run("find_random", call)

    async def count(self, filter: Optional[Filter] = None) -> int:
        return await self._run("count", lambda: self.collection.count_documents(dict(filter or {})))

    def _native_pipeline(self, pipeline: RawPipeline) -> List[Dict[str, Any]]:
        native = []
        for raw in pipeline:
            try:
                native.append(stage_to_mongo(parse_stage(raw)))
            except UnsupportedQueryError:
                if self.strict or not isinstance(raw, Mapping):
                    raise
                native.append(dict(raw))
        return native

    async def aggregate(self, pipeline: RawPipeline) -> List[Record]:
        native = self._native_pipeline(pipeline)

        async def call():
            cursor = await self.collection.aggregate(native)
            return await cursor.to_list(None)

        return await self._run("aggregate", call)

    async def distinct(self, field: str, filter: Optional[Filter] = None) -> List[Any]:
        values = await self._run("distinct", lambda: self.collection.distinct(field, dict(filter or {})))
        return [v for v in values if not _is_blank(v)]

    async def update_one(self, filter: Filter, update: Mapping[str, Any]) -> UpdateSummary:
        result = await self._run("update_one", lambda: self.collection.update_one(dict(filter), dict(update)))
        return UpdateSummary(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_count=1 if result.upserted_id is not None else 0,
        )
