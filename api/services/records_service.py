"""
Records Service - Query logic on top of the repository contract

Builds canonical filters from request parameters and asks whichever
repository the provider selects. Never knows which backend answered beyond
reporting its name.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from media_catalog.errors import NotFoundError
from media_catalog.query.filters import build_filter
from media_catalog.query.sorting import ASCENDING, DESCENDING, FindOptions
from media_catalog.result import Failed, Found
from api.repositories.selector import RepositoryProvider
from api.schemas.records import RecordSearchParams

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
MAX_RANDOM = 50

# `id` is the final key on every order so ties come out the same on both backends
SORT_SPECS = {
    "intensity": [("audio.intensity", DESCENDING), ("id", ASCENDING)],
    "year": [("year", DESCENDING), ("id", ASCENDING)],
    "duration": [("audio.duration", DESCENDING), ("id", ASCENDING)],
    "date": [("date_added", DESCENDING), ("id", ASCENDING)],
    "relevance": [("remix_count", DESCENDING), ("date_added", DESCENDING), ("id", ASCENDING)],
}

APPROVED = {"approved": True}


def clamp(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = default
    return max(low, min(number, high))


class RecordsService:
    """Catalog read operations for the HTTP layer"""

    def __init__(self, provider: RepositoryProvider):
        self.provider = provider

    async def search(self, params: RecordSearchParams) -> Dict[str, Any]:
        query = build_filter(**params.filter_params())
        limit = clamp(params.limit, 1, MAX_PAGE_SIZE, 20)
        page = clamp(params.page, 1, 2**31, 1)
        options = FindOptions(sort=SORT_SPECS[params.sort_by], skip=(page - 1) * limit, limit=limit)

        repo = self.provider.get()
        items, total = await asyncio.gather(repo.find(query, options), repo.count(query))
        logger.debug(f"search via {repo.backend}: {total} matches, page {page}")
        return {"page": page, "limit": limit, "total": total, "items": items, "backend": repo.backend}

    async def random(self, params: Optional[RecordSearchParams] = None, n: int = 1) -> Dict[str, Any]:
        query = build_filter(**params.filter_params()) if params else dict(APPROVED)
        repo = self.provider.get()
        items = await repo.find_random(query, clamp(n, 1, MAX_RANDOM, 1))
        return {"items": items, "backend": repo.backend}

    async def get(self, record_id: str) -> Dict[str, Any]:
        result = await self.provider.get().lookup(record_id)
        if isinstance(result, Found):
            return result.record
        if isinstance(result, Failed):
            raise result.error
        raise NotFoundError(f"Record '{record_id}' not found", resource="record")

    async def breeds(self) -> List[str]:
        values = await self.provider.get().distinct("goat.breed", APPROVED)
        return sorted((str(v) for v in values), key=str.lower)

    async def tag_stats(self, limit: int = 20) -> List[Dict[str, Any]]:
        pipeline = [
            {"$match": APPROVED},
            {"$unwind": "$tags"},
            {"$group": {"_id": {"$toLower": "$tags"}, "count": {"$sum": 1}}},
            {"$sort": {"count": -1, "_id": 1}},
            {"$limit": clamp(limit, 1, MAX_PAGE_SIZE, 20)},
        ]
        rows = await self.provider.get().aggregate(pipeline)
        return [{"tag": row["_id"], "count": row["count"]} for row in rows if row["_id"]]

    async def year_stats(self) -> List[Dict[str, int]]:
        pipeline = [
            {"$match": APPROVED},
            {"$group": {"_id": "$year", "count": {"$sum": 1}}},
            {"$sort": {"_id": 1}},
        ]
        rows = await self.provider.get().aggregate(pipeline)
        return [{"year": row["_id"], "count": row["count"]} for row in rows if row["_id"] is not None]
