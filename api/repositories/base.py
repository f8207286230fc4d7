"""
Base Repository - Abstract interface for record access

This defines the contract that both the primary store adapter and the static
snapshot repository follow. The rest of the API depends only on this class,
never on which implementation answered a call.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from media_catalog.errors import AppError
from media_catalog.query.pipeline import RawPipeline
from media_catalog.query.sorting import FindOptions
from media_catalog.result import Failed, Found, LookupResult, NotFound

Record = Dict[str, Any]
Filter = Mapping[str, Any]


@dataclass(frozen=True)
class UpdateSummary:
    matched_count: int = 0
    modified_count: int = 0
    upserted_count: int = 0


class BaseRepository(ABC):
    """Abstract base class for record repositories"""

    #: Short backend label reported by health endpoints
    backend: str = "unknown"

    @abstractmethod
    async def find(self, filter: Optional[Filter] = None, options: Optional[FindOptions] = None) -> List[Record]:
        """
        Get records matching a canonical filter.

        Args:
            filter: Canonical filter (None matches everything)
            options: Sort, skip, limit and projection. Skip/limit apply after sorting.

        Returns:
            Matching records; an empty list is a valid result
        """

    @abstractmethod
    async def find_by_id(self, record_id: str) -> Optional[Record]:
        """
        Get the approved record with this id.

        Returns:
            The record, or None when no approved record has that id
        """

    @abstractmethod
    async def find_random(self, filter: Optional[Filter] = None, n: int = 1) -> List[Record]:
        """
        Get up to `n` distinct matching records in no particular order.

        Returns all matches when fewer than `n` exist.
        """

    @abstractmethod
    async def count(self, filter: Optional[Filter] = None) -> int:
        pass

    @abstractmethod
    async def aggregate(self, pipeline: RawPipeline) -> List[Record]:
        """Run a pipeline built from match/group/sort/limit/unwind stages"""

    @abstractmethod
    async def distinct(self, field: str, filter: Optional[Filter] = None) -> List[Any]:
        """Unique values of `field` among matching records, without None or empty strings"""

    @abstractmethod
    async def update_one(self, filter: Filter, update: Mapping[str, Any]) -> UpdateSummary:
        pass

    async def lookup(self, record_id: str) -> LookupResult:
        """
        `find_by_id` folded into a result value.

        Dependency errors become Failed instead of propagating, so callers can
        tell "absent" from "could not ask".
        """
        try:
            record = await self.find_by_id(record_id)
        except AppError as e:
            return Failed(e)
        if record is None:
            return NotFound()
        return Found(record)
