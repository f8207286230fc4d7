"""
API Repositories - Record access abstraction layer

Two interchangeable implementations of one contract: the primary store
adapter and the static snapshot fallback. The selector decides per call
which one answers.

Pattern: Repository Pattern
"""

from api.repositories.base import BaseRepository, UpdateSummary
from api.repositories.mongo import MongoRecordsRepository
from api.repositories.selector import RepositoryProvider, select_repository
from api.repositories.static import StaticRecordsRepository

__all__ = [
    "BaseRepository",
    "UpdateSummary",
    "MongoRecordsRepository",
    "StaticRecordsRepository",
    "RepositoryProvider",
    "select_repository",
]
