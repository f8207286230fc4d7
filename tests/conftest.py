"""Shared fixtures: record datasets, an async wrapper over mongomock, a fake clock."""
import asyncio
import copy
from datetime import datetime, timezone

import mongomock
import pytest
from pymongo.errors import ServerSelectionTimeoutError

from media_catalog.db.connection import ConnectionStatus
from media_catalog.query.engine import QueryEngine
from media_catalog.resilience.circuit_breaker import CircuitBreakerRegistry
from media_catalog.settings import CircuitBreakerSettings
from media_catalog.snapshot import SnapshotStore
from media_catalog.utils.reproducibility import get_rng
from api.repositories.mongo import MongoRecordsRepository
from api.repositories.static import StaticRecordsRepository


def _ts(day: int) -> datetime:
    return datetime(2024, 1, day, 12, 0, tzinfo=timezone.utc)


CATALOG = [
    {
        "id": "r1", "title": "Alpine Morning Call", "year": 2019, "date_added": _ts(1),
        "goat": {"breed": "Alpine"}, "audio": {"intensity": 6, "duration": 2.4, "category": "short_burst"},
        "tags": ["morning", "farm"], "remix_count": 4, "source_type": "farm_recording",
        "analysis": {"primary_note": "G#5"}, "approved": True,
    },
    {
        "id": "r2", "title": "The Nubian Aria", "year": 2020, "date_added": _ts(2),
        "goat": {"breed": "Nubian"}, "audio": {"intensity": 9, "duration": 6.1, "category": "melodic"},
        "tags": ["viral", "opera", "loud"], "remix_count": 31, "source_type": "viral_video",
        "media": {"video": {"720p": "https://cdn.example.org/r2.mp4"}},
        "context": "a goat holding a note", "approved": True,
    },
    {
        "id": "r3", "title": "Pygmy Protest", "year": 2020, "date_added": _ts(3),
        "goat": {"breed": None}, "audio": {"intensity": 7, "duration": 1.2, "category": "multiple"},
        "tags": ["meme", "loud"], "remix_count": 12, "source_type": "meme", "approved": True,
    },
    {
        "id": "r4", "title": "Quiet Bleat at Dusk", "year": 2021, "date_added": _ts(4),
        "goat": {"breed": ""}, "audio": {"intensity": 2, "duration": 3.0, "category": "prolonged"},
        "tags": ["evening"], "remix_count": 0, "source_type": "farm_recording",
        "analysis": {"primary_note": "c4"}, "approved": True,
    },
    {
        "id": "r5", "title": "Trailer Scream", "year": 2018, "date_added": _ts(5),
        "goat": {"breed": "Nubian"}, "audio": {"intensity": 10, "duration": 1.8, "category": "short_burst"},
        "tags": ["movie", "loud"], "remix_count": 22, "source_type": "movie",
        "media": {"video": {"1080p": "https://cdn.example.org/r5.mp4"}}, "approved": True,
    },
    {
        "id": "r6", "title": "Unreviewed Submission", "year": 2022, "date_added": _ts(6),
        "goat": {"breed": "Alpine"}, "audio": {"intensity": 5, "duration": 2.0, "category": "short_burst"},
        "tags": ["farm"], "remix_count": 0, "source_type": "user_submission", "approved": False,
    },
    {
        "id": "r7", "title": "Alpine Echo", "year": 2021, "date_added": _ts(7),
        "goat": {"breed": "Alpine"}, "audio": {"intensity": 6, "duration": 4.5, "category": "prolonged"},
        "tags": ["farm", "echo"], "remix_count": 4, "source_type": "farm_recording", "approved": True,
    },
]

YEARS_FIXTURE = [
    {"id": "y1", "year": 2019, "approved": True, "date_added": _ts(1)},
    {"id": "y2", "year": 2020, "approved": True, "date_added": _ts(2)},
    {"id": "y3", "year": 2020, "approved": True, "date_added": _ts(3)},
    {"id": "y4", "year": 2021, "approved": True, "date_added": _ts(4)},
]


class AsyncCursor:
    """Async facade over a mongomock cursor (sort/skip/limit chain, awaitable to_list)"""

    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, spec):
        self._cursor = self._cursor.sort(spec)
        return self

    def skip(self, n):
        self._cursor = self._cursor.skip(n)
        return self

    def limit(self, n):
        self._cursor = self._cursor.limit(n)
        return self

    async def to_list(self, length=None):
        docs = list(self._cursor)
        return docs if length is None else docs[:length]


class AsyncCollection:
    """The subset of pymongo's AsyncCollection the repository uses, backed by mongomock"""

    def __init__(self, collection):
        self._collection = collection
        self.name = collection.name

    def find(self, filter=None, projection=None):
        return AsyncCursor(self._collection.find(filter, projection))

    async def find_one(self, filter=None, projection=None):
        return self._collection.find_one(filter, projection)

    async def aggregate(self, pipeline):
        return AsyncCursor(self._collection.aggregate(pipeline))

    async def count_documents(self, filter):
        return self._collection.count_documents(filter)

    async def distinct(self, key, filter=None):
        return self._collection.distinct(key, filter)

    async def update_one(self, filter, update, upsert=False):
        return self._collection.update_one(filter, update, upsert=upsert)


class DownCollection:
    """Every call fails the way the driver does when no server is reachable"""

    name = "records"

    def find(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers")

    async def find_one(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers")

    async def count_documents(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers")


class SlowCollection:
    name = "records"

    async def count_documents(self, *args, **kwargs):
        await asyncio.sleep(5)
        return 0


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeConnection:
    """Stands in for MongoConnection: a switchable `connected` flag over a mongomock collection"""

    def __init__(self, collection=None, connected: bool = True):
        self._collection = collection
        self.connected = connected

    async def connect(self):
        return self.status()

    def has_client(self) -> bool:
        return self._collection is not None

    def collection(self):
        return self._collection

    def is_connected(self) -> bool:
        return self.connected

    def status(self):
        return ConnectionStatus(connected=self.connected, uri="mongodb://localhost/test" if self._collection is not None else None)

    async def close(self):
        self.connected = False


def make_async_collection(records, name: str = "records") -> AsyncCollection:
    collection = mongomock.MongoClient().db[name]
    if records:
        # insert_many adds _id to the documents it is given
        collection.insert_many(copy.deepcopy(list(records)))
    return AsyncCollection(collection)


@pytest.fixture
def catalog():
    return copy.deepcopy(CATALOG)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def registry(fake_clock):
    settings = CircuitBreakerSettings(
        enabled=True, timeout=1.0, error_threshold_percentage=50.0, reset_timeout=30.0, window_size=5
    )
    return CircuitBreakerRegistry(settings, clock=fake_clock)


@pytest.fixture
def static_repo(catalog):
    store = SnapshotStore.from_records(catalog)
    return StaticRecordsRepository(store, QueryEngine(strict=True), rng=get_rng(7))


@pytest.fixture
def mongo_collection(catalog):
    return make_async_collection(catalog)


@pytest.fixture
def mongo_repo(mongo_collection, registry):
    return MongoRecordsRepository(mongo_collection, registry.get_or_create("mongodb"))
