"""
API Dependencies - Application state and FastAPI dependency injection

One AppState per application owns every long-lived collaborator: settings,
the circuit breaker registry, the primary store connection, the snapshot and
both repositories. Tests build their own AppState and pass it to create_app.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, Request

from media_catalog.db.connection import MongoConnection
from media_catalog.query.engine import QueryEngine
from media_catalog.resilience.circuit_breaker import CircuitBreakerRegistry
from media_catalog.settings import Settings, get_settings
from media_catalog.snapshot import SnapshotStore
from media_catalog.utils.reproducibility import get_rng
from api.repositories.mongo import MongoRecordsRepository
from api.repositories.selector import RepositoryProvider
from api.repositories.static import StaticRecordsRepository
from api.services.records_service import RecordsService

logger = logging.getLogger(__name__)

PRIMARY_BREAKER = "mongodb"


class AppState:
    """
    Application state - shared by all requests of one app instance.

    The static repository exists from construction on, so requests can be
    answered before (or without) the primary store connecting.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connection: Optional[MongoConnection] = None,
        snapshot: Optional[SnapshotStore] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or CircuitBreakerRegistry(self.settings.circuit_breaker)
        self.connection = connection or MongoConnection(self.settings.mongo)
        self.snapshot = snapshot or SnapshotStore(self.settings.snapshot_path)
        self.engine = QueryEngine(strict=self.settings.strict_queries)

        self.breaker = self.registry.get_or_create(PRIMARY_BREAKER)
        self.static_repository = StaticRecordsRepository(
            self.snapshot, self.engine, rng=get_rng(self.settings.random_seed)
        )
        self.mongo_repository: Optional[MongoRecordsRepository] = None
        self.provider = RepositoryProvider(
            fallback=self.static_repository,
            connection=self.connection,
            breaker=self.breaker,
            fallback_on_open_circuit=self.settings.fallback_on_open_circuit,
        )
        self.records_service = RecordsService(self.provider)

        # State tracking for one-time initialization
        self._initialized = False
        self._initialization_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """
        Connect the primary store and preload the snapshot.

        Neither step is fatal: without a primary store every call is served
        from the snapshot, and the snapshot falls back to the bundled dataset.
        """
        async with self._initialization_lock:
            if self._initialized:
                logger.debug("AppState already initialized")
                return

            logger.info("Initializing AppState...")
            status = await self.connection.connect()
            # A client that failed its ping still reconnects through heartbeats
            if self.connection.has_client():
                self.mongo_repository = MongoRecordsRepository(
                    self.connection.collection(), self.breaker, strict=self.settings.strict_queries
                )
                self.provider.primary = self.mongo_repository
            logger.info(f"Primary store connected: {status.connected}")

            records = await asyncio.to_thread(self.snapshot.get_records)
            logger.info(f"Snapshot ready: {len(records)} records from {self.snapshot.source}")

            self._initialized = True
            logger.info("AppState initialization complete!")

    async def shutdown(self) -> None:
        await self.connection.close()

    def is_ready(self) -> bool:
        return self._initialized and self.snapshot.loaded

    def get_status(self) -> Dict[str, Any]:
        status = self.connection.status()
        return {
            "initialized": self._initialized,
            "ready": self.is_ready(),
            "backend": self.provider.backend_name(),
            "database": {"connected": status.connected, "uri": status.uri, "error": status.error},
            "snapshot": {
                "loaded": self.snapshot.loaded,
                "source": self.snapshot.source if self.snapshot.loaded else None,
            },
            "env": self.settings.env,
            "strict_queries": self.settings.strict_queries,
        }


async def get_app_state(request: Request) -> AppState:
    """
    FastAPI dependency to access app state.

    Usage in routers:
        @router.get("/example")
        async def example(state: AppState = Depends(get_app_state)):
            ...
    """
    state: AppState = request.app.state.catalog
    if not state._initialized:
        logger.warning("AppState not initialized, initializing now...")
        await state.initialize()
    return state


def get_records_service(state: AppState = Depends(get_app_state)) -> RecordsService:
    return state.records_service


@asynccontextmanager
async def lifespan_handler(app):
    """
    FastAPI lifespan context manager for startup/shutdown.

    Usage in main.py:
        app = FastAPI(lifespan=lifespan_handler)
    """
    logger.info("FastAPI starting up...")
    state: AppState = app.state.catalog
    await state.initialize()

    yield  # App is now running

    logger.info("FastAPI shutting down...")
    await state.shutdown()
    logger.info("Shutdown complete")
