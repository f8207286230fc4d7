"""
Repository selection between the primary store and the static snapshot.

The decision is re-made on every call: one process may answer some requests
from the primary and others from the snapshot while connectivity flaps, so
callers must not hold on to the repository they got.
"""

import logging
from typing import Optional

from media_catalog.db.connection import MongoConnection
from media_catalog.resilience.circuit_breaker import AnyBreaker, CircuitState
from api.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


def select_repository(
    connection: Optional[MongoConnection],
    primary: Optional[BaseRepository],
    fallback: BaseRepository,
    breaker: Optional[AnyBreaker] = None,
    fallback_on_open_circuit: bool = True,
) -> BaseRepository:
    """
    Pick the repository for one call.

    The primary is used when it exists and its connection is live. With
    `fallback_on_open_circuit`, an OPEN breaker also routes to the snapshot;
    once the reset timeout elapses the breaker reports HALF_OPEN and the next
    call probes the primary again.
    """
    if primary is None or connection is None or not connection.is_connected():
        logger.debug("Primary store not connected, using static snapshot")
        return fallback
    if fallback_on_open_circuit and breaker is not None and breaker.state == CircuitState.OPEN:
        logger.debug(f"Circuit '{breaker.name}' open, using static snapshot")
        return fallback
    return primary


class RepositoryProvider:
    """Holds both repositories and hands out the right one per call"""

    def __init__(
        self,
        fallback: BaseRepository,
        primary: Optional[BaseRepository] = None,
        connection: Optional[MongoConnection] = None,
        breaker: Optional[AnyBreaker] = None,
        fallback_on_open_circuit: bool = True,
    ):
        self.fallback = fallback
        self.primary = primary
        self.connection = connection
        self.breaker = breaker
        self.fallback_on_open_circuit = fallback_on_open_circuit

    def get(self) -> BaseRepository:
        return select_repository(
            self.connection,
            self.primary,
            self.fallback,
            breaker=self.breaker,
            fallback_on_open_circuit=self.fallback_on_open_circuit,
        )

    def backend_name(self) -> str:
        return self.get().backend
