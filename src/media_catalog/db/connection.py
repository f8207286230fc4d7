"""
Primary store connection.

Holds the PyMongo async client and a live connection status. The status is
set by the startup ping and then kept current by server heartbeats, so the
repository selector sees connectivity flaps without issuing its own probes.
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Optional, Set, Tuple

from pymongo import AsyncMongoClient, monitoring
from pymongo.errors import PyMongoError

from media_catalog.settings import MongoSettings

logger = logging.getLogger(__name__)

_PROTOCOLS = ("mongodb+srv://", "mongodb://")


def redact_mongo_uri(uri: Optional[str]) -> Optional[str]:
    """Hide credentials: mongodb://user:pw@host/db -> mongodb://[redacted]@host/db"""
    if not uri:
        return None
    protocol = next((p for p in _PROTOCOLS if uri.startswith(p)), "")
    rest = uri[len(protocol):]
    if "@" not in rest:
        return f"{protocol}{rest}"
    return f"{protocol}[redacted]@{rest.rsplit('@', 1)[1]}"


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool = False
    uri: Optional[str] = None
    error: Optional[str] = None


class _HeartbeatStatusListener(monitoring.ServerHeartbeatListener):
    """Tracks which servers answer heartbeats; called from PyMongo monitor threads"""

    def __init__(self, connection: "MongoConnection"):
        self._connection = connection
        self._alive: Set[Tuple[str, int]] = set()
        self._lock = threading.Lock()

    def started(self, event: monitoring.ServerHeartbeatStartedEvent) -> None:
        pass

    def succeeded(self, event: monitoring.ServerHeartbeatSucceededEvent) -> None:
        with self._lock:
            self._alive.add(event.connection_id)
            self._connection._set_connected(True)

    def failed(self, event: monitoring.ServerHeartbeatFailedEvent) -> None:
        with self._lock:
            self._alive.discard(event.connection_id)
            if not self._alive:
                self._connection._set_connected(False, str(event.reply))


class MongoConnection:
    """Owns the AsyncMongoClient for the process"""

    def __init__(self, settings: MongoSettings, client: Optional[Any] = None):
        self.settings = settings
        self._client = client
        self._status = ConnectionStatus()
        self._listener = _HeartbeatStatusListener(self)

    def _uri(self) -> Optional[str]:
        return self.settings.uri.get_secret_value() if self.settings.uri else None

    def _set_connected(self, connected: bool, error: Optional[str] = None) -> None:
        if connected != self._status.connected:
            if connected:
                logger.info(f"Primary store reachable ({self._status.uri})")
            else:
                logger.warning(f"Primary store unreachable ({self._status.uri}): {error}")
        self._status = replace(self._status, connected=connected, error=None if connected else error)

    async def connect(self) -> ConnectionStatus:
        """
        Create the client and verify it with a ping.

        Never raises: a missing URI or an unreachable server leaves the status
        disconnected and the API serves from the snapshot.
        """
        uri = self._uri()
        if not uri and self._client is None:
            self._status = ConnectionStatus(connected=False, uri=None, error="MONGO_URI not set")
            logger.warning("MONGO_URI not set; serving from the static snapshot only")
            return self._status

        self._status = ConnectionStatus(connected=False, uri=redact_mongo_uri(uri))
        try:
            if self._client is None:
                self._client = AsyncMongoClient(
                    uri,
                    serverSelectionTimeoutMS=self.settings.server_selection_timeout_ms,
                    connectTimeoutMS=self.settings.connect_timeout_ms,
                    maxPoolSize=self.settings.pool_size,
                    minPoolSize=self.settings.min_pool_size,
                    event_listeners=[self._listener],
                )
            await self._client.admin.command("ping")
            self._set_connected(True)
        except PyMongoError as e:
            self._set_connected(False, str(e))
        return self._status

    def has_client(self) -> bool:
        return self._client is not None

    def collection(self):
        if self._client is None:
            raise RuntimeError("MongoConnection.connect() has not been called")
        return self._client[self.settings.database][self.settings.collection]

    def status(self) -> ConnectionStatus:
        return self._status

    def is_connected(self) -> bool:
        return self._status.connected

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        self._status = replace(self._status, connected=False)
        logger.info("Primary store connection closed")
