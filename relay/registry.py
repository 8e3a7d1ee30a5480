"""Connection registry: which remote clients are reachable right now."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass

from relay.kv_store import Clock, KVStore

CONNECTION_PREFIX = "relay:conn:"

logger = logging.getLogger(__name__)


def connection_key(credential: str) -> str:
    return f"{CONNECTION_PREFIX}{credential}"


@dataclass
class Connection:
    credential: str
    last_ping: float
    owner_id: str | None = None


class ConnectionRegistry:
    """
    Liveness per credential, stored as one TTL entry per credential.
    Expiry of the entry is the only disconnect signal; nothing is pushed to
    producers when a client goes away, and `is_live` can be stale by the
    time the caller acts on it.
    """

    def __init__(self, store: KVStore, ttl: float = 60.0, clock: Clock = time.time):
        self.store = store
        self.ttl = ttl
        self._clock = clock

    def connect(self, credential: str, owner_id: str | None = None) -> Connection:
        conn = Connection(credential=credential, last_ping=self._clock(), owner_id=owner_id)
        self.store.set(connection_key(credential), asdict(conn), ttl=self.ttl)
        logger.info("Client connected: %s", _mask(credential))
        return conn

    def ping(self, credential: str) -> bool:
        """Refresh a live connection. Returns False if there is none to refresh."""
        conn = self.get(credential)
        if conn is None:
            return False
        conn.last_ping = self._clock()
        # A disconnect between the read and this write must stay disconnected.
        return self.store.replace(connection_key(credential), asdict(conn), ttl=self.ttl)

    def is_live(self, credential: str) -> bool:
        return self.store.get(connection_key(credential)) is not None

    def get(self, credential: str) -> Connection | None:
        data = self.store.get(connection_key(credential))
        if not isinstance(data, dict):
            return None
        return Connection(
            credential=data.get("credential", credential),
            last_ping=data.get("last_ping", 0.0),
            owner_id=data.get("owner_id"),
        )

    def disconnect(self, credential: str) -> None:
        if self.store.delete(connection_key(credential)):
            logger.info("Client disconnected: %s", _mask(credential))

    def live_credentials(self, owner_id: str) -> list[str]:
        """All live credentials registered under one owner."""
        credentials = []
        for key, data in self.store.scan(CONNECTION_PREFIX):
            if isinstance(data, dict) and data.get("owner_id") == owner_id:
                credentials.append(key[len(CONNECTION_PREFIX):])
        return credentials


def _mask(credential: str) -> str:
    if len(credential) <= 8:
        return "***"
    return f"{credential[:6]}...{credential[-2:]}"
