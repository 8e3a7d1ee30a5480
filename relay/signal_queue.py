"""Per-credential queue of pending mutation signals."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field

from relay.kv_store import KVStore

SIGNAL_PREFIX = "relay:signals:"

logger = logging.getLogger(__name__)


def signal_key(credential: str) -> str:
    return f"{SIGNAL_PREFIX}{credential}"


@dataclass(frozen=True)
class Signal:
    """A mutation request for a remote client. Immutable once enqueued."""
    action: str
    data: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Signal":
        return cls(
            id=str(data.get("id", "")),
            action=str(data.get("action", "")),
            data=dict(data.get("data") or {}),
        )


class SignalQueue:
    """
    Ordered list per credential with its own short TTL, refreshed on every
    enqueue. Draining returns everything and clears the list, so delivery is
    at-most-once: signals that nobody polls for within the TTL are gone.
    """

    def __init__(self, store: KVStore, ttl: float = 30.0):
        self.store = store
        self.ttl = ttl

    def enqueue(self, credential: str, signal: Signal) -> int:
        """Append a signal. Returns the queue length after the append."""
        length = self.store.rpush(signal_key(credential), signal.to_dict(), ttl=self.ttl)
        logger.debug("Queued signal %s (%s), queue length %d", signal.id, signal.action, length)
        return length

    def drain(self, credential: str) -> list[Signal]:
        """Remove and return all pending signals. Empty or expired queues give []."""
        items = self.store.pop_all(signal_key(credential))
        return [Signal.from_dict(item) for item in items if isinstance(item, dict)]
