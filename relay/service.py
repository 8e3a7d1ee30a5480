"""Relay facade: producer-side send/check and remote-client connect/ping/poll."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

from agent.exceptions import RelayError
from relay.kv_store import Clock, KVStore, create_store
from relay.registry import ConnectionRegistry
from relay.signal_queue import Signal, SignalQueue

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    accepted: bool
    delivered_to_live_count: int
    signal_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "deliveredToLiveCount": self.delivered_to_live_count,
            "signalIds": self.signal_ids,
        }


@dataclass
class PollResult:
    live: bool
    signals: list[Signal] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"live": self.live, "signals": [s.to_dict() for s in self.signals]}


class RelayService:
    """
    Store-and-forward channel between a web-side producer and remote
    clients that poll on their own schedule. Delivery is best-effort and
    at-most-once; the producer never waits on the remote side.
    """

    def __init__(
        self,
        store: KVStore,
        connection_ttl: float = 60.0,
        signal_ttl: float = 30.0,
        purge_interval: float = 60.0,
        clock: Clock = time.time,
    ):
        self.store = store
        self.registry = ConnectionRegistry(store, ttl=connection_ttl, clock=clock)
        self.queue = SignalQueue(store, ttl=signal_ttl)
        self.purge_interval = purge_interval
        self._clock = clock
        self._purge_lock = threading.Lock()
        self._next_purge = clock() + purge_interval

    @classmethod
    def from_config(cls, config) -> "RelayService":
        return cls(
            create_store(config),
            connection_ttl=config.connection_ttl,
            signal_ttl=config.signal_ttl,
            purge_interval=config.purge_interval,
        )

    # ── Producer side ────────────────────────────────────────────────

    def send_signal(
        self,
        action: str,
        data: dict | None = None,
        credential: str | None = None,
        owner_id: str | None = None,
    ) -> SendResult:
        """
        Enqueue one signal per target credential.
        A single credential is always enqueued, live or not. An owner scope
        fans out to each credential of that owner that is live right now.
        """
        if not action:
            raise RelayError("Signal action is required")
        self._maybe_purge()
        targets = self._targets(credential, owner_id)

        live_count = 0
        signal_ids: list[str] = []
        for target in targets:
            signal = Signal(action=action, data=dict(data or {}))
            self.queue.enqueue(target, signal)
            signal_ids.append(signal.id)
            if self.registry.is_live(target):
                live_count += 1

        if targets and live_count == 0:
            logger.info("Signal %s queued with no live client; it may expire unread", action)
        return SendResult(
            accepted=bool(signal_ids),
            delivered_to_live_count=live_count,
            signal_ids=signal_ids,
        )

    def check_connection(self, credential: str | None = None, owner_id: str | None = None) -> bool:
        if credential:
            return self.registry.is_live(credential)
        if owner_id:
            return bool(self.registry.live_credentials(owner_id))
        raise RelayError("A credential or owner_id is required")

    # ── Remote client side ───────────────────────────────────────────

    def connect(self, credential: str, owner_id: str | None = None) -> None:
        self._require(credential)
        self.registry.connect(credential, owner_id=owner_id)

    def ping(self, credential: str) -> bool:
        self._require(credential)
        return self.registry.ping(credential)

    def poll(self, credential: str) -> PollResult:
        """Refresh liveness and drain the queue. Not-live credentials are left undrained."""
        self._require(credential)
        self._maybe_purge()
        if not self.registry.ping(credential):
            return PollResult(live=False)
        return PollResult(live=True, signals=self.queue.drain(credential))

    def disconnect(self, credential: str) -> None:
        self._require(credential)
        self.registry.disconnect(credential)

    def _targets(self, credential: str | None, owner_id: str | None) -> list[str]:
        if credential:
            return [credential]
        if owner_id:
            return self.registry.live_credentials(owner_id)
        raise RelayError("A credential or owner_id is required")

    def _maybe_purge(self) -> None:
        """Sweep expired keys at most once per purge interval."""
        with self._purge_lock:
            now = self._clock()
            if now < self._next_purge:
                return
            self._next_purge = now + self.purge_interval
        removed = self.store.purge_expired()
        if removed:
            logger.debug("Purged %d expired relay keys", removed)

    @staticmethod
    def _require(credential: str) -> None:
        if not credential:
            raise RelayError("API key required")
