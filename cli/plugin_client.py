"""Reference remote client: connects to the relay and polls for signals."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import aiohttp

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0
DISCONNECTED_POLL_INTERVAL = 5.0

SignalHandler = Callable[[dict[str, Any]], Awaitable[None] | None]


class PluginClient:
    """
    Polls /api/relay/plugin on a fixed interval and dispatches each signal to
    the handler registered for its action. While the server reports the
    connection as not live, polling slows down and the client reconnects.
    """

    def __init__(
        self,
        server_url: str,
        api_key: str,
        owner_id: str | None = None,
        poll_interval: float = POLL_INTERVAL,
        disconnected_interval: float = DISCONNECTED_POLL_INTERVAL,
    ):
        self.server_url = server_url.rstrip("/")
        self.api_key = api_key
        self.owner_id = owner_id
        self.poll_interval = poll_interval
        self.disconnected_interval = disconnected_interval
        self.connected = False
        self.handlers: dict[str, SignalHandler] = {}
        self._stop = asyncio.Event()

    @property
    def endpoint(self) -> str:
        return f"{self.server_url}/api/relay/plugin"

    def on(self, action: str, handler: SignalHandler) -> None:
        self.handlers[action] = handler

    async def connect(self, session: aiohttp.ClientSession) -> bool:
        body = {"action": "connect", "apiKey": self.api_key, "ownerId": self.owner_id}
        async with session.post(self.endpoint, json=body) as resp:
            self.connected = resp.status == 200
        logger.info("Connection: %s", "connected" if self.connected else "disconnected")
        return self.connected

    async def disconnect(self, session: aiohttp.ClientSession) -> None:
        async with session.post(self.endpoint, json={"action": "disconnect", "apiKey": self.api_key}):
            pass
        self.connected = False

    async def poll_once(self, session: aiohttp.ClientSession) -> list[dict[str, Any]]:
        """One poll cycle. Returns the signals that were dispatched."""
        async with session.get(self.endpoint, params={"apiKey": self.api_key}) as resp:
            if resp.status != 200:
                self._set_connected(False)
                return []
            data = await resp.json()

        if not data.get("live"):
            self._set_connected(False)
            return []
        self._set_connected(True)

        signals = data.get("signals") or []
        for signal in signals:
            await self.dispatch(signal)
        return signals

    async def dispatch(self, signal: dict[str, Any]) -> None:
        action = signal.get("action", "")
        handler = self.handlers.get(action)
        if handler is None:
            logger.info("Signal %s has no handler: %s", action, json.dumps(signal.get("data", {}))[:200])
            return
        try:
            outcome = handler(signal.get("data") or {})
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception:
            logger.exception("Handler for %s failed", action)

    async def run(self) -> None:
        """Poll until stop() is called. Disconnects on the way out."""
        async with aiohttp.ClientSession() as session:
            try:
                await self.connect(session)
                while not self._stop.is_set():
                    try:
                        if not self.connected:
                            await self.connect(session)
                        if self.connected:
                            await self.poll_once(session)
                    except aiohttp.ClientError as e:
                        logger.warning("Poll failed: %s", e)
                        self._set_connected(False)
                    interval = self.poll_interval if self.connected else self.disconnected_interval
                    try:
                        await asyncio.wait_for(self._stop.wait(), timeout=interval)
                    except asyncio.TimeoutError:
                        pass
            finally:
                try:
                    await self.disconnect(session)
                except aiohttp.ClientError as e:
                    logger.warning("Disconnect failed: %s", e)

    def stop(self) -> None:
        self._stop.set()

    def _set_connected(self, value: bool) -> None:
        if value != self.connected:
            logger.info("Connection: %s", "connected" if value else "disconnected")
        self.connected = value
