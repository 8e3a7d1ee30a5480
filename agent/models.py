"""ChatCompletionClient - streaming HTTP client for the hosted chat completion API."""

import asyncio
import json
import logging
from typing import AsyncIterator

import aiohttp
from agent.exceptions import ProviderConnectionError, ProviderResponseError
from agent.messages import ChatMessage, StreamDelta
from agent.stream_codec import DONE_SENTINEL, SSELineBuffer, sse_data

logger = logging.getLogger(__name__)


class ChatCompletionClient:
    """Async client for an OpenAI-style `/api/chat` completion endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        provider: str = "",
        connect_timeout: float = 5.0,
        read_timeout: float = 120.0,
        max_retries: int = 3,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.provider = provider
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_retries = max_retries

    @classmethod
    def from_config(cls, config) -> "ChatCompletionClient":
        return cls(
            base_url=config.chat_model.base_url,
            api_key=config.chat_model.api_key,
            provider=config.chat_model.provider,
            connect_timeout=config.provider.connect_timeout,
            read_timeout=config.provider.read_timeout,
            max_retries=config.provider.max_retries,
        )

    async def stream_chat(
        self,
        model: str,
        messages: list[ChatMessage],
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamDelta]:
        """
        Stream a completion. POST /api/chat
        Yields content/reasoning deltas until the `[DONE]` line or end of body.
        """
        payload = {
            "provider": self.provider,
            "model": model,
            "messages": [m.to_dict() for m in messages],
            "stream": True,
            "temperature": temperature,
        }

        attempt = 0
        delay = 1.0
        while True:
            received_any = False
            try:
                async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                    async with session.post(
                        f"{self.base_url}/api/chat",
                        json=payload,
                        headers=self._headers(),
                    ) as resp:
                        if resp.status < 200 or resp.status >= 300:
                            body = await resp.text()
                            raise ProviderResponseError(
                                f"Completion request failed (HTTP {resp.status}): {body[:200]}",
                                status=resp.status,
                            )

                        lines = SSELineBuffer()
                        async for chunk in resp.content.iter_any():
                            for line in lines.feed(chunk):
                                delta, finished = self._parse_line(line)
                                if finished:
                                    return
                                if delta is not None:
                                    received_any = True
                                    yield delta
                        delta, _ = self._parse_line(lines.flush())
                        if delta is not None:
                            yield delta
                        return
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                attempt += 1
                if received_any or attempt >= self.max_retries:
                    raise ProviderConnectionError(
                        self._connection_error_message("chat", e)
                    ) from e
                logger.warning("Completion attempt %d failed, retrying: %s", attempt, e)
                await asyncio.sleep(delay)
                delay *= 2

    @staticmethod
    def _parse_line(line: str) -> tuple[StreamDelta | None, bool]:
        """Return (delta, finished) for one SSE line from the provider."""
        data = sse_data(line)
        if data is None:
            return None, False
        if data.strip() == DONE_SENTINEL:
            return None, True
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            return None, False
        if not isinstance(parsed, dict):
            return None, False
        choices = parsed.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None, False
        delta = choices[0].get("delta") or {}
        content = delta.get("content") or ""
        reasoning = delta.get("reasoning_content") or ""
        if not content and not reasoning:
            return None, False
        return StreamDelta(content=content, reasoning=reasoning), False

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _timeout(self) -> aiohttp.ClientTimeout:
        """Build a client timeout configuration from settings."""
        return aiohttp.ClientTimeout(
            total=None,
            connect=self.connect_timeout,
            sock_connect=self.connect_timeout,
            sock_read=self.read_timeout,
        )

    def _connection_error_message(self, operation: str, error: Exception | None) -> str:
        """Create a user-friendly connection error message."""
        details = f"{error}" if error else "unknown error"
        return (
            f"Cannot reach completion endpoint at {self.base_url} during {operation} "
            f"(after {self.max_retries} attempt(s)): {details}"
        )
