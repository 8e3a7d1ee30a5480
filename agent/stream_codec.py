"""Wire codec for streamed turns: `data: <payload>\\n\\n` frames ending in a sentinel.

Payloads are XOR-obfuscated with a fixed key and base64 encoded. This only
keeps chat text from being readable at a glance in proxies and browser dev
tools. It is NOT encryption and gives no confidentiality: anyone holding the
client bundle holds the key. Use TLS for anything that must stay private.
"""

from __future__ import annotations

import base64
import binascii
import codecs
import json
import logging
from typing import Any

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"
KEY_LENGTH = 32

logger = logging.getLogger(__name__)


class SSELineBuffer:
    """Accumulate raw reads and hand back only complete `\\n`-terminated lines."""

    def __init__(self):
        self._buffer = ""
        # Reads may end inside a multi-byte character; hold those bytes back.
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: str | bytes) -> list[str]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> str:
        """Return and clear whatever partial line is left."""
        rest, self._buffer = self._buffer + self._decoder.decode(b"", final=True), ""
        return rest.rstrip("\r")

    @property
    def pending(self) -> str:
        return self._buffer


def sse_data(line: str) -> str | None:
    """Return the payload of a `data:` line, or None for any other line."""
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload


class StreamCodec:
    """Encode events into frames and decode frames back into events."""

    def __init__(self, key: str, sentinel: str = DONE_SENTINEL, obfuscate: bool = True):
        if not key:
            raise ValueError("Obfuscation key must not be empty")
        raw = key.encode("utf-8")
        self._key = raw.ljust(KEY_LENGTH, b"0")[:KEY_LENGTH]
        self.sentinel = sentinel
        self.obfuscate = obfuscate

    @classmethod
    def from_config(cls, config) -> "StreamCodec":
        return cls(
            key=config.obfuscation_key,
            sentinel=config.sentinel,
            obfuscate=config.obfuscate,
        )

    # ── Obfuscation ──────────────────────────────────────────────────

    def _xor(self, data: bytes) -> bytes:
        key = self._key
        return bytes(b ^ key[i % KEY_LENGTH] for i, b in enumerate(data))

    def conceal(self, text: str) -> str:
        if not self.obfuscate:
            return text
        return base64.b64encode(self._xor(text.encode("utf-8"))).decode("ascii")

    def reveal(self, payload: str) -> str:
        """Undo `conceal`. Raises ValueError on payloads that are not ours."""
        if not self.obfuscate:
            return payload
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid frame payload: {e}") from e
        return self._xor(data).decode("utf-8")

    # ── Frames ───────────────────────────────────────────────────────

    def encode_event(self, event: dict[str, Any]) -> str:
        return f"data: {self.conceal(json.dumps(event, default=str))}\n\n"

    def encode_done(self) -> str:
        return f"data: {self.conceal(self.sentinel)}\n\n"

    def decode_payload(self, payload: str) -> dict[str, Any] | str | None:
        """
        Decode one frame payload.
        Returns the sentinel string at end-of-stream, the event dict for a
        valid frame, or None for anything malformed.
        """
        try:
            text = self.reveal(payload.strip())
        except (ValueError, UnicodeDecodeError):
            logger.debug("Skipping undecodable frame")
            return None
        if text == self.sentinel:
            return self.sentinel
        try:
            event = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Skipping frame with invalid JSON")
            return None
        if not isinstance(event, dict):
            return None
        return event


class FrameDecoder:
    """Incremental receiver side: feed raw reads, collect decoded events."""

    def __init__(self, codec: StreamCodec):
        self.codec = codec
        self.done = False
        self._lines = SSELineBuffer()

    def feed(self, chunk: str | bytes) -> list[dict[str, Any]]:
        events: list[dict[str, Any]] = []
        if self.done:
            return events
        for line in self._lines.feed(chunk):
            payload = sse_data(line)
            if payload is None:
                continue
            decoded = self.codec.decode_payload(payload)
            if decoded == self.codec.sentinel:
                self.done = True
                break
            if isinstance(decoded, dict):
                events.append(decoded)
        return events
