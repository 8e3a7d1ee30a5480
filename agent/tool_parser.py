"""Extract tool invocations embedded as inline tags in model output.

Markup understood here:

    <tool name="TOOL_NAME">
      <arg name="ARG_NAME">VALUE</arg>
    </tool>

plus `<think>...</think>` reasoning asides. Parsing is pattern matching over
the whole text seen so far, so callers re-parse the full buffer whenever
they need the current call list. Nothing here raises on malformed input;
unterminated tags are simply left out of the result.
"""

from __future__ import annotations

import json
import re
from typing import Any

from agent.messages import ToolCall

TOOL_RE = re.compile(r'<tool\s+name="([^"]+)"\s*>(.*?)</tool>', re.DOTALL)
ARG_RE = re.compile(r'<arg\s+name="([^"]+)"\s*>(.*?)</arg>', re.DOTALL)
THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)

_OPEN_TOOL_TAIL_RE = re.compile(r'<tool\s+name="[^"]*"\s*>(?:(?!</tool>).)*\Z', re.DOTALL)
_OPEN_THINK_TAIL_RE = re.compile(r"<think>(?:(?!</think>).)*\Z", re.DOTALL)
_STRAY_MARKER_RE = re.compile(r"</?(?:tool|arg)\b[^<>]*>|</?think>")
_BLANK_RUN_RE = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")

_INT_RE = re.compile(r"-?\d+")
_FLOAT_RE = re.compile(r"-?\d+\.\d+")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def coerce_arg_value(value: str) -> Any:
    """
    Convert a raw argument string using a fixed precedence:
    boolean literal, integer, float, JSON, then the raw string.
    """
    if value == "true":
        return True
    if value == "false":
        return False
    if _INT_RE.fullmatch(value):
        return int(value)
    if _FLOAT_RE.fullmatch(value):
        return float(value)
    try:
        return json.loads(value, parse_constant=_reject_constant)
    except ValueError:
        return value


class ToolCallParser:
    """Regex implementation of the parse / strip / has_tool_call contract."""

    def parse(self, text: str) -> list[ToolCall]:
        """Return every complete tool invocation in source order."""
        calls: list[ToolCall] = []
        for match in TOOL_RE.finditer(text):
            name = match.group(1).strip()
            args: dict[str, Any] = {}
            for arg_match in ARG_RE.finditer(match.group(2)):
                args[arg_match.group(1).strip()] = coerce_arg_value(arg_match.group(2).strip())
            calls.append(ToolCall(name=name, args=args))
        return calls

    def has_tool_call(self, text: str) -> bool:
        # One ToolCall per TOOL_RE match, so this agrees with parse().
        return TOOL_RE.search(text) is not None

    def strip(self, text: str) -> str:
        """Remove all tool, arg and think markup, leaving the user-facing prose."""
        previous = None
        current = text
        # Removing one marker can join its neighbours into a new one.
        while current != previous:
            previous = current
            current = self._strip_once(current)
        return current

    def _strip_once(self, text: str) -> str:
        text = TOOL_RE.sub("", text)
        text = THINK_RE.sub("", text)
        text = _OPEN_TOOL_TAIL_RE.sub("", text)
        text = _OPEN_THINK_TAIL_RE.sub("", text)
        text = _STRAY_MARKER_RE.sub("", text)
        text = _BLANK_RUN_RE.sub("\n\n", text)
        return text.strip()


_default_parser = ToolCallParser()


def parse_tool_calls(text: str) -> list[ToolCall]:
    return _default_parser.parse(text)


def has_tool_call(text: str) -> bool:
    return _default_parser.has_tool_call(text)


def strip_markup(text: str) -> str:
    return _default_parser.strip(text)
