"""Outbound tools: bounded HTTP calls to the auxiliary search/outline service."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import aiohttp

from agent.config import ToolExecutionConfig
from agent.exceptions import ToolExecutionError
from tools.base_tool import Tool, ToolContext, ToolKind, ToolParameter

logger = logging.getLogger(__name__)


@dataclass
class WebSearchArgs:
    query: str


@dataclass
class WebOutlineArgs:
    url: str


class OutboundTool(Tool):
    kind = ToolKind.OUTBOUND
    group = "web"
    failure_label = "Request"

    async def _post(self, url: str, body: dict, settings: ToolExecutionConfig) -> dict:
        timeout = aiohttp.ClientTimeout(total=settings.outbound_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, json=body) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise ToolExecutionError(f"{self.failure_label} failed: {resp.status}")
                return await resp.json(content_type=None)


class WebSearchTool(OutboundTool):
    name = "web_search"
    description = "Search the web and return the top results with titles, snippets and URLs"
    parameters = (
        ToolParameter("query", "string", True, "Search query"),
    )
    args_type = WebSearchArgs
    failure_label = "Search"

    async def execute(self, args: WebSearchArgs, context: ToolContext) -> dict:
        settings = context.settings or ToolExecutionConfig()
        logger.info("web_search: %s", args.query)
        return await self._post(settings.search_url, {"query": args.query}, settings)


class WebOutlineTool(OutboundTool):
    name = "web_outline"
    description = "Fetch a web page and return its title and main text content"
    parameters = (
        ToolParameter("url", "string", True, "Page URL (http or https)"),
    )
    args_type = WebOutlineArgs
    failure_label = "Outline"

    async def execute(self, args: WebOutlineArgs, context: ToolContext) -> dict:
        settings = context.settings or ToolExecutionConfig()
        logger.info("web_outline: %s", args.url)
        return await self._post(settings.outline_url, {"url": args.url}, settings)
