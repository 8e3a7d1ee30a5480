"""Auxiliary services called by the outbound tools, plus the tool catalogue."""

import asyncio
import logging
from flask import Blueprint, request, jsonify, current_app

import aiohttp

from tools.web_content import outline_page, search_web

logger = logging.getLogger(__name__)

tools_bp = Blueprint("tools", __name__)


@tools_bp.route("/tools", methods=["GET"])
def list_tools():
    registry = current_app.config["tool_registry"]
    return jsonify({"tools": [d.to_dict() for d in registry.definitions()]})


@tools_bp.route("/tools/search", methods=["POST"])
def search():
    data = request.get_json(silent=True) or {}
    query = data.get("query")
    if not query or not isinstance(query, str):
        return jsonify({"error": "Query is required"}), 400
    try:
        return jsonify(_run_async(search_web(query)))
    except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError) as e:
        logger.warning("Search failed for %r: %s", query, e)
        return jsonify({"error": str(e) or "Search failed"}), 502


@tools_bp.route("/tools/outline", methods=["POST"])
def outline():
    data = request.get_json(silent=True) or {}
    url = data.get("url")
    if not url or not isinstance(url, str):
        return jsonify({"error": "URL is required"}), 400
    if not url.startswith(("http://", "https://")):
        return jsonify({"error": "Invalid URL format"}), 400
    try:
        return jsonify(_run_async(outline_page(url)))
    except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError) as e:
        logger.warning("Outline failed for %s: %s", url, e)
        return jsonify({"error": str(e) or "Failed to extract content"}), 502


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()
