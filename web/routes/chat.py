"""Chat API route: run one agent turn, streamed as encoded SSE frames."""

import asyncio
import json
import logging
import uuid
from flask import Blueprint, request, jsonify, Response, current_app, stream_with_context

from agent.messages import ChatMessage
from agent.telemetry import Telemetry
from tools.base_tool import ToolContext
from web.app import TurnStream

logger = logging.getLogger(__name__)

chat_bp = Blueprint("chat", __name__)


@chat_bp.route("/chat", methods=["POST"])
def chat():
    """Run the agent loop for the posted conversation."""
    data = request.get_json(silent=True) or {}
    codec = current_app.config["codec"]

    if "encrypted" in data:
        try:
            data = json.loads(codec.reveal(str(data["encrypted"])))
        except (ValueError, UnicodeDecodeError):
            return jsonify({"error": "Invalid encrypted payload"}), 400
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid encrypted payload"}), 400

    raw_messages = data.get("messages")
    if not isinstance(raw_messages, list) or not raw_messages:
        return jsonify({"error": "Messages are required"}), 400
    try:
        messages = [ChatMessage.from_dict(m) for m in raw_messages if isinstance(m, dict)]
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if len(messages) != len(raw_messages):
        return jsonify({"error": "Each message must be an object"}), 400

    config = current_app.config["agent_config"]
    agent = current_app.config["agent"]
    context = ToolContext(
        project_id=data.get("project_id"),
        user_id=data.get("user_id"),
        credential=data.get("credential"),
        owner_id=data.get("owner_id"),
        project_store=current_app.config["project_store"],
        relay=current_app.config["relay"],
        settings=config.tool_execution,
    )
    turn_id = uuid.uuid4().hex[:12]
    telemetry = Telemetry(config.telemetry, turn_id)
    model = data.get("model")

    if data.get("stream", True) is False:
        result = _run_async(_collect(agent, messages, context, telemetry, model))
        result["turn_id"] = turn_id
        return jsonify(result)

    turn = TurnStream(agent)
    turn.start(messages, context, telemetry=telemetry, model=model)
    logger.info("Turn %s started with %d messages", turn_id, len(messages))

    def generate():
        for event in turn:
            yield codec.encode_event(event.to_dict())
        yield codec.encode_done()

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Turn-Id": turn_id,
        },
    )


async def _collect(agent, messages, context, telemetry, model) -> dict:
    content = ""
    reasoning = ""
    tool_results = []
    error = None
    async for event in agent.run(messages, context, telemetry=telemetry, model=model):
        if event.type == "reasoning":
            reasoning += event.content or ""
        elif event.type == "tool_result":
            tool_results.append(event.to_dict())
        elif event.type == "error":
            error = event.error
        elif event.type == "done":
            content = event.content or ""
    return {
        "content": content,
        "reasoning": reasoning,
        "tool_results": tool_results,
        "error": error,
    }


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()
