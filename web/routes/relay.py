"""Relay routes: remote clients connect and poll; the web side sends signals."""

import logging
from flask import Blueprint, request, jsonify, current_app

from agent.exceptions import RelayError

logger = logging.getLogger(__name__)

relay_bp = Blueprint("relay", __name__)


@relay_bp.route("/relay/plugin", methods=["POST"])
def plugin_action():
    """connect | ping | poll | disconnect for a remote client, keyed by apiKey."""
    data = request.get_json(silent=True) or {}
    action = data.get("action")
    api_key = data.get("apiKey")
    relay = current_app.config["relay"]

    if not api_key:
        return jsonify({"error": "API key required"}), 401

    if action == "connect":
        relay.connect(api_key, owner_id=data.get("ownerId"))
        return jsonify({"success": True, "message": "Connected"})

    if action == "ping":
        if relay.ping(api_key):
            return jsonify({"success": True})
        return jsonify({"error": "Not connected"}), 401

    if action == "poll":
        result = relay.poll(api_key)
        if not result.live:
            return jsonify({"error": "Not connected", "live": False, "signals": []}), 401
        return jsonify({"success": True, **result.to_dict()})

    if action == "disconnect":
        relay.disconnect(api_key)
        return jsonify({"success": True, "message": "Disconnected"})

    return jsonify({"error": "Unknown action"}), 400


@relay_bp.route("/relay/plugin", methods=["GET"])
def plugin_poll():
    """Poll shortcut: GET ?apiKey=... Never fails for a not-live client."""
    api_key = request.args.get("apiKey")
    if not api_key:
        return jsonify({"error": "API key required"}), 401
    result = current_app.config["relay"].poll(api_key)
    return jsonify(result.to_dict())


@relay_bp.route("/relay/web", methods=["POST"])
def web_action():
    """send_signal | check_connection from the web side."""
    data = request.get_json(silent=True) or {}
    action = data.get("action")
    payload = data.get("data") or {}
    relay = current_app.config["relay"]

    if not isinstance(payload, dict):
        return jsonify({"error": "data must be an object"}), 400

    credential = payload.get("credential")
    owner_id = payload.get("ownerId")

    try:
        if action == "send_signal":
            signal_data = payload.get("signalData") or {}
            if not isinstance(signal_data, dict):
                return jsonify({"error": "signalData must be an object"}), 400
            result = relay.send_signal(
                payload.get("signalAction"),
                signal_data,
                credential=credential,
                owner_id=owner_id,
            )
            return jsonify({"success": True, **result.to_dict()})

        if action == "check_connection":
            live = relay.check_connection(credential=credential, owner_id=owner_id)
            return jsonify({"success": True, "live": live})
    except RelayError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"error": "Unknown action"}), 400
