"""JSON status endpoints for the relay hub.

Read-only: nothing here can change hub state.
"""

import time
from flask import Blueprint, jsonify, current_app

api_bp = Blueprint("api", __name__)

SERVICE_NAME = "relayhub"


def _get_hub():
    """Get the running RelayServer instance."""
    return current_app.config.get("HUB")


@api_bp.route("/")
def index():
    hub = _get_hub()
    if not hub:
        return jsonify({"status": "offline", "service": SERVICE_NAME}), 503

    stats = hub.get_stats()
    return jsonify({
        "status": "online",
        "service": SERVICE_NAME,
        "agents": stats["agents"],
        "operators": stats["operators"],
        "timestamp": time.time(),
    })


@api_bp.route("/health")
def health():
    hub = _get_hub()
    if not hub:
        return jsonify({"status": "unavailable"}), 503

    stats = hub.get_stats()
    return jsonify({
        "status": "healthy",
        "agents": stats["agents"],
        "operators": stats["operators"],
        "memory": stats["memory"],
        "uptime": stats["uptime"],
    })
