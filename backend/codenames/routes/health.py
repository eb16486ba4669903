from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    rooms = current_app.extensions["codenames"]
    return jsonify(
        {
            "status": "ok",
            "rooms": len(rooms.registry),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )
