from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ..game.errors import ValidationError
from ..game.service import normalize_room_id

bp = Blueprint("rooms", __name__)


@bp.post("/rooms")
def create_room():
    # Only reserves an id; the room itself is created by the first join.
    rooms = current_app.extensions["codenames"]
    return jsonify({"roomId": rooms.registry.generate_room_id()}), 201


@bp.get("/rooms/<room_id>")
def get_room(room_id: str):
    rooms = current_app.extensions["codenames"]
    try:
        room_id = normalize_room_id(room_id)
    except ValidationError as exc:
        return jsonify({"error": exc.code}), 400

    summary = rooms.summary(room_id)
    if summary is None:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(summary)
