from __future__ import annotations

import logging
import threading
from functools import wraps
from typing import Any

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from ..game.service import Result, RoomService
from ..game.views import guess_result_public, player_public

logger = logging.getLogger(__name__)


def register_socketio_handlers(socketio: SocketIO, rooms: RoomService, sweep_interval_sec: int = 0) -> None:
    sweeper = {"started": False}
    sweeper_lock = threading.Lock()

    def _broadcast_room_state(room_id: str) -> None:
        # Card colours depend on the viewer, so every player gets their own copy.
        for sid, state in rooms.room_states(room_id):
            socketio.emit("game:state", state, to=sid)

    def _safe_broadcast_room_state(room_id: str | None) -> None:
        if not room_id:
            return
        try:
            _broadcast_room_state(room_id)
        except Exception:
            logger.exception("broadcast to room %s failed", room_id)

    def _reply(res: Result, channel: str, **extra: Any) -> dict:
        if not res.ok:
            emit(channel, {"error": res.error})
        return res.ack(**extra)

    def _announce_leave(res: Result | None) -> None:
        if res is None or not res.ok:
            return
        leave_room(res.room_id)
        if not res.deleted:
            emit("player:left", {"playerId": res.player.id}, to=res.room_id)
            _safe_broadcast_room_state(res.room_id)

    def _ensure_sweeper() -> None:
        if sweep_interval_sec <= 0:
            return
        with sweeper_lock:
            if sweeper["started"]:
                return
            sweeper["started"] = True

        def _runner() -> None:
            while True:
                socketio.sleep(sweep_interval_sec)
                try:
                    for room_id in rooms.sweep():
                        socketio.emit("room:error", {"error": "room_expired"}, to=room_id)
                        socketio.close_room(room_id)
                except Exception:
                    logger.exception("room sweep failed")

        socketio.start_background_task(_runner)

    def on(event: str):
        """Register a handler; unexpected failures are logged and acked as internal_error."""

        def decorator(fn):
            @wraps(fn)
            def wrapper(*args):
                try:
                    return fn(*args)
                except Exception:
                    logger.exception("%s from %s failed", event, request.sid)
                    return {"ok": False, "error": "internal_error"}

            socketio.on(event)(wrapper)
            return wrapper

        return decorator

    @socketio.on("connect")
    def on_connect(auth=None):
        _ensure_sweeper()

    @on("room:join")
    def room_join(data=None):
        payload = data or {}
        res = rooms.join(
            room_id=str(payload.get("roomId", "")),
            connection_handle=request.sid,
            name=str(payload.get("name", "")),
            identity_key=str(payload.get("clientId", "")),
        )
        if not res.ok:
            return _reply(res, "room:error")

        _announce_leave(res.left)
        join_room(res.room_id)
        player = player_public(res.player)
        emit("player:joined", player, to=res.room_id, include_self=False)
        _safe_broadcast_room_state(res.room_id)
        return _reply(res, "room:error", player=player, state=rooms.state_for(res.room_id, request.sid))

    @on("room:reconnect")
    def room_reconnect(data=None):
        payload = data or {}
        res = rooms.reconnect(str(payload.get("clientId", "")), request.sid)
        if not res.ok:
            return _reply(res, "room:error")

        _announce_leave(res.left)
        join_room(res.room_id)
        _safe_broadcast_room_state(res.room_id)
        return _reply(
            res,
            "room:error",
            player=player_public(res.player),
            state=rooms.state_for(res.room_id, request.sid),
        )

    @on("room:leave")
    def room_leave(data=None):
        res = rooms.leave(request.sid)
        if not res.ok:
            return _reply(res, "room:error")

        _announce_leave(res)
        return _reply(res, "room:error")

    @on("player:rename")
    def player_rename(data=None):
        payload = data or {}
        res = rooms.rename(request.sid, str(payload.get("name", "")))
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "room:error")

    @on("room:transfer_host")
    def room_transfer_host(data=None):
        payload = data or {}
        res = rooms.transfer_host(request.sid, str(payload.get("playerId", "")))
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "room:error")

    @on("seat:take")
    def seat_take(data=None):
        payload = data or {}
        res = rooms.take_seat(request.sid, payload.get("seatIndex"))
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "room:error")

    @on("seat:leave")
    def seat_leave(data=None):
        res = rooms.leave_seat(request.sid)
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "room:error")

    @on("seat:switch")
    def seat_switch(data=None):
        payload = data or {}
        res = rooms.switch_seat(request.sid, payload.get("seatIndex"))
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "room:error")

    @on("config:update")
    def config_update(data=None):
        payload = data or {}
        if payload.get("maxPlayers") is None:
            return {"ok": True}
        res = rooms.update_max_players(request.sid, payload.get("maxPlayers"))
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "room:error")

    @on("words:set")
    def words_set(data=None):
        payload = data or {}
        res = rooms.set_words(request.sid, words=payload.get("words"), theme=payload.get("theme"))
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "game:error")

    @on("game:start")
    def game_start(data=None):
        res = rooms.start(request.sid)
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "game:error")

    @on("game:restart")
    def game_restart(data=None):
        res = rooms.restart(request.sid)
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "game:error")

    @on("clue:give")
    def clue_give(data=None):
        payload = data or {}
        res = rooms.give_clue(request.sid, payload.get("word"), payload.get("count"))
        if res.ok:
            socketio.emit("clue:new", res.extra["clue"], to=res.room_id)
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "game:error")

    @on("card:guess")
    def card_guess(data=None):
        payload = data or {}
        res = rooms.guess_card(request.sid, payload.get("cardIndex"))
        if not res.ok:
            return _reply(res, "game:error")

        result = guess_result_public(res.guess)
        socketio.emit("guess:result", result, to=res.room_id)
        if res.guess.game_ended:
            reason = "assassin" if res.guess.card_color == "assassin" else "all_words"
            socketio.emit("game:ended", {"winner": res.guess.winner, "reason": reason}, to=res.room_id)
        _safe_broadcast_room_state(res.room_id)
        return _reply(res, "game:error", result=result)

    @on("turn:end")
    def turn_end(data=None):
        res = rooms.end_turn(request.sid)
        if res.ok:
            _safe_broadcast_room_state(res.room_id)
        return _reply(res, "game:error")

    @socketio.on("disconnect")
    def on_disconnect(*args):
        try:
            res = rooms.disconnect(request.sid)
        except Exception:
            logger.exception("disconnect of %s failed", request.sid)
            return
        _safe_broadcast_room_state(res.room_id)
