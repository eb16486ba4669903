from __future__ import annotations

import logging
import re
import uuid
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Iterator

from ..config import Config
from . import engine
from .errors import (
    AuthorizationError,
    ConflictError,
    GameError,
    NotFoundError,
    StateError,
    ValidationError,
)
from .models import GRID_SIZE, MAX_PLAYERS, MIN_PLAYERS, GameSession, GuessResult, Player
from .registry import RoomRegistry
from .theme_words import ThemeWordGenerator
from .views import clue_public, room_public_state, room_summary
from .words import DEFAULT_WORDS_ZH

logger = logging.getLogger(__name__)

ROOM_ID_RE = re.compile(r"^[a-z0-9_-]{1,32}$")
DISPLAY_NAME_MAX = 16


@dataclass
class Result:
    ok: bool
    error: str | None = None
    session: GameSession | None = None
    player: Player | None = None
    guess: GuessResult | None = None
    room_id: str | None = None
    deleted: bool = False
    # Set when join/reconnect first pulled the connection out of another room.
    left: Result | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def ack(self, **kwargs: Any) -> dict:
        if not self.ok:
            return {"ok": False, "error": self.error}
        return {"ok": True, **self.extra, **kwargs}


def _guarded(fn):
    """Turn a raised GameError into a failed Result."""

    @wraps(fn)
    def wrapper(self, *args, **kwargs) -> Result:
        try:
            return fn(self, *args, **kwargs)
        except GameError as exc:
            logger.info("%s rejected (%s): %s", fn.__name__, exc.kind, exc.code)
            return Result(ok=False, error=exc.code)

    return wrapper


def normalize_room_id(raw: Any) -> str:
    room_id = str(raw or "").strip().lower()
    if not ROOM_ID_RE.match(room_id):
        raise ValidationError("invalid_room")
    return room_id


def validate_name(name: str, max_length: int = DISPLAY_NAME_MAX) -> bool:
    n = (name or "").strip()
    if not n:
        return False
    if len(n) > max_length:
        return False
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        return False
    for ch in n:
        if ord(ch) < 32:
            return False
    return True


def _as_int(value: Any, code: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(code)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(code)


def _name_taken(room: GameSession, name: str, exclude: Player | None = None) -> bool:
    return any(p is not exclude and p.is_online and p.name == name for p in room.players)


class RoomService:
    """Operations clients run against rooms, keyed by connection handle.

    Each call takes the room's lock, validates, applies and returns a
    ``Result``. Rejections never raise.
    """

    def __init__(
        self,
        registry: RoomRegistry | None = None,
        word_generator: ThemeWordGenerator | None = None,
    ) -> None:
        # An empty registry is falsy, so test against None.
        if registry is None:
            registry = RoomRegistry(
                max_age_sec=Config.ROOM_MAX_AGE_SEC,
                default_max_players=Config.DEFAULT_MAX_PLAYERS,
            )
        self.registry = registry
        self.word_generator = word_generator if word_generator is not None else ThemeWordGenerator()

    @property
    def rng(self):
        return self.registry.rng

    def now(self) -> int:
        return self.registry.now()

    @contextmanager
    def _acting(self, connection_handle: str) -> Iterator[tuple[GameSession, Player]]:
        room_id = self.registry.room_of_connection(connection_handle)
        if not room_id:
            raise NotFoundError("not_in_room")
        with self.registry.locked(room_id) as room:
            player = room.player_by_connection(connection_handle) if room else None
            if room is None or player is None or not player.is_online:
                raise NotFoundError("not_in_room")
            yield room, player

    @staticmethod
    def _require_host(player: Player) -> None:
        if not player.is_host:
            raise AuthorizationError("not_host")

    @staticmethod
    def _require_waiting(room: GameSession) -> None:
        if room.phase != "waiting":
            raise StateError("game_in_progress")

    @staticmethod
    def _seat(room: GameSession, value: Any) -> int:
        seat = _as_int(value, "invalid_seat")
        if seat < 0 or seat >= room.max_players:
            raise ValidationError("invalid_seat")
        return seat

    def _words_for(self, room: GameSession) -> list[str]:
        return list(room.custom_words) if room.custom_words else DEFAULT_WORDS_ZH

    # Membership

    @_guarded
    def join(self, room_id: str, connection_handle: str, name: str, identity_key: str = "") -> Result:
        room_id = normalize_room_id(room_id)
        name = (name or "").strip()
        if not validate_name(name):
            raise ValidationError("invalid_name")
        identity_key = (identity_key or "").strip()

        left = None
        current = self.registry.room_of_connection(connection_handle)
        if current and current != room_id:
            left = self.leave(connection_handle)

        guard = self.registry.identity_lock(identity_key) if identity_key else nullcontext()
        with guard:
            with self.registry.locked(room_id, create=True) as room:
                player = room.player_by_identity(identity_key) or room.player_by_connection(connection_handle)
                if player is not None:
                    # One record per connection: unbind whatever else this socket drove.
                    for other in room.players:
                        if other is not player and other.connection_handle == connection_handle:
                            other.connection_handle = ""
                            other.is_online = False
                    player.connection_handle = connection_handle
                    player.is_online = True
                    if identity_key and not player.identity_key:
                        player.identity_key = identity_key
                    if name != player.name and not _name_taken(room, name, exclude=player):
                        player.name = name
                    logger.info("player %s re-attached to room %s", player.id, room.room_id)
                else:
                    if room.phase == "waiting" and _name_taken(room, name):
                        raise ConflictError("name_in_use")
                    player = Player(
                        id=uuid.uuid4().hex[:8],
                        identity_key=identity_key,
                        connection_handle=connection_handle,
                        name=name,
                        is_host=room.host() is None,
                    )
                    room.players.append(player)
                    logger.info(
                        "player %s (%s) joined room %s%s",
                        player.id,
                        name,
                        room.room_id,
                        "" if room.phase == "waiting" else " as spectator",
                    )
                self.registry.reindex(room)
                return Result(ok=True, session=room, player=player, room_id=room.room_id, left=left)

    @_guarded
    def reconnect(self, identity_key: str, connection_handle: str) -> Result:
        identity_key = (identity_key or "").strip()
        if not identity_key:
            raise NotFoundError("identity_not_found")

        with self.registry.identity_lock(identity_key):
            room_id = self.registry.resolve_by_identity(identity_key)
            if not room_id:
                raise NotFoundError("identity_not_found")

            left = None
            current = self.registry.room_of_connection(connection_handle)
            if current and current != room_id:
                left = self.leave(connection_handle)

            with self.registry.locked(room_id) as room:
                player = room.player_by_identity(identity_key) if room else None
                if room is None or player is None:
                    raise NotFoundError("identity_not_found")
                player.connection_handle = connection_handle
                player.is_online = True
                self.registry.reindex(room)
                logger.info("player %s reconnected to room %s", player.id, room.room_id)
                return Result(ok=True, session=room, player=player, room_id=room.room_id, left=left)

    def disconnect(self, connection_handle: str) -> Result:
        room_id = self.registry.room_of_connection(connection_handle)
        if not room_id:
            return Result(ok=True)

        with self.registry.locked(room_id) as room:
            player = room.player_by_connection(connection_handle) if room else None
            if room is None or player is None:
                return Result(ok=True)
            # Keep the record and seat so the player can come back.
            player.is_online = False
            self.registry.reindex(room)
            logger.info("player %s went offline in room %s", player.id, room.room_id)
            return Result(ok=True, session=room, player=player, room_id=room.room_id)

    @_guarded
    def leave(self, connection_handle: str) -> Result:
        with self._acting(connection_handle) as (room, player):
            room.players.remove(player)

            if player.is_host and room.players:
                heir = next((p for p in room.players if p.is_online), room.players[0])
                heir.is_host = True
                logger.info("host of room %s passed to %s", room.room_id, heir.id)

            if not room.players:
                self.registry.delete(room.room_id)
                return Result(ok=True, player=player, room_id=room.room_id, deleted=True)

            self.registry.reindex(room)
            return Result(ok=True, session=room, player=player, room_id=room.room_id)

    @_guarded
    def rename(self, connection_handle: str, new_name: str) -> Result:
        name = (new_name or "").strip()
        if not validate_name(name, Config.NAME_MAX_LENGTH):
            raise ValidationError("invalid_name")
        with self._acting(connection_handle) as (room, player):
            if _name_taken(room, name, exclude=player):
                raise ConflictError("name_in_use")
            player.name = name
            return Result(ok=True, session=room, player=player, room_id=room.room_id)

    @_guarded
    def transfer_host(self, connection_handle: str, target_player_id: str) -> Result:
        with self._acting(connection_handle) as (room, player):
            self._require_host(player)
            target = room.player_by_id(str(target_player_id or ""))
            if target is None:
                raise NotFoundError("player_not_found")
            player.is_host = False
            target.is_host = True
            return Result(ok=True, session=room, player=target, room_id=room.room_id)

    # Seating

    @_guarded
    def take_seat(self, connection_handle: str, seat_index: Any) -> Result:
        with self._acting(connection_handle) as (room, player):
            self._require_waiting(room)
            seat = self._seat(room, seat_index)
            occupant = room.player_at_seat(seat)
            if occupant is not None and occupant is not player:
                raise ConflictError("seat_occupied")
            player.seat_index = seat
            return Result(ok=True, session=room, player=player, room_id=room.room_id)

    @_guarded
    def leave_seat(self, connection_handle: str) -> Result:
        with self._acting(connection_handle) as (room, player):
            self._require_waiting(room)
            player.seat_index = None
            return Result(ok=True, session=room, player=player, room_id=room.room_id)

    @_guarded
    def switch_seat(self, connection_handle: str, seat_index: Any) -> Result:
        with self._acting(connection_handle) as (room, player):
            self._require_waiting(room)
            seat = self._seat(room, seat_index)
            if player.seat_index is None:
                raise StateError("not_seated")
            occupant = room.player_at_seat(seat)
            if occupant is not None and occupant is not player:
                occupant.seat_index = player.seat_index
            player.seat_index = seat
            return Result(ok=True, session=room, player=player, room_id=room.room_id)

    @_guarded
    def update_max_players(self, connection_handle: str, max_players: Any) -> Result:
        with self._acting(connection_handle) as (room, player):
            self._require_host(player)
            self._require_waiting(room)
            n = _as_int(max_players, "invalid_max_players")
            if n < MIN_PLAYERS or n > MAX_PLAYERS:
                raise ValidationError("invalid_max_players")
            seated = room.seated_players()
            if len(seated) > n:
                raise ConflictError("too_many_seated")

            # Pull anyone sitting beyond the new table size onto free seats.
            taken = {p.seat_index for p in seated if p.seat_index < n}
            free = iter(sorted(set(range(n)) - taken))
            for p in seated:
                if p.seat_index >= n:
                    p.seat_index = next(free)
            room.max_players = n
            return Result(ok=True, session=room, player=player, room_id=room.room_id)

    # Word source

    def _clean_words(self, words: Any) -> list[str]:
        if not isinstance(words, list):
            raise ValidationError("invalid_words")
        out: list[str] = []
        for w in words:
            if not isinstance(w, str):
                raise ValidationError("invalid_words")
            t = w.strip()
            if not t:
                continue
            if len(t) > Config.WORD_MAX_LENGTH:
                raise ValidationError("invalid_words")
            if t not in out:
                out.append(t)
        if len(out) < GRID_SIZE:
            raise ValidationError("not_enough_words")
        return out

    @_guarded
    def set_words(self, connection_handle: str, words: Any = None, theme: Any = None) -> Result:
        theme = theme.strip() if isinstance(theme, str) else None

        if theme:
            with self._acting(connection_handle) as (room, player):
                self._require_host(player)
                self._require_waiting(room)
            # Generation is slow network I/O; nobody else waits on this room meanwhile.
            generated = self.word_generator.generate(theme)
            cleaned: list[str] | None = generated
        elif words is not None:
            cleaned = self._clean_words(words)
        else:
            cleaned = None

        with self._acting(connection_handle) as (room, player):
            self._require_host(player)
            self._require_waiting(room)
            room.custom_words = cleaned
            room.word_theme = theme or None
            count = len(cleaned) if cleaned else 0
            logger.info("room %s words set: %d custom, theme %r", room.room_id, count, room.word_theme)
            return Result(ok=True, session=room, player=player, room_id=room.room_id, extra={"count": count})

    # Turns

    @_guarded
    def start(self, connection_handle: str) -> Result:
        with self._acting(connection_handle) as (room, player):
            self._require_host(player)
            engine.start_game(room, self._words_for(room), self.rng, self.now())
            return Result(ok=True, session=room, player=player, room_id=room.room_id)

    @_guarded
    def restart(self, connection_handle: str) -> Result:
        with self._acting(connection_handle) as (room, player):
            self._require_host(player)
            engine.restart_game(room, self._words_for(room), self.rng, self.now())
            return Result(ok=True, session=room, player=player, room_id=room.room_id)

    @_guarded
    def give_clue(self, connection_handle: str, word: Any, count: Any) -> Result:
        word = word.strip() if isinstance(word, str) else ""
        if not word or len(word) > Config.CLUE_MAX_LENGTH:
            raise ValidationError("invalid_clue")
        n = _as_int(count, "invalid_clue")
        if n < 0:
            raise ValidationError("invalid_clue")

        with self._acting(connection_handle) as (room, player):
            if room.phase != "playing":
                raise StateError("game_not_started")
            if player.team is None:
                raise AuthorizationError("not_a_participant")
            if not player.is_spymaster:
                raise AuthorizationError("not_spymaster")
            clue = engine.give_clue(room, player.team, word, n, self.now())
            return Result(
                ok=True,
                session=room,
                player=player,
                room_id=room.room_id,
                extra={"clue": clue_public(clue)},
            )

    @_guarded
    def guess_card(self, connection_handle: str, card_index: Any) -> Result:
        index = _as_int(card_index, "invalid_card")
        with self._acting(connection_handle) as (room, player):
            guess = engine.guess_card(room, player, index, self.rng, self.now())
            return Result(ok=True, session=room, player=player, guess=guess, room_id=room.room_id)

    @_guarded
    def end_turn(self, connection_handle: str) -> Result:
        with self._acting(connection_handle) as (room, player):
            auto = engine.end_turn(room, player, self.rng, self.now())
            return Result(
                ok=True,
                session=room,
                player=player,
                room_id=room.room_id,
                extra={"autoRevealed": auto},
            )

    # Read side

    def room_states(self, room_id: str) -> list[tuple[str, dict]]:
        """(connection handle, state) for every online player of the room."""
        with self.registry.locked(room_id) as room:
            if room is None:
                return []
            return [
                (p.connection_handle, room_public_state(room, viewer=p))
                for p in room.players
                if p.is_online and p.connection_handle
            ]

    def state_for(self, room_id: str, connection_handle: str | None = None) -> dict | None:
        with self.registry.locked(room_id) as room:
            if room is None:
                return None
            viewer = room.player_by_connection(connection_handle) if connection_handle else None
            return room_public_state(room, viewer=viewer)

    def summary(self, room_id: str) -> dict | None:
        with self.registry.locked(room_id) as room:
            return room_summary(room) if room else None

    def sweep(self) -> list[str]:
        return self.registry.sweep_expired()
