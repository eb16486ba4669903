from __future__ import annotations

import logging
import random
import time
from contextlib import contextmanager
from threading import Lock, RLock
from typing import Callable, Iterator

from .models import GameSession

logger = logging.getLogger(__name__)

ROOM_ID_CHARS = "abcdefghijklmnopqrstuvwxyz0123456789"
ROOM_ID_LENGTH = 4
IDENTITY_LOCK_STRIPES = 64


def now_ms() -> int:
    return int(time.time() * 1000)


class RoomRegistry:
    """All live rooms of the process.

    Besides the room table it keeps two lookup indices, connection handle ->
    room id and identity key -> room id. They are rebuilt from the room's
    player list after every membership change and only ever used as hints:
    callers re-check the player list under the room lock.
    """

    def __init__(
        self,
        clock: Callable[[], int] | None = None,
        rng: random.Random | None = None,
        max_age_sec: int = 12 * 60 * 60,
        default_max_players: int = 4,
    ) -> None:
        self.clock = clock or now_ms
        self.rng = rng or random.Random()
        self.max_age_ms = max_age_sec * 1000
        self.default_max_players = default_max_players

        self._lock = RLock()
        self._rooms: dict[str, GameSession] = {}
        self._room_locks: dict[str, RLock] = {}
        self._connection_index: dict[str, str] = {}
        self._identity_index: dict[str, str] = {}
        self._indexed: dict[str, tuple[set[str], set[str]]] = {}
        self._identity_locks = [Lock() for _ in range(IDENTITY_LOCK_STRIPES)]

    def now(self) -> int:
        return self.clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def _create_locked(self, room_id: str) -> GameSession:
        session = GameSession(
            room_id=room_id,
            max_players=self.default_max_players,
            created_at=self.clock(),
        )
        self._rooms[room_id] = session
        self._room_locks[room_id] = RLock()
        self._indexed[room_id] = (set(), set())
        logger.info("room %s created", room_id)
        return session

    def get_or_create(self, room_id: str) -> GameSession:
        with self._lock:
            session = self._rooms.get(room_id)
            if session is None:
                session = self._create_locked(room_id)
            return session

    def get(self, room_id: str) -> GameSession | None:
        with self._lock:
            return self._rooms.get(room_id)

    def list_rooms(self) -> list[GameSession]:
        with self._lock:
            return list(self._rooms.values())

    def delete(self, room_id: str) -> bool:
        with self._lock:
            if room_id not in self._rooms:
                return False
            self._drop_index_locked(room_id)
            del self._rooms[room_id]
            self._room_locks.pop(room_id, None)
            self._indexed.pop(room_id, None)
            logger.info("room %s deleted", room_id)
            return True

    def generate_room_id(self) -> str:
        with self._lock:
            while True:
                code = "".join(self.rng.choice(ROOM_ID_CHARS) for _ in range(ROOM_ID_LENGTH))
                if code not in self._rooms:
                    return code

    @contextmanager
    def locked(self, room_id: str, create: bool = False) -> Iterator[GameSession | None]:
        """Hold the room's lock for the duration of the block.

        Yields None when the room does not exist (and ``create`` is false).
        If the room is deleted while we wait for its lock, look it up again.
        """
        while True:
            with self._lock:
                session = self._rooms.get(room_id)
                if session is None and create:
                    session = self._create_locked(room_id)
                room_lock = self._room_locks.get(room_id)

            if session is None or room_lock is None:
                yield None
                return

            with room_lock:
                if self._rooms.get(room_id) is session:
                    yield session
                    return

    def identity_lock(self, identity_key: str) -> Lock:
        return self._identity_locks[hash(identity_key) % IDENTITY_LOCK_STRIPES]

    # Indices

    def _drop_index_locked(self, room_id: str) -> None:
        handles, identities = self._indexed.get(room_id, (set(), set()))
        for h in handles:
            if self._connection_index.get(h) == room_id:
                del self._connection_index[h]
        for k in identities:
            if self._identity_index.get(k) != room_id:
                continue
            # The same identity may still sit in another room.
            fallback = next(
                (rid for rid, (_, ids) in self._indexed.items() if rid != room_id and k in ids),
                None,
            )
            if fallback is None:
                del self._identity_index[k]
            else:
                self._identity_index[k] = fallback

    def reindex(self, session: GameSession) -> None:
        """Rebuild both index entries of one room from its player list."""
        with self._lock:
            if self._rooms.get(session.room_id) is not session:
                return
            self._drop_index_locked(session.room_id)
            handles: set[str] = set()
            identities: set[str] = set()
            for p in session.players:
                if p.is_online and p.connection_handle:
                    self._connection_index[p.connection_handle] = session.room_id
                    handles.add(p.connection_handle)
                if p.identity_key:
                    self._identity_index[p.identity_key] = session.room_id
                    identities.add(p.identity_key)
            self._indexed[session.room_id] = (handles, identities)

    def room_of_connection(self, connection_handle: str) -> str | None:
        with self._lock:
            return self._connection_index.get(connection_handle)

    def resolve_by_identity(self, identity_key: str) -> str | None:
        with self._lock:
            return self._identity_index.get(identity_key)

    # Expiry

    def sweep_expired(self, now: int | None = None) -> list[str]:
        """Delete rooms older than the maximum lifetime, whatever their phase."""
        now = self.clock() if now is None else now
        with self._lock:
            expired = [rid for rid, s in self._rooms.items() if now - s.created_at >= self.max_age_ms]
            for rid in expired:
                self.delete(rid)
        if expired:
            logger.info("swept %d expired room(s): %s", len(expired), ", ".join(expired))
        return expired
