import random

import pytest

from codenames.game.errors import WordGenerationError
from codenames.game.registry import RoomRegistry
from codenames.game.service import RoomService
from codenames.game.words import DEFAULT_WORDS_ZH
from codenames.server import create_app


class TestConfig:
    TESTING = True
    SECRET_KEY = "test-secret"
    CORS_ORIGINS = "*"
    TRUST_PROXY_HEADERS = False
    SOCKETIO_ASYNC_MODE = "threading"
    ROOM_SWEEP_INTERVAL_SEC = 0
    ROOM_MAX_AGE_SEC = 12 * 60 * 60
    DEFAULT_MAX_PLAYERS = 4


class FakeClock:
    def __init__(self, start_ms=1_700_000_000_000):
        self.ms = start_ms

    def __call__(self):
        return self.ms

    def advance(self, seconds):
        self.ms += int(seconds * 1000)


class StubWordGenerator:
    """Stands in for the HTTP theme generator."""

    def __init__(self, words=None, error=None):
        self.words = words if words is not None else DEFAULT_WORDS_ZH[:25]
        self.error = error
        self.themes = []

    def generate(self, theme, count=25):
        self.themes.append(theme)
        if self.error:
            raise self.error
        return list(self.words)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def rng():
    return random.Random(1234)


@pytest.fixture()
def registry(clock, rng):
    return RoomRegistry(clock=clock, rng=rng)


@pytest.fixture()
def generator():
    return StubWordGenerator()


@pytest.fixture()
def rooms(registry, generator):
    return RoomService(registry, word_generator=generator)


@pytest.fixture()
def failing_generator():
    return StubWordGenerator(error=WordGenerationError("upstream down"))


@pytest.fixture()
def seated_room(rooms):
    """Join ``n`` players to a fresh room, size it and seat them in order.

    Returns the connection handles, host first.
    """

    def _make(n, max_players=None, room_id="abcd"):
        sids = []
        for i in range(n):
            sid = f"sid-{i}"
            res = rooms.join(room_id, sid, f"p{i}", identity_key=f"client-{i}")
            assert res.ok, res.error
            sids.append(sid)
        res = rooms.update_max_players(sids[0], max_players or max(n, 2))
        assert res.ok, res.error
        for i, sid in enumerate(sids):
            res = rooms.take_seat(sid, i)
            assert res.ok, res.error
        return sids

    return _make


@pytest.fixture()
def flask_app(rooms):
    app, socketio = create_app(TestConfig, rooms=rooms)
    app.extensions["test_socketio"] = socketio
    yield app


@pytest.fixture()
def socketio(flask_app):
    return flask_app.extensions["test_socketio"]


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app, socketio):
    clients = []

    def _make():
        c = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(c)
        return c

    yield _make
    for c in clients:
        try:
            c.disconnect()
        except Exception:
            pass
