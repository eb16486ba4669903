import threading

import pytest

from codenames.game.errors import ThemeRejected
from codenames.game.service import RoomService
from codenames.game.words import DEFAULT_WORDS_ZH

from conftest import StubWordGenerator


def _player(rooms, room_id, sid):
    return rooms.registry.get(room_id).player_by_connection(sid)


def test_keeps_the_registry_it_is_given(registry, clock, rng):
    # A fresh registry is empty, and so falsy.
    assert len(registry) == 0
    service = RoomService(registry)
    assert service.registry is registry
    assert service.rng is rng
    assert service.now() == clock()
    service.join("abcd", "s1", "Ann", "c1")
    assert registry.get("abcd").created_at == clock()


class TestJoin:
    def test_first_player_hosts(self, rooms):
        a = rooms.join("abcd", "s1", "Ann", "c1")
        b = rooms.join("abcd", "s2", "Bo", "c2")
        assert a.ok and b.ok
        assert a.player.is_host and not b.player.is_host
        assert a.player.seat_index is None
        assert a.session is b.session

    def test_room_id_is_normalised(self, rooms):
        res = rooms.join(" ABCD ", "s1", "Ann", "c1")
        assert res.room_id == "abcd"

    @pytest.mark.parametrize("room_id", ["", "has space", "x" * 33])
    def test_bad_room_id(self, rooms, room_id):
        res = rooms.join(room_id, "s1", "Ann", "c1")
        assert (res.ok, res.error) == (False, "invalid_room")

    @pytest.mark.parametrize("name", ["", "   ", "<b>", "a" * 17])
    def test_bad_name(self, rooms, name):
        res = rooms.join("abcd", "s1", name, "c1")
        assert (res.ok, res.error) == (False, "invalid_name")
        assert rooms.registry.get("abcd") is None

    def test_online_name_clash_is_rejected(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        res = rooms.join("abcd", "s2", "Ann", "c2")
        assert (res.ok, res.error) == (False, "name_in_use")
        assert len(rooms.registry.get("abcd").players) == 1
        assert rooms.registry.room_of_connection("s2") is None

    def test_name_of_offline_player_is_free(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        rooms.disconnect("s1")
        res = rooms.join("abcd", "s3", "Ann", "c3")
        assert res.ok
        assert len(res.session.players) == 3

    def test_same_identity_reattaches(self, rooms):
        first = rooms.join("abcd", "s1", "Ann", "c1")
        rooms.take_seat("s1", 2)
        rooms.disconnect("s1")

        again = rooms.join("abcd", "s9", "Anna", "c1")

        assert again.ok
        assert again.player.id == first.player.id
        assert again.player.connection_handle == "s9"
        assert again.player.is_online
        assert again.player.name == "Anna"
        assert again.player.seat_index == 2
        assert len(again.session.players) == 1
        assert rooms.registry.room_of_connection("s9") == "abcd"

    def test_late_joiner_is_a_spectator(self, rooms, seated_room):
        sids = seated_room(2)
        assert rooms.start(sids[0]).ok

        res = rooms.join("abcd", "s-late", "p0", "c-late")

        assert res.ok
        assert res.player.seat_index is None
        assert res.player.team is None
        assert not res.player.is_host

    def test_joining_another_room_leaves_the_first(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        res = rooms.join("efgh", "s1", "Ann", "c1")
        assert res.ok
        assert rooms.registry.room_of_connection("s1") == "efgh"
        assert [p.name for p in rooms.registry.get("abcd").players] == ["Bo"]
        assert res.left.room_id == "abcd"
        assert not res.left.deleted

    def test_socket_drives_a_single_record(self, rooms):
        rooms.join("abcd", "s1", "Ann")
        rooms.join("abcd", "s2", "Bo", "k-bo")
        rooms.disconnect("s2")

        res = rooms.join("abcd", "s1", "Bo", "k-bo")

        assert res.ok
        room = rooms.registry.get("abcd")
        bound = [p for p in room.players if p.connection_handle == "s1"]
        assert bound == [res.player]
        assert res.player.identity_key == "k-bo"
        ann = next(p for p in room.players if p.name == "Ann")
        assert not ann.is_online

    def test_concurrent_join_and_reconnect_keep_one_record(self, rooms):
        rooms.join("abcd", "s0", "Ann", "k-ann")
        rooms.disconnect("s0")

        sids = [f"s{i}" for i in range(1, 9)]
        barrier = threading.Barrier(len(sids))
        results = []

        def attach(i, sid):
            barrier.wait()
            if i % 2:
                results.append(rooms.reconnect("k-ann", sid))
            else:
                results.append(rooms.join("abcd", sid, "Ann", "k-ann"))

        threads = [threading.Thread(target=attach, args=(i, sid)) for i, sid in enumerate(sids)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(r.ok for r in results)
        room = rooms.registry.get("abcd")
        assert len(room.players) == 1
        assert room.players[0].is_online
        assert sum(rooms.registry.room_of_connection(sid) == "abcd" for sid in sids) == 1


class TestReconnect:
    def test_reconnect_by_identity(self, rooms, seated_room):
        sids = seated_room(2)
        rooms.disconnect(sids[1])

        res = rooms.reconnect("client-1", "new-sid")

        assert res.ok
        assert res.room_id == "abcd"
        assert res.player.connection_handle == "new-sid"
        assert res.player.is_online
        assert res.player.seat_index == 1
        assert rooms.registry.room_of_connection("new-sid") == "abcd"

    def test_unknown_identity(self, rooms):
        assert rooms.reconnect("ghost", "s1").error == "identity_not_found"
        assert rooms.reconnect("", "s1").error == "identity_not_found"

    def test_identity_gone_after_leave(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        rooms.leave("s2")
        assert rooms.reconnect("c2", "s3").error == "identity_not_found"

    def test_identity_survives_leaving_a_second_room(self, rooms):
        rooms.join("aaaa", "s1", "Ann", "k")
        rooms.join("aaaa", "s2", "Bo", "k-bo")
        rooms.disconnect("s1")
        rooms.join("bbbb", "s3", "Ann", "k")
        rooms.leave("s3")

        res = rooms.reconnect("k", "s4")

        assert res.ok
        assert res.room_id == "aaaa"
        assert res.player.name == "Ann"


class TestDisconnect:
    def test_disconnect_keeps_the_seat(self, rooms, seated_room):
        sids = seated_room(2)
        res = rooms.disconnect(sids[1])
        assert res.ok
        player = res.player
        assert not player.is_online
        assert player.seat_index == 1
        assert player in res.session.players
        assert rooms.registry.room_of_connection(sids[1]) is None
        assert rooms.registry.resolve_by_identity("client-1") == "abcd"

    def test_disconnect_is_idempotent(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        assert rooms.disconnect("s1").ok
        assert rooms.disconnect("s1").ok
        assert rooms.disconnect("never-seen").ok

    def test_offline_player_cannot_act(self, rooms, seated_room):
        sids = seated_room(2)
        rooms.disconnect(sids[0])
        assert rooms.start(sids[0]).error == "not_in_room"


class TestLeave:
    def test_host_passes_to_first_online_player(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        rooms.join("abcd", "s3", "Cy", "c3")
        rooms.disconnect("s2")

        res = rooms.leave("s1")

        assert res.ok and not res.deleted
        hosts = [p.name for p in res.session.players if p.is_host]
        assert hosts == ["Cy"]

    def test_host_falls_back_to_offline_player(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        rooms.disconnect("s2")
        res = rooms.leave("s1")
        assert [p.name for p in res.session.players if p.is_host] == ["Bo"]

    def test_last_player_out_deletes_the_room(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        res = rooms.leave("s1")
        assert res.ok and res.deleted
        assert rooms.registry.get("abcd") is None
        assert rooms.registry.resolve_by_identity("c1") is None

    def test_leave_when_not_in_a_room(self, rooms):
        assert rooms.leave("nobody").error == "not_in_room"


class TestRename:
    def test_rename(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        res = rooms.rename("s1", " 小明 ")
        assert res.ok
        assert res.player.name == "小明"

    @pytest.mark.parametrize("name", ["", "  ", "abcde"])
    def test_length_limits(self, rooms, name):
        rooms.join("abcd", "s1", "Ann", "c1")
        assert rooms.rename("s1", name).error == "invalid_name"

    def test_clash_with_online_player(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        assert rooms.rename("s2", "Ann").error == "name_in_use"
        rooms.disconnect("s1")
        assert rooms.rename("s2", "Ann").ok


class TestSeats:
    def test_take_and_leave(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        assert rooms.take_seat("s1", 3).ok
        assert _player(rooms, "abcd", "s1").seat_index == 3
        assert rooms.take_seat("s1", 3).ok
        assert rooms.leave_seat("s1").ok
        assert _player(rooms, "abcd", "s1").seat_index is None

    def test_occupied_seat(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        rooms.take_seat("s1", 0)
        assert rooms.take_seat("s2", 0).error == "seat_occupied"
        assert _player(rooms, "abcd", "s2").seat_index is None

    @pytest.mark.parametrize("seat", [-1, 4, "x", None, True])
    def test_seat_out_of_range(self, rooms, seat):
        rooms.join("abcd", "s1", "Ann", "c1")
        assert rooms.take_seat("s1", seat).error == "invalid_seat"

    def test_switch_swaps_with_occupant(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        rooms.take_seat("s1", 0)
        rooms.take_seat("s2", 1)
        assert rooms.switch_seat("s1", 1).ok
        assert _player(rooms, "abcd", "s1").seat_index == 1
        assert _player(rooms, "abcd", "s2").seat_index == 0

    def test_switch_to_empty_seat(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.take_seat("s1", 0)
        assert rooms.switch_seat("s1", 2).ok
        assert _player(rooms, "abcd", "s1").seat_index == 2

    def test_switch_needs_a_seat(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        assert rooms.switch_seat("s1", 2).error == "not_seated"

    def test_seats_are_frozen_during_play(self, rooms, seated_room):
        sids = seated_room(4)
        rooms.start(sids[0])
        assert rooms.take_seat(sids[0], 3).error == "game_in_progress"
        assert rooms.leave_seat(sids[0]).error == "game_in_progress"
        assert rooms.switch_seat(sids[0], 3).error == "game_in_progress"

    def test_concurrent_takers_get_one_seat(self, rooms):
        sids = [f"s{i}" for i in range(8)]
        for i, sid in enumerate(sids):
            rooms.join("abcd", sid, f"n{i}", f"c{i}")

        results = []
        barrier = threading.Barrier(len(sids))

        def take(sid):
            barrier.wait()
            results.append(rooms.take_seat(sid, 0))

        threads = [threading.Thread(target=take, args=(sid,)) for sid in sids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(r.ok for r in results) == 1
        assert sum(r.error == "seat_occupied" for r in results) == 7
        seated = [p for p in rooms.registry.get("abcd").players if p.seat_index == 0]
        assert len(seated) == 1


class TestMaxPlayers:
    def test_host_only(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        assert rooms.update_max_players("s2", 6).error == "not_host"

    @pytest.mark.parametrize("n", [1, 9, "many", None])
    def test_range(self, rooms, n):
        rooms.join("abcd", "s1", "Ann", "c1")
        assert rooms.update_max_players("s1", n).error == "invalid_max_players"

    def test_cannot_shrink_below_seated(self, rooms, seated_room):
        sids = seated_room(3, max_players=4)
        assert rooms.update_max_players(sids[0], 2).error == "too_many_seated"
        assert rooms.registry.get("abcd").max_players == 4

    def test_shrinking_moves_far_seats_in(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        rooms.update_max_players("s1", 8)
        rooms.take_seat("s1", 1)
        rooms.take_seat("s2", 7)

        assert rooms.update_max_players("s1", 2).ok

        assert _player(rooms, "abcd", "s1").seat_index == 1
        assert _player(rooms, "abcd", "s2").seat_index == 0

    def test_waiting_only(self, rooms, seated_room):
        sids = seated_room(2)
        rooms.start(sids[0])
        assert rooms.update_max_players(sids[0], 4).error == "game_in_progress"


class TestHost:
    def test_transfer(self, rooms):
        a = rooms.join("abcd", "s1", "Ann", "c1").player
        b = rooms.join("abcd", "s2", "Bo", "c2").player
        assert rooms.transfer_host("s1", b.id).ok
        assert (a.is_host, b.is_host) == (False, True)
        assert rooms.transfer_host("s1", a.id).error == "not_host"
        assert rooms.transfer_host("s2", "missing").error == "player_not_found"


class TestWords:
    def test_custom_words_are_dealt(self, rooms, seated_room):
        sids = seated_room(2)
        words = DEFAULT_WORDS_ZH[-30:]
        res = rooms.set_words(sids[0], words=words)
        assert res.ok
        assert res.extra["count"] == 30

        rooms.start(sids[0])
        dealt = {c.word for c in rooms.registry.get("abcd").cards}
        assert dealt <= set(words)

    def test_too_few_words(self, rooms, seated_room):
        sids = seated_room(2)
        assert rooms.set_words(sids[0], words=["猫"] * 40).error == "not_enough_words"
        assert rooms.set_words(sids[0], words="猫,狗").error == "invalid_words"
        assert rooms.registry.get("abcd").custom_words is None

    def test_theme(self, rooms, seated_room, generator):
        sids = seated_room(2)
        res = rooms.set_words(sids[0], theme="大海")
        assert res.ok
        room = rooms.registry.get("abcd")
        assert room.word_theme == "大海"
        assert room.custom_words == generator.words
        assert generator.themes == ["大海"]

    def test_generator_failure_leaves_words_alone(self, registry, failing_generator):
        rooms = RoomService(registry, word_generator=failing_generator)
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.set_words("s1", words=DEFAULT_WORDS_ZH[:25])

        res = rooms.set_words("s1", theme="大海")

        assert res.error == "word_generation_failed"
        room = registry.get("abcd")
        assert room.custom_words == DEFAULT_WORDS_ZH[:25]
        assert room.word_theme is None

    def test_rejected_theme(self, registry):
        rooms = RoomService(registry, word_generator=StubWordGenerator(error=ThemeRejected()))
        rooms.join("abcd", "s1", "Ann", "c1")
        assert rooms.set_words("s1", theme="x").error == "theme_rejected"

    def test_clear(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.set_words("s1", words=DEFAULT_WORDS_ZH[:25])
        assert rooms.set_words("s1").ok
        assert rooms.registry.get("abcd").custom_words is None

    def test_host_only(self, rooms, generator):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        assert rooms.set_words("s2", theme="大海").error == "not_host"
        assert generator.themes == []


class TestTurns:
    def test_start_rules(self, rooms):
        rooms.join("abcd", "s1", "Ann", "c1")
        rooms.join("abcd", "s2", "Bo", "c2")
        rooms.take_seat("s1", 0)
        assert rooms.start("s2").error == "not_host"
        assert rooms.start("s1").error == "not_enough_players"
        rooms.take_seat("s2", 1)
        res = rooms.start("s1")
        assert res.ok
        assert res.session.phase == "playing"
        assert rooms.start("s1").error == "game_in_progress"

    def test_two_player_round(self, rooms, seated_room):
        sids = seated_room(2)
        rooms.start(sids[0])
        room = rooms.registry.get("abcd")
        assert room.current_team == "red"

        assert rooms.give_clue(sids[1], "x", 1).error == "not_spymaster"
        res = rooms.give_clue(sids[0], "x", 1)
        assert res.ok
        assert res.extra["clue"]["word"] == "x"

        res = rooms.end_turn(sids[1])
        assert res.ok
        assert res.extra["autoRevealed"] is not None
        assert room.current_team == "red"
        assert room.blue_score == 1
        assert room.current_clue is None

    @pytest.mark.parametrize("word,count", [("", 1), ("x" * 21, 1), ("x", -1), ("x", "two"), ("x", True)])
    def test_bad_clue(self, rooms, seated_room, word, count):
        sids = seated_room(2)
        rooms.start(sids[0])
        assert rooms.give_clue(sids[0], word, count).error == "invalid_clue"

    @pytest.mark.parametrize("count", [0, 25, 30, "40"])
    def test_clue_count_has_no_upper_bound(self, rooms, seated_room, count):
        sids = seated_room(2)
        rooms.start(sids[0])
        res = rooms.give_clue(sids[0], "x", count)
        assert res.ok
        assert res.extra["clue"]["count"] == int(count)

    def test_simultaneous_guesses_reveal_once(self, rooms, seated_room):
        sids = seated_room(5)
        rooms.start(sids[0])
        room = rooms.registry.get("abcd")
        team = room.current_team
        # Spymasters may guess too, so every team member races for the card.
        racers = [p.connection_handle for p in room.players if p.team == team]
        assert len(racers) >= 2
        index = next(c.index for c in room.cards if c.color == team)

        barrier = threading.Barrier(len(racers))
        results = []

        def guess(sid):
            barrier.wait()
            results.append(rooms.guess_card(sid, index))

        threads = [threading.Thread(target=guess, args=(sid,)) for sid in racers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(r.ok for r in results) == 1
        assert sorted(r.error for r in results if not r.ok) == ["card_revealed"] * (len(racers) - 1)
        assert [g.card_index for g in room.guess_history] == [index]
        assert room.current_team == team

    def test_clue_before_start(self, rooms, seated_room):
        sids = seated_room(2)
        assert rooms.give_clue(sids[0], "x", 1).error == "game_not_started"

    def test_assassin_through_the_service(self, rooms, seated_room):
        sids = seated_room(2)
        rooms.start(sids[0])
        room = rooms.registry.get("abcd")
        index = next(c.index for c in room.cards if c.color == "assassin")

        res = rooms.guess_card(sids[1], index)

        assert res.ok
        assert res.guess.game_ended and res.guess.winner == "blue"
        assert rooms.guess_card(sids[1], 0).error == "game_not_started"

    def test_restart_keeps_seats(self, rooms, seated_room):
        sids = seated_room(4)
        rooms.start(sids[0])
        room = rooms.registry.get("abcd")
        assert rooms.restart(sids[0]).error == "game_not_ended"

        actor = next(p for p in room.players if p.team == room.current_team and not p.is_spymaster)
        index = next(c.index for c in room.cards if c.color == "assassin")
        rooms.guess_card(actor.connection_handle, index)
        assert room.phase == "ended"

        assert rooms.restart(sids[1]).error == "not_host"
        res = rooms.restart(sids[0])
        assert res.ok
        assert room.phase == "playing"
        assert room.red_score == room.blue_score == 0
        assert [p.seat_index for p in room.players] == [0, 1, 2, 3]

    def test_state_hides_colors_from_guessers(self, rooms, seated_room):
        sids = seated_room(2)
        rooms.start(sids[0])
        spymaster_view = rooms.state_for("abcd", sids[0])
        guesser_view = rooms.state_for("abcd", sids[1])
        assert all(c["color"] for c in spymaster_view["cards"])
        assert all(c["color"] is None for c in guesser_view["cards"])
        assert "identityKey" not in spymaster_view["players"][0]
        assert {sid for sid, _ in rooms.room_states("abcd")} == set(sids)
