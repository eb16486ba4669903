"""Turn state machine for a single room.

Functions here mutate the session in place and raise ``GameError`` on
rejection. Every check runs before the first mutation, so a rejected call
leaves the session untouched. Callers must hold the room lock.
"""

from __future__ import annotations

import logging
import random

from .deck import build_deck, count_colors, first_mover
from .errors import AuthorizationError, ConflictError, GameError, StateError, ValidationError
from .models import (
    MIN_PLAYERS,
    Clue,
    GameSession,
    GuessRecord,
    GuessResult,
    Player,
    Team,
    other_team,
)
from .roles import assign_teams_and_roles

logger = logging.getLogger(__name__)


def effective_team(session: GameSession, player: Player) -> Team | None:
    """Team a player acts for right now; a double agent follows the turn."""
    if player.is_double_agent:
        return session.current_team
    return player.team


def start_game(session: GameSession, words: list[str], rng: random.Random, now: int) -> GameSession:
    if session.phase != "waiting":
        raise StateError("game_in_progress")

    seated = session.seated_players()
    if len(seated) < MIN_PLAYERS:
        raise ValidationError("not_enough_players")

    # Deal first: a short word list must fail before roles change.
    cards, _ = build_deck(words, rng)

    for p in session.players:
        if p.seat_index is None:
            p.team = None
            p.is_spymaster = False
            p.is_double_agent = False
    assign_teams_and_roles(seated, session.max_players)

    counts = count_colors(cards)
    session.cards = cards
    session.current_team = first_mover(cards, session.max_players)
    session.current_clue = None
    session.red_score = 0
    session.blue_score = 0
    session.red_total = counts["red"]
    session.blue_total = counts["blue"]
    session.winner = None
    session.guess_history = []
    session.clue_history = []
    session.started_at = now
    session.ended_at = None
    session.phase = "playing"

    logger.info(
        "room %s started: %d seated, max %d, %s first",
        session.room_id,
        len(seated),
        session.max_players,
        session.current_team,
    )
    return session


def restart_game(session: GameSession, words: list[str], rng: random.Random, now: int) -> GameSession:
    if session.phase != "ended":
        raise StateError("game_not_ended")

    session.phase = "waiting"
    try:
        return start_game(session, words, rng, now)
    except GameError:
        # start_game rejects before touching anything else.
        session.phase = "ended"
        raise


def give_clue(session: GameSession, team: Team, word: str, count: int, now: int) -> Clue:
    if session.phase != "playing":
        raise StateError("game_not_started")
    if session.current_team != team:
        raise AuthorizationError("not_your_turn")

    # count is shown to guessers only; guessing is never capped by it.
    clue = Clue(word=word, count=count, team=team, timestamp=now)
    session.current_clue = clue
    session.clue_history.append(clue)
    return clue


def _end(session: GameSession, winner: Team, now: int) -> None:
    session.phase = "ended"
    session.winner = winner
    session.ended_at = now
    session.current_clue = None
    logger.info(
        "room %s ended: %s wins (red %d/%d, blue %d/%d)",
        session.room_id,
        winner,
        session.red_score,
        session.red_total,
        session.blue_score,
        session.blue_total,
    )


def _score(session: GameSession, team: Team, now: int) -> bool:
    """Add a point; end the game when the team has found all its words."""
    if session.add_point(team) >= session.total_of(team):
        _end(session, team, now)
        return True
    return False


def _has_guesser(session: GameSession, team: Team) -> bool:
    for p in session.players:
        if p.seat_index is None or p.team is None or p.is_spymaster:
            continue
        if p.team == team or p.is_double_agent:
            return True
    return False


def switch_turn(session: GameSession, rng: random.Random, now: int) -> int | None:
    """Hand the turn to the other team.

    When nobody can guess for the other team, flip one of its cards at random
    on its behalf and keep the current team playing instead. Returns the
    index of that card, if any.
    """
    next_team = other_team(session.current_team)
    session.current_clue = None

    if _has_guesser(session, next_team):
        session.current_team = next_team
        return None

    hidden = [c for c in session.cards if c.color == next_team and not c.revealed]
    if not hidden:
        return None

    card = rng.choice(hidden)
    card.revealed = True
    session.guess_history.append(
        GuessRecord(
            player_id="",
            player_name="",
            card_index=card.index,
            card_word=card.word,
            card_color=card.color,
            team=next_team,
            timestamp=now,
            auto=True,
        )
    )
    logger.debug("room %s auto-revealed card %d for %s", session.room_id, card.index, next_team)
    _score(session, next_team, now)
    return card.index


def guess_card(
    session: GameSession,
    player: Player,
    card_index: int,
    rng: random.Random,
    now: int,
) -> GuessResult:
    if session.phase != "playing":
        raise StateError("game_not_started")
    if player.team is None:
        raise AuthorizationError("not_a_participant")

    team = effective_team(session, player)
    if team != session.current_team:
        raise AuthorizationError("not_your_turn")

    if isinstance(card_index, bool) or not isinstance(card_index, int):
        raise ValidationError("invalid_card")
    if card_index < 0 or card_index >= len(session.cards):
        raise ValidationError("invalid_card")

    card = session.cards[card_index]
    if card.revealed:
        raise ConflictError("card_revealed")

    card.revealed = True
    session.guess_history.append(
        GuessRecord(
            player_id=player.id,
            player_name=player.name,
            card_index=card_index,
            card_word=card.word,
            card_color=card.color,
            team=team,
            timestamp=now,
        )
    )

    result = GuessResult(card_index=card_index, card_word=card.word, card_color=card.color)

    if card.color == "assassin":
        _end(session, other_team(team), now)
    elif card.color == team:
        if not _score(session, team, now):
            result.continue_turn = True
    elif card.color == "neutral":
        result.auto_revealed = switch_turn(session, rng, now)
    else:
        # The other team's word counts for them.
        if not _score(session, card.color, now):
            result.auto_revealed = switch_turn(session, rng, now)

    result.game_ended = session.phase == "ended"
    result.winner = session.winner
    return result


def end_turn(session: GameSession, player: Player, rng: random.Random, now: int) -> int | None:
    if session.phase != "playing":
        raise StateError("game_not_started")
    if player.team is None:
        raise AuthorizationError("not_a_participant")
    if effective_team(session, player) != session.current_team:
        raise AuthorizationError("not_your_turn")
    return switch_turn(session, rng, now)
