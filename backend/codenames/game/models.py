from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


Team = Literal["red", "blue"]
Phase = Literal["waiting", "playing", "ended"]
CardColor = Literal["red", "blue", "neutral", "assassin"]

TEAMS: tuple[Team, Team] = ("red", "blue")

GRID_SIZE = 25
FIRST_TEAM_CARDS = 9
SECOND_TEAM_CARDS = 8
NEUTRAL_CARDS = 7
ASSASSIN_CARDS = 1

MIN_PLAYERS = 2
MAX_PLAYERS = 8


def other_team(team: Team) -> Team:
    return "blue" if team == "red" else "red"


@dataclass
class Card:
    index: int
    word: str
    color: CardColor
    revealed: bool = False


@dataclass
class Player:
    id: str
    identity_key: str
    connection_handle: str
    name: str
    seat_index: int | None = None
    is_host: bool = False
    team: Team | None = None
    is_spymaster: bool = False
    is_double_agent: bool = False
    is_online: bool = True

    @property
    def is_seated(self) -> bool:
        return self.seat_index is not None


@dataclass
class Clue:
    word: str
    count: int
    team: Team
    timestamp: int


@dataclass
class GuessRecord:
    player_id: str
    player_name: str
    card_index: int
    card_word: str
    card_color: CardColor
    team: Team
    timestamp: int
    # Set for cards flipped by the empty-team rule rather than a player.
    auto: bool = False


@dataclass
class GuessResult:
    card_index: int
    card_word: str
    card_color: CardColor
    continue_turn: bool = False
    game_ended: bool = False
    winner: Team | None = None
    auto_revealed: int | None = None


@dataclass
class GameSession:
    room_id: str
    phase: Phase = "waiting"
    players: list[Player] = field(default_factory=list)
    cards: list[Card] = field(default_factory=list)
    current_team: Team = "red"
    current_clue: Clue | None = None
    red_score: int = 0
    blue_score: int = 0
    red_total: int = FIRST_TEAM_CARDS
    blue_total: int = SECOND_TEAM_CARDS
    winner: Team | None = None
    max_players: int = 4
    guess_history: list[GuessRecord] = field(default_factory=list)
    clue_history: list[Clue] = field(default_factory=list)
    created_at: int = 0
    started_at: int | None = None
    ended_at: int | None = None
    custom_words: list[str] | None = None
    word_theme: str | None = None

    def seated_players(self) -> list[Player]:
        seated = [p for p in self.players if p.seat_index is not None]
        return sorted(seated, key=lambda p: p.seat_index)

    def player_by_id(self, player_id: str) -> Player | None:
        return next((p for p in self.players if p.id == player_id), None)

    def player_by_connection(self, connection_handle: str) -> Player | None:
        return next((p for p in self.players if p.connection_handle == connection_handle), None)

    def player_by_identity(self, identity_key: str) -> Player | None:
        if not identity_key:
            return None
        return next((p for p in self.players if p.identity_key == identity_key), None)

    def player_at_seat(self, seat_index: int) -> Player | None:
        return next((p for p in self.players if p.seat_index == seat_index), None)

    def host(self) -> Player | None:
        return next((p for p in self.players if p.is_host), None)

    def score_of(self, team: Team) -> int:
        return self.red_score if team == "red" else self.blue_score

    def total_of(self, team: Team) -> int:
        return self.red_total if team == "red" else self.blue_total

    def add_point(self, team: Team) -> int:
        if team == "red":
            self.red_score += 1
            return self.red_score
        self.blue_score += 1
        return self.blue_score
