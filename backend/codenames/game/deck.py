from __future__ import annotations

import random

from .errors import ValidationError
from .models import (
    ASSASSIN_CARDS,
    FIRST_TEAM_CARDS,
    GRID_SIZE,
    NEUTRAL_CARDS,
    SECOND_TEAM_CARDS,
    TEAMS,
    Card,
    CardColor,
    Team,
    other_team,
)
from .words import pick_words


def build_deck(words: list[str], rng: random.Random) -> tuple[list[Card], Team]:
    """Deal a fresh 5x5 grid.

    Returns the cards and the team that got nine of them.
    """
    picked = pick_words(words, GRID_SIZE, rng)
    if len(picked) < GRID_SIZE:
        raise ValidationError("not_enough_words", f"need {GRID_SIZE} distinct words, got {len(picked)}")

    first: Team = rng.choice(TEAMS)
    second = other_team(first)

    colors: list[CardColor] = (
        [first] * FIRST_TEAM_CARDS
        + [second] * SECOND_TEAM_CARDS
        + ["neutral"] * NEUTRAL_CARDS
        + ["assassin"] * ASSASSIN_CARDS
    )
    rng.shuffle(colors)

    cards = [Card(index=i, word=picked[i], color=colors[i]) for i in range(GRID_SIZE)]
    return cards, first


def count_colors(cards: list[Card]) -> dict[str, int]:
    counts = {"red": 0, "blue": 0, "neutral": 0, "assassin": 0}
    for c in cards:
        counts[c.color] += 1
    return counts


def first_mover(cards: list[Card], max_players: int) -> Team:
    # Both seats play red in the two-seat room, so red always opens there.
    if max_players == 2:
        return "red"
    counts = count_colors(cards)
    return "red" if counts["red"] > counts["blue"] else "blue"
