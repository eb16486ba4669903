from __future__ import annotations

from .models import Player


def _reset(player: Player) -> None:
    player.team = None
    player.is_spymaster = False
    player.is_double_agent = False


def assign_teams_and_roles(seated: list[Player], max_players: int) -> list[Player]:
    """Give each seated player a team and role, in seat order.

    2 seats: red spymaster + red guesser.
    3 seats: red spymaster, blue spymaster, double agent (home team red).
    4+ seats: red/blue spymasters, then guessers alternating red/blue.
    """
    for p in seated:
        _reset(p)

    if max_players == 2:
        for pos, p in enumerate(seated[:2]):
            p.team = "red"
            p.is_spymaster = pos == 0
        return seated

    if max_players == 3:
        for pos, p in enumerate(seated[:3]):
            if pos < 2:
                p.team = "red" if pos == 0 else "blue"
                p.is_spymaster = True
            else:
                p.team = "red"
                p.is_double_agent = True
        return seated

    for pos, p in enumerate(seated):
        seat_num = pos + 1
        p.team = "red" if seat_num % 2 == 1 else "blue"
        p.is_spymaster = seat_num <= 2
    return seated
