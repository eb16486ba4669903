from __future__ import annotations

from .models import Card, Clue, GameSession, GuessRecord, GuessResult, Player


def player_public(p: Player) -> dict:
    # identity_key and connection_handle never leave the server.
    return {
        "id": p.id,
        "name": p.name,
        "seatIndex": p.seat_index,
        "isHost": p.is_host,
        "team": p.team,
        "isSpymaster": p.is_spymaster,
        "isDoubleAgent": p.is_double_agent,
        "isOnline": p.is_online,
    }


def clue_public(c: Clue | None) -> dict | None:
    if c is None:
        return None
    return {"word": c.word, "count": c.count, "team": c.team, "timestamp": c.timestamp}


def guess_public(g: GuessRecord) -> dict:
    return {
        "playerId": g.player_id,
        "playerName": g.player_name,
        "cardIndex": g.card_index,
        "cardWord": g.card_word,
        "cardColor": g.card_color,
        "team": g.team,
        "timestamp": g.timestamp,
        "auto": g.auto,
    }


def guess_result_public(r: GuessResult) -> dict:
    return {
        "cardIndex": r.card_index,
        "cardWord": r.card_word,
        "cardColor": r.card_color,
        "continueTurn": r.continue_turn,
        "gameEnded": r.game_ended,
        "winner": r.winner,
        "autoRevealed": r.auto_revealed,
    }


def _sees_colors(room: GameSession, viewer: Player | None) -> bool:
    if room.phase == "ended":
        return True
    # Spectators and spymasters see the key card; guessers only what is revealed.
    return viewer is None or viewer.team is None or viewer.is_spymaster


def _card(c: Card, show_color: bool) -> dict:
    return {
        "index": c.index,
        "word": c.word,
        "color": c.color if (show_color or c.revealed) else None,
        "revealed": c.revealed,
    }


def room_public_state(room: GameSession, viewer: Player | None = None) -> dict:
    show = _sees_colors(room, viewer)
    payload = {
        "roomId": room.room_id,
        "phase": room.phase,
        "players": [player_public(p) for p in room.players],
        "cards": [_card(c, show) for c in room.cards],
        "currentTeam": room.current_team,
        "currentClue": clue_public(room.current_clue),
        "redScore": room.red_score,
        "blueScore": room.blue_score,
        "redTotal": room.red_total,
        "blueTotal": room.blue_total,
        "winner": room.winner,
        "maxPlayers": room.max_players,
        "guessHistory": [guess_public(g) for g in room.guess_history],
        "clueHistory": [clue_public(c) for c in room.clue_history],
        "createdAt": room.created_at,
        "startedAt": room.started_at,
        "endedAt": room.ended_at,
        "customWords": list(room.custom_words) if room.custom_words else None,
        "wordTheme": room.word_theme,
    }
    if viewer is not None:
        payload["you"] = viewer.id
    return payload


def room_summary(room: GameSession) -> dict:
    return {
        "roomId": room.room_id,
        "phase": room.phase,
        "playerCount": len(room.players),
        "maxPlayers": room.max_players,
    }
