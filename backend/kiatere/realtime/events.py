"""Wire contract of the ``message`` Socket.IO event.

Every frame is a JSON object tagged by ``type``. Inbound frames are parsed
into one frozen dataclass per type; outbound frames are built by the helper
functions at the bottom of this module.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Union

from ..config import Config
from ..game import service
from ..game.categories import LETTER_SETS
from ..game.models import Room


MESSAGE_EVENT = "message"

# Error codes carried next to the human readable ``message``.
NOT_FOUND = "not_found"
UNAUTHORIZED = "unauthorized"
INVALID_STATE = "invalid_state"
MALFORMED = "malformed"

MAX_NAME_LENGTH = 20


class MalformedMessage(ValueError):
    pass


@dataclass(frozen=True)
class CreateRoom:
    player_name: str


@dataclass(frozen=True)
class JoinRoom:
    room_code: str
    player_name: str


@dataclass(frozen=True)
class StartGame:
    difficulty: str
    turn_time: int


@dataclass(frozen=True)
class SetDifficulty:
    difficulty: str


@dataclass(frozen=True)
class RefreshCategory:
    pass


@dataclass(frozen=True)
class StartTurn:
    pass


@dataclass(frozen=True)
class EndTurn:
    selected_letter: str


@dataclass(frozen=True)
class PlayerSelectedLetter:
    letter: str | None


@dataclass(frozen=True)
class TimeUp:
    player: str | None = None


@dataclass(frozen=True)
class LeaveRoom:
    pass


InboundMessage = Union[
    CreateRoom,
    JoinRoom,
    StartGame,
    SetDifficulty,
    RefreshCategory,
    StartTurn,
    EndTurn,
    PlayerSelectedLetter,
    TimeUp,
    LeaveRoom,
]


def _validate_name(name: str) -> bool:
    n = (name or "").strip()
    if not n:
        return False
    if len(n) > MAX_NAME_LENGTH:
        return False
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        return False
    # No control characters.
    for ch in n:
        if ord(ch) < 32:
            return False
    return True


def _player_name(payload: dict) -> str:
    name = payload.get("playerName")
    if not isinstance(name, str) or not _validate_name(name):
        raise MalformedMessage("A valid playerName is required")
    return name.strip()


def _room_code(payload: dict) -> str:
    code = payload.get("roomCode")
    if not isinstance(code, str) or not code.strip():
        raise MalformedMessage("roomCode is required")
    return code.strip().upper()


def _difficulty(payload: dict, required: bool = False) -> str:
    raw = payload.get("difficulty")
    if raw is None and not required:
        return "easy"
    if not isinstance(raw, str) or raw.strip().lower() not in LETTER_SETS:
        raise MalformedMessage("difficulty must be 'easy' or 'hard'")
    return raw.strip().lower()


def _turn_time(payload: dict) -> int:
    raw = payload.get("turnTime")
    if raw is None:
        return Config.TURN_TIME_SEC
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise MalformedMessage("turnTime must be a whole number of seconds")
    if not Config.MIN_TURN_TIME_SEC <= raw <= Config.MAX_TURN_TIME_SEC:
        raise MalformedMessage(
            f"turnTime must be between {Config.MIN_TURN_TIME_SEC} and {Config.MAX_TURN_TIME_SEC} seconds"
        )
    return int(raw)


def _letter(payload: dict, key: str) -> str:
    raw = payload.get(key)
    if not isinstance(raw, str) or len(raw.strip()) != 1 or not raw.strip().isalpha():
        raise MalformedMessage(f"{key} must be a single letter")
    return raw.strip().upper()


def _player_selected_letter(payload: dict) -> PlayerSelectedLetter:
    # A null letter clears the preview.
    if payload.get("letter") is None:
        return PlayerSelectedLetter(letter=None)
    return PlayerSelectedLetter(letter=_letter(payload, "letter"))


def _time_up(payload: dict) -> TimeUp:
    player = payload.get("player")
    if player is not None and not isinstance(player, str):
        raise MalformedMessage("player must be a string")
    return TimeUp(player=player)


_PARSERS: dict[str, Callable[[dict], InboundMessage]] = {
    "CREATE_ROOM": lambda p: CreateRoom(player_name=_player_name(p)),
    "JOIN_ROOM": lambda p: JoinRoom(room_code=_room_code(p), player_name=_player_name(p)),
    "START_GAME": lambda p: StartGame(difficulty=_difficulty(p), turn_time=_turn_time(p)),
    "SET_DIFFICULTY": lambda p: SetDifficulty(difficulty=_difficulty(p, required=True)),
    "REFRESH_CATEGORY": lambda p: RefreshCategory(),
    "START_TURN": lambda p: StartTurn(),
    "END_TURN": lambda p: EndTurn(selected_letter=_letter(p, "selectedLetter")),
    "PLAYER_SELECTED_LETTER": _player_selected_letter,
    "TIME_UP": _time_up,
    "LEAVE_ROOM": lambda p: LeaveRoom(),
}


def parse_message(raw: Any) -> InboundMessage:
    """Decode one inbound frame; raises :class:`MalformedMessage`."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise MalformedMessage("Invalid message format") from None

    if not isinstance(raw, dict):
        raise MalformedMessage("Invalid message format")

    msg_type = raw.get("type")
    parser = _PARSERS.get(msg_type) if isinstance(msg_type, str) else None
    if parser is None:
        raise MalformedMessage("Unknown message type")
    return parser(raw)


# ---- Outbound ----


def _membership(room: Room) -> dict:
    return {
        "players": list(room.players),
        "connectedPlayers": list(room.connected_players),
    }


def room_created(room: Room) -> dict:
    return {"type": "ROOM_CREATED", "roomCode": room.code, "host": room.host, **_membership(room)}


def room_joined(room: Room) -> dict:
    return {"type": "ROOM_JOINED", "roomCode": room.code, "host": room.host, **_membership(room)}


def player_joined(room: Room) -> dict:
    return {
        "type": "PLAYER_JOINED",
        "host": room.host,
        **_membership(room),
        "roundWins": dict(room.game_state.round_wins),
    }


def player_left(room: Room) -> dict:
    return {
        "type": "PLAYER_LEFT",
        "host": room.host,
        **_membership(room),
        "roundWins": dict(room.game_state.round_wins),
    }


def game_started(room: Room) -> dict:
    return {"type": "GAME_STARTED", "gameState": service.game_state_payload(room.game_state)}


def game_state_update(room: Room) -> dict:
    return {"type": "GAME_STATE_UPDATE", "gameState": service.game_state_payload(room.game_state)}


def timer_update(time_left: int) -> dict:
    return {"type": "TIMER_UPDATE", "timeLeft": time_left}


def player_selected_letter(player: str, letter: str | None) -> dict:
    return {"type": "PLAYER_SELECTED_LETTER", "player": player, "letter": letter}


def player_eliminated(player: str) -> dict:
    return {"type": "PLAYER_ELIMINATED", "player": player}


def overtime_start(room: Room) -> dict:
    state = room.game_state
    return {
        "type": "OVERTIME_START",
        "gameState": service.game_state_payload(state),
        "overtimeLevel": state.overtime_level,
        "answersRequired": state.answers_required,
        "newCategory": state.current_category,
    }


def round_end(room: Room, winner: str | None) -> dict:
    state = room.game_state
    return {
        "type": "ROUND_END",
        "gameState": service.game_state_payload(state),
        "roundWins": dict(state.round_wins),
        "roundNumber": state.round_number,
        "winner": winner,
    }


def game_end(room: Room, winner: str | None) -> dict:
    return {"type": "GAME_END", "roundWins": dict(room.game_state.round_wins), "winner": winner}


def error(message: str, code: str) -> dict:
    return {"type": "ERROR", "message": message, "code": code}
