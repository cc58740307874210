from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


Difficulty = Literal["easy", "hard"]
ResultKind = Literal["continue", "overtimeStart", "roundEnd", "gameEnd"]


@dataclass
class GameState:
    players: list[str] = field(default_factory=list)
    active_players: list[str] = field(default_factory=list)
    current_player_index: int = 0
    round_wins: dict[str, int] = field(default_factory=dict)
    current_category: str = ""
    used_letters: list[str] = field(default_factory=list)
    used_categories: list[str] = field(default_factory=list)
    time_left: int = 10
    turn_time: int = 10
    is_timer_running: bool = False
    round_active: bool = False
    round_number: int = 1
    game_started: bool = False
    difficulty: Difficulty = "easy"
    is_overtime_round: bool = False
    overtime_level: int = 0
    answers_required: int = 1


@dataclass
class Room:
    code: str
    host: str
    players: list[str] = field(default_factory=list)
    connected_players: list[str] = field(default_factory=list)
    game_state: GameState = field(default_factory=GameState)
    created_at_ms: int = 0
    last_activity_ms: int = 0
    empty_at_ms: int | None = None


@dataclass
class TurnResult:
    """Outcome of an operation that ends a turn.

    ``kind`` tells the caller which broadcast to send; ``room`` is the live
    room so it can be serialized without another lookup.
    """

    kind: ResultKind
    room: Room
    winner: str | None = None
    eliminated_player: str | None = None
