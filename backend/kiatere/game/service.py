from __future__ import annotations

import logging
import random
import string
import time
from threading import RLock

from ..config import Config
from .categories import letters_for, pick_category
from .models import Difficulty, GameState, Room, TurnResult


log = logging.getLogger(__name__)

_ROOM_CODE_CHARS = string.ascii_uppercase + string.digits


def now_ms() -> int:
    return int(time.time() * 1000)


# Guards every room. Re-entrant so callers (the realtime gateway, the turn
# timer) can hold it across a check, a mutation and the resulting emits.
lock = RLock()
_rooms: dict[str, Room] = {}


def generate_room_code() -> str:
    return "".join(random.choices(_ROOM_CODE_CHARS, k=Config.ROOM_CODE_LENGTH))


def create_initial_game_state(players: list[str], turn_time: int | None = None) -> GameState:
    turn_time = turn_time or Config.TURN_TIME_SEC
    return GameState(
        players=list(players),
        active_players=list(players),
        round_wins={p: 0 for p in players},
        time_left=turn_time,
        turn_time=turn_time,
    )


def create_room(host_name: str) -> Room:
    with lock:
        code = generate_room_code()
        while code in _rooms:
            code = generate_room_code()

        now = now_ms()
        room = Room(
            code=code,
            host=host_name,
            players=[host_name],
            connected_players=[host_name],
            game_state=create_initial_game_state([host_name]),
            created_at_ms=now,
            last_activity_ms=now,
        )
        _rooms[code] = room
        log.info("Room %s created by %s", code, host_name)
        return room


def get_room(code: str) -> Room | None:
    with lock:
        return _rooms.get(code)


def delete_room(code: str) -> bool:
    with lock:
        if code in _rooms:
            del _rooms[code]
            return True
        return False


def list_rooms() -> list[Room]:
    with lock:
        return list(_rooms.values())


def clear_rooms() -> None:
    with lock:
        _rooms.clear()


def current_player(room: Room) -> str | None:
    state = room.game_state
    if not state.active_players:
        return None
    if state.current_player_index >= len(state.active_players):
        return None
    return state.active_players[state.current_player_index]


def join_room(room_code: str, player_name: str) -> Room | None:
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None

        if player_name in room.players:
            # Rejoin: the roster entry and score survive the disconnect.
            if player_name not in room.connected_players:
                room.connected_players.append(player_name)
        else:
            # Late joiners wait for the next round to play.
            room.players.append(player_name)
            room.connected_players.append(player_name)

        room.game_state.round_wins.setdefault(player_name, 0)
        room.empty_at_ms = None
        room.last_activity_ms = now_ms()
        return room


def remove_player(room_code: str, player_name: str) -> Room | None:
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None

        if player_name in room.connected_players:
            room.connected_players.remove(player_name)
        room.last_activity_ms = now_ms()

        if not room.connected_players and room.empty_at_ms is None:
            room.empty_at_ms = room.last_activity_ms

        return room


def leave_room(room_code: str, player_name: str) -> tuple[Room | None, TurnResult | None]:
    """Permanently remove ``player_name`` from the room.

    Unlike :func:`remove_player` the name leaves the roster, the host role
    moves on and an in-progress round is resolved without the leaver. Returns
    the room and, when the leaver was still active in a running round, the
    turn result to broadcast. A room left with nobody on the roster is deleted.
    """
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None, None
        if player_name not in room.players:
            return room, None

        room.players.remove(player_name)
        if player_name in room.connected_players:
            room.connected_players.remove(player_name)
        room.last_activity_ms = now_ms()

        if not room.players:
            del _rooms[room_code]
            log.info("Room %s closed, last player %s left", room_code, player_name)
            return room, None

        if room.host == player_name:
            room.host = room.players[0]
            log.info("Room %s host passed to %s", room_code, room.host)

        if not room.connected_players and room.empty_at_ms is None:
            room.empty_at_ms = room.last_activity_ms

        state = room.game_state
        if player_name in state.players:
            state.players.remove(player_name)

        if state.round_active and player_name in state.active_players:
            was_running = state.is_timer_running
            return room, _drop_active_player(room, player_name, resume_timer=was_running)

        return room, None


def start_game(
    room_code: str,
    difficulty: Difficulty = "easy",
    turn_time: int | None = None,
) -> Room | None:
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None

        previous = room.game_state
        state = create_initial_game_state(room.players, turn_time)
        state.game_started = True
        state.round_active = True
        state.difficulty = difficulty
        # Categories played in the previous game still count as recent.
        state.used_categories = list(previous.used_categories)
        state.current_category = pick_category(state.used_categories, previous.current_category)

        room.game_state = state
        room.last_activity_ms = now_ms()
        log.info(
            "Game started in room %s (%s, %ss turns, players=%s)",
            room_code,
            difficulty,
            state.turn_time,
            state.players,
        )
        return room


def set_difficulty(room_code: str, difficulty: Difficulty) -> Room | None:
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None
        if room.game_state.used_letters:
            return None

        room.game_state.difficulty = difficulty
        room.last_activity_ms = now_ms()
        return room


def refresh_category(room_code: str) -> Room | None:
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None

        state = room.game_state
        if state.used_letters:
            return None

        # The discarded category was never played; it may come back later.
        if state.current_category in state.used_categories:
            state.used_categories.remove(state.current_category)
        state.current_category = pick_category(state.used_categories, state.current_category)
        room.last_activity_ms = now_ms()
        return room


def start_turn(room_code: str) -> Room | None:
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None

        room.game_state.is_timer_running = True
        room.game_state.time_left = room.game_state.turn_time
        room.last_activity_ms = now_ms()
        return room


def tick(room_code: str) -> int | None:
    """Count one second off the running turn; ``None`` if no turn is running."""
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None

        state = room.game_state
        if not state.is_timer_running or not state.round_active:
            return None

        state.time_left = max(0, state.time_left - 1)
        return state.time_left


def end_turn(room_code: str, selected_letter: str) -> TurnResult | None:
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None

        state = room.game_state
        # Stale or duplicate submission.
        if not state.is_timer_running:
            return TurnResult("continue", room)

        state.used_letters.append(selected_letter)
        room.last_activity_ms = now_ms()

        if _should_trigger_overtime(state):
            return _start_overtime_locked(room)

        state.current_player_index = (state.current_player_index + 1) % len(state.active_players)
        state.time_left = state.turn_time
        state.is_timer_running = True
        return TurnResult("continue", room)


def eliminate_player(room_code: str) -> TurnResult | None:
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None

        state = room.game_state
        if not state.round_active or len(state.active_players) < 2:
            # Nobody left to eliminate; a countdown that reached zero stops here.
            state.is_timer_running = False
            return None

        player = current_player(room)
        if player is None:
            return None

        room.last_activity_ms = now_ms()
        log.info("Room %s: %s eliminated", room_code, player)
        return _drop_active_player(room, player, resume_timer=True)


def end_round(room_code: str) -> TurnResult | None:
    with lock:
        room = _rooms.get(room_code)
        if not room or not room.game_state.active_players:
            return None
        return _end_round_locked(room)


def start_overtime_round(room_code: str) -> TurnResult | None:
    with lock:
        room = _rooms.get(room_code)
        if not room:
            return None
        return _start_overtime_locked(room)


def cleanup_rooms(now: int | None = None) -> list[str]:
    """Delete rooms that have been empty or idle for too long."""
    removed: list[str] = []
    with lock:
        now = now if now is not None else now_ms()
        for code, room in list(_rooms.items()):
            try:
                if _should_cleanup(room, now):
                    del _rooms[code]
                    removed.append(code)
                    log.info("Cleaned up room %s", code)
            except Exception:
                log.exception("Failed to evaluate room %s for cleanup", code)
    return removed


def _should_cleanup(room: Room, now: int) -> bool:
    if room.empty_at_ms is not None and not room.connected_players:
        if now - room.empty_at_ms > Config.EMPTY_ROOM_TIMEOUT_SEC * 1000:
            return True
    return now - room.last_activity_ms > Config.ROOM_TIMEOUT_SEC * 1000


def _should_trigger_overtime(state: GameState) -> bool:
    all_used = len(state.used_letters) >= len(letters_for(state.difficulty))
    return all_used and len(state.active_players) > 1


def _drop_active_player(room: Room, player: str, resume_timer: bool) -> TurnResult:
    state = room.game_state
    idx = state.active_players.index(player)
    was_current = idx == state.current_player_index

    state.active_players.pop(idx)
    if idx < state.current_player_index:
        state.current_player_index -= 1
    if was_current:
        state.is_timer_running = False

    if len(state.active_players) == 1:
        result = _end_round_locked(room)
    elif _should_trigger_overtime(state):
        result = _start_overtime_locked(room)
    else:
        # The next player slid into the freed index.
        if state.current_player_index >= len(state.active_players):
            state.current_player_index = 0
        if was_current:
            state.time_left = state.turn_time
            state.is_timer_running = resume_timer
        result = TurnResult("continue", room)

    result.eliminated_player = player
    return result


def _end_round_locked(room: Room) -> TurnResult:
    state = room.game_state
    winner = state.active_players[0]

    points = state.answers_required if state.is_overtime_round else 1
    state.round_wins[winner] = state.round_wins.get(winner, 0) + points
    state.is_timer_running = False

    if state.round_wins[winner] >= Config.WINS_TO_END_GAME:
        state.round_active = False
        log.info("Room %s: game won by %s (%s)", room.code, winner, state.round_wins)
        return TurnResult("gameEnd", room, winner=winner)

    # Late joiners take part from the next round on.
    for name in room.players:
        if name not in state.players:
            state.players.append(name)
            state.round_wins.setdefault(name, 0)

    if len(state.players) < 2:
        # Everyone else left; the host starts a new game once players return.
        state.round_active = False
        state.active_players = list(state.players)
        state.current_player_index = 0
        log.info("Room %s: round won by %s, not enough players for another", room.code, winner)
        return TurnResult("roundEnd", room, winner=winner)

    state.round_number += 1
    state.active_players = list(state.players)
    # Leadership rotates through the full roster, not the survivors.
    state.current_player_index = (state.players.index(winner) + 1) % len(state.players)
    state.used_letters = []
    state.time_left = state.turn_time
    state.round_active = True
    state.is_overtime_round = False
    state.overtime_level = 0
    state.answers_required = 1
    state.current_category = pick_category(state.used_categories, state.current_category)

    log.info("Room %s: round won by %s, round %s next", room.code, winner, state.round_number)
    return TurnResult("roundEnd", room, winner=winner)


def _start_overtime_locked(room: Room) -> TurnResult:
    state = room.game_state
    state.overtime_level += 1
    state.answers_required = state.overtime_level + 1
    state.is_overtime_round = True
    state.used_letters = []
    state.current_category = pick_category(state.used_categories, state.current_category)
    # Sudden death restarts with the first remaining finalist.
    state.current_player_index = 0
    state.time_left = state.turn_time
    state.is_timer_running = False

    log.info("Room %s: overtime level %s", room.code, state.overtime_level)
    return TurnResult("overtimeStart", room)


def game_state_payload(state: GameState) -> dict:
    return {
        "players": list(state.players),
        "activePlayers": list(state.active_players),
        "currentPlayerIndex": state.current_player_index,
        "roundWins": dict(state.round_wins),
        "currentCategory": state.current_category,
        "usedLetters": list(state.used_letters),
        "usedCategories": list(state.used_categories),
        "timeLeft": state.time_left,
        "turnTime": state.turn_time,
        "isTimerRunning": state.is_timer_running,
        "roundActive": state.round_active,
        "roundNumber": state.round_number,
        "gameStarted": state.game_started,
        "difficulty": state.difficulty,
        "isOvertimeRound": state.is_overtime_round,
        "overtimeLevel": state.overtime_level,
        "answersRequired": state.answers_required,
    }


def room_public_state(room: Room) -> dict:
    with lock:
        return {
            "roomCode": room.code,
            "host": room.host,
            "players": list(room.players),
            "connectedPlayers": list(room.connected_players),
            "createdAtMs": room.created_at_ms,
            "lastActivityMs": room.last_activity_ms,
            "gameState": game_state_payload(room.game_state),
        }
