from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from flask import request
from flask_socketio import SocketIO

from ..game import service
from ..game.categories import letters_for
from ..game.models import Room, TurnResult
from . import events
from .timer import TurnTimer


log = logging.getLogger(__name__)


@dataclass
class _Session:
    room_code: str
    player_name: str


def register_socketio_handlers(
    socketio: SocketIO,
    tick_interval: float = 1.0,
    cleanup_interval: float = 0,
    min_players: int = 2,
) -> TurnTimer:
    # sid -> who that connection plays as
    sessions: dict[str, _Session] = {}
    # (room code, player name) -> live sid; the latest connection wins
    player_sids: dict[tuple[str, str], str] = {}
    cleanup_task = {"running": False}

    def _send(sid: str, payload: dict) -> None:
        socketio.emit(events.MESSAGE_EVENT, payload, to=sid)

    def _send_error(sid: str, message: str, code: str) -> None:
        log.debug("Rejected request from %s: %s (%s)", sid, message, code)
        _send(sid, events.error(message, code))

    def _broadcast(room: Room, payload: dict, exclude: str | None = None) -> None:
        for name in list(room.connected_players):
            if name == exclude:
                continue
            sid = player_sids.get((room.code, name))
            if sid:
                _send(sid, payload)

    def _on_tick(room_code: str, time_left: int) -> None:
        room = service.get_room(room_code)
        if room:
            _broadcast(room, events.timer_update(time_left))

    def _on_expire(room_code: str) -> None:
        result = service.eliminate_player(room_code)
        if result:
            _broadcast_turn_result(result)
            return
        room = service.get_room(room_code)
        if room:
            _broadcast(room, events.game_state_update(room))

    timer = TurnTimer(socketio, on_tick=_on_tick, on_expire=_on_expire, interval=tick_interval)

    def _broadcast_turn_result(result: TurnResult) -> None:
        room = result.room
        if result.eliminated_player:
            _broadcast(room, events.player_eliminated(result.eliminated_player))

        if result.kind == "continue":
            _broadcast(room, events.game_state_update(room))
            if room.game_state.is_timer_running:
                timer.start(room.code)
            else:
                timer.cancel(room.code)
            return

        timer.cancel(room.code)
        if result.kind == "overtimeStart":
            _broadcast(room, events.overtime_start(room))
        elif result.kind == "roundEnd":
            _broadcast(room, events.round_end(room, result.winner))
        elif result.kind == "gameEnd":
            _broadcast(room, events.game_end(room, result.winner))

    # ---- connection bookkeeping ----

    def _attach(sid: str, room: Room, player_name: str) -> None:
        key = (room.code, player_name)
        previous = player_sids.get(key)
        if previous and previous != sid:
            # Same name from a new connection: the old one stops speaking for it.
            sessions.pop(previous, None)
            log.info("%s in room %s reconnected from a new connection", player_name, room.code)
        player_sids[key] = sid
        sessions[sid] = _Session(room.code, player_name)

    def _detach(sid: str) -> _Session | None:
        session = sessions.pop(sid, None)
        if session is None:
            return None
        key = (session.room_code, session.player_name)
        if player_sids.get(key) == sid:
            del player_sids[key]
        return session

    def _disconnect_session(sid: str) -> None:
        session = _detach(sid)
        if session is None:
            return

        room = service.remove_player(session.room_code, session.player_name)
        if room:
            log.info("%s disconnected from room %s", session.player_name, room.code)
            _broadcast(room, events.player_left(room))

    def _forget_room(room_code: str) -> None:
        timer.cancel(room_code)
        for key in [k for k in player_sids if k[0] == room_code]:
            sessions.pop(player_sids.pop(key), None)

    def _resolve(sid: str) -> tuple[_Session, Room] | None:
        session = sessions.get(sid)
        if session is None:
            _send_error(sid, "Not in a room", events.NOT_FOUND)
            return None

        room = service.get_room(session.room_code)
        if room is None:
            _detach(sid)
            _send_error(sid, "Room not found", events.NOT_FOUND)
            return None
        return session, room

    def _sweep() -> None:
        with service.lock:
            for code in service.cleanup_rooms():
                _forget_room(code)

    def _ensure_cleanup_task() -> None:
        if cleanup_interval <= 0 or cleanup_task["running"]:
            return
        cleanup_task["running"] = True

        def _runner() -> None:
            while True:
                socketio.sleep(cleanup_interval)
                try:
                    _sweep()
                except Exception:
                    log.exception("Room cleanup sweep failed")

        socketio.start_background_task(_runner)

    # ---- message handlers (called with service.lock held) ----

    def _handle_create_room(sid: str, message: events.CreateRoom) -> None:
        _disconnect_session(sid)

        room = service.create_room(message.player_name)
        _attach(sid, room, message.player_name)
        _send(sid, events.room_created(room))
        _ensure_cleanup_task()

    def _handle_join_room(sid: str, message: events.JoinRoom) -> None:
        room = service.get_room(message.room_code)
        if room is None:
            _send_error(sid, "Room not found", events.NOT_FOUND)
            return

        current = sessions.get(sid)
        if current and (current.room_code, current.player_name) != (room.code, message.player_name):
            _disconnect_session(sid)

        service.join_room(room.code, message.player_name)
        _attach(sid, room, message.player_name)

        _send(sid, events.room_joined(room))
        # Late joiners and reconnecting players need the running game.
        if room.game_state.game_started:
            _send(sid, events.game_started(room))

        _broadcast(room, events.player_joined(room), exclude=message.player_name)
        log.info("%s joined room %s", message.player_name, room.code)

    def _handle_start_game(sid: str, message: events.StartGame) -> None:
        resolved = _resolve(sid)
        if not resolved:
            return
        session, room = resolved

        if room.host != session.player_name:
            _send_error(sid, "Only the host can start the game", events.UNAUTHORIZED)
            return
        if len(room.players) < min_players:
            _send_error(sid, f"Need at least {min_players} players to start", events.INVALID_STATE)
            return

        timer.cancel(room.code)
        service.start_game(room.code, message.difficulty, message.turn_time)  # type: ignore[arg-type]
        _broadcast(room, events.game_started(room))

    def _handle_set_difficulty(sid: str, message: events.SetDifficulty) -> None:
        resolved = _resolve(sid)
        if not resolved:
            return
        session, room = resolved

        if room.host != session.player_name:
            _send_error(sid, "Only the host can change the difficulty", events.UNAUTHORIZED)
            return
        if service.set_difficulty(room.code, message.difficulty) is None:  # type: ignore[arg-type]
            _send_error(sid, "Difficulty cannot change once letters have been played", events.INVALID_STATE)
            return

        log.info("Difficulty set to %s in room %s", message.difficulty, room.code)
        _broadcast(room, events.game_state_update(room))

    def _handle_refresh_category(sid: str, message: events.RefreshCategory) -> None:
        resolved = _resolve(sid)
        if not resolved:
            return
        session, room = resolved

        if room.host != session.player_name:
            _send_error(sid, "Only the host can refresh the category", events.UNAUTHORIZED)
            return
        if service.refresh_category(room.code) is None:
            _send_error(sid, "Category cannot change once letters have been played", events.INVALID_STATE)
            return

        _broadcast(room, events.game_state_update(room))

    def _handle_start_turn(sid: str, message: events.StartTurn) -> None:
        resolved = _resolve(sid)
        if not resolved:
            return
        session, room = resolved
        state = room.game_state

        if not state.round_active:
            _send_error(sid, "No round in progress", events.INVALID_STATE)
            return
        if service.current_player(room) != session.player_name:
            _send_error(sid, "Not your turn", events.UNAUTHORIZED)
            return
        if state.is_timer_running:
            _send_error(sid, "Turn already started", events.INVALID_STATE)
            return

        service.start_turn(room.code)
        timer.start(room.code)
        _broadcast(room, events.game_state_update(room))

    def _handle_end_turn(sid: str, message: events.EndTurn) -> None:
        resolved = _resolve(sid)
        if not resolved:
            return
        session, room = resolved
        state = room.game_state

        if not state.round_active:
            _send_error(sid, "No round in progress", events.INVALID_STATE)
            return
        if service.current_player(room) != session.player_name:
            _send_error(sid, "Not your turn", events.UNAUTHORIZED)
            return
        if not state.is_timer_running:
            _send_error(sid, "Turn has not started", events.INVALID_STATE)
            return

        letter = message.selected_letter
        if letter not in letters_for(state.difficulty):
            _send_error(sid, f"{letter} is not in play on {state.difficulty}", events.INVALID_STATE)
            return
        if letter in state.used_letters:
            _send_error(sid, f"{letter} has already been used", events.INVALID_STATE)
            return

        timer.cancel(room.code)
        result = service.end_turn(room.code, letter)
        if result:
            _broadcast_turn_result(result)

    def _handle_player_selected_letter(sid: str, message: events.PlayerSelectedLetter) -> None:
        resolved = _resolve(sid)
        if not resolved:
            return
        session, room = resolved

        if not room.game_state.round_active or service.current_player(room) != session.player_name:
            # Late preview from a player whose turn already passed.
            log.debug("Ignored letter preview from %s in room %s", session.player_name, room.code)
            return

        _broadcast(
            room,
            events.player_selected_letter(session.player_name, message.letter),
            exclude=session.player_name,
        )

    def _handle_time_up(sid: str, message: events.TimeUp) -> None:
        resolved = _resolve(sid)
        if not resolved:
            return
        _, room = resolved
        state = room.game_state

        if not state.round_active or not state.is_timer_running:
            return
        if message.player is not None and message.player != service.current_player(room):
            # The named player's turn is already over.
            return

        timer.cancel(room.code)
        result = service.eliminate_player(room.code)
        if result:
            _broadcast_turn_result(result)

    def _handle_leave_room(sid: str, message: events.LeaveRoom) -> None:
        resolved = _resolve(sid)
        if not resolved:
            return
        session, room = resolved

        _detach(sid)
        _, result = service.leave_room(room.code, session.player_name)
        log.info("%s left room %s", session.player_name, room.code)

        if service.get_room(room.code) is None:
            _forget_room(room.code)
            return

        _broadcast(room, events.player_left(room))
        if result:
            _broadcast_turn_result(result)

    routes: dict[type, Callable[[str, Any], None]] = {
        events.CreateRoom: _handle_create_room,
        events.JoinRoom: _handle_join_room,
        events.StartGame: _handle_start_game,
        events.SetDifficulty: _handle_set_difficulty,
        events.RefreshCategory: _handle_refresh_category,
        events.StartTurn: _handle_start_turn,
        events.EndTurn: _handle_end_turn,
        events.PlayerSelectedLetter: _handle_player_selected_letter,
        events.TimeUp: _handle_time_up,
        events.LeaveRoom: _handle_leave_room,
    }

    @socketio.on(events.MESSAGE_EVENT)
    def on_message(data):
        sid = request.sid
        try:
            message = events.parse_message(data)
        except events.MalformedMessage as exc:
            _send_error(sid, str(exc), events.MALFORMED)
            return

        # Legality is checked against the state at execution time, and the
        # whole check-mutate-emit sequence runs under the room lock.
        with service.lock:
            routes[type(message)](sid, message)

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        with service.lock:
            _disconnect_session(request.sid)

    return timer
