from __future__ import annotations

import itertools
import logging
from typing import Callable

from flask_socketio import SocketIO

from ..game import service


log = logging.getLogger(__name__)

# Generations are unique process-wide so a countdown restarted after cancel()
# can never be mistaken for a stale one that is still asleep.
_generation_counter = itertools.count(1)


class TurnTimer:
    """One server-side countdown per room.

    Each countdown runs as a Socket.IO background task. ``start`` supersedes
    whatever countdown the room had; a superseded or cancelled task notices on
    its next wake-up and exits without touching the room.
    """

    def __init__(
        self,
        socketio: SocketIO,
        on_tick: Callable[[str, int], None],
        on_expire: Callable[[str], None],
        interval: float = 1.0,
    ) -> None:
        self._socketio = socketio
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._interval = interval
        self._current: dict[str, int] = {}

    def start(self, room_code: str) -> int:
        with service.lock:
            generation = next(_generation_counter)
            self._current[room_code] = generation
        self._socketio.start_background_task(self._run, room_code, generation)
        return generation

    def cancel(self, room_code: str) -> None:
        with service.lock:
            self._current.pop(room_code, None)

    def cancel_all(self) -> None:
        with service.lock:
            self._current.clear()

    def is_running(self, room_code: str) -> bool:
        with service.lock:
            return room_code in self._current

    def tick(self, room_code: str, generation: int | None = None) -> bool:
        """Advance the room's countdown by one second.

        Returns whether the countdown should keep going. Without
        ``generation`` the current countdown of the room is ticked.
        """
        with service.lock:
            current = self._current.get(room_code)
            if current is None:
                return False
            if generation is not None and generation != current:
                return False

            time_left = service.tick(room_code)
            if time_left is None:
                # Room deleted, game over or turn already ended.
                self._current.pop(room_code, None)
                return False

            self._on_tick(room_code, time_left)

            if time_left <= 0:
                self._current.pop(room_code, None)
                self._on_expire(room_code)
                return False
            return True

    def _run(self, room_code: str, generation: int) -> None:
        while True:
            self._socketio.sleep(self._interval)
            try:
                if not self.tick(room_code, generation):
                    break
            except Exception:
                log.exception("Turn timer for room %s failed", room_code)
                with service.lock:
                    if self._current.get(room_code) == generation:
                        del self._current[room_code]
                break
