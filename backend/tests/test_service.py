import re

from kiatere.config import Config
from kiatere.game import service
from kiatere.game.categories import CATEGORIES, LETTER_SETS, letters_for, pick_category


def _room_with(*names):
    room = service.create_room(names[0])
    for name in names[1:]:
        service.join_room(room.code, name)
    return room


def _started(*names, difficulty='easy', turn_time=10):
    room = _room_with(*names)
    service.start_game(room.code, difficulty, turn_time)
    return room


def test_create_room_with_host():
    room = service.create_room('Alice')
    assert re.fullmatch(r'[A-Z0-9]{6}', room.code)
    assert room.players == ['Alice']
    assert room.connected_players == ['Alice']
    assert room.host == 'Alice'
    assert room.game_state.game_started is False
    assert service.get_room(room.code) is room


def test_create_room_retries_taken_codes(monkeypatch):
    codes = iter(['AAAAAA', 'AAAAAA', 'BBBBBB'])
    monkeypatch.setattr(service, 'generate_room_code', lambda: next(codes))
    first = service.create_room('Alice')
    second = service.create_room('Bob')
    assert first.code == 'AAAAAA'
    assert second.code == 'BBBBBB'


def test_join_room_adds_player():
    room = _room_with('Alice', 'Bob')
    assert room.players == ['Alice', 'Bob']
    assert set(room.connected_players) == {'Alice', 'Bob'}


def test_join_unknown_room():
    assert service.join_room('NOPE00', 'Bob') is None


def test_rejoin_is_idempotent():
    room = _room_with('Alice', 'Bob')
    service.join_room(room.code, 'Bob')
    service.join_room(room.code, 'Bob')
    assert room.players == ['Alice', 'Bob']
    assert room.connected_players.count('Bob') == 1


def test_disconnect_preserves_roster():
    room = _started('Alice', 'Bob')
    service.remove_player(room.code, 'Bob')
    assert room.players == ['Alice', 'Bob']
    assert room.connected_players == ['Alice']
    assert 'Bob' in room.game_state.round_wins
    assert room.empty_at_ms is None

    # Disconnecting twice changes nothing.
    service.remove_player(room.code, 'Bob')
    assert room.players == ['Alice', 'Bob']
    assert room.connected_players == ['Alice']


def test_empty_room_is_stamped_and_cleared_by_join():
    room = _room_with('Alice', 'Bob')
    service.remove_player(room.code, 'Alice')
    service.remove_player(room.code, 'Bob')
    assert room.empty_at_ms is not None

    service.join_room(room.code, 'Bob')
    assert room.empty_at_ms is None
    assert room.connected_players == ['Bob']


def test_start_game_easy():
    room = _started('Alice', 'Bob', turn_time=15)
    state = room.game_state
    assert state.game_started is True
    assert state.round_active is True
    assert state.difficulty == 'easy'
    assert len(letters_for(state.difficulty)) == 18
    assert state.turn_time == 15
    assert state.time_left == 15
    assert state.current_category in CATEGORIES
    assert state.active_players == ['Alice', 'Bob']
    assert state.round_wins == {'Alice': 0, 'Bob': 0}


def test_start_game_replaces_state():
    room = _started('Alice', 'Bob')
    old_state = room.game_state
    old_state.round_wins['Bob'] = 2
    service.start_game(room.code, 'hard', 20)
    assert room.game_state is not old_state
    assert room.game_state.round_wins == {'Alice': 0, 'Bob': 0}
    assert len(letters_for(room.game_state.difficulty)) == 26


def test_late_joiner_waits_for_next_round():
    room = _started('Alice', 'Bob')
    service.join_room(room.code, 'Carol')
    state = room.game_state
    assert 'Carol' in room.players
    assert state.round_wins['Carol'] == 0
    assert 'Carol' not in state.active_players

    service.start_turn(room.code)
    result = service.eliminate_player(room.code)
    assert result.kind == 'roundEnd'
    assert 'Carol' in state.active_players
    assert state.active_players == state.players


def test_timeout_with_two_players_ends_round():
    room = _started('Alice', 'Bob')
    service.start_turn(room.code)

    result = service.eliminate_player(room.code)

    assert result.kind == 'roundEnd'
    assert result.winner == 'Bob'
    assert result.eliminated_player == 'Alice'
    assert room.game_state.round_wins['Bob'] == 1
    assert room.game_state.round_number == 2
    assert room.game_state.is_timer_running is False


def test_end_turn_advances_with_wraparound():
    room = _started('Alice', 'Bob', 'Carol')
    service.start_turn(room.code)

    for expected in ['Bob', 'Carol', 'Alice']:
        result = service.end_turn(room.code, 'ABCDEFG'[len(room.game_state.used_letters)])
        assert result.kind == 'continue'
        assert service.current_player(room) == expected
        assert room.game_state.is_timer_running is True
        assert room.game_state.time_left == room.game_state.turn_time


def test_end_turn_without_running_timer_is_a_noop():
    room = _started('Alice', 'Bob')
    result = service.end_turn(room.code, 'A')
    assert result.kind == 'continue'
    assert room.game_state.used_letters == []
    assert service.current_player(room) == 'Alice'


def test_exhausting_easy_letters_starts_overtime():
    room = _started('Alice', 'Bob')
    service.start_turn(room.code)
    letters = LETTER_SETS['easy']

    for letter in letters[:-1]:
        assert service.end_turn(room.code, letter).kind == 'continue'
    result = service.end_turn(room.code, letters[-1])

    state = room.game_state
    assert result.kind == 'overtimeStart'
    assert state.overtime_level == 1
    assert state.answers_required == 2
    assert state.is_overtime_round is True
    assert state.used_letters == []
    assert state.current_player_index == 0
    assert state.is_timer_running is False


def test_elimination_keeps_turn_order():
    room = _started('Alice', 'Bob', 'Carol')
    service.start_turn(room.code)
    service.end_turn(room.code, 'A')
    assert service.current_player(room) == 'Bob'

    result = service.eliminate_player(room.code)

    assert result.kind == 'continue'
    assert result.eliminated_player == 'Bob'
    assert room.game_state.active_players == ['Alice', 'Carol']
    assert service.current_player(room) == 'Carol'
    assert room.game_state.is_timer_running is True


def test_elimination_of_last_index_wraps_to_first():
    room = _started('Alice', 'Bob', 'Carol')
    service.start_turn(room.code)
    service.end_turn(room.code, 'A')
    service.end_turn(room.code, 'B')
    assert service.current_player(room) == 'Carol'

    service.eliminate_player(room.code)
    assert service.current_player(room) == 'Alice'


def test_elimination_shrinks_until_round_end():
    room = _started('Alice', 'Bob', 'Carol', 'Dave')
    service.start_turn(room.code)
    sizes = []
    while True:
        before = len(room.game_state.active_players)
        result = service.eliminate_player(room.code)
        if result.kind != 'continue':
            break
        sizes.append(len(room.game_state.active_players))
        assert sizes[-1] == before - 1
    assert sizes == [3, 2]
    assert result.kind == 'roundEnd'


def test_round_reset_starts_after_winner():
    room = _started('Alice', 'Bob', 'Carol')
    service.start_turn(room.code)
    service.end_turn(room.code, 'A')
    service.eliminate_player(room.code)  # Bob
    assert service.current_player(room) == 'Carol'
    result = service.eliminate_player(room.code)  # Carol

    state = room.game_state
    assert result.kind == 'roundEnd'
    assert result.winner == 'Alice'
    assert state.used_letters == []
    assert state.active_players == ['Alice', 'Bob', 'Carol']
    assert service.current_player(room) == 'Bob'


def test_round_winner_last_in_order_hands_lead_to_first():
    room = _started('Alice', 'Bob', 'Carol')
    service.start_turn(room.code)
    service.eliminate_player(room.code)  # Alice
    result = service.eliminate_player(room.code)  # Bob
    assert result.winner == 'Carol'
    assert service.current_player(room) == 'Alice'


def test_third_win_ends_game():
    room = _started('Alice', 'Bob')
    room.game_state.round_wins['Bob'] = Config.WINS_TO_END_GAME - 1
    service.start_turn(room.code)

    result = service.eliminate_player(room.code)

    assert result.kind == 'gameEnd'
    assert result.winner == 'Bob'
    assert room.game_state.round_wins['Bob'] == Config.WINS_TO_END_GAME
    assert room.game_state.round_active is False
    assert service.eliminate_player(room.code) is None


def test_two_wins_do_not_end_game():
    room = _started('Alice', 'Bob')
    room.game_state.round_wins['Bob'] = 1
    service.start_turn(room.code)
    assert service.eliminate_player(room.code).kind == 'roundEnd'


def test_overtime_escalates():
    room = _started('Alice', 'Bob', 'Carol')
    for n in range(1, 5):
        result = service.start_overtime_round(room.code)
        assert result.kind == 'overtimeStart'
        assert room.game_state.overtime_level == n
        assert room.game_state.answers_required == n + 1


def test_overtime_win_awards_required_answers():
    room = _started('Alice', 'Bob')
    service.start_overtime_round(room.code)
    service.start_turn(room.code)

    result = service.eliminate_player(room.code)

    assert result.kind == 'roundEnd'
    assert room.game_state.round_wins['Bob'] == 2
    assert room.game_state.is_overtime_round is False
    assert room.game_state.overtime_level == 0
    assert room.game_state.answers_required == 1


def test_overtime_second_level_win_ends_game():
    room = _started('Alice', 'Bob')
    service.start_overtime_round(room.code)
    service.start_overtime_round(room.code)
    service.start_turn(room.code)
    result = service.eliminate_player(room.code)
    assert result.kind == 'gameEnd'
    assert room.game_state.round_wins['Bob'] == 3


def test_overtime_picks_new_category():
    room = _started('Alice', 'Bob')
    seen = [room.game_state.current_category]
    for _ in range(5):
        service.start_overtime_round(room.code)
        assert room.game_state.current_category != seen[-1]
        seen.append(room.game_state.current_category)


def test_refresh_category_before_first_letter():
    room = _started('Alice', 'Bob')
    before = room.game_state.current_category
    assert service.refresh_category(room.code) is room
    assert room.game_state.current_category != before


def test_refresh_category_after_letter_fails():
    room = _started('Alice', 'Bob')
    service.start_turn(room.code)
    service.end_turn(room.code, 'A')
    before = room.game_state.current_category
    assert service.refresh_category(room.code) is None
    assert room.game_state.current_category == before


def test_set_difficulty_only_before_letters():
    room = _started('Alice', 'Bob')
    assert service.set_difficulty(room.code, 'hard') is room
    assert room.game_state.difficulty == 'hard'
    service.start_turn(room.code)
    service.end_turn(room.code, 'A')
    assert service.set_difficulty(room.code, 'easy') is None
    assert room.game_state.difficulty == 'hard'


def test_pick_category_exhausts_list_before_repeating():
    used = []
    current = ''
    picked = []
    for _ in range(len(CATEGORIES)):
        current = pick_category(used, current)
        picked.append(current)
    assert sorted(picked) == sorted(CATEGORIES)

    nxt = pick_category(used, current)
    assert nxt != current
    assert used == [nxt]


def test_tick_counts_down_running_turn():
    room = _started('Alice', 'Bob', turn_time=5)
    assert service.tick(room.code) is None
    service.start_turn(room.code)
    assert service.tick(room.code) == 4
    assert service.tick(room.code) == 3
    assert service.tick('NOPE00') is None


def test_leave_room_removes_from_roster():
    room = _room_with('Alice', 'Bob', 'Carol')
    _, result = service.leave_room(room.code, 'Bob')
    assert result is None
    assert room.players == ['Alice', 'Carol']
    assert 'Bob' not in room.connected_players

    # Leaving twice is harmless.
    assert service.leave_room(room.code, 'Bob') == (room, None)


def test_host_leaving_passes_host_role():
    room = _room_with('Alice', 'Bob')
    service.leave_room(room.code, 'Alice')
    assert room.host == 'Bob'
    assert room.host in room.players


def test_last_player_leaving_closes_room():
    room = service.create_room('Alice')
    service.leave_room(room.code, 'Alice')
    assert service.get_room(room.code) is None


def test_current_player_leaving_mid_round():
    room = _started('Alice', 'Bob', 'Carol')
    service.start_turn(room.code)

    _, result = service.leave_room(room.code, 'Alice')

    assert result.kind == 'continue'
    assert result.eliminated_player == 'Alice'
    assert room.game_state.players == ['Bob', 'Carol']
    assert service.current_player(room) == 'Bob'
    assert room.game_state.is_timer_running is True


def test_other_player_leaving_keeps_current_turn():
    room = _started('Alice', 'Bob', 'Carol')
    service.start_turn(room.code)
    service.end_turn(room.code, 'A')
    service.end_turn(room.code, 'B')
    assert service.current_player(room) == 'Carol'
    room.game_state.time_left = 4

    _, result = service.leave_room(room.code, 'Alice')

    assert result.kind == 'continue'
    assert service.current_player(room) == 'Carol'
    assert room.game_state.time_left == 4


def test_leaving_two_player_round_hands_win_to_other():
    room = _started('Alice', 'Bob')
    _, result = service.leave_room(room.code, 'Bob')
    assert result.kind == 'roundEnd'
    assert result.winner == 'Alice'
    assert room.game_state.round_wins['Bob'] == 0


def test_lone_survivor_does_not_get_a_new_round():
    room = _started('Alice', 'Bob')
    service.start_turn(room.code)
    service.leave_room(room.code, 'Bob')

    state = room.game_state
    assert state.round_wins['Alice'] == 1
    assert state.round_active is False
    assert state.is_timer_running is False
    assert state.active_players == ['Alice']
    assert service.tick(room.code) is None
    assert service.eliminate_player(room.code) is None


def test_eliminate_without_opponents_stops_timer():
    room = _started('Alice', 'Bob')
    service.start_turn(room.code)
    room.game_state.active_players = ['Alice']
    room.game_state.time_left = 0

    assert service.eliminate_player(room.code) is None
    assert room.game_state.is_timer_running is False


def test_cleanup_removes_empty_and_stale_rooms():
    empty = service.create_room('Alice')
    stale = service.create_room('Bob')
    active = service.create_room('Carol')
    now = service.now_ms()

    service.remove_player(empty.code, 'Alice')
    empty.empty_at_ms = now - (Config.EMPTY_ROOM_TIMEOUT_SEC * 1000 + 1)
    stale.last_activity_ms = now - (Config.ROOM_TIMEOUT_SEC * 1000 + 1)

    removed = service.cleanup_rooms(now)

    assert sorted(removed) == sorted([empty.code, stale.code])
    assert service.get_room(active.code) is active
    assert service.get_room(empty.code) is None


def test_cleanup_keeps_recently_emptied_room():
    room = service.create_room('Alice')
    service.remove_player(room.code, 'Alice')
    assert service.cleanup_rooms() == []
    assert service.get_room(room.code) is room


def test_rooms_are_isolated():
    easy = _started('Alice', 'Bob', difficulty='easy')
    hard = _started('Carol', 'Dave', difficulty='hard')
    service.start_turn(easy.code)
    service.end_turn(easy.code, 'A')

    assert hard.game_state.used_letters == []
    assert service.current_player(hard) == 'Carol'
    assert hard.game_state.difficulty == 'hard'
    assert easy.code != hard.code
