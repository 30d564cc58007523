"""Unit tests for room and match state."""

import pytest

from sudokuduel.match import Match, PlayerSlot, Room, RoomState


def _slot(conn, num, order):
    return PlayerSlot(connection=conn, room_id=1, player_num=num, join_order=order)


def test_match_copies_puzzle_grids(make_puzzle):
    puzzle = make_puzzle()
    match = Match.from_puzzle(puzzle)
    match.grid[0][0] = 9
    assert puzzle.grid[0][0] == 0
    assert match.current_player == 1
    assert match.mistakes == [0, 0]


def test_moves_and_mistakes_both_flip_turn(make_puzzle):
    match = Match.from_puzzle(make_puzzle())
    value = match.solution[0][0]
    move = match.apply_move(0, 0, value, 1)
    assert match.grid[0][0] == value
    assert match.moves == [move]
    assert match.current_player == 2

    assert match.record_mistake(2) == 1
    assert match.mistakes == [0, 1]
    assert match.current_player == 1


def test_loss_and_trailing_player(make_puzzle):
    match = Match.from_puzzle(make_puzzle(), max_mistakes=2)
    assert match.trailing_player() is None
    match.record_mistake(1)
    assert match.trailing_player() == 1
    assert not match.has_lost(1)
    match.record_mistake(1)
    assert match.has_lost(1)


def test_filled_detection(make_puzzle):
    match = Match.from_puzzle(make_puzzle(blanks=[(3, 3)]))
    assert not match.is_filled()
    match.apply_move(3, 3, match.solution[3][3], 1)
    assert match.is_filled()


def test_strict_checks(make_puzzle):
    match = Match.from_puzzle(make_puzzle())
    good = match.solution[0][0]
    assert match.check_move(0, 0, good, 2) == "It's not your turn!"
    assert match.check_move(0, 2, match.solution[0][2], 1) == "Cell is already filled"
    assert match.check_move(0, 0, good % 9 + 1, 1) == "Value does not match the solution"
    assert match.check_move(0, 0, good, 1) is None
    assert match.check_mistake(2) == "It's not your turn!"
    assert match.check_mistake(1) is None


def test_room_states_follow_slots_and_match(make_puzzle):
    room = Room(room_id=1)
    assert room.state is RoomState.EMPTY
    room.add_slot(_slot("a", 1, 1))
    assert room.state is RoomState.WAITING
    assert room.free_player_numbers() == [2]
    room.add_slot(_slot("b", 2, 2))
    assert room.state is RoomState.FINISHED
    room.match = Match.from_puzzle(make_puzzle())
    assert room.state is RoomState.ACTIVE
    assert room.to_dict()["state"] == "active"

    removed = room.remove_slot("a")
    assert removed.player_num == 1
    assert room.free_player_numbers() == [1]
    assert room.remove_slot("missing") is None


def test_room_refuses_third_slot_and_duplicate_numbers():
    room = Room(room_id=1)
    room.add_slot(_slot("a", 1, 1))
    with pytest.raises(ValueError):
        room.add_slot(_slot("b", 1, 2))
    room.add_slot(_slot("b", 2, 2))
    with pytest.raises(ValueError):
        room.add_slot(_slot("c", 2, 3))


def test_slots_stay_in_join_order():
    room = Room(room_id=1)
    room.add_slot(_slot("late", 1, 5))
    room.add_slot(_slot("early", 2, 3))
    assert room.first_slot().connection == "early"
    assert room.connections() == ["early", "late"]
