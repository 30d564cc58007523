import pytest

from sudokuduel.match import Match
from sudokuduel.protocol import init_event
from sudokuduel.solo import CellMark
from sudokuduel.sync import ClientSync


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def notices():
    return []


def start(make_puzzle, player_num, clock, notices):
    sync = ClientSync(clock=clock, notify=notices.append)
    match = Match.from_puzzle(make_puzzle("Medium"))
    sync.apply(init_event(match, player_num))
    return sync


def test_init_loads_board_and_announces(make_puzzle, clock, notices):
    sync = start(make_puzzle, 2, clock, notices)
    assert sync.player_num == 2
    assert sync.difficulty == "Medium"
    assert sync.active
    assert sync.marks[(0, 2)] is CellMark.PREFILLED
    assert notices == ["Both players are connected! Game starts now. You are Player 2."]


def test_board_enabled_only_on_own_turn(make_puzzle, clock, notices):
    mine = start(make_puzzle, 1, clock, notices)
    theirs = start(make_puzzle, 2, clock, notices)
    assert mine.enabled_cells() == [(0, 0), (0, 1), (4, 4), (8, 8)]
    assert theirs.enabled_cells() == []


def test_enter_builds_move_for_correct_digit(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    good = sync.solution[0][0]
    assert sync.enter(0, 0, good) == {
        "type": "move",
        "move": {"row": 0, "col": 0, "value": good, "player": 1},
    }
    assert sync.pending == {(0, 0): good}
    # Board is untouched until the server echoes the move.
    assert sync.grid[0][0] == 0


def test_enter_builds_mistake_for_wrong_digit(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    wrong = sync.solution[0][1] % 9 + 1
    assert sync.enter(0, 1, wrong) == {
        "type": "mistake",
        "player": 1,
        "cell": {"row": 0, "col": 1},
        "wrongValue": wrong,
    }


def test_enter_refused_out_of_turn(make_puzzle, clock, notices):
    sync = start(make_puzzle, 2, clock, notices)
    assert sync.enter(0, 0, 1) is None
    assert sync.last_notice == "It's not your turn!"
    assert sync.pending == {}


def test_enter_refused_before_match(clock, notices):
    sync = ClientSync(clock=clock, notify=notices.append)
    assert sync.enter(0, 0, 1) is None
    assert sync.last_notice == "Waiting for the game to start."


def test_move_event_updates_board_and_turn(make_puzzle, clock, notices):
    sync = start(make_puzzle, 2, clock, notices)
    sync.apply({"type": "move", "move": {"row": 0, "col": 0, "value": 1, "player": 1}, "currentPlayer": 2})
    assert sync.grid[0][0] == 1
    assert sync.marks[(0, 0)] is CellMark.PLAYER1
    assert sync.is_my_turn()
    assert sync.last_notice == "It is now your turn!"
    assert (0, 0) not in sync.enabled_cells()


def test_later_broadcast_overwrites_pending_entry(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    sync.enter(4, 4, sync.solution[4][4])
    sync.apply({"type": "move", "move": {"row": 4, "col": 4, "value": 7, "player": 2}, "currentPlayer": 1})
    assert sync.grid[4][4] == 7
    assert sync.marks[(4, 4)] is CellMark.PLAYER2
    assert sync.pending == {}


def test_mistake_event_marks_cell_wrong(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    sync.apply({
        "type": "mistake",
        "mistakes": [1, 0],
        "cell": {"row": 0, "col": 1},
        "wrongValue": 9,
        "currentPlayer": 2,
        "player": 1,
    })
    assert sync.mistakes == [1, 0]
    assert sync.grid[0][1] == 9
    assert sync.marks[(0, 1)] is CellMark.WRONG
    assert not sync.is_my_turn()
    assert sync.last_notice.startswith("You made a mistake at (1, 2).")


def test_wrong_cell_needs_clearing_before_retry(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    sync.apply({
        "type": "mistake",
        "mistakes": [0, 1],
        "cell": {"row": 0, "col": 1},
        "wrongValue": 9,
        "currentPlayer": 1,
        "player": 2,
    })
    assert sync.enter(0, 1, sync.solution[0][1]) is None
    assert sync.clear(0, 1)
    assert sync.grid[0][1] == 0
    assert sync.enter(0, 1, sync.solution[0][1])["type"] == "move"


def test_player_at_mistake_limit_is_locked_out(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    sync.mistakes = [3, 0]
    assert sync.enabled_cells() == []


def test_waiting_deactivates_board(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    sync.apply({"type": "waiting", "message": "Other player disconnected."})
    assert not sync.active
    assert sync.enabled_cells() == []
    assert sync.last_notice == "Other player disconnected."


def test_clocks_charge_the_player_on_turn(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    clock.now = 12.0
    sync.apply({"type": "move", "move": {"row": 0, "col": 0, "value": 1, "player": 1}, "currentPlayer": 2})
    clock.now = 20.0
    sync.tick()
    assert sync.times == [12.0, 8.0]


def test_verdict_by_mistakes(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    sync.apply({"type": "gameover", "loser": 2, "mistakes": [1, 3], "reason": "mistakes"})
    assert not sync.active
    assert sync.verdict().winner == 1
    assert sync.last_notice == "Game over! Player 1 wins!"


def test_verdict_by_time_then_draw(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    sync.mistakes = [1, 1]
    sync.times = [75.0, 62.0]
    verdict = sync.verdict()
    assert verdict.winner == 2
    assert verdict.message == (
        "Game over! Both players made the same number of mistakes, "
        "but Player 2 wins by time (01:02 vs 01:15)!"
    )

    sync.times = [62.4, 62.9]
    assert sync.verdict().winner is None
    assert sync.verdict().message == "Game over! It's a draw!"


def test_gameover_announces_rematch(make_puzzle, clock, notices):
    sync = start(make_puzzle, 2, clock, notices)
    sync.apply({"type": "gameover", "loser": 2, "mistakes": [0, 3], "reason": "mistakes", "rematchIn": 10})
    assert sync.last_notice == "Game over! Player 1 wins! New game starting in 10 seconds..."


def test_chat_and_error_events(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    assert sync.chat_message("gl") == {"type": "chat", "message": "gl", "player": 1}
    sync.apply({"type": "chat", "message": "hf", "player": 2})
    assert sync.chat_log == [{"player": 2, "message": "hf"}]

    sync.enter(0, 0, sync.solution[0][0])
    sync.apply({"type": "error", "message": "It's not your turn!"})
    assert sync.pending == {}
    assert sync.last_notice == "It's not your turn!"


def test_unknown_events_are_ignored(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    sync.apply({"type": "fireworks"})
    assert sync.active


def test_second_entry_waits_for_echo(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    assert sync.enter(0, 0, sync.solution[0][0])["type"] == "move"
    assert sync.enter(0, 1, sync.solution[0][1]) is None
    assert sync.last_notice == "Waiting for the server to confirm your last move."
    assert sync.pending == {(0, 0): sync.solution[0][0]}

    sync.apply({"type": "move", "move": {"row": 0, "col": 0, "value": sync.solution[0][0], "player": 1}, "currentPlayer": 2})
    assert sync.pending == {}
    assert sync.enter(0, 1, sync.solution[0][1]) is None
    assert sync.last_notice == "It's not your turn!"


def test_rejected_entry_can_be_retried(make_puzzle, clock, notices):
    sync = start(make_puzzle, 1, clock, notices)
    sync.enter(0, 0, sync.solution[0][0])
    sync.apply({"type": "error", "message": "Cell is already filled"})
    assert sync.enter(0, 1, sync.solution[0][1])["type"] == "move"
