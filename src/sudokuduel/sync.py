"""Client-side view of a multiplayer match, reconciled against server events.

Local edits only decide which intent to send (``move`` or ``mistake``); the board
changes when the server's broadcast comes back, so both players see the order the
server chose.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .match import DEFAULT_MAX_MISTAKES
from .protocol import Event
from .puzzle import DEFAULT_DIFFICULTY, Grid, empty_grid
from .solo import RESOLVED_MARKS, Cell, CellMark, check_digit, format_time

Notifier = Callable[[str], None]


@dataclass
class Verdict:
    winner: Optional[int]
    message: str


@dataclass
class ClientSync:
    max_mistakes: int = DEFAULT_MAX_MISTAKES
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    notify: Optional[Notifier] = field(default=None, repr=False)

    player_num: Optional[int] = field(default=None, init=False)
    current_player: int = field(default=1, init=False)
    difficulty: str = field(default=DEFAULT_DIFFICULTY, init=False)
    grid: Grid = field(default_factory=empty_grid, init=False)
    solution: Grid = field(default_factory=empty_grid, init=False)
    marks: Dict[Cell, CellMark] = field(default_factory=dict, init=False)
    pending: Dict[Cell, int] = field(default_factory=dict, init=False)
    mistakes: List[int] = field(default_factory=lambda: [0, 0], init=False)
    times: List[float] = field(default_factory=lambda: [0.0, 0.0], init=False)
    active: bool = field(default=False, init=False)
    chat_log: List[Event] = field(default_factory=list, init=False)
    last_notice: str = field(default="", init=False)
    _last_tick: float = field(default=0.0, init=False, repr=False)

    # ---- outbound intents ----

    def join_message(self, difficulty: str) -> Event:
        return {"type": "join", "difficulty": difficulty}

    def chat_message(self, text: str) -> Event:
        return {"type": "chat", "message": text, "player": self.player_num}

    def is_my_turn(self) -> bool:
        return self.active and self.player_num == self.current_player

    def is_enabled(self, row: int, col: int) -> bool:
        """Board-enable policy: resolved cells never, others only on our turn."""

        if self.marks.get((row, col)) in RESOLVED_MARKS:
            return False
        return self.is_my_turn() and self._my_mistakes() < self.max_mistakes

    def enabled_cells(self) -> List[Cell]:
        return [(r, c) for r in range(9) for c in range(9) if self.is_enabled(r, c)]

    def enter(self, row: int, col: int, value: int) -> Optional[Event]:
        """Turn a typed digit into the intent to send, or None if refused locally."""

        check_digit(value)
        if not self.active:
            self._notice("Waiting for the game to start.")
            return None
        if not self.is_my_turn():
            self._notice("It's not your turn!")
            return None
        if self.pending:
            # One intent per turn; the echo clears it.
            self._notice("Waiting for the server to confirm your last move.")
            return None
        if not self.is_enabled(row, col):
            return None
        if self.marks.get((row, col)) is CellMark.WRONG:
            # A wrong cell must be cleared before it is retried.
            return None

        self.pending[(row, col)] = value
        if value == self.solution[row][col]:
            return {
                "type": "move",
                "move": {"row": row, "col": col, "value": value, "player": self.player_num},
            }
        return {
            "type": "mistake",
            "player": self.player_num,
            "cell": {"row": row, "col": col},
            "wrongValue": value,
        }

    def clear(self, row: int, col: int) -> bool:
        """Empty a cell left wrong by an earlier attempt, on our own turn only."""

        if self.marks.get((row, col)) is not CellMark.WRONG or not self.is_my_turn():
            return False
        del self.marks[(row, col)]
        self.grid[row][col] = 0
        return True

    # ---- inbound events ----

    def apply(self, event: Dict[str, Any]) -> None:
        handler = getattr(self, f"_on_{event.get('type')}", None)
        if handler is not None:
            handler(event)

    def _on_init(self, event: Dict[str, Any]) -> None:
        self.grid = [list(row) for row in event["grid"]]
        self.solution = [list(row) for row in event["solution"]]
        self.mistakes = list(event.get("mistakes", [0, 0]))
        self.current_player = event.get("currentPlayer", 1)
        self.player_num = event.get("playerNum")
        self.difficulty = event.get("difficulty", self.difficulty)
        self.marks = {
            (row, col): CellMark.PREFILLED
            for row in range(9)
            for col in range(9)
            if self.grid[row][col] != 0
        }
        self.pending.clear()
        self.times = [0.0, 0.0]
        self._last_tick = self.clock()
        self.active = True
        if event.get("notify"):
            self._notice(
                f"Both players are connected! Game starts now. You are Player {self.player_num}."
            )

    def _on_waiting(self, event: Dict[str, Any]) -> None:
        self.tick()
        self.active = False
        self.pending.clear()
        self._notice(event.get("message", ""))

    def _on_move(self, event: Dict[str, Any]) -> None:
        self.tick()
        move = event["move"]
        row, col, player = move["row"], move["col"], move["player"]
        self.grid[row][col] = move["value"]
        self.marks[(row, col)] = CellMark.PLAYER1 if player == 1 else CellMark.PLAYER2
        self.pending.pop((row, col), None)
        self.current_player = event["currentPlayer"]
        if player == self.player_num:
            self._notice(f"Great job! It is now Player {self.current_player}'s turn.")
        elif self.is_my_turn():
            self._notice("It is now your turn!")

    def _on_mistake(self, event: Dict[str, Any]) -> None:
        self.tick()
        self.mistakes = list(event["mistakes"])
        self.current_player = event["currentPlayer"]
        cell = event.get("cell")
        if not cell:
            return
        row, col = cell["row"], cell["col"]
        self.pending.pop((row, col), None)
        if self.marks.get((row, col)) not in RESOLVED_MARKS:
            self.grid[row][col] = event.get("wrongValue") or 0
            self.marks[(row, col)] = CellMark.WRONG
        where = f"({row + 1}, {col + 1})"
        if event.get("player") == self.player_num:
            self._notice(
                f"You made a mistake at {where}. You can change the number on your next turn."
            )
        else:
            self._notice(
                f"Player {event.get('player')} made a mistake at {where}. It is now your turn."
            )

    def _on_gameover(self, event: Dict[str, Any]) -> None:
        self.tick()
        if "mistakes" in event:
            self.mistakes = list(event["mistakes"])
        self.active = False
        self.pending.clear()
        message = self.verdict().message
        if event.get("rematchIn"):
            message += f" New game starting in {event['rematchIn']} seconds..."
        self._notice(message)

    def _on_chat(self, event: Dict[str, Any]) -> None:
        self.chat_log.append({"player": event.get("player"), "message": event.get("message")})

    def _on_error(self, event: Dict[str, Any]) -> None:
        self.pending.clear()
        self._notice(event.get("message", "Request rejected"))

    # ---- clocks and results ----

    def tick(self) -> None:
        """Charge the time since the last tick to whoever holds the turn."""

        now = self.clock()
        if self.active:
            self.times[self.current_player - 1] += max(0.0, now - self._last_tick)
        self._last_tick = now

    def verdict(self) -> Verdict:
        first, second = self.mistakes
        if first != second:
            winner = 1 if first < second else 2
            return Verdict(winner, f"Game over! Player {winner} wins!")
        t1, t2 = (int(t) for t in self.times)
        if t1 != t2:
            winner = 1 if t1 < t2 else 2
            fast, slow = (t1, t2) if winner == 1 else (t2, t1)
            return Verdict(
                winner,
                "Game over! Both players made the same number of mistakes, "
                f"but Player {winner} wins by time "
                f"({format_time(fast)} vs {format_time(slow)})!",
            )
        return Verdict(None, "Game over! It's a draw!")

    def _my_mistakes(self) -> int:
        if self.player_num is None:
            return 0
        return self.mistakes[self.player_num - 1]

    def _notice(self, message: str) -> None:
        self.last_notice = message
        if self.notify is not None:
            self.notify(message)
