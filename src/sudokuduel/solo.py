"""Single-player session: one grid, its solution, a mistake budget and a clock."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .match import DEFAULT_MAX_MISTAKES
from .puzzle import (
    DEFAULT_DIFFICULTY,
    Grid,
    Puzzle,
    cells_to_remove,
    copy_grid,
    empty_grid,
    generate_puzzle,
    is_complete,
)

Cell = Tuple[int, int]


class CellMark(str, Enum):
    PREFILLED = "prefilled"
    CORRECT = "correct"
    WRONG = "wrong"
    PLAYER1 = "player1"
    PLAYER2 = "player2"


RESOLVED_MARKS = (CellMark.PREFILLED, CellMark.CORRECT, CellMark.PLAYER1, CellMark.PLAYER2)


class Outcome(str, Enum):
    CORRECT = "correct"
    WRONG = "wrong"
    SOLVED = "solved"
    LOST = "lost"
    REJECTED = "rejected"


def format_time(seconds: float) -> str:
    seconds = int(seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def check_digit(value: int) -> int:
    if not isinstance(value, int) or not 1 <= value <= 9:
        raise ValueError(f"Digit must be between 1 and 9, got {value!r}")
    return value


@dataclass
class SoloSession:
    difficulty: str = DEFAULT_DIFFICULTY
    max_mistakes: int = DEFAULT_MAX_MISTAKES
    puzzle_factory: Callable[[str], Puzzle] = field(default=generate_puzzle, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    grid: Grid = field(default_factory=empty_grid, init=False)
    solution: Grid = field(default_factory=empty_grid, init=False)
    marks: Dict[Cell, CellMark] = field(default_factory=dict, init=False)
    mistakes: int = field(default=0, init=False)
    started_at: float = field(default=0.0, init=False)
    finished_at: Optional[float] = field(default=None, init=False)
    outcome: Optional[Outcome] = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.new_game()

    # ---- lifecycle ----

    def new_game(self, difficulty: Optional[str] = None) -> None:
        if difficulty is not None:
            cells_to_remove(difficulty)
            self.difficulty = difficulty
        puzzle = self.puzzle_factory(self.difficulty)
        self.grid = copy_grid(puzzle.grid)
        self.solution = copy_grid(puzzle.solution)
        self.marks = {
            (row, col): CellMark.PREFILLED
            for row in range(9)
            for col in range(9)
            if self.grid[row][col] != 0
        }
        self.mistakes = 0
        self.started_at = self.clock()
        self.finished_at = None
        self.outcome = None

    def change_difficulty(self, difficulty: str) -> None:
        self.new_game(difficulty)

    @property
    def finished(self) -> bool:
        return self.outcome in (Outcome.SOLVED, Outcome.LOST)

    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else self.clock()
        return max(0.0, end - self.started_at)

    # ---- play ----

    def is_editable(self, row: int, col: int) -> bool:
        return not self.finished and self.marks.get((row, col)) not in RESOLVED_MARKS

    def enter(self, row: int, col: int, value: int) -> Outcome:
        """Place ``value`` at (row, col) and judge it against the solution."""

        check_digit(value)
        if not self.is_editable(row, col) or self.mistakes >= self.max_mistakes:
            return Outcome.REJECTED

        self.grid[row][col] = value
        if value == self.solution[row][col]:
            self.marks[(row, col)] = CellMark.CORRECT
            if is_complete(self.grid):
                return self._finish(Outcome.SOLVED)
            return Outcome.CORRECT

        self.marks[(row, col)] = CellMark.WRONG
        self.mistakes += 1
        if self.mistakes >= self.max_mistakes:
            return self._finish(Outcome.LOST)
        return Outcome.WRONG

    def clear(self, row: int, col: int) -> bool:
        """Empty a cell previously marked wrong."""

        if self.finished or self.marks.get((row, col)) is not CellMark.WRONG:
            return False
        self.grid[row][col] = 0
        del self.marks[(row, col)]
        return True

    def _finish(self, outcome: Outcome) -> Outcome:
        self.outcome = outcome
        self.finished_at = self.clock()
        return outcome

    def status(self) -> str:
        if self.outcome is Outcome.SOLVED:
            return f"Congratulations! Puzzle solved in {format_time(self.elapsed())}!"
        if self.outcome is Outcome.LOST:
            return f"{self.max_mistakes} mistakes! Game over"
        return (
            f"{self.difficulty} | Mistakes: {self.mistakes}/{self.max_mistakes} "
            f"| Time: {format_time(self.elapsed())}"
        )
