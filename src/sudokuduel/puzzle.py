"""Puzzle generation and validation for 9x9 Sudoku."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import random

Grid = List[List[int]]
Shuffle = Callable[[List[Any]], None]

SIZE = 9
BOX = 3
CELL_COUNT = SIZE * SIZE

# Cells blanked out of 81; higher is emptier.
DIFFICULTY_LEVELS: Dict[str, int] = {
    "Easy": 35,
    "Medium": 45,
    "Hard": 55,
    "Stupidly Hard": 60,
    "Impossibly Hard": 70,
}
DEFAULT_DIFFICULTY = "Easy"
DEFAULT_ATTEMPTS = 5


class PuzzleGenerationError(RuntimeError):
    """Raised when backtracking could not produce a complete grid."""


@dataclass
class Puzzle:
    grid: Grid
    solution: Grid
    difficulty: str = DEFAULT_DIFFICULTY

    def empty_cells(self) -> int:
        return sum(1 for row in self.grid for value in row if value == 0)


# ---------- Grid helpers ----------


def empty_grid() -> Grid:
    return [[0] * SIZE for _ in range(SIZE)]


def copy_grid(grid: Grid) -> Grid:
    return [list(row) for row in grid]


def cells_to_remove(difficulty: str) -> int:
    try:
        return DIFFICULTY_LEVELS[difficulty]
    except KeyError as exc:
        raise ValueError(
            f"Unsupported difficulty {difficulty!r}. "
            f"Choose one of {', '.join(DIFFICULTY_LEVELS)}."
        ) from exc


# ---------- Constraint checks ----------


def is_valid(grid: Grid, row: int, col: int, num: int) -> bool:
    """Return False if ``num`` already sits in the row, column or 3x3 box."""

    for x in range(SIZE):
        if grid[row][x] == num or grid[x][col] == num:
            return False
    start_row = BOX * (row // BOX)
    start_col = BOX * (col // BOX)
    for i in range(start_row, start_row + BOX):
        for j in range(start_col, start_col + BOX):
            if grid[i][j] == num:
                return False
    return True


def is_complete(grid: Grid) -> bool:
    """True iff no cell is empty and every cell agrees with its row, column and box.

    Each cell is zeroed while it is checked so it does not conflict with itself.
    """

    for row in range(SIZE):
        for col in range(SIZE):
            value = grid[row][col]
            if value == 0:
                return False
            grid[row][col] = 0
            try:
                ok = is_valid(grid, row, col, value)
            finally:
                grid[row][col] = value
            if not ok:
                return False
    return True


# ---------- Generation ----------


def fill_grid(grid: Grid, shuffle: Shuffle = random.shuffle) -> bool:
    """Fill ``grid`` in place by randomized backtracking.

    The caller owns the buffer. Returns False if no assignment completes it, in
    which case every cell this call touched has been reset to zero.
    """

    for row in range(SIZE):
        for col in range(SIZE):
            if grid[row][col] != 0:
                continue
            candidates = list(range(1, SIZE + 1))
            shuffle(candidates)
            for num in candidates:
                if is_valid(grid, row, col, num):
                    grid[row][col] = num
                    if fill_grid(grid, shuffle):
                        return True
                    grid[row][col] = 0
            return False
    return True


def generate_full_grid(
    shuffle: Shuffle = random.shuffle, attempts: int = DEFAULT_ATTEMPTS
) -> Grid:
    for _ in range(max(1, attempts)):
        grid = empty_grid()
        if fill_grid(grid, shuffle):
            return grid
    raise PuzzleGenerationError(
        f"Could not fill a {SIZE}x{SIZE} grid after {max(1, attempts)} attempts"
    )


def derive_solution(grid: Grid) -> Grid:
    return copy_grid(grid)


def remove_cells(grid: Grid, count: int, shuffle: Shuffle = random.shuffle) -> Grid:
    """Zero out ``count`` distinct cells of ``grid`` in place (clamped to 0..81)."""

    positions = [(row, col) for row in range(SIZE) for col in range(SIZE)]
    shuffle(positions)
    for row, col in positions[: max(0, min(count, CELL_COUNT))]:
        grid[row][col] = 0
    return grid


def generate_puzzle(
    difficulty: str = DEFAULT_DIFFICULTY,
    shuffle: Optional[Shuffle] = None,
    attempts: int = DEFAULT_ATTEMPTS,
) -> Puzzle:
    count = cells_to_remove(difficulty)
    shuffle = shuffle or random.shuffle
    grid = generate_full_grid(shuffle, attempts)
    solution = derive_solution(grid)
    remove_cells(grid, count, shuffle)
    return Puzzle(grid=grid, solution=solution, difficulty=difficulty)
