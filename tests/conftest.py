import pytest

from sudokuduel.puzzle import Puzzle, copy_grid


def _known_solution():
    # Shifted-row construction: every row, column and box is a permutation of 1-9.
    return [[(r * 3 + r // 3 + c) % 9 + 1 for c in range(9)] for r in range(9)]


@pytest.fixture()
def solution():
    return _known_solution()


@pytest.fixture()
def make_puzzle():
    """Build a puzzle from the known solution with the given cells blanked."""

    def factory(difficulty="Easy", blanks=((0, 0), (0, 1), (4, 4), (8, 8))):
        solved = _known_solution()
        grid = copy_grid(solved)
        for row, col in blanks:
            grid[row][col] = 0
        return Puzzle(grid=grid, solution=solved, difficulty=difficulty)

    return factory
