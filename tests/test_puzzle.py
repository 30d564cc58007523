"""Tests for Sudoku grid generation and validation."""

import random

import pytest

from sudokuduel import puzzle
from sudokuduel.puzzle import (
    DIFFICULTY_LEVELS,
    PuzzleGenerationError,
    copy_grid,
    fill_grid,
    generate_full_grid,
    generate_puzzle,
    is_complete,
    is_valid,
    remove_cells,
)


def _groups(grid):
    for i in range(9):
        yield grid[i]
        yield [grid[r][i] for r in range(9)]
    for br in range(0, 9, 3):
        for bc in range(0, 9, 3):
            yield [grid[r][c] for r in range(br, br + 3) for c in range(bc, bc + 3)]


@pytest.mark.parametrize("seed", [0, 1, 7, 42])
def test_generated_solution_is_valid_sudoku(seed):
    grid = generate_full_grid(random.Random(seed).shuffle)
    for group in _groups(grid):
        assert sorted(group) == list(range(1, 10))


def test_same_shuffle_seed_gives_same_puzzle():
    first = generate_puzzle("Medium", shuffle=random.Random(3).shuffle)
    second = generate_puzzle("Medium", shuffle=random.Random(3).shuffle)
    assert first.grid == second.grid
    assert first.solution == second.solution


@pytest.mark.parametrize("difficulty, removed", list(DIFFICULTY_LEVELS.items()))
def test_puzzle_removes_table_count_and_keeps_givens(difficulty, removed):
    result = generate_puzzle(difficulty, shuffle=random.Random(11).shuffle)
    assert result.difficulty == difficulty
    assert result.empty_cells() == removed
    for r in range(9):
        for c in range(9):
            if result.grid[r][c]:
                assert result.grid[r][c] == result.solution[r][c]
    assert all(value for row in result.solution for value in row)


def test_remove_cells_clamps_to_board_size(solution):
    grid = remove_cells(copy_grid(solution), 200)
    assert all(value == 0 for row in grid for value in row)

    untouched = remove_cells(copy_grid(solution), -5)
    assert untouched == solution


def test_is_valid_checks_row_column_and_box():
    grid = [[0] * 9 for _ in range(9)]
    grid[0][8] = 5
    assert not is_valid(grid, 0, 0, 5)  # same row
    grid = [[0] * 9 for _ in range(9)]
    grid[8][0] = 5
    assert not is_valid(grid, 0, 0, 5)  # same column
    grid = [[0] * 9 for _ in range(9)]
    grid[2][2] = 5
    assert not is_valid(grid, 0, 0, 5)  # same box
    assert is_valid(grid, 3, 3, 5)  # different row, column and box


def test_every_cell_of_a_solution_passes_when_zeroed(solution):
    for r in range(9):
        for c in range(9):
            value = solution[r][c]
            solution[r][c] = 0
            assert is_valid(solution, r, c, value)
            solution[r][c] = value


def test_is_complete(solution):
    assert is_complete(solution)
    # The check restores every cell it zeroes.
    assert all(value for row in solution for value in row)

    holed = copy_grid(solution)
    holed[5][5] = 0
    assert not is_complete(holed)

    swapped = copy_grid(solution)
    swapped[0][0], swapped[0][1] = swapped[0][1], swapped[0][0]
    assert not is_complete(swapped)


def test_fill_grid_reports_dead_end_without_partial_fill():
    grid = [[0] * 9 for _ in range(9)]
    grid[0][:8] = [1, 2, 3, 4, 5, 6, 7, 8]
    grid[1][8] = 9  # (0, 8) can only be 9, which the column already holds
    before = copy_grid(grid)
    assert fill_grid(grid) is False
    assert grid == before


def test_generation_retries_then_raises(monkeypatch):
    calls = []

    def always_fail(grid, shuffle):
        calls.append(1)
        return False

    monkeypatch.setattr(puzzle, "fill_grid", always_fail)
    with pytest.raises(PuzzleGenerationError):
        generate_full_grid(attempts=3)
    assert len(calls) == 3


def test_unknown_difficulty_rejected():
    with pytest.raises(ValueError):
        generate_puzzle("Trivial")
