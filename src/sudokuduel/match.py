"""Authoritative per-room state: player slots, the live match and its turn order."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Hashable, List, Optional

from .puzzle import Grid, Puzzle, copy_grid

PLAYER_NUMBERS = (1, 2)
ROOM_CAPACITY = len(PLAYER_NUMBERS)
DEFAULT_MAX_MISTAKES = 3


def other_player(player: int) -> int:
    return 2 if player == 1 else 1


# ---------- Match ----------


@dataclass
class Move:
    row: int
    col: int
    value: int
    player: int

    def to_dict(self) -> Dict[str, int]:
        return {"row": self.row, "col": self.col, "value": self.value, "player": self.player}


@dataclass
class Match:
    """One two-player game: the shared grid, its solution, mistakes and turn pointer."""

    grid: Grid
    solution: Grid
    difficulty: str
    max_mistakes: int = DEFAULT_MAX_MISTAKES
    moves: List[Move] = field(default_factory=list)
    mistakes: List[int] = field(default_factory=lambda: [0, 0])
    current_player: int = 1

    @classmethod
    def from_puzzle(cls, puzzle: Puzzle, max_mistakes: int = DEFAULT_MAX_MISTAKES) -> "Match":
        return cls(
            grid=copy_grid(puzzle.grid),
            solution=copy_grid(puzzle.solution),
            difficulty=puzzle.difficulty,
            max_mistakes=max_mistakes,
        )

    def flip_turn(self) -> int:
        self.current_player = other_player(self.current_player)
        return self.current_player

    def apply_move(self, row: int, col: int, value: int, player: int) -> Move:
        """Record an accepted placement and pass the turn."""

        move = Move(row=row, col=col, value=value, player=player)
        self.grid[row][col] = value
        self.moves.append(move)
        self.flip_turn()
        return move

    def record_mistake(self, player: int) -> int:
        """Count a wrong guess against ``player``; a mistake also costs the turn."""

        self.mistakes[player - 1] += 1
        self.flip_turn()
        return self.mistakes[player - 1]

    def has_lost(self, player: int) -> bool:
        return self.mistakes[player - 1] >= self.max_mistakes

    def is_filled(self) -> bool:
        return all(value != 0 for row in self.grid for value in row)

    def trailing_player(self) -> Optional[int]:
        """Player with more mistakes, or None on a tie."""

        first, second = self.mistakes
        if first == second:
            return None
        return 1 if first > second else 2

    def check_move(self, row: int, col: int, value: int, player: int) -> Optional[str]:
        """Reason a move would be illegal, or None. Used only in strict mode."""

        if player != self.current_player:
            return "It's not your turn!"
        if self.grid[row][col] != 0:
            return "Cell is already filled"
        if self.solution[row][col] != value:
            return "Value does not match the solution"
        return None

    def check_mistake(self, player: int) -> Optional[str]:
        if player != self.current_player:
            return "It's not your turn!"
        return None


# ---------- Room ----------


class RoomState(str, Enum):
    EMPTY = "empty"
    WAITING = "waiting"
    ACTIVE = "active"
    # Two players seated but the match has ended; a rematch may follow.
    FINISHED = "finished"


@dataclass
class PlayerSlot:
    """Connection context: which room a connection sits in and as which player."""

    connection: Hashable = field(repr=False)
    room_id: int
    player_num: int
    join_order: int
    difficulty: Optional[str] = None


@dataclass
class Room:
    room_id: int
    slots: List[PlayerSlot] = field(default_factory=list)
    match: Optional[Match] = None

    @property
    def state(self) -> RoomState:
        if not self.slots:
            return RoomState.EMPTY
        if len(self.slots) < ROOM_CAPACITY:
            return RoomState.WAITING
        return RoomState.ACTIVE if self.match is not None else RoomState.FINISHED

    def is_full(self) -> bool:
        return len(self.slots) >= ROOM_CAPACITY

    def free_player_numbers(self) -> List[int]:
        taken = {slot.player_num for slot in self.slots}
        return [num for num in PLAYER_NUMBERS if num not in taken]

    def add_slot(self, slot: PlayerSlot) -> None:
        if self.is_full():
            raise ValueError("Room is full")
        if slot.player_num not in self.free_player_numbers():
            raise ValueError(f"Player {slot.player_num} is already seated")
        self.slots.append(slot)
        self.slots.sort(key=lambda s: s.join_order)

    def remove_slot(self, connection: Hashable) -> Optional[PlayerSlot]:
        for index, slot in enumerate(self.slots):
            if slot.connection == connection:
                return self.slots.pop(index)
        return None

    def first_slot(self) -> Optional[PlayerSlot]:
        return self.slots[0] if self.slots else None

    def connections(self) -> List[Hashable]:
        return [slot.connection for slot in self.slots]

    def to_dict(self) -> Dict[str, object]:
        return {
            "roomId": self.room_id,
            "state": self.state.value,
            "players": sorted(slot.player_num for slot in self.slots),
            "availableSlots": self.free_player_numbers(),
            "difficulty": self.match.difficulty if self.match else None,
            "moves": len(self.match.moves) if self.match else 0,
        }
