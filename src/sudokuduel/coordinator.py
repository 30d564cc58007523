"""Room registry and per-message dispatch for two-player matches.

The coordinator is transport-agnostic: connections are opaque hashable handles and
every operation returns the list of ``Delivery`` records the caller must send, in
order. Callers serialize calls (one event processed to completion before the
next), so no locking happens here.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Hashable, List, NamedTuple, Optional, Union

from .match import DEFAULT_MAX_MISTAKES, Match, PlayerSlot, Room
from .protocol import (
    GENERATION_FAILED,
    PEER_DISCONNECTED,
    ChatMessage,
    ClientMessage,
    Event,
    JoinMessage,
    MistakeMessage,
    MoveMessage,
    chat_event,
    error_event,
    gameover_event,
    init_event,
    mistake_event,
    move_event,
    parse_client_message,
    waiting_event,
)
from .puzzle import (
    DEFAULT_ATTEMPTS,
    DEFAULT_DIFFICULTY,
    Puzzle,
    PuzzleGenerationError,
    generate_puzzle,
)

logger = logging.getLogger(__name__)

PuzzleFactory = Callable[[str], Puzzle]


class Delivery(NamedTuple):
    connection: Hashable
    event: Event


class MatchCoordinator:
    """Owns every room and is the only thing that mutates them."""

    def __init__(
        self,
        max_mistakes: int = DEFAULT_MAX_MISTAKES,
        default_difficulty: str = DEFAULT_DIFFICULTY,
        strict_moves: bool = False,
        generation_attempts: int = DEFAULT_ATTEMPTS,
        puzzle_factory: Optional[PuzzleFactory] = None,
        rematch_in: Optional[float] = None,
    ) -> None:
        self.max_mistakes = max_mistakes
        # Advertised in gameover events; scheduling the rematch is the caller's job.
        self.rematch_in = rematch_in
        self.default_difficulty = default_difficulty
        self.strict_moves = strict_moves
        self._puzzle_factory = puzzle_factory or (
            lambda difficulty: generate_puzzle(difficulty, attempts=generation_attempts)
        )
        self.rooms: Dict[int, Room] = {}
        self._slots: Dict[Hashable, PlayerSlot] = {}
        self._next_room_id = 1
        self._join_counter = 0

    # ---- registry ----

    def slot_for(self, connection: Hashable) -> Optional[PlayerSlot]:
        return self._slots.get(connection)

    def room_for(self, connection: Hashable) -> Optional[Room]:
        slot = self._slots.get(connection)
        return self.rooms.get(slot.room_id) if slot else None

    def get_room(self, room_id: int) -> Optional[Room]:
        return self.rooms.get(room_id)

    def assign_to_room(
        self, connection: Hashable, difficulty: Optional[str] = None
    ) -> PlayerSlot:
        """Seat ``connection`` in the first room with a free slot, creating one if needed."""

        if connection in self._slots:
            raise ValueError("Connection is already seated")

        room = next((r for r in self.rooms.values() if not r.is_full()), None)
        if room is None:
            room = Room(room_id=self._next_room_id)
            self._next_room_id += 1
            self.rooms[room.room_id] = room
            logger.info("Created room %s", room.room_id)

        self._join_counter += 1
        slot = PlayerSlot(
            connection=connection,
            room_id=room.room_id,
            player_num=room.free_player_numbers()[0],
            join_order=self._join_counter,
            difficulty=difficulty,
        )
        room.add_slot(slot)
        self._slots[connection] = slot
        logger.info("Player %s joined room %s", slot.player_num, room.room_id)
        return slot

    def destroy_room(self, room_id: int) -> None:
        room = self.rooms.pop(room_id, None)
        if room is None:
            return
        for slot in room.slots:
            self._slots.pop(slot.connection, None)
        logger.info("Destroyed room %s", room_id)

    # ---- connection events ----

    def connect(
        self, connection: Hashable, difficulty: Optional[str] = None
    ) -> List[Delivery]:
        slot = self.assign_to_room(connection, difficulty)
        room = self.rooms[slot.room_id]
        if room.is_full():
            return self.start_match(room.room_id)
        return [Delivery(connection, waiting_event())]

    def disconnect(self, connection: Hashable) -> List[Delivery]:
        slot = self._slots.pop(connection, None)
        if slot is None:
            return []
        room = self.rooms.get(slot.room_id)
        if room is None:
            return []
        room.remove_slot(connection)
        logger.info("Player %s left room %s", slot.player_num, room.room_id)

        deliveries: List[Delivery] = []
        if not room.is_full():
            if room.match is not None:
                logger.info("Match in room %s abandoned", room.room_id)
            room.match = None
            deliveries = self._broadcast(room, waiting_event(PEER_DISCONNECTED))
        if not room.slots:
            self.destroy_room(room.room_id)
        return deliveries

    def start_match(self, room_id: int) -> List[Delivery]:
        """Generate a puzzle for a full room and send each player its ``init``."""

        room = self.rooms.get(room_id)
        if room is None or not room.is_full():
            return []

        first = room.first_slot()
        difficulty = (first.difficulty if first else None) or self.default_difficulty
        try:
            puzzle = self._puzzle_factory(difficulty)
        except PuzzleGenerationError:
            logger.exception("Puzzle generation failed for room %s", room_id)
            room.match = None
            return self._broadcast(room, waiting_event(GENERATION_FAILED))

        room.match = Match.from_puzzle(puzzle, max_mistakes=self.max_mistakes)
        logger.info("Match started in room %s (%s)", room_id, difficulty)
        return [
            Delivery(slot.connection, init_event(room.match, slot.player_num))
            for slot in room.slots
        ]

    def handle_raw(
        self, connection: Hashable, raw: Union[str, bytes]
    ) -> List[Delivery]:
        message = parse_client_message(raw)
        if message is None:
            logger.debug("Dropped malformed message from %r", connection)
            return []
        return self.handle(connection, message)

    def handle(self, connection: Hashable, message: ClientMessage) -> List[Delivery]:
        slot = self._slots.get(connection)
        room = self.rooms.get(slot.room_id) if slot else None
        if slot is None or room is None:
            return []

        if isinstance(message, JoinMessage):
            slot.difficulty = message.difficulty
            return []
        if isinstance(message, ChatMessage):
            return self._broadcast(room, chat_event(message.message, slot.player_num))

        # Game messages need a live match.
        if room.match is None:
            return []
        if isinstance(message, MoveMessage):
            return self._handle_move(room, room.match, slot, message)
        if isinstance(message, MistakeMessage):
            return self._handle_mistake(room, room.match, slot, message)
        return []

    # ---- game messages ----

    def _handle_move(
        self, room: Room, match: Match, slot: PlayerSlot, message: MoveMessage
    ) -> List[Delivery]:
        payload = message.move
        if self.strict_moves:
            reason = match.check_move(
                payload.row, payload.col, payload.value, slot.player_num
            )
            if reason:
                return [Delivery(slot.connection, error_event(reason))]

        move = match.apply_move(payload.row, payload.col, payload.value, slot.player_num)
        deliveries = self._broadcast(room, move_event(move, match.current_player))
        if match.is_filled():
            event = gameover_event(
                match.trailing_player(), match.mistakes, "completed", self.rematch_in
            )
            deliveries += self._end_match(room, event)
        return deliveries

    def _handle_mistake(
        self, room: Room, match: Match, slot: PlayerSlot, message: MistakeMessage
    ) -> List[Delivery]:
        player = slot.player_num
        if self.strict_moves:
            reason = match.check_mistake(player)
            if reason:
                return [Delivery(slot.connection, error_event(reason))]

        match.record_mistake(player)
        deliveries = self._broadcast(
            room,
            mistake_event(
                match.mistakes,
                message.cell,
                message.wrong_value,
                match.current_player,
                player,
            ),
        )
        if match.has_lost(player):
            event = gameover_event(player, match.mistakes, "mistakes", self.rematch_in)
            deliveries += self._end_match(room, event)
        return deliveries

    def _end_match(self, room: Room, event: Event) -> List[Delivery]:
        logger.info("Match in room %s over (%s)", room.room_id, event.get("reason"))
        room.match = None
        return self._broadcast(room, event)

    @staticmethod
    def _broadcast(room: Room, event: Event) -> List[Delivery]:
        return [Delivery(connection, event) for connection in room.connections()]

    def snapshot(self) -> List[Dict[str, object]]:
        return [room.to_dict() for room in self.rooms.values()]

