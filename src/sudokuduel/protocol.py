"""JSON wire protocol between browser/terminal clients and the relay server."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .match import Match, Move
from .puzzle import DIFFICULTY_LEVELS, DEFAULT_DIFFICULTY

Event = Dict[str, Any]

WAITING_FOR_PLAYER = "Waiting for another player..."
PEER_DISCONNECTED = "Other player disconnected."
GENERATION_FAILED = "Could not create a puzzle. Waiting for a new game..."


def _ensure_known_difficulty(value: str) -> str:
    if value not in DIFFICULTY_LEVELS:
        raise ValueError(
            f"Unsupported difficulty {value!r}. "
            f"Choose one of {', '.join(DIFFICULTY_LEVELS)}."
        )
    return value


# ---------- Client -> server ----------


class CellRef(BaseModel):
    row: int = Field(ge=0, le=8)
    col: int = Field(ge=0, le=8)


class MovePayload(CellRef):
    value: int = Field(ge=1, le=9)
    player: int = Field(ge=1, le=2)


class JoinMessage(BaseModel):
    type: Literal["join"]
    difficulty: str = DEFAULT_DIFFICULTY

    @field_validator("difficulty")
    @classmethod
    def ensure_supported_difficulty(cls, value: str) -> str:
        return _ensure_known_difficulty(value)


class MoveMessage(BaseModel):
    type: Literal["move"]
    move: MovePayload


class MistakeMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["mistake"]
    player: int = Field(ge=1, le=2)
    cell: CellRef
    wrong_value: int = Field(alias="wrongValue", ge=1, le=9)


class ChatMessage(BaseModel):
    type: Literal["chat"]
    # Relayed verbatim, whatever JSON the sender put here.
    message: Any
    player: Optional[int] = None


ClientMessage = Annotated[
    Union[JoinMessage, MoveMessage, MistakeMessage, ChatMessage],
    Field(discriminator="type"),
]
_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(raw: Union[str, bytes]) -> Optional[ClientMessage]:
    """Decode one inbound frame; None for anything malformed."""

    try:
        return _client_message_adapter.validate_json(raw)
    except ValidationError:
        return None


# ---------- Server -> client ----------


def init_event(match: Match, player_num: int) -> Event:
    return {
        "type": "init",
        "grid": [list(row) for row in match.grid],
        "solution": [list(row) for row in match.solution],
        "mistakes": list(match.mistakes),
        "currentPlayer": match.current_player,
        "playerNum": player_num,
        "notify": True,
        "difficulty": match.difficulty,
    }


def waiting_event(message: str = WAITING_FOR_PLAYER) -> Event:
    return {"type": "waiting", "message": message}


def move_event(move: Move, current_player: int) -> Event:
    return {"type": "move", "move": move.to_dict(), "currentPlayer": current_player}


def mistake_event(
    mistakes: List[int],
    cell: CellRef,
    wrong_value: int,
    current_player: int,
    player: int,
) -> Event:
    return {
        "type": "mistake",
        "mistakes": list(mistakes),
        "cell": {"row": cell.row, "col": cell.col},
        "wrongValue": wrong_value,
        "currentPlayer": current_player,
        "player": player,
    }


def gameover_event(
    loser: Optional[int],
    mistakes: List[int],
    reason: str = "mistakes",
    rematch_in: Optional[float] = None,
) -> Event:
    event: Event = {
        "type": "gameover",
        "loser": loser,
        "mistakes": list(mistakes),
        "reason": reason,
    }
    if rematch_in:
        event["rematchIn"] = rematch_in
    return event


def chat_event(message: Any, player: Optional[int]) -> Event:
    return {"type": "chat", "message": message, "player": player}


def error_event(message: str) -> Event:
    return {"type": "error", "message": message}
