"""Terminal client: play solo locally or join a multiplayer room over WebSocket."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import websockets
from websockets.exceptions import WebSocketException

from .puzzle import DEFAULT_DIFFICULTY, DIFFICULTY_LEVELS, Grid
from .solo import Cell, CellMark, Outcome, SoloSession
from .sync import ClientSync

logger = logging.getLogger(__name__)

HELP = "commands: <row> <col> <digit> | clear <row> <col> | chat <text> | new [difficulty] | quit"

_MARK_PREFIX = {
    CellMark.WRONG: "!",
    CellMark.CORRECT: "*",
    CellMark.PLAYER1: "a",
    CellMark.PLAYER2: "b",
}


def render_board(grid: Grid, marks: Dict[Cell, CellMark]) -> str:
    """Plain-text board; ``!`` flags a wrong entry, ``*``/``a``/``b`` who solved a cell."""

    lines = ["    " + "  ".join(f"{c + 1}" for c in range(9))]
    for row in range(9):
        if row and row % 3 == 0:
            lines.append("   " + "-" * 27)
        cells = []
        for col in range(9):
            value = grid[row][col]
            prefix = _MARK_PREFIX.get(marks.get((row, col)), " ")
            cells.append(f"{prefix}{value if value else '.'}")
            if col in (2, 5):
                cells.append("|")
        lines.append(f"{row + 1}  " + " ".join(cells))
    return "\n".join(lines)


def parse_command(line: str) -> Tuple[str, tuple]:
    """Split a command line into ``(kind, args)``; coordinates become zero-based."""

    parts = line.strip().split()
    if not parts:
        raise ValueError("empty command")
    head = parts[0].lower()
    if head in ("quit", "exit", "q"):
        return "quit", ()
    if head == "chat":
        return "chat", (line.strip()[len(parts[0]):].strip(),)
    if head == "new":
        difficulty = " ".join(parts[1:]) or None
        if difficulty is not None and difficulty not in DIFFICULTY_LEVELS:
            raise ValueError(f"unknown difficulty {difficulty!r}")
        return "new", (difficulty,)
    if head == "clear" and len(parts) == 3:
        row, col = _coords(parts[1], parts[2])
        return "clear", (row, col)
    if len(parts) == 3:
        row, col = _coords(parts[0], parts[1])
        digit = int(parts[2])
        if not 1 <= digit <= 9:
            raise ValueError("digit must be 1-9")
        return "enter", (row, col, digit)
    raise ValueError(f"unknown command {line!r}")


def _coords(row: str, col: str) -> Tuple[int, int]:
    r, c = int(row) - 1, int(col) - 1
    if not (0 <= r < 9 and 0 <= c < 9):
        raise ValueError("row and column must be 1-9")
    return r, c


# ---------- Solo ----------


def play_solo(
    session: SoloSession,
    read: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> None:
    write(render_board(session.grid, session.marks))
    write(session.status())
    while True:
        try:
            kind, args = parse_command(read("> "))
        except EOFError:
            return
        except ValueError as exc:
            write(f"{exc}. {HELP}")
            continue

        if kind == "quit":
            return
        if kind == "new":
            session.new_game(args[0])
        elif kind == "clear":
            if not session.clear(*args):
                write("Only a wrong entry can be cleared.")
        elif kind == "enter":
            outcome = session.enter(*args)
            if outcome is Outcome.REJECTED:
                write("That cell cannot be changed.")
            elif outcome in (Outcome.SOLVED, Outcome.LOST):
                write(session.status())
                session.new_game()
        else:
            write("Chat is only available online.")
        write(render_board(session.grid, session.marks))
        write(session.status())


# ---------- Online ----------


def online_intent(sync: ClientSync, kind: str, args: tuple) -> Optional[dict]:
    """Translate a parsed command into the message to send, if any."""

    if kind == "enter":
        return sync.enter(*args)
    if kind == "chat":
        return sync.chat_message(args[0]) if args[0] else None
    if kind == "clear":
        sync.clear(*args)
        return None
    return None


async def _read_events(ws, sync: ClientSync, write: Callable[[str], None]) -> None:
    async for raw in ws:
        try:
            event = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring non-JSON frame")
            continue
        sync.apply(event)
        kind = event.get("type")
        if kind in ("init", "move", "mistake"):
            write(render_board(sync.grid, sync.marks))
            turn = "your" if sync.is_my_turn() else f"Player {sync.current_player}'s"
            write(f"Mistakes {sync.mistakes[0]}/{sync.mistakes[1]} | {turn} turn")
        elif kind == "chat":
            write(f"[Player {event.get('player')}] {event.get('message')}")


async def play_online(
    url: str, difficulty: str, write: Callable[[str], None] = print
) -> None:
    sync = ClientSync(notify=lambda message: write(f"* {message}"))
    target = f"{url}?{urlencode({'difficulty': difficulty})}"
    async with websockets.connect(target) as ws:
        await ws.send(json.dumps(sync.join_message(difficulty)))
        reader = asyncio.create_task(_read_events(ws, sync, write))
        try:
            while not reader.done():
                try:
                    line = await asyncio.to_thread(input, "> ")
                except EOFError:
                    return
                try:
                    kind, args = parse_command(line)
                except ValueError as exc:
                    write(f"{exc}. {HELP}")
                    continue
                if kind == "quit":
                    return
                if kind == "new":
                    write("A new game starts automatically after each match.")
                    continue
                intent = online_intent(sync, kind, args)
                if intent is not None:
                    await ws.send(json.dumps(intent))
        finally:
            reader.cancel()


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="Play Sudoku Duel in the terminal")
    parser.add_argument("--solo", action="store_true", help="play a local puzzle")
    parser.add_argument(
        "--difficulty", default=DEFAULT_DIFFICULTY, choices=list(DIFFICULTY_LEVELS)
    )
    parser.add_argument("--url", default="ws://localhost:8000/ws")
    args = parser.parse_args(argv)

    print(HELP)
    if args.solo:
        play_solo(SoloSession(difficulty=args.difficulty))
        return
    try:
        asyncio.run(play_online(args.url, args.difficulty))
    except (OSError, WebSocketException) as exc:
        print(f"Connection failed: {exc}")


if __name__ == "__main__":
    main()
