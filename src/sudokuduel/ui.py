"""FastAPI app: the multiplayer WebSocket relay, puzzle/room endpoints and the browser page."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set

from fastapi import (
    APIRouter,
    FastAPI,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.responses import HTMLResponse

from .config import Settings
from .coordinator import Delivery, MatchCoordinator
from .puzzle import DIFFICULTY_LEVELS, PuzzleGenerationError, generate_puzzle

logger = logging.getLogger(__name__)

router = APIRouter()


class RelayState:
    """Process-wide multiplayer state shared by every connection of one app."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        rematch_in = settings.rematch_delay_sec or None
        self.coordinator = MatchCoordinator(
            max_mistakes=settings.max_mistakes,
            default_difficulty=settings.default_difficulty,
            strict_moves=settings.strict_moves,
            generation_attempts=settings.generation_attempts,
            rematch_in=rematch_in,
        )
        # Guards the coordinator only; sockets are written by their own writer task.
        self.lock = asyncio.Lock()
        self._outboxes: Dict[WebSocket, asyncio.Queue] = {}
        self._rematches: Set[asyncio.Task] = set()

    def open_outbox(self, websocket: WebSocket) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._outboxes[websocket] = queue
        return queue

    def close_outbox(self, websocket: WebSocket) -> None:
        self._outboxes.pop(websocket, None)

    def deliver(self, deliveries: List[Delivery]) -> None:
        """Queue events in coordinator order; called with ``lock`` held, never blocks."""

        for connection, event in deliveries:
            queue = self._outboxes.get(connection)
            if queue is not None:
                queue.put_nowait(event)
        self._maybe_schedule_rematch(deliveries)

    @staticmethod
    async def drain(websocket: WebSocket, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                await websocket.send_json(event)
            except (RuntimeError, WebSocketDisconnect):
                # The socket is closing; its handler cleans up.
                return

    def _maybe_schedule_rematch(self, deliveries: List[Delivery]) -> None:
        delay = self.settings.rematch_delay_sec
        if delay <= 0:
            return
        room_ids = set()
        for connection, event in deliveries:
            if event.get("type") == "gameover":
                slot = self.coordinator.slot_for(connection)
                if slot is not None:
                    room_ids.add(slot.room_id)
        for room_id in room_ids:
            task = asyncio.create_task(self._rematch_later(room_id, delay))
            self._rematches.add(task)
            task.add_done_callback(self._rematches.discard)

    async def _rematch_later(self, room_id: int, delay: float) -> None:
        await asyncio.sleep(delay)
        async with self.lock:
            room = self.coordinator.get_room(room_id)
            if room is None or not room.is_full() or room.match is not None:
                return
            logger.info("Starting rematch in room %s", room_id)
            self.deliver(self.coordinator.start_match(room_id))


def _relay(request: Request) -> RelayState:
    return request.app.state.relay


def _ensure_supported_difficulty(value: str) -> str:
    if value not in DIFFICULTY_LEVELS:
        raise HTTPException(
            status_code=422,
            detail=(
                f"Unsupported difficulty {value!r}. "
                f"Choose one of {', '.join(DIFFICULTY_LEVELS)}."
            ),
        )
    return value


@router.get("/api/difficulties")
def list_difficulties(request: Request) -> Dict[str, object]:
    return {
        "difficulties": [
            {"name": name, "cellsRemoved": count}
            for name, count in DIFFICULTY_LEVELS.items()
        ],
        "default": _relay(request).settings.default_difficulty,
    }


@router.get("/api/puzzle")
def new_puzzle(
    request: Request, difficulty: Optional[str] = Query(default=None)
) -> Dict[str, object]:
    settings = _relay(request).settings
    name = _ensure_supported_difficulty(difficulty or settings.default_difficulty)
    try:
        puzzle = generate_puzzle(name, attempts=settings.generation_attempts)
    except PuzzleGenerationError as exc:
        logger.exception("Puzzle generation failed")
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"grid": puzzle.grid, "solution": puzzle.solution, "difficulty": puzzle.difficulty}


@router.get("/api/rooms")
async def list_rooms(request: Request) -> Dict[str, List[Dict[str, object]]]:
    relay = _relay(request)
    async with relay.lock:
        return {"rooms": relay.coordinator.snapshot()}


@router.get("/api/room/{room_id}")
async def inspect_room(request: Request, room_id: int) -> Dict[str, object]:
    relay = _relay(request)
    async with relay.lock:
        room = relay.coordinator.get_room(room_id)
        if room is None:
            raise HTTPException(status_code=404, detail="Room not found")
        return room.to_dict()


@router.websocket("/ws")
async def play(websocket: WebSocket) -> None:
    relay: RelayState = websocket.app.state.relay
    await websocket.accept()
    writer = asyncio.create_task(relay.drain(websocket, relay.open_outbox(websocket)))

    difficulty = websocket.query_params.get("difficulty")
    if difficulty not in DIFFICULTY_LEVELS:
        difficulty = None

    async with relay.lock:
        relay.deliver(relay.coordinator.connect(websocket, difficulty))

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text")
            if raw is None:
                raw = frame.get("bytes")
            if raw is None:
                continue
            async with relay.lock:
                relay.deliver(relay.coordinator.handle_raw(websocket, raw))
    except WebSocketDisconnect:
        pass
    finally:
        async with relay.lock:
            relay.close_outbox(websocket)
            relay.deliver(relay.coordinator.disconnect(websocket))
        writer.cancel()


@router.get("/", response_class=HTMLResponse)
def index() -> str:
    return HTML_PAGE


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    application = FastAPI(
        title="Sudoku Duel", description="Solo and head-to-head Sudoku in the browser"
    )
    application.state.relay = RelayState(settings)
    application.include_router(router)
    return application


app = create_app()


HTML_PAGE = """<!DOCTYPE html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <title>Sudoku Duel</title>
    <style>
      :root { --player1-color: #2196f3; --player2-color: #43a047; }
      body { font-family: system-ui, sans-serif; display: flex; flex-direction: column;
             align-items: center; margin: 1.5rem; background: #f6f7fb; }
      .controls, .status { display: flex; gap: 1rem; margin: .5rem 0; align-items: center; }
      #board { display: grid; grid-template-columns: repeat(9, 2.4rem); border: 2px solid #222; }
      .cell { width: 2.4rem; height: 2.4rem; text-align: center; font-size: 1.2rem;
              border: 1px solid #bbb; box-sizing: border-box; }
      .cell:nth-child(9n+3), .cell:nth-child(9n+6) { border-right: 2px solid #222; }
      .row-edge { border-bottom: 2px solid #222; }
      .prefilled { font-weight: 700; background: #eceff4; }
      .correct { color: #2e7d32; }
      .wrong { color: #c62828; background: #ffebee; }
      .player1 { color: var(--player1-color); }
      .player2 { color: var(--player2-color); }
      #notification-box { min-height: 1.5rem; transition: opacity .5s; }
      #chat-log { width: 22rem; height: 6rem; overflow-y: auto; background: #fff;
                  border: 1px solid #ccc; font-size: .9rem; padding: .25rem; }
    </style>
  </head>
  <body>
    <h1>Sudoku Duel</h1>
    <div class=\"controls\">
      <select id=\"mode-select\">
        <option value=\"single\">Single player</option>
        <option value=\"multiplayer\">Multiplayer</option>
      </select>
      <select id=\"difficulty-select\"></select>
      <button id=\"new-game\">New game</button>
    </div>
    <div class=\"status\">
      <span id=\"player-identity\"></span>
      <span id=\"player-turn\"></span>
      <span id=\"mistakes\"></span>
      <span id=\"timer\"></span>
    </div>
    <div id=\"notification-box\"></div>
    <div id=\"board\"></div>
    <div id=\"chat\" hidden>
      <div id=\"chat-log\"></div>
      <input id=\"chat-input\" placeholder=\"Say something...\" />
    </div>
    <script>
      const MAX_MISTAKES = 3;
      const state = {
        mode: 'single', grid: [], solution: [], marks: {}, mistakes: [0, 0],
        soloMistakes: 0, currentPlayer: 1, playerNum: null, active: false,
        startTime: Date.now(), ws: null, awaitingEcho: false,
      };
      const board = document.getElementById('board');
      const key = (r, c) => `${r},${c}`;
      const resolved = (m) => ['prefilled', 'correct', 'player1', 'player2'].includes(m);

      function notify(message) {
        const box = document.getElementById('notification-box');
        box.textContent = message;
        box.style.opacity = 0.95;
        clearTimeout(notify.timer);
        notify.timer = setTimeout(() => { box.style.opacity = 0.7; }, 5000);
      }

      function load(grid, solution) {
        state.grid = grid; state.solution = solution; state.marks = {};
        grid.forEach((row, r) => row.forEach((v, c) => { if (v) state.marks[key(r, c)] = 'prefilled'; }));
        state.startTime = Date.now();
        render();
      }

      function myTurn() {
        return state.mode === 'single' || (state.active && state.playerNum === state.currentPlayer);
      }

      function render() {
        board.innerHTML = '';
        for (let r = 0; r < 9; r++) {
          for (let c = 0; c < 9; c++) {
            const input = document.createElement('input');
            const mark = state.marks[key(r, c)];
            input.className = 'cell' + (mark ? ' ' + mark : '') + (r === 2 || r === 5 ? ' row-edge' : '');
            input.value = state.grid[r][c] || '';
            input.maxLength = 1;
            input.disabled = resolved(mark) || !myTurn();
            input.addEventListener('input', (e) => onInput(r, c, e.target));
            input.addEventListener('focus', () => {
              if (state.marks[key(r, c)] === 'wrong') {
                delete state.marks[key(r, c)]; state.grid[r][c] = 0; render();
              }
            });
            board.appendChild(input);
          }
        }
        const mistakes = document.getElementById('mistakes');
        const turn = document.getElementById('player-turn');
        if (state.mode === 'single') {
          mistakes.textContent = `Mistakes: ${state.soloMistakes}/${MAX_MISTAKES}`;
          turn.textContent = '';
        } else {
          mistakes.textContent = `Player 1: ${state.mistakes[0]}/${MAX_MISTAKES} | Player 2: ${state.mistakes[1]}/${MAX_MISTAKES}`;
          turn.textContent = state.active ? `Player ${state.currentPlayer}'s Turn` : '';
          turn.style.color = state.currentPlayer === 1 ? 'var(--player1-color)' : 'var(--player2-color)';
        }
      }

      function onInput(r, c, input) {
        const value = parseInt(input.value.slice(-1), 10);
        if (!(value >= 1 && value <= 9)) { input.value = ''; return; }
        if (!myTurn()) { notify("It's not your turn!"); input.value = ''; return; }
        const correct = value === state.solution[r][c];
        if (state.mode === 'multiplayer') {
          if (state.awaitingEcho) {
            notify('Waiting for the server to confirm your last move.'); input.value = ''; return;
          }
          state.awaitingEcho = true;
          const player = state.playerNum;
          state.ws.send(JSON.stringify(correct
            ? { type: 'move', move: { row: r, col: c, value, player } }
            : { type: 'mistake', player, cell: { row: r, col: c }, wrongValue: value }));
          return;
        }
        state.grid[r][c] = value;
        if (correct) {
          state.marks[key(r, c)] = 'correct';
          if (state.grid.every((row) => row.every((v) => v))) {
            notify(`Congratulations! Puzzle solved in ${elapsed()}!`);
            return newGame();
          }
        } else {
          state.marks[key(r, c)] = 'wrong';
          state.soloMistakes += 1;
          if (state.soloMistakes >= MAX_MISTAKES) {
            notify(`${MAX_MISTAKES} mistakes! Game over`);
            return newGame();
          }
        }
        render();
      }

      function elapsed() {
        const s = Math.floor((Date.now() - state.startTime) / 1000);
        return `${String(Math.floor(s / 60)).padStart(2, '0')}:${String(s % 60).padStart(2, '0')}`;
      }

      async function newGame() {
        const difficulty = document.getElementById('difficulty-select').value;
        const res = await fetch(`/api/puzzle?difficulty=${encodeURIComponent(difficulty)}`);
        const data = await res.json();
        state.soloMistakes = 0;
        load(data.grid, data.solution);
      }

      function connect() {
        const difficulty = document.getElementById('difficulty-select').value;
        const protocol = location.protocol === 'https:' ? 'wss' : 'ws';
        state.ws = new WebSocket(`${protocol}://${location.host}/ws?difficulty=${encodeURIComponent(difficulty)}`);
        state.ws.onmessage = (event) => {
          const data = JSON.parse(event.data);
          if (data.type !== 'chat') state.awaitingEcho = false;
          if (data.type === 'init') {
            state.mistakes = data.mistakes; state.currentPlayer = data.currentPlayer;
            state.playerNum = data.playerNum; state.active = true;
            const label = document.getElementById('player-identity');
            label.textContent = `You are Player ${data.playerNum}`;
            label.style.color = data.playerNum === 1 ? 'var(--player1-color)' : 'var(--player2-color)';
            load(data.grid, data.solution);
            notify(`Both players are connected! Game starts now. You are Player ${data.playerNum}.`);
          } else if (data.type === 'waiting') {
            state.active = false; render(); notify(data.message);
          } else if (data.type === 'move') {
            const { row, col, value, player } = data.move;
            state.grid[row][col] = value;
            state.marks[key(row, col)] = player === 1 ? 'player1' : 'player2';
            state.currentPlayer = data.currentPlayer; render();
            if (myTurn()) notify('It is now your turn!');
          } else if (data.type === 'mistake') {
            state.mistakes = data.mistakes; state.currentPlayer = data.currentPlayer;
            const { row, col } = data.cell;
            if (!resolved(state.marks[key(row, col)])) {
              state.grid[row][col] = data.wrongValue; state.marks[key(row, col)] = 'wrong';
            }
            render();
            notify(`Player ${data.player} made a mistake at (${row + 1}, ${col + 1}).`);
          } else if (data.type === 'gameover') {
            state.active = false; state.mistakes = data.mistakes || state.mistakes; render();
            const [a, b] = state.mistakes;
            let msg = a === b ? "Game over! It's a draw!" : `Game over! Player ${a < b ? 1 : 2} wins!`;
            if (data.rematchIn) msg += ` New game starting in ${data.rematchIn} seconds...`;
            notify(msg);
          } else if (data.type === 'chat') {
            const log = document.getElementById('chat-log');
            const line = document.createElement('div');
            line.textContent = `Player ${data.player}: ${data.message}`;
            log.appendChild(line); log.scrollTop = log.scrollHeight;
          } else if (data.type === 'error') {
            notify(data.message);
          }
        };
      }

      function changeMode(mode) {
        state.mode = mode;
        document.getElementById('difficulty-select').disabled = mode === 'multiplayer';
        document.getElementById('chat').hidden = mode !== 'multiplayer';
        document.getElementById('player-identity').textContent = '';
        if (state.ws) { state.ws.close(); state.ws = null; }
        state.playerNum = null; state.active = false; state.mistakes = [0, 0]; state.awaitingEcho = false;
        if (mode === 'multiplayer') { connect(); } else { newGame(); }
      }

      async function setup() {
        const res = await fetch('/api/difficulties');
        const data = await res.json();
        const select = document.getElementById('difficulty-select');
        data.difficulties.forEach(({ name }) => select.add(new Option(name, name, false, name === data.default)));
        select.addEventListener('change', () => { if (state.mode === 'single') newGame(); });
        document.getElementById('mode-select').addEventListener('change', (e) => changeMode(e.target.value));
        document.getElementById('new-game').addEventListener('click', () => { if (state.mode === 'single') newGame(); });
        document.getElementById('chat-input').addEventListener('keydown', (e) => {
          if (e.key === 'Enter' && state.ws && e.target.value) {
            state.ws.send(JSON.stringify({ type: 'chat', message: e.target.value, player: state.playerNum }));
            e.target.value = '';
          }
        });
        setInterval(() => {
          if (state.mode === 'single') document.getElementById('timer').textContent = `Time: ${elapsed()}`;
        }, 1000);
        newGame();
      }

      document.addEventListener('DOMContentLoaded', setup);
    </script>
  </body>
</html>
"""
