"""
Game session orchestration.

A GameSession owns one live game, drives the resolver and the move-quality
classifier for every input, and reports to two external collaborators:
a recorder (move and session-end events) and a renderer (board snapshots).
Collaborator failures are logged and never reach the game state.
"""

import logging
import random
import string
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Protocol

from pydantic import BaseModel, Field

from game import GRID_SIZE, WIN_VALUE, Board, Direction, Game2048, highest_tile
from heuristics import EvaluatorConfig, MoveScores, classify_move

logger = logging.getLogger(__name__)


class GameMode(Enum):
    NORMAL = "normal"
    COUNTUP = "countup"
    COUNTDOWN = "countdown"


class SessionState(Enum):
    SETUP = "setup"
    PLAYING = "playing"
    WON = "won"
    LOST = "lost"


class SessionConfig(BaseModel):
    size: int = Field(GRID_SIZE, ge=2)
    start_tiles: int = Field(2, ge=0)
    win_value: int = WIN_VALUE
    four_probability: float = Field(0.1, ge=0.0, le=1.0)
    mode: GameMode = GameMode.NORMAL
    countdown_seconds: float = Field(120.0, gt=0)
    player_name: str = "Anonymous"
    evaluator: EvaluatorConfig = Field(default_factory=EvaluatorConfig)


class MoveEvent(BaseModel):
    session_id: str
    move_number: int
    direction: str
    direction_code: int
    score: int
    score_delta: int
    board_before: str
    board_after: str
    tiles_added: int
    tiles_removed: int
    empty_cells_after: int
    highest_tile_after: int
    is_bad: bool
    move_scores: MoveScores
    best_score: float
    chosen_score: float
    variation_score: float
    move_time_ms: int
    timestamp: datetime = Field(default_factory=datetime.now)


class SessionSummary(BaseModel):
    session_id: str
    player_name: str
    mode: GameMode
    final_score: int
    highest_tile: int
    total_moves: int
    bad_moves: int
    average_move_time_ms: float
    elapsed_time: float
    won: bool
    ended_at: datetime = Field(default_factory=datetime.now)


class RenderStatus(BaseModel):
    score: int
    over: bool
    won: bool
    terminated: bool
    best_score: int


class Recorder(Protocol):
    def on_move_logged(self, event: MoveEvent) -> None: ...

    def on_session_ended(self, summary: SessionSummary) -> None: ...


class Renderer(Protocol):
    def render(self, grid_snapshot: Board, status: RenderStatus) -> None: ...


def new_session_id() -> str:
    """Timestamp plus a short random suffix, e.g. 20250101_120000_k3f9a."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=5))
    return f"{datetime.now():%Y%m%d_%H%M%S}_{suffix}"


class GameClock:
    """
    Wall clock for one game. The periodic tick that drives a countdown lives
    outside the session; this only tracks start/stop and elapsed time.
    """

    def __init__(
        self,
        mode: GameMode = GameMode.NORMAL,
        countdown_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.mode = mode
        self.countdown_seconds = countdown_seconds
        self._clock = clock
        self.started_at: float | None = None
        self.stopped_at: float | None = None

    def now(self) -> float:
        return self._clock()

    @property
    def running(self) -> bool:
        return self.started_at is not None and self.stopped_at is None

    def start(self) -> None:
        self.started_at = self.now()
        self.stopped_at = None

    def stop(self) -> float:
        if self.running:
            self.stopped_at = self.now()
        return self.elapsed()

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.stopped_at if self.stopped_at is not None else self.now()
        elapsed = end - self.started_at
        if self.mode is GameMode.COUNTDOWN:
            return min(elapsed, self.countdown_seconds)
        return elapsed

    def remaining(self) -> float | None:
        if self.mode is not GameMode.COUNTDOWN:
            return None
        return max(0.0, self.countdown_seconds - self.elapsed())


class GameSession:
    def __init__(
        self,
        config: SessionConfig | None = None,
        recorder: Recorder | None = None,
        renderer: Renderer | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or SessionConfig()
        self.recorder = recorder
        self.renderer = renderer
        self.clock = GameClock(self.config.mode, self.config.countdown_seconds, clock)
        self.game = Game2048(
            size=self.config.size,
            rng=rng,
            win_value=self.config.win_value,
            four_probability=self.config.four_probability,
        )
        self.best_score = 0
        self.setup()

    # ----------------------------------------
    # lifecycle

    def setup(self) -> None:
        self.state = SessionState.SETUP
        self.session_id = new_session_id()
        self.game.reset()
        self.keep_playing_after_win = False
        self.move_count = 0
        self.bad_move_count = 0
        self.total_move_time_ms = 0
        self._ended = False

        self.game.add_start_tiles(self.config.start_tiles)
        self.clock.start()
        self.last_move_at = self.clock.now()
        self.state = SessionState.PLAYING
        self._render()

    def restart(self) -> None:
        self.setup()

    def keep_playing(self) -> bool:
        """Continue past a win without resetting the grid."""
        if self.state is not SessionState.WON:
            return False
        self.keep_playing_after_win = True
        self.state = SessionState.PLAYING
        self._render()
        return True

    def is_terminated(self) -> bool:
        return self.game.over or (self.game.won and not self.keep_playing_after_win)

    @property
    def score(self) -> int:
        return self.game.score

    # ----------------------------------------
    # input

    def move(self, direction: Any) -> MoveEvent | None:
        """
        Resolve one directional input.
        Returns the logged event, or None when the input is malformed, the game
        is not being played, or the move would not change the board.
        """
        direction = Direction.parse(direction)
        if direction is None or self.state is not SessionState.PLAYING:
            return None

        board_before = self.game.board()
        move_started = self.clock.now()
        outcome = self.game.move(direction)
        if not outcome.moved:
            return None

        quality = classify_move(board_before, direction, self.config.evaluator)
        move_time_ms = int(round((move_started - self.last_move_at) * 1000))
        self.last_move_at = move_started
        self.move_count += 1
        self.total_move_time_ms += move_time_ms
        if quality.is_bad:
            self.bad_move_count += 1

        board_after = self.game.board()
        event = MoveEvent(
            session_id=self.session_id,
            move_number=self.move_count,
            direction=direction.label,
            direction_code=int(direction),
            score=self.game.score,
            score_delta=outcome.score_delta,
            board_before=outcome.board_before,
            board_after=self.game.serialize(),
            tiles_added=outcome.tiles_added,
            tiles_removed=outcome.tiles_removed,
            empty_cells_after=sum(row.count(0) for row in board_after),
            highest_tile_after=highest_tile(board_after),
            is_bad=quality.is_bad,
            move_scores=quality.scores,
            best_score=quality.best_score,
            chosen_score=quality.chosen_score,
            variation_score=quality.variation_score,
            move_time_ms=move_time_ms,
        )
        if self.recorder is not None:
            self._deliver(self.recorder.on_move_logged, event)

        self._update_state()
        self._render()
        return event

    def time_expired(self) -> None:
        """
        Countdown expiry. Scores the board by its tile sum and ends the game.
        Does nothing outside a countdown game that is still being played.
        """
        if self.config.mode is not GameMode.COUNTDOWN:
            return
        if self.state is not SessionState.PLAYING:
            return

        self.game.score = self.game.tile_sum()
        self.game.over = True
        self._update_state()
        self._render()

    # ----------------------------------------
    # internals

    def _update_state(self) -> None:
        if self.game.over:
            self.state = SessionState.LOST
        elif self.game.won and not self.keep_playing_after_win:
            self.state = SessionState.WON

        if (self.game.over or self.game.won) and not self._ended:
            self._end_session()

    def _end_session(self) -> None:
        self._ended = True
        elapsed = self.clock.stop()
        summary = SessionSummary(
            session_id=self.session_id,
            player_name=self.config.player_name,
            mode=self.config.mode,
            final_score=self.game.score,
            highest_tile=self.game.highest_tile(),
            total_moves=self.move_count,
            bad_moves=self.bad_move_count,
            average_move_time_ms=(
                self.total_move_time_ms / self.move_count if self.move_count else 0.0
            ),
            elapsed_time=elapsed,
            won=self.game.won,
        )
        if self.recorder is not None:
            self._deliver(self.recorder.on_session_ended, summary)

    def status(self) -> RenderStatus:
        return RenderStatus(
            score=self.game.score,
            over=self.game.over,
            won=self.game.won,
            terminated=self.is_terminated(),
            best_score=self.best_score,
        )

    def _render(self) -> None:
        self.best_score = max(self.best_score, self.game.score)
        if self.renderer is None:
            return
        self._deliver(self.renderer.render, self.game.board(), self.status())

    @staticmethod
    def _deliver(callback: Callable[..., None], *payload: Any) -> None:
        try:
            callback(*payload)
        except Exception:
            logger.exception("collaborator %r failed; continuing the game", callback)
