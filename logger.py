"""Session logging: the default recorder for game sessions."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import typer
from pydantic import BaseModel

from session import GameMode, MoveEvent, SessionSummary

HIGH_SCORE_LIMIT = 10


class HighScoreEntry(BaseModel):
    player_name: str
    score: int
    highest_tile: int
    game_time: float
    moves: int
    ended_at: datetime

    @classmethod
    def from_summary(cls, summary: SessionSummary) -> "HighScoreEntry":
        return cls(
            player_name=summary.player_name,
            score=summary.final_score,
            highest_tile=summary.highest_tile,
            game_time=summary.elapsed_time,
            moves=summary.total_moves,
            ended_at=summary.ended_at,
        )


class Leaderboard:
    """
    In-memory top scores, one table per game mode.

    Tables are ordered by score, highest first. In countdown mode equal scores
    are ordered by less game time; otherwise the earlier entry stays ahead.
    """

    def __init__(self, limit: int = HIGH_SCORE_LIMIT):
        self.limit = limit
        self.tables: dict[GameMode, list[HighScoreEntry]] = {mode: [] for mode in GameMode}

    def record(self, summary: SessionSummary) -> int | None:
        """Add a finished game. Returns its 1-based rank, or None if it missed the table."""
        entry = HighScoreEntry.from_summary(summary)
        table = self.tables[summary.mode] + [entry]
        if summary.mode is GameMode.COUNTDOWN:
            table.sort(key=lambda e: (-e.score, e.game_time))
        else:
            table.sort(key=lambda e: -e.score)
        self.tables[summary.mode] = table[: self.limit]

        for rank, kept in enumerate(self.tables[summary.mode], start=1):
            if kept is entry:
                return rank
        return None

    def top(self, mode: GameMode) -> list[HighScoreEntry]:
        return list(self.tables[mode])


class SessionLogger:
    """
    A recorder that captures move and session-end events to:
    1. memory (`moves` and `sessions`, for analysis after play)
    2. stdout (formatted as "  key: value") when verbose
    3. JSONL file (one JSON object per line) - only if log_dir is provided
    4. per-mode high-score tables (`leaderboard`)

    Usage:
        with SessionLogger(log_dir="./logs") as recorder:
            session = GameSession(recorder=recorder)
            session.move("Left")

        # output:
        # --- Move 1 (Left) ---
        #   score: 4
        #   is_bad: False
        #   best_score: 5.10e+03
    """

    CONSOLE_FIELDS = ("score", "score_delta", "is_bad", "best_score", "chosen_score")

    def __init__(
        self,
        log_dir: str | Path | None = None,
        experiment_name: str = "session",
        verbose: bool = False,
        leaderboard: Leaderboard | None = None,
    ):
        """
        Initialize the session logger.

        Args:
            log_dir: Directory for JSONL logs. If None, file logging is disabled.
            experiment_name: Base name for log files (e.g., "session" -> "session_20250101_001.jsonl")
            verbose: Whether to echo every event to stdout.
            leaderboard: High-score tables fed by every finished session.
        """
        self.verbose = verbose
        self.moves: list[MoveEvent] = []
        self.sessions: list[SessionSummary] = []
        self.leaderboard = leaderboard if leaderboard is not None else Leaderboard()
        self.log_file = None
        self._file_handle = None

        # set up log directory only if provided
        if log_dir is not None:
            self.log_dir = Path(log_dir)
            self.log_dir.mkdir(parents=True, exist_ok=True)

            self.log_file = self._get_unique_filename(experiment_name)
            self._file_handle = open(self.log_file, "a")
            typer.echo(f"Logging to: {self.log_file}")

    def _get_unique_filename(self, base_name: str) -> Path:
        """Find a unique filename by incrementing suffix if file exists."""
        timestamp = datetime.now().strftime("%Y%m%d")
        suffix = 1

        while True:
            filename = self.log_dir / f"{base_name}_{timestamp}_{suffix:03d}.jsonl"
            if not filename.exists():
                return filename
            suffix += 1

    def _format_value(self, value: Any) -> str:
        """Format a value for console output."""
        if isinstance(value, float):
            if value != 0 and (abs(value) < 0.01 or abs(value) >= 10000):
                return f"{value:.2e}"
            return f"{value:.2f}"
        return str(value)

    def _write(self, event: str, payload: dict[str, Any]) -> None:
        if self._file_handle is None:
            return
        log_entry = {"event": event, "logged_at": datetime.now().isoformat()}
        log_entry.update(payload)

        self._file_handle.write(json.dumps(log_entry) + "\n")
        self._file_handle.flush()

    def on_move_logged(self, event: MoveEvent) -> None:
        self.moves.append(event)

        if self.verbose:
            typer.echo(f"--- Move {event.move_number} ({event.direction}) ---")
            for key in self.CONSOLE_FIELDS:
                typer.echo(f"  {key}: {self._format_value(getattr(event, key))}")

        self._write("move", event.model_dump(mode="json"))

    def on_session_ended(self, summary: SessionSummary) -> None:
        self.sessions.append(summary)
        rank = self.leaderboard.record(summary)

        if self.verbose:
            typer.echo(f"=== Session {summary.session_id} ended ===")
            for key, value in summary.model_dump(mode="json", exclude={"session_id"}).items():
                typer.echo(f"  {key}: {self._format_value(value)}")
            if rank is not None:
                typer.echo(f"  high score rank: {rank} ({summary.mode.value})")

        self._write("session_end", summary.model_dump(mode="json"))

    def moves_for(self, session_id: str) -> list[MoveEvent]:
        return [m for m in self.moves if m.session_id == session_id]

    def print(self, message: str = "") -> None:
        """Print a raw message to stdout only (not to file)."""
        typer.echo(message)

    def close(self) -> None:
        """Close the log file handle."""
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
