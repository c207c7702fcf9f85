"""
CLI for the 2048 move-quality engine.
Run with: python cli.py [command]
"""

import random
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from tqdm import tqdm

from analysis import analyze_moves, analyze_sessions, load_log
from game import Board, Direction, Game2048, board_moves_available, parse_board
from heuristics import EvaluatorConfig, HeuristicWeights, classify_move, score_moves
from logger import HighScoreEntry, Leaderboard, SessionLogger
from session import GameMode, GameSession, RenderStatus, SessionConfig, SessionState

app = typer.Typer(help="Play 2048 and grade every move against a one-ply lookahead")

KEY_BINDINGS = {
    "\x1b[A": Direction.UP,
    "w": Direction.UP,
    "\x1b[C": Direction.RIGHT,
    "d": Direction.RIGHT,
    "\x1b[B": Direction.DOWN,
    "s": Direction.DOWN,
    "\x1b[D": Direction.LEFT,
    "a": Direction.LEFT,
}


def format_grid(grid: Board, indent: str = "  ") -> str:
    """
    Format a 2048 board for pretty printing.
    Board contains tile values (0 = empty).
    """
    size = len(grid)
    lines = []
    max_val = max(cell for row in grid for cell in row)
    cell_width = max(4, len(str(max_val)) + 1)
    rule = "─" * (cell_width * size + size - 1)

    lines.append(indent + "┌" + rule + "┐")
    for i, row in enumerate(grid):
        cells = [
            (str(cell) if cell else ".").center(cell_width) for cell in row
        ]
        lines.append(indent + "│" + "│".join(cells) + "│")
        if i < size - 1:
            lines.append(indent + "├" + rule + "┤")
    lines.append(indent + "└" + rule + "┘")

    return "\n".join(lines)


def format_value(value: Any) -> str:
    if isinstance(value, float):
        if value != 0 and (abs(value) < 0.01 or abs(value) >= 10000):
            return f"{value:.2e}"
        return f"{value:.2f}"
    return str(value)


def echo_metrics(header: str, metrics: dict[str, Any]) -> None:
    typer.echo(header)
    for key, value in metrics.items():
        if isinstance(value, dict):
            inner = ", ".join(f"{k}={format_value(v)}" for k, v in value.items())
            typer.echo(f"  {key}: {inner}")
        else:
            typer.echo(f"  {key}: {format_value(value)}")


def echo_high_scores(mode: GameMode, entries: list[HighScoreEntry]) -> None:
    typer.echo(f"=== High scores ({mode.value}) ===")
    if not entries:
        typer.echo("  No scores yet")
        return
    for rank, entry in enumerate(entries, start=1):
        line = f"  {rank}. {entry.player_name} - {entry.score} points (Highest: {entry.highest_tile})"
        if mode is not GameMode.NORMAL:
            minutes, seconds = divmod(int(entry.game_time), 60)
            line += f" - Time: {minutes}:{seconds:02d}"
        typer.echo(line)


class TerminalRenderer:
    """Redraws the board in the terminal after every accepted move."""

    def __init__(self, clear: bool = True):
        self.clear = clear
        self.message = ""

    def render(self, grid_snapshot: Board, status: RenderStatus) -> None:
        if self.clear:
            typer.echo("\033[2J\033[H", nl=False)
        typer.echo("=" * 30)
        typer.echo("         2048 GAME")
        typer.echo("=" * 30)
        typer.echo(f"Score: {status.score}    Best: {status.best_score}")
        typer.echo(format_grid(grid_snapshot))
        if status.over:
            typer.echo("GAME OVER! Press R to restart or Q to quit.")
        elif status.won and status.terminated:
            typer.echo("You reached 2048! Press K to keep playing, R to restart.")
        if self.message:
            typer.echo(self.message)
        typer.echo("\nControls: W/↑ Up  S/↓ Down  A/← Left  D/→ Right  R Restart  Q Quit")


def get_key() -> str:
    """Get a single keypress from the terminal."""
    import termios
    import tty

    fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        ch = sys.stdin.read(1)
        # arrow keys send 3 characters: ESC [ A/B/C/D
        if ch == "\x1b":
            ch += sys.stdin.read(2)
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)
    return ch


def _parse_direction(value: Optional[str]) -> Optional[Direction]:
    if value is None:
        return None
    direction = Direction.parse(int(value) if value.isdigit() else value)
    if direction is None:
        raise typer.BadParameter(f"unknown direction {value!r}; use Up/Right/Down/Left or 0-3")
    return direction


def expire_if_due(session: GameSession) -> bool:
    """End a countdown game whose time has run out. Returns True once expired."""
    remaining = session.clock.remaining()
    if remaining is not None and remaining <= 0:
        session.time_expired()
        return True
    return False


def handle_key(session: GameSession, renderer: TerminalRenderer, key: str) -> bool:
    """Apply one keypress to the session. Returns False when the player quits."""
    # a blocking key read can outlast the countdown
    expire_if_due(session)
    lowered = key.lower()

    if lowered == "q":
        return False
    if lowered == "r":
        renderer.message = "Game restarted!"
        session.restart()
        return True
    if lowered == "k":
        renderer.message = ""
        session.keep_playing()
        return True

    direction = KEY_BINDINGS.get(key) or KEY_BINDINGS.get(lowered)
    if direction is None:
        return True

    event = session.move(direction)
    if event is None and session.state is SessionState.PLAYING:
        renderer.message = f"Can't move {direction.label}! Try another direction."
        renderer.render(session.game.board(), session.status())
    elif event is not None:
        verdict = "bad move" if event.is_bad else "good move"
        renderer.message = (
            f"{event.direction}: {verdict} "
            f"(chosen {format_value(event.chosen_score)}, best {format_value(event.best_score)})"
        )
        renderer.render(session.game.board(), session.status())
    return True


@app.command()
def play(
    mode: GameMode = typer.Option(GameMode.NORMAL, "--mode", "-m", help="Game mode"),
    player: str = typer.Option("Anonymous", "--player", "-p", help="Player name"),
    log_dir: Optional[Path] = typer.Option(
        None, "--log-dir", help="Directory for JSONL session logs"
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for tile spawns"),
    threshold: float = typer.Option(
        0.10, "--threshold", help="Relative score loss that marks a move as bad"
    ),
):
    """Play interactively in the terminal; every move is graded as it is made."""
    config = SessionConfig(
        mode=mode,
        player_name=player,
        evaluator=EvaluatorConfig(bad_move_threshold=threshold),
    )
    renderer = TerminalRenderer()

    with SessionLogger(log_dir=log_dir) as recorder:
        session = GameSession(
            config=config,
            recorder=recorder,
            renderer=renderer,
            rng=random.Random(seed),
        )

        while True:
            # the terminal loop has no periodic tick; expiry is checked around each keypress
            expire_if_due(session)
            if not handle_key(session, renderer, get_key()):
                break

        moves = recorder.moves
        high_scores = recorder.leaderboard.top(mode)

    typer.echo("\nThanks for playing!")
    if moves:
        echo_metrics("=== Move analysis ===", analyze_moves(moves))
    echo_high_scores(mode, high_scores)


@app.command()
def evaluate(
    board: str = typer.Argument(..., help="16 comma separated values, row by row, 0 for empty"),
    direction: Optional[str] = typer.Option(
        None, "--direction", "-d", help="Direction to classify (Up/Right/Down/Left or 0-3)"
    ),
    threshold: float = typer.Option(0.10, "--threshold", help="Bad-move threshold"),
):
    """Score the four moves from a board and optionally grade one of them."""
    try:
        grid = parse_board(board)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="BOARD") from e
    chosen = _parse_direction(direction)

    typer.echo(format_grid(grid))
    scores = score_moves(grid, HeuristicWeights())
    for d in Direction:
        marker = " <- best" if d == scores.best_direction() and scores.best() > 0 else ""
        typer.echo(f"  {d.label:>5}: {format_value(scores.for_direction(d))}{marker}")

    if chosen is not None:
        quality = classify_move(grid, chosen, EvaluatorConfig(bad_move_threshold=threshold))
        verdict = "BAD" if quality.is_bad else "OK"
        typer.echo(f"{chosen.label}: {verdict}")


def _pick_direction(session: GameSession, policy: str, rng: random.Random) -> Direction:
    board = session.game.board()
    movable = [d for d in Direction if not Game2048.simulate_move(board, d).unchanged]
    if policy == "random":
        return rng.choice(movable)
    scores = score_moves(board, session.config.evaluator.weights)
    return max(movable, key=scores.for_direction)


@app.command()
def simulate(
    games: int = typer.Option(10, "--games", "-g", help="Number of games to play"),
    policy: str = typer.Option("greedy", "--policy", help="greedy or random"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed"),
    max_moves: int = typer.Option(5000, "--max-moves", help="Move cap per game"),
    log_dir: Optional[Path] = typer.Option(
        None, "--log-dir", help="Directory for JSONL session logs"
    ),
):
    """Self-play games with a simple policy and report move-quality statistics."""
    if policy not in ("greedy", "random"):
        raise typer.BadParameter("policy must be 'greedy' or 'random'", param_hint="--policy")

    rng = random.Random(seed)
    with SessionLogger(log_dir=log_dir, experiment_name="simulate") as recorder:
        session = GameSession(recorder=recorder, rng=random.Random(rng.random()))
        for game_index in tqdm(range(games), desc="games"):
            if game_index > 0:
                session.restart()

            for _ in range(max_moves):
                if session.state is SessionState.WON:
                    session.keep_playing()
                if session.state is not SessionState.PLAYING:
                    break
                if not board_moves_available(session.game.board()):
                    break
                session.move(_pick_direction(session, policy, rng))

        echo_metrics("=== Move analysis ===", analyze_moves(recorder.moves))
        echo_metrics("=== Session analysis ===", analyze_sessions(recorder.sessions))
        echo_high_scores(GameMode.NORMAL, recorder.leaderboard.top(GameMode.NORMAL))


@app.command()
def analyze(
    log_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSONL session log"),
):
    """Summarize a session log written by `play` or `simulate`."""
    try:
        moves, sessions = load_log(log_file)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    if not moves and not sessions:
        typer.echo(f"No data found in {log_file}")
        return

    echo_metrics("=== Move analysis ===", analyze_moves(moves))
    echo_metrics("=== Session analysis ===", analyze_sessions(sessions))

    leaderboard = Leaderboard()
    for summary in sessions:
        leaderboard.record(summary)
    for mode in GameMode:
        if leaderboard.top(mode):
            echo_high_scores(mode, leaderboard.top(mode))


if __name__ == "__main__":
    app()
