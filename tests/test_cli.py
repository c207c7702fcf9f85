import random
from datetime import datetime

from typer.testing import CliRunner

from cli import TerminalRenderer, app, echo_high_scores, format_grid, handle_key
from conftest import FakeClock, RecordingRecorder, board, install_board
from logger import HighScoreEntry
from session import GameMode, GameSession, SessionConfig, SessionState

runner = CliRunner()

PAIR = "2,2,0,0,0,0,0,0,0,0,0,0,0,0,0,0"
TWO_PAIRS = "2,2,0,0,4,4,0,0,0,0,0,0,0,0,0,0"


def test_format_grid():
    text = format_grid(board("2,0,0,0,0,0,0,0,0,0,0,0,0,0,0,2048"))
    lines = text.splitlines()
    assert len(lines) == 9
    assert "2048" in lines[-2]
    assert "." in lines[1]


def test_evaluate_prints_scores():
    result = runner.invoke(app, ["evaluate", PAIR])
    assert result.exit_code == 0, result.output
    for label in ("Up", "Right", "Down", "Left"):
        assert label in result.output
    assert "<- best" in result.output


def test_evaluate_classifies_direction():
    result = runner.invoke(app, ["evaluate", TWO_PAIRS, "--direction", "Left"])
    assert result.exit_code == 0, result.output
    assert "Left: BAD" in result.output

    result = runner.invoke(app, ["evaluate", TWO_PAIRS, "--direction", "2"])
    assert result.exit_code == 0, result.output
    assert "Down: OK" in result.output


def test_evaluate_rejects_bad_input():
    assert runner.invoke(app, ["evaluate", "2,2,0"]).exit_code != 0
    assert runner.invoke(app, ["evaluate", PAIR, "--direction", "diagonal"]).exit_code != 0


def test_simulate_reports_statistics(tmp_path):
    result = runner.invoke(
        app,
        ["simulate", "--games", "2", "--seed", "1", "--max-moves", "40", "--log-dir", str(tmp_path)],
    )
    assert result.exit_code == 0, result.output
    assert "=== Move analysis ===" in result.output
    assert "total_moves:" in result.output
    assert "=== Session analysis ===" in result.output
    assert list(tmp_path.glob("simulate_*.jsonl"))


def test_simulate_rejects_unknown_policy():
    assert runner.invoke(app, ["simulate", "--policy", "clever"]).exit_code != 0


def test_analyze_log(tmp_path):
    runner.invoke(
        app,
        ["simulate", "--games", "1", "--seed", "3", "--max-moves", "10", "--log-dir", str(tmp_path)],
    )
    log_file = next(tmp_path.glob("simulate_*.jsonl"))

    result = runner.invoke(app, ["analyze", str(log_file)])
    assert result.exit_code == 0, result.output
    assert "total_moves: 10" in result.output


def test_analyze_empty_log(tmp_path):
    path = tmp_path / "empty.jsonl"
    path.write_text("")
    result = runner.invoke(app, ["analyze", str(path)])
    assert result.exit_code == 0
    assert "No data found" in result.output


def countdown_session(clock):
    recorder = RecordingRecorder()
    session = GameSession(
        config=SessionConfig(mode=GameMode.COUNTDOWN, countdown_seconds=30),
        recorder=recorder,
        rng=random.Random(5),
        clock=clock,
    )
    install_board(session, PAIR)
    return session, recorder


def test_key_applies_move_while_time_remains():
    clock = FakeClock()
    session, recorder = countdown_session(clock)
    renderer = TerminalRenderer(clear=False)

    clock.advance(10)
    assert handle_key(session, renderer, "a")
    assert len(recorder.moves) == 1
    assert "Left" in renderer.message


def test_key_read_after_countdown_ends_is_not_applied():
    clock = FakeClock()
    session, recorder = countdown_session(clock)
    renderer = TerminalRenderer(clear=False)

    # the timer runs out while the terminal is waiting for a key
    clock.advance(31)
    assert handle_key(session, renderer, "a")

    assert recorder.moves == []
    assert session.state is SessionState.LOST
    assert session.score == 4
    assert len(recorder.sessions) == 1


def test_quit_key():
    session, _ = countdown_session(FakeClock())
    assert not handle_key(session, TerminalRenderer(clear=False), "q")


def test_echo_high_scores(capsys):
    entry = HighScoreEntry(
        player_name="ada",
        score=1200,
        highest_tile=128,
        game_time=75.4,
        moves=90,
        ended_at=datetime(2025, 1, 1),
    )
    echo_high_scores(GameMode.COUNTDOWN, [entry])
    echo_high_scores(GameMode.NORMAL, [entry])
    echo_high_scores(GameMode.COUNTUP, [])

    out = capsys.readouterr().out
    assert "=== High scores (countdown) ===" in out
    assert "1. ada - 1200 points (Highest: 128) - Time: 1:15" in out
    assert "1. ada - 1200 points (Highest: 128)\n" in out
    assert "No scores yet" in out
