"""
Aggregate statistics over logged moves and finished sessions.
Every aggregate over an empty collection returns neutral values instead of raising.
"""

import json
from collections import Counter
from pathlib import Path
from typing import Any

from game import Direction
from session import MoveEvent, SessionSummary


def _pct(part: int | float, whole: int | float) -> float:
    return part / whole * 100 if whole else 0.0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _median(values: list[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def analyze_moves(moves: list[MoveEvent]) -> dict[str, Any]:
    """
    Decision-quality statistics for a list of moves, in play order.
    The early/late split puts the extra move of an odd-length list in the late half.
    """
    n = len(moves)
    bad = sum(1 for m in moves if m.is_bad)
    move_times = [m.move_time_ms for m in moves]

    counts = Counter(m.direction for m in moves)
    preferences = {d.label: counts.get(d.label, 0) for d in Direction}

    mid = n // 2
    early, late = moves[:mid], moves[mid:]

    return {
        "total_moves": n,
        "bad_moves": bad,
        "bad_move_pct": _pct(bad, n),
        "avg_score_loss": _mean([m.best_score - m.chosen_score for m in moves]),
        "avg_variation": _mean([m.variation_score for m in moves]),
        "avg_move_time_ms": _mean(move_times),
        "min_move_time_ms": min(move_times, default=0),
        "max_move_time_ms": max(move_times, default=0),
        "direction_counts": preferences,
        "direction_pct": {label: _pct(c, n) for label, c in preferences.items()},
        "early_bad_move_pct": _pct(sum(1 for m in early if m.is_bad), len(early)),
        "late_bad_move_pct": _pct(sum(1 for m in late if m.is_bad), len(late)),
        "early_avg_move_time_ms": _mean([m.move_time_ms for m in early]),
        "late_avg_move_time_ms": _mean([m.move_time_ms for m in late]),
    }


def analyze_sessions(sessions: list[SessionSummary]) -> dict[str, Any]:
    scores = [s.final_score for s in sessions]
    return {
        "total_sessions": len(sessions),
        "avg_score": _mean(scores),
        "median_score": _median(scores),
        "best_score": max(scores, default=0),
        "highest_tile": max((s.highest_tile for s in sessions), default=0),
        "avg_moves": _mean([s.total_moves for s in sessions]),
        "avg_bad_move_rate": _mean(
            [_pct(s.bad_moves, s.total_moves) for s in sessions]
        ),
        "win_pct": _pct(sum(1 for s in sessions if s.won), len(sessions)),
        "sessions_by_mode": dict(Counter(s.mode.value for s in sessions)),
    }


def load_log(path: str | Path) -> tuple[list[MoveEvent], list[SessionSummary]]:
    """Read a JSONL session log written by SessionLogger."""
    moves = []
    sessions = []
    with open(path) as fp:
        for line_number, line in enumerate(fp, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_number}: invalid JSON ({e})") from e

            event = entry.pop("event", None)
            entry.pop("logged_at", None)
            if event == "move":
                moves.append(MoveEvent.model_validate(entry))
            elif event == "session_end":
                sessions.append(SessionSummary.model_validate(entry))
    return moves, sessions
