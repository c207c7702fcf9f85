import random

import pytest

from game import Board, Grid, parse_board


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingRecorder:
    def __init__(self):
        self.moves = []
        self.sessions = []

    def on_move_logged(self, event):
        self.moves.append(event)

    def on_session_ended(self, summary):
        self.sessions.append(summary)


class RecordingRenderer:
    def __init__(self):
        self.calls = []

    def render(self, grid_snapshot, status):
        self.calls.append((grid_snapshot, status))


def board(text: str) -> Board:
    return parse_board(text)


def random_board(rng: random.Random, fill: float = 0.6, max_exp: int = 6) -> Board:
    return [
        [2 ** rng.randint(1, max_exp) if rng.random() < fill else 0 for _ in range(4)]
        for _ in range(4)
    ]


def install_board(session, text: str) -> None:
    session.game.grid = Grid.from_board(parse_board(text))


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> RecordingRecorder:
    return RecordingRecorder()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def random_boards(rng) -> list[Board]:
    return [random_board(rng) for _ in range(200)]
