"""
Single-ply move evaluation.

Each candidate direction is simulated on a value-only copy of the board and
the resulting position is scored by a weighted sum of simple board features.
The score for the player's chosen direction is then compared with the best of
the four to flag bad moves.
"""

import math

from pydantic import BaseModel, Field

from game import Board, Direction, Game2048


class HeuristicWeights(BaseModel):
    """
    Tunable feature weights. Defaults are empirical, not derived.

    With `log2_ranks` the power features see a tile's rank (2 -> 1, 4 -> 2, ...)
    instead of its face value, which keeps the sum penalty below the
    empty-cell and merge bonuses on mid-game boards.
    """

    empty_weight: float = 270.0
    monotonicity_weight: float = 4.0
    merge_weight: float = 700.0
    sum_weight: float = 2.0
    sum_power: float = 2.5
    monotonicity_power: float = 4.0
    log2_ranks: bool = True


class EvaluatorConfig(BaseModel):
    weights: HeuristicWeights = Field(default_factory=HeuristicWeights)
    bad_move_threshold: float = Field(0.10, ge=0.0, le=1.0)


class MoveScores(BaseModel):
    up: float = 0.0
    right: float = 0.0
    down: float = 0.0
    left: float = 0.0

    def for_direction(self, direction: Direction) -> float:
        return getattr(self, direction.name.lower())

    def as_list(self) -> list[float]:
        """Scores in direction-code order (Up, Right, Down, Left)."""
        return [self.for_direction(d) for d in Direction]

    def best(self) -> float:
        return max(self.as_list())

    def best_direction(self) -> Direction:
        return max(Direction, key=self.for_direction)

    def variation(self) -> float:
        """Population standard deviation of the four scores."""
        scores = self.as_list()
        mean = sum(scores) / len(scores)
        return math.sqrt(sum((s - mean) ** 2 for s in scores) / len(scores))


class MoveQuality(BaseModel):
    chosen: Direction
    scores: MoveScores
    best_score: float
    chosen_score: float
    variation_score: float
    is_bad: bool


def tile_rank(value: int) -> int:
    """log2 of a tile value: 2 -> 1, 4 -> 2, ..., 2048 -> 11. Empty cells are 0."""
    return value.bit_length() - 1 if value else 0


def rank_board(board: Board) -> Board:
    return [[tile_rank(value) for value in row] for row in board]


def empty_cell_count(board: Board) -> int:
    return sum(1 for row in board for value in row if value == 0)


def sum_penalty(board: Board, weights: HeuristicWeights) -> float:
    total = sum(value**weights.sum_power for row in board for value in row if value)
    return total * weights.sum_weight


def _line_monotonicity(line: list[int], power: float) -> float:
    decreasing = 0.0
    increasing = 0.0
    for current, following in zip(line[:-1], line[1:]):
        if current > following:
            decreasing += current**power - following**power
        else:
            increasing += following**power - current**power
    return min(decreasing, increasing)


def monotonicity(board: Board, power: float = 4.0) -> float:
    """
    How far the rows and columns are from being monotonic.

    Each adjacent pair adds |a^p - b^p| to the total of the direction it runs
    in, and a line costs the smaller of its two totals, so a line sorted either
    way costs 0. Summed over every row and column; empty cells count as 0.
    """
    size = len(board)
    rows = board
    columns = [[board[y][x] for y in range(size)] for x in range(size)]
    return sum(_line_monotonicity(line, power) for line in rows + columns)


def merge_potential(board: Board) -> int:
    """Count of horizontally or vertically adjacent equal-value pairs."""
    size = len(board)
    merges = 0
    for y in range(size):
        for x in range(size):
            value = board[y][x]
            if not value:
                continue
            if x < size - 1 and board[y][x + 1] == value:
                merges += 1
            if y < size - 1 and board[y + 1][x] == value:
                merges += 1
    return merges


def evaluate_board(board: Board, weights: HeuristicWeights | None = None) -> float:
    """
    Empty cells and mergeable pairs are bonuses; the tile sum and
    non-monotonic lines are penalties.
    """
    weights = weights or HeuristicWeights()
    if weights.log2_ranks:
        board = rank_board(board)
    return (
        empty_cell_count(board) * weights.empty_weight
        - sum_penalty(board, weights)
        - monotonicity(board, weights.monotonicity_power) * weights.monotonicity_weight
        + merge_potential(board) * weights.merge_weight
    )


def score_move(
    board: Board, direction: Direction, weights: HeuristicWeights | None = None
) -> float:
    """Heuristic score of the board reached by `direction`; 0 if the move changes nothing."""
    simulated = Game2048.simulate_move(board, direction)
    if simulated.unchanged:
        return 0.0
    return evaluate_board(simulated.board, weights)


def score_moves(board: Board, weights: HeuristicWeights | None = None) -> MoveScores:
    return MoveScores(
        **{d.name.lower(): score_move(board, d, weights) for d in Direction}
    )


def is_bad_move(scores: MoveScores, chosen: Direction, threshold: float = 0.10) -> bool:
    """
    A move is bad when it loses more than `threshold` of the best score.
    With no positive best score there is nothing to compare against.
    """
    best = scores.best()
    if best <= 0:
        return False
    return (best - scores.for_direction(chosen)) / best > threshold


def classify_move(
    board: Board, chosen: Direction, config: EvaluatorConfig | None = None
) -> MoveQuality:
    config = config or EvaluatorConfig()
    scores = score_moves(board, config.weights)
    return MoveQuality(
        chosen=chosen,
        scores=scores,
        best_score=scores.best(),
        chosen_score=scores.for_direction(chosen),
        variation_score=scores.variation(),
        is_bad=is_bad_move(scores, chosen, config.bad_move_threshold),
    )
