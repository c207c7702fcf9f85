import math

import pytest
from pydantic import ValidationError

from conftest import board
from game import Direction
from heuristics import (
    EvaluatorConfig,
    HeuristicWeights,
    MoveScores,
    classify_move,
    empty_cell_count,
    evaluate_board,
    is_bad_move,
    merge_potential,
    monotonicity,
    score_move,
    score_moves,
    rank_board,
    sum_penalty,
    tile_rank,
)

PAIR = "2,2,0,0,0,0,0,0,0,0,0,0,0,0,0,0"
TWO_PAIRS = "2,2,0,0,4,4,0,0,0,0,0,0,0,0,0,0"

# a mid-game board with a monotonic top row, and the same tiles with the row shuffled
MIDGAME = "64,32,16,8,4,8,4,2,2,0,0,0,0,0,0,0"
MIDGAME_ZIGZAG = "64,16,32,8,4,8,4,2,2,0,0,0,0,0,0,0"


def test_empty_cell_count():
    assert empty_cell_count(board(PAIR)) == 14
    assert empty_cell_count(board(",".join(["2"] * 16))) == 0


def test_merge_potential_counts_each_adjacent_pair_once():
    values = board("2,2,2,0,2,0,0,0,0,0,0,0,0,0,0,0")
    # two horizontal pairs in the top row, one vertical pair in column 0
    assert merge_potential(values) == 3


def test_merge_potential_ignores_gaps():
    assert merge_potential(board("2,0,2,0,0,0,0,0,2,0,0,0,0,0,0,0")) == 0


def test_monotonicity_takes_smaller_direction_per_line():
    values = board("2,4,2,0,0,0,0,0,0,0,0,0,0,0,0,0")
    # top row: increasing 2 -> 4 costs 2, decreasing 4 -> 2 -> 0 costs 4
    assert monotonicity(values, power=1) == 2
    assert monotonicity(values, power=4) == 4**4 - 2**4


def test_monotone_board_scores_zero():
    values = board("16,8,4,2,8,4,2,0,4,2,0,0,2,0,0,0")
    assert monotonicity(values) == 0


def test_tile_rank():
    assert tile_rank(0) == 0
    assert tile_rank(2) == 1
    assert tile_rank(64) == 6
    assert tile_rank(2048) == 11
    assert rank_board(board("2,4,0,0,0,0,0,0,0,0,0,0,0,0,0,8")) == [
        [1, 2, 0, 0],
        [0, 0, 0, 0],
        [0, 0, 0, 0],
        [0, 0, 0, 3],
    ]


def test_sum_penalty():
    weights = HeuristicWeights()
    ranks = rank_board(board("2,0,0,0,0,0,0,0,0,0,0,0,0,0,0,4"))
    assert sum_penalty(ranks, weights) == pytest.approx(2 * (1 + 2**2.5))


def test_evaluate_board_combines_weighted_features():
    values = board("2,4,2,0,0,0,0,0,0,0,0,0,0,0,0,0")
    # ranks 1,2,1,0: increasing costs 2^4 - 1, decreasing (2^4 - 1) + 1
    expected = 13 * 270 - 2 * (1 + 2**2.5 + 1) - (2**4 - 1) * 4
    assert evaluate_board(values) == pytest.approx(expected)


def test_evaluate_board_on_face_values():
    weights = HeuristicWeights(log2_ranks=False)
    values = board("2,4,2,0,0,0,0,0,0,0,0,0,0,0,0,0")
    expected = 13 * 270 - 2 * (2 * 2**2.5 + 4**2.5) - (4**4 - 2**4) * 4
    assert evaluate_board(values, weights) == pytest.approx(expected)


def test_bonuses_outweigh_sum_penalty_mid_game():
    weights = HeuristicWeights()
    values = board(MIDGAME)
    bonuses = (
        empty_cell_count(values) * weights.empty_weight
        + merge_potential(values) * weights.merge_weight
    )
    assert bonuses > sum_penalty(rank_board(values), weights)
    assert evaluate_board(values) > 0


def test_monotonic_lines_score_higher():
    monotonic = board(MIDGAME)
    zigzag = board(MIDGAME_ZIGZAG)
    assert empty_cell_count(monotonic) == empty_cell_count(zigzag)
    assert merge_potential(monotonic) == merge_potential(zigzag)

    assert monotonicity(rank_board(monotonic)) < monotonicity(rank_board(zigzag))
    assert evaluate_board(monotonic) > evaluate_board(zigzag)



def test_weights_are_tunable():
    weights = HeuristicWeights(
        empty_weight=1.0, monotonicity_weight=0.0, merge_weight=0.0, sum_weight=0.0
    )
    assert evaluate_board(board(PAIR), weights) == 14


def test_move_that_changes_nothing_scores_zero():
    values = board(PAIR)
    assert score_move(values, Direction.UP) == 0.0


def test_score_moves_for_pair():
    scores = score_moves(board(PAIR))

    merged = 15 * 270 - 2 * 2**2.5
    slid_down = 14 * 270 - 2 * (1 + 1) + 700
    assert scores.up == 0.0
    assert scores.left == pytest.approx(merged)
    assert scores.right == pytest.approx(merged)
    assert scores.down == pytest.approx(slid_down)
    assert scores.best_direction() == Direction.DOWN



def test_move_scores_accessors():
    scores = MoveScores(up=1.0, right=2.0, down=3.0, left=4.0)
    assert scores.as_list() == [1.0, 2.0, 3.0, 4.0]
    assert scores.for_direction(Direction.RIGHT) == 2.0
    assert scores.best() == 4.0
    assert scores.best_direction() == Direction.LEFT


def test_variation_is_population_std_dev():
    scores = MoveScores(up=1000, right=1000, down=950, left=100)
    mean = (1000 + 1000 + 950 + 100) / 4
    expected = math.sqrt(
        sum((s - mean) ** 2 for s in (1000, 1000, 950, 100)) / 4
    )
    assert scores.variation() == pytest.approx(expected)
    assert MoveScores().variation() == 0.0


def test_bad_move_threshold():
    scores = MoveScores(up=1000, right=1000, down=950, left=100)
    assert is_bad_move(scores, Direction.LEFT)
    assert not is_bad_move(scores, Direction.DOWN)
    assert not is_bad_move(scores, Direction.UP)


def test_threshold_is_configurable():
    scores = MoveScores(up=1000, right=1000, down=950, left=100)
    assert is_bad_move(scores, Direction.DOWN, threshold=0.01)
    assert not is_bad_move(scores, Direction.LEFT, threshold=0.95)


def test_no_positive_best_is_never_bad():
    assert not is_bad_move(MoveScores(), Direction.UP)
    negative = MoveScores(up=-10, right=-20, down=-30, left=-40)
    assert not is_bad_move(negative, Direction.LEFT)


def test_classify_move_for_two_pairs():
    values = board(TWO_PAIRS)
    left = classify_move(values, Direction.LEFT)
    down = classify_move(values, Direction.DOWN)

    # down keeps both pairs side by side; left merges them into a 4 over an 8
    assert left.is_bad
    assert not down.is_bad
    assert left.scores.up == 0.0
    assert left.best_score == down.chosen_score
    assert left.chosen_score == left.scores.left
    assert left.scores.left == pytest.approx(left.scores.right)
    assert left.variation_score == pytest.approx(left.scores.variation())


def test_small_relative_loss_is_not_bad():
    values = board(PAIR)
    left = classify_move(values, Direction.LEFT)
    assert left.chosen_score < left.best_score
    assert not left.is_bad



def test_evaluator_config_validates_threshold():
    with pytest.raises(ValidationError):
        EvaluatorConfig(bad_move_threshold=1.5)
    assert EvaluatorConfig().bad_move_threshold == 0.10
