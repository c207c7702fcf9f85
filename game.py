GRID_SIZE = 4
WIN_VALUE = 2048

Position = tuple[int, int]
Board = list[list[int]]

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, NamedTuple, Protocol
import random

from pydantic import BaseModel, ConfigDict


class Direction(IntEnum):
    UP = 0
    RIGHT = 1
    DOWN = 2
    LEFT = 3

    @property
    def label(self) -> str:
        """Capitalized English name used in logged events ("Up", "Right", ...)."""
        return self.name.capitalize()

    @property
    def vector(self) -> Position:
        return _VECTORS[self]

    @classmethod
    def parse(cls, value) -> "Direction | None":
        """
        Coerce external input into a Direction.
        Accepts a Direction, an int code 0-3, or a case-insensitive name.
        Anything else returns None.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return cls(value) if 0 <= value <= 3 else None
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None


_VECTORS = {
    Direction.UP: (0, -1),
    Direction.RIGHT: (1, 0),
    Direction.DOWN: (0, 1),
    Direction.LEFT: (-1, 0),
}


class GameError(Exception):
    """Base class for invariant violations inside the game engine."""


class OccupiedCellError(GameError):
    pass


class TileAlreadyMergedError(GameError):
    pass


class Tile:
    """
    A numbered occupant of a grid cell.

    `merged_from` holds the pre-move positions of the two tiles that produced
    this one. It is only meaningful for the pass that created the tile and is
    cleared before every resolution pass.
    """

    def __init__(self, position: Position, value: int):
        self.x, self.y = position
        self.value = value
        self.previous_position: Position | None = None
        self.merged_from: tuple[Position, Position] | None = None

    @property
    def position(self) -> Position:
        return (self.x, self.y)

    def save_position(self) -> None:
        self.previous_position = (self.x, self.y)

    def update_position(self, position: Position) -> None:
        self.x, self.y = position

    def __repr__(self) -> str:
        return f"Tile(position={self.position}, value={self.value})"


class Grid:
    """Fixed-size cell store. Cells are addressed as (x, y), x = column, y = row."""

    def __init__(self, size: int = GRID_SIZE):
        self.size = size
        self.cells: list[list[Tile | None]] = [
            [None for _ in range(size)] for _ in range(size)
        ]

    @classmethod
    def from_board(cls, board: Board) -> "Grid":
        grid = cls(len(board))
        for y, row in enumerate(board):
            for x, value in enumerate(row):
                if value:
                    grid.place_tile(Tile((x, y), value))
        return grid

    def is_within_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.size and 0 <= y < self.size

    def cell_at(self, x: int, y: int) -> Tile | None:
        if not self.is_within_bounds(x, y):
            return None
        return self.cells[x][y]

    def is_cell_free(self, x: int, y: int) -> bool:
        return self.is_within_bounds(x, y) and self.cells[x][y] is None

    def list_free_cells(self) -> list[Position]:
        free = []
        self.for_each_cell(
            lambda x, y, tile: free.append((x, y)) if tile is None else None
        )
        return free

    def cells_available(self) -> bool:
        return bool(self.list_free_cells())

    def place_tile(self, tile: Tile) -> None:
        if not self.is_within_bounds(tile.x, tile.y):
            raise ValueError(f"position {tile.position} is outside the grid")
        if self.cells[tile.x][tile.y] is not None:
            raise OccupiedCellError(
                f"cannot place {tile!r}: cell already holds {self.cells[tile.x][tile.y]!r}"
            )
        self.cells[tile.x][tile.y] = tile

    def remove_tile(self, tile: Tile) -> None:
        if not self.is_within_bounds(tile.x, tile.y) or self.cells[tile.x][tile.y] is not tile:
            raise GameError(f"{tile!r} is not on the grid at {tile.position}")
        self.cells[tile.x][tile.y] = None

    def move_tile(self, tile: Tile, position: Position) -> None:
        """Relocate a tile, keeping its stored position in step with its cell."""
        if position == tile.position:
            return
        x, y = position
        if self.cells[x][y] is not None:
            raise OccupiedCellError(f"cannot move {tile!r} onto occupied cell {position}")
        self.cells[tile.x][tile.y] = None
        self.cells[x][y] = tile
        tile.update_position(position)

    def for_each_cell(self, visitor: Callable[[int, int, Tile | None], None]) -> None:
        for x in range(self.size):
            for y in range(self.size):
                visitor(x, y, self.cells[x][y])

    def tiles(self) -> list[Tile]:
        return [tile for column in self.cells for tile in column if tile is not None]

    def to_board(self) -> Board:
        """Value-only snapshot as a list of rows (board[y][x]), 0 for empty."""
        return [
            [tile.value if tile else 0 for tile in (self.cells[x][y] for x in range(self.size))]
            for y in range(self.size)
        ]

    def serialize(self) -> str:
        return serialize_board(self.to_board())


# ----------------------------------------
# board helpers


def empty_board(size: int = GRID_SIZE) -> Board:
    return [[0 for _ in range(size)] for _ in range(size)]


def copy_board(board: Board) -> Board:
    return [row[:] for row in board]


def serialize_board(board: Board) -> str:
    """Comma separated cell values, row by row, left to right, 0 for empty."""
    return ",".join(str(value) for row in board for value in row)


def parse_board(text: str, size: int = GRID_SIZE) -> Board:
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != size * size:
        raise ValueError(
            f"board string must hold {size * size} cells, received {len(parts)}"
        )
    try:
        values = [int(p) for p in parts]
    except ValueError:
        raise ValueError(f"board string contains a non-integer cell: {text!r}") from None

    for value in values:
        if value != 0 and (value < 2 or value & (value - 1)):
            raise ValueError(f"cell value {value} is not a power of two >= 2")

    return [values[row * size : (row + 1) * size] for row in range(size)]


def highest_tile(board: Board) -> int:
    return max((value for row in board for value in row), default=0)


def tile_sum(board: Board) -> int:
    return sum(value for row in board for value in row)


def has_adjacent_match(board: Board) -> bool:
    size = len(board)
    for y in range(size):
        for x in range(size):
            value = board[y][x]
            if not value:
                continue
            if x < size - 1 and board[y][x + 1] == value:
                return True
            if y < size - 1 and board[y + 1][x] == value:
                return True
    return False


def board_moves_available(board: Board) -> bool:
    return any(0 in row for row in board) or has_adjacent_match(board)


# ----------------------------------------
# traversal shared by the live resolver and the simulator


def build_traversals(vector: Position, size: int = GRID_SIZE) -> tuple[list[int], list[int]]:
    """
    Order in which cells are visited for a move along `vector`.
    An axis is walked backwards when the vector points down it, so the tiles
    nearest the destination edge are handled first.
    """
    xs = list(range(size))
    ys = list(range(size))
    if vector[0] == 1:
        xs.reverse()
    if vector[1] == 1:
        ys.reverse()
    return xs, ys


def find_farthest_position(
    cell: Position, vector: Position, is_free: Callable[[Position], bool]
) -> tuple[Position, Position]:
    """
    Walk from `cell` along `vector` while the next cell is free.
    Returns (farthest, next): the last free cell reached (or `cell` itself)
    and the cell just beyond it, which may be out of bounds.
    `is_free` must report False for out of bounds positions.
    """
    previous = cell
    current = (cell[0] + vector[0], cell[1] + vector[1])
    while is_free(current):
        previous = current
        current = (current[0] + vector[0], current[1] + vector[1])
    return previous, current


class SlideTarget(Protocol):
    size: int

    def value_at(self, position: Position) -> int: ...

    def is_free(self, position: Position) -> bool: ...

    def merged_at(self, position: Position) -> bool: ...

    def merge(self, source: Position, target: Position, value: int) -> None: ...

    def relocate(self, source: Position, target: Position) -> None: ...


@dataclass
class SlideResult:
    moved: bool = False
    score_delta: int = 0
    merges: int = 0
    merged_values: list[int] = field(default_factory=list)


def slide(target: SlideTarget, direction: Direction) -> SlideResult:
    """
    Apply one move to `target`. Each destination tile takes part in at most
    one merge per pass.
    """
    vector = direction.vector
    xs, ys = build_traversals(vector, target.size)
    result = SlideResult()

    for x in xs:
        for y in ys:
            cell = (x, y)
            value = target.value_at(cell)
            if not value:
                continue

            farthest, next_cell = find_farthest_position(cell, vector, target.is_free)
            next_in_bounds = (
                0 <= next_cell[0] < target.size and 0 <= next_cell[1] < target.size
            )

            if (
                next_in_bounds
                and target.value_at(next_cell) == value
                and not target.merged_at(next_cell)
            ):
                merged_value = value * 2
                target.merge(cell, next_cell, merged_value)
                result.moved = True
                result.score_delta += merged_value
                result.merges += 1
                result.merged_values.append(merged_value)
            elif farthest != cell:
                target.relocate(cell, farthest)
                result.moved = True

    return result


class _LiveGrid:
    """Slide target backed by real tiles; records merge provenance on the new tile."""

    def __init__(self, grid: Grid):
        self.grid = grid
        self.size = grid.size

    def value_at(self, position: Position) -> int:
        tile = self.grid.cell_at(*position)
        return tile.value if tile else 0

    def is_free(self, position: Position) -> bool:
        return self.grid.is_cell_free(*position)

    def merged_at(self, position: Position) -> bool:
        tile = self.grid.cell_at(*position)
        return tile is not None and tile.merged_from is not None

    def merge(self, source: Position, target: Position, value: int) -> None:
        tile = self.grid.cell_at(*source)
        other = self.grid.cell_at(*target)
        if other.merged_from is not None:
            raise TileAlreadyMergedError(f"{other!r} was already merged this turn")

        merged = Tile(target, value)
        merged.merged_from = (
            tile.previous_position or tile.position,
            other.previous_position or other.position,
        )
        self.grid.remove_tile(tile)
        self.grid.remove_tile(other)
        self.grid.place_tile(merged)

        # converge the consumed tile onto the merge cell
        tile.update_position(target)

    def relocate(self, source: Position, target: Position) -> None:
        self.grid.move_tile(self.grid.cell_at(*source), target)


class _ScratchBoard:
    """Slide target over a value-only board copy. Merged cells are tracked per pass."""

    def __init__(self, board: Board):
        self.board = copy_board(board)
        self.size = len(board)
        self.merged: set[Position] = set()

    def value_at(self, position: Position) -> int:
        x, y = position
        return self.board[y][x]

    def is_free(self, position: Position) -> bool:
        x, y = position
        return 0 <= x < self.size and 0 <= y < self.size and self.board[y][x] == 0

    def merged_at(self, position: Position) -> bool:
        return position in self.merged

    def merge(self, source: Position, target: Position, value: int) -> None:
        if target in self.merged:
            raise TileAlreadyMergedError(f"cell {target} was already merged this pass")
        self.board[source[1]][source[0]] = 0
        self.board[target[1]][target[0]] = value
        self.merged.add(target)

    def relocate(self, source: Position, target: Position) -> None:
        self.board[target[1]][target[0]] = self.board[source[1]][source[0]]
        self.board[source[1]][source[0]] = 0


class SimulatedMove(NamedTuple):
    board: Board
    unchanged: bool
    score_delta: int


class MoveOutcome(BaseModel):
    """Result of one resolution pass. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    moved: bool
    score_delta: int = 0
    tiles_added: int = 0
    tiles_removed: int = 0
    won: bool = False
    over: bool = False
    board_before: str


class Game2048:
    grid: Grid

    def __init__(
        self,
        size: int = GRID_SIZE,
        rng: random.Random | None = None,
        win_value: int = WIN_VALUE,
        four_probability: float = 0.1,
    ):
        """
        Live game state: the grid, the running score and the termination flags.
        Tile values are stored as plain values (2, 4, 8, ...), not exponents.
        """
        self.size = size
        self.rng = rng or random.Random()
        self.win_value = win_value
        self.four_probability = four_probability
        self.reset()

    def reset(self) -> None:
        self.grid = Grid(self.size)
        self.score = 0
        self.over = False
        self.won = False

    @classmethod
    def from_board(cls, board: Board, **kwargs) -> "Game2048":
        game = cls(size=len(board), **kwargs)
        game.grid = Grid.from_board(board)
        return game

    def board(self) -> Board:
        return self.grid.to_board()

    def serialize(self) -> str:
        return self.grid.serialize()

    def highest_tile(self) -> int:
        return highest_tile(self.board())

    def tile_sum(self) -> int:
        return tile_sum(self.board())

    def add_start_tiles(self, count: int = 2) -> None:
        for _ in range(count):
            self.add_random_tile()

    def add_random_tile(self) -> Tile | None:
        """
        Add a new tile (90% chance of 2, 10% chance of 4) to a random empty cell.
        Returns the tile, or None if no empty cell is available.
        """
        free_cells = self.grid.list_free_cells()
        if not free_cells:
            return None

        position = self.rng.choice(free_cells)
        value = 4 if self.rng.random() < self.four_probability else 2
        tile = Tile(position, value)
        self.grid.place_tile(tile)
        return tile

    def prepare_tiles(self) -> None:
        """Save every tile's position and drop last turn's merge provenance."""
        for tile in self.grid.tiles():
            tile.merged_from = None
            tile.save_position()

    def move(self, direction: Direction) -> MoveOutcome:
        """
        Resolve one move on the live grid.
        A move that relocates no tile leaves the board untouched and reports moved=False.
        """
        board_before = self.serialize()
        self.prepare_tiles()

        result = slide(_LiveGrid(self.grid), direction)
        if not result.moved:
            return MoveOutcome(moved=False, board_before=board_before)

        self.score += result.score_delta
        if self.win_value in result.merged_values:
            self.won = True

        # a tile that moved or merged always leaves a free cell behind
        assert self.grid.cells_available(), "accepted move left no free cell"
        tiles_added = 1 if self.add_random_tile() else 0

        if not self.moves_available():
            self.over = True

        return MoveOutcome(
            moved=True,
            score_delta=result.score_delta,
            tiles_added=tiles_added,
            tiles_removed=result.merges,
            won=self.won,
            over=self.over,
            board_before=board_before,
        )

    def moves_available(self) -> bool:
        return self.grid.cells_available() or self.tile_matches_available()

    def tile_matches_available(self) -> bool:
        return has_adjacent_match(self.board())

    @staticmethod
    def simulate_move(board: Board, direction: Direction) -> SimulatedMove:
        """
        Simulate a move on a copy of `board` without touching any live grid.
        Returns (resulting_board, unchanged, score_delta); no tile is spawned.
        """
        scratch = _ScratchBoard(board)
        result = slide(scratch, direction)
        return SimulatedMove(scratch.board, not result.moved, result.score_delta)
