# labyrinth/world/topology.py
from typing import List, NamedTuple, Optional

import structlog

from labyrinth.utils.game_rng import GameRNG
from labyrinth.world.cell_grid import DIRECTION_ORDER, Cell, CellGrid, Direction

log = structlog.get_logger(__name__)

# --- Configuration ---
DEFAULT_WALL_PROBABILITY = 80.0
MIN_WALL_PROBABILITY = 0.0
MAX_WALL_PROBABILITY = 100.0


class _Frame(NamedTuple):
    """One pending cell on the traversal stack."""
    row: int
    col: int
    # Side facing the cell we arrived from; None for the starting cell
    parent_side: Optional[Direction]


def clamp_wall_probability(value: float) -> float:
    return max(MIN_WALL_PROBABILITY, min(MAX_WALL_PROBABILITY, float(value)))


class MazeTopologyGenerator:
    """
    Fills a CellGrid with a connected wall layout using recursive backtracking.

    The traversal runs on an explicit stack. A cell is re-examined every time
    control returns to it and is only popped once a pass finds no unvisited
    neighbour. Walls are added only on sides that cannot be traversed when
    the cell is first reached, so no path the traversal took is ever sealed.
    """

    def __init__(
        self, rng: GameRNG, wall_probability: float = DEFAULT_WALL_PROBABILITY
    ):
        if not isinstance(rng, GameRNG):
            log.error("Topology generator created with invalid GameRNG object")
            raise TypeError("MazeTopologyGenerator requires a GameRNG instance")
        self.rng = rng
        self._wall_probability = clamp_wall_probability(wall_probability)

    @property
    def wall_probability(self) -> float:
        return self._wall_probability

    def set_wall_probability(self, value: float) -> None:
        """Set the 0-100 chance that a blocked side becomes a wall."""
        self._wall_probability = clamp_wall_probability(value)

    def generate(self, grid: CellGrid) -> CellGrid:
        """Mutates ``grid`` in place and returns it for chaining."""
        if not isinstance(grid, CellGrid):
            log.error("Generate called with invalid CellGrid object")
            raise TypeError("Invalid CellGrid object passed to generate")

        log.info(
            "Starting maze topology generation",
            rows=grid.rows,
            cols=grid.cols,
            wall_probability=self._wall_probability,
        )
        grid.reset_visited()
        grid.clear_walls()
        self._seed_border_walls(grid)
        border_walls = grid.wall_count()

        passes = self._traverse(grid)

        log.info(
            "Maze topology generated",
            border_walls=border_walls,
            interior_walls=grid.wall_count() - border_walls,
            passes=passes,
        )
        return grid

    @staticmethod
    def _seed_border_walls(grid: CellGrid) -> None:
        for row in range(grid.rows):
            grid.get_cell(row, 0).set_wall(Direction.LEFT)
            grid.get_cell(row, grid.cols - 1).set_wall(Direction.RIGHT)
        for col in range(grid.cols):
            grid.get_cell(0, col).set_wall(Direction.DOWN)
            grid.get_cell(grid.rows - 1, col).set_wall(Direction.UP)

    def _traverse(self, grid: CellGrid) -> int:
        stack: List[_Frame] = [_Frame(0, 0, None)]
        passes = 0
        while stack:
            frame = stack[-1]
            cell = grid.get_cell(frame.row, frame.col)
            moves = self._evaluate_cell(grid, cell, frame.parent_side)
            passes += 1

            if not moves:
                stack.pop()
                continue

            direction = moves[self.rng.get_int(0, len(moves) - 1)]
            stack.append(
                _Frame(
                    cell.row + direction.d_row,
                    cell.col + direction.d_col,
                    direction.opposite,
                )
            )
        return passes

    def _evaluate_cell(
        self, grid: CellGrid, cell: Cell, parent_side: Optional[Direction]
    ) -> List[Direction]:
        """One pass over the four sides: collect moves, maybe seal dead ends."""
        first_visit = not cell.visited
        moves: List[Direction] = []
        for direction in DIRECTION_ORDER:
            neighbor = grid.neighbor(cell, direction)
            if neighbor is not None and not neighbor.visited:
                moves.append(direction)
            elif (
                first_visit
                and direction is not parent_side
                and not cell.has_wall(direction)
                and self.rng.chance(self._wall_probability)
            ):
                cell.set_wall(direction)
                if neighbor is not None:
                    neighbor.visited = True
                log.debug(
                    "Sealed side", cell=cell.coord, side=direction.name
                )
        cell.visited = True
        return moves


def generate_topology(
    rows: int,
    cols: int,
    rng: GameRNG,
    wall_probability: float = DEFAULT_WALL_PROBABILITY,
) -> CellGrid:
    """Convenience entry point: fresh grid, generated and returned."""
    grid = CellGrid(rows, cols)
    return MazeTopologyGenerator(rng, wall_probability).generate(grid)
