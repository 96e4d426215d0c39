# labyrinth/world/cell_grid.py
from collections import deque
from enum import Enum
from typing import Final, Iterator, List, Optional, Set, Tuple

import structlog

log = structlog.get_logger(__name__)

GridCoord = Tuple[int, int]  # (row, col) format


class Direction(Enum):
    """The four sides of a cell, as (row delta, col delta)."""

    RIGHT = (0, 1)
    UP = (1, 0)
    LEFT = (0, -1)
    DOWN = (-1, 0)

    @property
    def d_row(self) -> int:
        return self.value[0]

    @property
    def d_col(self) -> int:
        return self.value[1]

    @property
    def opposite(self) -> "Direction":
        return _OPPOSITES[self]


_OPPOSITES: Final[dict[Direction, Direction]] = {
    Direction.RIGHT: Direction.LEFT,
    Direction.LEFT: Direction.RIGHT,
    Direction.UP: Direction.DOWN,
    Direction.DOWN: Direction.UP,
}

# Fixed evaluation order used by the generator and the builder
DIRECTION_ORDER: Final[Tuple[Direction, ...]] = (
    Direction.RIGHT,
    Direction.UP,
    Direction.LEFT,
    Direction.DOWN,
)


class Cell:
    """A single maze cell: four independent wall flags plus a visit marker."""

    __slots__ = ("row", "col", "visited", "_walls")

    def __init__(self, row: int, col: int):
        self.row: int = row
        self.col: int = col
        self.visited: bool = False
        self._walls: dict[Direction, bool] = {d: False for d in DIRECTION_ORDER}

    @property
    def coord(self) -> GridCoord:
        return self.row, self.col

    def has_wall(self, direction: Direction) -> bool:
        return self._walls[direction]

    def set_wall(self, direction: Direction, present: bool = True) -> None:
        self._walls[direction] = present

    @property
    def walls(self) -> Tuple[Direction, ...]:
        """Sides with a wall flag set, in evaluation order."""
        return tuple(d for d in DIRECTION_ORDER if self._walls[d])

    @property
    def has_any_wall(self) -> bool:
        return any(self._walls.values())

    def __repr__(self) -> str:
        sides = ",".join(d.name for d in self.walls) or "-"
        return f"Cell({self.row}, {self.col}, walls={sides}, visited={self.visited})"


class CellGrid:
    def __init__(self, rows: int, cols: int):
        """
        Allocates ``rows * cols`` cells with no walls and nothing visited.
        """
        if rows <= 0 or cols <= 0:
            log.error("Invalid grid dimensions", rows=rows, cols=cols)
            raise ValueError("Grid rows and cols must be positive integers.")
        self._rows = rows
        self._cols = cols
        self._cells: List[List[Cell]] = [
            [Cell(row, col) for col in range(cols)] for row in range(rows)
        ]
        log.debug("CellGrid initialized", rows=rows, cols=cols)

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def size(self) -> int:
        return self._rows * self._cols

    def in_bounds(self, row: int, col: int) -> bool:
        """Checks if the given coordinates are within the grid boundaries."""
        return 0 <= row < self._rows and 0 <= col < self._cols

    def get_cell(self, row: int, col: int) -> Optional[Cell]:
        """Bounds-checked lookup. Out of range yields ``None``, never an error."""
        if not self.in_bounds(row, col):
            return None
        return self._cells[row][col]

    def neighbor(self, cell: Cell, direction: Direction) -> Optional[Cell]:
        return self.get_cell(cell.row + direction.d_row, cell.col + direction.d_col)

    def cells(self) -> Iterator[Cell]:
        """Row-major iteration over every cell."""
        for row_cells in self._cells:
            yield from row_cells

    def is_perimeter(self, cell: Cell, direction: Direction) -> bool:
        """True if ``direction`` points out of the grid from ``cell``."""
        return self.neighbor(cell, direction) is None

    def has_wall_between(self, cell: Cell, direction: Direction) -> bool:
        """A shared side is closed if either cell carries the flag for it."""
        if cell.has_wall(direction):
            return True
        other = self.neighbor(cell, direction)
        return other is not None and other.has_wall(direction.opposite)

    def wall_count(self) -> int:
        """Number of set wall flags (equals the number of wall pieces)."""
        return sum(len(cell.walls) for cell in self.cells())

    def reset_visited(self) -> None:
        for cell in self.cells():
            cell.visited = False

    def clear_walls(self) -> None:
        for cell in self.cells():
            for direction in DIRECTION_ORDER:
                cell.set_wall(direction, False)

    def reachable_from(self, row: int, col: int) -> Set[GridCoord]:
        """Flood fill across open sides starting at ``(row, col)``."""
        start = self.get_cell(row, col)
        if start is None:
            return set()
        visited = {start.coord}
        queue = deque([start])
        while queue:
            cell = queue.popleft()
            for direction in DIRECTION_ORDER:
                other = self.neighbor(cell, direction)
                if (
                    other is not None
                    and other.coord not in visited
                    and not self.has_wall_between(cell, direction)
                ):
                    visited.add(other.coord)
                    queue.append(other)
        return visited

    def to_ascii(self) -> str:
        """Render the grid with ``+``, ``-`` and ``|``; row 0 is printed last."""
        lines: List[str] = []
        for row in range(self._rows - 1, -1, -1):
            top = "+"
            middle = ""
            for col in range(self._cols):
                cell = self._cells[row][col]
                top += "---+" if self.has_wall_between(cell, Direction.UP) else "   +"
                middle += "|" if self.has_wall_between(cell, Direction.LEFT) else " "
                middle += "   "
            last = self._cells[row][self._cols - 1]
            middle += "|" if self.has_wall_between(last, Direction.RIGHT) else " "
            lines.append(top)
            lines.append(middle)
        bottom = "+"
        for col in range(self._cols):
            cell = self._cells[0][col]
            bottom += "---+" if self.has_wall_between(cell, Direction.DOWN) else "   +"
        lines.append(bottom)
        return "\n".join(lines)
