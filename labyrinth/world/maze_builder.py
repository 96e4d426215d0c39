# labyrinth/world/maze_builder.py
"""
Turns a generated CellGrid into pooled geometry.

One ``generate_maze`` call validates templates, clears the previous maze,
generates a fresh topology, places floors, ceilings, walls and pillars,
bakes the navigable surface with the ceilings detached and finally scatters
decorations. Everything is recycled through the GeometryPool so repeated
rounds do not keep allocating pieces.
"""

import time
from dataclasses import dataclass
from typing import Dict, Final, List, Optional, Sequence, Tuple

import structlog

from labyrinth.systems.navigation.surface import NavigableSurfaceSampler
from labyrinth.templates.registry import TemplateRegistry
from labyrinth.utils.game_rng import GameRNG
from labyrinth.world.cell_grid import Cell, CellGrid, Direction
from labyrinth.world.decorations import DecorationPlacer
from labyrinth.world.geometry import (
    GROUP_CEILINGS,
    GROUP_FLOORS,
    GROUP_PILLARS,
    GROUP_WALLS,
    IDENTITY,
    OBSTACLE_GROUPS,
    ORIGIN,
    GeometryPiece,
    GeometryTemplate,
    Rotation,
    Vec3,
)
from labyrinth.world.geometry_pool import GeometryPool
from labyrinth.world.spatial import BoxOverlapQuery
from labyrinth.world.topology import DEFAULT_WALL_PROBABILITY, MazeTopologyGenerator

log = structlog.get_logger(__name__)

# --- Layout constants ---
DEFAULT_OVERLAP: Final[float] = 0.02
# Two plain ceilings, then one lit/dark variant
CEILING_CYCLE: Final[int] = 3
SPAWN_RADIUS_FACTORS: Final[Tuple[float, ...]] = (0.5, 1.0, 2.0)
WALL_YAW: Final[Dict[Direction, float]] = {
    Direction.RIGHT: 90.0,
    Direction.UP: 0.0,
    Direction.LEFT: 270.0,
    Direction.DOWN: 180.0,
}


@dataclass(frozen=True)
class StructuralTemplates:
    """Template names for each structural role."""

    floor: Optional[str]
    wall: Optional[str]
    ceiling: Optional[str]
    pillar: Optional[str] = None
    ceiling_lit: Optional[str] = None
    ceiling_dark: Optional[str] = None
    overlap: float = DEFAULT_OVERLAP

    @property
    def required(self) -> Tuple[Optional[str], ...]:
        return self.floor, self.wall, self.ceiling

    @property
    def ceiling_variants(self) -> Tuple[str, ...]:
        return tuple(n for n in (self.ceiling_lit, self.ceiling_dark) if n)


@dataclass(frozen=True)
class MazeDimensions:
    width: float
    height: float


class MazeBuilder:
    def __init__(
        self,
        templates: TemplateRegistry,
        structural: StructuralTemplates,
        pool: GeometryPool,
        rng: GameRNG,
        sampler: NavigableSurfaceSampler,
        decorations: Optional[DecorationPlacer] = None,
    ):
        self.templates = templates
        self.structural = structural
        self.pool = pool
        self.rng = rng
        self.sampler = sampler
        self.decorations = decorations
        self.topology = MazeTopologyGenerator(rng)

        self._grid: Optional[CellGrid] = None
        self._dimensions = MazeDimensions(0.0, 0.0)
        self._ceiling_counter = 0
        self._pillar_kind: Optional[str] = None
        self._ceiling_variants: Tuple[str, ...] = ()

    # --- Properties ---
    @property
    def grid(self) -> Optional[CellGrid]:
        return self._grid

    @property
    def dimensions(self) -> MazeDimensions:
        return self._dimensions

    @property
    def cell_width(self) -> float:
        return self._template(self.structural.floor, "floor").size.x - self.structural.overlap

    @property
    def wall_height(self) -> float:
        return self._template(self.structural.wall, "wall").size.y

    def _template(self, name: Optional[str], role: str) -> GeometryTemplate:
        template = self.templates.get_template(name)
        if template is None:
            log.error("Structural template not registered", role=role, template=name)
            raise ValueError(f"Missing {role} template: {name}")
        return template

    # --- Generation ---
    def validate_templates(self) -> None:
        """Raise before anything is touched when a fatal template is missing."""
        self.templates.require(self.structural.required, "structural")

        pillar = self.structural.pillar
        if pillar and pillar not in self.templates:
            log.warning("Pillar template missing; pillars disabled", template=pillar)
            pillar = None
        self._pillar_kind = pillar

        variants = self.structural.ceiling_variants
        missing_variants = self.templates.missing(variants)
        if missing_variants:
            log.warning("Ceiling variants missing", missing=missing_variants)
        self._ceiling_variants = tuple(v for v in variants if v in self.templates)

        if self.decorations is not None:
            self.decorations.validate_catalog()

    def generate_maze(
        self,
        rows: int,
        cols: int,
        wall_probability: float = DEFAULT_WALL_PROBABILITY,
    ) -> MazeDimensions:
        start_time = time.perf_counter()
        self.validate_templates()
        # Dimension check happens here as well, before the old maze is cleared
        grid = CellGrid(rows, cols)

        self.clear_maze()

        self.topology.set_wall_probability(wall_probability)
        self.topology.generate(grid)
        self._grid = grid

        w = self.cell_width
        self._dimensions = MazeDimensions(cols * w, rows * w)
        self._place_floors_and_ceilings(grid)
        self._place_walls(grid)
        self._place_pillars(grid)

        self.sampler.bake(
            bounds=(0.0, 0.0, self._dimensions.width, self._dimensions.height),
            excluded_groups=(GROUP_CEILINGS,),
        )

        if self.decorations is not None:
            query = BoxOverlapQuery.from_pieces(self.obstacle_pieces())
            self.decorations.place_all(grid, w, query, self.cell_position)

        log.info(
            "Maze generated",
            rows=rows,
            cols=cols,
            wall_probability=wall_probability,
            width=round(self._dimensions.width, 3),
            height=round(self._dimensions.height, 3),
            pieces=self.pool.active_count(),
            created_total=self.pool.created_count(),
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return self._dimensions

    def clear_maze(self) -> None:
        """Return every piece to the pool and drop per-maze state."""
        if self.decorations is not None:
            self.decorations.clear()
        released = self.pool.release_all()
        self.sampler.invalidate()
        self._grid = None
        self._dimensions = MazeDimensions(0.0, 0.0)
        self._ceiling_counter = 0
        log.debug("Maze cleared", released=released)

    def _place_floors_and_ceilings(self, grid: CellGrid) -> None:
        floor = self._template(self.structural.floor, "floor")
        height = self.wall_height
        for cell in grid.cells():
            center = self.cell_position(cell.row, cell.col)
            self.pool.acquire(
                floor.name,
                Vec3(center.x, floor.y_offset, center.z),
                IDENTITY,
                GROUP_FLOORS,
            )
            kind = self._next_ceiling_kind()
            ceiling = self._template(kind, "ceiling")
            self.pool.acquire(
                kind,
                Vec3(center.x, height + ceiling.y_offset, center.z),
                IDENTITY,
                GROUP_CEILINGS,
            )

    def _next_ceiling_kind(self) -> str:
        self._ceiling_counter += 1
        if self._ceiling_counter < CEILING_CYCLE or not self._ceiling_variants:
            return self.structural.ceiling
        self._ceiling_counter = 0
        return self.rng.choice(self._ceiling_variants)

    def _place_walls(self, grid: CellGrid) -> None:
        wall = self._template(self.structural.wall, "wall")
        w = self.cell_width
        for cell in grid.cells():
            for direction in cell.walls:
                # Middle of the side: cell centre pushed half a cell outwards
                x = (cell.col + 0.5 + 0.5 * direction.d_col) * w
                z = (cell.row + 0.5 + 0.5 * direction.d_row) * w
                self.pool.acquire(
                    wall.name,
                    Vec3(x, wall.y_offset, z),
                    Rotation.from_yaw(WALL_YAW[direction]),
                    GROUP_WALLS,
                )

    def _place_pillars(self, grid: CellGrid) -> None:
        if self._pillar_kind is None:
            return
        pillar = self._template(self._pillar_kind, "pillar")
        w = self.cell_width
        for row in range(grid.rows + 1):
            for col in range(grid.cols + 1):
                if self.needs_pillar(grid, row, col):
                    self.pool.acquire(
                        pillar.name,
                        Vec3(col * w, pillar.y_offset, row * w),
                        IDENTITY,
                        GROUP_PILLARS,
                    )

    @staticmethod
    def needs_pillar(grid: CellGrid, row: int, col: int) -> bool:
        """Whether grid intersection ``(row, col)`` gets a pillar."""
        if row in (0, grid.rows) or col in (0, grid.cols):
            return True
        # Each touching cell with the two sides meeting at this corner
        touching = (
            (row, col, Direction.LEFT, Direction.DOWN),
            (row - 1, col, Direction.UP, Direction.LEFT),
            (row, col - 1, Direction.DOWN, Direction.RIGHT),
            (row - 1, col - 1, Direction.UP, Direction.RIGHT),
        )
        for r, c, side_a, side_b in touching:
            cell = grid.get_cell(r, c)
            if cell is not None and (cell.has_wall(side_a) or cell.has_wall(side_b)):
                return True
        return False

    # --- Queries ---
    def obstacle_pieces(self) -> List[GeometryPiece]:
        pieces: List[GeometryPiece] = []
        for group in OBSTACLE_GROUPS:
            pieces.extend(self.pool.active(parent=group))
        return pieces

    def cell_position(self, row: int, col: int) -> Vec3:
        """World position of the centre of cell ``(row, col)`` at floor level."""
        w = self.cell_width
        return Vec3((col + 0.5) * w, 0.0, (row + 0.5) * w)

    def nearest_pillar_position(self, position: Vec3) -> Vec3:
        pillars = self.pool.active(parent=GROUP_PILLARS)
        if not pillars:
            return ORIGIN
        return min(pillars, key=lambda p: p.position.sqr_distance(position)).position

    def cell_has_walls(self, cell: Cell) -> bool:
        return cell.has_any_wall

    @staticmethod
    def is_valid_position(position: Vec3) -> bool:
        return position.x >= 0 and position.z >= 0

    def spawn_radii(self) -> List[float]:
        w = self.cell_width
        return [factor * w for factor in SPAWN_RADIUS_FACTORS]

    def spawn_position(self, row: int, col: int) -> Vec3:
        """Cell centre projected onto the navigable surface."""
        return self.nearest_valid_position(self.cell_position(row, col))

    def random_point(self) -> Vec3:
        return self.sampler.random_point()

    def nearest_valid_position(
        self, point: Vec3, radii: Optional[Sequence[float]] = None
    ) -> Vec3:
        return self.sampler.nearest_valid_position(
            point, self.spawn_radii() if radii is None else radii
        )

