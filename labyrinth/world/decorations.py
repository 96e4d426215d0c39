# labyrinth/world/decorations.py
"""
Decoration scattering.

Each cell gets at most ``max_per_cell`` props drawn from a catalog. Catalog
entry 0 is the "always eligible" decoration: it ignores the shared spawn roll
and the spacing rule. Every other entry must clear both, then its own
probability roll, before a pose is searched for it. In cells with walls the
pose is checked as an oriented box against walls and pillars.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, DefaultDict, Final, List, Optional, Sequence, Tuple

import structlog

from labyrinth.templates.registry import TemplateRegistry
from labyrinth.utils.game_rng import GameRNG
from labyrinth.world.cell_grid import Cell, CellGrid, GridCoord
from labyrinth.world.geometry import (
    GROUP_DECORATIONS,
    GeometryPiece,
    GeometryTemplate,
    Rotation,
    Vec3,
)
from labyrinth.world.geometry_pool import GeometryPool
from labyrinth.world.spatial import BoxOverlapQuery, box_for

log = structlog.get_logger(__name__)

# Odd angles keep props from lining up exactly with the wall grid
ODD_YAWS: Final[Tuple[float, ...]] = (1.0, 45.0, 91.0, 135.0, 181.0, 225.0, 271.0, 315.0)
# Usable spans at or below this are too small to hold a prop
MIN_USABLE_SPAN: Final[float] = 0.5
FALLBACK_OFFSET_FRACTION: Final[float] = 1.0 / 6.0


def force_odd(angle: float) -> float:
    """Truncate to whole degrees and bump even values to the next odd one."""
    whole = int(angle) % 360
    if whole % 2 == 0:
        whole += 1
    return float(whole)


@dataclass(frozen=True)
class DecorationType:
    template: Optional[str]
    probability: float = 1.0
    # None falls back to DecorationSettings.min_spacing
    min_spacing: Optional[float] = None
    extra_yaw: float = 0.0


@dataclass(frozen=True)
class DecorationSettings:
    spawn_probability: float = 0.6
    wall_clearance: float = 1.5
    max_per_cell: int = 1
    min_spacing: float = 4.0
    safety_margin: float = 0.6


class PlacementHistory:
    """Cells already holding each decoration type, keyed by catalog index."""

    def __init__(self) -> None:
        self._by_type: DefaultDict[int, List[GridCoord]] = defaultdict(list)

    def record(self, type_index: int, coord: GridCoord) -> None:
        self._by_type[type_index].append(coord)

    def positions(self, type_index: int) -> List[GridCoord]:
        return list(self._by_type.get(type_index, ()))

    def too_close(self, type_index: int, coord: GridCoord, spacing: float) -> bool:
        """True if an earlier placement of the type is nearer than ``spacing``."""
        limit = spacing * spacing
        row, col = coord
        for prev_row, prev_col in self._by_type.get(type_index, ()):
            if (prev_row - row) ** 2 + (prev_col - col) ** 2 < limit:
                return True
        return False

    def clear(self) -> None:
        self._by_type.clear()

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_type.values())


class DecorationPlacer:
    def __init__(
        self,
        pool: GeometryPool,
        templates: TemplateRegistry,
        catalog: Sequence[DecorationType],
        rng: GameRNG,
        settings: Optional[DecorationSettings] = None,
    ):
        self.pool = pool
        self.templates = templates
        self.catalog: List[DecorationType] = list(catalog)
        self.rng = rng
        self.settings = settings or DecorationSettings()
        self.history = PlacementHistory()
        self._placed: List[GeometryPiece] = []

    @property
    def placed(self) -> List[GeometryPiece]:
        return list(self._placed)

    def validate_catalog(self) -> List[str]:
        """Names of catalog templates that are not registered. Not fatal."""
        missing = self.templates.missing(d.template for d in self.catalog)
        if missing:
            log.debug("Decoration templates missing; entries will be skipped", missing=missing)
        return missing

    def clear(self) -> None:
        released = self.pool.release_all(GROUP_DECORATIONS)
        self._placed.clear()
        self.history.clear()
        log.debug("Decorations cleared", released=released)

    def place_all(
        self,
        grid: CellGrid,
        cell_width: float,
        query: BoxOverlapQuery,
        cell_center: Callable[[int, int], Vec3],
    ) -> int:
        """Walk the grid row-major and decorate every cell. Returns count placed."""
        total = 0
        for cell in grid.cells():
            total += self.place_in_cell(
                cell, cell_center(cell.row, cell.col), cell_width, query
            )
        log.info(
            "Decorations placed",
            placed=total,
            cells=grid.size,
            catalog=len(self.catalog),
        )
        return total

    def place_in_cell(
        self, cell: Cell, center: Vec3, cell_width: float, query: BoxOverlapQuery
    ) -> int:
        s = self.settings
        if cell.has_any_wall and cell_width < 3.0 * s.wall_clearance:
            return 0

        shared_roll = self.rng.get_float()
        order = list(range(len(self.catalog)))
        self.rng.shuffle(order, start=1)

        placed = 0
        for index in order:
            if placed >= s.max_per_cell:
                break
            entry = self.catalog[index]
            template = self.templates.get_template(entry.template)
            if template is None:
                log.debug("Skipping decoration without template", index=index, template=entry.template)
                continue

            exempt = index == 0
            spacing = s.min_spacing if entry.min_spacing is None else entry.min_spacing
            if not exempt:
                if self.history.too_close(index, cell.coord, spacing):
                    continue
                if shared_roll > s.spawn_probability:
                    continue
            if self.rng.get_float() > entry.probability:
                continue

            pose = self._find_pose(
                template, cell, center, cell_width, query, entry.extra_yaw
            )
            if pose is None:
                log.debug("No free pose for decoration", cell=cell.coord, template=template.name)
                continue

            position, yaw = pose
            piece = self.pool.acquire(
                template.name, position, Rotation.from_yaw(yaw), GROUP_DECORATIONS
            )
            self._placed.append(piece)
            self.history.record(index, cell.coord)
            placed += 1
        return placed

    def _find_pose(
        self,
        template: GeometryTemplate,
        cell: Cell,
        center: Vec3,
        cell_width: float,
        query: BoxOverlapQuery,
        extra_yaw: float = 0.0,
    ) -> Optional[Tuple[Vec3, float]]:
        """Position and final yaw; the extra yaw is included in every tested box."""
        span = cell_width - 2.0 * self.settings.wall_clearance
        if span <= MIN_USABLE_SPAN:
            return None

        extra = force_odd(extra_yaw) if extra_yaw else 0.0
        half = span / 2.0
        base = Vec3(center.x, center.y + template.y_offset, center.z)
        offset = Vec3(self.rng.get_float(-half, half), 0.0, self.rng.get_float(-half, half))

        if not cell.has_any_wall:
            return base + offset, force_odd(self.rng.get_float(0.0, 360.0)) + extra

        step = cell_width * FALLBACK_OFFSET_FRACTION
        candidates = (
            base + offset,
            base + Vec3(step, 0.0, 0.0),
            base + Vec3(-step, 0.0, 0.0),
            base + Vec3(0.0, 0.0, step),
            base + Vec3(0.0, 0.0, -step),
        )
        for position in candidates:
            for base_yaw in ODD_YAWS:
                yaw = base_yaw + extra
                box = box_for(template, position, yaw, self.settings.safety_margin)
                if not query.check_box(box):
                    return position, yaw
        return None


def spacing_violations(history: PlacementHistory, type_index: int, spacing: float) -> int:
    """Pairs of placements of one type nearer than ``spacing`` (diagnostics)."""
    coords = history.positions(type_index)
    count = 0
    for i, (r1, c1) in enumerate(coords):
        for r2, c2 in coords[i + 1:]:
            if math.hypot(r1 - r2, c1 - c2) < spacing:
                count += 1
    return count
