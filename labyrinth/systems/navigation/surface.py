# labyrinth/systems/navigation/surface.py
from dataclasses import dataclass
from typing import Final, Iterable, List, Optional, Sequence, Tuple

import math
import time

import numba
import numpy as np
import structlog

from labyrinth.utils.game_rng import GameRNG
from labyrinth.world.geometry import GROUP_CEILINGS, ORIGIN, GeometryPiece, Vec3
from labyrinth.world.geometry_pool import GeometryPool

log = structlog.get_logger(__name__)

# --- Type Aliases ---
Rect = Tuple[float, float, float, float]  # (x0, z0, x1, z1)
Bounds = Tuple[float, float, float, float]

# --- Constants ---
AREA_WALKABLE: Final[int] = 0
AREA_NOT_WALKABLE: Final[int] = 1
DEFAULT_AGENT_RADIUS: Final[float] = 0.3
DEFAULT_MIN_REGION_SIZE: Final[float] = 0.1
# Vertical slack when deciding whether an obstacle stands on a surface
SURFACE_HEIGHT_TOLERANCE: Final[float] = 0.05
_EPS: Final[float] = 1e-9


# --- Numba Helper Functions ---
@numba.njit(cache=True)
def _closest_region_point(
    regions: np.ndarray, px: float, py: float, pz: float
) -> Tuple[int, float, float, float]:
    """
    Closest point on any region ``[x0, z0, x1, z1, y]`` to ``(px, py, pz)``.
    Returns (index, squared distance, x, z); index is -1 when empty.
    """
    best_i = -1
    best_d = np.inf
    best_x = px
    best_z = pz
    for i in range(regions.shape[0]):
        cx = min(max(px, regions[i, 0]), regions[i, 2])
        cz = min(max(pz, regions[i, 1]), regions[i, 3])
        dy = regions[i, 4] - py
        d = (cx - px) ** 2 + dy * dy + (cz - pz) ** 2
        if d < best_d:
            best_d = d
            best_i = i
            best_x = cx
            best_z = cz
    return best_i, best_d, best_x, best_z


def _subtract_rect(rect: Rect, hole: Rect) -> List[Rect]:
    """``rect`` minus ``hole`` as up to four disjoint rectangles."""
    x0, z0, x1, z1 = rect
    hx0, hz0, hx1, hz1 = hole
    if hx0 >= x1 or hx1 <= x0 or hz0 >= z1 or hz1 <= z0:
        return [rect]
    pieces: List[Rect] = []
    # Full-width strips below and above the hole, then the sides in between
    if hz0 > z0:
        pieces.append((x0, z0, x1, hz0))
    if hz1 < z1:
        pieces.append((x0, hz1, x1, z1))
    mid_z0, mid_z1 = max(z0, hz0), min(z1, hz1)
    if hx0 > x0:
        pieces.append((x0, mid_z0, hx0, mid_z1))
    if hx1 < x1:
        pieces.append((hx1, mid_z0, x1, mid_z1))
    return [p for p in pieces if p[2] - p[0] > _EPS and p[3] - p[1] > _EPS]


def _clip_rect(rect: Rect, bounds: Optional[Bounds]) -> Optional[Rect]:
    if bounds is None:
        return rect
    x0, z0 = max(rect[0], bounds[0]), max(rect[1], bounds[1])
    x1, z1 = min(rect[2], bounds[2]), min(rect[3], bounds[3])
    if x1 - x0 <= _EPS or z1 - z0 <= _EPS:
        return None
    return x0, z0, x1, z1


@dataclass(frozen=True)
class NavigableSurface:
    """
    Baked walkable area.

    ``regions`` holds one row ``[x0, z0, x1, z1, y]`` per rectangle and
    ``areas`` its classification. The triangulation splits each region into
    two triangles, so triangle ``t`` belongs to region ``t // 2``.
    """

    regions: np.ndarray
    areas: np.ndarray

    @classmethod
    def empty(cls) -> "NavigableSurface":
        return cls(
            regions=np.zeros((0, 5), dtype=np.float64),
            areas=np.zeros(0, dtype=np.uint8),
        )

    @property
    def region_count(self) -> int:
        return int(self.regions.shape[0])

    @property
    def triangle_count(self) -> int:
        return 2 * self.region_count

    @property
    def walkable_regions(self) -> np.ndarray:
        return self.regions[self.areas == AREA_WALKABLE]

    def triangulate(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Vertices ``(4R, 3)``, flat indices ``(6R,)`` and per-triangle areas."""
        r = self.regions
        n = r.shape[0]
        vertices = np.empty((n * 4, 3), dtype=np.float64)
        vertices[0::4] = np.column_stack((r[:, 0], r[:, 4], r[:, 1]))
        vertices[1::4] = np.column_stack((r[:, 2], r[:, 4], r[:, 1]))
        vertices[2::4] = np.column_stack((r[:, 2], r[:, 4], r[:, 3]))
        vertices[3::4] = np.column_stack((r[:, 0], r[:, 4], r[:, 3]))
        base = np.arange(n, dtype=np.int64) * 4
        indices = np.column_stack(
            (base, base + 1, base + 2, base, base + 2, base + 3)
        ).reshape(-1)
        areas = np.repeat(self.areas, 2)
        return vertices, indices, areas

    def walkable_area(self) -> float:
        w = self.walkable_regions
        return float(np.sum((w[:, 2] - w[:, 0]) * (w[:, 3] - w[:, 1])))


class NavigableSurfaceSampler:
    """
    Bakes a navigable surface from pooled geometry and answers sampling
    queries on it. Walkable templates contribute their top face; every other
    template is an obstacle whose footprint, grown by the agent radius, is cut
    out of the walkable faces it stands on.
    """

    def __init__(
        self,
        pool: GeometryPool,
        rng: GameRNG,
        agent_radius: float = DEFAULT_AGENT_RADIUS,
        min_region_size: float = DEFAULT_MIN_REGION_SIZE,
    ):
        if agent_radius < 0:
            raise ValueError("agent_radius must be non-negative")
        self.pool = pool
        self.rng = rng
        self.agent_radius = agent_radius
        self.min_region_size = min_region_size
        self._surface: NavigableSurface = NavigableSurface.empty()
        self._triangles: Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]] = None

    @property
    def surface(self) -> NavigableSurface:
        return self._surface

    @property
    def is_baked(self) -> bool:
        return self._surface.region_count > 0

    def invalidate(self) -> None:
        """Drop the current surface (before a new build)."""
        self._surface = NavigableSurface.empty()
        self._triangles = None

    # --- Baking ---
    def bake(
        self,
        bounds: Optional[Bounds] = None,
        excluded_groups: Sequence[str] = (GROUP_CEILINGS,),
    ) -> NavigableSurface:
        """Rebuild the surface with ``excluded_groups`` detached meanwhile."""
        start_time = time.perf_counter()
        detached = [g for g in excluded_groups if self.pool.is_attached(g)]
        for group in detached:
            self.pool.detach_group(group)
        try:
            pieces = self.pool.active(attached_only=True)
            self._surface = self._build_surface(pieces, bounds)
            self._triangles = None
        finally:
            for group in detached:
                self.pool.attach_group(group)

        log.info(
            "Navigable surface baked",
            regions=self._surface.region_count,
            walkable=int(np.count_nonzero(self._surface.areas == AREA_WALKABLE)),
            excluded=list(excluded_groups),
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return self._surface

    def _build_surface(
        self, pieces: Iterable[GeometryPiece], bounds: Optional[Bounds]
    ) -> NavigableSurface:
        surfaces: List[Tuple[Rect, float]] = []
        obstacles: List[Tuple[float, float, float, float, float, float]] = []
        for piece in pieces:
            template = piece.template
            x0, z0, x1, z1 = template.footprint_aabb(piece.position, piece.rotation.yaw)
            if template.walkable:
                surfaces.append(((x0, z0, x1, z1), piece.position.y))
            else:
                r = self.agent_radius
                obstacles.append(
                    (
                        x0 - r,
                        z0 - r,
                        x1 + r,
                        z1 + r,
                        piece.position.y,
                        piece.position.y + template.size.y,
                    )
                )

        obstacle_arr = (
            np.asarray(obstacles, dtype=np.float64)
            if obstacles
            else np.zeros((0, 6), dtype=np.float64)
        )

        regions: List[Tuple[float, float, float, float, float]] = []
        for rect, y in surfaces:
            clipped = _clip_rect(rect, bounds)
            if clipped is None:
                continue
            # Broadphase: obstacles overlapping this face and spanning its height
            mask = (
                (obstacle_arr[:, 0] < clipped[2])
                & (obstacle_arr[:, 2] > clipped[0])
                & (obstacle_arr[:, 1] < clipped[3])
                & (obstacle_arr[:, 3] > clipped[1])
                & (obstacle_arr[:, 4] <= y + SURFACE_HEIGHT_TOLERANCE)
                & (obstacle_arr[:, 5] >= y - SURFACE_HEIGHT_TOLERANCE)
            )
            remaining: List[Rect] = [clipped]
            for hole in obstacle_arr[mask]:
                hole_rect = (hole[0], hole[1], hole[2], hole[3])
                remaining = [
                    part for kept in remaining for part in _subtract_rect(kept, hole_rect)
                ]
                if not remaining:
                    break
            regions.extend((p[0], p[1], p[2], p[3], y) for p in remaining)

        if not regions:
            return NavigableSurface.empty()

        region_arr = np.asarray(regions, dtype=np.float64)
        widths = region_arr[:, 2] - region_arr[:, 0]
        depths = region_arr[:, 3] - region_arr[:, 1]
        areas = np.where(
            np.minimum(widths, depths) < self.min_region_size,
            AREA_NOT_WALKABLE,
            AREA_WALKABLE,
        ).astype(np.uint8)
        return NavigableSurface(regions=region_arr, areas=areas)

    # --- Queries ---
    def _walkable_triangles(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        if self._triangles is None:
            vertices, indices, areas = self._surface.triangulate()
            self._triangles = (vertices, indices, np.flatnonzero(areas == AREA_WALKABLE))
        return self._triangles

    def random_point(self) -> Vec3:
        """
        Random point on a walkable triangle. Triangles are chosen uniformly,
        not by area. An empty surface yields the grid origin.
        """
        vertices, indices, walkable = self._walkable_triangles()
        if walkable.size == 0:
            log.warning("Random point requested on empty navigable surface")
            return ORIGIN

        tri = int(walkable[self.rng.get_int(0, walkable.size - 1)])
        a, b, c = (vertices[indices[tri * 3 + k]] for k in range(3))
        return self.point_in_triangle(a, b, c)

    def point_in_triangle(self, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> Vec3:
        # Square-root barycentric transform keeps samples off the vertices
        r1 = math.sqrt(self.rng.get_float())
        r2 = self.rng.get_float()
        p = (1.0 - r1) * a + r1 * (1.0 - r2) * b + r1 * r2 * c
        return Vec3(float(p[0]), float(p[1]), float(p[2]))

    def sample_position(self, point: Vec3, max_distance: float) -> Optional[Vec3]:
        """Closest walkable point within ``max_distance`` of ``point``."""
        walkable = self._surface.walkable_regions
        if walkable.shape[0] == 0:
            return None
        idx, sqr_dist, x, z = _closest_region_point(
            np.ascontiguousarray(walkable), point.x, point.y, point.z
        )
        if idx < 0 or sqr_dist > max_distance * max_distance:
            return None
        return Vec3(float(x), float(walkable[idx, 4]), float(z))

    def nearest_valid_position(self, point: Vec3, radii: Sequence[float]) -> Vec3:
        """
        Project ``point`` onto the surface trying each radius in turn; the
        input point comes back unchanged when every radius misses.
        """
        for radius in radii:
            hit = self.sample_position(point, radius)
            if hit is not None:
                return hit
        log.debug("No valid position near point", point=tuple(point), radii=list(radii))
        return point
