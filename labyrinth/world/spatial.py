# labyrinth/world/spatial.py
"""
Box-overlap queries on the X/Z plane.

Obstacles (walls and pillars) are stored as oriented boxes in a NumPy array
``(N, 5)`` of ``[center_x, center_z, half_x, half_z, yaw_degrees]``; overlap
uses the separating axis test in a Numba kernel.
"""

import math
from typing import Iterable, NamedTuple

import numba
import numpy as np
import structlog

from labyrinth.world.geometry import GeometryPiece, GeometryTemplate, Vec3

log = structlog.get_logger(__name__)

# Yaw convention: local +X maps to (cos, -sin) and local +Z to (sin, cos)


class OrientedBox(NamedTuple):
    center_x: float
    center_z: float
    half_x: float
    half_z: float
    yaw: float

    def as_array(self) -> np.ndarray:
        return np.array(
            [self.center_x, self.center_z, self.half_x, self.half_z, self.yaw],
            dtype=np.float64,
        )


def box_for(
    template: GeometryTemplate, position: Vec3, yaw: float, margin: float = 0.0
) -> OrientedBox:
    hx, hz = template.half_extents
    return OrientedBox(position.x, position.z, hx + margin, hz + margin, yaw)


def box_for_piece(piece: GeometryPiece, margin: float = 0.0) -> OrientedBox:
    return box_for(piece.template, piece.position, piece.rotation.yaw, margin)


# --- Numba Kernels ---
@numba.njit(cache=True)
def _axes(yaw_deg: float):
    rad = yaw_deg * math.pi / 180.0
    c = math.cos(rad)
    s = math.sin(rad)
    return c, -s, s, c  # ux, uz, vx, vz


@numba.njit(cache=True)
def _radius_on_axis(hx, hz, ux, uz, vx, vz, nx, nz) -> float:
    return hx * abs(ux * nx + uz * nz) + hz * abs(vx * nx + vz * nz)


@numba.njit(cache=True)
def _obb_overlap(a: np.ndarray, b: np.ndarray) -> bool:
    """Separating axis test for two oriented rectangles. Touching overlaps."""
    aux, auz, avx, avz = _axes(a[4])
    bux, buz, bvx, bvz = _axes(b[4])
    dx = b[0] - a[0]
    dz = b[1] - a[1]
    axes = (
        (aux, auz),
        (avx, avz),
        (bux, buz),
        (bvx, bvz),
    )
    for i in range(4):
        nx, nz = axes[i]
        ra = _radius_on_axis(a[2], a[3], aux, auz, avx, avz, nx, nz)
        rb = _radius_on_axis(b[2], b[3], bux, buz, bvx, bvz, nx, nz)
        if abs(dx * nx + dz * nz) > ra + rb:
            return False
    return True


@numba.njit(cache=True)
def _first_overlap(box: np.ndarray, boxes: np.ndarray) -> int:
    """Index of the first box in ``boxes`` overlapping ``box``, or -1."""
    box_reach = math.sqrt(box[2] * box[2] + box[3] * box[3])
    for i in range(boxes.shape[0]):
        other = boxes[i]
        reach = box_reach + math.sqrt(other[2] * other[2] + other[3] * other[3])
        dx = other[0] - box[0]
        dz = other[1] - box[1]
        # Bounding circle broadphase
        if dx * dx + dz * dz > reach * reach:
            continue
        if _obb_overlap(box, other):
            return i
    return -1


def boxes_overlap(a: OrientedBox, b: OrientedBox) -> bool:
    return bool(_obb_overlap(a.as_array(), b.as_array()))


class BoxOverlapQuery:
    """Snapshot of obstacle boxes answering ``check_box`` queries."""

    def __init__(self, boxes: Iterable[OrientedBox] = ()):
        rows = [b.as_array() for b in boxes]
        self.boxes: np.ndarray = (
            np.vstack(rows) if rows else np.zeros((0, 5), dtype=np.float64)
        )

    @classmethod
    def from_pieces(cls, pieces: Iterable[GeometryPiece]) -> "BoxOverlapQuery":
        query = cls(box_for_piece(p) for p in pieces)
        log.debug("Built box overlap query", obstacles=len(query))
        return query

    def __len__(self) -> int:
        return int(self.boxes.shape[0])

    def check_box(self, box: OrientedBox) -> bool:
        """True if ``box`` overlaps any stored obstacle."""
        if len(self) == 0:
            return False
        return _first_overlap(box.as_array(), self.boxes) >= 0
