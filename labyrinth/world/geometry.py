"""Engine-neutral geometry value types.

Pieces placed by the maze builder are described by a template (the size of
the prefab it stands for), a position and an Euler rotation.  Pieces are
owned by :class:`labyrinth.world.geometry_pool.GeometryPool`; everything
else only ever holds them as handles.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Final, NamedTuple, Tuple

# Parent groups ("containers") pieces are attached to
GROUP_FLOORS: Final[str] = "floors"
GROUP_WALLS: Final[str] = "walls"
GROUP_PILLARS: Final[str] = "pillars"
GROUP_CEILINGS: Final[str] = "ceilings"
GROUP_DECORATIONS: Final[str] = "decorations"

STRUCTURAL_GROUPS: Final[Tuple[str, ...]] = (
    GROUP_FLOORS,
    GROUP_WALLS,
    GROUP_PILLARS,
    GROUP_CEILINGS,
)
OBSTACLE_GROUPS: Final[Tuple[str, ...]] = (GROUP_WALLS, GROUP_PILLARS)


class Vec3(NamedTuple):
    """World position. X follows columns, Z follows rows, Y is up."""
    x: float
    y: float
    z: float

    def __add__(self, other: "Vec3") -> "Vec3":  # type: ignore[override]
        return Vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vec3") -> "Vec3":
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def scaled(self, factor: float) -> "Vec3":
        return Vec3(self.x * factor, self.y * factor, self.z * factor)

    def sqr_distance(self, other: "Vec3") -> float:
        dx, dy, dz = self.x - other.x, self.y - other.y, self.z - other.z
        return dx * dx + dy * dy + dz * dz

    def distance(self, other: "Vec3") -> float:
        return math.sqrt(self.sqr_distance(other))


ORIGIN: Final[Vec3] = Vec3(0.0, 0.0, 0.0)


class Rotation(NamedTuple):
    """Euler angles in degrees."""
    pitch: float = 0.0
    yaw: float = 0.0
    roll: float = 0.0

    @classmethod
    def from_yaw(cls, yaw: float) -> "Rotation":
        return cls(0.0, float(yaw) % 360.0, 0.0)


IDENTITY: Final[Rotation] = Rotation()


@dataclass(frozen=True)
class GeometryTemplate:
    """Stand-in for an engine prefab: a named box with a walkable flag."""

    name: str
    size: Vec3
    walkable: bool = False
    y_offset: float = 0.0

    @property
    def half_extents(self) -> Tuple[float, float]:
        """Half size on the X/Z plane."""
        return self.size.x / 2.0, self.size.z / 2.0

    def footprint_aabb(
        self, position: Vec3, yaw: float, margin: float = 0.0
    ) -> Tuple[float, float, float, float]:
        """Axis-aligned (x0, z0, x1, z1) bounds of the rotated footprint."""
        hx, hz = self.half_extents
        hx += margin
        hz += margin
        rad = math.radians(yaw)
        c, s = abs(math.cos(rad)), abs(math.sin(rad))
        ex = c * hx + s * hz
        ez = s * hx + c * hz
        return position.x - ex, position.z - ez, position.x + ex, position.z + ez


class GeometryPiece:
    """
    Pooled instance of a template. Read-only for everyone except the pool.
    """

    __slots__ = ("_piece_id", "_template", "_position", "_rotation", "_parent", "_active")

    def __init__(
        self,
        piece_id: int,
        template: GeometryTemplate,
        position: Vec3,
        rotation: Rotation,
        parent: str,
    ):
        self._piece_id = piece_id
        self._template = template
        self._position = position
        self._rotation = rotation
        self._parent = parent
        self._active = True

    @property
    def piece_id(self) -> int:
        return self._piece_id

    @property
    def kind(self) -> str:
        return self._template.name

    @property
    def template(self) -> GeometryTemplate:
        return self._template

    @property
    def position(self) -> Vec3:
        return self._position

    @property
    def rotation(self) -> Rotation:
        return self._rotation

    @property
    def parent(self) -> str:
        return self._parent

    @property
    def active(self) -> bool:
        return self._active

    def __repr__(self) -> str:
        state = "active" if self._active else "inactive"
        return (
            f"GeometryPiece(#{self._piece_id} {self.kind} @ "
            f"({self._position.x:.2f}, {self._position.y:.2f}, {self._position.z:.2f}) "
            f"yaw={self._rotation.yaw:.0f} {self._parent} {state})"
        )
