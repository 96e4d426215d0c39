# labyrinth/world/geometry_pool.py
from collections import defaultdict
from typing import DefaultDict, Dict, Iterator, List, Optional, Set

import polars as pl
import structlog

from labyrinth.templates.registry import TemplateRegistry
from labyrinth.world.geometry import GeometryPiece, Rotation, Vec3

log = structlog.get_logger(__name__)

MANIFEST_SCHEMA: dict[str, pl.DataType] = {
    "piece_id": pl.UInt32,
    "kind": pl.Utf8,
    "parent": pl.Utf8,
    "x": pl.Float64,
    "y": pl.Float64,
    "z": pl.Float64,
    "pitch": pl.Float64,
    "yaw": pl.Float64,
    "roll": pl.Float64,
}


class GeometryPool:
    """
    Active/inactive object pool keyed by piece kind (template name).

    Pieces are never destroyed while the pool lives: ``release`` parks them in
    the inactive set of their kind and ``acquire`` hands them out again, so
    the number of pieces of a kind only ever grows up to its peak demand.
    """

    def __init__(self, templates: TemplateRegistry):
        self.templates = templates
        self._next_id: int = 0
        self._active: Dict[int, GeometryPiece] = {}
        self._inactive: DefaultDict[str, List[GeometryPiece]] = defaultdict(list)
        self._created: DefaultDict[str, int] = defaultdict(int)
        self._active_by_kind: DefaultDict[str, int] = defaultdict(int)
        self._peak_active: DefaultDict[str, int] = defaultdict(int)
        self._detached: Set[str] = set()

    # --- Acquire / release ---
    def acquire(
        self, kind: str, position: Vec3, rotation: Rotation, parent: str
    ) -> GeometryPiece:
        """Reactivate an inactive piece of ``kind`` or create a new one."""
        inactive = self._inactive.get(kind)
        if inactive:
            piece = inactive.pop()
            piece._position = position
            piece._rotation = rotation
            piece._parent = parent
            piece._active = True
        else:
            template = self.templates.get_template(kind)
            if template is None:
                log.error("Unknown geometry kind requested from pool", kind=kind)
                raise KeyError(kind)
            piece = GeometryPiece(self._next_id, template, position, rotation, parent)
            self._next_id += 1
            self._created[kind] += 1

        self._active[piece.piece_id] = piece
        self._active_by_kind[kind] += 1
        if self._active_by_kind[kind] > self._peak_active[kind]:
            self._peak_active[kind] = self._active_by_kind[kind]
        return piece

    def release(self, piece: GeometryPiece) -> bool:
        """Deactivate ``piece``. Returns False if it was not active here."""
        if self._active.pop(piece.piece_id, None) is None:
            return False
        piece._active = False
        self._inactive[piece.kind].append(piece)
        self._active_by_kind[piece.kind] -= 1
        return True

    def release_all(self, parent: Optional[str] = None) -> int:
        """Deactivate every active piece, or only those under ``parent``."""
        to_release = [
            p for p in self._active.values() if parent is None or p.parent == parent
        ]
        for piece in to_release:
            self.release(piece)
        if to_release:
            log.debug("Released pieces", count=len(to_release), parent=parent)
        return len(to_release)

    def clear(self) -> None:
        """Forget every piece. Only for tearing the pool down."""
        log.info("Clearing geometry pool", total=self.total_count)
        self._active.clear()
        self._inactive.clear()
        self._created.clear()
        self._active_by_kind.clear()
        self._peak_active.clear()
        self._detached.clear()

    # --- Group attachment ---
    def detach_group(self, parent: str) -> None:
        self._detached.add(parent)

    def attach_group(self, parent: str) -> None:
        self._detached.discard(parent)

    def is_attached(self, parent: str) -> bool:
        return parent not in self._detached

    # --- Queries ---
    def active(
        self,
        kind: Optional[str] = None,
        parent: Optional[str] = None,
        attached_only: bool = False,
    ) -> List[GeometryPiece]:
        return list(self._iter_active(kind, parent, attached_only))

    def _iter_active(
        self, kind: Optional[str], parent: Optional[str], attached_only: bool
    ) -> Iterator[GeometryPiece]:
        for piece in self._active.values():
            if kind is not None and piece.kind != kind:
                continue
            if parent is not None and piece.parent != parent:
                continue
            if attached_only and piece.parent in self._detached:
                continue
            yield piece

    def active_count(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return len(self._active)
        return self._active_by_kind.get(kind, 0)

    def inactive_count(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return sum(len(v) for v in self._inactive.values())
        return len(self._inactive.get(kind, ()))

    def created_count(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return sum(self._created.values())
        return self._created.get(kind, 0)

    def peak_active(self, kind: str) -> int:
        return self._peak_active.get(kind, 0)

    @property
    def total_count(self) -> int:
        return len(self._active) + self.inactive_count()

    def kinds(self) -> List[str]:
        return sorted(self._created)

    def to_frame(self, parent: Optional[str] = None) -> pl.DataFrame:
        """Manifest of active pieces, one row per piece."""
        rows = [
            {
                "piece_id": p.piece_id,
                "kind": p.kind,
                "parent": p.parent,
                "x": p.position.x,
                "y": p.position.y,
                "z": p.position.z,
                "pitch": p.rotation.pitch,
                "yaw": p.rotation.yaw,
                "roll": p.rotation.roll,
            }
            for p in self._iter_active(None, parent, False)
        ]
        if not rows:
            return pl.DataFrame(schema=MANIFEST_SCHEMA)
        return pl.DataFrame(rows, schema=MANIFEST_SCHEMA).sort("piece_id")
