from __future__ import annotations

"""Registry for geometry templates.

Stores immutable template data (floor, wall, pillar, ceiling and
decoration prefabs).  Templates are loaded from configuration at start-up and
looked up by name when the geometry pool needs to create a new piece.
"""

from typing import Any, Dict, Iterable, List, Mapping, Self

import structlog

from labyrinth.world.geometry import GeometryTemplate, Vec3

log = structlog.get_logger()


def template_from_dict(name: str, data: Mapping[str, Any]) -> GeometryTemplate:
    """Build a template from a config mapping like ``{size: [x, y, z]}``."""
    size = data.get("size")
    if size is None or len(size) != 3:
        log.error("Template has invalid size", template=name, size=size)
        raise ValueError(f"Template '{name}' needs a 3-component size")
    return GeometryTemplate(
        name=name,
        size=Vec3(float(size[0]), float(size[1]), float(size[2])),
        walkable=bool(data.get("walkable", False)),
        y_offset=float(data.get("y_offset", 0.0)),
    )


class TemplateRegistry:
    """Simple container providing access to geometry templates."""

    def __init__(self: Self, templates: Iterable[GeometryTemplate] | None = None):
        self.templates: Dict[str, GeometryTemplate] = {
            t.name: t for t in (templates or ())
        }
        log.debug("TemplateRegistry initialized", templates=len(self.templates))

    @classmethod
    def from_config(cls, config: Mapping[str, Mapping[str, Any]]) -> "TemplateRegistry":
        return cls(template_from_dict(name, data) for name, data in config.items())

    def register(self: Self, template: GeometryTemplate) -> None:
        if template.name in self.templates:
            log.warning("Replacing template", template=template.name)
        self.templates[template.name] = template

    def get_template(self: Self, name: str | None) -> GeometryTemplate | None:
        """Retrieve a template definition by name."""
        if name is None:
            return None
        return self.templates.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.templates

    def missing(self: Self, names: Iterable[str | None]) -> List[str]:
        """Names (or ``None`` placeholders) that have no registered template."""
        return [str(n) for n in names if n is None or n not in self.templates]

    def require(self: Self, names: Iterable[str | None], purpose: str) -> None:
        """Fail fast when any of ``names`` is unknown."""
        missing = self.missing(names)
        if missing:
            log.error("Required templates missing", purpose=purpose, missing=missing)
            raise ValueError(f"Missing {purpose} templates: {', '.join(missing)}")
