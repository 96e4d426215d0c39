import pytest

from labyrinth.systems.navigation.surface import NavigableSurfaceSampler
from labyrinth.templates.registry import TemplateRegistry
from labyrinth.utils.game_rng import GameRNG
from labyrinth.world.decorations import DecorationPlacer
from labyrinth.world.geometry_pool import GeometryPool
from labyrinth.world.maze_builder import MazeBuilder, StructuralTemplates

TEMPLATE_CONFIG = {
    "floor": {"size": [6.0, 0.1, 6.0], "walkable": True},
    "wall": {"size": [6.0, 3.0, 0.2]},
    "pillar": {"size": [0.4, 3.0, 0.4]},
    "ceiling": {"size": [6.0, 0.1, 6.0], "walkable": True},
    "ceiling_lit": {"size": [6.0, 0.1, 6.0], "walkable": True},
    "ceiling_dark": {"size": [6.0, 0.1, 6.0], "walkable": True},
    "crate": {"size": [0.8, 0.8, 0.8]},
    "barrel": {"size": [0.6, 1.0, 0.6]},
}

STRUCTURE = StructuralTemplates(
    floor="floor",
    wall="wall",
    ceiling="ceiling",
    pillar="pillar",
    ceiling_lit="ceiling_lit",
    ceiling_dark="ceiling_dark",
)

# floor X size minus the default overlap
CELL_WIDTH = 5.98


def make_builder(seed=42, structure=STRUCTURE, catalog=None, settings=None):
    rng = GameRNG(seed=seed)
    templates = TemplateRegistry.from_config(TEMPLATE_CONFIG)
    pool = GeometryPool(templates)
    sampler = NavigableSurfaceSampler(pool, rng)
    decorations = None
    if catalog is not None:
        decorations = DecorationPlacer(pool, templates, catalog, rng, settings)
    return MazeBuilder(templates, structure, pool, rng, sampler, decorations)


@pytest.fixture
def registry():
    return TemplateRegistry.from_config(TEMPLATE_CONFIG)


@pytest.fixture
def pool(registry):
    return GeometryPool(registry)


@pytest.fixture
def builder():
    return make_builder()

