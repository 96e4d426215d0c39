import numpy as np
import pytest
from structlog.testing import capture_logs

from labyrinth.systems.navigation.surface import (
    AREA_NOT_WALKABLE,
    AREA_WALKABLE,
    NavigableSurfaceSampler,
)
from labyrinth.templates.registry import TemplateRegistry
from labyrinth.utils.game_rng import GameRNG
from labyrinth.world.geometry import GROUP_CEILINGS, GROUP_FLOORS, IDENTITY, ORIGIN, Vec3
from labyrinth.world.geometry_pool import GeometryPool

SURFACE_TEMPLATES = {
    "floor": {"size": [6.0, 0.1, 6.0], "walkable": True},
    "ceiling": {"size": [6.0, 0.1, 6.0], "walkable": True},
    "pillar": {"size": [0.4, 3.0, 0.4]},
    "block": {"size": [5.85, 1.0, 10.0]},
    "lamp": {"size": [1.0, 0.2, 1.0]},
}


def make_sampler(seed=3):
    pool = GeometryPool(TemplateRegistry.from_config(SURFACE_TEMPLATES))
    pool.acquire("floor", Vec3(3.0, 0.0, 3.0), IDENTITY, GROUP_FLOORS)
    return pool, NavigableSurfaceSampler(pool, GameRNG(seed=seed))


def test_open_floor_is_one_region():
    pool, sampler = make_sampler()
    surface = sampler.bake()
    assert surface.region_count == 1
    np.testing.assert_allclose(surface.regions[0], [0.0, 0.0, 6.0, 6.0, 0.0])
    vertices, indices, areas = surface.triangulate()
    assert vertices.shape == (4, 3)
    assert indices.tolist() == [0, 1, 2, 0, 2, 3]
    assert areas.tolist() == [AREA_WALKABLE, AREA_WALKABLE]
    assert surface.walkable_area() == pytest.approx(36.0)


def test_obstacles_are_cut_out_with_agent_radius():
    pool, sampler = make_sampler()
    pool.acquire("pillar", Vec3(3.0, 0.0, 3.0), IDENTITY, "pillars")
    surface = sampler.bake()
    # 0.2 half size plus 0.3 agent radius
    assert surface.walkable_area() == pytest.approx(36.0 - 1.0)
    for _ in range(500):
        p = sampler.random_point()
        assert not (2.5 < p.x < 3.5 and 2.5 < p.z < 3.5)


def test_obstacles_off_the_surface_height_are_ignored():
    pool, sampler = make_sampler()
    pool.acquire("lamp", Vec3(3.0, 2.5, 3.0), IDENTITY, "decorations")
    assert sampler.bake().walkable_area() == pytest.approx(36.0)


def test_ceilings_are_excluded_and_reattached():
    pool, sampler = make_sampler()
    pool.acquire("ceiling", Vec3(3.0, 3.0, 3.0), IDENTITY, GROUP_CEILINGS)
    surface = sampler.bake()
    assert surface.region_count == 1
    assert surface.regions[0, 4] == 0.0
    assert pool.is_attached(GROUP_CEILINGS)

    with_ceiling = sampler.bake(excluded_groups=())
    assert with_ceiling.region_count == 2


def test_groups_reattached_when_bake_fails(monkeypatch):
    pool, sampler = make_sampler()

    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(sampler, "_build_surface", explode)
    with pytest.raises(RuntimeError):
        sampler.bake()
    assert pool.is_attached(GROUP_CEILINGS)


def test_bounds_clip_regions():
    pool, sampler = make_sampler()
    surface = sampler.bake(bounds=(0.0, 0.0, 4.0, 5.0))
    np.testing.assert_allclose(surface.regions[0], [0.0, 0.0, 4.0, 5.0, 0.0])


def test_thin_leftovers_are_not_walkable():
    pool, sampler = make_sampler()
    # Inflated block spans x in [0.05, 6.5], leaving a 0.05 wide strip
    pool.acquire("block", Vec3(3.275, 0.0, 3.0), IDENTITY, "walls")
    surface = sampler.bake()
    assert surface.region_count == 1
    assert surface.areas.tolist() == [AREA_NOT_WALKABLE]
    assert surface.walkable_area() == 0.0

    with capture_logs() as logs:
        assert sampler.random_point() == ORIGIN
    assert any(entry["log_level"] == "warning" for entry in logs)


def test_random_point_on_unbaked_surface_returns_origin():
    _, sampler = make_sampler()
    assert sampler.random_point() == ORIGIN


def test_random_point_is_deterministic():
    _, a = make_sampler(seed=10)
    _, b = make_sampler(seed=10)
    a.bake()
    b.bake()
    assert [a.random_point() for _ in range(20)] == [b.random_point() for _ in range(20)]


def test_sample_and_nearest_valid_position():
    _, sampler = make_sampler()
    sampler.bake()
    outside = Vec3(-1.0, 0.0, 3.0)
    assert sampler.sample_position(outside, 2.0) == Vec3(0.0, 0.0, 3.0)
    assert sampler.sample_position(outside, 0.5) is None
    assert sampler.nearest_valid_position(outside, [0.5, 2.0]) == Vec3(0.0, 0.0, 3.0)

    far = Vec3(-10.0, 0.0, 3.0)
    assert sampler.nearest_valid_position(far, [0.5, 1.0]) == far


def test_invalidate_drops_surface():
    _, sampler = make_sampler()
    sampler.bake()
    assert sampler.is_baked
    sampler.invalidate()
    assert not sampler.is_baked
    assert sampler.sample_position(Vec3(3.0, 0.0, 3.0), 1.0) is None
