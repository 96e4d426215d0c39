import pytest
from structlog.testing import capture_logs

from conftest import CELL_WIDTH, STRUCTURE, make_builder
from labyrinth.world.cell_grid import Direction
from labyrinth.world.geometry import (
    GROUP_CEILINGS,
    GROUP_FLOORS,
    GROUP_PILLARS,
    GROUP_WALLS,
    ORIGIN,
    Vec3,
)
from labyrinth.world.maze_builder import MazeBuilder, StructuralTemplates


def test_scenario_5x5(builder):
    dims = builder.generate_maze(5, 5, 80)
    assert dims.width == pytest.approx(5 * CELL_WIDTH)
    assert dims.height == pytest.approx(5 * CELL_WIDTH)
    grid = builder.grid
    assert grid.size == 25
    assert sum(grid.get_cell(0, c).has_wall(Direction.DOWN) for c in range(5)) == 5
    assert len(grid.reachable_from(0, 0)) == 25


def test_one_floor_and_ceiling_per_cell(builder):
    builder.generate_maze(4, 6, 80)
    pool = builder.pool
    assert len(pool.active(parent=GROUP_FLOORS)) == 24
    assert len(pool.active(parent=GROUP_CEILINGS)) == 24
    assert len(pool.active(parent=GROUP_WALLS)) == builder.grid.wall_count()
    assert builder.wall_height == 3.0
    for ceiling in pool.active(parent=GROUP_CEILINGS):
        assert ceiling.position.y == 3.0


def test_ceiling_cadence_two_plain_then_variant(builder):
    builder.generate_maze(5, 5, 80)
    kinds = [p.kind for p in builder.pool.active(parent=GROUP_CEILINGS)]
    variants = [k for k in kinds if k != "ceiling"]
    assert len(variants) == 25 // 3
    assert set(variants) <= {"ceiling_lit", "ceiling_dark"}


def test_plain_ceilings_without_variants():
    structure = StructuralTemplates(floor="floor", wall="wall", ceiling="ceiling", pillar="pillar")
    builder = make_builder(structure=structure)
    builder.generate_maze(3, 3, 80)
    kinds = {p.kind for p in builder.pool.active(parent=GROUP_CEILINGS)}
    assert kinds == {"ceiling"}


def test_wall_poses_for_single_cell(builder):
    builder.generate_maze(1, 1, 0)
    w = CELL_WIDTH
    poses = {
        (round(p.position.x, 3), round(p.position.z, 3)): p.rotation.yaw
        for p in builder.pool.active(parent=GROUP_WALLS)
    }
    assert poses == {
        (round(w, 3), round(w / 2, 3)): 90.0,
        (round(w / 2, 3), round(w, 3)): 0.0,
        (0.0, round(w / 2, 3)): 270.0,
        (round(w / 2, 3), 0.0): 180.0,
    }


def test_pillars_on_border_and_wall_corners(builder):
    builder.generate_maze(3, 3, 0)
    pillars = builder.pool.active(parent=GROUP_PILLARS)
    # 16 intersections, the 4 interior ones touch no wall
    assert len(pillars) == 12

    builder.generate_maze(4, 4, 100)
    grid = builder.grid
    expected = sum(
        MazeBuilder.needs_pillar(grid, r, c) for r in range(5) for c in range(5)
    )
    assert len(builder.pool.active(parent=GROUP_PILLARS)) == expected


def test_pillars_skipped_without_template():
    structure = StructuralTemplates(floor="floor", wall="wall", ceiling="ceiling")
    builder = make_builder(structure=structure)
    builder.generate_maze(3, 3, 80)
    assert builder.pool.active(parent=GROUP_PILLARS) == []
    assert builder.nearest_pillar_position(Vec3(1.0, 0.0, 1.0)) == ORIGIN


def test_missing_structural_template_fails_before_clearing(builder):
    builder.generate_maze(3, 3, 80)
    active_before = builder.pool.active_count()
    del builder.templates.templates["floor"]
    with capture_logs() as logs:
        with pytest.raises(ValueError):
            builder.generate_maze(3, 3, 80)
    assert builder.pool.active_count() == active_before
    assert builder.grid is not None
    assert any(entry["event"] == "Required templates missing" for entry in logs)


def test_invalid_dimensions_fail_before_clearing(builder):
    builder.generate_maze(3, 3, 80)
    active_before = builder.pool.active_count()
    with pytest.raises(ValueError):
        builder.generate_maze(0, 3, 80)
    assert builder.pool.active_count() == active_before


def test_second_generation_reuses_pieces():
    builder = make_builder(seed=77)
    builder.generate_maze(10, 10, 80)
    pool = builder.pool
    first_total = pool.created_count()
    floors_before = pool.created_count("floor")

    builder.generate_maze(10, 10, 80)
    assert pool.created_count("floor") == floors_before
    assert pool.created_count() - first_total <= 0.1 * first_total


def test_pool_stays_bounded_over_many_rounds():
    builder = make_builder(seed=5)
    for size in (4, 8, 6, 8, 5, 7):
        builder.generate_maze(size, size, 85)
    pool = builder.pool
    for kind in pool.kinds():
        assert pool.created_count(kind) <= pool.peak_active(kind)


def test_random_points_stay_inside_maze(builder):
    dims = builder.generate_maze(5, 5, 0)
    for _ in range(1000):
        p = builder.random_point()
        assert -1e-9 <= p.x <= dims.width + 1e-9
        assert -1e-9 <= p.z <= dims.height + 1e-9
        assert p.y == 0.0
        assert builder.is_valid_position(p)


def test_ceilings_attached_after_generation(builder):
    builder.generate_maze(3, 3, 80)
    assert builder.pool.is_attached(GROUP_CEILINGS)
    assert all(region[4] == 0.0 for region in builder.sampler.surface.regions)


def test_cell_position_and_spawn(builder):
    builder.generate_maze(3, 3, 0)
    w = builder.cell_width
    assert w == pytest.approx(CELL_WIDTH)
    assert builder.cell_position(1, 2) == Vec3(2.5 * w, 0.0, 1.5 * w)
    assert builder.spawn_position(1, 1) == builder.cell_position(1, 1)
    assert builder.spawn_radii() == pytest.approx([0.5 * CELL_WIDTH, CELL_WIDTH, 2 * CELL_WIDTH])


def test_nearest_valid_position_projects_outside_points(builder):
    builder.generate_maze(3, 3, 0)
    outside = Vec3(-1.0, 0.0, 1.5 * CELL_WIDTH)
    projected = builder.nearest_valid_position(outside)
    assert builder.is_valid_position(projected)
    assert projected.x > 0.0


def test_nearest_pillar_and_position_checks(builder):
    builder.generate_maze(2, 2, 80)
    w = builder.cell_width
    assert builder.nearest_pillar_position(Vec3(0.3, 0.0, 0.2)) == Vec3(0.0, 0.0, 0.0)
    far_corner = Vec3(2 * w + 1, 0.0, 2 * w + 1)
    assert builder.nearest_pillar_position(far_corner) == Vec3(2 * w, 0.0, 2 * w)
    assert builder.is_valid_position(Vec3(0.0, 5.0, 0.0))
    assert not builder.is_valid_position(Vec3(-0.1, 0.0, 1.0))
    assert builder.cell_has_walls(builder.grid.get_cell(0, 0))


def test_clear_maze_releases_everything(builder):
    builder.generate_maze(4, 4, 80)
    builder.clear_maze()
    assert builder.pool.active_count() == 0
    assert builder.grid is None
    assert not builder.sampler.is_baked
    assert builder.random_point() == ORIGIN


def test_structural_template_names_are_required():
    structure = StructuralTemplates(floor=None, wall="wall", ceiling="ceiling")
    builder = make_builder(structure=structure)
    with pytest.raises(ValueError):
        builder.generate_maze(2, 2)
    assert STRUCTURE.ceiling_variants == ("ceiling_lit", "ceiling_dark")
