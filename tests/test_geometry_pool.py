import polars as pl
import pytest
from structlog.testing import capture_logs

from labyrinth.templates.registry import TemplateRegistry, template_from_dict
from labyrinth.world.geometry import GROUP_CEILINGS, GROUP_FLOORS, IDENTITY, Rotation, Vec3
from labyrinth.world.geometry_pool import MANIFEST_SCHEMA


def test_acquire_creates_then_recycles(pool):
    first = pool.acquire("floor", Vec3(1, 0, 1), IDENTITY, GROUP_FLOORS)
    assert first.active
    assert pool.created_count("floor") == 1

    assert pool.release(first)
    assert not first.active
    assert pool.inactive_count("floor") == 1

    again = pool.acquire("floor", Vec3(5, 0, 5), Rotation.from_yaw(90), GROUP_FLOORS)
    assert again is first
    assert again.position == Vec3(5, 0, 5)
    assert again.rotation.yaw == 90
    assert pool.created_count("floor") == 1
    assert pool.inactive_count("floor") == 0


def test_release_twice_is_rejected(pool):
    piece = pool.acquire("wall", Vec3(0, 0, 0), IDENTITY, "walls")
    assert pool.release(piece)
    assert not pool.release(piece)
    assert pool.active_count() == 0


def test_unknown_kind_raises_key_error(pool):
    with capture_logs() as logs:
        with pytest.raises(KeyError):
            pool.acquire("lava", Vec3(0, 0, 0), IDENTITY, GROUP_FLOORS)
    assert any(entry["event"] == "Unknown geometry kind requested from pool" for entry in logs)


def test_pool_is_bounded_by_peak_demand(pool):
    for demand in (5, 12, 3, 12, 8):
        for i in range(demand):
            pool.acquire("pillar", Vec3(i, 0, 0), IDENTITY, "pillars")
        pool.release_all()
    assert pool.peak_active("pillar") == 12
    assert pool.created_count("pillar") == 12
    assert pool.total_count == 12


def test_release_all_by_parent(pool):
    pool.acquire("floor", Vec3(0, 0, 0), IDENTITY, GROUP_FLOORS)
    pool.acquire("ceiling", Vec3(0, 3, 0), IDENTITY, GROUP_CEILINGS)
    assert pool.release_all(GROUP_CEILINGS) == 1
    assert pool.active_count() == 1
    assert pool.active(parent=GROUP_FLOORS)[0].kind == "floor"


def test_detached_groups_are_hidden_from_attached_queries(pool):
    pool.acquire("floor", Vec3(0, 0, 0), IDENTITY, GROUP_FLOORS)
    pool.acquire("ceiling", Vec3(0, 3, 0), IDENTITY, GROUP_CEILINGS)
    pool.detach_group(GROUP_CEILINGS)
    assert not pool.is_attached(GROUP_CEILINGS)
    assert [p.kind for p in pool.active(attached_only=True)] == ["floor"]
    assert len(pool.active()) == 2
    pool.attach_group(GROUP_CEILINGS)
    assert len(pool.active(attached_only=True)) == 2


def test_manifest_frame(pool):
    assert pool.to_frame().is_empty()
    pool.acquire("wall", Vec3(1.5, 0, 2.5), Rotation.from_yaw(270), "walls")
    pool.acquire("floor", Vec3(0, 0, 0), IDENTITY, GROUP_FLOORS)
    frame = pool.to_frame()
    assert frame.columns == list(MANIFEST_SCHEMA)
    assert frame.height == 2
    assert frame["piece_id"].to_list() == [0, 1]
    row = frame.filter(pl.col("kind") == "wall").row(0, named=True)
    assert row["yaw"] == 270
    assert row["x"] == 1.5


def test_clear_forgets_everything(pool):
    piece = pool.acquire("floor", Vec3(0, 0, 0), IDENTITY, GROUP_FLOORS)
    pool.release(piece)
    pool.clear()
    assert pool.total_count == 0
    assert pool.created_count() == 0


def test_template_from_dict_requires_three_sizes():
    with pytest.raises(ValueError):
        template_from_dict("bad", {"size": [1, 2]})
    template = template_from_dict("ok", {"size": [1, 2, 3], "walkable": True})
    assert template.walkable
    assert template.half_extents == (0.5, 1.5)


def test_registry_require_reports_missing(registry):
    registry.require(["floor", "wall"], "structural")
    with pytest.raises(ValueError, match="Missing structural templates: lava, None"):
        registry.require(["floor", "lava", None], "structural")
    assert "crate" in registry
    assert registry.get_template(None) is None


def test_footprint_aabb_of_rotated_template():
    registry = TemplateRegistry.from_config({"slab": {"size": [4.0, 1.0, 2.0]}})
    slab = registry.get_template("slab")
    assert slab.footprint_aabb(Vec3(0, 0, 0), 0) == pytest.approx((-2, -1, 2, 1))
    assert slab.footprint_aabb(Vec3(0, 0, 0), 90) == pytest.approx((-1, -2, 1, 2))
