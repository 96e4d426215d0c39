# labyrinth/config.py
"""YAML configuration for maze generation.

The maze file holds the geometry templates, the structural role mapping,
navigation and decoration settings, the round schedule and an optional seed.
Missing keys fall back to the defaults of the dataclasses below.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog
import yaml

from labyrinth.world.decorations import DecorationSettings, DecorationType
from labyrinth.world.maze_builder import DEFAULT_OVERLAP, StructuralTemplates
from labyrinth.systems.navigation.surface import (
    DEFAULT_AGENT_RADIUS,
    DEFAULT_MIN_REGION_SIZE,
)
from labyrinth.world.topology import DEFAULT_WALL_PROBABILITY, clamp_wall_probability

log = structlog.get_logger(__name__)

PROJECT_DIR = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_DIR / "config"
MAZE_CONFIG_FILE = CONFIG_DIR / "maze.yaml"


# --- Config Loading Helpers ---
def load_yaml_config(config_path: Path, config_name: str) -> Dict[str, Any]:
    """Loads a YAML file. Missing files and parse errors are raised."""
    if not config_path.is_file():
        log.error(f"{config_name} config file not found", path=str(config_path))
        raise FileNotFoundError(f"{config_name} configuration file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        log.error(
            f"Error parsing YAML for {config_name}",
            path=str(config_path),
            error=str(e),
            exc_info=True,
        )
        raise
    if config_data is None:
        log.warning(f"{config_name} config file is empty.", path=str(config_path))
        return {}
    if not isinstance(config_data, dict):
        log.error(f"{config_name} config must be a mapping", path=str(config_path))
        raise ValueError(f"{config_name} configuration must be a mapping: {config_path}")
    log.info(f"{config_name} config loaded", path=str(config_path))
    return config_data


@dataclass(frozen=True)
class RoundConfig:
    rows: int
    cols: int
    wall_probability: float = DEFAULT_WALL_PROBABILITY

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoundConfig":
        try:
            rows = int(data["rows"])
            cols = int(data["cols"])
        except KeyError as e:
            log.error("Round entry missing key", key=str(e), entry=dict(data))
            raise
        return cls(
            rows=rows,
            cols=cols,
            wall_probability=clamp_wall_probability(
                data.get("wall_probability", DEFAULT_WALL_PROBABILITY)
            ),
        )


@dataclass(frozen=True)
class NavigationSettings:
    agent_radius: float = DEFAULT_AGENT_RADIUS
    min_region_size: float = DEFAULT_MIN_REGION_SIZE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NavigationSettings":
        return cls(
            agent_radius=float(data.get("agent_radius", DEFAULT_AGENT_RADIUS)),
            min_region_size=float(data.get("min_region_size", DEFAULT_MIN_REGION_SIZE)),
        )


def _structural_from_dict(data: Mapping[str, Any]) -> StructuralTemplates:
    return StructuralTemplates(
        floor=data.get("floor"),
        wall=data.get("wall"),
        ceiling=data.get("ceiling"),
        pillar=data.get("pillar"),
        ceiling_lit=data.get("ceiling_lit"),
        ceiling_dark=data.get("ceiling_dark"),
        overlap=float(data.get("overlap", DEFAULT_OVERLAP)),
    )


def _decoration_settings_from_dict(data: Mapping[str, Any]) -> DecorationSettings:
    defaults = DecorationSettings()
    return DecorationSettings(
        spawn_probability=float(data.get("spawn_probability", defaults.spawn_probability)),
        wall_clearance=float(data.get("wall_clearance", defaults.wall_clearance)),
        max_per_cell=int(data.get("max_per_cell", defaults.max_per_cell)),
        min_spacing=float(data.get("min_spacing", defaults.min_spacing)),
        safety_margin=float(data.get("safety_margin", defaults.safety_margin)),
    )


def _decoration_type_from_dict(data: Mapping[str, Any]) -> DecorationType:
    spacing = data.get("min_spacing")
    return DecorationType(
        template=data.get("template"),
        probability=float(data.get("probability", 1.0)),
        min_spacing=None if spacing is None else float(spacing),
        extra_yaw=float(data.get("extra_yaw", 0.0)),
    )


@dataclass(frozen=True)
class MazeConfig:
    templates: Dict[str, Dict[str, Any]]
    structure: StructuralTemplates
    navigation: NavigationSettings = field(default_factory=NavigationSettings)
    decoration_settings: DecorationSettings = field(default_factory=DecorationSettings)
    decorations: Tuple[DecorationType, ...] = ()
    rounds: Tuple[RoundConfig, ...] = ()
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MazeConfig":
        templates = data.get("templates") or {}
        if not isinstance(templates, dict):
            log.error("'templates' must be a mapping", got=type(templates).__name__)
            raise ValueError("'templates' section must be a mapping")

        decorations_section = data.get("decorations") or {}
        catalog: List[DecorationType] = [
            _decoration_type_from_dict(entry)
            for entry in decorations_section.get("catalog") or []
        ]
        rounds = tuple(RoundConfig.from_dict(r) for r in data.get("rounds") or [])
        seed = data.get("seed")

        config = cls(
            templates=dict(templates),
            structure=_structural_from_dict(data.get("structure") or {}),
            navigation=NavigationSettings.from_dict(data.get("navigation") or {}),
            decoration_settings=_decoration_settings_from_dict(decorations_section),
            decorations=tuple(catalog),
            rounds=rounds,
            seed=None if seed is None else int(seed),
        )
        log.debug(
            "Maze config parsed",
            templates=len(config.templates),
            decorations=len(config.decorations),
            rounds=len(config.rounds),
        )
        return config

    def round_for(self, index: int) -> RoundConfig:
        """Round ``index`` (0-based); past the end the last round repeats."""
        if not self.rounds:
            log.error("No rounds configured")
            raise ValueError("Configuration defines no rounds")
        return self.rounds[min(max(index, 0), len(self.rounds) - 1)]


def load_maze_config(config_path: Path = MAZE_CONFIG_FILE) -> MazeConfig:
    return MazeConfig.from_dict(load_yaml_config(config_path, "Maze"))
