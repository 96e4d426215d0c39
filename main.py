# main.py
import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

import polars as pl
import structlog

from labyrinth.config import MazeConfig, RoundConfig, load_maze_config
from labyrinth.systems.navigation.surface import NavigableSurfaceSampler
from labyrinth.templates.registry import TemplateRegistry
from labyrinth.utils.game_rng import GameRNG
from labyrinth.utils.logging_utils import setup_logging
from labyrinth.world.cell_grid import CellGrid
from labyrinth.world.decorations import DecorationPlacer
from labyrinth.world.geometry_pool import GeometryPool
from labyrinth.world.maze_builder import MazeBuilder

# --- Paths relative to this script's location ---
SCRIPT_DIR = Path(__file__).parent.resolve()
CONFIG_DIR = SCRIPT_DIR / "config"
CONFIG_FILE = CONFIG_DIR / "maze.yaml"

DEFAULT_OUTPUT_FILE: Optional[str] = None

log = structlog.get_logger()  # module-level logger


def load_configs(config_path: Path = CONFIG_FILE) -> MazeConfig:
    return load_maze_config(config_path)


def init_maze_builder(config: MazeConfig, rng: GameRNG) -> MazeBuilder:
    """Wire registry, pool, sampler and decorator into one builder."""
    templates = TemplateRegistry.from_config(config.templates)
    pool = GeometryPool(templates)
    sampler = NavigableSurfaceSampler(
        pool,
        rng,
        agent_radius=config.navigation.agent_radius,
        min_region_size=config.navigation.min_region_size,
    )
    decorations = DecorationPlacer(
        pool, templates, config.decorations, rng, config.decoration_settings
    )
    return MazeBuilder(templates, config.structure, pool, rng, sampler, decorations)


# --- Debug Maze Printing ---
def print_maze(grid: CellGrid, round_number: int) -> None:
    """Prints the wall layout of a generated grid to the console."""
    print(f"\n--- Round {round_number}: {grid.rows}x{grid.cols} ---")
    print(grid.to_ascii())
    print("-" * (grid.cols * 4 + 1))


def run_round(builder: MazeBuilder, round_cfg: RoundConfig, round_number: int) -> pl.DataFrame:
    dims = builder.generate_maze(round_cfg.rows, round_cfg.cols, round_cfg.wall_probability)
    grid = builder.grid
    reached = len(grid.reachable_from(0, 0))
    spawn = builder.spawn_position(0, 0)
    log.info(
        "Round complete",
        round=round_number,
        width=round(dims.width, 2),
        height=round(dims.height, 2),
        reachable=f"{reached}/{grid.size}",
        spawn=tuple(round(v, 2) for v in spawn),
        decorations=len(builder.decorations.placed) if builder.decorations else 0,
    )
    return builder.pool.to_frame().with_columns(pl.lit(round_number, dtype=pl.UInt32).alias("round"))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate procedural maze rounds and their geometry layout."
    )
    parser.add_argument(
        "--config", type=Path, default=CONFIG_FILE, help="Maze YAML configuration."
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for RNG (default: config seed, else time-based)",
    )
    parser.add_argument(
        "--round",
        type=int,
        default=None,
        help="Run only this round (1-based); default runs every configured round.",
    )
    parser.add_argument(
        "--output-file",
        default=DEFAULT_OUTPUT_FILE,
        help="Write the geometry manifest of every round as an Arrow file.",
    )
    parser.add_argument(
        "--save-rng-state",
        default=None,
        help="Write the seeded RNG state as JSON before generating, to replay the run.",
    )
    parser.add_argument(
        "--load-rng-state",
        default=None,
        help="Restore RNG state from a file written by --save-rng-state.",
    )
    parser.add_argument(
        "--no-ascii", action="store_true", help="Do not print the maze layouts."
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit logs as JSON lines"
    )
    args = parser.parse_args(argv)
    if args.round is not None and args.round < 1:
        parser.error(f"--round must be 1 or greater, got {args.round}")
    return args


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the maze generator."""
    args = parse_args(argv)
    log_level = (
        logging.DEBUG
        if args.verbose
        else getattr(logging, args.log_level.upper(), logging.INFO)
    )
    setup_logging(log_level, json_logs=args.json_logs)
    log.info("Maze generator starting...", config=str(args.config))

    try:
        config = load_configs(args.config)
        if args.round is not None:
            rounds = [(args.round, config.round_for(args.round - 1))]
        else:
            rounds = list(enumerate(config.rounds, start=1))
        if not rounds:
            raise ValueError("Configuration defines no rounds")

        seed = args.seed if args.seed is not None else config.seed
        if seed is None:
            seed = int(time.time() * 1000)
        rng = GameRNG(seed=seed)
        if args.load_rng_state:
            rng.load_state_from_file(args.load_rng_state)
            seed = rng.initial_seed
            log.info("RNG state restored", path=args.load_rng_state)
        log.info("Using maze seed", seed=seed)
        if args.save_rng_state:
            rng.save_state_to_file(args.save_rng_state)
            log.info("RNG state saved", path=args.save_rng_state)

        builder = init_maze_builder(config, rng)
        builder.validate_templates()
    # --- Exception Handling ---
    except FileNotFoundError as e:
        log.critical("Required file not found during init", error=str(e), exc_info=True)
        sys.exit(f"Initialization failed: File not found - {e}")
    except KeyError as e:
        log.critical("Missing required key, possibly in config", key=str(e), exc_info=True)
        sys.exit(f"Configuration failed: Missing key {e}")
    except ValueError as e:
        log.critical("Invalid configuration", error=str(e), exc_info=True)
        sys.exit(f"Configuration failed: {e}")
    except Exception as e:
        log.critical("Fatal initialization error", error=str(e), exc_info=True)
        sys.exit(f"Initialization failed: {e}")
    # --- End Exception Handling ---

    start_time = time.perf_counter()
    manifests: List[pl.DataFrame] = []
    for round_number, round_cfg in rounds:
        manifests.append(run_round(builder, round_cfg, round_number))
        if not args.no_ascii:
            print_maze(builder.grid, round_number)

    pool = builder.pool
    log.info(
        "All rounds complete",
        rounds=len(rounds),
        pieces_created=pool.created_count(),
        pieces_total=pool.total_count,
        duration_s=round(time.perf_counter() - start_time, 3),
    )

    if args.output_file:
        manifest = pl.concat(manifests)
        manifest.write_ipc(args.output_file)
        log.info("Manifest saved", path=args.output_file, shape=manifest.shape)


if __name__ == "__main__":
    main()
