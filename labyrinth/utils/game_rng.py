from __future__ import annotations

"""Deterministic random number generator shared by the maze pipeline.

Every random decision made while generating a maze (wall rolls, branch
choice, ceiling variants, decoration offsets and rotations, surface
sampling) goes through a single :class:`GameRNG` so that a seed fully
reproduces a round.  The generator wraps :func:`numpy.random.default_rng`.
"""

import json
import random
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import structlog

log = structlog.get_logger(__name__)


class GameRNG:
    def __init__(self, seed: Optional[int] = None) -> None:
        self.initial_seed = seed if seed is not None else random.randint(0, 2**32 - 1)
        self.rng = np.random.default_rng(self.initial_seed)
        log.debug("GameRNG initialized", seed=self.initial_seed)

    # ------------------------------------------------------------------
    # basic random helpers
    # ------------------------------------------------------------------
    def get_int(self, a: int, b: int) -> int:
        """Uniform integer in the closed range ``[a, b]``."""
        if a > b:
            raise ValueError("a <= b")
        return int(self.rng.integers(a, b + 1))

    def get_float(self, a: float = 0.0, b: float = 1.0) -> float:
        """Uniform float in the half-open range ``[a, b)``."""
        if a > b:
            raise ValueError("a <= b")
        return a + (b - a) * float(self.rng.random())

    def chance(self, percent: float) -> bool:
        """Roll a d100: True when the roll lands under ``percent``."""
        return self.get_int(0, 99) < percent

    def choice(self, items: Sequence[Any]) -> Any:
        if not items:
            raise ValueError("items empty")
        return items[self.get_int(0, len(items) - 1)]

    def shuffle(self, seq: List[Any], start: int = 0) -> None:
        """Fisher-Yates shuffle of ``seq[start:]`` in place.

        Items before ``start`` keep their positions.
        """
        if start < 0:
            raise ValueError("start >= 0")
        for i in range(len(seq) - 1, start, -1):
            j = self.get_int(start, i)
            seq[i], seq[j] = seq[j], seq[i]

    # ------------------------------------------------------------------
    # state management
    # ------------------------------------------------------------------
    def get_state(self) -> Dict[str, Any]:
        return {
            "random_state": self.rng.bit_generator.state,
            "initial_seed": self.initial_seed,
        }

    def set_state(self, state: Dict[str, Any]) -> None:
        if "random_state" in state:
            self.rng.bit_generator.state = state["random_state"]
        if "initial_seed" in state:
            self.initial_seed = state["initial_seed"]

    def save_state_to_file(self, filename: str) -> None:
        with open(filename, "w", encoding="utf-8") as f:
            json.dump(self.get_state(), f, indent=2)

    def load_state_from_file(self, filename: str) -> None:
        with open(filename, "r", encoding="utf-8") as f:
            state = json.load(f)
        self.set_state(state)

    def reset(self, seed: Optional[int] = None) -> None:
        self.initial_seed = seed if seed is not None else random.randint(0, 2**32 - 1)
        self.rng = np.random.default_rng(self.initial_seed)
        log.debug("GameRNG reset", seed=self.initial_seed)


__all__ = ["GameRNG"]
