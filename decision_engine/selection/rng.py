from __future__ import annotations

from typing import Protocol

import numpy as np


class Rng(Protocol):
    def uniform(self) -> float:
        """Return a float in ``[0, 1)``."""
        ...


class DefaultRng:
    """Fresh OS-seeded generator per draw, so concurrent decisions share no state."""

    def uniform(self) -> float:
        return float(np.random.default_rng().random())


class SeededRng:
    """Reproducible draws from a single seeded generator."""

    def __init__(self, seed: int) -> None:
        self._generator = np.random.default_rng(seed)

    def uniform(self) -> float:
        return float(self._generator.random())
