"""
Seedable random source shared by the engines.

All stochastic draws in the kernel (softmax sampling, satisfaction noise,
decision jitter, weather) go through one SeededRandom so that a run is
reproducible from its seed.
"""

from typing import Optional, Sequence, Any

import numpy as np


class SeededRandom:
    """Thin wrapper around numpy's Generator"""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def random(self) -> float:
        return float(self._rng.random())

    def uniform(self, low: float, high: float) -> float:
        return float(self._rng.uniform(low, high))

    def choice(self, options: Sequence[Any], p: Optional[Sequence[float]] = None) -> Any:
        idx = int(self._rng.choice(len(options), p=p))
        return options[idx]

    def reseed(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    @property
    def generator(self) -> np.random.Generator:
        return self._rng


class FixedRandom:
    """
    Replays a fixed sequence of draws, cycling when exhausted.

    Useful for forcing a particular branch of a stochastic decision.
    """

    def __init__(self, values: Sequence[float]):
        if not values:
            raise ValueError("FixedRandom needs at least one value")
        self.values = [float(v) for v in values]
        self._index = 0

    def random(self) -> float:
        value = self.values[self._index % len(self.values)]
        self._index += 1
        return value

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.random()
