"""Index selection policies for picking the next stored document."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional, Tuple

ZIPFIAN_CONSTANT = 0.99

UNIFORM = "uniform"
ZIPFIAN = "zipfian"
LATEST = "latest"
DISTRIBUTIONS: Tuple[str, ...] = (UNIFORM, ZIPFIAN, LATEST)


def zeta(n: int, theta: float) -> float:
    """Generalized harmonic number H_{n,theta}."""
    total = 0.0
    for i in range(1, n + 1):
        total += 1.0 / (i ** theta)
    return total


class ZipfianGenerator:
    """Zipfian variates over the closed range ``[min_value, max_value]``.

    ``min_value`` is the most popular item and popularity falls off as a power
    law towards ``max_value``. Uses the Gray et al. rejection-free method that
    YCSB uses, without scrambling.
    """

    def __init__(
        self,
        min_value: int,
        max_value: int,
        theta: float = ZIPFIAN_CONSTANT,
        rng: Optional[random.Random] = None,
    ) -> None:
        if max_value < min_value:
            raise ValueError(f"ZipfianGenerator range is empty: [{min_value}, {max_value}]")
        if not 0.0 < theta < 1.0:
            raise ValueError(f"theta must be in (0, 1), got {theta}")
        self.base = min_value
        self.items = max_value - min_value + 1
        self.theta = theta
        self.rng = rng or random.Random()
        self.zeta_n = zeta(self.items, theta)
        self.zeta_2 = zeta(2, theta)
        self.alpha = 1.0 / (1.0 - theta)
        # two or fewer items are fully covered by the first two branches of next()
        if self.items > 2:
            self.eta = (1.0 - (2.0 / self.items) ** (1.0 - theta)) / (1.0 - self.zeta_2 / self.zeta_n)
        else:
            self.eta = 0.0

    @property
    def max_value(self) -> int:
        return self.base + self.items - 1

    def next(self) -> int:
        if self.items == 1:
            return self.base
        u = self.rng.random()
        uz = u * self.zeta_n
        if uz < 1.0:
            return self.base
        if uz < 1.0 + 0.5 ** self.theta:
            return self.base + 1
        offset = int(self.items * ((self.eta * u - self.eta + 1.0) ** self.alpha))
        return self.base + min(offset, self.items - 1)


@dataclass
class QueryWindow:
    """Bounds for the limit/offset of windowed reads; inverted pairs are swapped."""

    limit_min: int = 10
    limit_max: int = 100
    offset_min: int = 10
    offset_max: int = 100

    def __post_init__(self) -> None:
        if self.limit_max < self.limit_min:
            self.limit_min, self.limit_max = self.limit_max, self.limit_min
        if self.offset_max < self.offset_min:
            self.offset_min, self.offset_max = self.offset_max, self.offset_min

    def random_limit(self, rng: random.Random) -> int:
        if self.limit_min == self.limit_max:
            return self.limit_max
        return rng.randint(self.limit_min, self.limit_max)

    def random_offset(self, rng: random.Random) -> int:
        if self.offset_min == self.offset_max:
            return self.offset_max
        return rng.randint(self.offset_min, self.offset_max)


def normalize_distribution(name: Optional[str]) -> str:
    mode = (name or UNIFORM).strip().lower()
    if mode not in DISTRIBUTIONS:
        logging.warning("Unknown request distribution %r; falling back to %s", name, UNIFORM)
        return UNIFORM
    return mode


class DistributionSampler:
    """Picks a target index under the configured request distribution.

    The skewed modes share one lazily built :class:`ZipfianGenerator` over
    ``[1, max(1, stored_count - 1)]``; it is sized by the stored count seen on the first
    skewed draw and kept for the sampler's lifetime.
    """

    def __init__(
        self,
        mode: Optional[str] = UNIFORM,
        window: Optional[QueryWindow] = None,
        rng: Optional[random.Random] = None,
        theta: float = ZIPFIAN_CONSTANT,
    ) -> None:
        self.mode = normalize_distribution(mode)
        self.window = window or QueryWindow()
        self.rng = rng or random.Random()
        self.theta = theta
        self._zipfian: Optional[ZipfianGenerator] = None

    @property
    def zipfian(self) -> Optional[ZipfianGenerator]:
        return self._zipfian

    def _zipfian_for(self, stored_count: int) -> ZipfianGenerator:
        if self._zipfian is None:
            # a single stored document still gets a one-item range
            upper = max(1, stored_count - 1)
            self._zipfian = ZipfianGenerator(1, upper, self.theta, rng=self.rng)
            logging.debug("Built zipfian sampler over [1, %d]", upper)
        return self._zipfian

    def uniform(self, population: int) -> int:
        if population <= 0:
            raise ValueError(f"population must be positive, got {population}")
        return self.rng.randrange(population)

    def sample(self, population: int, stored_count: int) -> int:
        if self.mode == ZIPFIAN:
            return population - self._zipfian_for(stored_count).next()
        if self.mode == LATEST:
            shift = self.window.limit_max + self.window.offset_max
            return population - self._zipfian_for(stored_count).next() - shift
        return self.uniform(population)
