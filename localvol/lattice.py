"""
Time grid and trinomial lattice geometry.

Level i of the tree has 2i + 1 nodes, strictly increasing in spot.
Node j of level i branches to nodes j (down), j + 1 (middle) and j + 2
(up) of level i + 1, so the tree recombines.

Geometry rule: level i is a geometric grid centred on the forward F(t_i)
with its own log spacing dx_i,

    S_{i,j} = F(t_i) * exp(dx_i * (j - i)),    dx_i = vol_i * sqrt(SPACING_MULTIPLIER * dt)

where vol_i is the reference vol of the step into level i. The forward of
node j of level i is F(t_{i+1}) * exp(dx_i * (j - i)), so it sits
(j - i) * (dx_i - dx_{i+1}) away from its middle child in log terms.
Consecutive spacings are bounded so that this offset never exceeds half
a step: every forward then stays strictly between its down and up
children and the moment-matched branching stays feasible.
"""

from dataclasses import dataclass, replace
from typing import Iterator, List, NamedTuple, Optional

import numpy as np

from . import config
from .errors import InvalidInputError


@dataclass(frozen=True)
class TimeGrid:
    """N equal steps from 0 to max_time."""
    n_steps: int
    max_time: float

    def __post_init__(self):
        if (isinstance(self.n_steps, bool) or not isinstance(self.n_steps, (int, np.integer))
                or self.n_steps < 1):
            raise InvalidInputError(f"n_steps must be a positive integer, got {self.n_steps!r}")
        if not np.isfinite(self.max_time) or self.max_time <= 0:
            raise InvalidInputError(f"max_time must be positive, got {self.max_time!r}")

    @property
    def dt(self) -> float:
        return self.max_time / self.n_steps

    @property
    def times(self) -> np.ndarray:
        return np.linspace(0.0, self.max_time, self.n_steps + 1)


def _read_only(values) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class Level:
    """
    One time level of the tree.

    probabilities has shape (2i + 1, 3) with columns (p_up, p_mid, p_down);
    it and forwards stay None until the level is finalized, and forever on
    the terminal level.
    """
    index: int
    time: float
    spots: np.ndarray
    state_prices: np.ndarray
    forwards: Optional[np.ndarray] = None
    probabilities: Optional[np.ndarray] = None

    def __post_init__(self):
        spots = _read_only(self.spots)
        state_prices = _read_only(self.state_prices)
        size = 2 * self.index + 1
        if spots.shape != (size,) or state_prices.shape != (size,):
            raise ValueError(f"level {self.index} needs {size} nodes, got {spots.shape}")
        if np.any(np.diff(spots) <= 0):
            raise ValueError(f"spots of level {self.index} are not strictly increasing")
        object.__setattr__(self, "spots", spots)
        object.__setattr__(self, "state_prices", state_prices)
        if self.forwards is not None:
            object.__setattr__(self, "forwards", _read_only(self.forwards))
        if self.probabilities is not None:
            probabilities = _read_only(self.probabilities)
            if probabilities.shape != (size, 3):
                raise ValueError(f"level {self.index} needs ({size}, 3) probabilities")
            object.__setattr__(self, "probabilities", probabilities)

    @property
    def size(self) -> int:
        return self.spots.size

    @property
    def is_final(self) -> bool:
        return self.probabilities is not None

    def finalize(self, forwards, probabilities) -> "Level":
        if self.is_final:
            raise ValueError(f"level {self.index} is already finalized")
        return replace(self, forwards=forwards, probabilities=probabilities)


class Node(NamedTuple):
    level: int
    position: int
    time: float
    spot: float
    state_price: float
    p_up: float
    p_mid: float
    p_down: float


class TrinomialTree:
    """Levels of one calibration run, appended strictly in order."""

    def __init__(self, grid: TimeGrid):
        self.grid = grid
        self._levels: List[Level] = []

    @property
    def levels(self) -> tuple:
        return tuple(self._levels)

    def __len__(self) -> int:
        return len(self._levels)

    def __getitem__(self, index: int) -> Level:
        return self._levels[index]

    def append(self, level: Level) -> None:
        if level.index != len(self._levels):
            raise ValueError(f"expected level {len(self._levels)}, got {level.index}")
        if self._levels and not self._levels[-1].is_final:
            raise ValueError(f"level {level.index - 1} must be finalized first")
        if level.index > self.grid.n_steps:
            raise ValueError(f"tree has only {self.grid.n_steps} steps")
        self._levels.append(level)

    def finalize_level(self, index: int, forwards, probabilities) -> Level:
        """Attach transition data to the last level; a level is finalized once."""
        if index != len(self._levels) - 1:
            raise ValueError(f"only the last level can be finalized, got {index}")
        self._levels[index] = self._levels[index].finalize(forwards, probabilities)
        return self._levels[index]

    def node(self, i: int, j: int) -> Node:
        level = self._levels[i]
        if not 0 <= j < level.size:
            raise IndexError(f"level {i} has no node {j}")
        if level.is_final:
            p_up, p_mid, p_down = level.probabilities[j]
        else:
            p_up = p_mid = p_down = np.nan
        return Node(i, j, float(level.time), float(level.spots[j]),
                    float(level.state_prices[j]), float(p_up), float(p_mid), float(p_down))

    def nodes(self) -> Iterator[Node]:
        for level in self._levels:
            for j in range(level.size):
                yield self.node(level.index, j)


# ════════════════════════════════════════════════════════════════════════
#  GEOMETRY + BRANCHING
# ════════════════════════════════════════════════════════════════════════

def branch_spacing(vol: float, dt: float) -> float:
    """Log spacing of a level for a reference vol."""
    vol = float(np.clip(vol, config.MIN_REFERENCE_VOL, config.MAX_REFERENCE_VOL))
    return vol * np.sqrt(config.SPACING_MULTIPLIER * dt)


def bounded_spacing(spacing: float, previous: float, index: int) -> float:
    """
    Spacing of level index + 1, held close enough to the spacing of level
    index that no forward of level index moves more than half a step off
    its middle child.
    """
    if index == 0:
        return spacing
    lower = previous * 2 * index / (2 * index + 1)
    upper = previous * 2 * index / (2 * index - 1)
    return min(max(spacing, lower), upper)


def level_spots(centre: float, spacing: float, index: int) -> np.ndarray:
    """The 2 * index + 1 spots of a level centred on centre."""
    return centre * np.exp(spacing * (np.arange(2 * index + 1) - index))


def moment_matched_probabilities(forwards, down_children, mid_children, up_children, variance):
    """
    Branch probabilities matching a node's forward and variance.

    With children D < M < U, forward F and target variance V = F^2 * variance
    (variance is the lognormal expm1(vol^2 dt)):

        p_up   = (V + (F - M)(F - D)) / ((U - M)(U - D))
        p_down = (V + (F - M)(F - U)) / ((M - D)(U - D))
        p_mid  = 1 - p_up - p_down

    The children carry at most V = (U - F)(F - D) (p_mid = 0) and, with the
    forward off its middle child, at least max((M - F)(F - D), (F - M)(U - F))
    (p_down = 0 or p_up = 0). Targets outside that range are moved to its
    edge and flagged. Arrays broadcast, so variance of shape (m, 1) against
    n forwards gives m rows of n nodes.

    Returns
    -------
    p_up, p_mid, p_down, capped
    """
    F, D, M, U = forwards, down_children, mid_children, up_children
    target = F**2 * variance
    ceiling = (U - F) * (F - D)
    floor = np.maximum(np.maximum((M - F) * (F - D), (F - M) * (U - F)), 0.0)
    capped = (target > ceiling) | (target < floor)
    target = np.clip(target, floor, ceiling)
    p_up = (target + (F - M) * (F - D)) / ((U - M) * (U - D))
    p_down = (target + (F - M) * (F - U)) / ((M - D) * (U - D))
    return p_up, 1.0 - p_up - p_down, p_down, capped
