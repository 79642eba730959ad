"""
Forward induction: calibrate the trinomial tree one level at a time.

Level i + 1 is laid out first: a grid centred on the forward of the
centre node, spaced by the level's reference vol (see lattice). Each node
j of level i then branches to children down < K_j < up, with K_j the
middle child, u_j = up - K_j and d_j = K_j - down. An option struck at K_j
and expiring at t_{i+1} only gets a non-linear payoff from node j itself.
Every node above j is entirely in the money for a call, every node below
j entirely in the money for a put. That gives the branch probabilities
directly (Derman, Kani & Chriss 1996):

    calls, j >= centre:  p_up   = (C_j / D - sum_{m>j} Q_m (F_m - K_j)) / (Q_j u_j)
    puts,  j <  centre:  p_down = (P_j / D - sum_{m<j} Q_m (K_j - F_m)) / (Q_j d_j)

with Q_j the state prices, F_j the forwards and D the one-step discount
factor. The forward condition p_up u_j - p_down d_j = F_j - K_j gives the
other one, and p_mid = 1 - p_up - p_down. The sums are running sums, so
a level costs O(nodes).

A node whose solution is not a probability vector (negative beyond
PROBABILITY_TOLERANCE, or not finite) gets the moment-matched
probabilities of its quote vol instead. Anything left marginally
outside [0, 1] is clipped and renormalized. Both repairs are recorded.

References:
    Derman, E., Kani, I. & Chriss, N. (1996). Implied trinomial trees of
    the volatility smile. Journal of Derivatives 3(4).
"""

import logging
from enum import Enum
from typing import List, Optional, Set, Tuple

import numpy as np

from . import config
from .errors import ArbitrageViolation, CalibrationError, InvalidInputError
from .lattice import (Level, TimeGrid, TrinomialTree, bounded_spacing, branch_spacing,
                      level_spots, moment_matched_probabilities)
from .oracle import OptionPriceOracle, ReferenceLattice
from .rates import step_factors

logger = logging.getLogger(__name__)


class CalibrationState(Enum):
    INITIALIZED = "initialized"
    LEVEL_CALIBRATING = "level_calibrating"
    EXTRACTED = "extracted"
    ASSEMBLED = "assembled"
    FAILED = "failed"


class CalibrationRun:
    """
    State of one calibration run.

    INITIALIZED -> LEVEL_CALIBRATING(0) -> ... -> LEVEL_CALIBRATING(n - 1)
    -> EXTRACTED -> ASSEMBLED, or FAILED from any non-terminal state.
    Any other transition raises RuntimeError.
    """

    def __init__(self, n_levels: int):
        self.n_levels = n_levels
        self.state = CalibrationState.INITIALIZED
        self.level: Optional[int] = None
        self.reason: Optional[str] = None
        self.history: List[Tuple[CalibrationState, Optional[int]]] = [(self.state, None)]

    @property
    def is_terminal(self) -> bool:
        return self.state in (CalibrationState.ASSEMBLED, CalibrationState.FAILED)

    def _move(self, state: CalibrationState, level: Optional[int] = None) -> None:
        self.state = state
        self.level = level
        self.history.append((state, level))

    def enter_level(self, index: int) -> None:
        if self.state is CalibrationState.INITIALIZED:
            expected = 0
        elif self.state is CalibrationState.LEVEL_CALIBRATING:
            expected = self.level + 1
        else:
            raise RuntimeError(f"cannot calibrate level {index} from state {self.state.value}")
        if index != expected or index >= self.n_levels:
            raise RuntimeError(f"level {index} out of order, expected {expected}")
        self._move(CalibrationState.LEVEL_CALIBRATING, index)

    def mark_extracted(self) -> None:
        if self.state is not CalibrationState.LEVEL_CALIBRATING or self.level != self.n_levels - 1:
            raise RuntimeError(f"extraction before the last level (state {self.state.value}, "
                               f"level {self.level})")
        self._move(CalibrationState.EXTRACTED)

    def mark_assembled(self) -> None:
        if self.state is not CalibrationState.EXTRACTED:
            raise RuntimeError(f"assembly from state {self.state.value}")
        self._move(CalibrationState.ASSEMBLED)

    def fail(self, reason: str) -> None:
        if self.is_terminal:
            raise RuntimeError(f"run already {self.state.value}")
        self.reason = reason
        self._move(CalibrationState.FAILED, self.level)


def solve_level(state_prices, forwards, children, discount, calls, puts):
    """
    Branch probabilities of one level from its quotes.

    Returns the raw (p_up, p_mid, p_down) arrays; nothing is repaired here.
    """
    Q = np.asarray(state_prices, dtype=float)
    F = np.asarray(forwards, dtype=float)
    n = F.size
    centre = n // 2
    K = children[1:-1]
    u = children[2:] - K
    d = K - children[:-2]
    offset = F - K

    # in-the-money value of the other nodes, struck at each middle child
    QF = Q * F
    mass_above = np.append(np.cumsum(Q[::-1])[::-1][1:], 0.0)
    value_above = np.append(np.cumsum(QF[::-1])[::-1][1:], 0.0)
    mass_below = np.concatenate(([0.0], np.cumsum(Q)[:-1]))
    value_below = np.concatenate(([0.0], np.cumsum(QF)[:-1]))
    above = value_above - K * mass_above
    below = K * mass_below - value_below

    p_up = np.empty(n)
    p_down = np.empty(n)
    with np.errstate(divide="ignore", invalid="ignore"):
        upper = slice(centre, n)
        p_up[upper] = (calls[upper] / discount - above[upper]) / (Q[upper] * u[upper])
        p_down[upper] = (p_up[upper] * u[upper] - offset[upper]) / d[upper]
        lower = slice(0, centre)
        p_down[lower] = (puts[lower] / discount - below[lower]) / (Q[lower] * d[lower])
        p_up[lower] = (p_down[lower] * d[lower] + offset[lower]) / u[lower]
    return p_up, 1.0 - p_up - p_down, p_down


class ForwardInductionCalibrator:
    """
    Builds and calibrates the tree of one run.

    The oracle supplies vols and quotes; the run, if given, is moved
    through LEVEL_CALIBRATING(i) as each level is solved. Repairs are
    collected in violations.
    """

    def __init__(self, grid: TimeGrid, oracle: OptionPriceOracle,
                 run: Optional[CalibrationRun] = None):
        self.grid = grid
        self.oracle = oracle
        self.run = run if run is not None else CalibrationRun(grid.n_steps)
        self.violations: List[ArbitrageViolation] = []

    def adjusted_nodes(self) -> Set[Tuple[int, int]]:
        """(level, position) of every node whose probabilities were repaired."""
        return {(v.level, v.position) for v in self.violations if v.kind in ("override", "clip")}

    def calibrate(self) -> TrinomialTree:
        market = self.oracle.market
        times = self.grid.times
        discounts, growths = step_factors(market.financing_rate, market.dividend_rate, times)
        self.reference = ReferenceLattice(market.spot)
        self._spacing = 0.0
        self._total_variance = 0.0

        tree = TrinomialTree(self.grid)
        tree.append(Level(0, 0.0, [market.spot], [1.0]))
        for i in range(self.grid.n_steps):
            self.run.enter_level(i)
            self._calibrate_level(tree, i, times[i + 1], discounts, growths[i])

        logger.info("calibrated %d levels, %d nodes, %d violations",
                    self.grid.n_steps, sum(level.size for level in tree.levels),
                    len(self.violations))
        return tree

    def _record(self, level: Level, positions, kind: str, probabilities=None) -> None:
        for j in np.flatnonzero(positions):
            raw = () if probabilities is None else tuple(float(p[j]) for p in probabilities)
            self.violations.append(ArbitrageViolation(
                level=level.index, position=int(j), time=float(level.time),
                spot=float(level.spots[j]), kind=kind,
                boundary=j in (0, level.size - 1), raw_probabilities=raw))

    def _reference_vols(self, i: int, t_next: float, forward: float) -> Tuple[float, float]:
        """
        Spacing vol and reference lattice vol of level i.

        Both come from the at-the-money quote at t_next: the lattice takes
        the forward vol between the two levels, the spacing the larger of
        that and the at-the-money vol.
        """
        try:
            atm_vol = self.oracle.volatility(t_next, forward)
        except InvalidInputError as exc:
            raise exc.at(level=i, position=i) from exc
        if not np.isfinite(atm_vol):
            raise InvalidInputError("at-the-money quote has no time value",
                                    time=t_next, strike=forward, level=i, position=i)

        total_variance = atm_vol**2 * t_next
        forward_vol = np.sqrt(max(total_variance - self._total_variance, 0.0) / self.grid.dt)
        self._total_variance = total_variance
        lattice_vol = float(np.clip(forward_vol, config.MIN_REFERENCE_VOL, config.MAX_REFERENCE_VOL))
        return max(atm_vol, forward_vol), lattice_vol

    def _calibrate_level(self, tree: TrinomialTree, i: int, t_next: float,
                         discounts: np.ndarray, growth: float) -> None:
        dt = self.grid.dt
        level = tree[i]
        forwards = level.spots * growth
        broken = ~np.isfinite(forwards) | (forwards <= 0)
        if broken.any():
            j = int(np.flatnonzero(broken)[0])
            raise CalibrationError("non-positive or non-finite forward",
                                   level=i, position=j, value=float(forwards[j]))

        centre = forwards[i]
        spacing_vol, lattice_vol = self._reference_vols(i, t_next, centre)
        self._spacing = bounded_spacing(branch_spacing(spacing_vol, dt), self._spacing, i)
        children = level_spots(centre, self._spacing, i + 1)
        strikes = children[1:-1]

        vols, uninformative, invalid_quotes = self.oracle.volatilities(t_next, strikes)
        self._record(level, uninformative, "uninformative_quote")
        self._record(level, invalid_quotes, "invalid_quote")

        capped = self.reference.advance(forwards, children, discounts[i], lattice_vol, t_next)
        self._record(level, capped, "variance_cap")
        calls, puts = self.oracle.quote(self.reference, t_next, strikes, vols)

        raw = solve_level(level.state_prices, forwards, children, discounts[i], calls, puts)
        probabilities = np.column_stack(raw)

        invalid = ~np.all(np.isfinite(probabilities), axis=1) | np.any(
            probabilities < -config.PROBABILITY_TOLERANCE, axis=1)
        if invalid.any():
            p_up, p_mid, p_down, _ = moment_matched_probabilities(
                forwards, children[:-2], strikes, children[2:], np.expm1(vols**2 * dt))
            probabilities[invalid] = np.column_stack((p_up, p_mid, p_down))[invalid]
            self._record(level, invalid, "override", raw)

        clipped = np.clip(probabilities, 0.0, 1.0)
        clipped /= clipped.sum(axis=1, keepdims=True)
        moved = np.any(np.abs(clipped - probabilities) > config.PROBABILITY_TOLERANCE, axis=1)
        self._record(level, moved, "clip", raw)
        probabilities = clipped

        tree.finalize_level(i, forwards, probabilities)

        Q = level.state_prices
        scattered = np.zeros(children.size)
        scattered[2:] += Q * probabilities[:, 0]
        scattered[1:-1] += Q * probabilities[:, 1]
        scattered[:-2] += Q * probabilities[:, 2]
        state_prices = discounts[i] * scattered
        if not np.all(np.isfinite(state_prices)) or state_prices.sum() <= 0:
            raise CalibrationError("state prices are not finite and positive",
                                   level=i + 1, value=float(state_prices.sum()))

        tree.append(Level(i + 1, t_next, children, state_prices))
        logger.debug("level %d: %d nodes, spacing %.5f, %d overridden, %d clipped",
                     i, level.size, self._spacing, int(invalid.sum()), int(moved.sum()))
