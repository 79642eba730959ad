"""
Option price oracle: the calibrator's only view of the market.

OptionPriceOracle wraps a MarketSurface variant and the market context.
The calibrator asks it for three things and never looks at which
variant is behind it:

    volatility(time, strike)          implied vol of one market point
    volatilities(time, strikes)       implied vols of a whole tree level
    quote(reference, ...)             prices of those strikes

price(time, strike, is_call) gives the closed-form market price. The
calibration itself never calls it; quotes always go through implied vols.

Quotes
------
The calibration does not match closed-form prices directly. A reference
lattice is grown alongside the calibrated tree, on the same nodes, with a
single local vol per level (the level's reference vol). Its option prices
carry the discretization error of the tree geometry. A strike is quoted
as the reference price plus the closed-form correction from the
reference lattice's Black vol to the strike's own implied vol:

    quote(K) = reference(K) + DF * (Black(K, vol_K) - Black(K, vol_ref))

A flat smile or a pure term structure of vols is reproduced exactly by
the calibrated tree, and for a smile the tree only has to explain the
difference between strikes. A level is quoted in O(nodes), so a whole
calibration stays O(n_steps^2).
"""

import logging
from typing import Tuple

import numpy as np

from .black_scholes import black_prices
from .errors import InvalidInputError
from .lattice import moment_matched_probabilities
from .rates import discount_factor
from .surfaces import MarketContext

logger = logging.getLogger(__name__)


class ReferenceLattice:
    """
    State prices of a tree with one local vol per level.

    The lattice is advanced one level at a time on the node geometry of
    the tree being calibrated. total_variance is the sum of the level
    variances, so the lattice prices options like a Black model with vol
    sqrt(total_variance / time).
    """

    def __init__(self, spot: float):
        self.time = 0.0
        self.total_variance = 0.0
        self.spots = np.array([float(spot)])
        self.state_prices = np.array([1.0])

    @property
    def implied_volatility(self) -> float:
        if self.time <= 0:
            return 0.0
        return float(np.sqrt(self.total_variance / self.time))

    def advance(self, forwards: np.ndarray, children: np.ndarray, discount: float,
                vol: float, time: float) -> np.ndarray:
        """
        Branch every node of the current level into children.

        Parameters
        ----------
        forwards : forwards of the current nodes
        children : the 2 * len(forwards) + 1 spots of the next level
        discount : one-step discount factor
        vol : local vol of the level
        time : expiry of the next level

        Returns
        -------
        capped : bool mask of the nodes whose variance had to be moved to
                 the edge of what the spacing carries
        """
        dt = time - self.time
        children = np.asarray(children, dtype=float)
        p_up, p_mid, p_down, capped = moment_matched_probabilities(
            forwards, children[:-2], children[1:-1], children[2:], np.expm1(vol**2 * dt))
        nxt = np.zeros(children.size)
        nxt[:-2] += self.state_prices * p_down
        nxt[1:-1] += self.state_prices * p_mid
        nxt[2:] += self.state_prices * p_up
        self.state_prices = discount * nxt
        self.spots = children
        self.total_variance += vol**2 * dt
        self.time = time
        return capped

    def option_prices(self, strikes) -> Tuple[np.ndarray, np.ndarray]:
        """Calls and puts expiring at the current level, discounted to time 0."""
        strikes = np.asarray(strikes, dtype=float)
        lam, s = self.state_prices, self.spots
        # exclusive sums; the upper ones accumulate from the top so the call wing keeps its precision
        mass_above = np.append(np.cumsum(lam[::-1])[::-1], 0.0)
        value_above = np.append(np.cumsum((lam * s)[::-1])[::-1], 0.0)
        mass_below = np.concatenate(([0.0], np.cumsum(lam)))
        value_below = np.concatenate(([0.0], np.cumsum(lam * s)))

        above = np.searchsorted(s, strikes, side="right")
        below = np.searchsorted(s, strikes, side="left")
        calls = value_above[above] - strikes * mass_above[above]
        puts = strikes * mass_below[below] - value_below[below]
        return calls, puts


class OptionPriceOracle:
    """Market prices and implied vols from either surface variant."""

    def __init__(self, surface, market: MarketContext):
        if getattr(surface, "kind", None) not in ("implied_volatility", "price"):
            raise InvalidInputError(f"not a market surface: {surface!r}")
        self.surface = surface
        self.market = market

    @property
    def kind(self) -> str:
        return self.surface.kind

    def price(self, time: float, strike: float, is_call: bool = True) -> float:
        value = self.surface.price(time, strike, is_call, self.market)
        if not np.isfinite(value) or value < 0:
            raise InvalidInputError(f"market price {value}", time=time, strike=strike)
        return value

    def volatility(self, time: float, strike: float) -> float:
        """Implied vol at (time, strike); NaN if the quote is uninformative."""
        return self.surface.implied_volatility(time, strike, self.market)

    def volatilities(self, time: float, strikes, fill: bool = True):
        """
        Implied vols of ascending strikes at one expiry.

        A strike whose quote is invalid (the surface raises InvalidInputError)
        or uninformative (NaN) is unusable. With fill, unusable strikes take
        the vol of the nearest usable one. If no strike is usable the first
        invalid quote is raised.

        Returns
        -------
        vols : array of vols
        uninformative : bool mask of the strikes with no time value
        invalid : bool mask of the strikes the surface could not quote
        """
        strikes = np.asarray(strikes, dtype=float)
        vols = np.full(strikes.size, np.nan)
        invalid = np.zeros(strikes.size, dtype=bool)
        errors = []
        for j, strike in enumerate(strikes):
            try:
                vols[j] = self.volatility(time, strike)
            except InvalidInputError as exc:
                invalid[j] = True
                errors.append(exc)

        usable = np.isfinite(vols)
        uninformative = ~usable & ~invalid
        if not usable.any():
            if errors:
                raise errors[0]
            raise InvalidInputError("no informative quote at this expiry", time=time)
        if fill and not usable.all():
            missing = np.flatnonzero(~usable)
            found = np.flatnonzero(usable)
            distance = np.abs(strikes[missing][:, None] - strikes[found][None, :])
            vols[missing] = vols[found[np.argmin(distance, axis=1)]]
            logger.debug("t=%.4f: %d uninformative and %d invalid strikes filled",
                         time, uninformative.sum(), invalid.sum())
        return vols, uninformative, invalid

    def quote(self, reference: ReferenceLattice, time: float,
              strikes, vols) -> Tuple[np.ndarray, np.ndarray]:
        """Call and put quotes of strikes expiring at the reference lattice's level."""
        strikes = np.asarray(strikes, dtype=float)
        calls, puts = reference.option_prices(strikes)
        forward = self.market.forward(time)
        discount = discount_factor(self.market.financing_rate, time)
        base = reference.implied_volatility
        for is_call, prices in ((True, calls), (False, puts)):
            prices += discount * (black_prices(forward, strikes, time, vols, is_call)
                                  - black_prices(forward, strikes, time, base, is_call))
        return calls, puts
