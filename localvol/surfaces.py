"""
Surfaces and the market-surface variant consumed by the calibration.

Generic surfaces map (x, y) -> z and expose z_value(x, y). By convention
x is time and y is strike (or spot for a local volatility surface):

    ConstantSurface          - the same value everywhere
    InterpolatedNodalSurface - nodal points plus a GridInterpolator2D
    DeformedSurface          - value computed by a function of (x, y)

A market surface is a two-case variant:

    ImpliedVolSurface(surface)            kind == "implied_volatility"
    PriceSurface(surface, is_call=True)   kind == "price"

Both answer the same two questions for the calibration, given the
market context (spot and rate functions):
    price(time, strike, is_call, market)
    implied_volatility(time, strike, market)

The vol variant prices with the closed-form formula; the price variant
inverts it on the out-of-the-money side. A price variant returns NaN for
an out-of-the-money price too small to carry any time value, so the
caller can decide what to do with that strike.
"""

from dataclasses import dataclass
from typing import Callable, NamedTuple, Tuple, Union

import numpy as np

from . import config
from .black_scholes import implied_vol, parity_forward_value, price as bs_price
from .errors import InvalidInputError
from .interpolation import GridInterpolator2D
from .rates import RateFunction, discount_factor, growth_factor


class ValueDerivatives(NamedTuple):
    """A value and, optionally, its sensitivities to whatever produced it."""
    value: float
    derivatives: Tuple[float, ...] = ()


@dataclass(frozen=True)
class ConstantSurface:
    value: float

    def z_value(self, x: float, y: float) -> float:
        return float(self.value)

    def z_values(self, x: float, ys) -> np.ndarray:
        return np.full(np.shape(ys), float(self.value))


class InterpolatedNodalSurface:
    """
    Surface defined by nodal points and a 2D interpolator.

    The nodes are copied into read-only arrays; the interpolator is fitted
    once at construction.
    """

    def __init__(self, x, y, z, interpolator: GridInterpolator2D):
        self.x_values = np.array(x, dtype=float)
        self.y_values = np.array(y, dtype=float)
        self.z_values_nodal = np.array(z, dtype=float)
        for arr in (self.x_values, self.y_values, self.z_values_nodal):
            arr.setflags(write=False)
        self.interpolator = interpolator
        self._bound = interpolator.bind(self.x_values, self.y_values, self.z_values_nodal)

    @property
    def parameter_count(self) -> int:
        return self.z_values_nodal.size

    def z_value(self, x: float, y: float) -> float:
        return float(self._bound(x, float(y)))

    def z_values(self, x: float, ys) -> np.ndarray:
        """Vectorized evaluation along y at a fixed x."""
        return np.asarray(self._bound(x, np.asarray(ys, dtype=float)))

    def __repr__(self):
        return f"InterpolatedNodalSurface(n={self.parameter_count}, interpolator={self.interpolator})"


@dataclass(frozen=True)
class DeformedSurface:
    """
    Surface whose value at (x, y) is computed by a function.

    The function may return a plain float or a ValueDerivatives; z_value
    always returns the value, z_value_derivatives the full tuple.
    """
    function: Callable[[float, float], Union[float, ValueDerivatives]]

    def z_value_derivatives(self, x: float, y: float) -> ValueDerivatives:
        out = self.function(x, y)
        if isinstance(out, ValueDerivatives):
            return out
        return ValueDerivatives(float(out))

    def z_value(self, x: float, y: float) -> float:
        return float(self.z_value_derivatives(x, y).value)

    def z_values(self, x: float, ys) -> np.ndarray:
        return np.array([self.z_value(x, y) for y in np.atleast_1d(ys)])


# ════════════════════════════════════════════════════════════════════════
#  MARKET CONTEXT + MARKET SURFACE VARIANT
# ════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MarketContext:
    """Spot and rate functions shared by every quote of a calibration run."""
    spot: float
    financing_rate: RateFunction
    dividend_rate: RateFunction

    def __post_init__(self):
        if not np.isfinite(self.spot) or self.spot <= 0:
            raise InvalidInputError(f"spot must be positive, got {self.spot}")

    def rates(self, time: float) -> Tuple[float, float]:
        """Zero rates (r, q) to time, recovered from the discount/growth factors."""
        if time <= 0:
            return 0.0, 0.0
        r = -np.log(discount_factor(self.financing_rate, time)) / time
        g = np.log(growth_factor(self.financing_rate, self.dividend_rate, time)) / time
        return r, r - g

    def forward(self, time: float) -> float:
        return self.spot * growth_factor(self.financing_rate, self.dividend_rate, time)


@dataclass(frozen=True)
class ImpliedVolSurface:
    """Market described by implied volatilities, surface(time, strike) -> vol."""
    surface: object
    kind = "implied_volatility"

    def implied_volatility(self, time: float, strike: float, market: MarketContext) -> float:
        vol = float(self.surface.z_value(time, strike))
        if not np.isfinite(vol) or vol < 0:
            raise InvalidInputError(f"implied volatility surface returned {vol}",
                                    time=time, strike=strike)
        return vol

    def price(self, time: float, strike: float, is_call: bool, market: MarketContext) -> float:
        vol = self.implied_volatility(time, strike, market)
        r, q = market.rates(time)
        return bs_price(market.spot, strike, time, vol, is_call, r, q)


@dataclass(frozen=True)
class PriceSurface:
    """
    Market described by option prices, surface(time, strike) -> price.

    Prices are discounted to today; is_call says whether the surface
    quotes calls (the default) or puts. The other side follows from
    put-call parity.
    """
    surface: object
    is_call: bool = True
    kind = "price"

    def _raw(self, time: float, strike: float, market: MarketContext) -> float:
        value = float(self.surface.z_value(time, strike))
        if not np.isfinite(value) or value < -config.QUOTE_FLOOR * market.spot:
            raise InvalidInputError(f"price surface returned {value}", time=time, strike=strike)
        return value

    def price(self, time: float, strike: float, is_call: bool, market: MarketContext) -> float:
        value = self._raw(time, strike, market)
        if is_call == self.is_call:
            return value
        r, q = market.rates(time)
        parity = parity_forward_value(market.spot, strike, time, r, q)
        return value - parity if self.is_call else value + parity

    def implied_volatility(self, time: float, strike: float, market: MarketContext) -> float:
        otm_call = strike >= market.forward(time)
        otm = self.price(time, strike, otm_call, market)
        floor = config.QUOTE_FLOOR * market.spot
        if otm < -floor:
            raise InvalidInputError(f"negative {'call' if otm_call else 'put'} price {otm:.3e}",
                                    time=time, strike=strike)
        if otm <= floor:
            return np.nan
        r, q = market.rates(time)
        return implied_vol(otm, market.spot, strike, time, r, otm_call, q)


MarketSurface = Union[ImpliedVolSurface, PriceSurface]
