"""
Dupire local volatility, used as an independent check of the tree.

Same contract as the tree calculator: surface + spot + rate functions in,
a surface (time, strike) -> local vol out. Nothing is calibrated; the
returned DeformedSurface evaluates the formula on demand, with surface
derivatives taken by finite differences.

From implied vols (Gatheral 2006, eq. 1.10 written in strike):

    sigma_loc^2 = (s^2 + 2 t s (s_T + mu K s_K))
                / ((1 + K d1 sqrt(t) s_K)^2 + K^2 t s (s_KK - d1 sqrt(t) s_K^2))

with s the implied vol at (t, K), mu = r - q the instantaneous drift
and d1 the Black d1 on the forward.

From call prices (Dupire 1994):

    sigma_loc^2 = (C_T + (r - q) K C_K + q C) / (0.5 K^2 C_KK)

Where either ratio is not positive the local vol is NaN.

References:
    Dupire, B. (1994). Pricing with a smile. Risk 7(1).
    Gatheral, J. (2006). The Volatility Surface. Wiley.
"""

import numpy as np

from . import config
from .black_scholes import d1 as black_d1
from .errors import InvalidInputError
from .rates import RateFunction, growth_factor, instantaneous_rate
from .surfaces import DeformedSurface, ValueDerivatives


def _time_derivative(fn, t: float, h: float) -> float:
    if t > h:
        return (fn(t + h) - fn(t - h)) / (2 * h)
    return (fn(t + h) - fn(t)) / h


def _strike_derivatives(fn, k: float, h: float):
    lo, mid, hi = fn(k - h), fn(k), fn(k + h)
    return mid, (hi - lo) / (2 * h), (hi - 2 * mid + lo) / h**2


class DupireLocalVolatilityCalculator:
    """
    Parameters
    ----------
    time_shift : absolute bump for time derivatives (years)
    strike_shift : bump for strike derivatives, relative to the strike
    """

    def __init__(self, time_shift: float = config.DUPIRE_TIME_SHIFT,
                 strike_shift: float = config.DUPIRE_STRIKE_SHIFT):
        self.time_shift = time_shift
        self.strike_shift = strike_shift

    def local_volatility_from_implied_volatility(
        self, surface, spot: float, financing_rate: RateFunction, dividend_rate: RateFunction,
    ) -> DeformedSurface:
        _check_spot(spot)

        def local_vol(t: float, k: float) -> ValueDerivatives:
            vol, vol_k, vol_kk = _strike_derivatives(lambda x: surface.z_value(t, x), k,
                                                     self.strike_shift * k)
            if t <= 0:
                return ValueDerivatives(vol)
            vol_t = _time_derivative(lambda x: surface.z_value(x, k), t, self.time_shift)
            forward = spot * growth_factor(financing_rate, dividend_rate, t)
            mu = instantaneous_rate(financing_rate, t) - instantaneous_rate(dividend_rate, t)

            root_t = np.sqrt(t)
            d1 = black_d1(forward, k, t, vol)
            num = vol**2 + 2 * t * vol * (vol_t + mu * k * vol_k)
            den = (1 + k * d1 * root_t * vol_k)**2 + k**2 * t * vol * (vol_kk - d1 * root_t * vol_k**2)
            if num <= 0 or den <= 0:
                return ValueDerivatives(np.nan, (vol_t, vol_k, vol_kk))
            return ValueDerivatives(np.sqrt(num / den), (vol_t, vol_k, vol_kk))

        return DeformedSurface(local_vol)

    def local_volatility_from_price(
        self, surface, spot: float, financing_rate: RateFunction, dividend_rate: RateFunction,
    ) -> DeformedSurface:
        _check_spot(spot)

        def local_vol(t: float, k: float) -> ValueDerivatives:
            call, call_k, call_kk = _strike_derivatives(lambda x: surface.z_value(t, x), k,
                                                        self.strike_shift * k)
            call_t = _time_derivative(lambda x: surface.z_value(x, k), t, self.time_shift)
            r = instantaneous_rate(financing_rate, t)
            q = instantaneous_rate(dividend_rate, t)
            num = call_t + (r - q) * k * call_k + q * call
            den = 0.5 * k**2 * call_kk
            if num <= 0 or den <= 0:
                return ValueDerivatives(np.nan, (call_t, call_k, call_kk))
            return ValueDerivatives(np.sqrt(num / den), (call_t, call_k, call_kk))

        return DeformedSurface(local_vol)


def _check_spot(spot: float) -> None:
    if not np.isfinite(spot) or spot <= 0:
        raise InvalidInputError(f"spot must be positive, got {spot}")

