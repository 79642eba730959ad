"""
Market surfaces to calibrate against.

No market data is fetched; the inputs are built here:

    smile_vol_surface      three-strike, four-expiry reference smile
                           (natural cubic nodes, flat outside them)
    svi_vol_surface        SVI-inspired equity-index-like surface
    flat_vol_surface       the same vol everywhere
    deformed_price_surface call prices computed from any vol surface

The SVI-like generator is a reduced-form model mapping (log-moneyness,
maturity) -> implied vol with three components:

    1. ATM level:    decays with maturity (term structure)
    2. Skew:         steeper at short maturities
    3. Curvature:    wings lift at all maturities

Each has a long-run value and a short-maturity boost that decays
exponentially. Parameters are in config.py.

References:
    Gatheral, J. (2004). A parsimonious arbitrage-free implied volatility
    parameterization with application to the valuation of volatility derivatives.
"""

from typing import Optional

import numpy as np

from . import config
from .black_scholes import black_price
from .errors import InvalidInputError
from .interpolation import (GridInterpolator2D, NATURAL_CUBIC_FLAT, PCHIP_FLAT,
                            TIME_SQUARE_FLAT)
from .rates import RateFunction, discount_factor, growth_factor
from .surfaces import ConstantSurface, DeformedSurface, InterpolatedNodalSurface, ValueDerivatives


def smile_vol_surface(interpolator: Optional[GridInterpolator2D] = None) -> InterpolatedNodalSurface:
    """
    The reference smile of config.SMILE_*, as a nodal surface.

    Natural cubic in both directions with flat extrapolation, so vols
    stay inside the range of the nodes.
    """
    if interpolator is None:
        interpolator = GridInterpolator2D(NATURAL_CUBIC_FLAT, NATURAL_CUBIC_FLAT)
    times, strikes = np.meshgrid(config.SMILE_TIMES, config.SMILE_STRIKES)
    return InterpolatedNodalSurface(times.ravel(), strikes.ravel(),
                                    np.ravel(config.SMILE_VOLS), interpolator)


def flat_vol_surface(vol: float) -> ConstantSurface:
    if not np.isfinite(vol) or vol <= 0:
        raise InvalidInputError(f"vol must be positive, got {vol}")
    return ConstantSurface(vol)


def svi_atm_vol(T):
    return config.SVI_ATM_BASE + config.SVI_ATM_DECAY * np.exp(-config.SVI_ATM_LAMBDA * T)


def svi_skew(T):
    return config.SVI_SKEW_SHORT * np.exp(-config.SVI_SKEW_LAMBDA * T) + config.SVI_SKEW_BASE


def svi_curvature(T):
    return config.SVI_SMILE_SHORT * np.exp(-config.SVI_SMILE_LAMBDA * T) + config.SVI_SMILE_BASE


def svi_implied_vol(k, T):
    """
    Implied vol at log-moneyness k = ln(K/S) and maturity T.

    A second-order expansion of SVI around the money:
        iv = atm(T) + skew(T) * k + curvature(T) * k^2
    clipped to [MIN_IV, MAX_IV].
    """
    iv = svi_atm_vol(T) + svi_skew(T) * k + svi_curvature(T) * k**2
    return np.clip(iv, config.MIN_IV, config.MAX_IV)


def svi_vol_surface(
    spot: float,
    maturities: Optional[np.ndarray] = None,
    n_strikes: int = 21,
    interpolator: Optional[GridInterpolator2D] = None,
) -> InterpolatedNodalSurface:
    """
    SVI-like implied vol surface on a (maturity, strike) node grid.

    Nodes cover |log(K/S)| <= SVI_MONEYNESS_BOUND; outside, vols are
    held flat. Interpolation is linear in total variance across time and
    shape preserving along strike, so the nodes' smile never overshoots.

    Parameters
    ----------
    spot : spot price
    maturities : node maturities (years); default 8 points from 1m to 2y
    n_strikes : strikes per maturity
    interpolator : default GridInterpolator2D(TIME_SQUARE_FLAT, PCHIP_FLAT)
    """
    if not np.isfinite(spot) or spot <= 0:
        raise InvalidInputError(f"spot must be positive, got {spot}")
    if maturities is None:
        maturities = np.array([0.08, 0.17, 0.25, 0.50, 0.75, 1.0, 1.5, 2.0])
    if interpolator is None:
        interpolator = GridInterpolator2D(TIME_SQUARE_FLAT, PCHIP_FLAT)

    k = np.linspace(-config.SVI_MONEYNESS_BOUND, config.SVI_MONEYNESS_BOUND, n_strikes)
    T_mesh, k_mesh = np.meshgrid(maturities, k, indexing="ij")
    iv = svi_implied_vol(k_mesh, T_mesh)
    return InterpolatedNodalSurface(T_mesh.ravel(), (spot * np.exp(k_mesh)).ravel(),
                                    iv.ravel(), interpolator)


def deformed_price_surface(
    vol_surface,
    spot: float,
    financing_rate: RateFunction,
    dividend_rate: RateFunction,
) -> DeformedSurface:
    """
    Call prices (time, strike) -> price, discounted to today, from a vol surface.

    The price is the closed-form call at the surface's vol; the vol used
    is returned as the derivative information.
    """
    if not np.isfinite(spot) or spot <= 0:
        raise InvalidInputError(f"spot must be positive, got {spot}")

    def call(t: float, k: float) -> ValueDerivatives:
        vol = vol_surface.z_value(t, k)
        forward = spot * growth_factor(financing_rate, dividend_rate, t)
        value = discount_factor(financing_rate, t) * black_price(forward, k, t, vol, True)
        return ValueDerivatives(value, (vol,))

    return DeformedSurface(call)
