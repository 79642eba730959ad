"""
Rate functions.

A rate function maps a time (years) to the continuously-compounded zero
rate to that time. The tree only needs discount factors and forward
growth factors between consecutive times; both are ratios of the
quantities below.
"""

from dataclasses import dataclass
from typing import Callable

import numpy as np

from .errors import InvalidInputError

RateFunction = Callable[[float], float]


@dataclass(frozen=True)
class ConstantRate:
    """Flat zero rate."""
    rate: float

    def __call__(self, time: float) -> float:
        return self.rate


def _zero_rate(rate_fn: RateFunction, t: float) -> float:
    r = float(rate_fn(t))
    if not np.isfinite(r):
        raise InvalidInputError("rate function returned a non-finite rate", time=t)
    return r


def discount_factor(rate_fn: RateFunction, t: float) -> float:
    """exp(-r(t) * t)."""
    return float(np.exp(-_zero_rate(rate_fn, t) * t))


def growth_factor(financing_rate: RateFunction, dividend_rate: RateFunction, t: float) -> float:
    """Forward growth of the underlying from 0 to t: exp((r(t) - q(t)) * t)."""
    return float(np.exp((_zero_rate(financing_rate, t) - _zero_rate(dividend_rate, t)) * t))


def step_factors(financing_rate: RateFunction, dividend_rate: RateFunction,
                 times: np.ndarray):
    """
    Per-step discount and growth factors over a time grid.

    Returns
    -------
    discounts : array of length len(times) - 1, DF(t_{i+1}) / DF(t_i)
    growths   : array of length len(times) - 1, G(t_{i+1}) / G(t_i)
    """
    df = np.array([discount_factor(financing_rate, t) for t in times])
    growth = np.array([growth_factor(financing_rate, dividend_rate, t) for t in times])
    return df[1:] / df[:-1], growth[1:] / growth[:-1]


def instantaneous_rate(rate_fn: RateFunction, t: float, shift: float = 1e-4) -> float:
    """
    Instantaneous forward rate d/dt (r(t) * t), by central difference
    (one-sided at t < shift).
    """
    lo = max(t - shift, 0.0)
    hi = t + shift
    return (_zero_rate(rate_fn, hi) * hi - _zero_rate(rate_fn, lo) * lo) / (hi - lo)
