"""
Closed-form Black-Scholes-Merton pricing and implied volatility inversion.

Written in forward form: the undiscounted Black price on the forward
F = S * exp((r - q) T) is discounted with exp(-r T). Rates are plain
continuously-compounded zero rates to the expiry; the tree code turns
rate functions into these numbers before calling in here.

The inversion uses Brent's method, which is unconditionally convergent
inside its bracket. It is used to turn a price surface into implied
vols and by the tests.

References:
    Black, F. (1976). The pricing of commodity contracts.
    Hull, J.C. (2018). Options, Futures, and Other Derivatives. 10th ed.
"""

import numpy as np
from scipy.stats import norm
from scipy.optimize import brentq

from . import config


# ════════════════════════════════════════════════════════════════════════
#  PRICING
# ════════════════════════════════════════════════════════════════════════

def forward_price(S: float, T: float, r: float = 0.0, q: float = 0.0) -> float:
    """Forward of the underlying to T under continuous financing r and yield q."""
    return S * np.exp((r - q) * T)


def d1(F: float, K: float, T: float, sigma: float) -> float:
    """
    d1 of the Black formula, written on the forward.

    Parameters
    ----------
    F : forward price to expiry
    K : strike price
    T : time to expiry in years
    sigma : volatility (annualized)
    """
    if T <= 0 or sigma <= 0:
        return 0.0
    return (np.log(F / K) + 0.5 * sigma**2 * T) / (sigma * np.sqrt(T))


def d2(F: float, K: float, T: float, sigma: float) -> float:
    """Compute d2 = d1 - sigma * sqrt(T)."""
    return d1(F, K, T, sigma) - sigma * np.sqrt(T)


def black_price(F: float, K: float, T: float, sigma: float, is_call: bool = True) -> float:
    """
    Undiscounted Black price of a European option on the forward F.

    Degenerate inputs collapse to the forward intrinsic value.
    """
    if T <= 0 or sigma <= 0:
        return max(F - K, 0.0) if is_call else max(K - F, 0.0)

    _d1 = d1(F, K, T, sigma)
    _d2 = _d1 - sigma * np.sqrt(T)
    if is_call:
        return F * norm.cdf(_d1) - K * norm.cdf(_d2)
    return K * norm.cdf(-_d2) - F * norm.cdf(-_d1)


def black_prices(F: float, K: np.ndarray, T: float, sigma, is_call: bool = True) -> np.ndarray:
    """black_price over an array of strikes, with one vol or one vol per strike."""
    K = np.asarray(K, dtype=float)
    sd = np.asarray(sigma, dtype=float) * np.sqrt(max(T, 0.0))
    intrinsic = np.maximum(F - K, 0.0) if is_call else np.maximum(K - F, 0.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        _d1 = np.log(F / K) / sd + 0.5 * sd
        _d2 = _d1 - sd
        if is_call:
            value = F * norm.cdf(_d1) - K * norm.cdf(_d2)
        else:
            value = K * norm.cdf(-_d2) - F * norm.cdf(-_d1)
    return np.where(sd > 0, value, intrinsic)


def call_price(S: float, K: float, T: float, r: float, sigma: float, q: float = 0.0) -> float:
    """European call price under Black-Scholes-Merton (dividend yield q)."""
    if T <= 0:
        return max(S - K, 0.0)
    return np.exp(-r * T) * black_price(forward_price(S, T, r, q), K, T, sigma, True)


def put_price(S: float, K: float, T: float, r: float, sigma: float, q: float = 0.0) -> float:
    """European put price under Black-Scholes-Merton (dividend yield q)."""
    if T <= 0:
        return max(K - S, 0.0)
    return np.exp(-r * T) * black_price(forward_price(S, T, r, q), K, T, sigma, False)


def price(spot: float, strike: float, time: float, vol: float,
          is_call: bool = True, r: float = 0.0, q: float = 0.0) -> float:
    """
    Closed-form option price: price(spot, strike, time, vol, is_call).

    This is the pricing contract the rest of the package relies on;
    r and q default to zero so a bare call is a driftless Black price.
    """
    if is_call:
        return call_price(spot, strike, time, r, vol, q)
    return put_price(spot, strike, time, r, vol, q)


def parity_forward_value(S: float, K: float, T: float, r: float = 0.0, q: float = 0.0) -> float:
    """C - P = S e^{-qT} - K e^{-rT} (model-independent)."""
    return S * np.exp(-q * T) - K * np.exp(-r * T)


# ════════════════════════════════════════════════════════════════════════
#  IMPLIED VOLATILITY
# ════════════════════════════════════════════════════════════════════════

def implied_vol(
    market_price: float,
    S: float,
    K: float,
    T: float,
    r: float = 0.0,
    is_call: bool = True,
    q: float = 0.0,
    vol_lower: float = None,
    vol_upper: float = None,
    tol: float = None,
) -> float:
    """
    Implied volatility by inverting the Black-Scholes-Merton price.

    Parameters
    ----------
    market_price : option price, discounted to today
    S : spot price
    K : strike
    T : time to expiry (years)
    r : zero rate to T
    is_call : call or put
    q : dividend yield to T
    vol_lower, vol_upper : search bracket (default: config.IV_LOWER / IV_UPPER)
    tol : solver tolerance on sigma (default: config.IV_TOL)

    Returns
    -------
    float : implied volatility, or NaN if the price is outside the
            range the model can produce

    Notes
    -----
    The inversion is done on the undiscounted forward price, which keeps
    the objective well scaled across rates. Deep in-the-money prices carry
    their time value in the last few digits; invert the out-of-the-money
    side instead (see surfaces.PriceSurface).
    """
    vol_lower = config.IV_LOWER if vol_lower is None else vol_lower
    vol_upper = config.IV_UPPER if vol_upper is None else vol_upper
    tol = config.IV_TOL if tol is None else tol

    if not np.isfinite(market_price) or market_price <= 0 or T <= 0 or S <= 0 or K <= 0:
        return np.nan

    F = forward_price(S, T, r, q)
    target = market_price * np.exp(r * T)
    intrinsic = max(F - K, 0.0) if is_call else max(K - F, 0.0)
    upper_bound = F if is_call else K
    if target < intrinsic * (1 - 1e-12) or target >= upper_bound:
        return np.nan

    def objective(sigma):
        return black_price(F, K, T, sigma, is_call) - target

    try:
        return brentq(objective, vol_lower, vol_upper, xtol=tol)
    except ValueError:
        # no sign change inside the bracket
        return np.nan
    except RuntimeError:
        # max iterations exceeded
        return np.nan
