"""
Interpolation: from nodal points to something evaluable anywhere.

The calibration engine treats this module as an opaque collaborator:
"fit a function through nodal points, evaluate at arbitrary coordinates,
extrapolate outside the nodes". Everything numerical is scipy; this
module only combines an interior scheme with left/right extrapolation
and stacks 1D schemes into a 2D grid interpolator.

1D schemes (Interpolator1D.kind):
    linear         - piecewise linear (scipy make_interp_spline, k=1)
    natural_cubic  - natural cubic spline (scipy CubicSpline)
    pchip          - shape preserving cubic (scipy PchipInterpolator);
                     never overshoots the data, so non-negative data stays
                     non-negative
    time_square    - linear in x * y^2; the usual choice for vols along
                     the time axis since it is linear in total variance

Extrapolators (Interpolator1D.left / right):
    flat           - hold the end value
    linear         - straight line with the interpolant's end slope
    interpolator   - keep evaluating the interior scheme

The 2D scheme (GridInterpolator2D) groups points by x, fits the y-scheme
on every x-slice, then fits the x-scheme through the slice values at the
query y. Slices do not need to share y-nodes, which is what a trinomial
tree produces (each time level has its own spots).

Errors raised by scipy (duplicate nodes, too few points for a scheme)
are not caught here.
"""

from dataclasses import dataclass

import numpy as np
from scipy.interpolate import CubicSpline, PchipInterpolator, make_interp_spline

INTERPOLATORS = ("linear", "natural_cubic", "pchip", "time_square")
EXTRAPOLATORS = ("flat", "linear", "interpolator")


class _TimeSquareInterpolant:
    """Linear interpolation of w = x * y^2, returned as y = sqrt(w / x)."""

    def __init__(self, x: np.ndarray, y: np.ndarray):
        self._y0 = y[0]
        self._tail = (1,) * (y.ndim - 1)
        self._w = make_interp_spline(x, x.reshape((-1,) + self._tail) * y**2, k=1)
        self._dw = self._w.derivative()

    def __call__(self, xq):
        xq = np.asarray(xq, dtype=float)
        xb = xq.reshape(xq.shape + self._tail)
        w = np.maximum(self._w(xq), 0.0)
        with np.errstate(divide="ignore", invalid="ignore"):
            y = np.sqrt(w / xb)
        return np.where(xb > 0, y, self._y0)

    def derivative(self):
        def slope(xq):
            xq = np.asarray(xq, dtype=float)
            xb = xq.reshape(xq.shape + self._tail)
            y = self(xq)
            with np.errstate(divide="ignore", invalid="ignore"):
                d = (self._dw(xq) * xb - np.maximum(self._w(xq), 0.0)) / (2.0 * xb**2 * y)
            return np.where((xb > 0) & (y > 0), d, 0.0)
        return slope


def _fit(kind: str, x: np.ndarray, y: np.ndarray):
    if kind == "linear":
        return make_interp_spline(x, y, k=1)
    if kind == "natural_cubic":
        return CubicSpline(x, y, axis=0, bc_type="natural")
    if kind == "pchip":
        return PchipInterpolator(x, y, axis=0)
    return _TimeSquareInterpolant(x, y)


class BoundInterpolator1D:
    """
    A 1D scheme fitted to nodes.

    y may be 1D (n,) or 2D (n, m); in the latter case every column is
    interpolated and a call returns m values per query point.
    """

    def __init__(self, x, y, kind: str, left: str, right: str):
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        if x.ndim != 1 or x.size == 0 or y.shape[0] != x.size:
            raise ValueError(f"need matching non-empty nodes, got x{x.shape} y{y.shape}")
        order = np.argsort(x, kind="stable")
        self.x = x[order]
        self.y = y[order]
        self.kind = kind
        self.left = left
        self.right = right
        # a single node is a constant whatever the scheme
        self._fn = _fit(kind, self.x, self.y) if x.size > 1 else None
        self._slopes = None

    def __call__(self, xq):
        xq = np.asarray(xq, dtype=float)
        scalar = xq.ndim == 0
        xs = np.atleast_1d(xq)
        tail = self.y.shape[1:]

        if self._fn is None:
            out = np.broadcast_to(self.y[0], (xs.size,) + tail).astype(float)
        else:
            out = np.empty((xs.size,) + tail)
            lo = xs < self.x[0]
            hi = xs > self.x[-1]
            mid = ~(lo | hi)
            if mid.any():
                out[mid] = self._fn(xs[mid])
            if lo.any():
                out[lo] = self._extrapolate(xs[lo], self.left, 0)
            if hi.any():
                out[hi] = self._extrapolate(xs[hi], self.right, -1)

        if scalar:
            return float(out[0]) if not tail else out[0]
        return out

    def _extrapolate(self, xs: np.ndarray, method: str, end: int) -> np.ndarray:
        tail = self.y.shape[1:]
        if method == "flat":
            return np.broadcast_to(self.y[end], (xs.size,) + tail)
        if method == "interpolator":
            return self._fn(xs)
        if self._slopes is None:
            derivative = self._fn.derivative()
            self._slopes = (np.asarray(derivative(self.x[0])),
                            np.asarray(derivative(self.x[-1])))
        slope = self._slopes[0 if end == 0 else 1]
        dx = (xs - self.x[end]).reshape((-1,) + (1,) * len(tail))
        return self.y[end] + slope * dx


@dataclass(frozen=True)
class Interpolator1D:
    """Interior scheme plus left/right extrapolation; bind() fits it to nodes."""
    kind: str = "linear"
    left: str = "flat"
    right: str = "flat"

    def __post_init__(self):
        if self.kind not in INTERPOLATORS:
            raise ValueError(f"Unknown interpolator: {self.kind}. Use one of {INTERPOLATORS}.")
        for side in (self.left, self.right):
            if side not in EXTRAPOLATORS:
                raise ValueError(f"Unknown extrapolator: {side}. Use one of {EXTRAPOLATORS}.")

    def bind(self, x, y) -> BoundInterpolator1D:
        return BoundInterpolator1D(x, y, self.kind, self.left, self.right)


LINEAR_FLAT = Interpolator1D("linear", "flat", "flat")
TIME_SQUARE_FLAT = Interpolator1D("time_square", "flat", "flat")
NATURAL_CUBIC = Interpolator1D("natural_cubic", "interpolator", "interpolator")
NATURAL_CUBIC_FLAT = Interpolator1D("natural_cubic", "flat", "flat")
NATURAL_CUBIC_LINEAR = Interpolator1D("natural_cubic", "linear", "linear")
PCHIP_FLAT = Interpolator1D("pchip", "flat", "flat")


class BoundGridInterpolator2D:
    """GridInterpolator2D fitted to scattered (x, y, z) points."""

    def __init__(self, x, y, z, x_interpolator: Interpolator1D, y_interpolator: Interpolator1D):
        x = np.asarray(x, dtype=float).ravel()
        y = np.asarray(y, dtype=float).ravel()
        z = np.asarray(z, dtype=float).ravel()
        if not (x.size == y.size == z.size) or x.size == 0:
            raise ValueError("x, y and z must be non-empty and of equal length")
        self.x_interpolator = x_interpolator
        self.x_nodes = np.unique(x)
        self._slices = []
        for xv in self.x_nodes:
            mask = x == xv
            self._slices.append(y_interpolator.bind(y[mask], z[mask]))

    def __call__(self, x: float, y):
        """Value at (x, y); y may be an array of points sharing the same x."""
        values = np.array([s(y) for s in self._slices])
        return self.x_interpolator.bind(self.x_nodes, values)(float(x))


@dataclass(frozen=True)
class GridInterpolator2D:
    """Two 1D schemes: one across x-slices, one along y inside each slice."""
    x_interpolator: Interpolator1D = LINEAR_FLAT
    y_interpolator: Interpolator1D = LINEAR_FLAT

    def bind(self, x, y, z) -> BoundGridInterpolator2D:
        return BoundGridInterpolator2D(x, y, z, self.x_interpolator, self.y_interpolator)
