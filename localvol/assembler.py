"""
Local volatility samples -> continuous surface.

Tree levels share a time but not their spots, so the samples form a
pseudo-grid: one slice per time. The GridInterpolator2D given by the
caller fits along spot inside each slice and across time between
slices; extrapolation outside the tree is whatever it does.
"""

import pandas as pd

from .interpolation import GridInterpolator2D
from .surfaces import InterpolatedNodalSurface


class SurfaceAssembler:

    def __init__(self, interpolator: GridInterpolator2D):
        self.interpolator = interpolator

    def assemble(self, samples: pd.DataFrame) -> InterpolatedNodalSurface:
        if samples.empty:
            raise ValueError("no local volatility samples to assemble")
        return InterpolatedNodalSurface(
            samples["time"].to_numpy(dtype=float),
            samples["spot"].to_numpy(dtype=float),
            samples["volatility"].to_numpy(dtype=float),
            self.interpolator,
        )
