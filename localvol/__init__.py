"""
trinomial-local-vol
===================
Local volatility surfaces from an implied trinomial tree, calibrated by
forward induction on Arrow-Debreu state prices.

Modules:
    calculator     - Entry point: surface + spot + rates -> local vol surface
    lattice        - Time grid, tree levels and node geometry
    oracle         - Market quotes for the calibration (vol or price surface)
    calibrator     - Forward induction, branch probabilities, run state
    extractor      - Local variance per node
    assembler      - Node samples -> interpolated surface
    dupire         - Dupire local volatility (comparison oracle)
    comparison     - Tree vs oracle harness, meshes and statistics
    surfaces       - Surface types and the market surface variant
    interpolation  - 1D/2D interpolation over scipy
    black_scholes  - Closed-form pricing and implied vol inversion
    rates          - Rate functions, discount and growth factors
    market_data    - Reference smile, SVI-like and price surfaces
    visualization  - 2D/3D charting (matplotlib + plotly)
    errors         - Exceptions, warning category, violation records
    config         - Global constants and defaults
"""

from .calculator import CalibrationResult, ImpliedTrinomialTreeLocalVolatilityCalculator
from .dupire import DupireLocalVolatilityCalculator
from .errors import (ArbitrageViolation, ArbitrageWarning, CalibrationError,
                     InvalidInputError, LocalVolatilityError)
from .interpolation import GridInterpolator2D, Interpolator1D
from .rates import ConstantRate
from .surfaces import ImpliedVolSurface, InterpolatedNodalSurface, PriceSurface

__version__ = "0.1.0"
__author__ = "Leo"
