"""
Implied trinomial tree local volatility calculator.

Entry point of the package. One call runs the whole pipeline:

    market surface -> ForwardInductionCalibrator -> LocalVolatilityExtractor
                   -> SurfaceAssembler -> InterpolatedNodalSurface

Every call builds its own tree and run state; the calculator only holds
its construction parameters, so one instance can serve any number of
calibrations.
"""

import logging
import warnings
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Tuple

import pandas as pd

from . import config
from .assembler import SurfaceAssembler
from .calibrator import CalibrationRun, CalibrationState, ForwardInductionCalibrator
from .errors import ArbitrageViolation, ArbitrageWarning
from .extractor import LocalVolatilityExtractor
from .interpolation import GridInterpolator2D
from .lattice import TimeGrid, TrinomialTree
from .oracle import OptionPriceOracle
from .rates import RateFunction
from .surfaces import ImpliedVolSurface, InterpolatedNodalSurface, MarketContext, PriceSurface

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationResult:
    """Everything a run produced, for diagnostics beyond the surface itself."""
    tree: TrinomialTree
    samples: pd.DataFrame
    surface: InterpolatedNodalSurface
    violations: Tuple[ArbitrageViolation, ...]
    states: Tuple[Tuple[CalibrationState, Optional[int]], ...]

    @property
    def adjusted(self) -> bool:
        return bool(self.violations)


class ImpliedTrinomialTreeLocalVolatilityCalculator:
    """
    Local volatility from an implied vol or a price surface.

    Parameters
    ----------
    n_steps : number of time steps of the tree
    max_time : horizon of the tree in years
    grid_interpolator : interpolation of the samples, time axis first;
                        default linear with flat extrapolation on both axes
    """

    def __init__(self, n_steps: int = config.N_STEPS, max_time: float = config.MAX_TIME,
                 grid_interpolator: Optional[GridInterpolator2D] = None):
        self.grid = TimeGrid(n_steps, max_time)
        self.grid_interpolator = grid_interpolator if grid_interpolator is not None else GridInterpolator2D()

    @property
    def n_steps(self) -> int:
        return self.grid.n_steps

    @property
    def max_time(self) -> float:
        return self.grid.max_time

    def local_volatility_from_implied_volatility(
        self, surface, spot: float, financing_rate: RateFunction, dividend_rate: RateFunction,
    ) -> InterpolatedNodalSurface:
        """surface(time, strike) -> implied vol."""
        return self.calibrate(ImpliedVolSurface(surface), spot, financing_rate, dividend_rate).surface

    def local_volatility_from_price(
        self, surface, spot: float, financing_rate: RateFunction, dividend_rate: RateFunction,
    ) -> InterpolatedNodalSurface:
        """surface(time, strike) -> call price, discounted to today."""
        return self.calibrate(PriceSurface(surface), spot, financing_rate, dividend_rate).surface

    def calibrate(self, market_surface, spot: float, financing_rate: RateFunction,
                  dividend_rate: RateFunction) -> CalibrationResult:
        market = MarketContext(spot, financing_rate, dividend_rate)
        run = CalibrationRun(self.grid.n_steps)
        logger.info("calibrating %s surface: spot=%.6g, %d steps to %.4gy",
                    market_surface.kind, spot, self.grid.n_steps, self.grid.max_time)
        try:
            calibrator = ForwardInductionCalibrator(
                self.grid, OptionPriceOracle(market_surface, market), run)
            tree = calibrator.calibrate()
            samples = LocalVolatilityExtractor(self.grid.dt).extract(tree, calibrator.adjusted_nodes())
            run.mark_extracted()
            surface = SurfaceAssembler(self.grid_interpolator).assemble(samples)
            run.mark_assembled()
        except Exception as exc:
            run.fail(str(exc))
            logger.error("calibration failed at level %s: %s", run.level, exc)
            raise

        violations = tuple(calibrator.violations)
        if violations:
            counts = Counter(v.kind for v in violations)
            summary = ", ".join(f"{n} {kind}" for kind, n in sorted(counts.items()))
            logger.warning("calibration adjusted the tree: %s", summary)
            warnings.warn(f"local volatility tree adjusted: {summary}", ArbitrageWarning, stacklevel=2)

        return CalibrationResult(tree, samples, surface, violations, tuple(run.history))
