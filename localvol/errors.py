"""
Error taxonomy of a calibration run.

    InvalidInputError  - bad configuration or a surface returning garbage; fatal
    CalibrationError   - irrecoverable arbitrage (forward or state prices); fatal
    ArbitrageViolation - a node whose probabilities had to be repaired; the run
                         goes on and the record is kept on the result
    ArbitrageWarning   - warning category emitted once per run with violations

Interpolation errors are whatever scipy raises and are not wrapped.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


class LocalVolatilityError(Exception):
    """Base class for errors raised by the local volatility engine."""


class InvalidInputError(LocalVolatilityError, ValueError):
    """
    Invalid configuration or market input.

    Carries the coordinates of the offending sample when there is one,
    so the caller can tell which (time, strike) of the surface is broken
    and, during calibration, which node of which level asked for it.
    """

    def __init__(self, message: str, time: Optional[float] = None,
                 strike: Optional[float] = None, level: Optional[int] = None,
                 position: Optional[int] = None):
        self.reason = message
        self.time = time
        self.strike = strike
        self.level = level
        self.position = position
        context = []
        if level is not None:
            context.append(f"level={level}")
        if position is not None:
            context.append(f"position={position}")
        if time is not None:
            context.append(f"time={time:.6g}")
        if strike is not None:
            context.append(f"strike={strike:.6g}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)

    def at(self, level: int, position: int) -> "InvalidInputError":
        """The same error, located on a node of the tree."""
        return InvalidInputError(self.reason, time=self.time, strike=self.strike,
                                 level=level, position=position)


class CalibrationError(LocalVolatilityError, ArithmeticError):
    """Calibration cannot continue (non-positive forward, broken state prices)."""

    def __init__(self, message: str, level: Optional[int] = None,
                 position: Optional[int] = None, value: Optional[float] = None):
        self.level = level
        self.position = position
        self.value = value
        context = []
        if level is not None:
            context.append(f"level={level}")
        if position is not None:
            context.append(f"position={position}")
        if value is not None:
            context.append(f"value={value:.6g}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class ArbitrageWarning(UserWarning):
    """Some nodes were repaired during calibration; accuracy there is degraded."""


@dataclass(frozen=True)
class ArbitrageViolation:
    """
    One repaired node or quote.

    kind is one of:
        "override"            - solved probabilities invalid, replaced by the
                                moment-matched ones at the node's implied vol
        "clip"                - residual out-of-range values clipped and renormalized
        "variance_cap"        - reference lattice branching moved to the edge of
                                what the spacing can carry
        "uninformative_quote" - price without recoverable time value, vol borrowed
                                from the nearest usable strike
        "invalid_quote"       - wing quote the surface cannot give (negative or
                                not finite), vol borrowed from the nearest usable strike
    """
    level: int
    position: int
    time: float
    spot: float
    kind: str
    boundary: bool = False
    raw_probabilities: Tuple[float, ...] = ()
