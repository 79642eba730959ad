"""
Local volatility from calibrated branch probabilities.

Over [t_i, t_{i+1}] node (i, j) moves to its three children with
probabilities (p_up, p_mid, p_down). The continuous-time variance that
gives the same spread is found by lognormal variance matching:

    mean  = sum p s
    var   = sum p (s - mean)^2
    sigma^2 = log(1 + var / mean^2) / dt

This is the exact inverse of the moment matching of the lattice module,
so a node branching with the moment-matched probabilities of a vol
gives that vol back (unless its variance was capped).
"""

import logging
from typing import Iterable, Tuple

import numpy as np
import pandas as pd

from .errors import InvalidInputError
from .lattice import TrinomialTree

logger = logging.getLogger(__name__)

SAMPLE_COLUMNS = ["time", "spot", "variance", "volatility", "level", "position", "adjusted"]


def branch_moments(children: np.ndarray, probabilities: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Mean and variance of the one-step distribution of every node of a level."""
    outcomes = np.column_stack((children[2:], children[1:-1], children[:-2]))
    mean = np.sum(probabilities * outcomes, axis=1)
    var = np.sum(probabilities * (outcomes - mean[:, None]) ** 2, axis=1)
    return mean, var


class LocalVolatilityExtractor:
    """One local variance sample per node of every non-terminal level."""

    def __init__(self, dt: float):
        if not np.isfinite(dt) or dt <= 0:
            raise InvalidInputError(f"dt must be positive, got {dt}")
        self.dt = dt

    def local_variance(self, children: np.ndarray, probabilities: np.ndarray) -> np.ndarray:
        mean, var = branch_moments(children, probabilities)
        return np.log1p(var / mean**2) / self.dt

    def extract(self, tree: TrinomialTree,
                adjusted: Iterable[Tuple[int, int]] = ()) -> pd.DataFrame:
        """
        Samples of a fully calibrated tree.

        Parameters
        ----------
        tree : calibrated tree, all levels but the last finalized
        adjusted : (level, position) pairs of repaired nodes, flagged in
                   the "adjusted" column

        Returns
        -------
        DataFrame with columns [time, spot, variance, volatility, level,
        position, adjusted], ordered by level then spot
        """
        adjusted = set(adjusted)
        frames = []
        for level in tree.levels[:-1]:
            if not level.is_final:
                raise ValueError(f"level {level.index} has no branch probabilities")
            variance = self.local_variance(tree[level.index + 1].spots, level.probabilities)
            positions = np.arange(level.size)
            frames.append(pd.DataFrame({
                "time": np.full(level.size, level.time),
                "spot": level.spots,
                "variance": variance,
                "volatility": np.sqrt(np.maximum(variance, 0.0)),
                "level": np.full(level.size, level.index),
                "position": positions,
                "adjusted": [(level.index, j) in adjusted for j in positions],
            }))
        if not frames:
            return pd.DataFrame(columns=SAMPLE_COLUMNS)

        samples = pd.concat(frames, ignore_index=True)
        logger.debug("extracted %d local variance samples", len(samples))
        return samples
