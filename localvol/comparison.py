"""
Comparison harness and surface diagnostics.

The tree surface is checked against the Dupire oracle at a set of
(time, strike) points, and both are put on regular meshes for charting:

    compare_local_volatility   tree vs reference at sample points
    compute_sample_statistics  summary of the raw node samples
    local_vol_mesh             any surface on a regular (time, strike) mesh
    sample_mesh                raw node samples on a regular mesh (griddata)
"""

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.interpolate import griddata

from . import config


def compare_local_volatility(surface, reference, times: Sequence[float], strikes) -> pd.DataFrame:
    """
    Evaluate two local vol surfaces side by side.

    Parameters
    ----------
    surface : tree surface, anything with z_value(time, strike)
    reference : oracle surface, same contract
    times : sample times
    strikes : one sequence of strikes used at every time, or one sequence
              per time

    Returns
    -------
    DataFrame with columns [time, strike, tree_vol, reference_vol, abs_diff]
    """
    times = list(times)
    if len(strikes) and np.ndim(strikes[0]) == 0:
        strikes = [strikes] * len(times)
    if len(strikes) != len(times):
        raise ValueError(f"{len(strikes)} strike sets for {len(times)} times")

    rows = []
    for t, ks in zip(times, strikes):
        for k in ks:
            tree_vol = surface.z_value(t, k)
            reference_vol = reference.z_value(t, k)
            rows.append({
                "time": t,
                "strike": k,
                "tree_vol": tree_vol,
                "reference_vol": reference_vol,
                "abs_diff": abs(tree_vol - reference_vol),
            })
    return pd.DataFrame(rows, columns=["time", "strike", "tree_vol", "reference_vol", "abs_diff"])


def compute_sample_statistics(samples: pd.DataFrame, spot: Optional[float] = None) -> dict:
    """
    Summary statistics of the local vol samples of a calibration.

    Parameters
    ----------
    samples : DataFrame from LocalVolatilityExtractor.extract
    spot : if given, the near-the-money vol is averaged over spots
           within 1% of it

    Returns
    -------
    dict with keys:
        n_samples     : total samples (tree nodes)
        n_levels      : number of time levels
        time_range    : (min, max)
        spot_range    : (min, max)
        vol_range     : (min, max)
        n_adjusted    : samples whose node probabilities were repaired
        atm_vol_mean  : average vol near spot (NaN if no spot given)
    """
    stats = {
        "n_samples": len(samples),
        "n_levels": samples["level"].nunique(),
        "time_range": (samples["time"].min(), samples["time"].max()),
        "spot_range": (samples["spot"].min(), samples["spot"].max()),
        "vol_range": (samples["volatility"].min(), samples["volatility"].max()),
        "n_adjusted": int(samples["adjusted"].sum()),
    }

    if spot is not None:
        atm_mask = (samples["spot"] / spot).between(0.99, 1.01)
        stats["atm_vol_mean"] = samples.loc[atm_mask, "volatility"].mean() if atm_mask.any() else np.nan
    else:
        stats["atm_vol_mean"] = np.nan

    return stats


def local_vol_mesh(
    surface,
    spot: float,
    max_time: float,
    n_t: int = None,
    n_k: int = None,
    moneyness: Tuple[float, float] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Evaluate a surface on a regular (time, strike) mesh.

    The time axis starts one mesh step after 0 so that formulas singular
    at t = 0 (Dupire) stay finite.

    Returns
    -------
    T_grid : 1D array of times (length n_t)
    K_grid : 1D array of strikes (length n_k)
    Z : 2D array of surface values (n_t x n_k)
    """
    n_t = config.MESH_T_POINTS if n_t is None else n_t
    n_k = config.MESH_K_POINTS if n_k is None else n_k
    lo, hi = config.MESH_MONEYNESS if moneyness is None else moneyness

    T_grid = np.linspace(max_time / n_t, max_time, n_t)
    K_grid = np.linspace(lo * spot, hi * spot, n_k)
    Z = np.array([[surface.z_value(t, k) for k in K_grid] for t in T_grid])
    return T_grid, K_grid, Z


def sample_mesh(
    samples: pd.DataFrame,
    n_t: int = None,
    n_k: int = None,
    method: str = "linear",
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Scattered node samples onto a regular (time, spot) mesh.

    A view of the raw calibration output that does not go through the
    caller's interpolator. The mesh covers the bounding box of the nodes;
    corners outside their convex hull are filled by nearest neighbour.
    """
    n_t = config.MESH_T_POINTS if n_t is None else n_t
    n_k = config.MESH_K_POINTS if n_k is None else n_k

    times = samples["time"].to_numpy(dtype=float)
    spots = samples["spot"].to_numpy(dtype=float)
    vols = samples["volatility"].to_numpy(dtype=float)

    T_grid = np.linspace(times.min(), times.max(), n_t)
    K_grid = np.linspace(spots.min(), spots.max(), n_k)
    T_mesh, K_mesh = np.meshgrid(T_grid, K_grid, indexing="ij")

    Z = griddata(points=(times, spots), values=vols, xi=(T_mesh, K_mesh), method=method)
    nan_mask = np.isnan(Z)
    if nan_mask.any():
        nearest = griddata(points=(times, spots), values=vols, xi=(T_mesh, K_mesh), method="nearest")
        Z[nan_mask] = nearest[nan_mask]
    return T_grid, K_grid, Z
