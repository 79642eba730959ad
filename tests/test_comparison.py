"""
Tests for the comparison harness and surface diagnostics.
"""

import pytest
import numpy as np
from localvol.calculator import ImpliedTrinomialTreeLocalVolatilityCalculator
from localvol.comparison import (
    compare_local_volatility, compute_sample_statistics, local_vol_mesh, sample_mesh,
)
from localvol.rates import ConstantRate
from localvol.surfaces import ConstantSurface, DeformedSurface, ImpliedVolSurface

SPOT = 100.0


@pytest.fixture
def flat_result():
    calculator = ImpliedTrinomialTreeLocalVolatilityCalculator(8, 1.0)
    return calculator.calibrate(ImpliedVolSurface(ConstantSurface(0.2)), SPOT,
                                ConstantRate(0.0), ConstantRate(0.0))


class TestCompare:

    def test_shared_strikes(self):
        df = compare_local_volatility(ConstantSurface(0.21), ConstantSurface(0.2),
                                      [0.5, 1.0], [90.0, 100.0, 110.0])
        assert list(df.columns) == ["time", "strike", "tree_vol", "reference_vol", "abs_diff"]
        assert len(df) == 6
        np.testing.assert_allclose(df["abs_diff"], 0.01, atol=1e-12)

    def test_strikes_per_time(self):
        df = compare_local_volatility(ConstantSurface(0.2), ConstantSurface(0.2),
                                      [0.5, 1.0], [[100.0], [90.0, 110.0]])
        assert len(df) == 3
        assert list(df["time"]) == [0.5, 1.0, 1.0]

    def test_mismatched_strike_sets(self):
        with pytest.raises(ValueError):
            compare_local_volatility(ConstantSurface(0.2), ConstantSurface(0.2),
                                     [0.5, 1.0], [[100.0]])


class TestSampleStatistics:

    def test_keys_and_counts(self, flat_result):
        stats = compute_sample_statistics(flat_result.samples, spot=SPOT)
        assert stats["n_samples"] == 64
        assert stats["n_levels"] == 8
        assert stats["time_range"][0] == 0.0
        assert stats["n_adjusted"] == 0
        assert stats["atm_vol_mean"] == pytest.approx(0.2, abs=1e-4)

    def test_without_spot(self, flat_result):
        stats = compute_sample_statistics(flat_result.samples)
        assert np.isnan(stats["atm_vol_mean"])


class TestMeshes:

    def test_local_vol_mesh(self):
        surface = DeformedSurface(lambda t, k: t + k / 1000.0)
        T_grid, K_grid, Z = local_vol_mesh(surface, SPOT, 2.0, n_t=4, n_k=5, moneyness=(0.5, 1.5))
        assert Z.shape == (4, 5)
        assert T_grid[0] == pytest.approx(0.5)
        assert K_grid[0] == pytest.approx(50.0)
        assert Z[1, 2] == pytest.approx(T_grid[1] + K_grid[2] / 1000.0)

    def test_sample_mesh_filled(self, flat_result):
        T_grid, K_grid, Z = sample_mesh(flat_result.samples, n_t=10, n_k=12)
        assert Z.shape == (10, 12)
        assert not np.isnan(Z).any()
        np.testing.assert_allclose(Z, 0.2, atol=1e-4)
