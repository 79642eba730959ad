"""
Tests for local variance extraction and surface assembly.
"""

import pytest
import numpy as np
import pandas as pd
from localvol.assembler import SurfaceAssembler
from localvol.errors import InvalidInputError
from localvol.extractor import LocalVolatilityExtractor, branch_moments, SAMPLE_COLUMNS
from localvol.interpolation import GridInterpolator2D
from localvol.lattice import (
    Level, TimeGrid, TrinomialTree, branch_spacing, level_spots, moment_matched_probabilities,
)

DT = 0.05
VOL = 0.25


def _moment_matched_tree(n_steps=3, vols=None):
    """Tree whose level i branches with the moment-matched probabilities of vols[i]."""
    vols = [VOL] * n_steps if vols is None else vols
    tree = TrinomialTree(TimeGrid(n_steps, n_steps * DT))
    tree.append(Level(0, 0.0, [100.0], [1.0]))
    dx = branch_spacing(max(vols), DT)
    for i in range(n_steps):
        level = tree[i]
        children = level_spots(100.0, dx, i + 1)
        p_up, p_mid, p_down, _ = moment_matched_probabilities(
            level.spots, children[:-2], children[1:-1], children[2:], np.expm1(vols[i]**2 * DT))
        p = np.column_stack((p_up, p_mid, p_down))
        tree.finalize_level(i, level.spots, p)
        q = np.zeros(children.size)
        q[2:] += level.state_prices * p_up
        q[1:-1] += level.state_prices * p_mid
        q[:-2] += level.state_prices * p_down
        tree.append(Level(i + 1, (i + 1) * DT, children, q))
    return tree


class TestExtractor:

    def test_inverts_moment_matching(self):
        samples = LocalVolatilityExtractor(DT).extract(_moment_matched_tree())
        np.testing.assert_allclose(samples["volatility"], VOL, atol=1e-12)

    def test_level_dependent_vols(self):
        vols = [0.1, 0.2, 0.3]
        samples = LocalVolatilityExtractor(DT).extract(_moment_matched_tree(3, vols))
        for i, v in enumerate(vols):
            np.testing.assert_allclose(samples.loc[samples["level"] == i, "volatility"], v, atol=1e-12)

    def test_one_sample_per_non_terminal_node(self):
        samples = LocalVolatilityExtractor(DT).extract(_moment_matched_tree(4))
        assert list(samples.columns) == SAMPLE_COLUMNS
        assert len(samples) == 1 + 3 + 5 + 7
        assert samples["level"].max() == 3

    def test_sample_coordinates(self):
        tree = _moment_matched_tree()
        samples = LocalVolatilityExtractor(DT).extract(tree)
        level2 = samples[samples["level"] == 2]
        np.testing.assert_array_equal(level2["spot"], tree[2].spots)
        np.testing.assert_allclose(level2["time"], 2 * DT)
        np.testing.assert_allclose(samples["variance"], samples["volatility"]**2, rtol=1e-12)

    def test_adjusted_flag(self):
        samples = LocalVolatilityExtractor(DT).extract(_moment_matched_tree(), adjusted={(1, 2)})
        flagged = samples[samples["adjusted"]]
        assert list(zip(flagged["level"], flagged["position"])) == [(1, 2)]

    def test_branch_moments(self):
        children = np.array([90.0, 100.0, 110.0])
        mean, var = branch_moments(children, np.array([[0.25, 0.5, 0.25]]))
        assert mean[0] == pytest.approx(100.0)
        assert var[0] == pytest.approx(50.0)

    def test_rejects_bad_dt(self):
        with pytest.raises(InvalidInputError):
            LocalVolatilityExtractor(0.0)

    def test_unfinalized_level_rejected(self):
        tree = TrinomialTree(TimeGrid(1, 1.0))
        tree.append(Level(0, 0.0, [100.0], [1.0]))
        tree._levels.append(Level(1, 1.0, [90.0, 100.0, 110.0], [0.25, 0.5, 0.25]))
        with pytest.raises(ValueError):
            LocalVolatilityExtractor(1.0).extract(tree)


class TestAssembler:

    def test_surface_through_samples(self):
        samples = LocalVolatilityExtractor(DT).extract(_moment_matched_tree(3, [0.1, 0.2, 0.3]))
        surface = SurfaceAssembler(GridInterpolator2D()).assemble(samples)
        for _, row in samples.iterrows():
            assert surface.z_value(row["time"], row["spot"]) == pytest.approx(row["volatility"], abs=1e-12)

    def test_interpolates_between_levels(self):
        samples = LocalVolatilityExtractor(DT).extract(_moment_matched_tree(3, [0.1, 0.2, 0.3]))
        surface = SurfaceAssembler(GridInterpolator2D()).assemble(samples)
        assert surface.z_value(1.5 * DT, 100.0) == pytest.approx(0.25, abs=1e-12)
        # flat beyond the last sampled level
        assert surface.z_value(10.0, 100.0) == pytest.approx(0.3, abs=1e-12)

    def test_empty_samples_rejected(self):
        with pytest.raises(ValueError):
            SurfaceAssembler(GridInterpolator2D()).assemble(pd.DataFrame(columns=SAMPLE_COLUMNS))
