"""
Tests for the interpolation adapter.
"""

import pytest
import numpy as np
from localvol.interpolation import (
    Interpolator1D, GridInterpolator2D,
    LINEAR_FLAT, TIME_SQUARE_FLAT, NATURAL_CUBIC, NATURAL_CUBIC_FLAT,
    NATURAL_CUBIC_LINEAR, PCHIP_FLAT,
)


X = np.array([0.0, 1.0, 2.0, 4.0])
Y = np.array([1.0, 3.0, 2.0, 6.0])


class TestInterpolator1D:

    @pytest.mark.parametrize("scheme", [LINEAR_FLAT, NATURAL_CUBIC, PCHIP_FLAT, NATURAL_CUBIC_LINEAR])
    def test_passes_through_nodes(self, scheme):
        fn = scheme.bind(X, Y)
        np.testing.assert_allclose(fn(X), Y, atol=1e-12)

    def test_linear_between_nodes(self):
        fn = LINEAR_FLAT.bind(X, Y)
        assert fn(0.5) == pytest.approx(2.0)
        assert fn(3.0) == pytest.approx(4.0)

    def test_scalar_query_returns_float(self):
        assert isinstance(LINEAR_FLAT.bind(X, Y)(1.5), float)

    def test_unsorted_nodes(self):
        order = [2, 0, 3, 1]
        fn = LINEAR_FLAT.bind(X[order], Y[order])
        assert fn(0.5) == pytest.approx(2.0)

    def test_flat_extrapolation(self):
        fn = NATURAL_CUBIC_FLAT.bind(X, Y)
        assert fn(-3.0) == pytest.approx(Y[0])
        assert fn(10.0) == pytest.approx(Y[-1])

    def test_linear_extrapolation_uses_end_slope(self):
        fn = Interpolator1D("linear", "linear", "linear").bind(X, Y)
        assert fn(-1.0) == pytest.approx(-1.0)   # slope 2 on the first segment
        assert fn(5.0) == pytest.approx(8.0)     # slope 2 on the last segment

    def test_interpolator_extrapolation_continues_scheme(self):
        x = np.array([0.0, 1.0, 2.0])
        fn = NATURAL_CUBIC.bind(x, 2 * x + 1)
        assert fn(3.0) == pytest.approx(7.0)

    def test_pchip_does_not_overshoot(self):
        x = np.array([0.0, 1.0, 2.0, 3.0])
        y = np.array([0.0, 0.0, 1.0, 1.0])
        values = PCHIP_FLAT.bind(x, y)(np.linspace(0, 3, 61))
        assert values.min() >= 0.0
        assert values.max() <= 1.0

    def test_time_square_linear_in_total_variance(self):
        t = np.array([0.5, 1.0])
        vol = np.array([0.2, 0.1])
        v = TIME_SQUARE_FLAT.bind(t, vol)(0.75)
        w = 0.5 * (0.5 * 0.2**2 + 1.0 * 0.1**2)
        assert v == pytest.approx(np.sqrt(w / 0.75))

    def test_single_node_is_constant(self):
        fn = NATURAL_CUBIC.bind([1.0], [0.3])
        np.testing.assert_allclose(fn(np.array([-1.0, 1.0, 5.0])), 0.3)

    def test_vector_valued_nodes(self):
        y = np.column_stack((Y, 2 * Y))
        out = LINEAR_FLAT.bind(X, y)(np.array([0.5, 3.0]))
        assert out.shape == (2, 2)
        np.testing.assert_allclose(out[:, 1], 2 * out[:, 0])

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            Interpolator1D("quintic")

    def test_unknown_extrapolator_rejected(self):
        with pytest.raises(ValueError):
            Interpolator1D("linear", "exponential")

    def test_mismatched_nodes_rejected(self):
        with pytest.raises(ValueError):
            LINEAR_FLAT.bind([0.0, 1.0], [1.0])


class TestGridInterpolator2D:

    def test_bilinear_plane_reproduced(self):
        x, y = np.meshgrid([0.0, 1.0, 2.0], [0.0, 1.0, 2.0])
        z = 1.0 + 2.0 * x + 3.0 * y
        grid = GridInterpolator2D().bind(x.ravel(), y.ravel(), z.ravel())
        assert grid(0.5, 1.5) == pytest.approx(1.0 + 1.0 + 4.5)

    def test_irregular_slices(self):
        """Slices need not share y nodes."""
        x = np.array([0.0, 0.0, 1.0, 1.0, 1.0])
        y = np.array([0.0, 2.0, 0.0, 1.0, 3.0])
        z = x + y
        grid = GridInterpolator2D().bind(x, y, z)
        assert grid(0.5, 1.0) == pytest.approx(1.5)

    def test_array_query_along_y(self):
        x, y = np.meshgrid([0.0, 1.0], [0.0, 1.0, 2.0])
        grid = GridInterpolator2D().bind(x.ravel(), y.ravel(), (x + y).ravel())
        np.testing.assert_allclose(grid(0.5, np.array([0.0, 1.0, 2.0])), [0.5, 1.5, 2.5])

    def test_flat_outside(self):
        x, y = np.meshgrid([0.0, 1.0], [0.0, 1.0])
        grid = GridInterpolator2D().bind(x.ravel(), y.ravel(), (x + y).ravel())
        assert grid(5.0, 5.0) == pytest.approx(2.0)

    def test_size_mismatch_rejected(self):
        with pytest.raises(ValueError):
            GridInterpolator2D().bind([0.0, 1.0], [0.0], [1.0, 2.0])
