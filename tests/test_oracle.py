"""
Tests for the option price oracle and the reference lattice quotes.
"""

import pytest
import numpy as np
from localvol.black_scholes import call_price
from localvol.errors import InvalidInputError
from localvol.lattice import branch_spacing, level_spots
from localvol.oracle import OptionPriceOracle, ReferenceLattice
from localvol.surfaces import (
    ConstantSurface, DeformedSurface, ImpliedVolSurface, PriceSurface,
)

SPOT = 100.0
VOL = 0.15


def _reference(n_levels, dt, vols=VOL, growth=1.0, discount=1.0, spacing_vol=VOL):
    """A reference lattice grown the calibrator's way with constant spacing."""
    vols = np.broadcast_to(vols, (n_levels,))
    dx = branch_spacing(spacing_vol, dt)
    lattice = ReferenceLattice(SPOT)
    capped = []
    for i in range(n_levels):
        forwards = lattice.spots * growth
        children = level_spots(forwards[i], dx, i + 1)
        capped.append(lattice.advance(forwards, children, discount, vols[i], (i + 1) * dt))
    return lattice, capped


def _flat_calls(t, k):
    return call_price(SPOT, k, t, 0.0, VOL)


class TestOracle:

    def test_variants_interchangeable(self, flat_market):
        by_vol = OptionPriceOracle(ImpliedVolSurface(ConstantSurface(VOL)), flat_market)
        by_price = OptionPriceOracle(PriceSurface(DeformedSurface(_flat_calls)), flat_market)
        for k in (85.0, 100.0, 115.0):
            assert by_price.price(0.5, k) == pytest.approx(by_vol.price(0.5, k), abs=1e-12)
            assert by_price.volatility(0.5, k) == pytest.approx(by_vol.volatility(0.5, k), abs=1e-8)

    def test_rejects_plain_surface(self, flat_market):
        with pytest.raises(InvalidInputError):
            OptionPriceOracle(ConstantSurface(VOL), flat_market)

    def test_invalid_price_reports_coordinates(self, flat_market):
        oracle = OptionPriceOracle(PriceSurface(ConstantSurface(-2.0)), flat_market)
        with pytest.raises(InvalidInputError) as err:
            oracle.volatilities(0.3, [90.0, 100.0, 110.0])
        assert err.value.time == 0.3
        assert err.value.strike == 90.0

    def test_volatilities_fill_uninformative(self, flat_market):
        oracle = OptionPriceOracle(PriceSurface(DeformedSurface(_flat_calls)), flat_market)
        strikes = np.array([20.0, 95.0, 100.0, 105.0, 500.0])
        vols, uninformative, invalid = oracle.volatilities(0.1, strikes)
        np.testing.assert_array_equal(uninformative, [True, False, False, False, True])
        assert not invalid.any()
        np.testing.assert_allclose(vols, VOL, atol=1e-8)

    def test_negative_wing_prices_filled(self, flat_market):
        """Wing prices below zero are repaired like uninformative ones."""
        calls = DeformedSurface(lambda t, k: _flat_calls(t, k) if 90.0 <= k <= 110.0 else -0.05)
        oracle = OptionPriceOracle(PriceSurface(calls), flat_market)
        vols, uninformative, invalid = oracle.volatilities(0.25, [80.0, 95.0, 100.0, 105.0, 120.0])
        np.testing.assert_array_equal(invalid, [True, False, False, False, True])
        assert not uninformative.any()
        np.testing.assert_allclose(vols, VOL, atol=1e-8)

    def test_negative_wing_vols_filled(self, flat_market):
        surface = DeformedSurface(lambda t, k: 0.2 if k < 130.0 else -0.01)
        oracle = OptionPriceOracle(ImpliedVolSurface(surface), flat_market)
        vols, _, invalid = oracle.volatilities(1.0, [90.0, 100.0, 120.0, 140.0])
        np.testing.assert_array_equal(invalid, [False, False, False, True])
        assert vols[-1] == 0.2

    def test_volatilities_without_fill(self, flat_market):
        oracle = OptionPriceOracle(PriceSurface(DeformedSurface(_flat_calls)), flat_market)
        vols, _, _ = oracle.volatilities(0.1, [100.0, 500.0], fill=False)
        assert np.isnan(vols[1])

    def test_no_informative_quote(self, flat_market):
        oracle = OptionPriceOracle(PriceSurface(ConstantSurface(0.0)), flat_market)
        with pytest.raises(InvalidInputError):
            oracle.volatilities(0.5, [110.0, 120.0])


class TestReferenceLattice:

    def test_put_call_parity(self):
        """Lattice prices are martingale prices: C - P = DF (F - K)."""
        dt, disc, growth = 0.1, np.exp(-0.02 * 0.1), np.exp(0.01 * 0.1)
        lattice, capped = _reference(5, dt, growth=growth, discount=disc)
        strikes = np.array([85.0, 97.3, 100.0, 104.0, 120.0])
        calls, puts = lattice.option_prices(strikes)
        forward = SPOT * growth**5
        np.testing.assert_allclose(calls - puts, disc**5 * (forward - strikes), atol=1e-10)
        assert not np.any(capped)

    def test_prices_are_payoff_sums(self):
        lattice, _ = _reference(6, 0.05)
        strikes = np.concatenate((lattice.spots[3:6], [99.0, 101.5, 1.0, 1000.0]))
        calls, puts = lattice.option_prices(strikes)
        payoff = lattice.spots[None, :] - strikes[:, None]
        np.testing.assert_allclose(
            calls, np.sum(lattice.state_prices * np.maximum(payoff, 0.0), axis=1), rtol=1e-12, atol=1e-12)
        np.testing.assert_allclose(
            puts, np.sum(lattice.state_prices * np.maximum(-payoff, 0.0), axis=1), rtol=1e-12, atol=1e-12)

    def test_close_to_closed_form(self):
        lattice, _ = _reference(40, 1.0 / 40)
        calls, _ = lattice.option_prices([100.0])
        assert calls[0] == pytest.approx(call_price(SPOT, 100.0, 1.0, 0.0, VOL), rel=1e-2)

    def test_implied_volatility_is_average_variance(self):
        dt = 0.1
        lattice, _ = _reference(4, dt, vols=[0.1, 0.1, 0.2, 0.2], spacing_vol=0.2)
        assert lattice.time == pytest.approx(0.4)
        assert lattice.implied_volatility == pytest.approx(np.sqrt((0.01 + 0.04) / 2))
        assert ReferenceLattice(SPOT).implied_volatility == 0.0

    def test_capped_flagged(self):
        _, capped = _reference(3, 0.1, vols=[0.1, 0.1, 0.5], spacing_vol=0.1)
        assert not capped[1].any()
        assert capped[2].all()


class TestQuotes:

    def test_flat_quotes_are_lattice_prices(self, flat_market):
        oracle = OptionPriceOracle(ImpliedVolSurface(ConstantSurface(VOL)), flat_market)
        lattice, _ = _reference(8, 0.05)
        strikes = lattice.spots[1:-1]
        calls, puts = oracle.quote(lattice, 0.4, strikes, np.full(strikes.size, VOL))
        expected_calls, expected_puts = lattice.option_prices(strikes)
        np.testing.assert_allclose(calls, expected_calls, atol=1e-12)
        np.testing.assert_allclose(puts, expected_puts, atol=1e-12)

    def test_correction_follows_closed_form(self, flat_market):
        oracle = OptionPriceOracle(ImpliedVolSurface(ConstantSurface(VOL)), flat_market)
        lattice, _ = _reference(8, 0.05)
        strikes = np.array([100.0, 100.0])
        calls, puts = oracle.quote(lattice, 0.4, strikes, np.array([VOL, 0.2]))
        shift = call_price(SPOT, 100.0, 0.4, 0.0, 0.2) - call_price(SPOT, 100.0, 0.4, 0.0, VOL)
        assert calls[1] - calls[0] == pytest.approx(shift, rel=1e-10)
        assert puts[1] - puts[0] == pytest.approx(shift, rel=1e-10)
