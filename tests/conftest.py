"""
Shared test fixtures and pytest configuration.
"""

import warnings

import pytest
import numpy as np

from localvol import config
from localvol.interpolation import GridInterpolator2D, LINEAR_FLAT, TIME_SQUARE_FLAT
from localvol.market_data import smile_vol_surface
from localvol.rates import ConstantRate
from localvol.surfaces import ConstantSurface, MarketContext

FLAT_VOL = 0.15
FLAT_SPOT = 100.0


@pytest.fixture(autouse=True)
def set_random_seed():
    """Ensure test reproducibility."""
    np.random.seed(42)
    yield


@pytest.fixture
def zero_rate():
    return ConstantRate(0.0)


@pytest.fixture
def flat_surface():
    return ConstantSurface(FLAT_VOL)


@pytest.fixture
def flat_market(zero_rate):
    return MarketContext(FLAT_SPOT, zero_rate, zero_rate)


@pytest.fixture
def smile_surface():
    return smile_vol_surface()


@pytest.fixture
def smile_market():
    return MarketContext(config.SMILE_SPOT, ConstantRate(config.SMILE_FINANCING_RATE),
                         ConstantRate(config.SMILE_DIVIDEND_RATE))


@pytest.fixture
def flat_interpolator():
    return GridInterpolator2D(TIME_SQUARE_FLAT, LINEAR_FLAT)


@pytest.fixture
def quiet():
    """Silence ArbitrageWarning for tests that are not about it."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        yield
