"""
Tests for the chart step of the command-line driver.
"""

from pathlib import Path

import pytest
import main
from localvol import config
from localvol.calculator import ImpliedTrinomialTreeLocalVolatilityCalculator
from localvol.rates import ConstantRate
from localvol.surfaces import ConstantSurface, ImpliedVolSurface

SPOT = 100.0


@pytest.fixture
def flat_result():
    calculator = ImpliedTrinomialTreeLocalVolatilityCalculator(6, 0.6)
    return calculator.calibrate(ImpliedVolSurface(ConstantSurface(0.2)), SPOT,
                                ConstantRate(0.0), ConstantRate(0.0))


class TestRenderCharts:

    def test_node_chart_written(self, flat_result, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "OUTPUT_DIR", tmp_path)
        paths = main.render_charts(flat_result, ConstantSurface(0.2), SPOT, 0.6, [0.15, 0.3],
                                   html=False)
        assert len(paths) == 3
        assert Path(paths[1]).name == "local_vol_nodes.png"
        for path in paths:
            assert Path(path).parent == tmp_path
            assert Path(path).exists()

    def test_html_optional(self, flat_result, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "OUTPUT_DIR", tmp_path)
        paths = main.render_charts(flat_result, ConstantSurface(0.2), SPOT, 0.6, [0.3])
        assert Path(paths[-1]).suffix == ".html"
        assert Path(paths[-1]).exists()
