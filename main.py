#!/usr/bin/env python3
"""
main.py — Calibrate an implied trinomial tree and chart its local volatility.

Usage:
    python main.py                              # reference smile, vol surface
    python main.py --mode price                 # same smile, through call prices
    python main.py --source svi --spot 600 --steps 40 --horizon 2
"""

import argparse
import logging
import sys
import time
import warnings

import numpy as np

from localvol import config
from localvol.calculator import ImpliedTrinomialTreeLocalVolatilityCalculator
from localvol.comparison import (compare_local_volatility, compute_sample_statistics,
                                 local_vol_mesh, sample_mesh)
from localvol.dupire import DupireLocalVolatilityCalculator
from localvol.errors import ArbitrageWarning, LocalVolatilityError
from localvol.market_data import (deformed_price_surface, flat_vol_surface,
                                  smile_vol_surface, svi_vol_surface)
from localvol.rates import ConstantRate
from localvol.surfaces import ImpliedVolSurface, PriceSurface
from localvol.visualization import (plot_comparison_matplotlib, plot_surface_matplotlib,
                                    plot_surface_plotly)


def parse_args():
    p = argparse.ArgumentParser(description="Local volatility from an implied trinomial tree.")
    p.add_argument("--source", choices=["smile", "svi", "flat"], default="smile")
    p.add_argument("--mode", choices=["vol", "price"], default="vol")
    p.add_argument("--steps", type=int, default=None)
    p.add_argument("--horizon", type=float, default=None)
    p.add_argument("--spot", type=float, default=None)
    p.add_argument("--rate", type=float, default=None)
    p.add_argument("--dividend", type=float, default=None)
    p.add_argument("--vol", type=float, default=0.15, help="vol of the flat source")
    p.add_argument("--no-html", action="store_true")
    p.add_argument("--verbose", action="store_true")
    return p.parse_args()


def build_input(args):
    """Vol surface, spot and rates for the chosen source."""
    if args.source == "smile":
        spot = args.spot or config.SMILE_SPOT
        rate = config.SMILE_FINANCING_RATE if args.rate is None else args.rate
        dividend = config.SMILE_DIVIDEND_RATE if args.dividend is None else args.dividend
        return smile_vol_surface(), spot, rate, dividend
    spot = args.spot or 100.0
    rate = 0.0 if args.rate is None else args.rate
    dividend = 0.0 if args.dividend is None else args.dividend
    if args.source == "svi":
        return svi_vol_surface(spot), spot, rate, dividend
    return flat_vol_surface(args.vol), spot, rate, dividend


def render_charts(result, reference, spot, horizon, times, html=True):
    """
    Write the charts of a calibration to config.OUTPUT_DIR.

    The interpolated surface in 3D, the raw node samples in 3D, tree vs
    Dupire slices and, with html, the interactive surface.
    """
    T_grid, K_grid, Z = local_vol_mesh(result.surface, spot, horizon)
    paths = [plot_surface_matplotlib(T_grid, K_grid, Z)]
    T_nodes, S_nodes, Z_nodes = sample_mesh(result.samples)
    paths.append(plot_surface_matplotlib(T_nodes, S_nodes, Z_nodes,
                                         title="Local Volatility at Tree Nodes",
                                         output_path=str(config.OUTPUT_DIR / "local_vol_nodes.png")))
    slice_strikes = np.linspace(*config.MESH_MONEYNESS, config.MESH_K_POINTS) * spot
    paths.append(plot_comparison_matplotlib(result.surface, reference, times, slice_strikes, spot))
    if html:
        paths.append(plot_surface_plotly(T_grid, K_grid, Z, result.samples))
    return paths


def main():
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    steps = args.steps or (29 if args.source == "smile" else config.N_STEPS)
    horizon = args.horizon or (1.45 if args.source == "smile" else config.MAX_TIME)

    print(f"\n{'='*60}")
    print(f"  Implied Trinomial Tree Local Volatility")
    print(f"  Source: {args.source}  |  Input: {args.mode}  |  Steps: {steps}")
    print(f"{'='*60}\n")

    t0 = time.time()
    print("[1/4] Building market input...")
    vol_surface, spot, rate, dividend = build_input(args)
    financing, dividend_rate = ConstantRate(rate), ConstantRate(dividend)
    if args.mode == "price":
        input_surface = deformed_price_surface(vol_surface, spot, financing, dividend_rate)
        market_surface = PriceSurface(input_surface)
    else:
        input_surface = vol_surface
        market_surface = ImpliedVolSurface(input_surface)
    print(f"       Spot: {spot:.4g}  r: {rate:.2%}  q: {dividend:.2%}")

    print("\n[2/4] Calibrating tree...")
    calculator = ImpliedTrinomialTreeLocalVolatilityCalculator(steps, horizon)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ArbitrageWarning)
            result = calculator.calibrate(market_surface, spot, financing, dividend_rate)
    except LocalVolatilityError as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)

    stats = compute_sample_statistics(result.samples, spot)
    print(f"       Nodes: {stats['n_samples']} on {stats['n_levels']} levels")
    print(f"       Spot range: {stats['spot_range'][0]:.4g} - {stats['spot_range'][1]:.4g}")
    print(f"       Local vol range: {stats['vol_range'][0]:.1%} - {stats['vol_range'][1]:.1%}")
    if not np.isnan(stats["atm_vol_mean"]):
        print(f"       ATM local vol (mean): {stats['atm_vol_mean']:.1%}")
    print(f"       Adjusted nodes: {stats['n_adjusted']}  |  Violations: {len(result.violations)}")

    print("\n[3/4] Comparing with Dupire...")
    dupire = DupireLocalVolatilityCalculator()
    if args.mode == "price":
        reference = dupire.local_volatility_from_price(input_surface, spot, financing, dividend_rate)
    else:
        reference = dupire.local_volatility_from_implied_volatility(
            input_surface, spot, financing, dividend_rate)
    times = [horizon * f for f in (0.25, 0.5, 0.75)]
    strikes = spot * np.array([0.8, 0.9, 1.0, 1.1, 1.2])
    report = compare_local_volatility(result.surface, reference, times, strikes)
    print(report.to_string(index=False, float_format=lambda x: f"{x:.4f}"))
    print(f"       Max |tree - Dupire|: {report['abs_diff'].max():.4f}")

    print("\n[4/4] Generating charts...")
    for path in render_charts(result, reference, spot, horizon, times, html=not args.no_html):
        print(f"       -> {path}")
    if args.no_html:
        print("       Skipping HTML (--no-html flag)")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.1f}s. Charts are in output/\n")


if __name__ == "__main__":
    main()
