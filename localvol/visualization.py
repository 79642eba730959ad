"""
Charts of local volatility surfaces.

Two backends:
    - matplotlib: static PNGs (3D surface, tree vs Dupire slices)
    - plotly: interactive HTML with rotation, zoom, hover tooltips

Both share the dark theme of config.py.
"""

from typing import Optional

import numpy as np
import pandas as pd

import matplotlib
matplotlib.use("Agg")  # non-interactive backend for server/CI environments
import matplotlib.pyplot as plt
from mpl_toolkits.mplot3d import Axes3D  # noqa: F401 (needed for 3d projection)

import plotly.graph_objects as go

from . import config


def _output_path(output_path: Optional[str], name: str) -> str:
    if output_path is None:
        config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        output_path = str(config.OUTPUT_DIR / name)
    return output_path


def _style_2d(fig, ax) -> None:
    fig.patch.set_facecolor(config.DARK_BG)
    ax.set_facecolor(config.DARK_BG)
    ax.tick_params(colors="white", labelsize=10)
    ax.grid(True, alpha=config.GRID_COLOR_ALPHA, color="white")
    for spine in ax.spines.values():
        spine.set_color("#333355")


# ════════════════════════════════════════════════════════════════════════
#  MATPLOTLIB — 3D SURFACE (static PNG)
# ════════════════════════════════════════════════════════════════════════

def plot_surface_matplotlib(
    T_grid: np.ndarray,
    K_grid: np.ndarray,
    Z: np.ndarray,
    title: str = "Local Volatility Surface",
    output_path: str = None,
) -> str:
    """
    Render a (time, strike) -> vol mesh as a 3D PNG.

    Parameters
    ----------
    T_grid, K_grid, Z : output of comparison.local_vol_mesh
    title : chart title
    output_path : where to save the PNG (default: config.OUTPUT_DIR / "local_vol_3d.png")
    """
    output_path = _output_path(output_path, "local_vol_3d.png")
    K_mesh, T_mesh = np.meshgrid(K_grid, T_grid)

    fig = plt.figure(figsize=(config.FIG_WIDTH_3D, config.FIG_HEIGHT_3D))
    ax = fig.add_subplot(111, projection="3d")

    surf = ax.plot_surface(
        K_mesh, T_mesh, Z * 100,
        cmap=config.COLORMAP,
        edgecolor="none",
        alpha=0.95,
        antialiased=True,
    )

    ax.set_xlabel("Spot / Strike", fontsize=13, labelpad=12, color="white")
    ax.set_ylabel("Time (years)", fontsize=13, labelpad=12, color="white")
    ax.set_zlabel("Local Volatility (σ) %", fontsize=13, labelpad=12, color="white")
    ax.set_title(title, fontsize=18, fontweight="bold", color="white", pad=20)

    ax.set_facecolor(config.DARK_BG)
    fig.patch.set_facecolor(config.DARK_BG)
    for axis in ["x", "y", "z"]:
        ax.tick_params(axis=axis, colors="white", labelsize=9)
    for pane in (ax.xaxis.pane, ax.yaxis.pane, ax.zaxis.pane):
        pane.fill = False
        pane.set_edgecolor("#333355")
    ax.grid(True, alpha=0.15, color="white")
    ax.view_init(elev=config.ELEV, azim=config.AZIM)

    cbar = fig.colorbar(surf, ax=ax, shrink=0.55, aspect=15, pad=0.08)
    cbar.set_label("Local Vol (%)", fontsize=11, color="white")
    cbar.ax.tick_params(colors="white", labelsize=9)

    plt.tight_layout()
    plt.savefig(output_path, dpi=config.DPI, bbox_inches="tight",
                facecolor=config.DARK_BG, edgecolor="none")
    plt.close(fig)
    return output_path


# ════════════════════════════════════════════════════════════════════════
#  MATPLOTLIB — TREE VS DUPIRE SLICES (static PNG)
# ════════════════════════════════════════════════════════════════════════

def plot_comparison_matplotlib(
    tree_surface,
    reference_surface,
    times,
    strikes: np.ndarray,
    spot: float,
    output_path: str = None,
) -> str:
    """
    Local vol against strike at a few times: tree (solid) vs Dupire (dashed).
    """
    output_path = _output_path(output_path, "local_vol_slices.png")

    fig, ax = plt.subplots(figsize=(config.FIG_WIDTH_2D, config.FIG_HEIGHT_2D))
    _style_2d(fig, ax)

    for i, t in enumerate(times):
        color = config.SLICE_COLORS[i % len(config.SLICE_COLORS)]
        tree = [tree_surface.z_value(t, k) for k in strikes]
        reference = [reference_surface.z_value(t, k) for k in strikes]
        ax.plot(strikes, np.array(tree) * 100, color=color, linewidth=2.2, label=f"tree t={t:.2f}y")
        ax.plot(strikes, np.array(reference) * 100, color=color, linewidth=1.4,
                linestyle="--", alpha=0.8, label=f"Dupire t={t:.2f}y")

    ax.axvline(spot, color="white", alpha=0.35, linestyle="--", linewidth=1)
    ax.set_xlabel("Strike (K)", fontsize=13, color="white")
    ax.set_ylabel("Local Volatility (σ) %", fontsize=13, color="white")
    ax.set_title("Trinomial Tree vs Dupire Local Volatility",
                 fontsize=17, fontweight="bold", color="white")

    ax.legend(loc="upper right", fontsize=9, facecolor="#191930",
              edgecolor="#ffffff30", labelcolor="white", ncol=2)

    plt.tight_layout()
    plt.savefig(output_path, dpi=config.DPI, bbox_inches="tight",
                facecolor=config.DARK_BG, edgecolor="none")
    plt.close(fig)
    return output_path


# ════════════════════════════════════════════════════════════════════════
#  PLOTLY — 3D SURFACE + TREE NODES (interactive HTML)
# ════════════════════════════════════════════════════════════════════════

def plot_surface_plotly(
    T_grid: np.ndarray,
    K_grid: np.ndarray,
    Z: np.ndarray,
    samples: Optional[pd.DataFrame] = None,
    title: str = "Local Volatility Surface",
    output_path: str = None,
) -> str:
    """
    Interactive 3D local vol surface; the tree's node samples, if given,
    are drawn as points on top.
    """
    output_path = _output_path(output_path, "local_vol_3d.html")
    axis_style = dict(
        tickfont=dict(size=10, color="#ccc"),
        gridcolor=f"rgba(200,200,200,{config.GRID_COLOR_ALPHA})",
        backgroundcolor=config.DARK_BG,
    )

    fig = go.Figure(data=[go.Surface(
        x=K_grid, y=T_grid, z=Z,
        colorscale=config.COLORMAP.capitalize(),
        showscale=True,
        colorbar=dict(
            title=dict(text="σ loc", font=dict(size=13, color="white")),
            thickness=18, len=0.55, tickformat=".0%",
            tickfont=dict(color="white", size=11),
        ),
        opacity=0.9,
        hovertemplate="K: %{x:.4g}<br>t: %{y:.3f}y<br>σ: %{z:.2%}<extra></extra>",
    )])

    if samples is not None:
        fig.add_trace(go.Scatter3d(
            x=samples["spot"], y=samples["time"], z=samples["volatility"],
            mode="markers", name="tree nodes",
            marker=dict(size=2.5, color=np.where(samples["adjusted"], "#ff6b6b", "#ffffff")),
            hovertemplate="S: %{x:.4g}<br>t: %{y:.3f}y<br>σ: %{z:.2%}<extra></extra>",
        ))

    fig.update_layout(
        title=dict(text=f"<b>{title}</b>", font=dict(size=22, color="white"), x=0.5),
        scene=dict(
            xaxis=dict(title=dict(text="Spot / Strike", font=dict(size=14, color="#ddd")), **axis_style),
            yaxis=dict(title=dict(text="Time (years)", font=dict(size=14, color="#ddd")), **axis_style),
            zaxis=dict(title=dict(text="Local Vol (σ)", font=dict(size=14, color="#ddd")),
                       tickformat=".0%", **axis_style),
            camera=config.PLOTLY_CAMERA,
            bgcolor=config.DARK_BG,
        ),
        paper_bgcolor=config.DARK_BG,
        font=dict(color="white"),
        width=1100, height=750,
        margin=dict(l=10, r=10, t=60, b=10),
    )

    fig.write_html(output_path)
    return output_path
