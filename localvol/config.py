"""
Global configuration for the local volatility tree.

Keeps all magic numbers in one place. Construction parameters of a
calibration run (n_steps, max_time, interpolator) are passed explicitly
to the calculator; the values here are defaults and numerical knobs.
"""

from pathlib import Path


# ── paths ────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
OUTPUT_DIR = PROJECT_ROOT / "output"


# ── tree defaults ────────────────────────────────────────────────────────
N_STEPS = 20                    # time levels when the caller gives none
MAX_TIME = 1.0                  # horizon in years

# outer branch spacing: dx = vol * sqrt(SPACING_MULTIPLIER * dt).
# 3 gives the textbook (1/6, 2/3, 1/6) branching for a flat smile
SPACING_MULTIPLIER = 3.0
MIN_REFERENCE_VOL = 0.01        # clip for the vol driving node spacing
MAX_REFERENCE_VOL = 2.0


# ── calibration tolerances ───────────────────────────────────────────────
PROBABILITY_TOLERANCE = 1e-12   # negative probabilities smaller than this are rounding
QUOTE_FLOOR = 1e-12             # OTM prices below QUOTE_FLOOR * spot carry no time value


# ── implied vol inversion (Brent) ────────────────────────────────────────
IV_LOWER = 1e-4
IV_UPPER = 5.0
IV_TOL = 1e-12


# ── Dupire oracle finite differences ─────────────────────────────────────
DUPIRE_TIME_SHIFT = 1e-4        # absolute, years
DUPIRE_STRIKE_SHIFT = 1e-3      # relative to strike


# ── reference smile (three strikes, four expiries) ───────────────────────
SMILE_SPOT = 1.40
SMILE_TIMES = [0.25, 0.50, 0.75, 1.00]
SMILE_STRIKES = [0.8, 1.4, 2.0]
# rows follow SMILE_STRIKES, columns follow SMILE_TIMES
SMILE_VOLS = [
    [0.21, 0.17, 0.15, 0.14],
    [0.17, 0.15, 0.14, 0.13],
    [0.185, 0.16, 0.14, 0.13],
]
SMILE_FINANCING_RATE = 0.03
SMILE_DIVIDEND_RATE = 0.01


# ── SVI-like synthetic smile (demo input) ────────────────────────────────
# tuned to produce an equity-index-like surface
SVI_ATM_BASE = 0.18             # base ATM vol level
SVI_ATM_DECAY = 0.03            # how much ATM vol drops with maturity
SVI_ATM_LAMBDA = 1.5            # decay rate parameter
SVI_SKEW_BASE = -0.04           # long-run skew coefficient
SVI_SKEW_SHORT = -0.12          # additional skew at short maturities
SVI_SKEW_LAMBDA = 0.8           # skew decay rate
SVI_SMILE_BASE = 0.10           # long-run smile/curvature coefficient
SVI_SMILE_SHORT = 0.25          # additional curvature at short maturities
SVI_SMILE_LAMBDA = 1.0          # curvature decay rate
SVI_MONEYNESS_BOUND = 0.4       # |log(K/S)| covered by the synthetic nodes
MIN_IV = 0.01
MAX_IV = 2.0


# ── visualization ────────────────────────────────────────────────────────
DARK_BG = "#0c0c16"
GRID_COLOR_ALPHA = 0.12
DPI = 200                       # matplotlib export resolution
FIG_WIDTH_3D = 14
FIG_HEIGHT_3D = 9
FIG_WIDTH_2D = 12
FIG_HEIGHT_2D = 6
COLORMAP = "viridis"
MESH_T_POINTS = 40
MESH_K_POINTS = 60
MESH_MONEYNESS = (0.6, 1.6)     # strike range of the chart mesh, as multiples of spot

# camera angles for 3D surface (matplotlib)
ELEV = 25
AZIM = -55

# plotly camera
PLOTLY_CAMERA = dict(eye=dict(x=1.85, y=-1.55, z=0.85))

# slice line colors (mpl + plotly)
SLICE_COLORS = ["#ff6b6b", "#ffd93d", "#6bcb77", "#4d96ff", "#b388ff"]
