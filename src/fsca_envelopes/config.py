"""
Global configuration and defaults for forward-search envelope simulation.

Envelopes are Monte Carlo quantiles of the minimum Mahalanobis-type
distance (MMD) and explained inertia (INE) monitored along a forward
search in correspondence analysis.
"""

from pathlib import Path
from typing import Tuple

import numpy as np


# =============================================================================
# Envelope Defaults
# =============================================================================

DEFAULT_PROB: Tuple[float, ...] = (0.01, 0.5, 0.99)
"""Quantile probabilities used when none are supplied."""

DEFAULT_NSIMUL = 2000
"""Number of simulated tables when none is supplied.

This single value applies to every call path (function API and CLI).
A supplied simulation bank always overrides it.
"""

INIT_FRACTION = 0.6
"""Default initial subset size is floor(INIT_FRACTION * n)."""

RECOGNIZED_OPTIONS: Tuple[str, ...] = ("init", "prob", "nsimul")
"""Option names accepted by the parameter resolver."""


# =============================================================================
# Collaborator Defaults
# =============================================================================

DEFAULT_FIT_NSAMP = 300
"""Number of subsamples passed to the robust fitter for each simulated table."""

DEFAULT_FIT_OPTIONS = {"plots": False, "msg": False}
"""Fixed robust fitter options: no diagnostic plots, no messages."""


# =============================================================================
# Execution
# =============================================================================

DEFAULT_WORKERS = 1
"""Number of parallel simulation workers (1 = sequential)."""

EXECUTORS: Tuple[str, ...] = ("thread", "process")
"""Supported executor kinds for parallel simulation."""

PROGRESS_EVERY = 100
"""Print a progress line every this many completed simulations (verbose)."""


# =============================================================================
# File Paths
# =============================================================================

_THIS_DIR = Path(__file__).parent
PROJECT_ROOT = _THIS_DIR.parent.parent

DATA_DIR = PROJECT_ROOT / "data"
"""Directory for envelope CSV files."""

FIGURES_DIR = PROJECT_ROOT / "figures"
"""Directory for generated figures."""


# =============================================================================
# Utility Functions
# =============================================================================

def round_half_away(x):
    """
    Round to the nearest integer, with halves rounded away from zero.

    numpy's ``rint`` rounds halves to even, which would move order
    statistics such as ``round(100 * 0.025)`` from 3 to 2.

    Parameters
    ----------
    x : float or array_like

    Returns
    -------
    int or np.ndarray of int
    """
    arr = np.asarray(x, dtype=np.float64)
    out = (np.sign(arr) * np.floor(np.abs(arr) + 0.5)).astype(np.int64)
    if out.ndim == 0:
        return int(out)
    return out


def default_init(n: int) -> int:
    """
    Default initial subset size for a table with total count n.

    For n=100 this returns 60.
    """
    return int(np.floor(n * INIT_FRACTION))
