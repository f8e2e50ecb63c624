"""
Order-statistic selection and envelope reduction.

With nsimul simulations, the envelope for probability p at step m is the
k-th smallest simulated value at that step, where

    k = round(nsimul * p),  with k = 0 mapped to 1.

Different probabilities may map to the same k when nsimul is small; the
envelopes are then still defined (repeated columns) but less informative,
so a PrecisionWarning is issued instead of an error.
"""

import warnings
from typing import Sequence, Tuple

import numpy as np

from ..config import round_half_away
from ..errors import PrecisionWarning


def order_statistic_indices(nsimul: int, prob: Sequence[float]) -> np.ndarray:
    """
    Compute 1-based order-statistic indices for each probability.

    Parameters
    ----------
    nsimul : int
        Number of simulations.
    prob : sequence of float
        Probabilities in [0, 1], in the user's order.

    Returns
    -------
    np.ndarray of int, shape (len(prob),)
        Values in 1..nsimul, in the order of ``prob``.

    Examples
    --------
    nsimul=4, prob=[0.5] gives [2]; nsimul=10, prob=[0.0001] gives [1].
    """
    sel = np.atleast_1d(round_half_away(np.asarray(prob, dtype=np.float64) * nsimul))
    sel[sel == 0] = 1
    return sel


def check_quantile_separation(nsimul: int, prob: Sequence[float]) -> np.ndarray:
    """
    Return order-statistic indices, warning if any two coincide.

    Returns
    -------
    np.ndarray of int
        Same as order_statistic_indices(nsimul, prob).

    Warns
    -----
    PrecisionWarning
        If two probabilities select the same order statistic.
    """
    sel = order_statistic_indices(nsimul, prob)
    if len(np.unique(sel)) != len(sel):
        warnings.warn(
            "Some envelope lines are equal: increase the number of "
            f"simulations (nsimul={nsimul}). The order statistics selected "
            f"are {' '.join(str(int(k)) for k in sel)}",
            PrecisionWarning,
            stacklevel=2,
        )
    return sel


def reduce_envelope(store: np.ndarray, sel: np.ndarray,
                    steps: np.ndarray) -> np.ndarray:
    """
    Reduce a (steps, nsimul) value matrix to an envelope matrix.

    Each row is sorted independently; columns ``sel - 1`` of the sorted
    matrix are selected in the order of ``sel``, and ``steps`` is
    prepended as the first column.

    Parameters
    ----------
    store : np.ndarray, shape (n_steps, nsimul)
        Column j holds simulation j's trajectory. Not modified.
    sel : np.ndarray of int
        1-based order-statistic indices.
    steps : np.ndarray, shape (n_steps,)
        Forward-search step of each row.

    Returns
    -------
    np.ndarray, shape (n_steps, 1 + len(sel))
    """
    store = np.asarray(store, dtype=np.float64)
    sel = np.asarray(sel, dtype=np.int64)
    if store.shape[0] != len(steps):
        raise ValueError(
            f"Store has {store.shape[0]} rows but {len(steps)} steps were given"
        )
    if np.any(sel < 1) or np.any(sel > store.shape[1]):
        raise ValueError(
            f"Order statistics {sel.tolist()} out of range 1..{store.shape[1]}"
        )
    sorted_store = np.sort(store, axis=1)
    return np.column_stack([np.asarray(steps, dtype=np.float64),
                            sorted_store[:, sel - 1]])


def reduce_envelopes(mmd_store: np.ndarray, ine_store: np.ndarray,
                     sel: np.ndarray, params) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build the MMD and INE envelope matrices.

    Parameters
    ----------
    mmd_store : np.ndarray, shape (n - m0, nsimul)
    ine_store : np.ndarray, shape (n - m0 + 1, nsimul)
    sel : np.ndarray of int
    params : EnvelopeParameters

    Returns
    -------
    mmd_env : np.ndarray, shape (n - m0, 1 + len(sel))
        First column m0, ..., n-1.
    ine_env : np.ndarray, shape (n - m0 + 1, 1 + len(sel))
        First column m0, ..., n.
    """
    mmd_env = reduce_envelope(mmd_store, sel, params.mmd_steps)
    ine_env = reduce_envelope(ine_store, sel, params.ine_steps)
    return mmd_env, ine_env
