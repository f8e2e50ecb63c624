"""
Forward-search diagnostic trajectories.

For a table with total count n searched from initial subset size m0, the
diagnostic engine reports:

- mmd: (n - m0, 2) array, rows (m, MMD at step m) for m = m0, ..., n-1
- ine: (n - m0 + 1, 2) array, rows (m, INE at step m) for m = m0, ..., n

Only the value column (column 1) enters the envelopes.
"""

from dataclasses import dataclass
from typing import Mapping

import numpy as np


def _as_step_value_array(values, name: str) -> np.ndarray:
    """Coerce to a (k, 2) array; 1-D input is taken as the value column."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim == 1:
        return np.column_stack([np.full(arr.shape[0], np.nan), arr])
    if arr.ndim != 2 or arr.shape[1] < 2:
        raise ValueError(
            f"{name} must be a (steps, 2) array of (step, value) rows, "
            f"got shape {arr.shape}"
        )
    return arr[:, :2]


@dataclass
class DiagnosticTrajectory:
    """MMD and INE values along one forward search."""
    mmd: np.ndarray   # shape (n - m0, 2)
    ine: np.ndarray   # shape (n - m0 + 1, 2)

    def __post_init__(self):
        self.mmd = _as_step_value_array(self.mmd, "mmd")
        self.ine = _as_step_value_array(self.ine, "ine")

    @property
    def mmd_values(self) -> np.ndarray:
        return self.mmd[:, 1]

    @property
    def ine_values(self) -> np.ndarray:
        return self.ine[:, 1]

    def check_lengths(self, n_mmd_steps: int, n_ine_steps: int) -> None:
        """
        Raise ValueError unless the trajectory spans the expected steps.

        Parameters
        ----------
        n_mmd_steps : int
            Expected number of MMD rows (n - m0).
        n_ine_steps : int
            Expected number of INE rows (n - m0 + 1).
        """
        if self.mmd.shape[0] != n_mmd_steps:
            raise ValueError(
                f"Engine returned {self.mmd.shape[0]} MMD steps, "
                f"expected {n_mmd_steps}"
            )
        if self.ine.shape[0] != n_ine_steps:
            raise ValueError(
                f"Engine returned {self.ine.shape[0]} INE steps, "
                f"expected {n_ine_steps}"
            )

    @classmethod
    def coerce(cls, result) -> "DiagnosticTrajectory":
        """
        Build a trajectory from an engine result.

        Accepts a DiagnosticTrajectory, a mapping with keys ``mmd`` and
        ``ine``, or any object with ``mmd`` and ``ine`` attributes.
        """
        if isinstance(result, DiagnosticTrajectory):
            return result
        if isinstance(result, Mapping):
            try:
                return cls(mmd=result["mmd"], ine=result["ine"])
            except KeyError as e:
                raise ValueError(f"Engine result is missing key {e}") from e
        if hasattr(result, "mmd") and hasattr(result, "ine"):
            return cls(mmd=result.mmd, ine=result.ine)
        raise TypeError(
            f"Cannot read mmd/ine from engine result of type "
            f"{type(result).__name__}"
        )
