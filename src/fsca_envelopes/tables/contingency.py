"""
Contingency tables and their marginals.

A contingency table is a (nrow, ncol) array of non-negative counts. The
row and column totals of the observed table are the margins that every
simulated null table must reproduce.
"""

from dataclasses import dataclass

import numpy as np

from ..config import round_half_away
from ..errors import ConfigurationError


def as_contingency_table(data) -> np.ndarray:
    """
    Coerce array-like input to a float64 contingency table.

    Parameters
    ----------
    data : array_like
        Nested lists, a numpy array, or an object exposing ``to_numpy()``
        (e.g. a data frame).

    Returns
    -------
    np.ndarray, shape (nrow, ncol)

    Raises
    ------
    ConfigurationError
        If the input is not 2-D, is empty, or holds negative or
        non-finite entries.
    """
    if hasattr(data, "to_numpy"):
        data = data.to_numpy()
    try:
        table = np.asarray(data, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Contingency table is not numeric: {e}") from e

    if table.ndim != 2:
        raise ConfigurationError(
            f"Contingency table must be 2-D, got {table.ndim}-D input"
        )
    if table.size == 0:
        raise ConfigurationError("Contingency table is empty")
    if not np.all(np.isfinite(table)):
        raise ConfigurationError("Contingency table has non-finite entries")
    if np.any(table < 0):
        raise ConfigurationError("Contingency table has negative entries")
    return table


@dataclass(frozen=True)
class Marginals:
    """Integer row and column totals of a contingency table."""
    row_totals: np.ndarray   # shape (nrow,)
    col_totals: np.ndarray   # shape (ncol,)
    n: int                   # grand total

    @classmethod
    def from_table(cls, table: np.ndarray) -> "Marginals":
        """Round the row sums, column sums and grand total to integers."""
        table = np.asarray(table, dtype=np.float64)
        return cls(
            row_totals=round_half_away(table.sum(axis=1)),
            col_totals=round_half_away(table.sum(axis=0)),
            n=round_half_away(table.sum()),
        )

    @property
    def nrow(self) -> int:
        return len(self.row_totals)

    @property
    def ncol(self) -> int:
        return len(self.col_totals)

    def is_consistent(self) -> bool:
        """True if row totals and column totals both sum to n."""
        return (int(self.row_totals.sum()) == self.n
                and int(self.col_totals.sum()) == self.n)
