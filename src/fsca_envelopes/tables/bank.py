"""
Pre-generated simulation banks.

A bank stores nsimul simulated tables as the columns of a
(nrow * ncol, nsimul) array, each table flattened column-major. Supplying
a bank fixes the number of simulations to its column count and skips the
robust fitting step: banked tables go straight to the diagnostic engine.
"""

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np

from ..errors import ConfigurationError
from .contingency import as_contingency_table


@dataclass
class SimulationBank:
    """Column-major store of pre-generated contingency tables."""
    store: np.ndarray   # shape (nrow * ncol, nsimul)

    def __post_init__(self):
        store = np.asarray(self.store, dtype=np.float64)
        if store.ndim == 1:
            store = store.reshape(-1, 1)
        if store.ndim != 2 or store.shape[1] == 0:
            raise ConfigurationError(
                f"Simulation bank must be a 2-D (cells, nsimul) array, "
                f"got shape {store.shape}"
            )
        self.store = store

    @property
    def nsimul(self) -> int:
        """Number of banked simulations."""
        return self.store.shape[1]

    @property
    def n_cells(self) -> int:
        return self.store.shape[0]

    def table(self, j: int, nrow: int) -> np.ndarray:
        """
        Return simulation j reshaped to a table with nrow rows.

        Parameters
        ----------
        j : int
            0-based simulation index.
        nrow : int
            Number of rows of the observed table.

        Returns
        -------
        np.ndarray, shape (nrow, n_cells // nrow)
        """
        return self.store[:, j].reshape((nrow, -1), order="F")

    def check_shape(self, nrow: int, ncol: int) -> None:
        """Raise ConfigurationError unless every column holds nrow * ncol cells."""
        if self.n_cells != nrow * ncol:
            raise ConfigurationError(
                f"Simulation bank columns hold {self.n_cells} cells but the "
                f"table is {nrow}x{ncol} ({nrow * ncol} cells)"
            )

    @classmethod
    def from_tables(cls, tables: Sequence[np.ndarray]) -> "SimulationBank":
        """Build a bank from a sequence of equally shaped 2-D tables."""
        if len(tables) == 0:
            raise ConfigurationError("Cannot build a simulation bank from no tables")
        arrays = [as_contingency_table(t) for t in tables]
        shape = arrays[0].shape
        for k, arr in enumerate(arrays):
            if arr.shape != shape:
                raise ConfigurationError(
                    f"Table {k} has shape {arr.shape}, expected {shape}"
                )
        store = np.column_stack([arr.ravel(order="F") for arr in arrays])
        return cls(store=store)


@dataclass
class EnvelopeInput:
    """An observed table, optionally bundled with a simulation bank."""
    table: np.ndarray
    bank: Optional[SimulationBank] = None

    def __post_init__(self):
        self.table = as_contingency_table(self.table)
        if self.bank is not None and not isinstance(self.bank, SimulationBank):
            self.bank = SimulationBank(store=self.bank)

    @property
    def needs_fitting(self) -> bool:
        """Sampled tables are robustly fitted; banked tables are not."""
        return self.bank is None

    @classmethod
    def coerce(cls, data) -> "EnvelopeInput":
        """
        Accept an EnvelopeInput, a mapping, or a bare table.

        Mappings use the keys ``N`` (table) and, optionally, ``NsimStore``
        (bank store), or equivalently ``table`` and ``bank``.
        """
        if isinstance(data, EnvelopeInput):
            return data
        if isinstance(data, Mapping):
            if "N" in data:
                return cls(table=data["N"], bank=data.get("NsimStore"))
            if "table" in data:
                return cls(table=data["table"], bank=data.get("bank"))
            raise ConfigurationError(
                "Input mapping must contain the table under 'N' or 'table'"
            )
        return cls(table=data)
