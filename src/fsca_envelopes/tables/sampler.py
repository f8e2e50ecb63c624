"""
Random contingency tables with fixed margins.

Sampling itself is delegated to ``scipy.stats.random_table``, which draws
tables from the multivariate hypergeometric null of independence given
the row and column totals. This module only adapts it to the call shape
used by the simulation loop:

    sampler(nrow, ncol, row_totals, col_totals, rng) -> table

Any callable with that signature can replace the default sampler.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np
from scipy import stats

from ..errors import ConfigurationError
from .bank import SimulationBank
from .contingency import Marginals, as_contingency_table


class TableSampler(Protocol):
    """Callable producing one table consistent with the given margins."""

    def __call__(self, nrow: int, ncol: int, row_totals: np.ndarray,
                 col_totals: np.ndarray,
                 rng: np.random.Generator) -> np.ndarray:
        ...


@dataclass
class RandomTableSampler:
    """
    Default sampler backed by ``scipy.stats.random_table``.

    Parameters
    ----------
    method : str, optional
        Passed to ``random_table(...).rvs``: "boyett", "patefield" or None
        (let scipy choose).
    """
    method: Optional[str] = None

    def __call__(self, nrow: int, ncol: int, row_totals: np.ndarray,
                 col_totals: np.ndarray,
                 rng: np.random.Generator) -> np.ndarray:
        dist = stats.random_table(np.asarray(row_totals),
                                  np.asarray(col_totals))
        table = dist.rvs(method=self.method, random_state=rng)
        table = np.asarray(table, dtype=np.float64)
        if table.size == nrow * ncol:
            table = table.reshape(nrow, ncol)
        else:
            raise ValueError(
                f"Sampled table has shape {table.shape}, expected ({nrow}, {ncol})"
            )
        return table


def sample_null_table(
    table,
    rng: Optional[np.random.Generator] = None,
    sampler: Optional[TableSampler] = None,
) -> np.ndarray:
    """
    Draw one table with the same margins as ``table``.

    Parameters
    ----------
    table : array_like
        Observed contingency table.
    rng : np.random.Generator, optional
        Random generator (fresh default generator if omitted).
    sampler : callable, optional
        Table sampler (defaults to RandomTableSampler).

    Returns
    -------
    np.ndarray, shape (nrow, ncol)
    """
    table = as_contingency_table(table)
    marginals = Marginals.from_table(table)
    if rng is None:
        rng = np.random.default_rng()
    if sampler is None:
        sampler = RandomTableSampler()
    return sampler(marginals.nrow, marginals.ncol,
                   marginals.row_totals, marginals.col_totals, rng)


def generate_bank(
    table,
    nsimul: int,
    seed: Optional[int] = None,
    sampler: Optional[TableSampler] = None,
) -> SimulationBank:
    """
    Pre-generate a bank of nsimul null tables with the margins of ``table``.

    Each simulation j gets its own generator spawned from ``seed``, the
    same scheme the simulation loop uses, so a bank built here holds the
    tables that an unbanked run with the same seed would sample.
    """
    if int(nsimul) != nsimul or nsimul < 1:
        raise ConfigurationError(f"nsimul must be a positive integer, got {nsimul}")
    nsimul = int(nsimul)
    table = as_contingency_table(table)
    marginals = Marginals.from_table(table)
    if sampler is None:
        sampler = RandomTableSampler()

    rngs = spawn_generators(seed, nsimul)
    tables = [
        sampler(marginals.nrow, marginals.ncol,
                marginals.row_totals, marginals.col_totals, rngs[j])
        for j in range(nsimul)
    ]
    return SimulationBank.from_tables(tables)


def spawn_generators(seed: Optional[int], count: int):
    """Return ``count`` independent generators derived from one seed."""
    children = np.random.SeedSequence(seed).spawn(count)
    return [np.random.default_rng(child) for child in children]
