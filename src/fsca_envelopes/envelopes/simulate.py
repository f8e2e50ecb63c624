"""
Monte Carlo loop: simulate null tables and collect forward-search diagnostics.

For each simulation j = 0, ..., nsimul-1:

    bank path:     table_j = bank column j          -> engine(table_j, m0)
    sampler path:  table_j = sampler(margins, rng_j) -> fitter -> engine(., m0)

The MMD and INE value columns of simulation j are written to column j of
two pre-allocated stores. Simulations are independent, so they may run on
a thread or process pool; results are placed by index, never by
completion order. The first failing simulation aborts the whole run.

Each submitted task carries a SimulationTask (sizes, margins and m0) plus
its own banked table, never the whole bank or observed table.
"""

import time
from concurrent.futures import (
    FIRST_EXCEPTION,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from ..config import DEFAULT_WORKERS, EXECUTORS, PROGRESS_EVERY
from ..diagnostics.trajectory import DiagnosticTrajectory
from ..errors import CollaboratorFailure, ConfigurationError
from ..tables.sampler import RandomTableSampler, spawn_generators
from .options import EnvelopeParameters


# =============================================================================
# Per-task inputs
# =============================================================================

@dataclass(frozen=True)
class SimulationTask:
    """Read-only configuration shared by every simulation of a run."""
    nrow: int
    ncol: int
    row_totals: np.ndarray
    col_totals: np.ndarray
    init: int
    n_mmd_steps: int
    n_ine_steps: int
    needs_fitting: bool

    @classmethod
    def from_parameters(cls, params: EnvelopeParameters) -> "SimulationTask":
        return cls(
            nrow=params.nrow,
            ncol=params.ncol,
            row_totals=params.marginals.row_totals,
            col_totals=params.marginals.col_totals,
            init=params.init,
            n_mmd_steps=params.n_mmd_steps,
            n_ine_steps=params.n_ine_steps,
            needs_fitting=params.needs_fitting,
        )


def _banked_table(params: EnvelopeParameters, j: int) -> Optional[np.ndarray]:
    """Bank table j as a C-contiguous array, or None on the sampler path."""
    if params.bank is None:
        return None
    return np.ascontiguousarray(params.bank.table(j, params.nrow))


# =============================================================================
# Single simulation (top level so process pools can pickle it)
# =============================================================================

def _simulate_one(
    j: int,
    task: SimulationTask,
    banked: Optional[np.ndarray],
    engine: Callable,
    fitter: Optional[Callable],
    sampler: Optional[Callable],
    rng: Optional[np.random.Generator],
) -> Tuple[int, np.ndarray, np.ndarray]:
    """
    Run sampling, fitting and the diagnostic engine for simulation j.

    ``banked`` is table j of the simulation bank; it is None when the
    table is sampled from the task's margins instead.

    Returns
    -------
    (j, mmd_values, ine_values)

    Raises
    ------
    CollaboratorFailure
        Wrapping any exception from the sampler, fitter or engine, or a
        trajectory of the wrong length.
    """
    if task.needs_fitting:
        try:
            table = sampler(task.nrow, task.ncol,
                            task.row_totals, task.col_totals, rng)
        except Exception as e:
            raise CollaboratorFailure(
                f"Table sampler failed in simulation {j}: {e}",
                index=j, stage="sample",
            ) from e
        try:
            x = fitter(table)
        except Exception as e:
            raise CollaboratorFailure(
                f"Robust fit failed in simulation {j}: {e}",
                index=j, stage="fit",
            ) from e
    else:
        x = banked

    try:
        trajectory = DiagnosticTrajectory.coerce(engine(x, task.init))
        trajectory.check_lengths(task.n_mmd_steps, task.n_ine_steps)
    except Exception as e:
        raise CollaboratorFailure(
            f"Diagnostic engine failed in simulation {j}: {e}",
            index=j, stage="diagnose",
        ) from e

    return j, trajectory.mmd_values, trajectory.ine_values


# =============================================================================
# Orchestration
# =============================================================================

def simulate_diagnostics(
    params: EnvelopeParameters,
    engine: Callable,
    fitter: Optional[Callable] = None,
    sampler: Optional[Callable] = None,
    workers: int = DEFAULT_WORKERS,
    executor: str = "thread",
    seed: Optional[int] = None,
    timeout: Optional[float] = None,
    verbose: bool = False,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Fill the MMD and INE stores, one column per simulation.

    Parameters
    ----------
    params : EnvelopeParameters
        Resolved parameters (see resolve_parameters).
    engine : callable
        ``engine(x, init) -> {"mmd", "ine"}`` forward-search diagnostics.
    fitter : callable, optional
        ``fitter(table) -> fitted``. Required unless params carries a bank.
    sampler : callable, optional
        ``sampler(nrow, ncol, row_totals, col_totals, rng) -> table``.
        Defaults to RandomTableSampler. Unused with a bank.
    workers : int
        Number of parallel workers; 1 runs sequentially.
    executor : str
        "thread" or "process" (ignored when workers == 1).
    seed : int, optional
        Seed for the per-simulation generators. With a fixed seed the
        stores do not depend on workers or scheduling.
    timeout : float, optional
        Wall-clock limit in seconds for the whole run.
    verbose : bool
        Print progress.

    Returns
    -------
    mmd_store : np.ndarray, shape (n - m0, nsimul)
    ine_store : np.ndarray, shape (n - m0 + 1, nsimul)

    Raises
    ------
    ConfigurationError
        If a fitter is missing on the sampler path, or workers/executor
        are invalid. Raised before any collaborator call.
    CollaboratorFailure
        On the first failing simulation, or when the timeout expires.
    """
    if engine is None or not callable(engine):
        raise ConfigurationError("A callable diagnostic engine is required")
    if params.needs_fitting:
        if fitter is None or not callable(fitter):
            raise ConfigurationError(
                "A callable robust fitter is required when tables are "
                "sampled (no simulation bank supplied)"
            )
        if sampler is None:
            sampler = RandomTableSampler()
    if executor not in EXECUTORS:
        raise ConfigurationError(
            f"executor must be one of {list(EXECUTORS)}, got {executor!r}"
        )
    if int(workers) != workers or workers < 1:
        raise ConfigurationError(f"workers must be a positive integer, got {workers}")
    workers = int(workers)

    nsimul = params.nsimul
    mmd_store = np.zeros((params.n_mmd_steps, nsimul), dtype=np.float64)
    ine_store = np.zeros((params.n_ine_steps, nsimul), dtype=np.float64)

    if params.needs_fitting:
        rngs = spawn_generators(seed, nsimul)
    else:
        rngs = [None] * nsimul

    if verbose:
        source = "bank" if params.bank is not None else "sampler"
        print(f"Simulating {nsimul} tables ({source}), "
              f"n={params.n}, m0={params.init}, workers={workers}")

    task = SimulationTask.from_parameters(params)
    start = time.monotonic()

    if workers == 1:
        for j in range(nsimul):
            if timeout is not None and time.monotonic() - start > timeout:
                raise CollaboratorFailure(
                    f"Simulation exceeded timeout of {timeout}s "
                    f"after {j}/{nsimul} tables",
                    index=None, stage="timeout",
                )
            _, mmd_values, ine_values = _simulate_one(
                j, task, _banked_table(params, j), engine, fitter, sampler, rngs[j]
            )
            mmd_store[:, j] = mmd_values
            ine_store[:, j] = ine_values
            if verbose and ((j + 1) % PROGRESS_EVERY == 0 or j + 1 == nsimul):
                print(f"  [{j+1}/{nsimul}] simulations done")
        return mmd_store, ine_store

    Executor = ThreadPoolExecutor if executor == "thread" else ProcessPoolExecutor
    pool = Executor(max_workers=workers)
    try:
        pending = {
            pool.submit(_simulate_one, j, task, _banked_table(params, j),
                        engine, fitter, sampler, rngs[j])
            for j in range(nsimul)
        }
        done_count = 0
        while pending:
            remaining = None
            if timeout is not None:
                remaining = timeout - (time.monotonic() - start)
                if remaining <= 0:
                    raise CollaboratorFailure(
                        f"Simulation exceeded timeout of {timeout}s "
                        f"after {done_count}/{nsimul} tables",
                        index=None, stage="timeout",
                    )
            done, pending = wait(pending, timeout=remaining,
                                 return_when=FIRST_EXCEPTION)
            for fut in done:
                # Re-raises the simulation's CollaboratorFailure.
                j, mmd_values, ine_values = fut.result()
                mmd_store[:, j] = mmd_values
                ine_store[:, j] = ine_values
                done_count += 1
                if verbose and (done_count % PROGRESS_EVERY == 0
                                or done_count == nsimul):
                    print(f"  [{done_count}/{nsimul}] simulations done")
    except BaseException:
        # Fail fast: drop queued simulations, do not wait for running ones.
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    pool.shutdown(wait=True)

    return mmd_store, ine_store
