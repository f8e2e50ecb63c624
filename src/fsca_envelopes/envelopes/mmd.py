"""
MMD and INE envelopes for forward search in correspondence analysis.

Simulates nsimul contingency tables under independence with the margins of
the observed table (or reads them from a pre-generated bank), runs the
forward search on each, and returns per-step order statistics of the
minimum Mahalanobis-type distance (MMD) and of the explained inertia (INE).

Pipeline:
    1. Resolve init, prob, nsimul; reject bad options before any work.
    2. Check that prob maps to distinct order statistics (warn otherwise).
    3. Simulate: sampler -> robust fit -> engine, or bank -> engine.
    4. Sort each step across simulations and select the order statistics.

Usage:
    python -m fsca_envelopes.envelopes.mmd \\
        --table data/table.csv \\
        --fitter mypkg.corana:robust_fit --engine mypkg.corana:forward_search \\
        --prob 0.01 0.5 0.99 --nsimul 1000 --workers 8 --seed 7 \\
        --output-mmd data/mmd_env.csv --output-ine data/ine_env.csv --verbose
"""

import argparse
import csv
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import numpy as np

from ..config import DATA_DIR, DEFAULT_NSIMUL, DEFAULT_PROB, DEFAULT_WORKERS, EXECUTORS
from ..diagnostics.adapters import load_callable
from ..errors import CollaboratorFailure, ConfigurationError
from ..tables.bank import EnvelopeInput, SimulationBank
from .options import EnvelopeOptions, EnvelopeParameters, resolve_parameters
from .quantiles import check_quantile_separation, reduce_envelopes
from .simulate import simulate_diagnostics


# =============================================================================
# Result
# =============================================================================

@dataclass
class EnvelopeResult:
    """MMD and INE envelopes plus the parameters that produced them."""
    mmd: np.ndarray
    ine: np.ndarray
    params: EnvelopeParameters
    sel: np.ndarray

    def __iter__(self):
        # Allows ``mmd_env, ine_env = fs_corana_envmmd(...)``.
        return iter((self.mmd, self.ine))

    @property
    def prob(self) -> Tuple[float, ...]:
        return self.params.prob


# =============================================================================
# Main entry point
# =============================================================================

def fs_corana_envmmd(
    data,
    engine: Callable,
    fitter: Optional[Callable] = None,
    options=None,
    *,
    sampler: Optional[Callable] = None,
    workers: int = DEFAULT_WORKERS,
    executor: str = "thread",
    seed: Optional[int] = None,
    timeout: Optional[float] = None,
    verbose: bool = False,
    **overrides,
) -> EnvelopeResult:
    """
    Compute MMD and INE envelopes by Monte Carlo simulation.

    Parameters
    ----------
    data : array_like, EnvelopeInput or mapping
        Observed (nrow, ncol) contingency table, or a table with a
        simulation bank (``{"N": table, "NsimStore": store}``).
    engine : callable
        Forward-search diagnostics, ``engine(x, init) -> {"mmd", "ine"}``.
    fitter : callable, optional
        Robust fit applied to each sampled table before the engine.
        Required unless a bank is supplied; never applied to bank tables.
    options : EnvelopeOptions, mapping or flat name/value sequence, optional
        Overrides for ``init``, ``prob`` and ``nsimul``.
    sampler : callable, optional
        Table sampler (default: scipy.stats.random_table).
    workers, executor, seed, timeout, verbose
        See simulate_diagnostics.
    **overrides
        Keyword form of the options; these win over ``options``.

    Returns
    -------
    EnvelopeResult
        ``mmd`` has shape (n - m0, 1 + len(prob)), first column m0..n-1;
        ``ine`` has shape (n - m0 + 1, 1 + len(prob)), first column m0..n.
        Columns follow the order of ``prob``.

    Raises
    ------
    ConfigurationError
        Before any simulation, for invalid options or inputs.
    CollaboratorFailure
        If any simulation fails; no partial envelopes are returned.

    Warns
    -----
    PrecisionWarning
        If two probabilities select the same order statistic.
    """
    opts = EnvelopeOptions.coerce(options)
    if overrides:
        opts = opts.merged(**overrides)

    params = resolve_parameters(data, opts, verbose=verbose)
    sel = check_quantile_separation(params.nsimul, params.prob)

    mmd_store, ine_store = simulate_diagnostics(
        params,
        engine,
        fitter=fitter,
        sampler=sampler,
        workers=workers,
        executor=executor,
        seed=seed,
        timeout=timeout,
        verbose=verbose,
    )

    mmd_env, ine_env = reduce_envelopes(mmd_store, ine_store, sel, params)

    if verbose:
        print(f"Envelopes: {mmd_env.shape[0]} MMD steps, "
              f"{ine_env.shape[0]} INE steps, "
              f"order statistics {sel.tolist()} of {params.nsimul}")

    return EnvelopeResult(mmd=mmd_env, ine=ine_env, params=params, sel=sel)


# =============================================================================
# CSV I/O
# =============================================================================

def _prob_label(p: float) -> str:
    """Header label that reads back as exactly the same float."""
    return "p" + repr(float(p))


def write_envelope_csv(output_path: Path, envelope: np.ndarray,
                       prob) -> None:
    """
    Write an envelope matrix with header ``step,p<prob>,...``.

    Parameters
    ----------
    output_path : Path
    envelope : np.ndarray, shape (n_steps, 1 + len(prob))
    prob : sequence of float
    """
    envelope = np.asarray(envelope, dtype=np.float64)
    if envelope.shape[1] != len(prob) + 1:
        raise ValueError(
            f"Envelope has {envelope.shape[1]} columns, expected "
            f"{len(prob) + 1} for {len(prob)} probabilities"
        )
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['step'] + [_prob_label(p) for p in prob])
        for row in envelope:
            writer.writerow([f'{int(row[0])}'] + [f'{v:.10g}' for v in row[1:]])


def load_envelope_csv(csv_path: Path) -> Tuple[np.ndarray, List[float]]:
    """
    Load an envelope CSV written by write_envelope_csv.

    Returns
    -------
    envelope : np.ndarray, shape (n_steps, 1 + len(prob))
    prob : list of float
    """
    with open(csv_path, 'r', newline='') as f:
        reader = csv.reader(f)
        header = next(reader)
        rows = [[float(v) for v in row] for row in reader if row]
    if not header or header[0] != 'step':
        raise ValueError(f"{csv_path} is not an envelope CSV (header {header})")
    prob = [float(label[1:]) for label in header[1:]]
    envelope = np.array(rows, dtype=np.float64).reshape(-1, len(header))
    return envelope, prob


# =============================================================================
# CLI
# =============================================================================

def _load_table(path: Path) -> np.ndarray:
    """Read an observed contingency table from a comma-separated file."""
    try:
        return np.loadtxt(path, delimiter=",", ndmin=2)
    except ValueError as e:
        raise ConfigurationError(f"Cannot read table {path}: {e}") from None


def _load_bank(path: Path) -> SimulationBank:
    """Load a bank store from .npy, or the ``NsimStore`` array of a .npz."""
    if path.suffix.lower() == ".npz":
        with np.load(path) as data:
            return SimulationBank(store=data["NsimStore"])
    return SimulationBank(store=np.load(path))


def main(argv=None):
    """Command-line entry point for envelope simulation."""
    parser = argparse.ArgumentParser(
        description="Monte Carlo MMD and INE envelopes for forward search "
                    "in correspondence analysis"
    )
    parser.add_argument(
        "--table", type=str, required=True,
        help="CSV file with the observed contingency table (counts only)"
    )
    parser.add_argument(
        "--bank", type=str, default=None,
        help="Pre-generated simulation bank (.npy store or .npz with NsimStore)"
    )
    parser.add_argument(
        "--engine", type=str, required=True,
        help="Forward-search engine as module:callable, called engine(x, init)"
    )
    parser.add_argument(
        "--fitter", type=str, default=None,
        help="Robust fitter as module:callable (required without --bank)"
    )
    parser.add_argument(
        "--init", type=int, default=None,
        help="Initial subset size m0 (default: floor(0.6 n))"
    )
    parser.add_argument(
        "--prob", type=float, nargs="+", default=None,
        help=f"Quantile probabilities (default: {' '.join(map(str, DEFAULT_PROB))})"
    )
    parser.add_argument(
        "--nsimul", type=int, default=None,
        help=f"Number of simulations (default: {DEFAULT_NSIMUL}; "
             "ignored with --bank)"
    )
    parser.add_argument(
        "--workers", type=int, default=DEFAULT_WORKERS,
        help=f"Number of parallel workers (default: {DEFAULT_WORKERS})"
    )
    parser.add_argument(
        "--executor", type=str, default="thread", choices=list(EXECUTORS),
        help="Worker pool kind (default: thread)"
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Seed for the simulated tables"
    )
    parser.add_argument(
        "--timeout", type=float, default=None,
        help="Abort if the simulations take longer than this many seconds"
    )
    parser.add_argument(
        "--output-mmd", type=str, default=str(DATA_DIR / "mmd_envelope.csv"),
        help="Output CSV for the MMD envelope"
    )
    parser.add_argument(
        "--output-ine", type=str, default=str(DATA_DIR / "ine_envelope.csv"),
        help="Output CSV for the INE envelope"
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Print progress"
    )

    args = parser.parse_args(argv)

    try:
        table = _load_table(Path(args.table))
        bank = _load_bank(Path(args.bank)) if args.bank else None
        engine = load_callable(args.engine)
        fitter = load_callable(args.fitter) if args.fitter else None
        options = EnvelopeOptions(init=args.init, prob=args.prob,
                                  nsimul=args.nsimul)
        result = fs_corana_envmmd(
            EnvelopeInput(table=table, bank=bank),
            engine,
            fitter=fitter,
            options=options,
            workers=args.workers,
            executor=args.executor,
            seed=args.seed,
            timeout=args.timeout,
            verbose=args.verbose,
        )
    except (ConfigurationError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except CollaboratorFailure as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)

    write_envelope_csv(Path(args.output_mmd), result.mmd, result.prob)
    write_envelope_csv(Path(args.output_ine), result.ine, result.prob)
    if args.verbose:
        print(f"Saved: {args.output_mmd}")
        print(f"Saved: {args.output_ine}")


if __name__ == "__main__":
    main()
