"""
Option parsing and parameter resolution for envelope simulation.

Three options control an envelope run:

    init    initial subset size m0 of the forward search (default floor(0.6 n))
    prob    quantile probabilities, one envelope column each (default 0.01, 0.5, 0.99)
    nsimul  number of simulated tables (default 2000)

A supplied simulation bank fixes nsimul to its column count, whatever
was requested. All validation happens here, before any table is sampled.
"""

import math
from dataclasses import dataclass, fields
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np

from ..config import DEFAULT_NSIMUL, DEFAULT_PROB, RECOGNIZED_OPTIONS, default_init
from ..errors import ConfigurationError
from ..tables.bank import EnvelopeInput, SimulationBank
from ..tables.contingency import Marginals


# =============================================================================
# Options
# =============================================================================

@dataclass
class EnvelopeOptions:
    """User overrides; None means "use the default"."""
    init: Optional[int] = None
    prob: Optional[Sequence[float]] = None
    nsimul: Optional[int] = None

    @classmethod
    def from_pairs(cls, *args) -> "EnvelopeOptions":
        """
        Parse a flat name/value sequence, e.g. ``("prob", [0.5], "nsimul", 100)``.

        Raises
        ------
        ConfigurationError
            If the sequence has odd length, a name is not a string, or a
            name is not one of RECOGNIZED_OPTIONS.
        """
        if len(args) % 2 != 0:
            raise ConfigurationError(
                f"Number of supplied options is invalid ({len(args)} items): "
                "probably values for some parameters are missing"
            )
        names = args[0::2]
        values = args[1::2]
        for name in names:
            if not isinstance(name, str):
                raise ConfigurationError(
                    f"Option names must be strings, got {name!r}"
                )
        return cls.from_mapping(dict(zip(names, values)))

    @classmethod
    def from_mapping(cls, mapping: Mapping) -> "EnvelopeOptions":
        """Build options from a name -> value mapping, rejecting unknown names."""
        unknown = [k for k in mapping if k not in RECOGNIZED_OPTIONS]
        if unknown:
            raise ConfigurationError(
                f"Unknown option(s) {unknown}; "
                f"recognized options are {list(RECOGNIZED_OPTIONS)}"
            )
        return cls(**dict(mapping))

    @classmethod
    def coerce(cls, options) -> "EnvelopeOptions":
        """Accept None, EnvelopeOptions, a mapping, or a flat name/value sequence."""
        if options is None:
            return cls()
        if isinstance(options, EnvelopeOptions):
            return options
        if isinstance(options, Mapping):
            return cls.from_mapping(options)
        if isinstance(options, (list, tuple)):
            return cls.from_pairs(*options)
        raise ConfigurationError(
            f"Cannot interpret options of type {type(options).__name__}"
        )

    def merged(self, **overrides) -> "EnvelopeOptions":
        """Return a copy with non-None keyword overrides applied."""
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        extra = EnvelopeOptions.from_mapping(overrides)
        for f in fields(extra):
            value = getattr(extra, f.name)
            if value is not None:
                current[f.name] = value
        return EnvelopeOptions(**current)


# =============================================================================
# Resolved parameters
# =============================================================================

@dataclass(frozen=True)
class EnvelopeParameters:
    """Fully resolved and validated inputs of one envelope run."""
    table: np.ndarray
    marginals: Marginals
    init: int
    prob: Tuple[float, ...]
    nsimul: int
    bank: Optional[SimulationBank] = None

    @property
    def needs_fitting(self) -> bool:
        """Sampled tables are robustly fitted before the engine; banked ones are not."""
        return self.bank is None

    @property
    def n(self) -> int:
        return self.marginals.n

    @property
    def nrow(self) -> int:
        return self.table.shape[0]

    @property
    def ncol(self) -> int:
        return self.table.shape[1]

    @property
    def n_mmd_steps(self) -> int:
        return self.n - self.init

    @property
    def n_ine_steps(self) -> int:
        return self.n - self.init + 1

    @property
    def mmd_steps(self) -> np.ndarray:
        """Forward-search steps m0, ..., n-1."""
        return np.arange(self.init, self.n, dtype=np.float64)

    @property
    def ine_steps(self) -> np.ndarray:
        """Forward-search steps m0, ..., n."""
        return np.arange(self.init, self.n + 1, dtype=np.float64)


def _validate_positive_int(value, name: str) -> int:
    if isinstance(value, (bool, np.bool_)):
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"{name} must be a positive integer, got {value!r}"
        ) from None
    if not math.isfinite(as_float) or as_float != int(as_float) or as_float < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return int(as_float)


def _validate_prob(prob) -> Tuple[float, ...]:
    try:
        arr = np.asarray(prob, dtype=np.float64)
    except (TypeError, ValueError):
        raise ConfigurationError(f"prob must be numeric, got {prob!r}") from None
    if arr.ndim == 0:
        arr = arr.reshape(1)
    if arr.ndim != 1 or arr.size == 0:
        raise ConfigurationError(
            f"prob must be a non-empty 1-D sequence, got shape {arr.shape}"
        )
    if not np.all(np.isfinite(arr)) or np.any(arr < 0) or np.any(arr > 1):
        raise ConfigurationError(
            f"prob entries must lie in [0, 1], got {arr.tolist()}"
        )
    return tuple(float(p) for p in arr)


def resolve_parameters(data, options=None, verbose: bool = False) -> EnvelopeParameters:
    """
    Resolve init, prob and nsimul for a table (and optional bank).

    Parameters
    ----------
    data : array_like, EnvelopeInput or mapping
        Observed table, or a table bundled with a simulation bank.
    options : EnvelopeOptions, mapping, flat name/value sequence, or None
        User overrides.
    verbose : bool
        Print a note when a bank overrides a requested nsimul.

    Returns
    -------
    EnvelopeParameters

    Raises
    ------
    ConfigurationError
        On unknown options, unbalanced name/value pairs, invalid values,
        a bank whose tables do not match the observed table, or init >= n.
    """
    opts = EnvelopeOptions.coerce(options)
    envelope_input = EnvelopeInput.coerce(data)
    table = envelope_input.table
    marginals = Marginals.from_table(table)
    n = marginals.n

    if n < 2:
        raise ConfigurationError(
            f"Table total n={n} is too small for a forward search"
        )

    bank = envelope_input.bank
    if bank is None and not marginals.is_consistent():
        raise ConfigurationError(
            f"Rounded row totals (sum {int(marginals.row_totals.sum())}) and "
            f"column totals (sum {int(marginals.col_totals.sum())}) disagree "
            f"with n={n}; tables cannot be sampled with these margins"
        )
    if bank is not None:
        bank.check_shape(table.shape[0], table.shape[1])
        nsimul = bank.nsimul
        if opts.nsimul is not None and verbose and opts.nsimul != nsimul:
            print(f"  Simulation bank holds {nsimul} tables; "
                  f"ignoring nsimul={opts.nsimul}")
    elif opts.nsimul is not None:
        nsimul = _validate_positive_int(opts.nsimul, "nsimul")
    else:
        nsimul = DEFAULT_NSIMUL

    prob = _validate_prob(DEFAULT_PROB if opts.prob is None else opts.prob)

    if opts.init is None:
        m0 = default_init(n)
    else:
        m0 = _validate_positive_int(opts.init, "init")
    if m0 >= n:
        raise ConfigurationError(
            f"Initial starting point of the search (m0={m0}) is greater "
            f"than n-1 (n-1={n - 1})"
        )

    return EnvelopeParameters(
        table=table,
        marginals=marginals,
        init=m0,
        prob=prob,
        nsimul=nsimul,
        bank=bank,
    )
