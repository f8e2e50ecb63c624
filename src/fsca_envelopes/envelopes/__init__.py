"""
Envelope module.

Implements:
- Parameter resolution (init, prob, nsimul) and option validation
- Monte Carlo simulation of forward-search diagnostics
- Order-statistic envelopes for MMD and INE
"""

from .options import EnvelopeOptions, EnvelopeParameters, resolve_parameters
from .quantiles import (
    order_statistic_indices,
    check_quantile_separation,
    reduce_envelope,
    reduce_envelopes,
)
from .simulate import simulate_diagnostics
from .mmd import (
    EnvelopeResult,
    fs_corana_envmmd,
    write_envelope_csv,
    load_envelope_csv,
)

__all__ = [
    "EnvelopeOptions",
    "EnvelopeParameters",
    "resolve_parameters",
    "order_statistic_indices",
    "check_quantile_separation",
    "reduce_envelope",
    "reduce_envelopes",
    "simulate_diagnostics",
    "EnvelopeResult",
    "fs_corana_envmmd",
    "write_envelope_csv",
    "load_envelope_csv",
]
