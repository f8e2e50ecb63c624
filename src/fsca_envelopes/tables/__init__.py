"""
Contingency table module.

Implements:
- Table coercion and integer marginals
- Pre-generated simulation banks
- Random tables with fixed margins (scipy.stats.random_table)
"""

from .contingency import as_contingency_table, Marginals
from .bank import SimulationBank, EnvelopeInput
from .sampler import (
    TableSampler,
    RandomTableSampler,
    sample_null_table,
    generate_bank,
    spawn_generators,
)

__all__ = [
    "as_contingency_table",
    "Marginals",
    "SimulationBank",
    "EnvelopeInput",
    "TableSampler",
    "RandomTableSampler",
    "sample_null_table",
    "generate_bank",
    "spawn_generators",
]
