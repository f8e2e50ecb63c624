"""
fsca_envelopes: Monte Carlo envelopes for forward search in correspondence analysis

Simulated confidence bands for the minimum Mahalanobis-type distance (MMD)
and explained inertia (INE), used to detect multiple outliers in two-way
contingency tables.
"""

from . import config
from .errors import ConfigurationError, PrecisionWarning, CollaboratorFailure
from .envelopes import EnvelopeOptions, EnvelopeResult, fs_corana_envmmd

__version__ = "0.1.0"
__all__ = [
    "config",
    "ConfigurationError",
    "PrecisionWarning",
    "CollaboratorFailure",
    "EnvelopeOptions",
    "EnvelopeResult",
    "fs_corana_envmmd",
]
