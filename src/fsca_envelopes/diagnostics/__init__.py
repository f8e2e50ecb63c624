"""
Forward-search diagnostics module.

Implements:
- DiagnosticTrajectory: MMD / INE values per forward-search step
- Adapters binding external fitter and engine functions
"""

from .trajectory import DiagnosticTrajectory
from .adapters import RobustFitAdapter, ForwardSearchAdapter, load_callable

__all__ = [
    "DiagnosticTrajectory",
    "RobustFitAdapter",
    "ForwardSearchAdapter",
    "load_callable",
]
