"""
Plotting module.

Implements:
- Envelope plots with matplotlib
"""

from .envelope_plot import plot_envelopes

__all__ = ["plot_envelopes"]
