"""
Exception and warning types raised by envelope computation.
"""

from typing import Optional


class ConfigurationError(ValueError):
    """Invalid options, inputs or collaborators, detected before simulation."""


class PrecisionWarning(UserWarning):
    """Requested quantiles map to the same order statistic at this nsimul."""


class CollaboratorFailure(RuntimeError):
    """
    A sampler, fitter or diagnostic engine call failed during simulation.

    Attributes
    ----------
    index : int or None
        0-based simulation index that failed (None for run-level failures
        such as a timeout).
    stage : str
        One of "sample", "fit", "diagnose", "timeout".
    """

    def __init__(self, message: str, index: Optional[int] = None,
                 stage: str = "diagnose"):
        super().__init__(message)
        self.index = index
        self.stage = stage

    def __reduce__(self):
        # Keep index and stage when raised inside a process pool worker.
        return (self.__class__, (str(self), self.index, self.stage))
