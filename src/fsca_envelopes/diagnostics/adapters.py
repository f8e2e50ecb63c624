"""
Adapters for the robust fitter and the forward-search diagnostic engine.

Neither collaborator is implemented here. The simulation loop calls

    fitter(table) -> fitted
    engine(fitted_or_table, init) -> {"mmd": ..., "ine": ...}

and these classes bind a user's functions to that shape. Both are plain
dataclasses so they pickle cleanly into process pools as long as the
wrapped functions are importable at module level.
"""

import importlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

from ..config import DEFAULT_FIT_NSAMP, DEFAULT_FIT_OPTIONS
from ..errors import ConfigurationError
from .trajectory import DiagnosticTrajectory


@dataclass
class RobustFitAdapter:
    """
    Call a robust correspondence-analysis fit with fixed options.

    The wrapped function is called as
    ``fit_fn(table, plots=False, msg=False, nsamp=nsamp, **extra)``.
    """
    fit_fn: Callable[..., Any]
    nsamp: int = DEFAULT_FIT_NSAMP
    extra: Dict[str, Any] = field(default_factory=dict)

    def __call__(self, table):
        kwargs = dict(DEFAULT_FIT_OPTIONS)
        kwargs["nsamp"] = self.nsamp
        kwargs.update(self.extra)
        return self.fit_fn(table, **kwargs)


@dataclass
class ForwardSearchAdapter:
    """
    Call a forward-search engine and normalize its output.

    The wrapped function is called as ``run_fn(x, **{init_keyword: m0})``
    and its result coerced to a DiagnosticTrajectory.
    """
    run_fn: Callable[..., Any]
    init_keyword: str = "init"

    def __call__(self, x, init: int) -> DiagnosticTrajectory:
        result = self.run_fn(x, **{self.init_keyword: init})
        return DiagnosticTrajectory.coerce(result)


def load_callable(path: str) -> Callable[..., Any]:
    """
    Resolve ``"package.module:attribute"`` to a callable.

    Raises
    ------
    ConfigurationError
        If the path is malformed, the module cannot be imported, or the
        attribute is missing or not callable.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(
            f"Expected 'module:callable', got {path!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import {module_name!r}: {e}") from e

    obj = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ConfigurationError(
                f"{module_name!r} has no attribute {attr!r}"
            ) from e
    if not callable(obj):
        raise ConfigurationError(f"{path!r} is not callable")
    return obj
