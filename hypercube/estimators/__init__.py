"""Estimator exports with lazy loading.

Public estimator functions, classes and result containers. Uses lazy imports
to avoid circular dependencies.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "BaseEstimator",
    "FittedEstimator",
    "HypercubeEstimator",
    "OptimizationResult",
    "OptimizerConfig",
    "fit",
    "fit_with_risk",
    "hypercube_operator",
    "optimize_risk",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseEstimator": ("hypercube.estimators.base", "BaseEstimator"),
    "FittedEstimator": ("hypercube.estimators.base", "FittedEstimator"),
    "OptimizationResult": ("hypercube.estimators.base", "OptimizationResult"),
    "HypercubeEstimator": ("hypercube.estimators.hypercube", "HypercubeEstimator"),
    "fit": ("hypercube.estimators.hypercube", "fit"),
    "fit_with_risk": ("hypercube.estimators.hypercube", "fit_with_risk"),
    "hypercube_operator": ("hypercube.estimators.hypercube", "hypercube_operator"),
    "OptimizerConfig": ("hypercube.estimators.optimize", "OptimizerConfig"),
    "optimize_risk": ("hypercube.estimators.optimize", "optimize_risk"),
}


def __getattr__(name: str) -> Any:
    """Lazily import estimator classes and shared containers."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'hypercube.estimators' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Expose lazily loaded attributes to ``dir()``."""
    return sorted(set(globals()) | set(__all__))
