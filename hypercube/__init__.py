"""hypercube: shrinkage of linear-model fits by hypercube operators.

This package computes the hypercube estimator, which replaces the scalar
shrinkage of penalized least squares by a symmetric shrinkage matrix with
eigenvalues in [0, 1], builds such matrices from the orthogonal ANOVA
projections of categorical factors, and chooses projection weights by
minimizing an estimate of quadratic risk.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "FittedEstimator",
    "HypercubeEstimator",
    "InvalidSpecError",
    "NumericalError",
    "OptimizationResult",
    "OptimizerConfig",
    "ProjectionCollection",
    "VarianceUnavailableError",
    "build_projection_collection",
    "cell_means_design",
    "estimated_risk",
    "estimated_variance",
    "fit",
    "fit_with_risk",
    "hypercube_operator",
    "hypercube_summary",
    "optimize_risk",
    "select_components",
    "symmetric_inverse_sqrt",
    "weighted_sum",
    "weighted_sum_function",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "FittedEstimator": ("hypercube.estimators.base", "FittedEstimator"),
    "OptimizationResult": ("hypercube.estimators.base", "OptimizationResult"),
    "HypercubeEstimator": ("hypercube.estimators.hypercube", "HypercubeEstimator"),
    "fit": ("hypercube.estimators.hypercube", "fit"),
    "fit_with_risk": ("hypercube.estimators.hypercube", "fit_with_risk"),
    "hypercube_operator": ("hypercube.estimators.hypercube", "hypercube_operator"),
    "OptimizerConfig": ("hypercube.estimators.optimize", "OptimizerConfig"),
    "optimize_risk": ("hypercube.estimators.optimize", "optimize_risk"),
    "ProjectionCollection": ("hypercube.core.projections", "ProjectionCollection"),
    "build_projection_collection": ("hypercube.core.projections", "build_projection_collection"),
    "select_components": ("hypercube.core.projections", "select_components"),
    "weighted_sum": ("hypercube.core.projections", "weighted_sum"),
    "weighted_sum_function": ("hypercube.core.projections", "weighted_sum_function"),
    "estimated_risk": ("hypercube.core.risk", "estimated_risk"),
    "estimated_variance": ("hypercube.core.risk", "estimated_variance"),
    "symmetric_inverse_sqrt": ("hypercube.core.linalg", "symmetric_inverse_sqrt"),
    "InvalidSpecError": ("hypercube.exceptions", "InvalidSpecError"),
    "NumericalError": ("hypercube.exceptions", "NumericalError"),
    "VarianceUnavailableError": ("hypercube.exceptions", "VarianceUnavailableError"),
    "cell_means_design": ("hypercube.utils.design", "cell_means_design"),
    "hypercube_summary": ("hypercube.output.summary", "hypercube_summary"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public estimators and utilities on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'hypercube' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
