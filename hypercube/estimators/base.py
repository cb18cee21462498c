"""Base estimator interface and result containers.

This module defines the abstract base estimator and the immutable values
returned by fitting and risk optimization: :class:`FittedEstimator`, a tagged
variant distinguishing a basic fit from a fit with variance and risk
diagnostics, and :class:`OptimizationResult`.
"""

# hypercube/estimators/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = [
    "BaseEstimator",
    "FitKind",
    "FittedEstimator",
    "OptimizationResult",
]

FitKind = Literal["basic", "with_risk"]
_FIT_KINDS = ("basic", "with_risk")
_VARIANCE_SOURCES = ("ols", "additive", "external")


def _frozen_array(values: Any, *, ndim: int, label: str) -> NDArray[np.float64]:
    arr = np.array(values, dtype=np.float64, copy=True)
    if arr.ndim != ndim:
        raise ValueError(f"{label} must be {ndim}-D; got shape {arr.shape}.")
    arr.setflags(write=False)
    return arr


# ---------------------------------------------------------------------
# Results containers
# ---------------------------------------------------------------------
@dataclass(frozen=True, eq=False)
class FittedEstimator:
    """Immutable result of one hypercube fit.

    ``kind == "basic"`` carries coefficients, fitted values, residuals and the
    shrinkage matrix only. ``kind == "with_risk"`` additionally carries the
    noise variance used, where it came from, and the estimated risk. Arrays
    are stored as read-only copies.
    """

    kind: FitKind
    coef: NDArray[np.float64]
    fitted: NDArray[np.float64]
    residuals: NDArray[np.float64]
    V: NDArray[np.float64] = field(repr=False)
    edf: float
    var_names: tuple[str, ...] | None = None
    variance: float | None = None
    variance_source: str | None = None
    risk: float | None = None

    def __post_init__(self) -> None:
        if self.kind not in _FIT_KINDS:
            raise ValueError(f"kind must be one of {_FIT_KINDS}; got {self.kind!r}.")
        object.__setattr__(self, "coef", _frozen_array(self.coef, ndim=1, label="coef"))
        object.__setattr__(self, "fitted", _frozen_array(self.fitted, ndim=1, label="fitted"))
        object.__setattr__(
            self, "residuals", _frozen_array(self.residuals, ndim=1, label="residuals"),
        )
        object.__setattr__(self, "V", _frozen_array(self.V, ndim=2, label="V"))
        if self.fitted.shape != self.residuals.shape:
            raise ValueError("fitted and residuals must have the same length.")
        if self.var_names is not None:
            names = tuple(str(n) for n in self.var_names)
            if len(names) != self.coef.shape[0]:
                raise ValueError(
                    f"Got {len(names)} variable names for {self.coef.shape[0]} coefficients.",
                )
            object.__setattr__(self, "var_names", names)
        diagnostics = (self.variance, self.variance_source, self.risk)
        if self.kind == "with_risk":
            if any(v is None for v in diagnostics):
                raise ValueError("A 'with_risk' fit requires variance, variance_source and risk.")
            if self.variance_source not in _VARIANCE_SOURCES:
                raise ValueError(
                    f"variance_source must be one of {_VARIANCE_SOURCES}; got {self.variance_source!r}.",
                )
            object.__setattr__(self, "variance", float(self.variance))
            object.__setattr__(self, "risk", float(self.risk))
        elif any(v is not None for v in diagnostics):
            raise ValueError("A 'basic' fit carries no variance or risk; use kind='with_risk'.")

    @property
    def has_risk(self) -> bool:
        return self.kind == "with_risk"

    @property
    def n_obs(self) -> int:
        return int(self.fitted.shape[0])

    @property
    def params(self) -> pd.Series:
        """Coefficients as a ``pandas.Series`` indexed by variable name."""
        names = (
            list(self.var_names)
            if self.var_names is not None
            else [f"x{i}" for i in range(self.coef.shape[0])]
        )
        return pd.Series(np.array(self.coef), index=names, name="coef")

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        head = f"FittedEstimator(kind={self.kind!r}, p={self.coef.shape[0]}, n={self.n_obs}"
        if self.has_risk:
            head += f", variance={self.variance:.6g}, risk={self.risk:.6g}"
        return head + ")"


@dataclass(frozen=True, eq=False)
class OptimizationResult:
    """Risk-minimizing projection weights and the fit they produce."""

    fit: FittedEstimator
    weights: NDArray[np.float64]
    risk: float
    components: tuple[tuple[int, ...], ...]
    labels: tuple[str, ...]
    n_evaluations: int = 0
    converged: bool = True
    message: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "weights", _frozen_array(self.weights, ndim=1, label="weights"))
        if self.weights.shape[0] != len(self.components):
            raise ValueError(
                f"Got {self.weights.shape[0]} weights for {len(self.components)} components.",
            )
        if len(self.labels) != len(self.components):
            raise ValueError("labels must align with components.")
        object.__setattr__(self, "risk", float(self.risk))

    @property
    def V(self) -> NDArray[np.float64]:
        return self.fit.V

    @property
    def weight_series(self) -> pd.Series:
        return pd.Series(np.array(self.weights), index=list(self.labels), name="weight")

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        w = ", ".join(f"{lab}={wt:.3f}" for lab, wt in zip(self.labels, self.weights))
        return f"OptimizationResult(risk={self.risk:.6g}, weights=[{w}], converged={self.converged})"


# ---------------------------------------------------------------------
# Base interface
# ---------------------------------------------------------------------
class BaseEstimator(ABC):
    """Abstract base class for object-style estimators.

    Principles
    ----------
    1) All linear algebra goes through `core.linalg`.
    2) Projection construction goes through `core.projections`.
    3) Variance and risk estimates go through `core.risk`.
    """

    def __init__(self) -> None:
        self._results: FittedEstimator | None = None

    @abstractmethod
    def fit(self, *args: Any, **kwargs: Any) -> FittedEstimator:  # pragma: no cover - abstract
        """Fit the estimator and return a FittedEstimator (abstract)."""
        ...

    # -- convenience accessors ----------------------------------------
    @property
    def results(self) -> FittedEstimator:
        if self._results is None:
            msg = "Model has not been fitted yet. Call .fit() first."
            raise RuntimeError(msg)
        return self._results

    @property
    def params(self) -> pd.Series:
        return self.results.params

    @property
    def n_obs(self) -> int:
        return self.results.n_obs

