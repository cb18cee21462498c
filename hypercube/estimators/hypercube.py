"""Hypercube estimator.

For a design matrix X and a symmetric shrinkage matrix V with eigenvalues in
[0, 1], the hypercube fit of y is ``A(V) y`` with

    A(V) = X V (V X'X V + I - V^2)^+ V X'.

V = I gives least squares, V = 0 the null fit, and V = (I + W)^(-1/2)
reproduces the fitted values of penalized least squares with penalty W. The
bracketed matrix is inverted with the Moore-Penrose pseudo-inverse, so
singular V or rank-deficient X never raise; coefficients are the
minimum-norm solution ``pinv(X) A(V) y``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Union

import numpy as np
import pandas as pd

from hypercube.core import linalg as la
from hypercube.core.projections import (
    ProjectionCollection,
    build_projection_collection,
    coerce_levels,
    select_components,
    weighted_sum,
)
from hypercube.core.risk import estimated_risk, estimated_variance
from hypercube.exceptions import InvalidSpecError

from .base import BaseEstimator, FittedEstimator

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from .base import OptimizationResult
    from .optimize import OptimizerConfig

LOGGER = logging.getLogger(__name__)

ArrayLike = Union[pd.Series, np.ndarray]
MatrixLike = Union[pd.DataFrame, np.ndarray]

__all__ = [
    "HypercubeEstimator",
    "fit",
    "fit_with_risk",
    "hypercube_operator",
]


def _check_V(V: Any, p: int) -> NDArray[np.float64]:
    Vd = la.to_dense(V)
    if Vd.shape != (p, p):
        raise ValueError(f"V must be {p} x {p} to match the columns of X; got shape {Vd.shape}.")
    la._assert_all_finite(Vd)  # noqa: SLF001
    return Vd


def hypercube_operator(X: MatrixLike, V: MatrixLike) -> NDArray[np.float64]:
    """Return the n x n hypercube operator ``A(V)``.

    Parameters
    ----------
    X : array-like, shape (n, p)
        Design matrix.
    V : array-like, shape (p, p)
        Symmetric shrinkage matrix with eigenvalues in [0, 1]. Admissibility
        is not re-checked here.

    Returns
    -------
    ndarray, shape (n, n)
        Linear operator mapping observations to fitted values.

    """
    Xd = la.to_dense(X)
    if Xd.ndim != 2:
        raise ValueError(f"X must be a 2-D design matrix; got shape {Xd.shape}.")
    p = Xd.shape[1]
    Vd = _check_V(V, p)
    XV = Xd @ Vd
    middle = la.tdot(XV) + np.eye(p, dtype=np.float64) - Vd @ Vd
    return XV @ la.pinv(middle) @ XV.T


def _fit_arrays(
    Xd: NDArray[np.float64], yd: NDArray[np.float64], Vd: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    A = hypercube_operator(Xd, Vd)
    fitted = A @ yd
    coef = la.pinv(Xd) @ fitted
    return A, fitted, coef


def fit(
    X: MatrixLike, y: ArrayLike, V: MatrixLike, *, var_names: Sequence[str] | None = None,
) -> FittedEstimator:
    """Basic hypercube fit without variance or risk estimation."""
    Xd, yd = la.check_xy(X, y)
    Vd = _check_V(V, Xd.shape[1])
    A, fitted, coef = _fit_arrays(Xd, yd, Vd)
    return FittedEstimator(
        kind="basic",
        coef=coef,
        fitted=fitted,
        residuals=yd - fitted,
        V=Vd,
        edf=la.trace(A),
        var_names=var_names,
    )


def _check_external_variance(variance: float) -> float:
    v = float(variance)
    if not np.isfinite(v) or v < 0.0:
        raise ValueError(f"variance must be a finite non-negative scalar; got {variance!r}.")
    return v


def _fit_with_variance(  # noqa: PLR0913
    Xd: NDArray[np.float64],
    yd: NDArray[np.float64],
    Vd: NDArray[np.float64],
    variance: float,
    source: str,
    var_names: Sequence[str] | None,
) -> FittedEstimator:
    A, fitted, coef = _fit_arrays(Xd, yd, Vd)
    risk = estimated_risk(Xd, yd, A, variance)
    return FittedEstimator(
        kind="with_risk",
        coef=coef,
        fitted=fitted,
        residuals=yd - fitted,
        V=Vd,
        edf=la.trace(A),
        var_names=var_names,
        variance=variance,
        variance_source=source,
        risk=risk,
    )


def fit_with_risk(  # noqa: PLR0913
    X: MatrixLike,
    y: ArrayLike,
    V: MatrixLike,
    levels: ProjectionCollection | Sequence[int] | None = None,
    variance: float | None = None,
    *,
    var_names: Sequence[str] | None = None,
) -> FittedEstimator:
    """Hypercube fit with noise variance and estimated risk.

    The variance is taken from ``variance`` when given, otherwise estimated
    with :func:`~hypercube.core.risk.estimated_variance` (``levels`` enables
    the additive-submodel fallback for saturated designs).
    """
    Xd, yd = la.check_xy(X, y)
    Vd = _check_V(V, Xd.shape[1])
    if variance is None:
        est = estimated_variance(Xd, yd, levels)
        sigma2, source = est.variance, est.source
    else:
        sigma2, source = _check_external_variance(variance), "external"
    return _fit_with_variance(Xd, yd, Vd, sigma2, source, var_names)


class HypercubeEstimator(BaseEstimator):
    """Hypercube estimator for cell-means designs of categorical factors.

    Parameters
    ----------
    y : array-like, shape (n,) or (n, 1)
        Response.
    X : array-like, shape (n, p)
        Design matrix, one column per cell. Can be a numpy array or a pandas
        DataFrame.
    levels : sequence of int, optional
        Level count of each factor; their product must equal ``p``. Needed for
        projection-based shrinkage, risk optimization and the saturated-design
        variance fallback.
    factor_names : sequence of str, optional
        Factor names used to label projection components.
    var_names : sequence of str, optional
        Column names. Defaults to DataFrame columns or ``x0, x1, ...``.

    Examples
    --------
    >>> model = HypercubeEstimator.from_formula("y ~ A * B", df)
    >>> opt = model.optimize()
    >>> opt.weights
    >>> model.params

    """

    def __init__(  # noqa: PLR0913
        self,
        y: ArrayLike,
        X: MatrixLike,
        *,
        levels: Sequence[int] | None = None,
        factor_names: Sequence[str] | None = None,
        var_names: Sequence[str] | None = None,
    ) -> None:
        super().__init__()
        if var_names is None and isinstance(X, pd.DataFrame):
            var_names = list(X.columns)
        self.X, self.y = la.check_xy(X, y)
        self._n_obs, self._n_features = self.X.shape
        if var_names is not None and len(var_names) != self._n_features:
            raise ValueError(
                f"Got {len(var_names)} variable names for {self._n_features} columns.",
            )
        self._var_names = (
            [str(v) for v in var_names]
            if var_names is not None
            else [f"x{i}" for i in range(self._n_features)]
        )
        self._levels = None if levels is None else coerce_levels(levels)
        self._factor_names = None if factor_names is None else tuple(factor_names)
        self._collection: ProjectionCollection | None = None
        self._optimization: OptimizationResult | None = None

    @classmethod
    def from_formula(cls, formula: str, data: pd.DataFrame) -> HypercubeEstimator:
        """Build the cell-means design for ``formula`` (e.g. ``"y ~ A * B"``)."""
        from hypercube.utils.design import design_from_formula

        design = design_from_formula(formula, data)
        return cls(
            design.y,
            design.X,
            levels=design.levels,
            factor_names=design.factor_names,
            var_names=design.column_names,
        )

    @property
    def levels(self) -> tuple[int, ...] | None:
        return self._levels

    @property
    def var_names(self) -> list[str]:
        return list(self._var_names)

    @property
    def collection(self) -> ProjectionCollection:
        """Full projection collection for the factor structure (built once)."""
        if self._collection is None:
            if self._levels is None:
                raise InvalidSpecError(
                    "No factor levels were given; projection-based shrinkage is unavailable.",
                )
            coll = build_projection_collection(self._levels, self._factor_names)
            if coll.dim != self._n_features:
                raise InvalidSpecError(
                    f"Factor levels {list(self._levels)} imply {coll.dim} cells but X has "
                    f"{self._n_features} columns.",
                )
            self._collection = coll
        return self._collection

    @property
    def optimization(self) -> OptimizationResult:
        if self._optimization is None:
            raise RuntimeError("Risk has not been optimized yet. Call .optimize() first.")
        return self._optimization

    def fit(  # noqa: PLR0913
        self,
        V: MatrixLike | None = None,
        *,
        weights: Sequence[float] | None = None,
        components: Sequence[Any] | None = None,
        variance: float | None = None,
        with_risk: bool = True,
    ) -> FittedEstimator:
        """Fit with an explicit ``V`` or with projection weights.

        Without ``V`` the shrinkage matrix is the weighted sum of the selected
        projection components (all components, unit weights by default, i.e.
        least squares). Without factor levels the default is V = I.
        """
        if V is not None and (weights is not None or components is not None):
            raise ValueError("Pass either V or weights/components, not both.")
        if V is None:
            if self._levels is None and weights is None and components is None:
                V = np.eye(self._n_features, dtype=np.float64)
            else:
                V = weighted_sum(self.collection, components, weights).matrix
        if with_risk:
            result = fit_with_risk(
                self.X, self.y, V, self._levels, variance, var_names=self._var_names,
            )
        else:
            result = fit(self.X, self.y, V, var_names=self._var_names)
        self._results = result
        return result

    def optimize(
        self,
        *,
        components: Sequence[Any] | None = None,
        variance: float | None = None,
        config: OptimizerConfig | None = None,
    ) -> OptimizationResult:
        """Minimize estimated risk over projection weights in [0, 1]."""
        from .optimize import optimize_risk

        coll = self.collection if components is None else select_components(self.collection, components)
        res = optimize_risk(
            self.X, self.y, coll, variance, config=config, var_names=self._var_names,
        )
        self._optimization = res
        self._results = res.fit
        return res
