"""Risk minimization over projection weights.

The shrinkage matrix ``V(w) = sum_i w_i P_i`` is built from a projection
collection with one weight per component. The estimated risk of the
hypercube fit at ``V(w)`` is minimized over the box ``[0, 1]^k`` with a
bounded quasi-Newton method started at ``w = (0.5, ..., 0.5)``. The objective
need not be convex: the result is a single local optimum for that start,
with no restarts.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.optimize import minimize

from hypercube.core import linalg as la
from hypercube.core.projections import weighted_sum_function
from hypercube.core.risk import estimated_risk, estimated_variance
from hypercube.exceptions import InvalidSpecError, NumericalError

from .base import OptimizationResult
from .hypercube import _check_external_variance, _fit_with_variance, hypercube_operator

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from hypercube.core.projections import ProjectionCollection

LOGGER = logging.getLogger(__name__)

SUPPORTED_METHODS = ("L-BFGS-B", "SLSQP")

__all__ = ["OptimizerConfig", "optimize_risk"]


@dataclass(frozen=True)
class OptimizerConfig:
    """Settings for the bounded risk minimization.

    Attributes
    ----------
    method : str
        Bounded gradient-based method passed to :func:`scipy.optimize.minimize`.
    start : float
        Common starting weight for every component.
    maxiter : int
        Maximum number of iterations.
    ftol, gtol : float, optional
        Convergence tolerances; ``None`` keeps SciPy's defaults.

    """

    method: str = "L-BFGS-B"
    start: float = 0.5
    maxiter: int = 100
    ftol: float | None = None
    gtol: float | None = None

    def __post_init__(self) -> None:
        if self.method not in SUPPORTED_METHODS:
            raise ValueError(f"method must be one of {SUPPORTED_METHODS}; got {self.method!r}.")
        if not (0.0 <= float(self.start) <= 1.0):
            raise ValueError(f"start must lie in [0, 1]; got {self.start}.")
        if int(self.maxiter) < 1:
            raise ValueError(f"maxiter must be positive; got {self.maxiter}.")
        for name in ("ftol", "gtol"):
            val = getattr(self, name)
            if val is not None and not (np.isfinite(val) and val > 0.0):
                raise ValueError(f"{name} must be a positive finite number; got {val}.")

    def options(self) -> dict[str, Any]:
        opts: dict[str, Any] = {"maxiter": int(self.maxiter)}
        if self.ftol is not None:
            opts["ftol"] = float(self.ftol)
        if self.gtol is not None and self.method == "L-BFGS-B":
            opts["gtol"] = float(self.gtol)
        return opts


def optimize_risk(  # noqa: PLR0913
    X,
    y,
    collection: ProjectionCollection,
    variance: float | None = None,
    *,
    config: OptimizerConfig | None = None,
    var_names: Sequence[str] | None = None,
) -> OptimizationResult:
    """Find projection weights in [0, 1] that minimize the estimated risk.

    Parameters
    ----------
    X : array-like, shape (n, p)
        Cell-means design matrix; ``p`` must equal ``collection.dim``.
    y : array-like, shape (n,)
        Response.
    collection : ProjectionCollection
        Components to weight (full or selected with ``select_components``).
    variance : float, optional
        External noise variance. Estimated once with
        :func:`~hypercube.core.risk.estimated_variance` when omitted.
    config : OptimizerConfig, optional
        Minimizer settings.
    var_names : sequence of str, optional
        Coefficient names recorded on the final fit.

    Returns
    -------
    OptimizationResult
        Optimal weights, minimized risk and the refit at the optimal ``V``.

    Raises
    ------
    NumericalError
        If the estimated risk is not finite at some evaluated weight vector.
    VarianceUnavailableError
        If no variance is given and none can be estimated.

    """
    cfg = OptimizerConfig() if config is None else config
    Xd, yd = la.check_xy(X, y)
    if collection.dim != Xd.shape[1]:
        raise InvalidSpecError(
            f"Projection dimension {collection.dim} does not match the {Xd.shape[1]} columns of X.",
        )
    if variance is None:
        est = estimated_variance(Xd, yd, collection)
        sigma2, source = est.variance, est.source
    else:
        sigma2, source = _check_external_variance(variance), "external"

    v_of_w = weighted_sum_function(collection)
    k = len(v_of_w)
    n_eval = 0

    def _objective(w: NDArray[np.float64]) -> float:
        nonlocal n_eval
        n_eval += 1
        A = hypercube_operator(Xd, v_of_w(w))
        risk = estimated_risk(Xd, yd, A, sigma2)
        if not np.isfinite(risk):
            raise NumericalError(
                f"Estimated risk is not finite ({risk}) at weights {np.round(w, 6).tolist()}.",
            )
        LOGGER.debug("risk eval %d: w=%s risk=%.10g", n_eval, np.round(w, 6).tolist(), risk)
        return risk

    w0 = np.full(k, float(cfg.start), dtype=np.float64)
    res = minimize(
        _objective,
        w0,
        method=cfg.method,
        bounds=[(0.0, 1.0)] * k,
        options=cfg.options(),
    )
    message = res.message.decode() if isinstance(res.message, bytes) else str(res.message)
    converged = bool(res.success)
    if not converged:
        warnings.warn(
            f"Risk minimization did not converge ({message}); returning the last iterate.",
            RuntimeWarning,
            stacklevel=2,
        )
    w_opt = np.clip(np.asarray(res.x, dtype=np.float64), 0.0, 1.0)
    final = _fit_with_variance(Xd, yd, v_of_w(w_opt), sigma2, source, var_names)
    LOGGER.debug(
        "Risk minimization finished: converged=%s evals=%d risk=%.10g weights=%s",
        converged, n_eval, final.risk, np.round(w_opt, 6).tolist(),
    )
    return OptimizationResult(
        fit=final,
        weights=w_opt,
        risk=final.risk,
        components=v_of_w.components,
        labels=v_of_w.labels,
        n_evaluations=n_eval,
        converged=converged,
        message=message,
    )
