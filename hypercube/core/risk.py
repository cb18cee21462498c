"""Noise-variance and quadratic-risk estimates for hypercube fits.

The variance estimate is the usual least squares residual variance when the
design leaves residual degrees of freedom. A saturated multi-factor design
(one observation per cell) has none; the estimate then falls back to the
residuals of the additive submodel (grand mean plus main effects). A
saturated single-factor design has no such structure, and the caller must
supply the variance.

The risk estimate is Stein's unbiased estimate of the normalized quadratic
risk of the linear fit ``A y``:

    p^-1 * ( ||y - A y||^2 + (2 tr(A) - n) * sigma^2 )

with ``p`` the number of columns of the design.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NamedTuple

import numpy as np

from hypercube.core import linalg as la
from hypercube.core.projections import ProjectionCollection, additive_projection, coerce_levels
from hypercube.exceptions import VarianceUnavailableError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

LOGGER = logging.getLogger(__name__)

__all__ = ["VarianceEstimate", "estimated_risk", "estimated_variance"]


class VarianceEstimate(NamedTuple):
    """Estimated noise variance with the fitted values it was computed from."""

    variance: float
    fitted: NDArray[np.float64]
    df: int
    source: str


def _level_counts(levels: ProjectionCollection | Sequence[int] | None) -> tuple[int, ...] | None:
    if levels is None:
        return None
    if isinstance(levels, ProjectionCollection):
        return levels.levels
    return coerce_levels(levels)


def estimated_variance(
    X, y, levels: ProjectionCollection | Sequence[int] | None = None,
) -> VarianceEstimate:
    """Estimate the noise variance from residual degrees of freedom.

    Parameters
    ----------
    X : array-like, shape (n, p)
        Design matrix.
    y : array-like, shape (n,)
        Response.
    levels : sequence of int or ProjectionCollection, optional
        Factor level counts of the cell-means design. Only consulted when the
        residual degrees of freedom are zero.

    Returns
    -------
    VarianceEstimate
        ``source`` is ``"ols"`` for the least squares residual variance and
        ``"additive"`` for the additive-submodel fallback.

    Raises
    ------
    VarianceUnavailableError
        If the residual degrees of freedom are zero and at most one factor is
        available, or if the additive submodel is saturated as well.
    InvalidSpecError
        If ``levels`` is not a sequence of positive integer level counts.

    """
    Xd, yd = la.check_xy(X, y)
    counts = _level_counts(levels)
    n = Xd.shape[0]
    rank = la.matrix_rank(Xd)
    df = n - rank
    if df > 0:
        fitted = Xd @ (la.pinv(Xd) @ yd)
        variance = la.squared_norm(yd - fitted) / df
        LOGGER.debug("Variance from OLS residuals: n=%d rank=%d df=%d s2=%.6g", n, rank, df, variance)
        return VarianceEstimate(variance=float(variance), fitted=fitted, df=int(df), source="ols")

    if counts is None or len(counts) < 2:
        raise VarianceUnavailableError(
            f"Residual degrees of freedom are zero (n={n}, rank(X)={rank}) and "
            f"{'no factor structure was given' if counts is None else 'only one factor is present'}; "
            "supply an external variance estimate.",
        )
    P_add = additive_projection(counts)
    if P_add.shape[0] != Xd.shape[1]:
        raise ValueError(
            f"Factor levels {list(counts)} imply {P_add.shape[0]} cells but X has "
            f"{Xd.shape[1]} columns.",
        )
    X_add = Xd @ P_add
    rank_add = la.matrix_rank(X_add)
    df_add = n - rank_add
    if df_add <= 0:
        raise VarianceUnavailableError(
            f"Residual degrees of freedom are zero for both the full model and the "
            f"additive submodel (n={n}, rank={rank_add}); supply an external variance estimate.",
        )
    fitted = X_add @ (la.pinv(X_add) @ yd)
    variance = la.squared_norm(yd - fitted) / df_add
    LOGGER.debug(
        "Variance from additive submodel: n=%d rank=%d df=%d s2=%.6g", n, rank_add, df_add, variance,
    )
    return VarianceEstimate(variance=float(variance), fitted=fitted, df=int(df_add), source="additive")


def estimated_risk(X, y, A, variance: float) -> float:
    """Estimated quadratic risk of the linear fit ``A @ y``, normalized by ``p``.

    Negative or NaN values are returned as computed.
    """
    Xd, yd = la.check_xy(X, y)
    Ad = la.to_dense(A)
    n, p = Xd.shape
    if Ad.shape != (n, n):
        raise ValueError(f"A must be {n} x {n}; got shape {Ad.shape}.")
    resid = yd - Ad @ yd
    return float((la.squared_norm(resid) + (2.0 * la.trace(Ad) - n) * float(variance)) / p)
