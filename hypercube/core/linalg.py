"""Linear algebra routines for the hypercube estimator.

This module centralizes the dense matrix primitives used by the projection
algebra, the hypercube operator and the risk estimates: trace and squared
norm, a Moore-Penrose pseudo-inverse with an explicit tolerance, numerical
rank from pivoted QR, and the symmetric inverse square root that maps a
penalty matrix W to an admissible shrinkage matrix V = (I + W)^(-1/2).
"""

from __future__ import annotations

import logging
import warnings
from typing import TYPE_CHECKING, Any

import numpy as np
import scipy.linalg as sla

from hypercube.exceptions import NumericalError

if TYPE_CHECKING:
    from numpy.typing import NDArray
else:
    NDArray = np.ndarray  # type: ignore[misc,assignment]

LOGGER = logging.getLogger(__name__)

# Matrix type alias
Matrix = Any

# Relative singular-value cutoff for pinv (MASS::ginv convention).
PINV_RCOND = float(np.sqrt(np.finfo(float).eps))
# R lm.fit rank tolerance: |diag(R)| > 1e-7 * max|diag(R)|.
RANK_TOL = 1e-7
SQRTM_RESIDUAL_TOL = 1e-6
SQRTM_IMAG_TOL = 1e-8

__all__ = [
    "PINV_RCOND",
    "RANK_TOL",
    "Matrix",
    "as_vector",
    "check_xy",
    "difference_matrix",
    "difference_penalty",
    "is_admissible",
    "matrix_rank",
    "pinv",
    "squared_norm",
    "symmetric_inverse_sqrt",
    "tdot",
    "to_dense",
    "trace",
]


def _assert_all_finite(*arrays: NDArray[np.float64]) -> None:
    """Raise ValueError if any input contains NaN or Inf."""
    for a in arrays:
        if a is None:
            continue
        if not np.all(np.isfinite(np.asarray(a))):
            raise ValueError("Input contains NA/NaN/Inf; please drop/clean rows.")


def _assert_square(A: NDArray[np.float64], name: str = "A") -> None:
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise ValueError(f"{name} must be a square matrix; got shape {A.shape}.")


def to_dense(A: Matrix) -> NDArray[np.float64]:
    """Convert a matrix-like object (ndarray, DataFrame, sparse) to dense float64."""
    if hasattr(A, "toarray"):
        return np.asarray(A.toarray(), dtype=np.float64)
    if hasattr(A, "to_numpy"):
        return np.asarray(A.to_numpy(), dtype=np.float64)
    return np.asarray(A, dtype=np.float64)


def as_vector(y: Matrix, *, name: str = "y") -> NDArray[np.float64]:
    """Return ``y`` as a 1-D float64 vector; (n, 1) columns are flattened."""
    arr = to_dense(y)
    if arr.ndim == 2 and 1 in arr.shape:
        arr = arr.reshape(-1)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be a vector; got shape {arr.shape}.")
    return arr


def check_xy(X: Matrix, y: Matrix) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Coerce a design/response pair to float64 arrays and validate them."""
    Xd = to_dense(X)
    if Xd.ndim == 1:
        Xd = Xd.reshape(-1, 1)
    if Xd.ndim != 2:
        raise ValueError(f"X must be a 2-D design matrix; got shape {Xd.shape}.")
    yd = as_vector(y)
    if yd.shape[0] != Xd.shape[0]:
        raise ValueError(f"X has {Xd.shape[0]} rows but y has {yd.shape[0]} entries.")
    _assert_all_finite(Xd, yd)
    return Xd, yd


def trace(A: Matrix) -> float:
    """Sum of the diagonal entries of a square matrix."""
    Ad = to_dense(A)
    _assert_square(Ad)
    return float(np.trace(Ad))


def squared_norm(v: Matrix) -> float:
    """Sum of squared entries of a vector (or any array)."""
    vd = to_dense(v).reshape(-1)
    return float(vd @ vd)


def tdot(X: Matrix) -> NDArray[np.float64]:
    """Compute X'X."""
    Xd = to_dense(X)
    return Xd.T @ Xd


def pinv(A: Matrix, *, rcond: float | None = None) -> NDArray[np.float64]:
    """Compute Moore-Penrose pseudo-inverse with explicit rcond handling.

    Singular values below ``rcond * max(s)`` are treated as zero. The default
    cutoff is ``sqrt(eps)``. An SVD that fails to converge raises
    :class:`~hypercube.exceptions.NumericalError`.
    """
    Ad = to_dense(A)
    try:
        U, s, Vt = np.linalg.svd(Ad, full_matrices=False)
    except np.linalg.LinAlgError as exc:
        raise NumericalError(
            f"Generalized inverse failed for a {Ad.shape} matrix: {exc}",
        ) from exc
    if rcond is None:
        rcond = PINV_RCOND
    tol = float(rcond) * (s.max() if s.size else 0.0)
    s_inv = np.where(s > tol, 1.0 / np.where(s > tol, s, 1.0), 0.0)
    return (Vt.T * s_inv) @ U.T


def _rank_from_diag(diagR: NDArray[np.float64], tol: float) -> int:
    """Count |diag(R)| entries above ``tol * max|diag(R)|``."""
    d = np.abs(np.asarray(diagR, dtype=float).reshape(-1))
    if d.size == 0 or float(np.max(d)) == 0.0:
        return 0
    return int(np.sum(d > float(tol) * float(np.max(d))))


def matrix_rank(A: Matrix, *, tol: float = RANK_TOL) -> int:
    """Numerical rank from column-pivoted QR using the R ``lm`` tolerance."""
    Ad = to_dense(A)
    if Ad.ndim != 2:
        raise ValueError(f"matrix_rank expects a 2-D array; got shape {Ad.shape}.")
    if Ad.size == 0:
        return 0
    _Q, R, _P = sla.qr(Ad, mode="economic", pivoting=True)
    return _rank_from_diag(np.diag(R), tol)


def symmetric_inverse_sqrt(W: Matrix) -> NDArray[np.float64]:
    """Return V = (I + W)^(-1/2) for a positive semidefinite penalty ``W``.

    The principal square root of ``I + W`` is computed with
    :func:`scipy.linalg.sqrtm` and then inverted. For PSD ``W`` the result is
    symmetric with eigenvalues in (0, 1], i.e. an admissible hypercube
    shrinkage matrix; ``W = nu * D'D`` turns a penalized least squares fit
    into its hypercube counterpart.

    Parameters
    ----------
    W : array-like, shape (p, p)
        Symmetric positive semidefinite penalty matrix.

    Returns
    -------
    ndarray, shape (p, p)
        Symmetrized ``(I + W)^(-1/2)``.

    Raises
    ------
    ValueError
        If ``W`` is not square or contains non-finite entries.
    NumericalError
        If ``I + W`` is singular or its square root is complex, non-finite
        or inaccurate.

    """
    Wd = to_dense(W)
    _assert_square(Wd, "W")
    _assert_all_finite(Wd)
    p = Wd.shape[0]
    M = np.eye(p, dtype=np.float64) + Wd
    try:
        with warnings.catch_warnings():
            # singular input is reported by the checks below
            warnings.simplefilter("ignore", sla.LinAlgWarning)
            S = sla.sqrtm(M)
    except (ValueError, np.linalg.LinAlgError) as exc:
        raise NumericalError(f"Square root of I + W failed: {exc}") from exc
    S = np.asarray(S)
    if np.iscomplexobj(S):
        scale = max(1.0, float(np.max(np.abs(S.real))) if S.size else 1.0)
        if float(np.max(np.abs(S.imag), initial=0.0)) > SQRTM_IMAG_TOL * scale:
            raise NumericalError(
                "Square root of I + W is complex; W must be positive semidefinite.",
            )
        S = S.real
    S = np.asarray(S, dtype=np.float64)
    if not np.all(np.isfinite(S)):
        raise NumericalError("Square root of I + W contains non-finite entries.")
    m_norm = float(np.linalg.norm(M, "fro"))
    resid = float(np.linalg.norm(S @ S - M, "fro")) / max(m_norm, np.finfo(float).tiny)
    if resid > SQRTM_RESIDUAL_TOL:
        raise NumericalError(
            f"Square root of I + W did not converge (relative residual {resid:.3g}).",
        )
    s = np.linalg.svd(S, compute_uv=False)
    if s.size and (s.max() == 0.0 or s.min() <= np.finfo(float).eps * p * s.max()):
        raise NumericalError("I + W is singular; its inverse square root does not exist.")
    V = np.linalg.solve(S, np.eye(p, dtype=np.float64))
    LOGGER.debug("symmetric_inverse_sqrt: p=%d, sqrtm residual=%.3g", p, resid)
    return 0.5 * (V + V.T)


def difference_matrix(p: int, order: int = 1) -> NDArray[np.float64]:
    """Return the (p - order) x p finite-difference operator of given order."""
    p = int(p)
    order = int(order)
    if order < 0:
        raise ValueError(f"order must be non-negative; got {order}.")
    if p <= order:
        raise ValueError(f"difference_matrix needs p > order; got p={p}, order={order}.")
    return np.diff(np.eye(p, dtype=np.float64), n=order, axis=0)


def difference_penalty(p: int, order: int = 1, nu: float = 1.0) -> NDArray[np.float64]:
    """Return the difference penalty ``nu * D'D`` (positive semidefinite)."""
    if not np.isfinite(nu) or nu < 0.0:
        raise ValueError(f"nu must be a finite non-negative scalar; got {nu}.")
    D = difference_matrix(p, order)
    return float(nu) * (D.T @ D)


def is_admissible(V: Matrix, *, tol: float = 1e-8) -> bool:
    """Check that ``V`` is symmetric with all eigenvalues in [0, 1]."""
    Vd = to_dense(V)
    if Vd.ndim != 2 or Vd.shape[0] != Vd.shape[1]:
        return False
    if not np.all(np.isfinite(Vd)):
        return False
    scale = max(1.0, float(np.max(np.abs(Vd), initial=0.0)))
    if not np.allclose(Vd, Vd.T, atol=tol * scale, rtol=0.0):
        return False
    vals = np.linalg.eigvalsh(0.5 * (Vd + Vd.T))
    return bool(np.all(vals >= -tol) and np.all(vals <= 1.0 + tol))
